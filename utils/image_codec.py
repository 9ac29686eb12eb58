"""Pillow helpers for decoding, re-encoding and caching card bitmaps."""

from __future__ import annotations

import hashlib
import io
import threading
from collections import OrderedDict
from dataclasses import dataclass

from loguru import logger
from PIL import Image, UnidentifiedImageError

from utils.constants import DEFAULT_ENCODE_FORMAT, DEFAULT_ENCODE_QUALITY, HIGH_RES_SIZE
from utils.errors import UnsupportedImageFormatError

BITMAP_MODE = "RGBA"
BITMAP_CACHE_SIZE = 64  # Decoded card images kept in memory
_LOSSY_FORMATS = {"JPEG", "WEBP"}


@dataclass(frozen=True)
class Bitmap:
    """Decoded RGBA pixel buffer."""

    width: int
    height: int
    pixels: bytes
    mode: str = BITMAP_MODE

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    def to_image(self) -> Image.Image:
        """Build a Pillow image sharing this bitmap's pixels."""
        return Image.frombytes(self.mode, self.size, self.pixels)

    @classmethod
    def from_image(cls, image: Image.Image) -> Bitmap:
        if image.mode != BITMAP_MODE:
            image = image.convert(BITMAP_MODE)
        return cls(width=image.width, height=image.height, pixels=image.tobytes())


def fingerprint(data: bytes) -> str:
    """Content key for encoded image bytes."""
    return hashlib.sha256(data).hexdigest()


def decode_image(data: bytes) -> Bitmap:
    """
    Decode encoded image bytes into an RGBA bitmap.

    Args:
        data: Encoded raster bytes (PNG, JPEG, ...)

    Returns:
        Bitmap with the decoded pixels

    Raises:
        UnsupportedImageFormatError: If bytes are empty or not a readable raster image
    """
    if not data:
        raise UnsupportedImageFormatError("Cannot decode empty image data")
    try:
        with Image.open(io.BytesIO(data)) as image:
            image.load()
            return Bitmap.from_image(image)
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as exc:
        raise UnsupportedImageFormatError(f"Unrecognized image data: {exc}") from exc


def encode_image(
    bitmap: Bitmap,
    fmt: str = DEFAULT_ENCODE_FORMAT,
    quality: int = DEFAULT_ENCODE_QUALITY,
) -> bytes:
    """
    Encode a bitmap to bytes in the requested format.

    Args:
        bitmap: Pixels to encode
        fmt: Pillow format name (JPEG, PNG, WEBP)
        quality: Quality for lossy formats (1-95)

    Returns:
        Encoded image bytes
    """
    fmt = fmt.upper()
    if fmt == "JPG":
        fmt = "JPEG"
    image = bitmap.to_image()
    options: dict[str, object] = {}
    if fmt in _LOSSY_FORMATS:
        options["quality"] = max(1, min(int(quality), 95))
        if fmt == "JPEG":
            # JPEG has no alpha channel; flatten onto white like a printed sheet
            background = Image.new("RGB", image.size, (255, 255, 255))
            background.paste(image, mask=image.getchannel("A"))
            image = background
            options["optimize"] = True
    elif fmt == "PNG":
        options["optimize"] = True
    buffer = io.BytesIO()
    try:
        image.save(buffer, format=fmt, **options)
    except (KeyError, ValueError) as exc:
        raise UnsupportedImageFormatError(f"Cannot encode to {fmt}: {exc}") from exc
    return buffer.getvalue()


def normalize_card_image(
    data: bytes,
    size: tuple[int, int] = HIGH_RES_SIZE,
    fmt: str = DEFAULT_ENCODE_FORMAT,
    quality: int = DEFAULT_ENCODE_QUALITY,
) -> bytes:
    """Resize raw card bytes to the print resolution and re-encode them."""
    bitmap = decode_image(data)
    if bitmap.size != size:
        resized = bitmap.to_image().resize(size, Image.Resampling.LANCZOS)
        bitmap = Bitmap.from_image(resized)
    return encode_image(bitmap, fmt=fmt, quality=quality)


class BitmapCache:
    """Bounded LRU of decoded bitmaps keyed by the fingerprint of their source bytes."""

    def __init__(self, max_entries: int = BITMAP_CACHE_SIZE):
        self.max_entries = max_entries
        self._entries: OrderedDict[str, Bitmap] = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, data: bytes, key: str | None = None) -> Bitmap:
        """Return the bitmap for ``data``, decoding only on a cache miss."""
        key = key or fingerprint(data)
        with self._lock:
            cached = self._entries.get(key)
            if cached is not None:
                self._entries.move_to_end(key)
                self.hits += 1
                return cached

        bitmap = decode_image(data)
        with self._lock:
            self.misses += 1
            self._entries[key] = bitmap
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
        logger.debug(f"Decoded bitmap {key[:12]} ({bitmap.width}x{bitmap.height})")
        return bitmap

    def discard(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


_default_cache: BitmapCache | None = None


def get_bitmap_cache() -> BitmapCache:
    """Get the shared BitmapCache instance."""
    global _default_cache
    if _default_cache is None:
        _default_cache = BitmapCache()
    return _default_cache


def reset_bitmap_cache() -> None:
    """Reset the shared bitmap cache (used by tests)."""
    global _default_cache
    _default_cache = None


__all__ = [
    "Bitmap",
    "BitmapCache",
    "decode_image",
    "encode_image",
    "fingerprint",
    "get_bitmap_cache",
    "normalize_card_image",
    "reset_bitmap_cache",
]
