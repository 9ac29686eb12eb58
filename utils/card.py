"""Resolved card entity shared by the resolver, the collection and layout consumers."""

from __future__ import annotations

from enum import Enum

from utils.constants import (
    CARD_HEIGHT_MM,
    CARD_WIDTH_MM,
    DEFAULT_CARD_DESCRIPTION,
    DEFAULT_CARD_NAME,
    DEFAULT_CARD_QUERY,
)
from utils.image_codec import Bitmap, BitmapCache, fingerprint, get_bitmap_cache


class ResolutionState(str, Enum):
    DRAFT = "draft"
    FETCHING = "fetching"
    RESOLVED = "resolved"
    FAILED = "failed"


class Card:
    """
    A card ready for layout and export.

    ``card_id`` is fixed at construction and is the only thing equality and
    hashing look at (case-insensitively). The decoded bitmap is derived from
    ``image_data`` on first access and is looked up by the fingerprint of the
    current bytes, so replacing the bytes invalidates it.
    """

    def __init__(
        self,
        card_id: str,
        name: str = DEFAULT_CARD_NAME,
        *,
        description: str = DEFAULT_CARD_DESCRIPTION,
        query: str = DEFAULT_CARD_QUERY,
        enable_bleed: bool = False,
        image_data: bytes = b"",
        width: int = CARD_WIDTH_MM,
        height: int = CARD_HEIGHT_MM,
        bitmap_cache: BitmapCache | None = None,
    ):
        if not card_id or not card_id.strip():
            raise ValueError("Card id cannot be empty")
        self._card_id = card_id
        self.name = name
        self.description = description
        self.query = query
        self.enable_bleed = enable_bleed
        self.width = width
        self.height = height
        self.failure_reason: str | None = None
        self.last_error: Exception | None = None
        self._bitmap_cache = bitmap_cache
        self._image_data = b""
        self._fingerprint: str | None = None
        self.image_data = image_data
        self.state = ResolutionState.RESOLVED if self._image_data else ResolutionState.DRAFT

    @property
    def card_id(self) -> str:
        return self._card_id

    @property
    def key(self) -> str:
        """Normalized identity used for lookups."""
        return self._card_id.casefold()

    # ============= Image Data =============

    @property
    def image_data(self) -> bytes:
        return self._image_data

    @image_data.setter
    def image_data(self, value: bytes | None) -> None:
        self._image_data = bytes(value or b"")
        self._fingerprint = fingerprint(self._image_data) if self._image_data else None

    @property
    def image_fingerprint(self) -> str | None:
        return self._fingerprint

    @property
    def image_downloaded(self) -> bool:
        return self.state is ResolutionState.RESOLVED and bool(self._image_data)

    @property
    def bitmap(self) -> Bitmap | None:
        """
        Decoded pixels for the current bytes, or None when there are no bytes.

        Raises:
            UnsupportedImageFormatError: If the bytes are not a readable image
        """
        if not self._image_data or self._fingerprint is None:
            return None
        cache = self._bitmap_cache if self._bitmap_cache is not None else get_bitmap_cache()
        return cache.get(self._image_data, key=self._fingerprint)

    # ============= Resolution State =============

    def mark_fetching(self) -> None:
        self.state = ResolutionState.FETCHING

    def mark_resolved(self, image_data: bytes) -> None:
        self.image_data = image_data
        self.state = ResolutionState.RESOLVED
        self.failure_reason = None
        self.last_error = None

    def mark_failed(self, error: Exception) -> None:
        self.image_data = b""
        self.state = ResolutionState.FAILED
        self.failure_reason = str(error) or type(error).__name__
        self.last_error = error

    @property
    def is_failed(self) -> bool:
        return self.state is ResolutionState.FAILED

    # ============= Identity =============

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Card):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)

    def __repr__(self) -> str:
        return f"Card(card_id={self._card_id!r}, name={self.name!r}, state={self.state.value})"


__all__ = ["Card", "ResolutionState"]
