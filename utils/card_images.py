"""MPC Fill card image fetcher and local image cache.

This module provides functionality to:
1. Build MPC Fill image lookup URLs from Google Drive card identifiers
2. Fetch card images from the MPC Fill Apps Script endpoint (base64 body)
3. Maintain a local SQLite-indexed cache of fetched image bytes

Architecture:
- The endpoint answers ``GET <base>?id=<card id>`` with the image as base64 text
- Transport decoding (base64) happens here; raster decoding lives in image_codec
- Cached bytes are stored under the cache directory with sanitized filenames
- SQLite database tracks cached entries and their content fingerprints
"""

from __future__ import annotations

import base64
import binascii
import re
import sqlite3
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol
from urllib.parse import quote, urlencode

import requests
from loguru import logger

from utils.constants import (
    IMAGE_CACHE_DIR,
    MPC_FILL_ID_PARAM,
    MPC_FILL_IMAGE_URL,
    REQUEST_TIMEOUT,
    USER_AGENT,
)
from utils.errors import CorruptResponseError, InvalidRequestError, TransientFetchError
from utils.image_codec import fingerprint

IMAGE_DB_NAME = "images.db"
_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class ImageFetcher(Protocol):
    def fetch(self, card_id: str) -> bytes: ...


def build_image_url(base_url: str, card_id: str, param: str = MPC_FILL_ID_PARAM) -> str:
    """
    Build the lookup URL for a card identifier.

    Raises:
        InvalidRequestError: If the base URL or the identifier is blank
    """
    if not base_url or not base_url.strip():
        raise InvalidRequestError("Image service URL cannot be empty", card_id)
    if card_id is None or not card_id.strip():
        raise InvalidRequestError("Card id cannot be empty", card_id)
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}{urlencode({param: card_id}, quote_via=quote)}"


def decode_base64_payload(body: str | bytes, card_id: str | None = None) -> bytes:
    """Decode the base64 text returned by the image service."""
    if isinstance(body, bytes):
        try:
            body = body.decode("ascii")
        except UnicodeDecodeError as exc:
            raise CorruptResponseError(f"Non-ASCII response for {card_id}", card_id) from exc
    compact = "".join(body.split())
    if not compact:
        raise CorruptResponseError(f"Empty image response for {card_id}", card_id)
    try:
        data = base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise CorruptResponseError(f"Malformed base64 image for {card_id}: {exc}", card_id) from exc
    if not data:
        raise CorruptResponseError(f"Empty image payload for {card_id}", card_id)
    return data


class MpcImageFetcher:
    """Fetches a single card image from the MPC Fill lookup endpoint."""

    def __init__(
        self,
        base_url: str = MPC_FILL_IMAGE_URL,
        timeout: float = REQUEST_TIMEOUT,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": USER_AGENT})

    def fetch(self, card_id: str) -> bytes:
        """
        Download raw encoded image bytes for a card.

        Args:
            card_id: MPC Fill (Google Drive) identifier

        Returns:
            Encoded image bytes as served by the upstream drive

        Raises:
            InvalidRequestError: If the identifier is empty
            TransientFetchError: On connection errors, timeouts or non-2xx responses
            CorruptResponseError: If the body is not valid base64
        """
        url = build_image_url(self.base_url, card_id)
        logger.debug(f"Fetching image for {card_id}: {url}")
        try:
            resp = self.session.get(url, timeout=self.timeout)
            resp.raise_for_status()
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else None
            raise TransientFetchError(
                f"Image service returned HTTP {status} for {card_id}",
                card_id,
                cause=exc,
                status_code=status,
            ) from exc
        except requests.RequestException as exc:
            raise TransientFetchError(
                f"Failed to download image for {card_id}: {exc}", card_id, cause=exc
            ) from exc

        data = decode_base64_payload(resp.text, card_id)
        logger.debug(f"Received {len(data)} bytes for {card_id}")
        return data


class CardImageCache:
    """Manages local card image cache with SQLite database."""

    def __init__(self, cache_dir: Path = IMAGE_CACHE_DIR, db_path: Path | None = None):
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.cache_dir = self.cache_dir.resolve()
        self.db_path = Path(db_path or self.cache_dir / IMAGE_DB_NAME).resolve()
        self._init_database()

    def _init_database(self) -> None:
        """Initialize SQLite database schema."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS mpc_images (
                    card_id TEXT PRIMARY KEY,
                    file_name TEXT NOT NULL,
                    byte_size INTEGER NOT NULL,
                    fingerprint TEXT NOT NULL,
                    downloaded_at TEXT NOT NULL
                )
            """
            )
            conn.commit()

    @staticmethod
    def file_name_for(card_id: str) -> str:
        """Return a filesystem-safe, deterministic filename for a card id."""
        safe = _UNSAFE_FILENAME_CHARS.sub("_", card_id.strip())
        if safe != card_id.strip():
            # Keep distinct ids distinct after sanitizing
            safe = f"{safe}-{fingerprint(card_id.encode('utf-8'))[:8]}"
        return f"{safe}.img"

    def get(self, card_id: str) -> bytes | None:
        """Return cached bytes for a card id, or None when not cached or unreadable."""
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT file_name, fingerprint FROM mpc_images WHERE card_id = ?",
                (card_id,),
            ).fetchone()
        if not row:
            return None

        path = self.cache_dir / row[0]
        try:
            data = path.read_bytes()
        except OSError as exc:
            logger.debug(f"Cached image for {card_id} unreadable: {exc}")
            self.remove(card_id)
            return None
        if fingerprint(data) != row[1]:
            logger.warning(f"Cached image for {card_id} failed integrity check; discarding")
            self.remove(card_id)
            return None
        return data

    def put(self, card_id: str, data: bytes) -> Path:
        """Store image bytes for a card id and record them in the index."""
        file_name = self.file_name_for(card_id)
        path = self.cache_dir / file_name
        path.write_bytes(data)
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO mpc_images
                (card_id, file_name, byte_size, fingerprint, downloaded_at)
                VALUES (?, ?, ?, ?, ?)
            """,
                (card_id, file_name, len(data), fingerprint(data), datetime.now(UTC).isoformat()),
            )
            conn.commit()
        return path

    def remove(self, card_id: str) -> None:
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT file_name FROM mpc_images WHERE card_id = ?", (card_id,)
            ).fetchone()
            conn.execute("DELETE FROM mpc_images WHERE card_id = ?", (card_id,))
            conn.commit()
        if row:
            (self.cache_dir / row[0]).unlink(missing_ok=True)

    def is_cached(self, card_id: str) -> bool:
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT 1 FROM mpc_images WHERE card_id = ?", (card_id,)
            ).fetchone()
        return row is not None

    def get_cache_stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        with sqlite3.connect(self.db_path) as conn:
            total, total_bytes = conn.execute(
                "SELECT COUNT(*), COALESCE(SUM(byte_size), 0) FROM mpc_images"
            ).fetchone()
        return {"cached_images": total, "total_bytes": total_bytes}


class CachedImageFetcher:
    """Wraps a fetcher with a read-through CardImageCache."""

    def __init__(self, fetcher: ImageFetcher, cache: CardImageCache):
        self.fetcher = fetcher
        self.cache = cache

    def fetch(self, card_id: str) -> bytes:
        try:
            cached = self.cache.get(card_id)
        except (OSError, sqlite3.Error) as exc:
            logger.warning(f"Image cache lookup failed for {card_id}: {exc}")
            cached = None
        if cached is not None:
            logger.debug(f"Cache hit for {card_id} ({len(cached)} bytes)")
            return cached

        data = self.fetcher.fetch(card_id)
        try:
            self.cache.put(card_id, data)
        except (OSError, sqlite3.Error) as exc:
            logger.warning(f"Failed to cache image for {card_id}: {exc}")
        return data


__all__ = [
    "CachedImageFetcher",
    "CardImageCache",
    "ImageFetcher",
    "MpcImageFetcher",
    "build_image_url",
    "decode_base64_payload",
]
