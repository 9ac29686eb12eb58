from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from loguru import logger

from utils.constants import (
    CONFIG_FILE,
    DEFAULT_ENCODE_FORMAT,
    DEFAULT_ENCODE_QUALITY,
    DEFAULT_GLOBAL_BLEED,
    IMAGE_CACHE_DIR,
    MAX_WORKERS,
    MAX_WORKERS_LIMIT,
    MIN_WORKERS,
    MPC_FILL_IMAGE_URL,
    REQUEST_TIMEOUT,
)

_ENCODE_FORMATS = {"JPEG", "PNG", "WEBP"}


@dataclass(frozen=True)
class ImportSettings:
    """Snapshot of the configuration values the order import reads."""

    global_bleed_enabled: bool = DEFAULT_GLOBAL_BLEED
    image_service_url: str = MPC_FILL_IMAGE_URL
    max_workers: int = MAX_WORKERS
    request_timeout: float = REQUEST_TIMEOUT
    use_image_cache: bool = True
    cache_dir: Path = field(default=IMAGE_CACHE_DIR)
    normalize_images: bool = False
    normalize_format: str = DEFAULT_ENCODE_FORMAT
    normalize_quality: int = DEFAULT_ENCODE_QUALITY

    def with_overrides(self, **changes: Any) -> ImportSettings:
        """Return a copy with the given non-None fields replaced."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


class SettingsService:
    """Loads application settings relevant to order import."""

    def __init__(self, settings_path: Path | None = None) -> None:
        self.settings_path = settings_path or CONFIG_FILE

    def load(self) -> dict[str, Any]:
        if not self.settings_path.exists():
            return {}
        try:
            with self.settings_path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except json.JSONDecodeError as exc:
            logger.warning(f"Failed to load settings from {self.settings_path}: {exc}")
            return {}
        except OSError as exc:
            logger.warning(f"Unable to read settings file {self.settings_path}: {exc}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring settings file {self.settings_path}: expected an object")
            return {}
        return data

    @staticmethod
    def coerce_bool(value: Any, default: bool = False) -> bool:
        if value is None:
            return default
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "on"}
        return bool(value)

    @staticmethod
    def clamp_int(value: Any, *, default: int, minimum: int, maximum: int) -> int:
        try:
            number = int(float(value))
        except (TypeError, ValueError):
            number = default
        return max(minimum, min(number, maximum))

    @staticmethod
    def coerce_float(value: Any, *, default: float, minimum: float) -> float:
        try:
            number = float(value)
        except (TypeError, ValueError):
            return default
        return number if number >= minimum else default

    def build_settings(self, raw: dict[str, Any]) -> ImportSettings:
        """Turn a raw settings mapping into a validated ImportSettings snapshot."""
        defaults = ImportSettings()
        # Older config files nest PDF/card options; only the bleed flag is read here
        bleed_raw = raw.get("global_bleed_enabled", raw.get("GlobalBleedEnabled"))
        url = raw.get("image_service_url")
        if not isinstance(url, str) or not url.strip():
            url = defaults.image_service_url
        cache_dir = raw.get("cache_dir")
        normalize_format = str(raw.get("normalize_format", defaults.normalize_format)).upper()
        if normalize_format not in _ENCODE_FORMATS:
            logger.warning(f"Unknown normalize_format {normalize_format!r}; using JPEG")
            normalize_format = defaults.normalize_format

        return ImportSettings(
            global_bleed_enabled=self.coerce_bool(bleed_raw, defaults.global_bleed_enabled),
            image_service_url=url.strip(),
            max_workers=self.clamp_int(
                raw.get("max_workers", defaults.max_workers),
                default=defaults.max_workers,
                minimum=MIN_WORKERS,
                maximum=MAX_WORKERS_LIMIT,
            ),
            request_timeout=self.coerce_float(
                raw.get("request_timeout", defaults.request_timeout),
                default=defaults.request_timeout,
                minimum=1.0,
            ),
            use_image_cache=self.coerce_bool(raw.get("use_image_cache"), defaults.use_image_cache),
            cache_dir=Path(cache_dir) if cache_dir else defaults.cache_dir,
            normalize_images=self.coerce_bool(
                raw.get("normalize_images"), defaults.normalize_images
            ),
            normalize_format=normalize_format,
            normalize_quality=self.clamp_int(
                raw.get("normalize_quality", defaults.normalize_quality),
                default=defaults.normalize_quality,
                minimum=1,
                maximum=95,
            ),
        )

    def load_settings(self) -> ImportSettings:
        settings = self.build_settings(self.load())
        logger.info(
            "Loaded import settings (global bleed={}, workers={}, cache={})",
            settings.global_bleed_enabled,
            settings.max_workers,
            settings.use_image_cache,
        )
        return settings


__all__ = ["ImportSettings", "SettingsService"]
