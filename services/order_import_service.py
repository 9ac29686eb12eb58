"""
Order Import Service - Business logic for importing MPC Fill orders.

This module handles:
- Parsing order XML (from text or file) into drafts
- Wiring the image fetcher, local cache and optional normalization
- Resolving drafts into a CardCollection in document order
- Retrying cards whose failure is transient
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import Any

from loguru import logger

from repositories.card_collection import CardCollection
from services.card_resolver import (
    CardResolver,
    ProgressCallback,
    ResolutionReport,
    ResolutionStatus,
)
from services.settings_service import ImportSettings
from utils.card import Card
from utils.card_images import CachedImageFetcher, CardImageCache, ImageFetcher, MpcImageFetcher
from utils.image_codec import normalize_card_image
from utils.order_xml import Order, ParsedOrder, load_order_file, parse_order_xml


@dataclass
class ImportResult:
    order: Order
    collection: CardCollection
    report: ResolutionReport = field(default_factory=ResolutionReport)

    @property
    def status(self) -> ResolutionStatus:
        return self.report.status

    @property
    def failed_cards(self) -> list[Card]:
        return [card for card in self.collection if card.is_failed]

    def summary(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "cards": len(self.collection),
            "resolved": sum(1 for card in self.collection if card.image_downloaded),
            "failed": len(self.failed_cards),
            "skipped": len(self.report.skipped),
            "unfinished": len(self.report.unfinished),
        }


class OrderImportService:
    """Service for turning MPC Fill order documents into card collections."""

    def __init__(
        self,
        settings: ImportSettings | None = None,
        fetcher: ImageFetcher | None = None,
    ):
        """
        Initialize the import service.

        Args:
            settings: Configuration snapshot. Defaults to ImportSettings().
            fetcher: Image fetcher. If None, builds one from settings.
        """
        self.settings = settings or ImportSettings()
        self.fetcher = fetcher or self._build_fetcher(self.settings)
        normalizer = None
        if self.settings.normalize_images:
            normalizer = partial(
                normalize_card_image,
                fmt=self.settings.normalize_format,
                quality=self.settings.normalize_quality,
            )
        self.resolver = CardResolver(
            self.fetcher,
            default_bleed=self.settings.global_bleed_enabled,
            max_workers=self.settings.max_workers,
            normalizer=normalizer,
        )

    @staticmethod
    def _build_fetcher(settings: ImportSettings) -> ImageFetcher:
        fetcher: ImageFetcher = MpcImageFetcher(
            base_url=settings.image_service_url, timeout=settings.request_timeout
        )
        if not settings.use_image_cache:
            return fetcher
        try:
            cache = CardImageCache(cache_dir=settings.cache_dir)
        except OSError as exc:
            logger.warning(f"Image cache disabled; unable to use {settings.cache_dir}: {exc}")
            return fetcher
        return CachedImageFetcher(fetcher, cache)

    # ============= Import =============

    def import_parsed(
        self,
        parsed: ParsedOrder,
        *,
        collection: CardCollection | None = None,
        cancel_event: threading.Event | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> ImportResult:
        """Resolve already-parsed drafts and append them to a collection."""
        target = collection if collection is not None else CardCollection()
        report = self.resolver.resolve(
            parsed.cards, cancel_event=cancel_event, progress_callback=progress_callback
        )
        added = target.add_range(report.cards)
        if added != len(report.cards):
            skipped = len(report.cards) - added
            logger.warning(f"{skipped} cards already present in the collection were skipped")
        result = ImportResult(order=parsed.order, collection=target, report=report)
        logger.info("Order import finished: {}", result.summary())
        return result

    def import_xml(
        self,
        xml_content: str | bytes,
        *,
        collection: CardCollection | None = None,
        cancel_event: threading.Event | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> ImportResult:
        """
        Import an order from XML text.

        Raises:
            MalformedInputError: If the document is unusable; nothing is imported
        """
        parsed = parse_order_xml(xml_content)
        logger.info(
            f"Importing order: {len(parsed.cards)} cards, quantity={parsed.order.quantity}, "
            f"stock={parsed.order.stock!r}"
        )
        return self.import_parsed(
            parsed,
            collection=collection,
            cancel_event=cancel_event,
            progress_callback=progress_callback,
        )

    def import_file(
        self,
        path: Path | str,
        *,
        collection: CardCollection | None = None,
        cancel_event: threading.Event | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> ImportResult:
        """Import an order from an XML file on disk."""
        parsed = load_order_file(path)
        return self.import_parsed(
            parsed,
            collection=collection,
            cancel_event=cancel_event,
            progress_callback=progress_callback,
        )

    # ============= Retry =============

    def re_resolve(self, card: Card) -> Card:
        return self.resolver.re_resolve(card)

    def retry_failed(self, collection: CardCollection) -> list[Card]:
        """
        Re-resolve failed cards whose last error is retryable.

        Returns:
            Cards that resolved on retry
        """
        recovered: list[Card] = []
        for card in collection.failed_cards():
            if not getattr(card.last_error, "retryable", False):
                logger.debug(f"Not retrying {card.card_id}: {card.failure_reason}")
                continue
            self.resolver.re_resolve(card)
            if card.image_downloaded:
                recovered.append(card)
        logger.info(f"Retry recovered {len(recovered)} cards")
        return recovered


# Shared default instance
_default_service: OrderImportService | None = None


def get_order_import_service(settings: ImportSettings | None = None) -> OrderImportService:
    """Get the default order import service instance."""
    global _default_service
    if _default_service is None:
        _default_service = OrderImportService(settings)
    return _default_service


def reset_order_import_service() -> None:
    """
    Reset the global order import service instance.

    This is primarily useful for testing to ensure test isolation
    and prevent state leakage between tests.
    """
    global _default_service
    _default_service = None


__all__ = [
    "ImportResult",
    "OrderImportService",
    "get_order_import_service",
    "reset_order_import_service",
]
