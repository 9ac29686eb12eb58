"""
Card Resolver - turns parsed card drafts into resolved cards.

Each draft is fetched independently on a bounded thread pool. A failing
fetch marks only that card as failed; the card still takes its slot so the
resolved list lines up with the order document. Results are collected into
an index-addressed buffer and returned in draft order, whatever order the
fetches finish in.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Sequence
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum

from loguru import logger

from utils.card import Card
from utils.card_images import ImageFetcher
from utils.constants import MAX_WORKERS
from utils.errors import CardResolutionError, UnsupportedImageFormatError
from utils.order_xml import CardSpec

CANCEL_POLL_SECONDS = 0.1


class ResolutionStatus(str, Enum):
    COMPLETED = "completed"
    PARTIALLY_RESOLVED = "partially_resolved"


@dataclass
class ResolutionProgress:
    current_step: int = 0
    total_steps: int = 0
    current_operation: str = ""
    current_card_name: str = ""

    @property
    def percentage_complete(self) -> float:
        if self.total_steps <= 0:
            return 0.0
        return self.current_step / self.total_steps * 100


@dataclass(frozen=True)
class SkippedDraft:
    spec: CardSpec
    reason: str


@dataclass
class ResolutionReport:
    """Outcome of resolving one list of drafts."""

    cards: list[Card] = field(default_factory=list)
    skipped: list[SkippedDraft] = field(default_factory=list)
    unfinished: list[CardSpec] = field(default_factory=list)
    status: ResolutionStatus = ResolutionStatus.COMPLETED

    @property
    def resolved(self) -> list[Card]:
        return [card for card in self.cards if card.image_downloaded]

    @property
    def failed(self) -> list[Card]:
        return [card for card in self.cards if card.is_failed]

    @property
    def is_partial(self) -> bool:
        return self.status is ResolutionStatus.PARTIALLY_RESOLVED


ProgressCallback = Callable[[ResolutionProgress], None]
Normalizer = Callable[[bytes], bytes]


class CardResolver:
    """Fetches card images concurrently and builds Card entities."""

    def __init__(
        self,
        fetcher: ImageFetcher,
        *,
        default_bleed: bool = False,
        max_workers: int = MAX_WORKERS,
        normalizer: Normalizer | None = None,
    ):
        """
        Args:
            fetcher: Object with ``fetch(card_id) -> bytes``
            default_bleed: Bleed flag for drafts that do not carry their own
            max_workers: Upper bound on simultaneous fetches
            normalizer: Optional transform applied to fetched bytes
        """
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.fetcher = fetcher
        self.default_bleed = default_bleed
        self.max_workers = max_workers
        self.normalizer = normalizer

    # ============= Single Card =============

    def build_card(self, spec: CardSpec) -> Card:
        """Create the unresolved Card for a draft, applying the bleed default."""
        return Card(
            spec.card_id,
            spec.name,
            description=spec.description,
            query=spec.query,
            enable_bleed=spec.resolve_bleed(self.default_bleed),
        )

    def _fetch_into(self, card: Card) -> Card:
        card.mark_fetching()
        try:
            data = self.fetcher.fetch(card.card_id)
        except CardResolutionError as exc:
            logger.warning(f"Failed to resolve {card.name} ({card.card_id}): {exc}")
            card.mark_failed(exc)
            return card

        if self.normalizer is not None:
            try:
                data = self.normalizer(data)
            except UnsupportedImageFormatError as exc:
                logger.warning(
                    f"Keeping original bytes for {card.card_id}; normalize failed: {exc}"
                )
        card.mark_resolved(data)
        logger.debug(f"Resolved {card.name} ({card.card_id}, {len(data)} bytes)")
        return card

    def re_resolve(self, card: Card) -> Card:
        """Fetch a card again, replacing its bytes or recording the new failure."""
        logger.info(f"Re-resolving {card.name} ({card.card_id})")
        try:
            return self._fetch_into(card)
        except Exception as exc:
            logger.exception(f"Unexpected error re-resolving {card.card_id}")
            card.mark_failed(exc)
            return card

    # ============= Batch =============

    def _partition(self, specs: Sequence[CardSpec]) -> tuple[list[CardSpec], list[SkippedDraft]]:
        valid: list[CardSpec] = []
        skipped: list[SkippedDraft] = []
        seen: set[str] = set()
        for spec in specs:
            if not spec.has_identifier or not spec.card_id.strip():
                logger.warning(f"Skipping card {spec.name!r}: missing id")
                skipped.append(SkippedDraft(spec, "missing id"))
                continue
            key = spec.card_id.casefold()
            if key in seen:
                logger.warning(f"Skipping card {spec.name!r}: duplicate id {spec.card_id}")
                skipped.append(SkippedDraft(spec, f"duplicate id {spec.card_id}"))
                continue
            seen.add(key)
            valid.append(spec)
        return valid, skipped

    def resolve(
        self,
        specs: Sequence[CardSpec],
        *,
        cancel_event: threading.Event | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> ResolutionReport:
        """
        Resolve drafts into cards.

        Args:
            specs: Drafts in document order
            cancel_event: When set, queued fetches are cancelled and the cards
                finished so far are returned. Fetches already running are not
                waited for; they finish in the background on Card objects that
                are not part of the report, and their drafts are listed in
                ``unfinished``.
            progress_callback: Receives a ResolutionProgress after parsing and per card

        Returns:
            ResolutionReport whose ``cards`` follow draft order
        """
        valid, skipped = self._partition(specs)
        total = len(valid)
        progress = ResolutionProgress(
            current_step=1,
            total_steps=total + 1,
            current_operation=f"Parsed {total} cards",
        )
        self._report(progress_callback, progress)

        cards = [self.build_card(spec) for spec in valid]
        results: list[Card | None] = [None] * total
        cancelled = False

        if total:
            logger.info(f"Resolving {total} cards with {min(self.max_workers, total)} workers")
            executor = ThreadPoolExecutor(
                max_workers=min(self.max_workers, total), thread_name_prefix="card-fetch"
            )
            try:
                cancelled = self._run(
                    executor, cards, results, cancel_event, progress, progress_callback
                )
            finally:
                executor.shutdown(wait=not cancelled, cancel_futures=True)

        report = ResolutionReport(skipped=skipped)
        for index, card in enumerate(results):
            if card is not None:
                report.cards.append(card)
            else:
                report.unfinished.append(valid[index])
        if cancelled:
            report.status = ResolutionStatus.PARTIALLY_RESOLVED
            logger.info(
                f"Resolution cancelled: {len(report.cards)} of {total} cards kept, "
                f"{len(report.unfinished)} abandoned"
            )
        else:
            logger.info(
                f"Resolution complete: {len(report.resolved)} resolved, "
                f"{len(report.failed)} failed, {len(skipped)} skipped"
            )
        return report

    def _run(
        self,
        executor: ThreadPoolExecutor,
        cards: list[Card],
        results: list[Card | None],
        cancel_event: threading.Event | None,
        progress: ResolutionProgress,
        progress_callback: ProgressCallback | None,
    ) -> bool:
        """Drive the futures; returns True when the run was cancelled."""
        pending: dict[Future[Card], int] = {}
        for index, card in enumerate(cards):
            if cancel_event is not None and cancel_event.is_set():
                break
            pending[executor.submit(self._fetch_into, card)] = index

        while pending:
            if cancel_event is not None and cancel_event.is_set():
                # Keep anything that already finished; abandon the rest
                for future in [f for f in pending if f.done()]:
                    card = self._collect(future, pending.pop(future), cards, results)
                    self._advance(progress, card, progress_callback)
                for future in pending:
                    future.cancel()
                return True

            done, _ = wait(pending, timeout=CANCEL_POLL_SECONDS, return_when=FIRST_COMPLETED)
            for future in done:
                index = pending.pop(future)
                card = self._collect(future, index, cards, results)
                self._advance(progress, card, progress_callback)

        return None in results

    def _advance(
        self, progress: ResolutionProgress, card: Card, callback: ProgressCallback | None
    ) -> None:
        progress.current_step += 1
        progress.current_card_name = card.name
        progress.current_operation = f"Loaded image for {card.name}"
        self._report(callback, progress)

    @staticmethod
    def _collect(
        future: Future[Card], index: int, cards: list[Card], results: list[Card | None]
    ) -> Card:
        card = cards[index]
        try:
            future.result()
        except Exception as exc:
            logger.exception(f"Unexpected error resolving {card.card_id}")
            card.mark_failed(exc)
        results[index] = card
        return card

    @staticmethod
    def _report(callback: ProgressCallback | None, progress: ResolutionProgress) -> None:
        if callback is None:
            return
        try:
            callback(progress)
        except Exception:
            logger.exception("Progress callback failed")


__all__ = [
    "CardResolver",
    "ResolutionProgress",
    "ResolutionReport",
    "ResolutionStatus",
    "SkippedDraft",
]
