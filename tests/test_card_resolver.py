"""Tests for concurrent card resolution."""

from __future__ import annotations

import threading
import time

import pytest
from test_helpers import FakeFetcher, make_image_bytes

from services.card_resolver import CardResolver, ResolutionStatus
from utils.card import ResolutionState
from utils.errors import CorruptResponseError, TransientFetchError, UnsupportedImageFormatError
from utils.order_xml import CardSpec


def spec(card_id: str, name: str | None = None, bleed: bool | None = None, **kwargs) -> CardSpec:
    return CardSpec(
        name=name or f"Card {card_id}",
        card_id=card_id,
        description=kwargs.get("description", "No Description"),
        query=kwargs.get("query", "Default Query"),
        bleed_checked=bleed,
        has_identifier=kwargs.get("has_identifier", True),
    )


class SlowFetcher(FakeFetcher):
    """Delays selected ids so completion order differs from submission order."""

    def __init__(self, delays: dict[str, float], **kwargs):
        super().__init__(**kwargs)
        self.delays = delays

    def fetch(self, card_id: str) -> bytes:
        time.sleep(self.delays.get(card_id, 0))
        return super().fetch(card_id)


def test_cards_follow_draft_order_regardless_of_completion():
    ids = ["001", "002", "003", "004"]
    fetcher = SlowFetcher({"001": 0.2, "002": 0.1})
    resolver = CardResolver(fetcher, max_workers=4)

    report = resolver.resolve([spec(card_id) for card_id in ids])

    assert [card.card_id for card in report.cards] == ids
    assert report.status is ResolutionStatus.COMPLETED
    assert all(card.image_downloaded for card in report.cards)


def test_card_fields_come_from_draft():
    data = make_image_bytes()
    resolver = CardResolver(FakeFetcher(images={"001": data}))

    report = resolver.resolve([spec("001", "Island.png", description="Basic", query="island")])

    card = report.cards[0]
    assert (card.name, card.description, card.query) == ("Island.png", "Basic", "island")
    assert card.image_data == data
    assert card.state is ResolutionState.RESOLVED


def test_one_failure_does_not_affect_siblings():
    fetcher = FakeFetcher(errors={"002": TransientFetchError("timeout", "002")})
    resolver = CardResolver(fetcher)

    report = resolver.resolve([spec("001"), spec("002"), spec("003")])

    assert [card.card_id for card in report.cards] == ["001", "002", "003"]
    assert [card.card_id for card in report.resolved] == ["001", "003"]
    failed = report.failed[0]
    assert failed.card_id == "002"
    assert failed.image_data == b""
    assert failed.failure_reason == "timeout"
    assert report.status is ResolutionStatus.COMPLETED


def test_unexpected_fetch_error_is_contained():
    fetcher = FakeFetcher(errors={"001": RuntimeError("boom")})
    report = CardResolver(fetcher).resolve([spec("001"), spec("002")])

    assert report.cards[0].is_failed
    assert report.cards[1].image_downloaded


@pytest.mark.parametrize(
    ("draft_bleed", "default", "expected"),
    [(None, False, False), (None, True, True), (True, False, True), (False, True, False)],
)
def test_bleed_flag(draft_bleed, default, expected):
    resolver = CardResolver(FakeFetcher(), default_bleed=default)

    report = resolver.resolve([spec("001", bleed=draft_bleed)])

    assert report.cards[0].enable_bleed is expected


def test_drafts_without_id_or_with_duplicate_id_are_skipped():
    fetcher = FakeFetcher()
    drafts = [
        spec("Unknown", "Nameless", has_identifier=False),
        spec("001"),
        spec("001", "Again"),
        spec("002"),
    ]

    report = CardResolver(fetcher).resolve(drafts)

    assert [card.card_id for card in report.cards] == ["001", "002"]
    assert [skipped.spec.name for skipped in report.skipped] == ["Nameless", "Again"]
    assert sorted(fetcher.calls) == ["001", "002"]


def test_empty_draft_list():
    report = CardResolver(FakeFetcher()).resolve([])

    assert report.cards == []
    assert report.status is ResolutionStatus.COMPLETED


def test_progress_reports_parse_step_then_each_card():
    steps = []
    resolver = CardResolver(FakeFetcher(), max_workers=1)

    resolver.resolve(
        [spec("001"), spec("002")],
        progress_callback=lambda p: steps.append(
            (p.current_step, p.total_steps, p.current_operation, p.percentage_complete)
        ),
    )

    assert [(step, total) for step, total, _, _ in steps] == [(1, 3), (2, 3), (3, 3)]
    assert steps[0][2] == "Parsed 2 cards"
    assert steps[-1][2].startswith("Loaded image for")
    assert steps[-1][3] == pytest.approx(100.0)


def test_failing_progress_callback_does_not_abort():
    def explode(_progress):
        raise RuntimeError("ui gone")

    report = CardResolver(FakeFetcher()).resolve([spec("001")], progress_callback=explode)

    assert report.cards[0].image_downloaded


def test_cancel_before_start_returns_partial_with_nothing_resolved():
    fetcher = FakeFetcher()
    cancel = threading.Event()
    cancel.set()

    report = CardResolver(fetcher).resolve([spec("001"), spec("002")], cancel_event=cancel)

    assert report.status is ResolutionStatus.PARTIALLY_RESOLVED
    assert report.cards == []
    assert [draft.card_id for draft in report.unfinished] == ["001", "002"]
    assert fetcher.calls == []


def test_cancel_mid_run_keeps_finished_cards():
    cancel = threading.Event()
    release = threading.Event()

    class BlockingFetcher(FakeFetcher):
        def fetch(self, card_id: str) -> bytes:
            if card_id == "002":
                cancel.set()
                release.wait(timeout=5)
            return super().fetch(card_id)

    resolver = CardResolver(BlockingFetcher(), max_workers=1)
    try:
        report = resolver.resolve([spec("001"), spec("002"), spec("003")], cancel_event=cancel)
    finally:
        release.set()

    assert report.is_partial
    assert [card.card_id for card in report.cards] == ["001"]
    assert report.cards[0].image_downloaded
    assert [draft.card_id for draft in report.unfinished] == ["002", "003"]


def test_normalizer_applied_to_fetched_bytes():
    resolver = CardResolver(FakeFetcher(default=b"raw"), normalizer=lambda data: data + b"!")

    report = resolver.resolve([spec("001")])

    assert report.cards[0].image_data == b"raw!"


def test_normalizer_failure_keeps_original_bytes():
    def reject(_data):
        raise UnsupportedImageFormatError("bad")

    resolver = CardResolver(FakeFetcher(default=b"raw"), normalizer=reject)

    report = resolver.resolve([spec("001")])

    assert report.cards[0].image_data == b"raw"
    assert report.cards[0].image_downloaded


def test_re_resolve_replaces_failure():
    fetcher = FakeFetcher(errors={"001": TransientFetchError("down", "001")})
    resolver = CardResolver(fetcher)
    card = resolver.resolve([spec("001")]).cards[0]
    assert card.is_failed

    del fetcher.errors["001"]
    resolver.re_resolve(card)

    assert card.image_downloaded
    assert card.failure_reason is None


def test_re_resolve_records_new_failure():
    fetcher = FakeFetcher()
    resolver = CardResolver(fetcher)
    card = resolver.resolve([spec("001")]).cards[0]

    fetcher.errors["001"] = CorruptResponseError("garbled", "001")
    resolver.re_resolve(card)

    assert card.is_failed
    assert card.image_data == b""
    assert isinstance(card.last_error, CorruptResponseError)


def test_rejects_non_positive_worker_count():
    with pytest.raises(ValueError):
        CardResolver(FakeFetcher(), max_workers=0)


def test_cancel_counts_finished_cards_in_progress():
    cancel = threading.Event()
    release = threading.Event()
    abandoned_done = threading.Event()
    steps = []

    class CancellingFetcher(FakeFetcher):
        def fetch(self, card_id: str) -> bytes:
            if card_id == "001":
                cancel.set()
            else:
                release.wait(timeout=5)
                abandoned_done.set()
            return super().fetch(card_id)

    resolver = CardResolver(CancellingFetcher(), max_workers=1)
    try:
        report = resolver.resolve(
            [spec("001"), spec("002")],
            cancel_event=cancel,
            progress_callback=lambda p: steps.append(p.current_step),
        )
    finally:
        release.set()

    assert [card.card_id for card in report.cards] == ["001"]
    assert steps[-1] == 2

    # The abandoned fetch finishes in the background without touching the report
    assert abandoned_done.wait(timeout=5)
    assert [card.card_id for card in report.cards] == ["001"]
    assert report.unfinished == [spec("002")]
