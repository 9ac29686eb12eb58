"""Tests for the Card entity."""

from __future__ import annotations

import pytest
from test_helpers import make_image_bytes

from utils.card import Card, ResolutionState
from utils.errors import TransientFetchError, UnsupportedImageFormatError
from utils.image_codec import BitmapCache, get_bitmap_cache


def test_defaults():
    card = Card("abc")

    assert card.name == "Unknown"
    assert card.description == "No Description"
    assert card.query == "Default Query"
    assert (card.width, card.height) == (83, 118)
    assert card.image_data == b""
    assert card.state is ResolutionState.DRAFT
    assert card.image_downloaded is False
    assert card.bitmap is None


def test_empty_id_rejected():
    with pytest.raises(ValueError):
        Card("  ")


def test_id_is_read_only():
    card = Card("abc")

    with pytest.raises(AttributeError):
        card.card_id = "other"


def test_equality_uses_id_case_insensitively():
    assert Card("ABC", "One") == Card("abc", "Two")
    assert Card("abc") != Card("abd")
    assert len({Card("ABC"), Card("abc")}) == 1


def test_card_built_with_bytes_counts_as_downloaded():
    card = Card("abc", image_data=make_image_bytes())

    assert card.state is ResolutionState.RESOLVED
    assert card.image_downloaded is True


def test_bitmap_is_cached_until_bytes_change():
    cache = BitmapCache()
    card = Card("abc", image_data=make_image_bytes(color=(255, 0, 0, 255)), bitmap_cache=cache)

    first = card.bitmap
    assert card.bitmap is first
    assert cache.misses == 1

    card.image_data = make_image_bytes(color=(0, 0, 255, 255))
    second = card.bitmap

    assert second is not first
    assert second.pixels[:4] == bytes((0, 0, 255, 255))
    assert cache.misses == 2


def test_clearing_bytes_clears_bitmap():
    card = Card("abc", image_data=make_image_bytes(), bitmap_cache=BitmapCache())
    assert card.bitmap is not None

    card.image_data = None

    assert card.image_fingerprint is None
    assert card.bitmap is None


def test_undecodable_bytes_keep_card_usable():
    card = Card("abc", name="Broken", image_data=b"not an image", bitmap_cache=BitmapCache())

    with pytest.raises(UnsupportedImageFormatError):
        _ = card.bitmap
    assert card.image_data == b"not an image"
    assert card.name == "Broken"


def test_state_transitions():
    card = Card("abc")
    card.mark_fetching()
    assert card.state is ResolutionState.FETCHING

    error = TransientFetchError("timed out", "abc")
    card.mark_failed(error)
    assert card.is_failed
    assert card.failure_reason == "timed out"
    assert card.last_error is error
    assert card.image_downloaded is False

    card.mark_fetching()
    card.mark_resolved(b"bytes")
    assert card.state is ResolutionState.RESOLVED
    assert card.failure_reason is None
    assert card.image_downloaded is True


def test_injected_bitmap_cache_is_used_even_when_empty():
    injected = BitmapCache()
    card = Card("abc", image_data=make_image_bytes(), bitmap_cache=injected)

    assert card.bitmap is not None

    assert len(injected) == 1
    assert injected.misses == 1
    assert len(get_bitmap_cache()) == 0


def test_card_without_injected_cache_uses_shared_cache():
    card = Card("abc", image_data=make_image_bytes())

    assert card.bitmap is not None

    assert len(get_bitmap_cache()) == 1
