"""Tests for the order import service."""

from __future__ import annotations

import io

import pytest
from PIL import Image
from test_helpers import FakeFetcher, build_order_xml, make_image_bytes

from repositories.card_collection import CardCollection
from services.order_import_service import (
    OrderImportService,
    get_order_import_service,
    reset_order_import_service,
)
from services.settings_service import ImportSettings
from utils.card import Card
from utils.card_images import CachedImageFetcher, MpcImageFetcher
from utils.errors import CorruptResponseError, MalformedInputError, TransientFetchError

TWO_CARD_ORDER = build_order_xml(
    [
        {"id": "1abc", "name": "Island.png", "bleedchecked": "true"},
        {"id": "2def", "name": "Forest.png"},
    ],
    quantity="2",
    bracket="18",
    stock="(S30) Standard Smooth",
    foil="false",
)


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def service(fetcher) -> OrderImportService:
    return OrderImportService(ImportSettings(global_bleed_enabled=False), fetcher=fetcher)


def test_import_two_card_order(service):
    result = service.import_xml(TWO_CARD_ORDER)

    assert result.order.quantity == 2
    assert result.order.stock == "(S30) Standard Smooth"
    assert [card.card_id for card in result.collection] == ["1abc", "2def"]
    island, forest = result.collection
    assert island.enable_bleed is True
    assert forest.enable_bleed is False
    assert result.summary() == {
        "status": "completed",
        "cards": 2,
        "resolved": 2,
        "failed": 0,
        "skipped": 0,
        "unfinished": 0,
    }


def test_global_bleed_default_applies_to_unflagged_cards(fetcher):
    service = OrderImportService(ImportSettings(global_bleed_enabled=True), fetcher=fetcher)

    result = service.import_xml(TWO_CARD_ORDER)

    assert [card.enable_bleed for card in result.collection] == [True, True]


@pytest.mark.parametrize(
    "content",
    ["", "<order><quantity>1</quantity></order>", "<order><fronts>"],
)
def test_malformed_input_imports_nothing(service, fetcher, content):
    collection = CardCollection([Card("existing")])

    with pytest.raises(MalformedInputError):
        service.import_xml(content, collection=collection)

    assert collection.ids() == ["existing"]
    assert fetcher.calls == []


def test_import_appends_to_existing_collection(service):
    collection = CardCollection([Card("0aaa"), Card("1ABC")])
    notifications = []
    collection.subscribe(notifications.append)

    result = service.import_xml(TWO_CARD_ORDER, collection=collection)

    assert result.collection is collection
    assert collection.ids() == ["0aaa", "1ABC", "2def"]
    assert len(notifications) == 1


def test_failed_card_stays_in_collection(fetcher, service):
    fetcher.errors["2def"] = TransientFetchError("503", "2def", status_code=503)

    result = service.import_xml(TWO_CARD_ORDER)

    assert len(result.collection) == 2
    assert [card.card_id for card in result.failed_cards] == ["2def"]
    assert result.summary()["failed"] == 1


def test_import_file(service, tmp_path):
    path = tmp_path / "order.xml"
    path.write_text(TWO_CARD_ORDER, encoding="utf-8")

    result = service.import_file(path)

    assert len(result.collection) == 2


def test_import_file_missing(service, tmp_path):
    with pytest.raises(FileNotFoundError):
        service.import_file(tmp_path / "nope.xml")


def test_retry_failed_only_retries_transient_errors(fetcher, service):
    fetcher.errors["1abc"] = TransientFetchError("timeout", "1abc")
    fetcher.errors["2def"] = CorruptResponseError("garbled", "2def")
    result = service.import_xml(TWO_CARD_ORDER)
    fetcher.errors.clear()
    fetcher.calls.clear()

    recovered = service.retry_failed(result.collection)

    assert [card.card_id for card in recovered] == ["1abc"]
    assert fetcher.calls == ["1abc"]
    assert result.collection.find_by_id("2def").is_failed


def test_normalization_resizes_images(fetcher):
    fetcher.default = make_image_bytes(size=(10, 14))
    settings = ImportSettings(normalize_images=True, normalize_format="PNG")
    service = OrderImportService(settings, fetcher=fetcher)

    result = service.import_xml(build_order_xml([{"id": "a"}]))

    with Image.open(io.BytesIO(result.collection.get(0).image_data)) as image:
        assert image.size == (1500, 2100)


def test_builds_cached_network_fetcher(tmp_path):
    service = OrderImportService(ImportSettings(cache_dir=tmp_path / "cache"))

    assert isinstance(service.fetcher, CachedImageFetcher)
    assert isinstance(service.fetcher.fetcher, MpcImageFetcher)


def test_cache_can_be_disabled(tmp_path):
    service = OrderImportService(ImportSettings(use_image_cache=False, cache_dir=tmp_path))

    assert isinstance(service.fetcher, MpcImageFetcher)


def test_default_service_singleton(tmp_path):
    settings = ImportSettings(cache_dir=tmp_path)
    first = get_order_import_service(settings)

    assert get_order_import_service() is first
    reset_order_import_service()
    assert get_order_import_service(settings) is not first
