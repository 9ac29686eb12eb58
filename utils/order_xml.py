"""Parse MPC Fill order XML into an ``Order`` header and card drafts.

Expected layout::

    <order>
      <quantity>18</quantity>
      <bracket>18</bracket>
      <stock>(S30) Standard Smooth</stock>
      <foil>false</foil>
      <fronts>
        <card>
          <id>1AbC...</id>
          <slots>0</slots>
          <name>Island.png</name>
          <query>island</query>
        </card>
      </fronts>
      <cardback>1XyZ...</cardback>
    </order>

Parsing is a pure transform: no network or filesystem access happens here
except in ``load_order_file``, which only reads the document text.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

from utils.constants import (
    DEFAULT_BLEED_CHECKED,
    DEFAULT_BRACKET,
    DEFAULT_CARD_DESCRIPTION,
    DEFAULT_CARD_ID,
    DEFAULT_CARD_NAME,
    DEFAULT_CARD_QUERY,
    DEFAULT_CARDBACK,
    DEFAULT_FOIL,
    DEFAULT_QUANTITY,
    DEFAULT_STOCK,
)
from utils.errors import MalformedInputError

_TRUE_VALUES = {"true", "1", "yes", "on"}
_FALSE_VALUES = {"false", "0", "no", "off"}


@dataclass(frozen=True)
class CardSpec:
    """Unresolved card entry read from ``<fronts>``."""

    name: str = DEFAULT_CARD_NAME
    card_id: str = DEFAULT_CARD_ID
    description: str = DEFAULT_CARD_DESCRIPTION
    query: str = DEFAULT_CARD_QUERY
    # None when the document has no <bleedchecked>; the global default applies later
    bleed_checked: bool | None = None
    has_identifier: bool = True

    def resolve_bleed(self, default_bleed: bool | None = None) -> bool:
        """Return the explicit bleed flag, else the supplied default."""
        if self.bleed_checked is not None:
            return self.bleed_checked
        if default_bleed is not None:
            return default_bleed
        return DEFAULT_BLEED_CHECKED


@dataclass(frozen=True)
class Order:
    """Header metadata for one print job."""

    quantity: int = DEFAULT_QUANTITY
    bracket: int = DEFAULT_BRACKET
    stock: str = DEFAULT_STOCK
    foil: bool = DEFAULT_FOIL
    cardback: str = DEFAULT_CARDBACK


@dataclass(frozen=True)
class ParsedOrder:
    order: Order
    cards: list[CardSpec] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.cards)


def _text(parent: ET.Element, tag: str) -> str | None:
    element = parent.find(tag)
    if element is None:
        return None
    return (element.text or "").strip()


def _parse_bool(raw: str, tag: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise MalformedInputError(f"<{tag}> must be a boolean, got {raw!r}")


def _parse_int(raw: str, tag: str) -> int:
    try:
        return int(raw.strip())
    except ValueError as exc:
        raise MalformedInputError(f"<{tag}> must be an integer, got {raw!r}") from exc


def _parse_order_header(root: ET.Element) -> Order:
    quantity = _text(root, "quantity")
    bracket = _text(root, "bracket")
    stock = _text(root, "stock")
    foil = _text(root, "foil")
    cardback = _text(root, "cardback")
    return Order(
        quantity=_parse_int(quantity, "quantity") if quantity else DEFAULT_QUANTITY,
        bracket=_parse_int(bracket, "bracket") if bracket else DEFAULT_BRACKET,
        stock=stock if stock is not None else DEFAULT_STOCK,
        foil=_parse_bool(foil, "foil") if foil else DEFAULT_FOIL,
        cardback=cardback if cardback is not None else DEFAULT_CARDBACK,
    )


def _parse_card(element: ET.Element) -> CardSpec:
    card_id = _text(element, "id")
    name = _text(element, "name")
    description = _text(element, "description")
    query = _text(element, "query")
    bleed = _text(element, "bleedchecked")
    return CardSpec(
        name=name if name is not None else DEFAULT_CARD_NAME,
        card_id=card_id if card_id else DEFAULT_CARD_ID,
        description=description if description is not None else DEFAULT_CARD_DESCRIPTION,
        query=query if query is not None else DEFAULT_CARD_QUERY,
        bleed_checked=_parse_bool(bleed, "bleedchecked") if bleed else None,
        has_identifier=bool(card_id),
    )


def parse_order_xml(xml_content: str | bytes | None) -> ParsedOrder:
    """
    Parse an MPC Fill order document.

    Args:
        xml_content: Raw XML text (or bytes)

    Returns:
        ParsedOrder holding the ``Order`` header and the card drafts in document order

    Raises:
        MalformedInputError: If the input is blank, not XML, or lacks ``<order>``/``<fronts>``
    """
    if not xml_content or not xml_content.strip():
        raise MalformedInputError("Order XML content cannot be empty")

    try:
        root = ET.fromstring(xml_content)
    except ET.ParseError as exc:
        raise MalformedInputError(f"Order XML could not be parsed: {exc}") from exc

    if root.tag != "order":
        raise MalformedInputError(f"Expected <order> root element, found <{root.tag}>")

    fronts = root.find("fronts")
    if fronts is None:
        raise MalformedInputError("Invalid MPC Fill XML format: missing 'fronts' element")

    order = _parse_order_header(root)
    cards = [_parse_card(element) for element in fronts.findall("card")]
    logger.debug(f"Parsed {len(cards)} cards from order XML")
    return ParsedOrder(order=order, cards=cards)


def load_order_file(path: Path | str) -> ParsedOrder:
    """Read and parse an order XML file from disk."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"XML file not found: {path}")
    logger.info(f"Loading order XML from {path}")
    return parse_order_xml(path.read_bytes())


__all__ = ["CardSpec", "Order", "ParsedOrder", "parse_order_xml", "load_order_file"]
