"""
Card Collection - ordered, identity-indexed container of resolved cards.

Insertion order is print order. Card ids are unique (case-insensitive);
adding a card whose id is already present is rejected, never duplicated.
Listeners registered with ``subscribe`` receive one ``CollectionChange`` per
mutation call, so a bulk ``add_range`` produces a single notification.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field

from loguru import logger

from utils.card import Card
from utils.errors import CardIndexError

ADD = "add"
REMOVE = "remove"
RESET = "reset"


@dataclass(frozen=True)
class CollectionChange:
    action: str
    cards: tuple[Card, ...] = field(default_factory=tuple)


CollectionListener = Callable[[CollectionChange], None]


class CardCollection:
    """Ordered card set keyed by card id."""

    def __init__(self, cards: Iterable[Card] | None = None):
        self._cards: list[Card] = []
        self._index: dict[str, Card] = {}
        self._listeners: list[CollectionListener] = []
        if cards:
            self._insert_many(cards)

    # ============= Notifications =============

    def subscribe(self, listener: CollectionListener) -> Callable[[], None]:
        """Register a change listener; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, action: str, cards: Iterable[Card] = ()) -> None:
        change = CollectionChange(action=action, cards=tuple(cards))
        for listener in list(self._listeners):
            listener(change)

    # ============= Mutation =============

    def _insert_many(self, cards: Iterable[Card]) -> list[Card]:
        inserted: list[Card] = []
        for card in cards:
            if card is None:
                raise ValueError("Card cannot be None")
            if card.key in self._index:
                logger.warning(f"Skipping duplicate card id {card.card_id}")
                continue
            self._cards.append(card)
            self._index[card.key] = card
            inserted.append(card)
        return inserted

    def add(self, card: Card) -> bool:
        """
        Append a card.

        Returns:
            True if inserted, False if a card with the same id already exists
        """
        if card is None:
            raise ValueError("Card cannot be None")
        if card.key in self._index:
            logger.warning(f"Rejected duplicate card id {card.card_id}")
            return False
        self._cards.append(card)
        self._index[card.key] = card
        self._notify(ADD, (card,))
        return True

    def add_range(self, cards: Iterable[Card]) -> int:
        """
        Append many cards in order with a single notification.

        Duplicates (against the collection or earlier in the batch) are skipped.

        Returns:
            Number of cards inserted
        """
        inserted = self._insert_many(cards)
        if inserted:
            self._notify(RESET, inserted)
        return len(inserted)

    def remove(self, card: Card) -> bool:
        """Remove a card; returns False when it was not in the collection."""
        if card is None:
            raise ValueError("Card cannot be None")
        existing = self._index.pop(card.key, None)
        if existing is None:
            return False
        self._cards.remove(existing)
        self._notify(REMOVE, (existing,))
        return True

    def remove_all(self) -> None:
        self._cards.clear()
        self._index.clear()
        self._notify(RESET)

    def replace(self, card: Card) -> bool:
        """Swap in a card with the same id at its existing position."""
        existing = self._index.get(card.key)
        if existing is None:
            return False
        position = self._cards.index(existing)
        self._cards[position] = card
        self._index[card.key] = card
        self._notify(RESET, (card,))
        return True

    # ============= Lookup =============

    def find_by_id(self, card_id: str) -> Card | None:
        """Case-insensitive lookup; returns None when absent."""
        if not card_id:
            raise ValueError("ID cannot be empty")
        return self._index.get(card_id.casefold())

    def get(self, index: int) -> Card:
        """Positional access; raises CardIndexError when out of bounds."""
        if index < 0 or index >= len(self._cards):
            raise CardIndexError(f"Index {index} is out of range for {len(self._cards)} cards")
        return self._cards[index]

    def index_of(self, card: Card) -> int:
        existing = self._index.get(card.key)
        if existing is None:
            return -1
        return self._cards.index(existing)

    @property
    def count(self) -> int:
        return len(self._cards)

    def failed_cards(self) -> list[Card]:
        return [card for card in self._cards if card.is_failed]

    def ids(self) -> list[str]:
        return [card.card_id for card in self._cards]

    def __getitem__(self, index: int) -> Card:
        return self.get(index)

    def __len__(self) -> int:
        return len(self._cards)

    def __iter__(self) -> Iterator[Card]:
        return iter(list(self._cards))

    def __contains__(self, card: object) -> bool:
        return isinstance(card, Card) and card.key in self._index

    def __repr__(self) -> str:
        return f"CardCollection(count={len(self._cards)})"


__all__ = ["CardCollection", "CollectionChange", "ADD", "REMOVE", "RESET"]
