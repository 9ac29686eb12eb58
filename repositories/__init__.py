"""
Repositories package - Data access layer.

This package contains the in-memory card collection that owns resolved cards
and hands them to layout and export code.
"""

from repositories.card_collection import CardCollection, CollectionChange

__all__ = [
    "CardCollection",
    "CollectionChange",
]
