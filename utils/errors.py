"""Exception types raised while importing an MPC Fill order."""

from __future__ import annotations

__all__ = [
    "OrderImportError",
    "MalformedInputError",
    "CardResolutionError",
    "InvalidRequestError",
    "TransientFetchError",
    "CorruptResponseError",
    "UnsupportedImageFormatError",
    "CardIndexError",
]


class OrderImportError(Exception):
    """Base class for every error raised by the order import pipeline."""


class MalformedInputError(OrderImportError, ValueError):
    """The order XML is empty, unparsable, or missing a required section."""


class CardResolutionError(OrderImportError):
    """A single card could not be resolved; never aborts the whole import."""

    retryable = False

    def __init__(self, message: str, card_id: str | None = None) -> None:
        super().__init__(message)
        self.card_id = card_id


class InvalidRequestError(CardResolutionError, ValueError):
    """The card identifier cannot be turned into a request."""


class TransientFetchError(CardResolutionError):
    """Network or HTTP failure while talking to the image service."""

    retryable = True

    def __init__(
        self,
        message: str,
        card_id: str | None = None,
        cause: BaseException | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, card_id)
        self.cause = cause
        self.status_code = status_code


class CorruptResponseError(CardResolutionError):
    """The service answered, but the body is not valid base64 image data."""


class UnsupportedImageFormatError(OrderImportError, ValueError):
    """Bytes are empty or not a raster format Pillow can read."""


class CardIndexError(IndexError):
    """Positional access outside the bounds of a card collection."""
