"""
Error types raised by the Flashdeck core.

Pure computations only raise ValidationError on malformed input. Everything
caused by the store (missing records, timeouts, connection failures) is raised
from the store boundary and propagates unchanged to the caller.
"""


class FlashdeckError(Exception):
    """Base class for all Flashdeck errors."""


class ValidationError(FlashdeckError, ValueError):
    """Input is structurally invalid and was rejected before any store call."""


class DeckCycleError(ValidationError):
    """Re-parenting a deck would make it its own ancestor."""


class DeckHasSubdecks(ValidationError):
    """A deck with sub-decks cannot be deleted under the blocking policy."""


class NotFound(FlashdeckError, LookupError):
    """A referenced deck or flashcard does not exist in the store."""


class StoreUnavailable(FlashdeckError):
    """The store failed or timed out. Retryable at the caller's discretion."""


class ConcurrentUpdate(StoreUnavailable):
    """The record changed in the store between read and write."""


class InvariantViolation(FlashdeckError):
    """An operation was attempted in a state that does not allow it."""
