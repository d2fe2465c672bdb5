"""
Repository module providing abstraction for data persistence.

This module defines the interfaces the core uses to talk to its store,
allowing for swapping out the underlying persistence mechanism as needed.
Store calls are coroutines: a remote store may suspend the caller while a
request is in flight.
"""

import abc
import asyncio
import datetime
import logging
import sqlite3
from contextlib import contextmanager
from typing import Awaitable, Iterator, List, Optional, TypeVar

from flashdeck.database import Database
from flashdeck.errors import StoreUnavailable
from flashdeck.models import CardReviewPatch, Deck, Flashcard

logger = logging.getLogger("flashdeck")

T = TypeVar("T")


async def call_store(awaitable: Awaitable[T], timeout: Optional[float] = None) -> T:
    """
    Await a store call, reporting a timeout as StoreUnavailable.

    Args:
        awaitable: The pending repository call
        timeout: Seconds to wait, or None to wait indefinitely

    Returns:
        Whatever the store call returned
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError:
        logger.error(f"Store call timed out after {timeout} seconds")
        raise StoreUnavailable(f"Store did not respond within {timeout} seconds") from None


@contextmanager
def _store_errors(action: str) -> Iterator[None]:
    try:
        yield
    except sqlite3.Error as e:
        logger.error(f"Store failure while trying to {action}: {e}")
        raise StoreUnavailable(f"Could not {action}: {e}") from e


class BaseRepository(abc.ABC):
    """Abstract base class for repositories."""

    @abc.abstractmethod
    def close(self) -> None:
        """Close any open connections."""
        pass


class DeckRepository(BaseRepository):
    """Repository for Deck-related operations."""

    @abc.abstractmethod
    async def create(self, deck: Deck) -> Deck:
        """Create a new deck."""
        pass

    @abc.abstractmethod
    async def get(self, deck_id: str) -> Optional[Deck]:
        """Get a deck by ID."""
        pass

    @abc.abstractmethod
    async def update(self, deck: Deck) -> Deck:
        """Update an existing deck."""
        pass

    @abc.abstractmethod
    async def delete(self, deck_id: str) -> bool:
        """Delete a deck by ID, together with its flashcards."""
        pass

    @abc.abstractmethod
    async def delete_many(self, deck_ids: List[str]) -> int:
        """Delete several decks and their flashcards as one all-or-nothing operation."""
        pass

    @abc.abstractmethod
    async def delete_promoting_children(
        self, deck_id: str, new_parent_id: Optional[str], updated_at: datetime.datetime
    ) -> bool:
        """Re-parent a deck's sub-decks and delete the deck as one all-or-nothing operation."""
        pass

    @abc.abstractmethod
    async def list(self) -> List[Deck]:
        """List all decks."""
        pass


class FlashcardRepository(BaseRepository):
    """Repository for Flashcard-related operations."""

    @abc.abstractmethod
    async def create(self, card: Flashcard) -> Flashcard:
        """Create a new flashcard."""
        pass

    @abc.abstractmethod
    async def get(self, card_id: str) -> Optional[Flashcard]:
        """Get a flashcard by ID."""
        pass

    @abc.abstractmethod
    async def update(self, card: Flashcard) -> Flashcard:
        """Update the front and back of an existing flashcard."""
        pass

    @abc.abstractmethod
    async def apply_review(
        self,
        card_id: str,
        patch: CardReviewPatch,
        expected_review_count: Optional[int] = None,
    ) -> Flashcard:
        """
        Write the result of a review.

        Stores that cannot check ``expected_review_count`` may ignore it,
        in which case concurrent reviews of one card are last-write-wins.
        """
        pass

    @abc.abstractmethod
    async def delete(self, card_id: str) -> bool:
        """Delete a flashcard by ID."""
        pass

    @abc.abstractmethod
    async def get_by_deck(self, deck_id: str) -> List[Flashcard]:
        """Get all flashcards in a deck."""
        pass

    @abc.abstractmethod
    async def get_due(
        self, deck_id: str, now: datetime.datetime, limit: int = 20
    ) -> List[Flashcard]:
        """Get the flashcards of a deck due at ``now``, earliest first."""
        pass


class SQLiteDeckRepository(DeckRepository):
    """SQLite implementation of the DeckRepository."""

    def __init__(self, db: Database):
        """Initialize with a Database instance."""
        self.db = db

    async def create(self, deck: Deck) -> Deck:
        with _store_errors("create deck"):
            return self.db.create_deck(deck)

    async def get(self, deck_id: str) -> Optional[Deck]:
        with _store_errors("load deck"):
            return self.db.get_deck(deck_id)

    async def update(self, deck: Deck) -> Deck:
        with _store_errors("update deck"):
            return self.db.update_deck(deck)

    async def delete(self, deck_id: str) -> bool:
        with _store_errors("delete deck"):
            return self.db.delete_deck(deck_id)

    async def delete_many(self, deck_ids: List[str]) -> int:
        with _store_errors("delete decks"):
            return self.db.delete_decks(deck_ids)

    async def delete_promoting_children(
        self, deck_id: str, new_parent_id: Optional[str], updated_at: datetime.datetime
    ) -> bool:
        with _store_errors("delete deck"):
            return self.db.delete_deck_promoting_children(deck_id, new_parent_id, updated_at)

    async def list(self) -> List[Deck]:
        with _store_errors("list decks"):
            return self.db.list_decks()

    def close(self) -> None:
        """Close the database connection."""
        pass  # Connection is managed by the Database instance


class SQLiteFlashcardRepository(FlashcardRepository):
    """SQLite implementation of the FlashcardRepository."""

    def __init__(self, db: Database):
        """Initialize with a Database instance."""
        self.db = db

    async def create(self, card: Flashcard) -> Flashcard:
        with _store_errors("create flashcard"):
            return self.db.create_flashcard(card)

    async def get(self, card_id: str) -> Optional[Flashcard]:
        with _store_errors("load flashcard"):
            return self.db.get_flashcard(card_id)

    async def update(self, card: Flashcard) -> Flashcard:
        with _store_errors("update flashcard"):
            return self.db.update_flashcard(card)

    async def apply_review(
        self,
        card_id: str,
        patch: CardReviewPatch,
        expected_review_count: Optional[int] = None,
    ) -> Flashcard:
        with _store_errors("save review"):
            return self.db.apply_review(card_id, patch, expected_review_count)

    async def delete(self, card_id: str) -> bool:
        with _store_errors("delete flashcard"):
            return self.db.delete_flashcard(card_id)

    async def get_by_deck(self, deck_id: str) -> List[Flashcard]:
        with _store_errors("load flashcards"):
            return self.db.get_flashcards_by_deck(deck_id)

    async def get_due(
        self, deck_id: str, now: datetime.datetime, limit: int = 20
    ) -> List[Flashcard]:
        with _store_errors("load due flashcards"):
            return self.db.get_due_flashcards(deck_id, now, limit)

    def close(self) -> None:
        """Close the database connection."""
        pass  # Connection is managed by the Database instance
