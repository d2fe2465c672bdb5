"""
Database module for persistence of decks and flashcards.

This module provides a SQLite implementation for storing and retrieving data.
Timestamps are stored as canonical UTC ISO-8601 text so they compare
correctly as strings inside SQL.
"""

import datetime
import logging
import os
import sqlite3
from typing import List, Optional

from flashdeck.errors import ConcurrentUpdate, NotFound
from flashdeck.models import CardReviewPatch, Deck, Flashcard, coerce_difficulty
from flashdeck.timeutils import format_timestamp, parse_timestamp, utc_now

logger = logging.getLogger("flashdeck")


def adapt_datetime(dt):
    """Convert datetime to canonical ISO format string for SQLite storage."""
    return format_timestamp(dt) if dt else None


def convert_datetime(value):
    """
    Convert ISO format string from SQLite to an aware UTC datetime.

    Raises:
        sqlite3.DataError: If the stored text is not a valid timestamp
    """
    text = value.decode("utf-8", errors="replace")
    try:
        return parse_timestamp(text)
    except ValueError as e:
        logger.error(f"Malformed timestamp {text!r} in database: {e}")
        raise sqlite3.DataError(f"Malformed timestamp {text!r}") from e


# Register the adapter and converter
sqlite3.register_adapter(datetime.datetime, adapt_datetime)
sqlite3.register_converter("timestamp", convert_datetime)


class Database:
    """SQLite database implementation for deck and flashcard persistence."""

    def __init__(self, db_path: str = "data/flashdeck.db"):
        """
        Initialize the database connection.

        Args:
            db_path: Path to the SQLite database file, or ":memory:"
        """
        # Ensure the data directory exists
        db_dir = os.path.dirname(db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

        self.db_path = db_path
        self.conn = None

        self._connect()
        self._create_tables()

    def _connect(self) -> None:
        """Establish connection to the SQLite database."""
        try:
            self.conn = sqlite3.connect(self.db_path, detect_types=sqlite3.PARSE_DECLTYPES)
            # Enable foreign keys so flashcards are removed with their deck
            self.conn.execute("PRAGMA foreign_keys = ON")
            # Return rows as dictionaries
            self.conn.row_factory = sqlite3.Row
            logger.info(f"Connected to database at {self.db_path}")
        except sqlite3.Error as e:
            logger.error(f"Error connecting to database: {e}")
            raise

    def _create_tables(self) -> None:
        """Create necessary tables if they don't exist."""
        try:
            cursor = self.conn.cursor()

            # parent_deck_id is a weak reference: no foreign key, the tree
            # builder copes with dangling parents
            cursor.execute(
                """
            CREATE TABLE IF NOT EXISTS decks (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                description TEXT,
                color TEXT NOT NULL,
                parent_deck_id TEXT,
                created_at timestamp NOT NULL,
                updated_at timestamp NOT NULL
            )
            """
            )

            cursor.execute(
                """
            CREATE TABLE IF NOT EXISTS flashcards (
                id TEXT PRIMARY KEY,
                deck_id TEXT NOT NULL,
                front TEXT NOT NULL,
                back TEXT NOT NULL,
                difficulty INTEGER NOT NULL CHECK (difficulty BETWEEN 0 AND 3),
                next_review timestamp NOT NULL,
                review_count INTEGER NOT NULL CHECK (review_count >= 0),
                created_at timestamp NOT NULL,
                updated_at timestamp NOT NULL,
                FOREIGN KEY (deck_id) REFERENCES decks (id) ON DELETE CASCADE
            )
            """
            )

            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_flashcards_deck_review "
                "ON flashcards (deck_id, next_review)"
            )

            self.conn.commit()
            logger.info("Database tables created or already exist")
        except sqlite3.Error as e:
            logger.error(f"Error creating database tables: {e}")
            raise

    def close(self) -> None:
        """Close the database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None
            logger.info("Database connection closed")

    @staticmethod
    def _row_to_deck(row: sqlite3.Row) -> Deck:
        return Deck(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            color=row["color"],
            parent_deck_id=row["parent_deck_id"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_flashcard(row: sqlite3.Row) -> Flashcard:
        return Flashcard(
            id=row["id"],
            deck_id=row["deck_id"],
            front=row["front"],
            back=row["back"],
            difficulty=coerce_difficulty(row["difficulty"]),
            next_review=row["next_review"],
            review_count=row["review_count"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    # Deck CRUD operations

    def create_deck(self, deck: Deck) -> Deck:
        """
        Create a new deck in the database.

        Args:
            deck: The Deck object to save

        Returns:
            The saved Deck object
        """
        try:
            cursor = self.conn.cursor()
            cursor.execute(
                """
                INSERT INTO decks
                (id, name, description, color, parent_deck_id, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    deck.id,
                    deck.name,
                    deck.description,
                    deck.color,
                    deck.parent_deck_id,
                    deck.created_at,
                    deck.updated_at,
                ),
            )
            self.conn.commit()
            logger.info(f"Created deck '{deck.name}' with ID {deck.id}")
            return deck
        except sqlite3.Error as e:
            self.conn.rollback()
            logger.error(f"Error creating deck: {e}")
            raise

    def get_deck(self, deck_id: str) -> Optional[Deck]:
        """
        Retrieve a deck by its ID.

        Args:
            deck_id: The ID of the deck to retrieve

        Returns:
            The Deck object if found, None otherwise
        """
        try:
            cursor = self.conn.cursor()
            cursor.execute("SELECT * FROM decks WHERE id = ?", (deck_id,))
            row = cursor.fetchone()

            if not row:
                logger.info(f"Deck with ID {deck_id} not found")
                return None

            return self._row_to_deck(row)
        except sqlite3.Error as e:
            logger.error(f"Error retrieving deck: {e}")
            raise

    def update_deck(self, deck: Deck) -> Deck:
        """
        Update an existing deck.

        Args:
            deck: The Deck object with updated values

        Returns:
            The updated Deck object

        Raises:
            NotFound: If no deck with that ID exists
        """
        try:
            cursor = self.conn.cursor()
            cursor.execute(
                """
                UPDATE decks
                SET name = ?, description = ?, color = ?, parent_deck_id = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    deck.name,
                    deck.description,
                    deck.color,
                    deck.parent_deck_id,
                    deck.updated_at,
                    deck.id,
                ),
            )

            if cursor.rowcount == 0:
                self.conn.rollback()
                logger.warning(f"No deck with ID {deck.id} found to update")
                raise NotFound(f"Deck with ID {deck.id} not found")

            self.conn.commit()
            logger.info(f"Updated deck '{deck.name}' with ID {deck.id}")
            return deck
        except sqlite3.Error as e:
            self.conn.rollback()
            logger.error(f"Error updating deck: {e}")
            raise

    def delete_deck(self, deck_id: str) -> bool:
        """
        Delete a deck and, through the foreign key, its flashcards.

        Args:
            deck_id: The ID of the deck to delete

        Returns:
            True if the deck was deleted, False otherwise
        """
        try:
            cursor = self.conn.cursor()
            cursor.execute("DELETE FROM decks WHERE id = ?", (deck_id,))

            deleted = cursor.rowcount > 0
            self.conn.commit()

            if deleted:
                logger.info(f"Deleted deck with ID {deck_id}")
            else:
                logger.warning(f"No deck with ID {deck_id} found to delete")

            return deleted
        except sqlite3.Error as e:
            self.conn.rollback()
            logger.error(f"Error deleting deck: {e}")
            raise

    def delete_decks(self, deck_ids: List[str]) -> int:
        """
        Delete several decks and their flashcards in one transaction.

        Either every listed deck is removed or, on error, none is.

        Args:
            deck_ids: IDs of the decks to delete

        Returns:
            Number of decks that were deleted
        """
        try:
            cursor = self.conn.cursor()
            deleted = 0
            for deck_id in deck_ids:
                cursor.execute("DELETE FROM decks WHERE id = ?", (deck_id,))
                deleted += cursor.rowcount
            self.conn.commit()

            logger.info(f"Deleted {deleted} of {len(deck_ids)} decks")
            return deleted
        except sqlite3.Error as e:
            self.conn.rollback()
            logger.error(f"Error deleting decks: {e}")
            raise

    def delete_deck_promoting_children(
        self, deck_id: str, new_parent_id: Optional[str], updated_at: datetime.datetime
    ) -> bool:
        """
        Move a deck's sub-decks to another parent and delete the deck, atomically.

        Args:
            deck_id: The ID of the deck to delete
            new_parent_id: Parent for the sub-decks (None makes them top-level)
            updated_at: Modification time written to the moved sub-decks

        Returns:
            True if the deck was deleted, False if it did not exist
        """
        try:
            cursor = self.conn.cursor()
            cursor.execute(
                """
                UPDATE decks SET parent_deck_id = ?, updated_at = ?
                WHERE parent_deck_id = ? AND id != ?
                """,
                (new_parent_id, updated_at, deck_id, deck_id),
            )
            moved = cursor.rowcount
            cursor.execute("DELETE FROM decks WHERE id = ?", (deck_id,))

            if cursor.rowcount == 0:
                self.conn.rollback()
                logger.warning(f"No deck with ID {deck_id} found to delete")
                return False

            self.conn.commit()
            logger.info(f"Deleted deck {deck_id} and moved {moved} sub-decks to {new_parent_id}")
            return True
        except sqlite3.Error as e:
            self.conn.rollback()
            logger.error(f"Error deleting deck: {e}")
            raise

    def list_decks(self) -> List[Deck]:
        """
        List all decks, newest first.

        Returns:
            List of Deck objects
        """
        try:
            cursor = self.conn.cursor()
            cursor.execute("SELECT * FROM decks ORDER BY created_at DESC, rowid DESC")
            decks = [self._row_to_deck(row) for row in cursor.fetchall()]

            logger.info(f"Retrieved {len(decks)} decks")
            return decks
        except sqlite3.Error as e:
            logger.error(f"Error listing decks: {e}")
            raise

    # Flashcard CRUD operations

    def create_flashcard(self, card: Flashcard) -> Flashcard:
        """
        Create a new flashcard in the database.

        Args:
            card: The Flashcard object to save

        Returns:
            The saved Flashcard object
        """
        try:
            cursor = self.conn.cursor()
            cursor.execute(
                """
                INSERT INTO flashcards
                (id, deck_id, front, back, difficulty, next_review,
                review_count, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    card.id,
                    card.deck_id,
                    card.front,
                    card.back,
                    int(card.difficulty),
                    card.next_review,
                    card.review_count,
                    card.created_at,
                    card.updated_at,
                ),
            )
            self.conn.commit()
            logger.info(f"Created flashcard with ID {card.id}")
            return card
        except sqlite3.Error as e:
            self.conn.rollback()
            logger.error(f"Error creating flashcard: {e}")
            raise

    def get_flashcard(self, card_id: str) -> Optional[Flashcard]:
        """
        Retrieve a flashcard by its ID.

        Args:
            card_id: The ID of the flashcard to retrieve

        Returns:
            The Flashcard object if found, None otherwise
        """
        try:
            cursor = self.conn.cursor()
            cursor.execute("SELECT * FROM flashcards WHERE id = ?", (card_id,))
            row = cursor.fetchone()

            if not row:
                logger.info(f"Flashcard with ID {card_id} not found")
                return None

            return self._row_to_flashcard(row)
        except sqlite3.Error as e:
            logger.error(f"Error retrieving flashcard: {e}")
            raise

    def update_flashcard(self, card: Flashcard) -> Flashcard:
        """
        Update the content of an existing flashcard.

        Scheduling fields are only written by apply_review.

        Args:
            card: The Flashcard object with updated front and back

        Returns:
            The updated Flashcard object

        Raises:
            NotFound: If no flashcard with that ID exists
        """
        try:
            cursor = self.conn.cursor()
            cursor.execute(
                """
                UPDATE flashcards
                SET front = ?, back = ?, updated_at = ?
                WHERE id = ?
                """,
                (card.front, card.back, card.updated_at, card.id),
            )

            if cursor.rowcount == 0:
                self.conn.rollback()
                logger.warning(f"No flashcard with ID {card.id} found to update")
                raise NotFound(f"Flashcard with ID {card.id} not found")

            self.conn.commit()
            logger.info(f"Updated flashcard with ID {card.id}")
            return self.get_flashcard(card.id)
        except sqlite3.Error as e:
            self.conn.rollback()
            logger.error(f"Error updating flashcard: {e}")
            raise

    def apply_review(
        self,
        card_id: str,
        patch: CardReviewPatch,
        expected_review_count: Optional[int] = None,
    ) -> Flashcard:
        """
        Write the scheduling fields of a flashcard in one statement.

        Args:
            card_id: The ID of the reviewed flashcard
            patch: The new difficulty, next review time and review count
            expected_review_count: If given, the update only applies while the
                stored review count still has this value

        Returns:
            The updated Flashcard object

        Raises:
            NotFound: If no flashcard with that ID exists
            ConcurrentUpdate: If the stored review count no longer matches
        """
        try:
            cursor = self.conn.cursor()
            query = """
                UPDATE flashcards
                SET difficulty = ?, next_review = ?, review_count = ?, updated_at = ?
                WHERE id = ?
            """
            params = [
                int(patch.difficulty),
                patch.next_review,
                patch.review_count,
                utc_now(),
                card_id,
            ]
            if expected_review_count is not None:
                query += " AND review_count = ?"
                params.append(expected_review_count)

            cursor.execute(query, params)

            if cursor.rowcount == 0:
                self.conn.rollback()
                if self.get_flashcard(card_id) is None:
                    logger.warning(f"No flashcard with ID {card_id} found to review")
                    raise NotFound(f"Flashcard with ID {card_id} not found")
                logger.warning(f"Flashcard {card_id} was reviewed concurrently")
                raise ConcurrentUpdate(f"Flashcard with ID {card_id} changed during review")

            self.conn.commit()
            logger.info(
                f"Applied review to flashcard {card_id}: difficulty {int(patch.difficulty)}, "
                f"review count {patch.review_count}"
            )
            return self.get_flashcard(card_id)
        except sqlite3.Error as e:
            self.conn.rollback()
            logger.error(f"Error applying review: {e}")
            raise

    def delete_flashcard(self, card_id: str) -> bool:
        """
        Delete a flashcard by its ID.

        Args:
            card_id: The ID of the flashcard to delete

        Returns:
            True if the flashcard was deleted, False otherwise
        """
        try:
            cursor = self.conn.cursor()
            cursor.execute("DELETE FROM flashcards WHERE id = ?", (card_id,))

            deleted = cursor.rowcount > 0
            self.conn.commit()

            if deleted:
                logger.info(f"Deleted flashcard with ID {card_id}")
            else:
                logger.warning(f"No flashcard with ID {card_id} found to delete")

            return deleted
        except sqlite3.Error as e:
            self.conn.rollback()
            logger.error(f"Error deleting flashcard: {e}")
            raise

    def get_flashcards_by_deck(self, deck_id: str) -> List[Flashcard]:
        """
        Get all flashcards belonging to a specific deck, newest first.

        Args:
            deck_id: The ID of the deck

        Returns:
            List of Flashcard objects in the deck
        """
        try:
            cursor = self.conn.cursor()
            cursor.execute(
                "SELECT * FROM flashcards WHERE deck_id = ? ORDER BY created_at DESC, rowid DESC",
                (deck_id,),
            )
            cards = [self._row_to_flashcard(row) for row in cursor.fetchall()]

            logger.info(f"Retrieved {len(cards)} flashcards for deck {deck_id}")
            return cards
        except sqlite3.Error as e:
            logger.error(f"Error retrieving flashcards for deck: {e}")
            raise

    def get_due_flashcards(
        self, deck_id: str, now: datetime.datetime, limit: int = 20
    ) -> List[Flashcard]:
        """
        Get the flashcards of a deck that are due for review.

        Args:
            deck_id: The ID of the deck
            now: Reference instant; cards due exactly at it are included
            limit: Maximum number of cards to return

        Returns:
            Due Flashcard objects, earliest next review first
        """
        try:
            cursor = self.conn.cursor()
            cursor.execute(
                """
                SELECT * FROM flashcards
                WHERE deck_id = ? AND next_review <= ?
                ORDER BY next_review ASC, rowid ASC
                LIMIT ?
                """,
                (deck_id, now, limit),
            )
            cards = [self._row_to_flashcard(row) for row in cursor.fetchall()]

            logger.info(f"Retrieved {len(cards)} due flashcards for deck {deck_id}")
            return cards
        except sqlite3.Error as e:
            logger.error(f"Error retrieving due flashcards: {e}")
            raise
