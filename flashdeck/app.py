"""
Application wiring: builds the store, scheduler and services from settings.
"""

import asyncio
import logging
import sys
from typing import Optional

from config import settings
from config.logging_config import setup_logging
from flashdeck.database import Database
from flashdeck.errors import StoreUnavailable
from flashdeck.repository import SQLiteDeckRepository, SQLiteFlashcardRepository
from flashdeck.scheduler import ReviewScheduler
from flashdeck.services import DeckService, FlashcardService

logger = logging.getLogger("flashdeck")


class FlashdeckApp:
    """
    Holds the wired components of a Flashdeck instance.
    """

    def __init__(
        self, db_path: str = settings.DATABASE_PATH, timezone_name: str = settings.TIMEZONE
    ):
        """
        Initialize the application with a SQLite store.

        Args:
            db_path: Path to the SQLite database file, or ":memory:"
            timezone_name: Zone used for calendar-day scheduling
        """
        self.db = Database(db_path)
        self.deck_repo = SQLiteDeckRepository(self.db)
        self.flashcard_repo = SQLiteFlashcardRepository(self.db)
        self.scheduler = ReviewScheduler(self.flashcard_repo, timezone_name=timezone_name)
        self.decks = DeckService(self.deck_repo, self.flashcard_repo)
        self.flashcards = FlashcardService(self.flashcard_repo, self.deck_repo, self.scheduler)
        logger.info(f"Flashdeck initialized with database {db_path}")

    def close(self) -> None:
        """Release the store connection."""
        self.deck_repo.close()
        self.flashcard_repo.close()
        self.db.close()


def create_app(db_path: Optional[str] = None, timezone_name: Optional[str] = None) -> FlashdeckApp:
    """
    Create and return a Flashdeck application instance.

    Args:
        db_path: Database path (defaults to settings.DATABASE_PATH)
        timezone_name: Scheduling zone (defaults to settings.TIMEZONE)

    Returns:
        A wired FlashdeckApp
    """
    return FlashdeckApp(
        db_path=db_path or settings.DATABASE_PATH,
        timezone_name=timezone_name or settings.TIMEZONE,
    )


async def _print_overview(app: FlashdeckApp) -> None:
    overview = await app.decks.get_overview()
    forest = await app.decks.get_deck_tree()
    print(
        f"Decks: {len(forest)} top-level | Cards: {overview.total_cards} | "
        f"Due: {overview.cards_to_review} | New: {overview.new_cards}"
    )


def main():
    """Print the dashboard totals of the configured database."""
    logger = setup_logging()
    logger.info("Starting Flashdeck")

    app = create_app()
    try:
        asyncio.run(_print_overview(app))
    except StoreUnavailable as e:
        logger.error(f"Error reading the database: {e}", exc_info=True)
        sys.exit(1)
    finally:
        app.close()


if __name__ == "__main__":
    main()
