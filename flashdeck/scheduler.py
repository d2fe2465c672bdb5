"""
Review scheduling against the store.

The ReviewScheduler turns a review outcome into an update of the card's
difficulty, next review time and review count, and writes all three back in
a single store call.
"""

import datetime
import logging
from typing import Callable, Optional, Union

from config import settings
from flashdeck.errors import NotFound
from flashdeck.events import ChangeEvent, ChangeKind, EntityType, card_reviewed, publish
from flashdeck.models import Flashcard, coerce_difficulty
from flashdeck.repository import FlashcardRepository, call_store
from flashdeck.srs import SRSEngine
from flashdeck.timeutils import utc_now

logger = logging.getLogger("flashdeck")


class ReviewScheduler:
    """Applies the SRS policy to stored flashcards."""

    def __init__(
        self,
        flashcard_repo: FlashcardRepository,
        now_provider: Callable[[], datetime.datetime] = utc_now,
        timezone_name: str = settings.TIMEZONE,
        store_timeout: Optional[float] = settings.STORE_TIMEOUT_SECONDS,
    ):
        self.flashcard_repo = flashcard_repo
        self.now_provider = now_provider
        self.timezone_name = timezone_name
        self.store_timeout = store_timeout
        logger.info(f"ReviewScheduler initialized with timezone {timezone_name}")

    async def review(
        self,
        card: Union[Flashcard, str],
        was_correct: bool,
        now: Optional[datetime.datetime] = None,
    ) -> Flashcard:
        """
        Record a review of a flashcard.

        The card is re-read from the store right before the update so the
        review count is incremented from the latest stored value, and the
        write is conditional on that value being unchanged.

        Args:
            card: The reviewed flashcard, or its ID
            was_correct: Whether the user recalled the card
            now: The instant of the review (defaults to the now provider)

        Returns:
            The flashcard as stored after the review

        Raises:
            ValidationError: If the card's difficulty is outside 0-3
            NotFound: If the card does not exist in the store
            StoreUnavailable: If the store failed, timed out, or the card was
                reviewed concurrently
        """
        if isinstance(card, Flashcard):
            coerce_difficulty(card.difficulty)
            card_id = card.id
        else:
            card_id = card

        if now is None:
            now = self.now_provider()

        latest = await call_store(self.flashcard_repo.get(card_id), self.store_timeout)
        if latest is None:
            logger.error(f"Flashcard with ID {card_id} not found for review")
            raise NotFound(f"Flashcard with ID {card_id} not found")

        patch = SRSEngine.schedule(latest, was_correct, now, self.timezone_name)
        updated = await call_store(
            self.flashcard_repo.apply_review(
                card_id, patch, expected_review_count=latest.review_count
            ),
            self.store_timeout,
        )

        previous = coerce_difficulty(latest.difficulty)
        logger.info(
            f"Reviewed flashcard {card_id} ({'correct' if was_correct else 'incorrect'}): "
            f"difficulty {previous.label} -> {patch.difficulty.label}, "
            f"next review {patch.next_review.isoformat()}"
        )
        publish(
            card_reviewed,
            self,
            event=ChangeEvent(
                EntityType.FLASHCARD, ChangeKind.REVIEWED, (card_id,), deck_id=updated.deck_id
            ),
            was_correct=was_correct,
        )
        return updated
