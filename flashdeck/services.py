"""
Service layer for the Flashdeck study library.

This module contains the business logic for managing decks and flashcards,
building the deck overview, and starting study sessions.
"""

import asyncio
import datetime
import logging
from collections import deque
from dataclasses import replace
from enum import Enum
from typing import Callable, Dict, List, Optional

from config import settings
from flashdeck.errors import DeckCycleError, DeckHasSubdecks, NotFound, ValidationError
from flashdeck.events import (
    ChangeEvent,
    ChangeKind,
    EntityType,
    deck_changed,
    flashcard_changed,
    publish,
)
from flashdeck.models import (
    DEFAULT_DECK_COLOR,
    Deck,
    DeckPatch,
    DeckWithStats,
    Difficulty,
    Flashcard,
    FlashcardPatch,
)
from flashdeck.repository import DeckRepository, FlashcardRepository, call_store
from flashdeck.scheduler import ReviewScheduler
from flashdeck.session import StudySession, select_due_cards
from flashdeck.stats import DeckStats, attach_stats, first_due_deck, summarize
from flashdeck.timeutils import utc_now
from flashdeck.tree import build_tree

logger = logging.getLogger("flashdeck")


class DeckDeletePolicy(Enum):
    """What happens to the sub-decks of a deck that is deleted."""

    BLOCK = "block"  # refuse while sub-decks exist
    CASCADE = "cascade"  # delete every descendant as well
    PROMOTE = "promote"  # move children up to the deleted deck's parent


def _children_index(decks: List[Deck]) -> Dict[Optional[str], List[Deck]]:
    children: Dict[Optional[str], List[Deck]] = {}
    for deck in decks:
        children.setdefault(deck.parent_deck_id, []).append(deck)
    return children


def _descendant_ids(deck_id: str, decks: List[Deck]) -> List[str]:
    """IDs of all descendants of a deck, parents before their children."""
    children = _children_index(decks)
    found: List[str] = []
    seen = {deck_id}
    frontier = deque([deck_id])
    while frontier:
        current = frontier.popleft()
        for child in children.get(current, []):
            if child.id not in seen:
                seen.add(child.id)
                found.append(child.id)
                frontier.append(child.id)
    return found


class DeckService:
    """Service that handles deck business logic."""

    def __init__(
        self,
        deck_repo: DeckRepository,
        flashcard_repo: FlashcardRepository,
        now_provider: Callable[[], datetime.datetime] = utc_now,
        store_timeout: Optional[float] = settings.STORE_TIMEOUT_SECONDS,
    ):
        self.deck_repo = deck_repo
        self.flashcard_repo = flashcard_repo
        self.now_provider = now_provider
        self.store_timeout = store_timeout
        logger.info("DeckService initialized")

    async def _store(self, awaitable):
        return await call_store(awaitable, self.store_timeout)

    async def _require_deck(self, deck_id: str) -> Deck:
        deck = await self._store(self.deck_repo.get(deck_id))
        if not deck:
            logger.error(f"Deck with ID {deck_id} not found")
            raise NotFound(f"Deck with ID {deck_id} not found")
        return deck

    def _emit(self, kind: ChangeKind, *deck_ids: str) -> None:
        publish(deck_changed, self, event=ChangeEvent(EntityType.DECK, kind, tuple(deck_ids)))

    async def list_decks(self) -> List[Deck]:
        """
        Get all decks.

        Returns:
            List of Deck objects, newest first
        """
        decks = await self._store(self.deck_repo.list())
        logger.info(f"Retrieved {len(decks)} decks")
        return decks

    async def list_decks_with_stats(
        self, now: Optional[datetime.datetime] = None
    ) -> List[DeckWithStats]:
        """
        Get all decks with the statistics of their own cards.

        Args:
            now: Reference instant for due counts (defaults to now)

        Returns:
            Flat list of DeckWithStats in store order
        """
        if now is None:
            now = self.now_provider()

        decks = await self.list_decks()
        card_lists = await asyncio.gather(
            *(self._store(self.flashcard_repo.get_by_deck(deck.id)) for deck in decks)
        )
        cards_by_deck = {deck.id: cards for deck, cards in zip(decks, card_lists)}
        return attach_stats(decks, cards_by_deck, now)

    async def get_deck_tree(self, now: Optional[datetime.datetime] = None) -> List[DeckWithStats]:
        """
        Get the deck forest with statistics.

        Args:
            now: Reference instant for due counts (defaults to now)

        Returns:
            Top-level decks, each owning its sub-decks
        """
        return build_tree(await self.list_decks_with_stats(now))

    async def get_overview(self, now: Optional[datetime.datetime] = None) -> DeckStats:
        """Totals across every deck, as shown on the dashboard."""
        return summarize(await self.list_decks_with_stats(now))

    async def next_deck_to_study(
        self, now: Optional[datetime.datetime] = None
    ) -> Optional[DeckWithStats]:
        """
        Pick the deck a "start studying" shortcut should open.

        Args:
            now: Reference instant for due counts (defaults to now)

        Returns:
            The first deck in list order with cards to review, or None if
            nothing is due anywhere
        """
        deck = first_due_deck(await self.list_decks_with_stats(now))
        if deck is None:
            logger.info("No deck has cards to review")
        else:
            logger.info(
                f"Next deck to study is '{deck.name}' with {deck.cards_to_review} due cards"
            )
        return deck

    async def eligible_parents(self, deck_id: str) -> List[Deck]:
        """
        Decks that may become the parent of a deck without forming a cycle.

        Args:
            deck_id: The ID of the deck being edited

        Returns:
            Every deck except the deck itself and its descendants
        """
        decks = await self.list_decks()
        excluded = set(_descendant_ids(deck_id, decks))
        excluded.add(deck_id)
        return [deck for deck in decks if deck.id not in excluded]

    async def create_deck(
        self,
        name: str,
        color: str = DEFAULT_DECK_COLOR,
        description: Optional[str] = None,
        parent_deck_id: Optional[str] = None,
    ) -> Deck:
        """
        Create a new deck.

        Args:
            name: The name of the deck
            color: Color token from the deck palette
            description: Optional description for the deck
            parent_deck_id: Optional ID of the parent deck

        Returns:
            The created Deck object

        Raises:
            ValidationError: If the name is empty
            NotFound: If the parent deck does not exist
        """
        now = self.now_provider()
        deck = Deck(
            name=(name or "").strip(),
            description=description,
            color=color,
            parent_deck_id=parent_deck_id,
            created_at=now,
            updated_at=now,
        )
        deck.validate()

        if parent_deck_id is not None:
            await self._require_deck(parent_deck_id)

        created_deck = await self._store(self.deck_repo.create(deck))
        logger.info(f"Created deck '{created_deck.name}' with ID {created_deck.id}")
        self._emit(ChangeKind.CREATED, created_deck.id)
        return created_deck

    async def update_deck(self, deck_id: str, patch: DeckPatch) -> Deck:
        """
        Apply edits to a deck.

        Args:
            deck_id: The ID of the deck to edit
            patch: The fields to change

        Returns:
            The updated Deck object

        Raises:
            ValidationError: If the edited deck is invalid
            DeckCycleError: If the new parent is the deck or one of its descendants
            NotFound: If the deck or the new parent does not exist
        """
        deck = await self._require_deck(deck_id)
        updated = replace(patch.apply_to(deck), updated_at=self.now_provider())
        updated.validate()

        new_parent = updated.parent_deck_id
        if new_parent is not None and new_parent != deck.parent_deck_id:
            await self._check_reparent(deck_id, new_parent)

        saved = await self._store(self.deck_repo.update(updated))
        logger.info(f"Updated deck {deck_id}: {sorted(patch.changed_fields())}")
        self._emit(ChangeKind.UPDATED, deck_id)
        return saved

    async def _check_reparent(self, deck_id: str, new_parent_id: str) -> None:
        decks = await self.list_decks()
        by_id = {deck.id: deck for deck in decks}
        if new_parent_id not in by_id:
            logger.error(f"Parent deck with ID {new_parent_id} not found")
            raise NotFound(f"Deck with ID {new_parent_id} not found")

        # Walk up from the new parent; reaching the edited deck means a cycle
        seen = set()
        current: Optional[str] = new_parent_id
        while current is not None and current in by_id and current not in seen:
            if current == deck_id:
                logger.warning(
                    f"Rejected moving deck {deck_id} under its descendant {new_parent_id}"
                )
                raise DeckCycleError(
                    f"Deck {deck_id} cannot be moved under its own descendant {new_parent_id}"
                )
            seen.add(current)
            current = by_id[current].parent_deck_id

    async def delete_deck(
        self, deck_id: str, policy: DeckDeletePolicy = DeckDeletePolicy.BLOCK
    ) -> bool:
        """
        Delete a deck and all its flashcards.

        Args:
            deck_id: The ID of the deck to delete
            policy: What to do with the deck's sub-decks

        Returns:
            True if the deck was deleted, False if it did not exist

        Raises:
            DeckHasSubdecks: If the deck has sub-decks and the policy is BLOCK
        """
        deck = await self._store(self.deck_repo.get(deck_id))
        if not deck:
            logger.warning(f"Deck with ID {deck_id} not found")
            return False

        decks = await self.list_decks()
        children = [d for d in decks if d.parent_deck_id == deck_id and d.id != deck_id]

        if children and policy is DeckDeletePolicy.BLOCK:
            logger.warning(f"Refused to delete deck {deck_id} with {len(children)} sub-decks")
            raise DeckHasSubdecks(
                f"Deck '{deck.name}' has {len(children)} sub-decks; move or delete them first"
            )

        affected = [deck_id]
        if children and policy is DeckDeletePolicy.CASCADE:
            descendants = _descendant_ids(deck_id, decks)
            # Deepest first, the deck itself last
            removed = await self._store(
                self.deck_repo.delete_many(list(reversed(descendants)) + [deck_id])
            )
            deleted = removed > 0
            affected.extend(descendants)
            logger.info(f"Cascading delete of deck {deck_id} removed {removed} decks")
        elif children and policy is DeckDeletePolicy.PROMOTE:
            deleted = await self._store(
                self.deck_repo.delete_promoting_children(
                    deck_id, deck.parent_deck_id, self.now_provider()
                )
            )
            if deleted:
                self._emit(ChangeKind.UPDATED, *(child.id for child in children))
                logger.info(f"Moved {len(children)} sub-decks of deck {deck_id} up one level")
        else:
            # The store removes the deck's flashcards with it
            deleted = await self._store(self.deck_repo.delete(deck_id))

        if deleted:
            logger.info(f"Deleted deck '{deck.name}' with ID {deck_id}")
            self._emit(ChangeKind.DELETED, *affected)
        else:
            logger.warning(f"Failed to delete deck with ID {deck_id}")

        return deleted


class FlashcardService:
    """
    Service that handles flashcard business logic including
    creation, editing, and study session setup.
    """

    def __init__(
        self,
        flashcard_repo: FlashcardRepository,
        deck_repo: DeckRepository,
        scheduler: ReviewScheduler,
        now_provider: Callable[[], datetime.datetime] = utc_now,
        store_timeout: Optional[float] = settings.STORE_TIMEOUT_SECONDS,
        study_batch_size: int = settings.STUDY_BATCH_SIZE,
    ):
        self.flashcard_repo = flashcard_repo
        self.deck_repo = deck_repo
        self.scheduler = scheduler
        self.now_provider = now_provider
        self.store_timeout = store_timeout
        self.study_batch_size = study_batch_size
        logger.info("FlashcardService initialized")

    async def _store(self, awaitable):
        return await call_store(awaitable, self.store_timeout)

    async def _require_card(self, card_id: str) -> Flashcard:
        card = await self._store(self.flashcard_repo.get(card_id))
        if not card:
            logger.error(f"Flashcard with ID {card_id} not found")
            raise NotFound(f"Flashcard with ID {card_id} not found")
        return card

    def _emit(self, kind: ChangeKind, card: Flashcard) -> None:
        publish(
            flashcard_changed,
            self,
            event=ChangeEvent(EntityType.FLASHCARD, kind, (card.id,), deck_id=card.deck_id),
        )

    async def list_flashcards(self, deck_id: str) -> List[Flashcard]:
        """Get all flashcards of a deck, newest first."""
        return await self._store(self.flashcard_repo.get_by_deck(deck_id))

    async def create_flashcard(self, deck_id: str, front: str, back: str) -> Flashcard:
        """
        Create a new flashcard that is immediately due.

        Args:
            deck_id: The ID of the deck to add the card to
            front: Text for the front of the card
            back: Text for the back of the card

        Returns:
            The created Flashcard object

        Raises:
            ValidationError: If front or back is empty
            NotFound: If the deck does not exist
        """
        now = self.now_provider()
        card = Flashcard(
            deck_id=deck_id,
            front=(front or "").strip(),
            back=(back or "").strip(),
            difficulty=Difficulty.NEW,
            next_review=now,
            review_count=0,
            created_at=now,
            updated_at=now,
        )
        card.validate()

        deck = await self._store(self.deck_repo.get(deck_id))
        if not deck:
            logger.error(f"Deck not found with ID: {deck_id}")
            raise NotFound(f"Deck with ID {deck_id} not found")

        saved_card = await self._store(self.flashcard_repo.create(card))
        logger.info(f"Created flashcard with ID: {saved_card.id} in deck: {deck_id}")
        self._emit(ChangeKind.CREATED, saved_card)
        return saved_card

    async def edit_flashcard(self, card_id: str, patch: FlashcardPatch) -> Flashcard:
        """
        Change the front and/or back of a flashcard.

        Scheduling state is left untouched.

        Raises:
            ValidationError: If an edited side would be empty
            NotFound: If the card does not exist
        """
        if patch.front is None and patch.back is None:
            raise ValidationError("Nothing to change: front and back are both unset")

        card = await self._require_card(card_id)
        updated = replace(patch.apply_to(card), updated_at=self.now_provider())
        updated.validate()

        saved = await self._store(self.flashcard_repo.update(updated))
        logger.info(f"Edited flashcard {card_id}")
        self._emit(ChangeKind.UPDATED, saved)
        return saved

    async def delete_flashcard(self, card_id: str) -> bool:
        """
        Delete a flashcard.

        Returns:
            True if the card was deleted, False if it did not exist
        """
        card = await self._store(self.flashcard_repo.get(card_id))
        if not card:
            logger.warning(f"Flashcard with ID {card_id} not found")
            return False

        deleted = await self._store(self.flashcard_repo.delete(card_id))
        if deleted:
            logger.info(f"Deleted flashcard {card_id} from deck {card.deck_id}")
            self._emit(ChangeKind.DELETED, card)
        return deleted

    async def start_study_session(
        self, deck_id: str, now: Optional[datetime.datetime] = None
    ) -> StudySession:
        """
        Start a study session over the due cards of a deck.

        Args:
            deck_id: The ID of the deck to study
            now: Reference instant for due cards (defaults to now)

        Returns:
            A new StudySession; completed at once if nothing is due

        Raises:
            NotFound: If the deck does not exist
        """
        if now is None:
            now = self.now_provider()

        deck = await self._store(self.deck_repo.get(deck_id))
        if not deck:
            logger.error(f"Deck {deck_id} not found")
            raise NotFound(f"Deck with ID {deck_id} not found")

        fetched = await self._store(
            self.flashcard_repo.get_due(deck_id, now, self.study_batch_size)
        )
        # Session cards are due at now, earliest first, at most one batch
        cards = select_due_cards(fetched, now, self.study_batch_size)
        if len(cards) != len(fetched):
            logger.warning(
                f"Store returned {len(fetched)} due cards for deck {deck_id}, kept {len(cards)}"
            )
        if not cards:
            logger.info(f"No due cards for deck {deck_id}")

        return StudySession(deck_id=deck_id, cards=cards, scheduler=self.scheduler, started_at=now)
