"""
Change notifications for decks and flashcards.

Every mutation publishes a typed ChangeEvent on one of the signals below
instead of invalidating cached views wholesale. Consumers subscribe to the
signals they care about and recompute only what the event names.

Usage:
    # Publisher
    publish(deck_changed, self, event=ChangeEvent(EntityType.DECK, ChangeKind.CREATED, (deck.id,)))

    # Subscriber
    @card_reviewed.connect
    def on_card_reviewed(sender, event, **kwargs):
        ...
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from blinker import Namespace

logger = logging.getLogger("flashdeck")

flashdeck_signals = Namespace()

# Fired after a deck is created, updated or deleted
# Payload: event (ChangeEvent with entity DECK)
deck_changed = flashdeck_signals.signal("deck_changed")

# Fired after a flashcard's content is created, edited or deleted
# Payload: event (ChangeEvent with entity FLASHCARD)
flashcard_changed = flashdeck_signals.signal("flashcard_changed")

# Fired after a review has been persisted
# Payload: event (ChangeEvent with kind REVIEWED), was_correct (bool)
card_reviewed = flashdeck_signals.signal("card_reviewed")

# Fired when the last card of a study session has been answered
# Payload: event (ChangeEvent naming the reviewed card ids), summary (dict)
session_completed = flashdeck_signals.signal("session_completed")

ALL_SIGNALS = (deck_changed, flashcard_changed, card_reviewed, session_completed)


def publish(signal, sender, **kwargs) -> None:
    """
    Deliver a signal to every connected receiver.

    A receiver that raises is logged and skipped. The exception never reaches
    the publisher, whose change is already stored.
    """
    for receiver in signal.receivers_for(sender):
        try:
            receiver(sender, **kwargs)
        except Exception as e:
            name = getattr(receiver, "__qualname__", repr(receiver))
            logger.error(f"Receiver {name} of {signal.name} failed: {e}", exc_info=True)


class EntityType(Enum):
    DECK = "deck"
    FLASHCARD = "flashcard"


class ChangeKind(Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    REVIEWED = "reviewed"


@dataclass(frozen=True)
class ChangeEvent:
    """
    Describes one change to stored records.

    Attributes:
        entity: Type of the changed records
        kind: What happened to them
        ids: IDs of every affected record
        deck_id: Deck whose statistics are affected, if any
    """

    entity: EntityType
    kind: ChangeKind
    ids: Tuple[str, ...]
    deck_id: Optional[str] = None


class ChangeTracker:
    """
    Collects change events until they are drained.

    Intended for a presentation layer that refreshes views between user
    actions: connect once, then call drain() to learn what went stale.
    """

    def __init__(self):
        self.pending: List[ChangeEvent] = []

    def connect(self) -> "ChangeTracker":
        for sig in ALL_SIGNALS:
            sig.connect(self._record)
        return self

    def disconnect(self) -> None:
        for sig in ALL_SIGNALS:
            sig.disconnect(self._record)

    def _record(self, sender, event: ChangeEvent, **kwargs) -> None:
        logger.debug(f"Recorded {event.kind.value} of {event.entity.value} {event.ids}")
        self.pending.append(event)

    def drain(self) -> List[ChangeEvent]:
        """Return and forget all recorded events."""
        events, self.pending = self.pending, []
        return events

    def stale_deck_ids(self) -> List[str]:
        """IDs of decks whose statistics may have changed, in first-seen order."""
        seen: List[str] = []
        for event in self.pending:
            candidates = event.ids if event.entity is EntityType.DECK else ()
            if event.deck_id:
                candidates = candidates + (event.deck_id,)
            for deck_id in candidates:
                if deck_id not in seen:
                    seen.append(deck_id)
        return seen
