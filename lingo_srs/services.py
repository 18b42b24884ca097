import logging
import threading
import uuid
from datetime import timedelta
from typing import Dict, List, Optional

from .activity import record_activity
from .cache import CachedCardStore, TTLCache
from .config import Settings
from .models import ActivityState, Card, CardCreate, CardUpdate, DashboardStats, utcnow
from .scheduler import (
    clamp_quality,
    count_due_within,
    is_known,
    new_review_state,
    retention_rate,
    select_due,
    update_review,
)
from .store import ActivityStore, CardStore, ReviewLog


class FlashcardService:
    def __init__(self, settings: Settings, clock=utcnow):
        self.settings = settings
        self.clock = clock
        self.cards = CachedCardStore(
            CardStore(settings.cards_path, clock=clock),
            TTLCache(ttl=timedelta(seconds=settings.cache_ttl_seconds), clock=clock),
        )
        self.activity = ActivityStore(settings.activity_path)
        self.review_log = ReviewLog(settings.review_log_path)
        # read-update-write cycles on the CSV files are serialized
        self._lock = threading.Lock()

    def load_data(self) -> bool:
        """Loads all tables from disk."""
        loaded = self.cards.store.load()
        self.activity.load()
        self.review_log.load()
        self.cards.cache.clear()
        if loaded:
            logging.info(f"Loaded {len(self.cards.list_cards())} cards from {self.settings.cards_path}")
        return loaded

    # --- Cards ---

    def list_cards(
        self,
        category: Optional[str] = None,
        difficulty: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Card]:
        with self._lock:
            if category is None and difficulty is None and limit is None and not offset:
                return self.cards.list_cards()
            return self.cards.query_cards(category, difficulty, limit, offset)

    def get_card(self, card_id: str) -> Optional[Card]:
        with self._lock:
            return self.cards.get_card(card_id)

    def add_card(self, data: CardCreate) -> Card:
        card = Card(
            id=str(uuid.uuid4()),
            **data.model_dump(),
            **new_review_state(self.clock()).model_dump(),
        )
        with self._lock:
            self.cards.add_card(card)
        logging.info(f"Added card {card.id}")
        return card

    def update_card(self, card_id: str, updates: CardUpdate) -> Optional[Card]:
        with self._lock:
            card = self.cards.get_card(card_id)
            if card is None:
                return None
            card = Card.model_validate({**card.model_dump(), **updates.model_dump(exclude_none=True)})
            self.cards.save_card(card)
        return card

    def delete_card(self, card_id: str) -> bool:
        # Soft delete
        with self._lock:
            card = self.cards.get_card(card_id)
            if card is None:
                return False
            self.cards.save_card(card.model_copy(update={'removed': 1}))
        logging.info(f"Removed card {card_id}")
        return True

    # --- Reviews ---

    def review_card(self, card_id: str, quality: int) -> Optional[Card]:
        """Applies one review to a card and persists the new schedule."""
        quality = clamp_quality(quality)
        now = self.clock()
        with self._lock:
            card = self.cards.get_card(card_id)
            if card is None:
                logging.warning(f"Review for unknown card {card_id}")
                return None

            state = update_review(card.review_state(), quality, now)
            card = card.model_copy(update={**state.model_dump(), 'last_quality': quality})
            self.cards.save_card(card)
            self.review_log.append(card_id, quality, now)

        logging.info(
            f"Reviewed {card_id}: quality={quality} interval={card.interval} "
            f"repetitions={card.repetitions} ease={card.ease_factor:.2f}"
        )
        return card

    def due_card_ids(self) -> List[str]:
        with self._lock:
            cards = self.cards.list_cards()
        return select_due([(c.id, c) for c in cards], self.clock())

    def forecast(self, days: int) -> int:
        with self._lock:
            cards = self.cards.list_cards()
        return count_due_within(cards, self.clock(), days)

    def reset_progress(self) -> int:
        with self._lock:
            count = self.cards.reset_progress(self.clock())
            self.review_log.clear()
            self.activity.reset_streaks()
        logging.info(f"Reset scheduling of {count} cards")
        return count

    # --- Learner activity ---

    def record_activity(self, learner_id: str) -> ActivityState:
        with self._lock:
            state = record_activity(self.activity.get(learner_id), self.clock())
            self.activity.put(learner_id, state)
        return state

    def get_stats(self, learner_id: Optional[str] = None) -> DashboardStats:
        with self._lock:
            cards = self.cards.list_cards()
            streak = self.activity.get(learner_id).streak if learner_id else 0
            qualities = self.review_log.recent_qualities(self.settings.retention_window)
        now = self.clock()

        return DashboardStats(
            total_cards=len(cards),
            due_now=count_due_within(cards, now, 0),
            due_within=count_due_within(cards, now, self.settings.forecast_days),
            forecast_days=self.settings.forecast_days,
            known_cards=sum(1 for c in cards if is_known(c)),
            retention_rate=retention_rate(qualities),
            streak=streak,
            categories=category_breakdown(cards),
        )


def category_breakdown(cards: List[Card]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for card in cards:
        counts[card.category] = counts.get(card.category, 0) + 1
    return counts
