import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from .models import Card, utcnow

CARDS_KEY = "cards"


class TTLCache:
    """In-memory cache whose entries expire `ttl` after they were stored."""

    def __init__(self, ttl: timedelta = timedelta(minutes=5), clock: Callable[[], datetime] = utcnow):
        self.ttl = ttl
        self.clock = clock
        self._entries: Dict[str, Tuple[datetime, Any]] = {}

    def _is_valid(self, key: str) -> bool:
        entry = self._entries.get(key)
        if entry is None:
            return False
        stored_at, _ = entry
        if self.clock() - stored_at >= self.ttl:
            del self._entries[key]
            return False
        return True

    def get(self, key: str, default: Any = None) -> Any:
        if not self._is_valid(key):
            return default
        return self._entries[key][1]

    def set(self, key: str, value: Any):
        self._entries[key] = (self.clock(), value)

    def get_or_load(self, key: str, loader: Callable[[], Any], bypass: bool = False) -> Any:
        if bypass:
            self.invalidate(key)
        elif self._is_valid(key):
            return self._entries[key][1]

        logging.debug(f"Cache miss for {key}")
        value = loader()
        self.set(key, value)
        return value

    def invalidate(self, key: str):
        self._entries.pop(key, None)

    def invalidate_prefix(self, prefix: str):
        for key in [k for k in self._entries if k.startswith(prefix)]:
            del self._entries[key]

    def clear(self):
        self._entries.clear()
        logging.debug("Cache cleared")

    def __contains__(self, key: str) -> bool:
        return self._is_valid(key)


class CachedCardStore:
    """Wraps a CardStore; reads are served from the cache until a write invalidates them."""

    def __init__(self, store, cache: Optional[TTLCache] = None):
        self.store = store
        self.cache = cache or TTLCache()

    def list_cards(self, bypass_cache: bool = False) -> List[Card]:
        return self.cache.get_or_load(CARDS_KEY, self.store.list_cards, bypass=bypass_cache)

    def query_cards(
        self,
        category: Optional[str] = None,
        difficulty: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Card]:
        key = f"{CARDS_KEY}:{category}:{difficulty}:{limit}:{offset}"
        return self.cache.get_or_load(key, lambda: self.store.query_cards(category, difficulty, limit, offset))

    def get_card(self, card_id: str) -> Optional[Card]:
        return self.store.get_card(card_id)

    def add_card(self, card: Card) -> Card:
        saved = self.store.add_card(card)
        self.cache.invalidate_prefix(CARDS_KEY)
        return saved

    def save_card(self, card: Card) -> bool:
        saved = self.store.save_card(card)
        self.cache.invalidate_prefix(CARDS_KEY)
        return saved

    def reset_progress(self, now: datetime) -> int:
        count = self.store.reset_progress(now)
        self.cache.clear()
        return count
