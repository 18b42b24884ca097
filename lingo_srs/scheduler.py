import math
from datetime import datetime, timedelta, timezone
from typing import Hashable, List, Sequence, Tuple

from .models import ReviewState, MIN_EASE_FACTOR, DEFAULT_EASE_FACTOR, as_utc

MIN_QUALITY = 0
MAX_QUALITY = 5
REMEMBERED_QUALITY = 3

# Latest representable due date
MAX_DUE_AT = datetime.max.replace(tzinfo=timezone.utc)


def clamp_quality(quality: int) -> int:
    return max(MIN_QUALITY, min(MAX_QUALITY, int(quality)))


def new_review_state(now: datetime) -> ReviewState:
    """Scheduling fields of a card that has never been reviewed."""
    return ReviewState(interval=0, repetitions=0, ease_factor=DEFAULT_EASE_FACTOR, due_at=now)


def _round_half_up(value: float) -> int:
    # Intervals are positive, so floor(x + 0.5) rounds halves away from zero
    return int(math.floor(value + 0.5))


def add_days(moment: datetime, days: int) -> datetime:
    """`moment + days`, saturating at MAX_DUE_AT instead of overflowing."""
    try:
        return as_utc(moment) + timedelta(days=days)
    except OverflowError:
        return MAX_DUE_AT


def update_review(state: ReviewState, quality: int, now: datetime) -> ReviewState:
    """
    SuperMemo-2 (SM-2) update.

    Args:
        state: Current scheduling fields of the card.
        quality: The learner's rating of the recall (0-5). Values outside
                 the range are clamped, never rejected.
        now: Reference time of the review; the next due date is counted from it.

    Returns:
        ReviewState: A new state; `state` is left untouched.
    """
    quality = clamp_quality(quality)

    delta = 0.1 - (5 - quality) * (0.08 + (5 - quality) * 0.02)
    ease_factor = max(state.ease_factor + delta, MIN_EASE_FACTOR)

    if quality < REMEMBERED_QUALITY:
        repetitions = 0
        interval = 1
    else:
        repetitions = state.repetitions + 1
        if repetitions == 1:
            interval = 1
        elif repetitions == 2:
            interval = 6
        else:
            # previous interval times the new ease factor
            try:
                interval = max(1, _round_half_up(state.interval * ease_factor))
            except OverflowError:
                # past any float; the due date is already saturated
                interval = state.interval

    return ReviewState(
        interval=interval,
        repetitions=repetitions,
        ease_factor=ease_factor,
        due_at=add_days(now, interval),
    )


def select_due(items: Sequence[Tuple[Hashable, ReviewState]], now: datetime) -> List[Hashable]:
    """Ids of items due strictly before `now`, earliest first (ties keep input order)."""
    now = as_utc(now)
    due = [(item_id, state) for item_id, state in items if state.due_at < now]
    due.sort(key=lambda pair: pair[1].due_at)
    return [item_id for item_id, _ in due]


def count_due_within(items: Sequence[ReviewState], now: datetime, days: int) -> int:
    """Number of items due before `now + days`. Negative `days` counts nothing."""
    if days < 0:
        return 0
    horizon = add_days(now, days)
    return sum(1 for state in items if state.due_at < horizon)


def retention_rate(qualities: Sequence[int]) -> float:
    """Percentage of reviews scored as remembered (quality >= 3)."""
    if not qualities:
        return 0.0
    remembered = sum(1 for q in qualities if q >= REMEMBERED_QUALITY)
    return remembered * 100 / len(qualities)


def is_known(state: ReviewState) -> bool:
    # A word counts as learned after more than one successful repetition
    return state.repetitions > 1
