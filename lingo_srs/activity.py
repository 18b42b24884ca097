"""Daily streak tracking. Calendar days are compared in UTC."""
from datetime import datetime

from .models import ActivityState, as_utc

STREAK_GRACE_HOURS = 48


def record_activity(state: ActivityState, now: datetime) -> ActivityState:
    """
    Registers one activity ping.

    The streak only moves on the first ping of a new UTC calendar day: it is
    extended if the previous ping is at most 48 hours old, otherwise it
    restarts at 1. A learner who has never been active keeps a streak of 0
    until the first new-day transition.
    """
    now = as_utc(now)
    last = state.last_active_at

    if last is None:
        return ActivityState(last_active_at=now, streak=state.streak)

    if now.date() == last.date():
        return ActivityState(last_active_at=now, streak=state.streak)

    hours_since_last = (now - last).total_seconds() / 3600
    if hours_since_last <= STREAK_GRACE_HOURS:
        streak = state.streak + 1
    else:
        streak = 1

    return ActivityState(last_active_at=now, streak=streak)
