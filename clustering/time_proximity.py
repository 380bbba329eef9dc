"""Recency checks: is an incident's last activity inside the clustering window?"""

import logging
from datetime import datetime, timedelta, timezone

logger = logging.getLogger("incident_api.clustering.time_proximity")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def age_seconds(last_activity: datetime, now: datetime) -> float:
    return (as_utc(now) - as_utc(last_activity)).total_seconds()


def within_window(last_activity: datetime, now: datetime, window: timedelta) -> bool:
    """
    True when now - last_activity <= window. Activity stamped slightly in the
    future (clock skew between workers) counts as inside the window.
    """
    return age_seconds(last_activity, now) <= window.total_seconds()
