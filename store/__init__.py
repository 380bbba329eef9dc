"""Incident/report store with snapshot reads and optimistic units of work, plus the responder profile registry."""

from store.memory import IncidentStore, StoreSnapshot, UnitOfWork
from store.profiles import ProfileDirectory

__all__ = [
    "IncidentStore",
    "StoreSnapshot",
    "UnitOfWork",
    "ProfileDirectory",
]
