"""Incident lifecycle: accept, resolve, mark false alarm."""

from lifecycle.manager import Action, LifecycleManager, TRANSITIONS, apply_transition, next_status

__all__ = [
    "Action",
    "LifecycleManager",
    "TRANSITIONS",
    "apply_transition",
    "next_status",
]
