"""
Incident status machine.

    pending --accept--> accepted --resolve--> resolved
    pending|accepted --mark_false_alarm--> false_alarm

resolved and false_alarm are terminal. Every transition refreshes last activity.
"""

import logging
from dataclasses import replace
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from clustering.time_proximity import utc_now
from core.errors import Conflict, InvalidTransition, Unauthorized
from core.models import Incident, IncidentStatus
from store.memory import IncidentStore

logger = logging.getLogger("incident_api.lifecycle")


class Action(str, Enum):
    ACCEPT = "accept"
    RESOLVE = "resolve"
    MARK_FALSE_ALARM = "mark_false_alarm"


# Every (action, status) pair is listed; None means the transition is rejected.
TRANSITIONS: dict[Action, dict[IncidentStatus, Optional[IncidentStatus]]] = {
    Action.ACCEPT: {
        IncidentStatus.PENDING: IncidentStatus.ACCEPTED,
        IncidentStatus.ACCEPTED: None,
        IncidentStatus.RESOLVED: None,
        IncidentStatus.FALSE_ALARM: None,
    },
    Action.RESOLVE: {
        IncidentStatus.PENDING: None,
        IncidentStatus.ACCEPTED: IncidentStatus.RESOLVED,
        IncidentStatus.RESOLVED: None,
        IncidentStatus.FALSE_ALARM: None,
    },
    Action.MARK_FALSE_ALARM: {
        IncidentStatus.PENDING: IncidentStatus.FALSE_ALARM,
        IncidentStatus.ACCEPTED: IncidentStatus.FALSE_ALARM,
        IncidentStatus.RESOLVED: None,
        IncidentStatus.FALSE_ALARM: None,
    },
}


def next_status(action: Action, current: IncidentStatus) -> IncidentStatus:
    target = TRANSITIONS[action][current]
    if target is None:
        raise InvalidTransition(f"cannot {action.value} an incident that is {current.value}")
    return target


def apply_transition(incident: Incident, action: Action, responder_id: str, now: datetime) -> Incident:
    """Return the incident after `action` by `responder_id`, or raise InvalidTransition / Unauthorized."""
    target = next_status(action, incident.status)
    if incident.status is IncidentStatus.ACCEPTED and incident.accepted_by != responder_id:
        raise Unauthorized(f"incident {incident.incident_id} was accepted by another responder")

    accepted_by = responder_id if target is IncidentStatus.ACCEPTED else None
    closed_by = responder_id if target.is_terminal else incident.closed_by
    return replace(
        incident,
        status=target,
        accepted_by=accepted_by,
        closed_by=closed_by,
        last_activity_at=max(now, incident.last_activity_at),
    )


class LifecycleManager:
    def __init__(
        self,
        store: IncidentStore,
        clock: Optional[Callable[[], datetime]] = None,
        max_retries: int = 3,
    ):
        self.store = store
        self.clock = clock or utc_now
        self.max_retries = max_retries

    def transition(
        self,
        incident_id: str,
        action: Action,
        responder_id: str,
        check: Optional[Callable[[Incident], None]] = None,
    ) -> Incident:
        """
        Run one transition in a unit of work. `check` sees the current incident
        before the transition (authorization hook) and may raise.
        On a concurrent update the transition is re-evaluated against fresh state.
        """
        attempts = self.max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                with self.store.unit_of_work() as uow:
                    current = uow.get_incident_for_update(incident_id)
                    if check is not None:
                        check(current)
                    updated = apply_transition(current, action, responder_id, self.clock())
                    uow.update_incident(updated)
            except Conflict:
                if attempt >= attempts:
                    raise
                logger.warning("transition conflict incident_id=%s action=%s attempt=%d",
                               incident_id, action.value, attempt)
                continue
            logger.info("incident %s %s -> %s by %s",
                        incident_id, current.status.value, updated.status.value, responder_id)
            return updated
        raise AssertionError("unreachable")

    def accept(self, incident_id: str, responder_id: str, check=None) -> Incident:
        return self.transition(incident_id, Action.ACCEPT, responder_id, check)

    def resolve(self, incident_id: str, responder_id: str, check=None) -> Incident:
        return self.transition(incident_id, Action.RESOLVE, responder_id, check)

    def mark_false_alarm(self, incident_id: str, responder_id: str, check=None) -> Incident:
        return self.transition(incident_id, Action.MARK_FALSE_ALARM, responder_id, check)
