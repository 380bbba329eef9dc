"""
Assign a new report to the nearest open incident or open a new one.

Tunable via env (see core.config):
- CLUSTER_MAX_DISTANCE_M: max metres between report and incident location (default 200).
- CLUSTER_WINDOW_MINUTES: max minutes since the incident's last activity (default 20).
- CLUSTER_MAX_RETRIES: re-runs of the whole search-and-write after a store conflict (default 3).
- CLUSTER_CELL_LOCK: serialize nearby submissions so simultaneous first reports
  cannot open two incidents (default off).
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable, Optional

from clustering.cell_lock import CellLocks
from clustering.time_proximity import utc_now, within_window
from core.config import Settings
from core.errors import Conflict
from core.models import Incident, IncidentStatus, Report, new_incident_id
from spatial.geo import within_distance
from store.memory import IncidentStore, UnitOfWork

logger = logging.getLogger("incident_api.clustering.assigner")


def is_candidate(incident: Incident, distance_m: float, now: datetime, settings: Settings) -> bool:
    """Open, close enough and recently active."""
    if not incident.is_open:
        return False
    if not within_distance(distance_m, settings.max_distance_m):
        return False
    return within_window(incident.last_activity_at, now, settings.window)


def find_nearest_open_incident(
    uow: UnitOfWork,
    report: Report,
    now: datetime,
    settings: Settings,
) -> tuple[Optional[Incident], float]:
    """
    Return (incident, distance_m) of the closest candidate, or (None, 0.0).
    Equidistant candidates resolve to the lowest incident id.
    """
    loc = report.location
    best: Optional[Incident] = None
    best_key = None
    for inc, dist in uow.incidents_near(loc.lat, loc.lng, settings.max_distance_m):
        if not is_candidate(inc, dist, now, settings):
            continue
        key = (dist, inc.incident_id)
        if best_key is None or key < best_key:
            best, best_key = inc, key
    if best is None:
        return None, 0.0
    return best, best_key[0]


class ClusteringEngine:
    def __init__(
        self,
        store: IncidentStore,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.settings = settings or Settings()
        self.clock = clock or utc_now
        self.cell_locks: Optional[CellLocks] = None
        if self.settings.cell_lock:
            self.cell_locks = CellLocks(
                resolution=self.settings.lock_resolution,
                radius_m=self.settings.max_distance_m,
                timeout_s=self.settings.lock_timeout_s,
            )

    def assign_cluster(self, uow: UnitOfWork, report: Report, now: datetime) -> tuple[Incident, bool]:
        """
        Join the nearest open incident (bump count and last activity) or stage a new one.
        Returns (incident as staged, created). Must run inside the unit of work that stores the report.
        """
        found, dist = find_nearest_open_incident(uow, report, now, self.settings)
        if found is not None:
            current = uow.get_incident_for_update(found.incident_id)
            updated = replace(
                current,
                report_count=current.report_count + 1,
                last_activity_at=max(now, current.last_activity_at),
            )
            uow.update_incident(updated)
            logger.info("cluster assigned report_id=%s incident_id=%s distance_m=%.1f count=%d",
                        report.report_id, updated.incident_id, dist, updated.report_count)
            return updated, False

        incident = Incident(
            incident_id=new_incident_id(),
            location=report.location,
            status=IncidentStatus.PENDING,
            created_at=now,
            last_activity_at=now,
            report_count=1,
        )
        uow.add_incident(incident)
        logger.info("cluster created new incident_id=%s for report_id=%s", incident.incident_id, report.report_id)
        return incident, True

    def _attempt(self, report: Report) -> tuple[Report, Incident, bool]:
        with self.store.unit_of_work() as uow:
            now = self.clock()
            incident, created = self.assign_cluster(uow, report, now)
            stored = replace(report, incident_id=incident.incident_id)
            uow.add_report(stored)
        return stored, incident, created

    def _attempt_with_retries(self, report: Report) -> tuple[Report, Incident, bool]:
        attempts = self.settings.max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                return self._attempt(report)
            except Conflict:
                if attempt >= attempts:
                    logger.warning("cluster conflict report_id=%s retries exhausted (%d)", report.report_id, attempts)
                    raise
                logger.warning("cluster conflict report_id=%s attempt=%d, re-running search", report.report_id, attempt)
        raise AssertionError("unreachable")

    def cluster_and_record(self, report: Report) -> tuple[Report, Incident, bool]:
        """
        Resolve the report's incident and store both in one atomic unit.
        Returns (stored report, incident after this report, created).
        """
        if self.cell_locks is None:
            return self._attempt_with_retries(report)
        with self.cell_locks.hold(report.location.lat, report.location.lng):
            return self._attempt_with_retries(report)
