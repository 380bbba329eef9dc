"""
In-process incident store with snapshot reads and optimistic units of work.

- Committed incidents live in an immutable map published as one (seq, map) head;
  a snapshot is just a reference to the head, so readers never lock.
- Reports are insert-only and stamped with the commit seq that wrote them.
- A unit of work stages writes and remembers the version of every incident it
  updates. Commit takes the store lock with a timeout (Unavailable), rejects the
  unit if any of those versions moved (Conflict), indexes new incidents, then
  publishes the new head. Leaving the unit through an exception drops everything.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from core.errors import Conflict, NotFound, Unavailable
from core.models import Incident, Report
from spatial.geo import haversine_m, within_distance
from spatial.index import CellIndex

logger = logging.getLogger("incident_api.store")


class StoreSnapshot:
    """Consistent read view as of one commit."""

    def __init__(self, store: "IncidentStore", seq: int, incidents: dict):
        self._store = store
        self.seq = seq
        self._incidents = incidents  # id -> (version, Incident); never mutated after publish

    def __len__(self) -> int:
        return len(self._incidents)

    def get_incident(self, incident_id: str) -> Optional[Incident]:
        row = self._incidents.get(incident_id)
        return row[1] if row else None

    def version_of(self, incident_id: str) -> Optional[int]:
        row = self._incidents.get(incident_id)
        return row[0] if row else None

    def iter_incidents(self) -> Iterator[Incident]:
        for _, inc in self._incidents.values():
            yield inc

    def incidents_near(self, lat: float, lng: float, radius_m: float) -> list[tuple[Incident, float]]:
        """Incidents within radius_m of the point, with their distance. Index-backed unless the radius is too wide."""
        index = self._store.index
        if index.supports_radius(radius_m):
            candidates = (self.get_incident(iid) for iid in index.query_radius(lat, lng, radius_m))
        else:
            logger.debug("radius_m=%.0f beyond index range, scanning %d incidents", radius_m, len(self))
            candidates = self.iter_incidents()
        out = []
        for inc in candidates:
            if inc is None:
                continue  # committed after this snapshot
            d = haversine_m(lat, lng, inc.location.lat, inc.location.lng)
            if within_distance(d, radius_m):
                out.append((inc, d))
        return out

    def get_report(self, report_id: str) -> Optional[Report]:
        row = self._store._reports.get(report_id)
        if row is None or row[0] > self.seq:
            return None
        return row[1]

    def reports_by(self, reporter_id: str) -> list[Report]:
        ids = list(self._store._reports_by_reporter.get(reporter_id, ()))
        out = []
        for rid in ids:
            r = self.get_report(rid)
            if r is not None:
                out.append(r)
        return out


class UnitOfWork:
    """Staged writes over one snapshot. Obtain through IncidentStore.unit_of_work()."""

    def __init__(self, store: "IncidentStore", snapshot: StoreSnapshot):
        self._store = store
        self.snapshot = snapshot
        self.read_versions: dict[str, int] = {}
        self.new_incidents: dict[str, Incident] = {}
        self.updated_incidents: dict[str, Incident] = {}
        self.reports: list[Report] = []

    @property
    def is_empty(self) -> bool:
        return not (self.new_incidents or self.updated_incidents or self.reports)

    def get_incident(self, incident_id: str) -> Optional[Incident]:
        if incident_id in self.updated_incidents:
            return self.updated_incidents[incident_id]
        if incident_id in self.new_incidents:
            return self.new_incidents[incident_id]
        return self.snapshot.get_incident(incident_id)

    def get_incident_for_update(self, incident_id: str) -> Incident:
        inc = self.get_incident(incident_id)
        if inc is None:
            raise NotFound(f"incident {incident_id} not found")
        if incident_id not in self.new_incidents and incident_id not in self.read_versions:
            self.read_versions[incident_id] = self.snapshot.version_of(incident_id)
        return inc

    def incidents_near(self, lat: float, lng: float, radius_m: float) -> list[tuple[Incident, float]]:
        found = {inc.incident_id: (self.get_incident(inc.incident_id), d)
                 for inc, d in self.snapshot.incidents_near(lat, lng, radius_m)}
        for inc in self.new_incidents.values():
            d = haversine_m(lat, lng, inc.location.lat, inc.location.lng)
            if within_distance(d, radius_m):
                found[inc.incident_id] = (inc, d)
        return list(found.values())

    def add_incident(self, incident: Incident) -> None:
        self.new_incidents[incident.incident_id] = incident

    def update_incident(self, incident: Incident) -> None:
        iid = incident.incident_id
        if iid in self.new_incidents:
            self.new_incidents[iid] = incident
            return
        if iid not in self.read_versions:
            raise RuntimeError(f"incident {iid} updated without get_incident_for_update")
        self.updated_incidents[iid] = incident

    def add_report(self, report: Report) -> None:
        if not report.incident_id:
            raise ValueError("report must carry an incident id before it is stored")
        self.reports.append(report)


class IncidentStore:
    def __init__(self, index: Optional[CellIndex] = None, lock_timeout_s: float = 2.0):
        self.index = index if index is not None else CellIndex()
        self.lock_timeout_s = lock_timeout_s
        self._lock = threading.Lock()
        self._head: tuple[int, dict] = (0, {})
        self._reports: dict[str, tuple[int, Report]] = {}
        self._reports_by_reporter: dict[str, list[str]] = {}

    def snapshot(self) -> StoreSnapshot:
        seq, incidents = self._head
        return StoreSnapshot(self, seq, incidents)

    @contextmanager
    def unit_of_work(self) -> Iterator[UnitOfWork]:
        uow = UnitOfWork(self, self.snapshot())
        yield uow
        self.commit(uow)

    def commit(self, uow: UnitOfWork) -> int:
        """Apply a unit of work atomically. Returns the commit seq."""
        if uow.is_empty:
            return uow.snapshot.seq
        if not self._lock.acquire(timeout=self.lock_timeout_s):
            logger.warning("store commit timed out after %.2fs", self.lock_timeout_s)
            raise Unavailable("incident store busy, retry the request")
        try:
            seq, current = self._head
            for iid, version in uow.read_versions.items():
                row = current.get(iid)
                if row is None or row[0] != version:
                    logger.info("commit conflict incident_id=%s read_version=%s current=%s",
                                iid, version, row[0] if row else None)
                    raise Conflict(f"incident {iid} was modified concurrently")
            for iid in uow.new_incidents:
                if iid in current:
                    raise Conflict(f"incident id {iid} already exists")
            new_seq = seq + 1
            nxt = dict(current)
            for iid, inc in uow.new_incidents.items():
                nxt[iid] = (new_seq, inc)
            for iid, inc in uow.updated_incidents.items():
                nxt[iid] = (new_seq, inc)
            for report in uow.reports:
                if report.incident_id not in nxt:
                    raise NotFound(f"incident {report.incident_id} not found")
            # index before publishing so any snapshot that sees the incident can also find it
            for inc in uow.new_incidents.values():
                self.index.insert(inc.incident_id, inc.location.lat, inc.location.lng)
            for report in uow.reports:
                self._reports[report.report_id] = (new_seq, report)
                self._reports_by_reporter.setdefault(report.reporter_id, []).append(report.report_id)
            self._head = (new_seq, nxt)
            return new_seq
        finally:
            self._lock.release()
