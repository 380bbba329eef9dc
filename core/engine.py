"""
IncidentService: the boundary the intake layer and the API call.

Wires clustering, lifecycle and geofence over one store and enforces who may
do what (role, ownership, geofence) explicitly on every call.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Optional

from clustering.assigner import ClusteringEngine
from clustering.time_proximity import utc_now
from core.config import Settings
from core.errors import InvalidInput, NotFound, Unauthorized
from core.models import (
    Caller,
    Category,
    GeoPoint,
    Incident,
    Report,
    ResponderProfile,
    Role,
    new_report_id,
)
from geofence.service import GeofenceService
from lifecycle.manager import Action, LifecycleManager
from spatial.index import CellIndex
from store.memory import IncidentStore
from store.profiles import ProfileDirectory

logger = logging.getLogger("incident_api.service")


@dataclass(frozen=True)
class SubmitResult:
    report: Report
    incident: Incident
    created: bool

    def to_dict(self):
        return {
            "report_id": self.report.report_id,
            "incident_id": self.incident.incident_id,
            "cluster_new": self.created,
        }


def _require_role(caller: Caller, role: Role) -> None:
    if caller.role is not role:
        raise Unauthorized(f"{role.value} role required")


class IncidentService:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[IncidentStore] = None,
        profiles: Optional[ProfileDirectory] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.settings = settings or Settings()
        self.clock = clock or utc_now
        self.store = store or IncidentStore(
            index=CellIndex(self.settings.index_resolutions),
            lock_timeout_s=self.settings.lock_timeout_s,
        )
        self.profiles = profiles or ProfileDirectory()
        self.clustering = ClusteringEngine(self.store, self.settings, clock=self.clock)
        self.lifecycle = LifecycleManager(self.store, clock=self.clock, max_retries=self.settings.max_retries)
        self.geofence = GeofenceService(self.store, self.settings)

    # -------------------------------------------------------------------------
    # Reporter side
    # -------------------------------------------------------------------------
    def submit_report(
        self,
        caller: Caller,
        location: GeoPoint,
        category="accident",
        media_ref: Optional[str] = None,
        is_witness: bool = False,
    ) -> SubmitResult:
        """Cluster and store one report. Raises InvalidInput / Unauthorized / Conflict / Unavailable."""
        _require_role(caller, Role.REPORTER)
        if not isinstance(location, GeoPoint):
            raise InvalidInput("location must be a GeoPoint")
        report = Report(
            report_id=new_report_id(),
            reporter_id=caller.caller_id,
            location=location,
            category=Category.parse(category),
            created_at=self.clock(),
            media_ref=(media_ref or None),
            is_witness=bool(is_witness),
        )
        stored, incident, created = self.clustering.cluster_and_record(report)
        logger.info("report stored report_id=%s reporter=%s incident_id=%s new=%s",
                    stored.report_id, stored.reporter_id, incident.incident_id, created)
        return SubmitResult(report=stored, incident=incident, created=created)

    def get_report(self, caller: Caller, report_id: str) -> Report:
        report = self.store.snapshot().get_report(report_id)
        if report is None:
            raise NotFound(f"report {report_id} not found")
        if report.reporter_id != caller.caller_id:
            raise Unauthorized("reports are only visible to the reporter who submitted them")
        return report

    def list_reports(self, caller: Caller) -> list[Report]:
        reports = self.store.snapshot().reports_by(caller.caller_id)
        return sorted(reports, key=lambda r: (r.created_at, r.report_id))

    # -------------------------------------------------------------------------
    # Public reads
    # -------------------------------------------------------------------------
    def get_incident_summary(self, incident_id: str) -> Incident:
        inc = self.store.snapshot().get_incident(incident_id)
        if inc is None:
            raise NotFound(f"incident {incident_id} not found")
        return inc

    def get_profile(self, responder_id: str) -> ResponderProfile:
        profile = self.profiles.get(responder_id)
        if profile is None:
            raise NotFound(f"profile {responder_id} not found")
        return profile

    def register_profile(self, caller: Caller, profile: ResponderProfile) -> ResponderProfile:
        """A responder registers or moves its own profile. Radius is capped by MAX_GEOFENCE_RADIUS_M."""
        _require_role(caller, Role.RESPONDER)
        if caller.caller_id != profile.responder_id:
            raise Unauthorized("responders may only manage their own profile")
        cap = self.settings.max_geofence_radius_m
        if profile.radius_m is not None and profile.radius_m > cap:
            raise InvalidInput(f"radius_m must not exceed {cap:.0f}")
        if profile.updated_at is None:
            profile = replace(profile, updated_at=self.clock())
        return self.profiles.register(profile)

    # -------------------------------------------------------------------------
    # Responder side
    # -------------------------------------------------------------------------
    def _responder_profile(self, caller: Caller) -> ResponderProfile:
        _require_role(caller, Role.RESPONDER)
        profile = self.profiles.get(caller.caller_id)
        if profile is None:
            raise Unauthorized(f"responder {caller.caller_id} has no registered location")
        return profile

    def radius_for(self, profile: ResponderProfile) -> float:
        return profile.radius_m if profile.radius_m is not None else self.settings.geofence_radius_m

    def nearby_incidents(
        self,
        caller: Caller,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[tuple[Incident, float]]:
        profile = self._responder_profile(caller)
        result = self.geofence.nearby_incidents(profile.location, self.radius_for(profile))
        return result.page(offset=offset, limit=limit)

    def _transition(self, caller: Caller, incident_id: str, action: Action) -> Incident:
        profile = self._responder_profile(caller)
        radius = self.radius_for(profile)

        def inside_geofence(incident: Incident) -> None:
            if not self.geofence.is_within(profile.location, incident, radius):
                raise Unauthorized(f"incident {incident_id} is outside responder {caller.caller_id}'s radius")

        return self.lifecycle.transition(incident_id, action, caller.caller_id, check=inside_geofence)

    def accept(self, caller: Caller, incident_id: str) -> Incident:
        return self._transition(caller, incident_id, Action.ACCEPT)

    def resolve(self, caller: Caller, incident_id: str) -> Incident:
        return self._transition(caller, incident_id, Action.RESOLVE)

    def mark_false_alarm(self, caller: Caller, incident_id: str) -> Incident:
        return self._transition(caller, incident_id, Action.MARK_FALSE_ALARM)
