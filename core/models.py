"""Reports, incidents and responder profiles. Records are immutable; updates go through dataclasses.replace."""

import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from core.errors import InvalidInput
from spatial.geo import validate_point


class Category(str, Enum):
    ACCIDENT = "accident"
    MEDICAL = "medical"
    FIRE = "fire"
    CRIME = "crime"
    OTHER = "other"

    @classmethod
    def parse(cls, value) -> "Category":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            allowed = ", ".join(c.value for c in cls)
            raise InvalidInput(f"unknown category {value!r} (expected one of: {allowed})") from None


class IncidentStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    RESOLVED = "resolved"
    FALSE_ALARM = "false_alarm"

    @property
    def is_open(self) -> bool:
        return self in OPEN_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


OPEN_STATUSES = frozenset({IncidentStatus.PENDING, IncidentStatus.ACCEPTED})
TERMINAL_STATUSES = frozenset({IncidentStatus.RESOLVED, IncidentStatus.FALSE_ALARM})


class Role(str, Enum):
    REPORTER = "reporter"
    RESPONDER = "responder"

    @classmethod
    def parse(cls, value) -> "Role":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidInput(f"unknown role {value!r}") from None


def _iso(ts: Optional[datetime]) -> Optional[str]:
    if ts is None:
        return None
    return ts.isoformat().replace("+00:00", "Z")


def new_incident_id() -> str:
    """Generate a new incident id (e.g. incident-<uuid4>)."""
    return "incident-" + uuid.uuid4().hex[:12]


def new_report_id() -> str:
    return "report-" + uuid.uuid4().hex[:12]


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lng: float

    def __post_init__(self):
        try:
            lat, lng = validate_point(self.lat, self.lng)
        except ValueError as e:
            raise InvalidInput(str(e)) from None
        object.__setattr__(self, "lat", lat)
        object.__setattr__(self, "lng", lng)

    def to_dict(self):
        return {"lat": round(self.lat, 6), "lng": round(self.lng, 6)}


@dataclass(frozen=True)
class Caller:
    """Already-authenticated identity, passed explicitly to every service call."""
    caller_id: str
    role: Role

    def __post_init__(self):
        if not self.caller_id or not str(self.caller_id).strip():
            raise InvalidInput("caller id is required")
        object.__setattr__(self, "role", Role.parse(self.role))


@dataclass(frozen=True)
class Report:
    report_id: str
    reporter_id: str
    location: GeoPoint
    category: Category
    created_at: datetime
    incident_id: Optional[str] = None  # assigned by the clustering engine before the report is stored
    media_ref: Optional[str] = None
    is_witness: bool = False

    def to_dict(self):
        return {
            "report_id": self.report_id,
            "reporter_id": self.reporter_id,
            "incident_id": self.incident_id,
            "location": self.location.to_dict(),
            "category": self.category.value,
            "media_ref": self.media_ref,
            "is_witness": self.is_witness,
            "created_at": _iso(self.created_at),
        }


@dataclass(frozen=True)
class Incident:
    incident_id: str
    location: GeoPoint  # location of the report that opened it
    created_at: datetime
    last_activity_at: datetime
    status: IncidentStatus = IncidentStatus.PENDING
    accepted_by: Optional[str] = None  # set iff status is accepted
    closed_by: Optional[str] = None  # responder that resolved / flagged it
    report_count: int = 1

    def __post_init__(self):
        if self.report_count < 1:
            raise ValueError("report_count must be >= 1")
        if self.last_activity_at < self.created_at:
            raise ValueError("last_activity_at must not precede created_at")
        if (self.accepted_by is not None) != (self.status is IncidentStatus.ACCEPTED):
            raise ValueError("accepted_by must be set iff status is accepted")

    @property
    def is_open(self) -> bool:
        return self.status.is_open

    def to_dict(self):
        return {
            "incident_id": self.incident_id,
            "location": self.location.to_dict(),
            "status": self.status.value,
            "accepted_by": self.accepted_by,
            "closed_by": self.closed_by,
            "created_at": _iso(self.created_at),
            "last_activity_at": _iso(self.last_activity_at),
            "report_count": self.report_count,
        }

    def to_public_dict(self):
        """Summary any caller may read (no responder references)."""
        return {
            "incident_id": self.incident_id,
            "location": self.location.to_dict(),
            "status": self.status.value,
            "created_at": _iso(self.created_at),
            "last_activity_at": _iso(self.last_activity_at),
            "report_count": self.report_count,
        }


@dataclass(frozen=True)
class ResponderProfile:
    """Registered responder (e.g. a hospital); its location anchors the geofence."""
    responder_id: str
    location: GeoPoint
    role: Role = Role.RESPONDER
    full_name: Optional[str] = None
    phone: Optional[str] = None
    radius_m: Optional[float] = None  # overrides the default geofence radius
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.responder_id or not str(self.responder_id).strip():
            raise InvalidInput("responder id is required")
        object.__setattr__(self, "role", Role.parse(self.role))
        if self.role is not Role.RESPONDER:
            raise InvalidInput("responder profiles must carry the responder role")
        if self.radius_m is not None and not self.radius_m > 0:
            raise InvalidInput("radius_m must be positive")

    def to_dict(self):
        return {
            "responder_id": self.responder_id,
            "role": self.role.value,
            "full_name": self.full_name,
            "location": self.location.to_dict(),
        }
