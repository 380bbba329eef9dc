"""Pytest fixtures for incident clustering tests."""

import math
from datetime import datetime, timedelta, timezone

import pytest

from core.config import Settings
from core.engine import IncidentService
from core.models import Caller, GeoPoint, ResponderProfile, Role
from spatial.geo import EARTH_RADIUS_M

# Central London
BASE_LAT = 51.5074
BASE_LNG = -0.1278

METRES_PER_DEGREE = EARTH_RADIUS_M * math.pi / 180


def offset(north_m: float = 0.0, east_m: float = 0.0, lat: float = BASE_LAT, lng: float = BASE_LNG) -> GeoPoint:
    """Point north_m / east_m metres away from (lat, lng). Pure north offsets are exact in haversine."""
    dlat = north_m / METRES_PER_DEGREE
    dlng = east_m / (METRES_PER_DEGREE * math.cos(math.radians(lat)))
    return GeoPoint(lat + dlat, lng + dlng)


class FakeClock:
    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 1, 15, 14, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def service(settings, clock):
    """Fresh service on an empty store with a controllable clock."""
    return IncidentService(settings=settings, clock=clock)


@pytest.fixture
def reporter():
    return Caller(caller_id="user-1", role=Role.REPORTER)


@pytest.fixture
def other_reporter():
    return Caller(caller_id="user-2", role=Role.REPORTER)


def register_responder(service, responder_id: str, location: GeoPoint, **fields) -> Caller:
    """Register a responder's own profile and return its caller identity."""
    caller = Caller(caller_id=responder_id, role=Role.RESPONDER)
    service.register_profile(caller, ResponderProfile(responder_id=responder_id, location=location, **fields))
    return caller


@pytest.fixture
def hospital(service):
    """Responder registered at the base point with the default radius."""
    return register_responder(service, "hospital-1", offset(), full_name="St Thomas")


@pytest.fixture
def other_hospital(service):
    return register_responder(service, "hospital-2", offset(north_m=1000), full_name="Guy's")


@pytest.fixture
def app_client(service):
    """FastAPI TestClient bound to the fresh service."""
    from fastapi.testclient import TestClient
    import api.main as main_module
    main_module.service = service
    return TestClient(main_module.app)
