"""Core records, error kinds and settings. The composed service lives in core.engine."""

from core.errors import (
    IncidentServiceError,
    InvalidInput,
    Unauthorized,
    NotFound,
    InvalidTransition,
    Conflict,
    Unavailable,
)
from core.models import Caller, Category, GeoPoint, Incident, IncidentStatus, Report, ResponderProfile, Role
from core.config import Settings

__all__ = [
    "IncidentServiceError",
    "InvalidInput",
    "Unauthorized",
    "NotFound",
    "InvalidTransition",
    "Conflict",
    "Unavailable",
    "Caller",
    "Category",
    "GeoPoint",
    "Incident",
    "IncidentStatus",
    "Report",
    "ResponderProfile",
    "Role",
    "Settings",
]
