"""Geofence queries: open incidents around a responder's registered location."""

from geofence.service import GeofenceService, NearbyIncidents

__all__ = ["GeofenceService", "NearbyIncidents"]
