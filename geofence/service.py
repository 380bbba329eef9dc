"""
Open incidents within a radius of a responder, nearest first.

Small stores are scanned linearly; past GEOFENCE_SCAN_THRESHOLD incidents the
H3 index narrows the candidates. Both paths use the same haversine distance.
"""

import heapq
import itertools
import logging
from typing import Iterator, Optional

from core.config import Settings
from core.errors import InvalidInput
from core.models import GeoPoint, Incident
from spatial.geo import haversine_m, within_distance
from store.memory import IncidentStore, StoreSnapshot

logger = logging.getLogger("incident_api.geofence")


class NearbyIncidents:
    """
    Lazy, finite, restartable result over one store snapshot.
    Each iteration yields (incident, distance_m) in ascending distance (ties by id).
    """

    def __init__(self, snapshot: StoreSnapshot, center: GeoPoint, radius_m: float, use_index: bool):
        self.snapshot = snapshot
        self.center = center
        self.radius_m = radius_m
        self.use_index = use_index

    def _candidates(self) -> list[tuple[Incident, float]]:
        lat, lng = self.center.lat, self.center.lng
        if self.use_index:
            found = self.snapshot.incidents_near(lat, lng, self.radius_m)
        else:
            found = []
            for inc in self.snapshot.iter_incidents():
                d = haversine_m(lat, lng, inc.location.lat, inc.location.lng)
                if within_distance(d, self.radius_m):
                    found.append((inc, d))
        return [(inc, d) for inc, d in found if inc.is_open]

    def __iter__(self) -> Iterator[tuple[Incident, float]]:
        heap = [(d, inc.incident_id, inc) for inc, d in self._candidates()]
        heapq.heapify(heap)
        while heap:
            d, _, inc = heapq.heappop(heap)
            yield inc, d

    def page(self, offset: int = 0, limit: Optional[int] = None) -> list[tuple[Incident, float]]:
        offset = max(0, offset)
        stop = None if limit is None else offset + max(0, limit)
        return list(itertools.islice(iter(self), offset, stop))


class GeofenceService:
    def __init__(self, store: IncidentStore, settings: Optional[Settings] = None):
        self.store = store
        self.settings = settings or Settings()

    def _radius(self, radius_m: Optional[float]) -> float:
        radius = self.settings.geofence_radius_m if radius_m is None else float(radius_m)
        if not 0 < radius <= self.settings.max_geofence_radius_m:
            raise InvalidInput(
                f"radius_m must be in (0, {self.settings.max_geofence_radius_m:.0f}], got {radius}"
            )
        return radius

    def nearby_incidents(self, center: GeoPoint, radius_m: Optional[float] = None) -> NearbyIncidents:
        """
        Read-only, lock-free: open incidents within radius_m (default GEOFENCE_RADIUS_M) of center.
        Radii above MAX_GEOFENCE_RADIUS_M raise InvalidInput.
        """
        radius = self._radius(radius_m)
        snapshot = self.store.snapshot()
        use_index = len(snapshot) >= self.settings.scan_threshold and self.store.index.supports_radius(radius)
        logger.debug("nearby query lat=%.5f lng=%.5f radius_m=%.0f incidents=%d index=%s",
                     center.lat, center.lng, radius, len(snapshot), use_index)
        return NearbyIncidents(snapshot, center, radius, use_index)

    def is_within(self, center: GeoPoint, incident: Incident, radius_m: Optional[float] = None) -> bool:
        radius = self._radius(radius_m)
        d = haversine_m(center.lat, center.lng, incident.location.lat, incident.location.lng)
        return within_distance(d, radius)
