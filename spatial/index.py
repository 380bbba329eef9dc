"""
H3 cell index over incident locations.

Each id is stored under its cell at every configured resolution. A radius query
picks the finest resolution whose covering disk stays small, returns the ids in
that disk, and leaves the exact distance check to the caller.
"""

import logging
import math
import threading

import h3

logger = logging.getLogger("incident_api.spatial.index")

# Largest grid_disk radius (in rings) a query may expand to before falling back to a coarser resolution
MAX_RING = 12

# Hard cap on the disk a query may expand to at the coarsest resolution; wider radii must scan
MAX_QUERY_RING = 40


def point_to_cell(lat: float, lng: float, resolution: int) -> str:
    """Return the H3 cell id for (lat, lng) at the given resolution."""
    return h3.latlng_to_cell(lat, lng, resolution)


def ring_size(radius_m: float, resolution: int) -> int:
    """
    Number of rings around a cell that covers every point within radius_m.
    Uses the average edge length as the step, which undershoots the true centre
    spacing (sqrt(3) * edge) and absorbs cell size distortion.
    """
    edge_m = h3.average_hexagon_edge_length(resolution, unit="m")
    return int(math.ceil(radius_m / edge_m)) + 1


def cells_within(lat: float, lng: float, radius_m: float, resolution: int) -> set[str]:
    origin = point_to_cell(lat, lng, resolution)
    return set(h3.grid_disk(origin, ring_size(radius_m, resolution)))


class CellIndex:
    """Thread-safe incremental index: writes are visible to the next query, no rebuild."""

    def __init__(self, resolutions=(9, 6)):
        if not resolutions:
            raise ValueError("at least one resolution is required")
        # finest first
        self.resolutions = tuple(sorted(set(int(r) for r in resolutions), reverse=True))
        self._cells: dict[int, dict[str, set[str]]] = {r: {} for r in self.resolutions}
        self._size = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return self._size

    def insert(self, item_id: str, lat: float, lng: float) -> None:
        with self._lock:
            for res in self.resolutions:
                cell = point_to_cell(lat, lng, res)
                self._cells[res].setdefault(cell, set()).add(item_id)
            self._size += 1

    def resolution_for(self, radius_m: float) -> int:
        for res in self.resolutions:
            if ring_size(radius_m, res) <= MAX_RING:
                return res
        return self.resolutions[-1]

    def supports_radius(self, radius_m: float) -> bool:
        """False when even the coarsest resolution would need more than MAX_QUERY_RING rings."""
        return ring_size(radius_m, self.resolutions[-1]) <= MAX_QUERY_RING

    def query_radius(self, lat: float, lng: float, radius_m: float) -> set[str]:
        """
        Candidate ids whose cell may lie within radius_m of (lat, lng). Superset of the exact answer.
        Raises ValueError for radii the index does not support (see supports_radius).
        """
        if not self.supports_radius(radius_m):
            raise ValueError(f"radius {radius_m:.0f} m is too wide for the cell index")
        res = self.resolution_for(radius_m)
        cells = cells_within(lat, lng, radius_m, res)
        buckets = self._cells[res]
        out: set[str] = set()
        with self._lock:
            for cell in cells:
                ids = buckets.get(cell)
                if ids:
                    out.update(ids)
        logger.debug("index query res=%d cells=%d candidates=%d radius_m=%.0f", res, len(cells), len(out), radius_m)
        return out
