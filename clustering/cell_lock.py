"""
Advisory locks keyed by coarse H3 cells (CLUSTER_CELL_LOCK=1).

A submission locks every cell within the join distance of its own cell, in
sorted order, so two reports close enough to share an incident always contend
on at least one lock. Lock entries are reference counted and dropped once no
submission holds or waits on them.
"""

import logging
import threading
from contextlib import contextmanager

import h3

from core.errors import Unavailable
from spatial.index import point_to_cell, ring_size

logger = logging.getLogger("incident_api.clustering.cell_lock")


class CellLocks:
    def __init__(self, resolution: int = 7, radius_m: float = 200.0, timeout_s: float = 2.0):
        self.resolution = resolution
        self.rings = ring_size(radius_m, resolution)
        self.timeout_s = timeout_s
        self._registry_lock = threading.Lock()
        self._locks: dict[str, list] = {}  # cell -> [Lock, users]

    def __len__(self) -> int:
        return len(self._locks)

    def _checkout(self, cell: str) -> threading.Lock:
        with self._registry_lock:
            entry = self._locks.get(cell)
            if entry is None:
                entry = self._locks[cell] = [threading.Lock(), 0]
            entry[1] += 1
            return entry[0]

    def _checkin(self, cell: str) -> None:
        with self._registry_lock:
            entry = self._locks[cell]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[cell]

    def cells_for(self, lat: float, lng: float) -> list[str]:
        origin = point_to_cell(lat, lng, self.resolution)
        return sorted(h3.grid_disk(origin, self.rings))

    @contextmanager
    def hold(self, lat: float, lng: float):
        checked_out: list[str] = []
        held: list[threading.Lock] = []
        try:
            for cell in self.cells_for(lat, lng):
                lock = self._checkout(cell)
                checked_out.append(cell)
                if not lock.acquire(timeout=self.timeout_s):
                    logger.warning("cell lock timeout cell=%s after %.2fs", cell, self.timeout_s)
                    raise Unavailable("clustering lock busy, retry the request")
                held.append(lock)
            yield
        finally:
            for lock in reversed(held):
                lock.release()
            for cell in checked_out:
                self._checkin(cell)
