"""Clustering: nearest open incident within distance and recency → join it or open a new one."""

from clustering.time_proximity import within_window, utc_now
from clustering.assigner import (
    ClusteringEngine,
    find_nearest_open_incident,
    is_candidate,
)
from clustering.cell_lock import CellLocks

__all__ = [
    "within_window",
    "utc_now",
    "ClusteringEngine",
    "find_nearest_open_incident",
    "is_candidate",
    "CellLocks",
]
