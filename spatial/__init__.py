"""Spatial helpers: haversine distance, coordinate validation, H3 cell index."""

from spatial.geo import haversine_m, validate_point, within_distance, EARTH_RADIUS_M
from spatial.index import CellIndex, point_to_cell, cells_within

__all__ = [
    "haversine_m",
    "validate_point",
    "within_distance",
    "EARTH_RADIUS_M",
    "CellIndex",
    "point_to_cell",
    "cells_within",
]
