"""
Runtime settings read from the environment (load .env first with python-dotenv).

- CLUSTER_MAX_DISTANCE_M: max metres between a report and an incident to join it (default 200).
- CLUSTER_WINDOW_MINUTES: max minutes since the incident's last activity (default 20).
- CLUSTER_MAX_RETRIES: retries of a submission after a store conflict (default 3).
- CLUSTER_CELL_LOCK: 1 to serialize nearby submissions with a coarse-cell lock (default 0).
- CLUSTER_LOCK_RESOLUTION: H3 resolution of the lock cells (default 7).
- GEOFENCE_RADIUS_M: default responder radius (default 15000, at most MAX_GEOFENCE_RADIUS_M).
- MAX_GEOFENCE_RADIUS_M: largest radius a profile or query may use (default 100000).
- GEOFENCE_SCAN_THRESHOLD: below this many incidents geofence does a linear scan (default 500).
- INDEX_RESOLUTIONS: comma-separated H3 resolutions of the spatial index (default 9,6).
- STORE_LOCK_TIMEOUT_S: max seconds to wait for the store commit lock (default 2.0).
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import timedelta

logger = logging.getLogger("incident_api.config")

DEFAULT_MAX_DISTANCE_M = 200.0
DEFAULT_WINDOW_MINUTES = 20.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_LOCK_RESOLUTION = 7
DEFAULT_GEOFENCE_RADIUS_M = 15_000.0
DEFAULT_MAX_GEOFENCE_RADIUS_M = 100_000.0
DEFAULT_SCAN_THRESHOLD = 500
DEFAULT_INDEX_RESOLUTIONS = (9, 6)
DEFAULT_LOCK_TIMEOUT_S = 2.0


def _env_float(name: str, default: float, lo: float | None = None, hi: float | None = None) -> float:
    v = os.environ.get(name)
    if v is None or v.strip() == "":
        return default
    try:
        x = float(v.strip())
    except ValueError:
        logger.warning("ignoring invalid %s=%r", name, v)
        return default
    if lo is not None:
        x = max(lo, x)
    if hi is not None:
        x = min(hi, x)
    return x


def _env_int(name: str, default: int, lo: int | None = None, hi: int | None = None) -> int:
    return int(_env_float(name, default, lo, hi))


def _env_bool(name: str, default: bool = False) -> bool:
    v = os.environ.get(name)
    if v is None or v.strip() == "":
        return default
    return v.strip().lower() in ("1", "true", "yes", "on")


def _parse_resolutions(s: str | None) -> tuple[int, ...] | None:
    if not s or not s.strip():
        return None
    try:
        res = tuple(int(p.strip()) for p in s.split(",") if p.strip())
    except ValueError:
        return None
    if not res or any(r < 0 or r > 15 for r in res):
        return None
    return res


@dataclass(frozen=True)
class Settings:
    max_distance_m: float = DEFAULT_MAX_DISTANCE_M
    window_minutes: float = DEFAULT_WINDOW_MINUTES
    max_retries: int = DEFAULT_MAX_RETRIES
    cell_lock: bool = False
    lock_resolution: int = DEFAULT_LOCK_RESOLUTION
    geofence_radius_m: float = DEFAULT_GEOFENCE_RADIUS_M
    max_geofence_radius_m: float = DEFAULT_MAX_GEOFENCE_RADIUS_M
    scan_threshold: int = DEFAULT_SCAN_THRESHOLD
    index_resolutions: tuple[int, ...] = field(default=DEFAULT_INDEX_RESOLUTIONS)
    lock_timeout_s: float = DEFAULT_LOCK_TIMEOUT_S

    @property
    def window(self) -> timedelta:
        return timedelta(minutes=self.window_minutes)

    @classmethod
    def from_env(cls) -> "Settings":
        resolutions = _parse_resolutions(os.environ.get("INDEX_RESOLUTIONS"))
        max_radius = _env_float("MAX_GEOFENCE_RADIUS_M", DEFAULT_MAX_GEOFENCE_RADIUS_M, lo=1.0, hi=1_000_000.0)
        return cls(
            max_distance_m=_env_float("CLUSTER_MAX_DISTANCE_M", DEFAULT_MAX_DISTANCE_M, lo=0.0),
            window_minutes=_env_float("CLUSTER_WINDOW_MINUTES", DEFAULT_WINDOW_MINUTES, lo=0.0),
            max_retries=_env_int("CLUSTER_MAX_RETRIES", DEFAULT_MAX_RETRIES, lo=0, hi=20),
            cell_lock=_env_bool("CLUSTER_CELL_LOCK"),
            lock_resolution=_env_int("CLUSTER_LOCK_RESOLUTION", DEFAULT_LOCK_RESOLUTION, lo=0, hi=15),
            geofence_radius_m=_env_float("GEOFENCE_RADIUS_M", min(DEFAULT_GEOFENCE_RADIUS_M, max_radius), lo=1.0, hi=max_radius),
            max_geofence_radius_m=max_radius,
            scan_threshold=_env_int("GEOFENCE_SCAN_THRESHOLD", DEFAULT_SCAN_THRESHOLD, lo=0),
            index_resolutions=resolutions or DEFAULT_INDEX_RESOLUTIONS,
            lock_timeout_s=_env_float("STORE_LOCK_TIMEOUT_S", DEFAULT_LOCK_TIMEOUT_S, lo=0.01),
        )

    def to_dict(self):
        return {
            "max_distance_m": self.max_distance_m,
            "window_minutes": self.window_minutes,
            "max_retries": self.max_retries,
            "cell_lock": self.cell_lock,
            "lock_resolution": self.lock_resolution,
            "geofence_radius_m": self.geofence_radius_m,
            "max_geofence_radius_m": self.max_geofence_radius_m,
            "scan_threshold": self.scan_threshold,
            "index_resolutions": list(self.index_resolutions),
            "lock_timeout_s": self.lock_timeout_s,
        }
