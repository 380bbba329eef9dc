"""Registry of responder profiles (read-mostly reference data)."""

import logging
import threading
from typing import Optional

from core.models import ResponderProfile

logger = logging.getLogger("incident_api.store.profiles")


class ProfileDirectory:
    def __init__(self):
        self._lock = threading.Lock()
        self._profiles: dict[str, ResponderProfile] = {}

    def register(self, profile: ResponderProfile) -> ResponderProfile:
        with self._lock:
            nxt = dict(self._profiles)
            nxt[profile.responder_id] = profile
            self._profiles = nxt
        logger.info("profile registered responder_id=%s lat=%s lng=%s",
                    profile.responder_id, profile.location.lat, profile.location.lng)
        return profile

    def get(self, responder_id: str) -> Optional[ResponderProfile]:
        return self._profiles.get(responder_id)

    def __len__(self) -> int:
        return len(self._profiles)
