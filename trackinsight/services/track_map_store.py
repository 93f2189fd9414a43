"""
In-memory store of reconstructed track maps, keyed by track name.

Thread-safe. Builds run outside the lock on a snapshot of the samples; the
finished map is swapped in under the lock, so readers see either the old
map or the new one and never a partial build.
"""

import logging
import threading
from typing import Dict, List, Optional

from ..features.track_map import TrackMap, TrackMapBuilder
from ..session.models import snapshot_samples

logger = logging.getLogger(__name__)


class TrackMapStore:
    """
    Cache of TrackMaps, one per track name.

    Maps for different tracks are never merged; replace() and rebuild()
    swap a whole map at once.
    """

    def __init__(self, builder: Optional[TrackMapBuilder] = None):
        """
        Initialize the store.

        Args:
            builder: TrackMapBuilder used by get_or_build() and rebuild()
        """
        self.builder = builder or TrackMapBuilder()
        self._maps: Dict[str, TrackMap] = {}
        self._lock = threading.Lock()

    def get(self, track_name: str) -> Optional[TrackMap]:
        with self._lock:
            return self._maps.get(track_name)

    def get_or_build(self, track_name: str, samples) -> TrackMap:
        """
        Return the cached map for a track, building it on first use.

        If two callers race on the same missing track, both may build but
        the first map stored wins and both get that one.
        """
        existing = self.get(track_name)
        if existing is not None:
            return existing

        built = self.builder.build(snapshot_samples(samples), track_name=track_name)
        with self._lock:
            current = self._maps.get(track_name)
            if current is not None:
                logger.debug(f"Track '{track_name}' was stored by another caller, discarding build")
                return current
            self._maps[track_name] = built
        logger.info(f"Cached track map for '{track_name}'")
        return built

    def replace(self, track_name: str, track_map: TrackMap) -> Optional[TrackMap]:
        """
        Atomically swap in a new map for a track.

        Returns:
            The map that was replaced, or None
        """
        with self._lock:
            previous = self._maps.get(track_name)
            self._maps[track_name] = track_map
        logger.info(f"Replaced track map for '{track_name}'")
        return previous

    def rebuild(self, track_name: str, samples) -> TrackMap:
        """Build a fresh map from samples and replace the cached one."""
        built = self.builder.build(snapshot_samples(samples), track_name=track_name)
        self.replace(track_name, built)
        return built

    def invalidate(self, track_name: str) -> bool:
        with self._lock:
            return self._maps.pop(track_name, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._maps.clear()

    def track_names(self) -> List[str]:
        with self._lock:
            return sorted(self._maps)

    def __contains__(self, track_name: str) -> bool:
        with self._lock:
            return track_name in self._maps

    def __len__(self) -> int:
        with self._lock:
            return len(self._maps)
