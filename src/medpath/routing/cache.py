"""Per-source cache of shortest-path results keyed by graph version."""

from __future__ import annotations

import threading
from collections import OrderedDict

from medpath.graph.models import GraphSnapshot
from medpath.routing.pathfinder import ShortestPaths, shortest_paths


class PathCache:
    """LRU cache of ``ShortestPaths`` per source node.

    An entry is only served while its version matches the snapshot's
    topology version, so any node or edge mutation invalidates it lazily
    on the next lookup.
    """

    def __init__(self, max_sources: int = 256) -> None:
        self._max_sources = max_sources
        self._entries: OrderedDict[int, ShortestPaths] = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get_or_compute(self, snapshot: GraphSnapshot, source_id: int) -> ShortestPaths:
        with self._lock:
            cached = self._entries.get(source_id)
            if cached is not None and cached.version == snapshot.version:
                self._entries.move_to_end(source_id)
                self.hits += 1
                return cached
            self.misses += 1

        result = shortest_paths(snapshot, source_id)

        with self._lock:
            self._entries[source_id] = result
            self._entries.move_to_end(source_id)
            while len(self._entries) > self._max_sources:
                self._entries.popitem(last=False)
        return result

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
