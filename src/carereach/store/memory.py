from __future__ import annotations

from carereach.log import get_logger
from carereach.store.base import CATEGORIES, EMPTY_GENERATION, Generation, GeoStore


class MemoryGeoStore(GeoStore):
    """Process-local store. Publishing a generation is a single dict assignment."""

    def __init__(self) -> None:
        super().__init__()
        self._generations: dict[str, Generation] = {c: EMPTY_GENERATION for c in CATEGORIES}

    def _current(self, category: str) -> Generation:
        return self._generations[category]

    def _publish(self, category: str, generation: Generation) -> None:
        self._generations[category] = generation
        get_logger().info(
            "Swapped %s generation=%s records=%s", category, generation.generation_id, len(generation.records)
        )
