from __future__ import annotations

from typing import Any, Mapping, Union

from carereach.catalogs.records import Accessibility

BASE_SCORE = 50
ROAD_ACCESS_POINTS = 20
PUBLIC_TRANSPORT_POINTS = 20
POINTS_PER_TRANSPORT_OPTION = 5
MAX_SCORE = 100

AccessibilityLike = Union[Accessibility, Mapping[str, Any], None]


def _flag(data: Mapping[str, Any], camel: str, snake: str) -> bool:
    return bool(data.get(camel, data.get(snake, False)))


def _as_accessibility(access: AccessibilityLike) -> Accessibility:
    # A bare mapping (or None) scores only what it states: absent keys count as "no".
    if isinstance(access, Accessibility):
        return access
    data = access or {}
    return Accessibility(
        road_access=_flag(data, "roadAccess", "road_access"),
        public_transport=_flag(data, "publicTransport", "public_transport"),
        transport_options=tuple(data.get("transportOptions", data.get("transport_options")) or ()),
    )


def score_components(access: AccessibilityLike) -> dict[str, int]:
    a = _as_accessibility(access)
    return {
        "base": BASE_SCORE,
        "road_access": ROAD_ACCESS_POINTS if a.road_access else 0,
        "public_transport": PUBLIC_TRANSPORT_POINTS if a.public_transport else 0,
        # `transport_options` is already de-duplicated by `Accessibility`.
        "transport_options": POINTS_PER_TRANSPORT_OPTION * len(a.transport_options),
    }


def accessibility_score(access: AccessibilityLike) -> int:
    """
    Additive 0-100 score: base 50, +20 road access, +20 public transport,
    +5 per distinct transport option, clamped at 100.
    `None` and mappings score only the keys they carry, so `None` and `{}` both score
    the bare base. `Accessibility()` carries the record default of road access (70).
    """
    return min(MAX_SCORE, sum(score_components(access).values()))
