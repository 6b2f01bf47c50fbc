from __future__ import annotations

from typing import Any

from carereach.scoring.accessibility import score_components
from carereach.scoring.ranking import ACCESSIBILITY_WEIGHT, DISTANCE_WEIGHT, RankedFacility


def build_explain_payload(ranked: RankedFacility) -> dict[str, Any]:
    components = score_components(ranked.record.accessibility)
    return {
        "method": "distance_plus_accessibility_deficit",
        "distance_m": round(ranked.distance_m, 1),
        "accessibility_score": ranked.accessibility_score,
        "accessibility_components": components,
        "weights": {"distance": DISTANCE_WEIGHT, "accessibility_deficit": ACCESSIBILITY_WEIGHT},
        "combined_score": round(ranked.combined_score, 2),
    }


def build_explain_text(payload: dict[str, Any]) -> str:
    parts = [
        f"{float(payload.get('distance_m', 0.0)):.0f} m away,",
        f"accessibility {int(payload.get('accessibility_score', 0))}/100",
    ]
    comps = payload.get("accessibility_components", {}) or {}
    drivers = [name.replace("_", " ") for name, pts in comps.items() if name != "base" and int(pts) > 0]
    if drivers:
        parts.append("(" + ", ".join(drivers) + ")")
    parts.append(f"-> combined {float(payload.get('combined_score', 0.0)):.1f}.")
    return " ".join(parts)
