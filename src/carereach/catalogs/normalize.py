"""
Provider vocabulary -> canonical vocabulary.

Providers describe the same facility as `amenity=doctors`, `Health Post`, `medical-centre`
or `Upazila Health Complex`. These helpers fold that into the closed enums from
`carereach.catalogs.records`. None of them raise: unknown input maps to a documented
fallback so one odd row never sinks an ingestion run.
"""

from __future__ import annotations

import re
from typing import Any

from carereach.catalogs.records import (
    Accessibility,
    Availability,
    Contact,
    Facility,
    FacilityType,
    GeoPoint,
    WorkerType,
    make_record_id,
)

FACILITY_TYPE_FALLBACK = FacilityType.CLINIC
WORKER_TYPE_FALLBACK = WorkerType.VOLUNTEER
AVAILABILITY_FALLBACK = Availability.FULL_TIME

_FACILITY_TYPES: dict[str, FacilityType] = {
    "hospital": FacilityType.HOSPITAL,
    "clinic": FacilityType.CLINIC,
    "doctors": FacilityType.CLINIC,
    "doctor": FacilityType.CLINIC,
    "pharmacy": FacilityType.CLINIC,
    "dentist": FacilityType.CLINIC,
    "medical_centre": FacilityType.CLINIC,
    "medical_center": FacilityType.CLINIC,
    "health_centre": FacilityType.CLINIC,
    "health_center": FacilityType.CLINIC,
    "health_post": FacilityType.COMMUNITY_CLINIC,
    "community_clinic": FacilityType.COMMUNITY_CLINIC,
    "upazila_health_complex": FacilityType.UPAZILA_HEALTH_COMPLEX,
    "uhc": FacilityType.UPAZILA_HEALTH_COMPLEX,
    "union_health_center": FacilityType.UNION_HEALTH_CENTER,
    "union_health_centre": FacilityType.UNION_HEALTH_CENTER,
    "union_health_and_family_welfare_center": FacilityType.UNION_HEALTH_CENTER,
}

# First match wins: "Nurse Midwife" is a nurse, "Dr. (Community Health Worker)" a CHW.
# Keywords match at word starts only, so "chw" never fires inside "Schwartz".
_WORKER_RULES: list[tuple[re.Pattern[str], WorkerType]] = [
    (re.compile(r"\b(?:community health worker|chw|health assistant|family welfare assistant)s?\b"), WorkerType.CHW),
    (re.compile(r"\b(?:doctor|physician|medical officer|surgeon|consultant)s?\b|\bdr\b"), WorkerType.DOCTOR),
    (re.compile(r"\bnurse"), WorkerType.NURSE),
    (re.compile(r"\bmidwi(?:fe|ves|fery)\b"), WorkerType.MIDWIFE),
]

_AVAILABILITY: dict[str, Availability] = {
    "full_time": Availability.FULL_TIME,
    "fulltime": Availability.FULL_TIME,
    "part_time": Availability.PART_TIME,
    "parttime": Availability.PART_TIME,
    "on_call": Availability.ON_CALL,
    "oncall": Availability.ON_CALL,
    "on_demand": Availability.ON_CALL,
}

TRANSPORT_OPTIONS = ("bus", "rickshaw", "van", "boat", "train", "auto_rickshaw")

# Stems ("vaccin", "pregnan") match whole words that start with them; "epi" must stand alone.
_SKILL_RULES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\b(?:maternal|maternity|pregnan|antenatal)"), "Maternal health"),
    (re.compile(r"\b(?:child|pediatric|paediatric)"), "Child health"),
    (re.compile(r"\b(?:vaccin|immuni[sz]|epi\b)"), "Vaccination support"),
    (re.compile(r"\bfirst aid\b"), "Basic first aid"),
    (re.compile(r"\bfamily planning\b"), "Family planning"),
]
DEFAULT_SKILL = "Basic health support"


def _slug(raw: Any) -> str:
    text = str(raw or "").strip().lower()
    return re.sub(r"[\s\-/]+", "_", text)


def normalize_facility_type(raw: Any) -> FacilityType:
    if isinstance(raw, FacilityType):
        return raw
    text = str(raw or "")
    # OSM-style tag strings such as "amenity=hospital" or "healthcare=clinic".
    if "=" in text:
        text = text.split("=", 1)[1]
    key = _slug(text)
    if key in _FACILITY_TYPES:
        return _FACILITY_TYPES[key]
    # Names like "Savar Upazila Health Complex" carry the type in free text.
    # Longest phrase first so "union_health_center" wins over "health_center".
    for phrase in sorted(_FACILITY_TYPES, key=len, reverse=True):
        if len(phrase) > 6 and phrase in key:
            return _FACILITY_TYPES[phrase]
    return FACILITY_TYPE_FALLBACK


def normalize_worker_type(raw: Any) -> WorkerType:
    if isinstance(raw, WorkerType):
        return raw
    text = " ".join(str(raw or "").lower().split())
    if not text:
        return WORKER_TYPE_FALLBACK
    for pattern, wtype in _WORKER_RULES:
        if pattern.search(text):
            return wtype
    return WORKER_TYPE_FALLBACK


def normalize_availability(raw: Any) -> Availability:
    if isinstance(raw, Availability):
        return raw
    return _AVAILABILITY.get(_slug(raw), AVAILABILITY_FALLBACK)


def parse_services(raw: Any) -> tuple[str, ...]:
    """`"General medicine; Emergency;"` -> ("General medicine", "Emergency")."""
    if raw is None:
        return ()
    if isinstance(raw, (list, tuple)):
        items = [str(x) for x in raw]
    else:
        items = str(raw).split(";")
    out: dict[str, None] = {}
    for item in items:
        s = item.strip()
        if s:
            out.setdefault(s, None)
    return tuple(out)


def parse_transport_options(raw: Any) -> tuple[str, ...]:
    if raw is None:
        return ()
    text = _slug(" ".join(raw) if isinstance(raw, (list, tuple)) else raw)
    text = text.replace("auto_rikshaw", "auto_rickshaw").replace("cng", "auto_rickshaw")
    found: list[str] = []
    if "auto_rickshaw" in text:
        found.append("auto_rickshaw")
        text = text.replace("auto_rickshaw", " ")
    for opt in TRANSPORT_OPTIONS:
        if opt != "auto_rickshaw" and opt in text:
            found.append(opt)
    return tuple(sorted(found, key=TRANSPORT_OPTIONS.index))


def infer_skills(designation: Any) -> tuple[str, ...]:
    text = str(designation or "").lower()
    skills = [skill for pattern, skill in _SKILL_RULES if pattern.search(text)]
    return tuple(skills) if skills else (DEFAULT_SKILL,)


def standardize_address(raw: Any) -> str:
    text = " ".join(str(raw or "").split())
    return text or "Unknown Address"


def clean_text(raw: Any, default: str = "Unknown") -> str:
    if raw is None:
        return default
    # pandas hands missing CSV cells over as float NaN.
    if isinstance(raw, float) and raw != raw:
        return default
    text = " ".join(str(raw).split())
    return text or default


def parse_bool(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    return str(raw or "").strip().lower() in {"yes", "true", "1", "y"}


def build_facility(row: dict[str, Any], *, source: str, native_id: Any = None) -> Facility:
    """
    Build a `Facility` from a flat provider row with canonical keys
    (name, lon, lat, type, address, upazila, district, division, services, phone,
    email, opening_hours, public_transport, transport, accessibility_notes).
    Raises `InvalidCoordinate` for unusable coordinates; everything else has a fallback.
    """
    location = GeoPoint.of(row.get("lon"), row.get("lat"))
    name = clean_text(row.get("name"), "Unknown Facility")
    return Facility(
        id=make_record_id(source, native_id if native_id is not None else name, location.lon, location.lat),
        name=name,
        type=normalize_facility_type(row.get("type")),
        location=location,
        address=standardize_address(clean_text(row.get("address"), "")),
        upazila=clean_text(row.get("upazila")),
        district=clean_text(row.get("district")),
        division=clean_text(row.get("division")),
        services=parse_services(None if _is_blank(row.get("services")) else row.get("services")),
        contact=Contact(
            phone=None if _is_blank(row.get("phone")) else str(row.get("phone")).strip(),
            email=None if _is_blank(row.get("email")) else str(row.get("email")).strip(),
        ),
        operating_hours=clean_text(row.get("opening_hours")),
        accessibility=Accessibility(
            road_access=True,
            public_transport=parse_bool(row.get("public_transport")),
            transport_options=parse_transport_options(
                None if _is_blank(row.get("transport")) else row.get("transport")
            ),
            notes=clean_text(row.get("accessibility_notes"), ""),
        ),
        verified=False,
        source=source,
    )


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and value != value:
        return True
    return isinstance(value, str) and not value.strip()
