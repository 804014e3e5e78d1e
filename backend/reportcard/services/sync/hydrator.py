"""
Schema Hydrator

Repairs persisted report-card blobs written by older revisions of the app so
they match the current shape:
- subject and conduct lists contain exactly the canonical catalog ids, in
  catalog order (missing ids added with defaults, unknown ids dropped)
- fields added since the record was written get their defaults
- legacy blank school / term / signer / image fields fall back to settings
- catalog entries missing keys are completed from the catalog, and
  out-of-range enumerated values (gender, category, rating, age) are reset

Records are repaired, never rejected: a payload that still fails validation
has the offending fields reset to their defaults when it is loaded.

The hydrate_* functions are pure and idempotent.
"""

import copy
import logging
import math
from typing import Callable, Dict, Any, List, Optional, Sequence

from pydantic import ValidationError

from reportcard.schemas.report import (
    AppSettings, StudentRecord,
    SUBJECT_CATALOG, CONDUCT_CATALOG, DEFAULT_SETTINGS,
    CONDUCT_GRADES, SUBJECT_CATEGORIES, GENDERS
)

logger = logging.getLogger(__name__)

CATALOGS = {
    "subjects": SUBJECT_CATALOG,
    "conducts": CONDUCT_CATALOG,
}

MAX_REPAIR_PASSES = 3

# Record field -> settings field. Falls back when the value is falsy ("" or missing).
SCHOOL_FIELDS: Dict[str, str] = {
    "schoolName": "schoolName",
    "schoolAddress": "schoolAddress",
    "schoolPhone": "schoolPhone",
}

# Record field -> settings field. Falls back only when the key is absent or null.
INHERITED_FIELDS: Dict[str, str] = {
    "term": "term",
    "session": "session",
    "nextTermBegins": "nextTermBegins",
    "teacherName": "defaultTeacherName",
    "headName": "defaultHeadName",
    "headOfSchoolName": "defaultHeadOfSchoolName",
    "schoolCrestUrl": "defaultSchoolCrestUrl",
    "teacherSignatureUrl": "defaultTeacherSignatureUrl",
    "headTeacherStampUrl": "defaultHeadTeacherStampUrl",
    "headOfSchoolStampUrl": "defaultHeadOfSchoolStampUrl",
}


def _blank_student_fields() -> Dict[str, Any]:
    blank = StudentRecord(id="").to_payload()
    blank.pop("id")
    return blank


def _repair_subject(entry: Dict[str, Any], canonical: Dict[str, Any]) -> None:
    if entry.get("category") not in SUBJECT_CATEGORIES:
        entry["category"] = canonical["category"]
    if not isinstance(entry.get("name"), str):
        entry["name"] = canonical["name"]


def _repair_conduct(entry: Dict[str, Any], canonical: Dict[str, Any]) -> None:
    rating = entry.get("rating")
    rating = str(rating).strip().upper() if rating is not None else ""
    entry["rating"] = rating if rating in CONDUCT_GRADES else ""
    if not isinstance(entry.get("name"), str):
        entry["name"] = canonical["name"]


def _reconcile_catalog(
    raw_entries: Any,
    catalog: Sequence[Any],
    repair: Callable[[Dict[str, Any], Dict[str, Any]], None]
) -> List[Dict[str, Any]]:
    existing: Dict[str, Dict[str, Any]] = {}
    if isinstance(raw_entries, list):
        for entry in raw_entries:
            if isinstance(entry, dict) and "id" in entry:
                # First entry wins when a legacy list repeats an id
                existing.setdefault(entry["id"], entry)

    reconciled = []
    for canonical in catalog:
        default = canonical.to_payload()
        entry = existing.get(canonical.id)
        if entry is None:
            reconciled.append(default)
            continue
        # Stored values win; keys an older revision never wrote come from the catalog
        merged = {**default, **copy.deepcopy(entry)}
        repair(merged, default)
        reconciled.append(merged)
    return reconciled


def _coerce_age(value: Any) -> Any:
    if value is None or value == "":
        return value
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or not number.is_integer():
        return None
    return int(number)


def hydrate_student(raw: Dict[str, Any], settings: Optional[AppSettings] = None) -> Dict[str, Any]:
    """Return a repaired copy of one persisted student blob."""
    settings_payload = (settings or DEFAULT_SETTINGS).to_payload()
    hydrated = copy.deepcopy(raw)

    if "id" in hydrated and not isinstance(hydrated["id"], str):
        hydrated["id"] = str(hydrated["id"])

    for field, source in SCHOOL_FIELDS.items():
        if not hydrated.get(field):
            hydrated[field] = settings_payload.get(source, "")

    for field, source in INHERITED_FIELDS.items():
        if hydrated.get(field) is None:
            hydrated[field] = settings_payload.get(source)

    for field, default in _blank_student_fields().items():
        if field not in hydrated:
            hydrated[field] = default

    if hydrated["gender"] not in GENDERS:
        hydrated["gender"] = ""
    hydrated["age"] = _coerce_age(hydrated["age"])

    hydrated["subjects"] = _reconcile_catalog(raw.get("subjects"), SUBJECT_CATALOG, _repair_subject)
    hydrated["conducts"] = _reconcile_catalog(raw.get("conducts"), CONDUCT_CATALOG, _repair_conduct)

    if hydrated != raw:
        logger.debug(f"Repaired legacy fields on student {raw.get('id')}")
    return hydrated


def hydrate_roster(raw_roster: Any, settings: Optional[AppSettings] = None) -> List[Dict[str, Any]]:
    """Hydrate a persisted roster; entries without an id cannot be tracked and are skipped."""
    if not isinstance(raw_roster, list):
        if raw_roster is not None:
            logger.warning(f"Ignoring persisted roster of type {type(raw_roster).__name__}")
        return []

    roster = []
    for raw in raw_roster:
        if not isinstance(raw, dict) or not raw.get("id"):
            logger.warning("Skipping persisted student without an id")
            continue
        roster.append(hydrate_student(raw, settings))
    return roster


def hydrate_settings(raw: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Fill settings keys missing from an older blob with the built-in defaults."""
    hydrated = copy.deepcopy(raw) if isinstance(raw, dict) else {}
    for field, default in DEFAULT_SETTINGS.to_payload().items():
        if field not in hydrated:
            hydrated[field] = default
    return hydrated


def _reset_invalid_fields(payload: Dict[str, Any], error: ValidationError) -> Dict[str, Any]:
    """Replace every field named in ``error`` with its default; the record id is never touched."""
    repaired = copy.deepcopy(payload)
    for detail in error.errors():
        loc = detail["loc"]
        if not loc or loc[0] == "id":
            continue
        catalog = CATALOGS.get(loc[0])
        if catalog is not None and len(loc) >= 3 and isinstance(loc[1], int) and loc[1] < len(catalog):
            default = catalog[loc[1]].to_payload()
            entry = repaired[loc[0]][loc[1]]
            if loc[2] in default:
                entry[loc[2]] = default[loc[2]]
            else:
                entry.pop(loc[2], None)
        else:
            repaired.pop(loc[0], None)
    return repaired


def load_student(payload: Dict[str, Any]) -> Optional[StudentRecord]:
    """Validate a hydrated payload, resetting fields that still fail to their defaults."""
    for _ in range(MAX_REPAIR_PASSES):
        try:
            return StudentRecord.model_validate(payload)
        except ValidationError as e:
            repaired = _reset_invalid_fields(payload, e)
            if repaired == payload:
                break
            logger.warning(f"Reset {e.error_count()} invalid field(s) on student {payload.get('id')}")
            payload = repaired
    logger.error(f"Dropping unreadable student {payload.get('id')}")
    return None


def load_students(raw_roster: Any, settings: Optional[AppSettings] = None) -> List[StudentRecord]:
    students = []
    for payload in hydrate_roster(raw_roster, settings):
        record = load_student(payload)
        if record is not None:
            students.append(record)
    return students


def load_settings(raw: Optional[Dict[str, Any]]) -> AppSettings:
    return AppSettings.model_validate(hydrate_settings(raw))
