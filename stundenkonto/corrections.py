"""Admin corrections layered over stored timesheet entries.

The stored entry is never changed by a correction. Whenever hours are shown
or summed, the newest correction of an entry supplies every field it sets and
the entry supplies the rest.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from . import schemas
from .date_utils import normalize_time

# entry attribute -> correction attribute
CORRECTABLE_FIELDS = {
    "time_from": "corrected_time_from",
    "time_to": "corrected_time_to",
    "break_minutes": "corrected_break_minutes",
    "hours_decimal": "corrected_hours_decimal",
    "note": "note",
}


def _created_at(correction) -> datetime:
    value = getattr(correction, "created_at", None)
    if value is None:
        return datetime.min
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    # compare naive and aware timestamps on the same footing
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def latest_corrections(corrections: Iterable) -> Dict[Any, Any]:
    """Map each entry id to its most recently created correction."""
    latest: Dict[Any, Any] = {}
    for correction in corrections:
        current = latest.get(correction.entry_id)
        if current is None or _created_at(correction) > _created_at(current):
            latest[correction.entry_id] = correction
    return latest


def _original_value(entry, field: str):
    if field == "note":
        return getattr(entry, "activity_note", None) or getattr(entry, "comment", None)
    return getattr(entry, field, None)


def effective_value(entry, correction, field: str):
    if field not in CORRECTABLE_FIELDS:
        raise KeyError(field)
    if correction is not None:
        corrected = getattr(correction, CORRECTABLE_FIELDS[field], None)
        if corrected is not None:
            return corrected
    return _original_value(entry, field)


def effective_hours(entry, correction=None) -> float:
    value = effective_value(entry, correction, "hours_decimal")
    return float(value or 0)


def _format_time_range(time_from, time_to) -> str:
    start = normalize_time(time_from)
    end = normalize_time(time_to)
    if not start or not end:
        return ""
    return f"{start}:00 - {end}:00"


def diff_correction(entry, correction) -> schemas.CorrectionDiff:
    """Compare an entry with a correction field by field for display."""
    original_range = _format_time_range(entry.time_from, entry.time_to)
    corrected_from = getattr(correction, "corrected_time_from", None)
    corrected_to = getattr(correction, "corrected_time_to", None)
    corrected_range = _format_time_range(corrected_from, corrected_to)
    range_changed = (
        corrected_from is not None
        and corrected_to is not None
        and (normalize_time(entry.time_from), normalize_time(entry.time_to))
        != (normalize_time(corrected_from), normalize_time(corrected_to))
    )

    original_break = entry.break_minutes or 0
    corrected_break: Optional[int] = getattr(correction, "corrected_break_minutes", None)
    break_value = original_break if corrected_break is None else corrected_break

    original_hours = entry.hours_decimal or 0
    corrected_hours: Optional[float] = getattr(correction, "corrected_hours_decimal", None)
    hours_value = original_hours if corrected_hours is None else corrected_hours

    original_note = _original_value(entry, "note") or ""
    corrected_note = getattr(correction, "note", None) or ""

    diff = {
        "time_range": schemas.FieldDiff(
            original=original_range, corrected=corrected_range, changed=range_changed
        ),
        "break_minutes": schemas.FieldDiff(
            original=original_break, corrected=break_value, changed=break_value != original_break
        ),
        "hours": schemas.FieldDiff(
            original=original_hours, corrected=hours_value, changed=hours_value != original_hours
        ),
        "note": schemas.FieldDiff(
            original=original_note,
            corrected=corrected_note,
            changed=bool(corrected_note) and corrected_note != original_note,
        ),
    }
    return schemas.CorrectionDiff(
        **diff,
        has_changes=any(item.changed for item in diff.values()),
    )
