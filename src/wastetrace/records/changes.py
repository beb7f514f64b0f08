"""Field change tracking for edit-mode drafts.

Pure functions. Values are normalized before comparison so that UI
representation differences (None vs "" vs missing, a re-picked calendar
day, 100 vs "100.0") never register as a change.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from wastetrace.records.dates import format_ddmmyyyy
from wastetrace.records.fields import FIELDS, FieldKind, FieldSpec


def normalize_value(value: Any) -> Any:
    """Treat missing and empty string as None."""
    if value is None or value == "":
        return None
    return value


def _as_number(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float, Decimal)):
        return Decimal(str(value))
    if isinstance(value, str):
        try:
            return Decimal(value.strip())
        except InvalidOperation:
            return value
    return value


def comparable(spec: FieldSpec, value: Any) -> Any:
    """Normalized form of a field value used only for comparison."""
    if spec.kind is FieldKind.FLAG:
        return False if value is None else bool(value)
    if spec.kind is FieldKind.DATE:
        return format_ddmmyyyy(normalize_value(value))
    if spec.kind is FieldKind.HAZARD:
        if isinstance(value, str) and not value.strip():
            return None
        return normalize_value(value)

    value = normalize_value(value)
    if value is not None and spec.kind is FieldKind.NUMERIC:
        return _as_number(value)
    return value


def has_changed(spec: FieldSpec, current: Any, original: Any) -> bool:
    return comparable(spec, current) != comparable(spec, original)


def diff_fields(current: Mapping[str, Any], original: Mapping[str, Any]) -> dict[str, Any]:
    """Return the tracked fields whose normalized value changed.

    Keys are field names; values are the raw current values. Unchanged
    fields are absent.
    """
    changed: dict[str, Any] = {}
    for spec in FIELDS:
        now = current.get(spec.name)
        if has_changed(spec, now, original.get(spec.name)):
            changed[spec.name] = now
    return changed
