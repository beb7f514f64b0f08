"""Draft payload builder.

Create mode emits every field with defaults applied. Edit mode emits only
the fields whose normalized value differs from the original snapshot;
omission (not null) is the "leave unchanged" signal for update_draft.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Mapping

from wastetrace.core.errors import PayloadError
from wastetrace.records.changes import diff_fields, normalize_value
from wastetrace.records.dates import format_ddmmyyyy, submission_month
from wastetrace.records.fields import FIELDS, FIELDS_BY_NAME, SUBMISSION_MONTH_KEY, FieldKind, FieldSpec
from wastetrace.records.model import FormMode, OriginalSnapshot

PayloadKind = Literal["full", "partial"]


@dataclass(frozen=True)
class DraftPayload:
    kind: PayloadKind
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.data

    def to_dict(self) -> dict[str, Any]:
        return dict(self.data)


def serialize_field(spec: FieldSpec, value: Any, *, legacy_falsy_numeric: bool = True) -> Any:
    """Wire representation of one field value."""
    kind = spec.kind
    if kind is FieldKind.OWNER:
        return [value] if value else []
    if kind is FieldKind.LOCATION:
        return {"refId": value} if value else None
    if kind is FieldKind.HAZARD:
        return value if isinstance(value, str) and value.strip() else None
    if kind is FieldKind.FLAG:
        return False if value is None else bool(value)
    if kind is FieldKind.DATE:
        return format_ddmmyyyy(normalize_value(value))
    if kind is FieldKind.NUMERIC:
        # Legacy API convention: 0 is sent as null too.
        if legacy_falsy_numeric:
            return value or None
        return normalize_value(value)
    return value or None


def build_full_payload(
    fields: Mapping[str, Any], *, legacy_falsy_numeric: bool = True
) -> DraftPayload:
    data: dict[str, Any] = {}
    for spec in FIELDS:
        data[spec.wire_key] = serialize_field(
            spec, fields.get(spec.name), legacy_falsy_numeric=legacy_falsy_numeric
        )
    data[SUBMISSION_MONTH_KEY] = submission_month(fields.get("collection_date"))
    return DraftPayload(kind="full", data=data)


def build_partial_payload(
    fields: Mapping[str, Any],
    original: OriginalSnapshot,
    *,
    legacy_falsy_numeric: bool = True,
) -> DraftPayload:
    data: dict[str, Any] = {}
    for name, value in diff_fields(fields, original.fields).items():
        spec = FIELDS_BY_NAME[name]
        data[spec.wire_key] = serialize_field(spec, value, legacy_falsy_numeric=legacy_falsy_numeric)
        if name == "collection_date":
            data[SUBMISSION_MONTH_KEY] = submission_month(value)
    return DraftPayload(kind="partial", data=data)


def build_payload(
    mode: FormMode,
    fields: Mapping[str, Any],
    original: OriginalSnapshot | None = None,
    *,
    legacy_falsy_numeric: bool = True,
) -> DraftPayload:
    """Build the payload for the persistence collaborator.

    Args:
        mode: Session mode
        fields: Current field values
        original: Field values the server holds (required in edit mode)
        legacy_falsy_numeric: Send falsy numerics (including 0) as null

    Raises:
        PayloadError: Edit mode without an original snapshot
    """
    if FormMode(mode) is FormMode.CREATE:
        return build_full_payload(fields, legacy_falsy_numeric=legacy_falsy_numeric)
    if original is None:
        raise PayloadError(
            "Original record state is required to build an edit payload",
            "Load the existing draft before saving changes",
        )
    return build_partial_payload(fields, original, legacy_falsy_numeric=legacy_falsy_numeric)
