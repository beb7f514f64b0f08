"""Edit-mode hydration: server draft -> session fields, files and snapshot."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from wastetrace.core.logging import get_logger
from wastetrace.records.dates import parse_date
from wastetrace.records.fields import FIELDS
from wastetrace.records.interfaces import ExistingDraft
from wastetrace.records.model import (
    SINGLE_SLOT_CATEGORIES,
    AttachmentCategory,
    AttachmentGroups,
    FileStatus,
    ManagedFile,
    OriginalSnapshot,
    empty_groups,
    kind_for,
)

logger = get_logger(__name__)

# Record keys that differ from the field's wire key.
_RECORD_KEYS = {
    "collection_date": "deliveryDate",
}


def _blank(value: Any) -> Any:
    return None if value is None or value == "" else value


def _owner_id(record: Mapping[str, Any]) -> Any:
    owners = record.get("wasteOwners") or []
    if owners and isinstance(owners[0], Mapping):
        return _blank(owners[0].get("id"))
    ids = record.get("wasteOwnerIds") or []
    if ids:
        return _blank(ids[0])
    return _blank(record.get("wasteOwnerId"))


def _haz_waste_id(record: Mapping[str, Any]) -> Any:
    if record.get("hazWasteId"):
        return record["hazWasteId"]
    haz = record.get("hazWaste")
    if isinstance(haz, Mapping):
        return _blank(haz.get("id"))
    return None


def _location_ref_id(record: Mapping[str, Any]) -> Any:
    if record.get("pickupLocationId"):
        return record["pickupLocationId"]
    location = record.get("pickupLocation")
    if isinstance(location, Mapping):
        return _blank(location.get("refId") or location.get("id"))
    return None


def fields_from_record(record: Mapping[str, Any]) -> dict[str, Any]:
    """Map a collection record from the records API to session fields.

    Owner is the first of the record's owners, the hazard id may be nested
    under "hazWaste", the location is reduced to its ref id and dates are
    parsed to datetime.date (unparseable dates become None).
    """
    fields: dict[str, Any] = {}
    for spec in FIELDS:
        key = _RECORD_KEYS.get(spec.name, spec.wire_key)
        fields[spec.name] = _blank(record.get(key))

    fields["waste_owner_id"] = _owner_id(record)
    fields["haz_waste_id"] = _haz_waste_id(record)
    fields["location_ref_id"] = _location_ref_id(record)
    for name in ("collection_date", "stock_in_date", "recycled_date"):
        fields[name] = parse_date(fields[name])
    fields["stockpiled"] = bool(record.get("stockpiled"))
    return fields


def files_from_server(files: Iterable[Mapping[str, Any]]) -> AttachmentGroups:
    """Group server file records by category as uploaded ManagedFiles.

    Records with an unknown category are skipped. Single-slot categories
    keep their first record only.
    """
    groups = empty_groups()
    for rec in files:
        file_id = rec.get("id")
        try:
            category = AttachmentCategory(rec.get("category"))
        except ValueError:
            logger.warning(f"Skipping file {file_id}: unknown category {rec.get('category')!r}")
            continue
        if not file_id:
            logger.warning(f"Skipping {category.value} file without an id")
            continue
        if category in SINGLE_SLOT_CATEGORIES and groups[category]:
            logger.debug(f"Ignoring extra {category.value} file {file_id}")
            continue

        groups[category].append(
            ManagedFile(
                kind=kind_for(category, rec.get("subType")),
                status=FileStatus.UPLOADED,
                server_id=str(file_id),
                file_name=rec.get("fileName"),
                preview_url=rec.get("signedUrl"),
            )
        )
    return groups


@dataclass
class HydratedDraft:
    draft_id: str
    fields: dict[str, Any]
    groups: AttachmentGroups
    snapshot: OriginalSnapshot


def hydrate(draft_id: str, existing: ExistingDraft) -> HydratedDraft:
    """Build session state for an existing draft.

    The snapshot is captured from the same values the session starts
    with, so an untouched form produces an empty partial payload.
    """
    record = existing.record or {}
    fields = fields_from_record(record)
    groups = files_from_server(existing.files or [])
    snapshot = OriginalSnapshot.capture(fields, groups)
    count = sum(len(files) for files in groups.values())
    logger.verbose(f"Hydrated draft {draft_id}: {count} attachment(s)")
    return HydratedDraft(
        draft_id=str(record.get("id") or draft_id),
        fields=fields,
        groups=groups,
        snapshot=snapshot,
    )
