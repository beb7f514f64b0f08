"""Business field catalogue for collection records.

One entry per tracked field: owning wizard step, legacy wire key and the
kind that selects its normalization and serialization rules.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from wastetrace.records.model import AttachmentCategory, Step


class FieldKind(StrEnum):
    REFERENCE = "reference"
    OWNER = "owner"
    HAZARD = "hazard"
    LOCATION = "location"
    NUMERIC = "numeric"
    TEXT = "text"
    FLAG = "flag"
    DATE = "date"


@dataclass(frozen=True)
class FieldSpec:
    name: str
    step: Step
    wire_key: str
    kind: FieldKind


FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("batch_id", Step.WASTE_SOURCE, "batchId", FieldKind.REFERENCE),
    FieldSpec("waste_owner_id", Step.WASTE_SOURCE, "wasteOwnerIds", FieldKind.OWNER),
    FieldSpec("contract_type_id", Step.WASTE_SOURCE, "contractTypeId", FieldKind.REFERENCE),
    FieldSpec("waste_source_id", Step.WASTE_SOURCE, "wasteSourceId", FieldKind.REFERENCE),
    FieldSpec("haz_waste_id", Step.WASTE_SOURCE, "hazWasteId", FieldKind.HAZARD),
    FieldSpec("collection_date", Step.COLLECTION, "deliveryDate", FieldKind.DATE),
    FieldSpec("collected_volume_kg", Step.COLLECTION, "collectedVolumeKg", FieldKind.NUMERIC),
    FieldSpec("location_ref_id", Step.COLLECTION, "pickupLocation", FieldKind.LOCATION),
    FieldSpec("vehicle_plate", Step.COLLECTION, "vehiclePlate", FieldKind.TEXT),
    FieldSpec("collected_price_per_kg", Step.COLLECTION, "collectedPricePerKg", FieldKind.NUMERIC),
    FieldSpec("stockpiled", Step.WAREHOUSE_RECYCLING, "stockpiled", FieldKind.FLAG),
    FieldSpec("stockpile_volume_kg", Step.WAREHOUSE_RECYCLING, "stockpileVolumeKg", FieldKind.NUMERIC),
    FieldSpec("stock_in_date", Step.WAREHOUSE_RECYCLING, "stockInDate", FieldKind.DATE),
    FieldSpec("recycled_date", Step.WAREHOUSE_RECYCLING, "recycledDate", FieldKind.DATE),
    FieldSpec("recycled_volume_kg", Step.WAREHOUSE_RECYCLING, "recycledVolumeKg", FieldKind.NUMERIC),
)

FIELDS_BY_NAME: dict[str, FieldSpec] = {f.name: f for f in FIELDS}

# A changed collection date also moves the reporting month.
SUBMISSION_MONTH_KEY = "submissionMonth"

# Attachment-backed validation keys.
ATTACHMENT_FIELDS: dict[str, tuple[Step, tuple[AttachmentCategory, ...]]] = {
    "evidence_files": (Step.COLLECTION, (AttachmentCategory.EVIDENCE_PHOTO,)),
    "stockpile_photo": (Step.WAREHOUSE_RECYCLING, (AttachmentCategory.STOCKPILE_PHOTO,)),
    "recycled_photo": (Step.WAREHOUSE_RECYCLING, (AttachmentCategory.RECYCLED_PHOTO,)),
    "quality_documents": (
        Step.WAREHOUSE_RECYCLING,
        (AttachmentCategory.QUALITY_METRICS, AttachmentCategory.OUTPUT_QUALITY_METRICS),
    ),
    "haz_waste_certificates": (
        Step.WAREHOUSE_RECYCLING,
        (AttachmentCategory.HAZ_WASTE_CERTIFICATE,),
    ),
}

CATEGORY_FIELD: dict[AttachmentCategory, str] = {
    category: name for name, (_step, categories) in ATTACHMENT_FIELDS.items() for category in categories
}


def step_of(field_name: str) -> Step:
    """Owning wizard step of a business or attachment field."""
    spec = FIELDS_BY_NAME.get(field_name)
    if spec is not None:
        return spec.step
    if field_name in ATTACHMENT_FIELDS:
        return ATTACHMENT_FIELDS[field_name][0]
    raise KeyError(field_name)
