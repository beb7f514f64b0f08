"""Validation engine for the collection record wizard.

Rules are declarative and step-scoped. Step gates evaluate only the rules
of one step; the submission validator evaluates every rule, including the
submission-only ones, in fixed step order. Nothing here raises for
invalid input: results are returned and the session stores them.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

from wastetrace.records.model import (
    AttachmentCategory,
    FileStatus,
    LocalFile,
    ManagedFile,
    Step,
)


@dataclass(frozen=True)
class ValidationContext:
    fields: Mapping[str, Any]
    attachments: Mapping[AttachmentCategory, Sequence[ManagedFile]] = field(default_factory=dict)

    def value(self, name: str) -> Any:
        return self.fields.get(name)

    def live_files(self, category: AttachmentCategory) -> list[ManagedFile]:
        return [f for f in self.attachments.get(category, ()) if f.status is not FileStatus.DELETING]

    def has_files(self, category: AttachmentCategory) -> bool:
        return bool(self.live_files(category))


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    errors: dict[str, str]


@dataclass(frozen=True)
class SubmissionResult:
    valid: bool
    errors: dict[str, str]
    first_step: Step | None = None


@dataclass(frozen=True)
class Rule:
    field: str
    step: Step
    check: Callable[[ValidationContext], bool]
    message: str
    gate: bool = True  # False: checked on submission only


def is_positive(value: Any) -> bool:
    if value is None or isinstance(value, bool):
        return False
    try:
        number = value if isinstance(value, (int, float, Decimal)) else Decimal(str(value).strip())
        return number > 0
    except (InvalidOperation, ValueError):
        return False


def is_present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def _stockpiled(ctx: ValidationContext) -> bool:
    return ctx.value("stockpiled") is True


def _required(name: str) -> Callable[[ValidationContext], bool]:
    return lambda ctx: is_present(ctx.value(name))


def _positive(name: str) -> Callable[[ValidationContext], bool]:
    return lambda ctx: is_positive(ctx.value(name))


def _positive_if_given(name: str) -> Callable[[ValidationContext], bool]:
    return lambda ctx: ctx.value(name) in (None, "") or is_positive(ctx.value(name))


def _when_stockpiled(check: Callable[[ValidationContext], bool]) -> Callable[[ValidationContext], bool]:
    return lambda ctx: not _stockpiled(ctx) or check(ctx)


def _has_files(category: AttachmentCategory) -> Callable[[ValidationContext], bool]:
    return lambda ctx: ctx.has_files(category)


def _quality_documents(ctx: ValidationContext) -> bool:
    return ctx.has_files(AttachmentCategory.QUALITY_METRICS) and ctx.has_files(
        AttachmentCategory.OUTPUT_QUALITY_METRICS
    )


# Evaluation order is the routing priority: step 1, then 2, then 3.
RULES: tuple[Rule, ...] = (
    Rule("waste_owner_id", Step.WASTE_SOURCE, _required("waste_owner_id"), "Select the waste owner"),
    Rule("waste_source_id", Step.WASTE_SOURCE, _required("waste_source_id"), "Select the waste type"),
    Rule(
        "contract_type_id",
        Step.WASTE_SOURCE,
        _required("contract_type_id"),
        "Select the contract type",
        gate=False,
    ),
    Rule(
        "haz_waste_id", Step.WASTE_SOURCE, _required("haz_waste_id"), "Select the hazard code", gate=False
    ),
    Rule(
        "collected_volume_kg",
        Step.COLLECTION,
        _positive("collected_volume_kg"),
        "Collected volume is required",
    ),
    Rule("location_ref_id", Step.COLLECTION, _required("location_ref_id"), "Pickup address is required"),
    Rule("vehicle_plate", Step.COLLECTION, _required("vehicle_plate"), "Vehicle plate is required"),
    Rule(
        "collection_date",
        Step.COLLECTION,
        _required("collection_date"),
        "Collection date is required",
        gate=False,
    ),
    Rule(
        "collected_price_per_kg",
        Step.COLLECTION,
        _positive("collected_price_per_kg"),
        "Price per kg must be greater than 0",
        gate=False,
    ),
    Rule(
        "evidence_files",
        Step.COLLECTION,
        _has_files(AttachmentCategory.EVIDENCE_PHOTO),
        "At least one evidence photo is required",
        gate=False,
    ),
    Rule(
        "stockpile_volume_kg",
        Step.WAREHOUSE_RECYCLING,
        _when_stockpiled(_positive("stockpile_volume_kg")),
        "Stockpile volume is required when the load is stockpiled",
    ),
    Rule(
        "stockpile_volume_kg",
        Step.WAREHOUSE_RECYCLING,
        _positive_if_given("stockpile_volume_kg"),
        "Stockpile volume must be greater than 0",
    ),
    Rule(
        "stock_in_date",
        Step.WAREHOUSE_RECYCLING,
        _when_stockpiled(_required("stock_in_date")),
        "Stock-in date is required when the load is stockpiled",
    ),
    Rule(
        "stockpile_photo",
        Step.WAREHOUSE_RECYCLING,
        _when_stockpiled(_has_files(AttachmentCategory.STOCKPILE_PHOTO)),
        "Stock-in photo is required when the load is stockpiled",
    ),
    Rule(
        "recycled_volume_kg",
        Step.WAREHOUSE_RECYCLING,
        _positive("recycled_volume_kg"),
        "Recycled volume must be greater than 0",
    ),
    Rule(
        "recycled_photo",
        Step.WAREHOUSE_RECYCLING,
        _has_files(AttachmentCategory.RECYCLED_PHOTO),
        "Photo of the recycled product is required",
    ),
    Rule(
        "quality_documents",
        Step.WAREHOUSE_RECYCLING,
        _quality_documents,
        "Quality documents before and after recycling are required",
        gate=False,
    ),
    Rule(
        "haz_waste_certificates",
        Step.WAREHOUSE_RECYCLING,
        _has_files(AttachmentCategory.HAZ_WASTE_CERTIFICATE),
        "At least one hazardous waste certificate is required",
        gate=False,
    ),
)


def _evaluate(rules: Sequence[Rule], ctx: ValidationContext) -> dict[str, str]:
    errors: dict[str, str] = {}
    for rule in rules:
        # First failing rule owns the field's message.
        if rule.field in errors:
            continue
        if not rule.check(ctx):
            errors[rule.field] = rule.message
    return errors


def validate_step(step: int, context: ValidationContext) -> ValidationResult:
    """Evaluate the gate of one wizard step.

    The review step (4) has no gate rules and always passes.
    """
    errors = _evaluate([r for r in RULES if r.gate and r.step == step], context)
    return ValidationResult(valid=not errors, errors=errors)


def validate_submission(context: ValidationContext) -> SubmissionResult:
    """Evaluate every rule of every step.

    first_step is the lowest-numbered step holding an error; the caller
    navigates there.
    """
    errors = _evaluate(RULES, context)
    if not errors:
        return SubmissionResult(valid=True, errors={})
    owners = {r.field: r.step for r in RULES}
    first = min(owners[name] for name in errors)
    return SubmissionResult(valid=False, errors=errors, first_step=first)


# --- attachment file rules ---------------------------------------------------

IMAGE_MIME_TYPES = frozenset({"image/jpeg", "image/jpg", "image/png", "image/webp"})
IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp")
DOCUMENT_MIME_TYPES = frozenset(
    {
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    }
)
DOCUMENT_EXTENSIONS = (".pdf", ".doc", ".docx")

_IMAGE_CATEGORIES = frozenset(
    {
        AttachmentCategory.EVIDENCE_PHOTO,
        AttachmentCategory.STOCKPILE_PHOTO,
        AttachmentCategory.RECYCLED_PHOTO,
    }
)


def check_file(category: AttachmentCategory, file: LocalFile) -> str | None:
    """Return an error message when the file type is not accepted for the category.

    MIME type is checked first; the extension is the fallback for
    browsers/OSes that report a generic type.
    """
    if category in _IMAGE_CATEGORIES:
        mimes, exts, label = IMAGE_MIME_TYPES, IMAGE_EXTENSIONS, "JPEG, PNG or WebP"
    else:
        mimes, exts, label = DOCUMENT_MIME_TYPES, DOCUMENT_EXTENSIONS, "PDF or Word"

    if (file.mime_type or "").lower() in mimes:
        return None
    if file.name.lower().endswith(exts):
        return None
    return f"Invalid file '{file.name}'. Only {label} files are accepted for {category.value}"
