"""Collection record session models.

Attachment categories, the tagged document-kind variant, local file
references and managed attachments.
"""

from __future__ import annotations

import mimetypes
from dataclasses import dataclass, field, replace
from enum import IntEnum, StrEnum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping


class FormMode(StrEnum):
    CREATE = "create"
    EDIT = "edit"


class Activity(StrEnum):
    IDLE = "idle"
    SAVING = "saving"
    SUBMITTING = "submitting"


class Step(IntEnum):
    WASTE_SOURCE = 1
    COLLECTION = 2
    WAREHOUSE_RECYCLING = 3
    REVIEW = 4


FIRST_STEP = int(Step.WASTE_SOURCE)
LAST_STEP = int(Step.REVIEW)


class FileStatus(StrEnum):
    PENDING = "pending"
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    ERROR = "error"
    DELETING = "deleting"


class AttachmentCategory(StrEnum):
    EVIDENCE_PHOTO = "evidence_photo"
    STOCKPILE_PHOTO = "stockpile_photo"
    RECYCLED_PHOTO = "recycled_photo"
    QUALITY_METRICS = "quality_metrics"
    OUTPUT_QUALITY_METRICS = "output_quality_metrics"
    HAZ_WASTE_CERTIFICATE = "haz_waste_certificate"


SINGLE_SLOT_CATEGORIES = frozenset(
    {AttachmentCategory.STOCKPILE_PHOTO, AttachmentCategory.RECYCLED_PHOTO}
)


class DocumentKind(StrEnum):
    """What a user-supplied document is.

    Each kind maps to exactly one (category, sub_type) pair through
    KIND_TARGETS; evidence photos carry their kind as the sub_type so the
    server can tag them.
    """

    WEIGHING_SLIP = "weighing_slip"
    DELIVERY_RECEIPT = "delivery_receipt"
    VEHICLE_PLATE = "vehicle_plate"
    OTHER_EVIDENCE = "other_evidence"
    QUALITY_BEFORE = "quality_before"
    QUALITY_AFTER = "quality_after"
    HAZ_CERTIFICATE = "haz_certificate"
    STOCKPILE_PHOTO = "stockpile_photo"
    RECYCLED_PHOTO = "recycled_photo"


@dataclass(frozen=True)
class UploadTarget:
    category: AttachmentCategory
    sub_type: str | None = None


KIND_TARGETS: Mapping[DocumentKind, UploadTarget] = MappingProxyType(
    {
        DocumentKind.WEIGHING_SLIP: UploadTarget(AttachmentCategory.EVIDENCE_PHOTO, "weighing_slip"),
        DocumentKind.DELIVERY_RECEIPT: UploadTarget(
            AttachmentCategory.EVIDENCE_PHOTO, "delivery_receipt"
        ),
        DocumentKind.VEHICLE_PLATE: UploadTarget(AttachmentCategory.EVIDENCE_PHOTO, "vehicle_plate"),
        DocumentKind.OTHER_EVIDENCE: UploadTarget(AttachmentCategory.EVIDENCE_PHOTO, "other"),
        DocumentKind.QUALITY_BEFORE: UploadTarget(AttachmentCategory.QUALITY_METRICS),
        DocumentKind.QUALITY_AFTER: UploadTarget(AttachmentCategory.OUTPUT_QUALITY_METRICS),
        DocumentKind.HAZ_CERTIFICATE: UploadTarget(AttachmentCategory.HAZ_WASTE_CERTIFICATE),
        DocumentKind.STOCKPILE_PHOTO: UploadTarget(AttachmentCategory.STOCKPILE_PHOTO),
        DocumentKind.RECYCLED_PHOTO: UploadTarget(AttachmentCategory.RECYCLED_PHOTO),
    }
)

_KIND_BY_SUB_TYPE = {
    t.sub_type: k for k, t in KIND_TARGETS.items() if t.sub_type is not None
}


def target_of(kind: DocumentKind) -> UploadTarget:
    return KIND_TARGETS[kind]


def kind_for(category: AttachmentCategory, sub_type: str | None = None) -> DocumentKind:
    """Inverse of target_of for files coming back from the server.

    Evidence photos with an unknown or missing sub_type become OTHER_EVIDENCE.
    """
    category = AttachmentCategory(category)
    if category is AttachmentCategory.EVIDENCE_PHOTO:
        return _KIND_BY_SUB_TYPE.get(sub_type or "", DocumentKind.OTHER_EVIDENCE)
    for kind, target in KIND_TARGETS.items():
        if target.category is category:
            return kind
    raise ValueError(f"no document kind for category {category!r}")


@dataclass(eq=False)
class LocalFile:
    """A file picked by the user, not yet known to the server.

    Compared by reference: picking the same file again yields a new object.
    """

    name: str
    size: int
    last_modified: int  # epoch milliseconds
    mime_type: str = "application/octet-stream"
    content: bytes | None = None
    path: Path | None = None

    @classmethod
    def from_path(cls, path: str | Path, mime_type: str | None = None) -> LocalFile:
        p = Path(path)
        st = p.stat()
        guessed = mime_type or mimetypes.guess_type(p.name)[0] or "application/octet-stream"
        return cls(
            name=p.name,
            size=st.st_size,
            last_modified=int(st.st_mtime * 1000),
            mime_type=guessed,
            path=p,
        )

    @property
    def local_identity(self) -> str:
        return f"{self.name}-{self.size}-{self.last_modified}"

    def read_bytes(self) -> bytes:
        if self.content is not None:
            return self.content
        if self.path is not None:
            return self.path.read_bytes()
        return b""


@dataclass
class ManagedFile:
    """One attachment tracked through its upload lifecycle."""

    kind: DocumentKind
    status: FileStatus = FileStatus.PENDING
    source: LocalFile | None = None
    server_id: str | None = None
    # Identity of the source file, kept once the source is released.
    local_identity: str | None = None
    replaces_identity: str | None = None
    file_name: str | None = None
    preview_url: str | None = None
    error: str | None = None

    @property
    def category(self) -> AttachmentCategory:
        return KIND_TARGETS[self.kind].category

    @property
    def sub_type(self) -> str | None:
        return KIND_TARGETS[self.kind].sub_type

    @property
    def identity(self) -> str:
        if self.server_id:
            return self.server_id
        if self.source is not None:
            return self.source.local_identity
        raise ValueError("managed file has neither a server id nor a source file")

    @property
    def display_name(self) -> str:
        if self.source is not None:
            return self.source.name
        return self.file_name or self.server_id or "?"

    def to_dict(self) -> dict[str, Any]:
        return {
            "identity": self.identity,
            "kind": self.kind.value,
            "category": self.category.value,
            "status": self.status.value,
            "name": self.display_name,
            "server_id": self.server_id,
            "replaces_identity": self.replaces_identity,
            "preview_url": self.preview_url,
            "error": self.error,
        }


AttachmentGroups = dict[AttachmentCategory, list[ManagedFile]]


def empty_groups() -> AttachmentGroups:
    return {c: [] for c in AttachmentCategory}


@dataclass(frozen=True)
class OriginalSnapshot:
    """Server truth captured once at edit-mode load. Never mutated."""

    fields: Mapping[str, Any]
    attachment_identities: Mapping[AttachmentCategory, frozenset[str]] = field(
        default_factory=dict
    )

    @classmethod
    def capture(
        cls,
        fields: Mapping[str, Any],
        groups: AttachmentGroups,
    ) -> OriginalSnapshot:
        idents = {
            category: frozenset(f.identity for f in files if f.server_id)
            for category, files in groups.items()
        }
        return cls(
            fields=MappingProxyType(dict(fields)),
            attachment_identities=MappingProxyType(idents),
        )

    def identities(self, category: AttachmentCategory) -> frozenset[str]:
        return self.attachment_identities.get(category, frozenset())

    def rebased(self, fields: Mapping[str, Any]) -> OriginalSnapshot:
        """Copy holding new field values and the same attachment identities."""
        return replace(self, fields=MappingProxyType(dict(fields)))
