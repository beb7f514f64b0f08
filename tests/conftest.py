"""Pytest configuration and fixtures."""

from __future__ import annotations

import itertools
from typing import Any

import pytest

from wastetrace.core.events import get_event_bus
from wastetrace.core.log_bus import get_log_bus
from wastetrace.core.logging import VerbosityLevel, set_verbosity
from wastetrace.records.interfaces import ExistingDraft, Notification
from wastetrace.records.model import DocumentKind, FormMode, LocalFile
from wastetrace.records.reference import ReferenceData
from wastetrace.records.session import FormSession
from wastetrace.records.settings import SessionSettings

EXISTING_RECORD: dict[str, Any] = {
    "id": "draft-9",
    "batchId": "batch-1",
    "wasteOwners": [{"id": "owner-1", "name": "Owner A"}],
    "contractTypeId": "ct-1",
    "wasteSourceId": "ws-1",
    "hazWaste": {"id": "haz-1"},
    "deliveryDate": "2024-03-15T00:00:00Z",
    "collectedVolumeKg": 100,
    "pickupLocationId": "loc-1",
    "pickupLocation": {"address": "12 Dock Road"},
    "vehiclePlate": "51C-12345",
    "collectedPricePerKg": 2.5,
    "stockpiled": False,
    "recycledDate": "20/03/2024",
    "recycledVolumeKg": 80,
}

EXISTING_FILES: list[dict[str, Any]] = [
    {"id": "f-ev1", "category": "evidence_photo", "subType": "weighing_slip", "fileName": "slip.jpg"},
    {"id": "f-rec", "category": "recycled_photo", "fileName": "recycled.jpg", "signedUrl": "https://x/rec"},
    {"id": "f-qb", "category": "quality_metrics", "fileName": "before.pdf"},
    {"id": "f-qa", "category": "output_quality_metrics", "fileName": "after.pdf"},
    {"id": "f-haz", "category": "haz_waste_certificate", "fileName": "haz.pdf"},
]

VALID_FIELDS: dict[str, Any] = {
    "waste_owner_id": "owner-1",
    "contract_type_id": "ct-1",
    "waste_source_id": "ws-1",
    "haz_waste_id": "haz-1",
    "collected_volume_kg": 100,
    "location_ref_id": "loc-1",
    "vehicle_plate": "51C-12345",
    "collected_price_per_kg": 2.5,
    "recycled_volume_kg": 80,
}


class FakeRecords:
    """In-memory DraftRecordsService."""

    def __init__(self) -> None:
        self.created: list[dict[str, Any]] = []
        self.updated: list[tuple[str, dict[str, Any]]] = []
        self.submitted: list[str] = []
        self.fail_on: set[str] = set()
        self.next_id = "draft-1"

    async def create_draft(self, payload: dict[str, Any]) -> dict[str, Any]:
        if "create" in self.fail_on:
            raise RuntimeError("network down")
        self.created.append(payload)
        return {"id": self.next_id}

    async def update_draft(self, draft_id: str, payload: dict[str, Any]) -> None:
        if "update" in self.fail_on:
            raise RuntimeError("network down")
        self.updated.append((draft_id, payload))

    async def submit_draft(self, draft_id: str) -> None:
        if "submit" in self.fail_on:
            raise RuntimeError("network down")
        self.submitted.append(draft_id)


class FakeStorage:
    """In-memory FileStorage recording every call."""

    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.fail_categories: set[str] = set()
        self.fail_delete = False
        self._ids = itertools.count(1)

    def _new_id(self) -> str:
        return f"file-{next(self._ids)}"

    async def upload_files(
        self, draft_id: str, files: list[LocalFile], category: str, sub_type: str | None = None
    ) -> list[dict[str, Any]]:
        self.calls.append(("upload_files", draft_id, category, sub_type, [f.name for f in files]))
        if category in self.fail_categories:
            raise RuntimeError(f"{category} rejected")
        return [{"id": self._new_id()} for _ in files]

    async def upload_single_file(self, draft_id: str, file: LocalFile, category: str) -> dict[str, Any]:
        self.calls.append(("upload_single_file", draft_id, category, file.name))
        if category in self.fail_categories:
            raise RuntimeError(f"{category} rejected")
        return {"id": self._new_id()}

    async def replace_file(self, file_id: str, new_file: LocalFile) -> dict[str, Any]:
        self.calls.append(("replace_file", file_id, new_file.name))
        return {"id": file_id}

    async def delete_file(self, file_id: str) -> None:
        self.calls.append(("delete_file", file_id))
        if self.fail_delete:
            raise RuntimeError("delete refused")

    def ops(self) -> list[str]:
        return [c[0] for c in self.calls]


class FakeReferenceLoader:
    def __init__(self) -> None:
        self.owner_lookups = 0

    async def load_reference_data(self) -> ReferenceData:
        return ReferenceData.from_definitions(
            contract_types=[{"id": "ct-1", "data": {"name": "Annual contract"}}],
            waste_types=[{"id": "ws-1", "data": {"name": "Used engine oil", "code": "UEO"}}],
            haz_types=[{"id": "haz-1", "data": {"name": "Waste mineral oil", "hazCode": "13 02 05"}}],
        )

    async def get_waste_owner(self, owner_id: str) -> dict[str, Any]:
        self.owner_lookups += 1
        return {"id": owner_id, "name": "Owner A"}


class FakeDraftLoader:
    def __init__(self, record: dict[str, Any] | None = None, files: list[dict[str, Any]] | None = None) -> None:
        self.record = dict(record or EXISTING_RECORD)
        self.files = list(files if files is not None else EXISTING_FILES)
        self.loads = 0

    async def load_existing_draft(self, draft_id: str) -> ExistingDraft:
        self.loads += 1
        return ExistingDraft(record=dict(self.record), files=[dict(f) for f in self.files])


@pytest.fixture(autouse=True)
def _isolate_buses():
    """Global buses must not leak subscribers between tests."""
    get_event_bus().clear()
    get_log_bus().clear()
    set_verbosity(VerbosityLevel.QUIET)
    yield
    get_event_bus().clear()
    get_log_bus().clear()
    set_verbosity(VerbosityLevel.NORMAL)


@pytest.fixture
def make_file():
    """Factory for LocalFile objects with distinct identities."""
    mtimes = itertools.count(1_700_000_000_000)

    def _make(name: str = "photo.jpg", size: int = 1024, mime_type: str | None = None) -> LocalFile:
        if mime_type is None:
            mime_type = "application/pdf" if name.endswith(".pdf") else "image/jpeg"
        return LocalFile(name=name, size=size, last_modified=next(mtimes), mime_type=mime_type)

    return _make


@pytest.fixture
def records():
    return FakeRecords()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def reference_loader():
    return FakeReferenceLoader()


@pytest.fixture
def draft_loader():
    return FakeDraftLoader()


@pytest.fixture
def notifications():
    return []


@pytest.fixture
def confirm_answers():
    """Answers returned by the injected confirm capability, in order (default True)."""
    return []


@pytest.fixture
def create_session(records, storage, reference_loader, notifications, confirm_answers):
    async def _confirm(message: str) -> bool:
        return confirm_answers.pop(0) if confirm_answers else True

    def _notify(note: Notification) -> None:
        notifications.append(note)

    def _make(**overrides: Any) -> FormSession:
        kwargs: dict[str, Any] = {
            "mode": FormMode.CREATE,
            "records": records,
            "storage": storage,
            "reference_loader": reference_loader,
            "confirm": _confirm,
            "notifier": _notify,
            "settings": SessionSettings(),
        }
        kwargs.update(overrides)
        return FormSession(**kwargs)

    return _make


@pytest.fixture
def edit_session(create_session, draft_loader):
    def _make(**overrides: Any) -> FormSession:
        kwargs: dict[str, Any] = {
            "mode": FormMode.EDIT,
            "draft_id": "draft-9",
            "draft_loader": draft_loader,
        }
        kwargs.update(overrides)
        return create_session(**kwargs)

    return _make


@pytest.fixture
def fill_valid(make_file):
    """Fill a create-mode session with a record that passes submission."""

    def _fill(session: FormSession, *, skip: tuple[str, ...] = ()) -> FormSession:
        for name, value in VALID_FIELDS.items():
            if name not in skip:
                session.handle_field_change(name, value)
        attachments = [
            (DocumentKind.WEIGHING_SLIP, make_file("slip.jpg")),
            (DocumentKind.RECYCLED_PHOTO, make_file("recycled.png", mime_type="image/png")),
            (DocumentKind.QUALITY_BEFORE, make_file("before.pdf")),
            (DocumentKind.QUALITY_AFTER, make_file("after.pdf")),
            (DocumentKind.HAZ_CERTIFICATE, make_file("haz.pdf")),
        ]
        for kind, f in attachments:
            if kind.value not in skip:
                session.handle_add_files(kind, [f])
        return session

    return _fill
