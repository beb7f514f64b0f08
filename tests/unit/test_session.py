"""Scenario tests for the FormSession wizard."""

from __future__ import annotations

from datetime import date

import pytest

from wastetrace.core.errors import SessionStateError
from wastetrace.core.events import get_event_bus
from wastetrace.records.model import (
    Activity,
    AttachmentCategory,
    DocumentKind,
    FileStatus,
    FormMode,
    Step,
)


def _levels(notifications):
    return [n.level for n in notifications]


class TestNavigation:
    def test_valid_step1_advances(self, create_session):
        session = create_session()
        session.handle_field_change("waste_owner_id", "owner-1")
        session.handle_field_change("waste_source_id", "ws-1")

        assert session.handle_next() is True
        assert session.current_step == Step.COLLECTION

    def test_blank_vehicle_stays_on_step2(self, create_session):
        session = create_session()
        session.handle_field_change("waste_owner_id", "owner-1")
        session.handle_field_change("waste_source_id", "ws-1")
        session.handle_next()
        session.handle_field_change("collected_volume_kg", 100)
        session.handle_field_change("location_ref_id", "loc-1")
        session.handle_field_change("vehicle_plate", "  ")

        assert session.handle_next() is False
        assert session.current_step == Step.COLLECTION
        assert "vehicle_plate" in session.errors

    def test_field_change_clears_its_error(self, create_session):
        session = create_session()
        session.handle_next()
        assert "waste_owner_id" in session.errors

        session.handle_field_change("waste_owner_id", "owner-1")

        assert "waste_owner_id" not in session.errors
        assert "waste_source_id" in session.errors

    def test_back_needs_no_validation(self, create_session):
        session = create_session()
        session.current_step = 3

        assert session.handle_back() is True
        assert session.current_step == 2
        session.current_step = 1
        assert session.handle_back() is False

    def test_unknown_field_raises(self, create_session):
        with pytest.raises(SessionStateError):
            create_session().handle_field_change("colour", "red")

    def test_create_mode_defaults_collection_date_to_today(self, create_session):
        session = create_session(today=lambda: date(2024, 5, 20))

        assert session.fields["collection_date"] == date(2024, 5, 20)
        assert session.fields["stockpiled"] is False

    @pytest.mark.asyncio
    async def test_busy_session_ignores_actions(self, create_session, records):
        session = create_session()
        session.activity = Activity.SAVING
        session.current_step = 2

        assert session.handle_next() is False
        assert session.handle_back() is False
        assert await session.handle_save_draft() is False
        assert await session.handle_submit() is False
        assert session.current_step == 2
        assert records.created == []


class TestSaveDraft:
    @pytest.mark.asyncio
    async def test_first_save_creates_then_updates(self, create_session, records):
        session = create_session()
        session.handle_field_change("waste_owner_id", "owner-1")
        session.handle_field_change("waste_source_id", "ws-1")

        assert await session.handle_save_draft() is True
        assert session.draft_id == "draft-1"
        assert records.created[0]["wasteOwnerIds"] == ["owner-1"]

        session.handle_field_change("batch_id", "batch-7")
        assert await session.handle_save_draft() is True

        draft_id, payload = records.updated[0]
        assert draft_id == "draft-1"
        assert payload["batchId"] == "batch-7"
        assert len(records.created) == 1

    @pytest.mark.asyncio
    async def test_save_gates_on_current_step_only(self, create_session, records):
        session = create_session()
        session.handle_field_change("waste_owner_id", "owner-1")
        session.handle_field_change("waste_source_id", "ws-1")
        session.handle_next()

        assert await session.handle_save_draft() is False
        assert set(session.errors) == {"collected_volume_kg", "location_ref_id", "vehicle_plate"}
        assert records.created == []

    @pytest.mark.asyncio
    async def test_persistence_failure_keeps_state(self, create_session, records, notifications):
        session = create_session()
        session.handle_field_change("waste_owner_id", "owner-1")
        session.handle_field_change("waste_source_id", "ws-1")
        records.fail_on = {"create"}

        assert await session.handle_save_draft() is False
        assert session.draft_id is None
        assert session.fields["waste_owner_id"] == "owner-1"
        assert session.activity is Activity.IDLE
        assert notifications[-1].level == "error"
        assert "network down" in notifications[-1].message

    @pytest.mark.asyncio
    async def test_upload_failure_keeps_draft(
        self, create_session, storage, make_file, notifications
    ):
        session = create_session()
        session.handle_field_change("waste_owner_id", "owner-1")
        session.handle_field_change("waste_source_id", "ws-1")
        session.handle_add_files(DocumentKind.WEIGHING_SLIP, [make_file("slip.jpg")])
        storage.fail_categories = {"evidence_photo"}

        assert await session.handle_save_draft() is False
        assert session.draft_id == "draft-1"
        assert notifications[-1].level == "warning"
        assert "failed to upload" in notifications[-1].message

        storage.fail_categories = set()
        assert await session.handle_save_draft() is True
        evidence = session.attachment_groups[AttachmentCategory.EVIDENCE_PHOTO]
        assert [f.status for f in evidence] == [FileStatus.UPLOADED]

    @pytest.mark.asyncio
    async def test_emits_boundary_diagnostics(self, create_session):
        events = []
        get_event_bus().subscribe_all(lambda event, data: events.append((event, data["operation"])))
        session = create_session()
        session.handle_field_change("waste_owner_id", "owner-1")
        session.handle_field_change("waste_source_id", "ws-1")

        await session.handle_save_draft()

        assert ("boundary.start", "create") in events
        assert ("boundary.end", "create") in events


class TestSubmit:
    @pytest.mark.asyncio
    async def test_full_submit(self, create_session, fill_valid, records, storage, notifications):
        session = fill_valid(create_session())

        assert await session.handle_submit() is True
        assert session.submitted
        assert records.submitted == ["draft-1"]
        assert len(records.created) == 1
        assert sorted(storage.ops()) == [
            "upload_files",
            "upload_files",
            "upload_files",
            "upload_files",
            "upload_single_file",
        ]
        assert notifications[-1].level == "success"

    @pytest.mark.asyncio
    async def test_missing_certificate_routes_to_step3(self, create_session, fill_valid, records):
        session = fill_valid(create_session(), skip=("haz_certificate",))

        assert await session.handle_submit() is False
        assert session.current_step == Step.WAREHOUSE_RECYCLING
        assert "haz_waste_certificates" in session.errors
        assert records.submitted == []
        assert records.created == []

    @pytest.mark.asyncio
    async def test_missing_contract_routes_to_step1(self, create_session, fill_valid):
        session = fill_valid(create_session(), skip=("contract_type_id",))
        session.current_step = 4

        assert await session.handle_submit() is False
        assert session.current_step == Step.WASTE_SOURCE

    @pytest.mark.asyncio
    async def test_existing_draft_flushes_changes_before_submit(
        self, create_session, fill_valid, records
    ):
        session = fill_valid(create_session())
        await session.handle_save_draft()
        session.handle_field_change("vehicle_plate", "51C-99999")

        assert await session.handle_submit() is True
        assert records.updated[-1][1]["vehiclePlate"] == "51C-99999"
        assert records.submitted == ["draft-1"]

    @pytest.mark.asyncio
    async def test_submit_failure_keeps_draft_id(self, create_session, fill_valid, records):
        session = fill_valid(create_session())
        records.fail_on = {"submit"}

        assert await session.handle_submit() is False
        assert session.draft_id == "draft-1"
        assert not session.submitted

    @pytest.mark.asyncio
    async def test_upload_failure_blocks_submit(self, create_session, fill_valid, records, storage):
        session = fill_valid(create_session())
        storage.fail_categories = {"haz_waste_certificate"}

        assert await session.handle_submit() is False
        assert session.draft_id == "draft-1"
        assert records.submitted == []


class TestEditMode:
    @pytest.mark.asyncio
    async def test_mount_hydrates(self, edit_session, draft_loader):
        session = edit_session()

        assert await session.mount() is True
        assert draft_loader.loads == 1
        assert session.fields["waste_owner_id"] == "owner-1"
        assert session.fields["haz_waste_id"] == "haz-1"
        assert session.fields["collection_date"] == date(2024, 3, 15)
        assert session.fields["location_ref_id"] == "loc-1"
        recycled = session.attachment_groups[AttachmentCategory.RECYCLED_PHOTO]
        assert [f.server_id for f in recycled] == ["f-rec"]

    @pytest.mark.asyncio
    async def test_unchanged_volume_omitted(self, edit_session, records):
        session = edit_session()
        await session.mount()
        session.handle_field_change("collected_volume_kg", 100)
        session.handle_field_change("vehicle_plate", "51C-00000")

        assert await session.handle_save_draft() is True
        assert records.updated == [("draft-9", {"vehiclePlate": "51C-00000"})]

    @pytest.mark.asyncio
    async def test_no_changes_skips_update(self, edit_session, records, storage, notifications):
        session = edit_session()
        await session.mount()

        assert await session.handle_save_draft() is True
        assert records.updated == []
        assert storage.calls == []
        assert "info" in _levels(notifications)

    @pytest.mark.asyncio
    async def test_replacing_recycled_photo(self, edit_session, storage, make_file):
        session = edit_session()
        await session.mount()
        session.current_step = 3

        session.handle_add_files(DocumentKind.RECYCLED_PHOTO, [make_file("new-rec.jpg")])
        assert await session.handle_save_draft() is True
        assert await session.handle_save_draft() is True

        assert storage.calls == [("replace_file", "f-rec", "new-rec.jpg")]

    @pytest.mark.asyncio
    async def test_added_evidence_uploads_only_new(self, edit_session, storage, make_file):
        session = edit_session()
        await session.mount()

        session.handle_add_files(DocumentKind.OTHER_EVIDENCE, [make_file("extra.jpg")])
        await session.handle_save_draft()

        assert storage.calls == [("upload_files", "draft-9", "evidence_photo", "other", ["extra.jpg"])]

    @pytest.mark.asyncio
    async def test_reverted_value_is_sent_after_save(self, edit_session, records, notifications):
        session = edit_session()
        await session.mount()

        session.handle_field_change("collected_volume_kg", 200)
        assert await session.handle_save_draft() is True
        session.handle_field_change("collected_volume_kg", 100)
        assert await session.handle_save_draft() is True

        assert records.updated == [
            ("draft-9", {"collectedVolumeKg": 200}),
            ("draft-9", {"collectedVolumeKg": 100}),
        ]
        assert session.original.fields["collected_volume_kg"] == 100
        assert "info" not in _levels(notifications)

    @pytest.mark.asyncio
    async def test_saved_value_is_not_resent(self, edit_session, records):
        session = edit_session()
        await session.mount()

        session.handle_field_change("vehicle_plate", "51C-99999")
        await session.handle_save_draft()
        await session.handle_save_draft()

        assert records.updated == [("draft-9", {"vehiclePlate": "51C-99999"})]

    @pytest.mark.asyncio
    async def test_removed_file_uploads_again_when_re_added(self, edit_session, storage, make_file):
        session = edit_session()
        await session.mount()
        extra = make_file("extra.jpg")

        session.handle_add_files(DocumentKind.OTHER_EVIDENCE, [extra])
        await session.handle_save_draft()
        assert await session.handle_remove_file(AttachmentCategory.EVIDENCE_PHOTO, "file-1") is True
        assert session.handle_add_files(DocumentKind.OTHER_EVIDENCE, [extra]) == 1
        await session.handle_save_draft()

        assert storage.ops() == ["upload_files", "delete_file", "upload_files"]
        evidence = session.attachment_groups[AttachmentCategory.EVIDENCE_PHOTO]
        assert [(f.server_id, f.status) for f in evidence] == [
            ("f-ev1", FileStatus.UPLOADED),
            ("file-2", FileStatus.UPLOADED),
        ]

    @pytest.mark.asyncio
    async def test_same_document_before_and_after(self, edit_session, storage, make_file):
        session = edit_session()
        await session.mount()
        session.current_step = 3
        report = make_file("report.pdf")

        session.handle_add_files(DocumentKind.QUALITY_BEFORE, [report])
        await session.handle_save_draft()
        session.handle_add_files(DocumentKind.QUALITY_AFTER, [report])
        await session.handle_save_draft()

        assert [c[2] for c in storage.calls] == ["quality_metrics", "output_quality_metrics"]
        after = session.attachment_groups[AttachmentCategory.OUTPUT_QUALITY_METRICS]
        assert all(f.status is FileStatus.UPLOADED for f in after)

    @pytest.mark.asyncio
    async def test_submit_existing_draft(self, edit_session, records):
        session = edit_session()
        await session.mount()

        assert await session.handle_submit() is True
        assert records.submitted == ["draft-9"]
        assert records.created == []

    @pytest.mark.asyncio
    async def test_redo_reloads(self, edit_session, draft_loader):
        session = edit_session()
        await session.mount()
        session.handle_field_change("vehicle_plate", "changed")
        session.current_step = 3

        assert await session.handle_redo() is True
        assert draft_loader.loads == 2
        assert session.fields["vehicle_plate"] == "51C-12345"
        assert session.current_step == 1

    def test_edit_mode_needs_loader(self, create_session):
        with pytest.raises(SessionStateError):
            create_session(mode=FormMode.EDIT, draft_id="draft-9")


class TestRedoCancel:
    @pytest.mark.asyncio
    async def test_create_redo_clears_everything(self, create_session, fill_valid):
        session = fill_valid(create_session())
        await session.handle_save_draft()
        session.current_step = 3

        assert await session.handle_redo() is True
        assert session.draft_id is None
        assert session.current_step == 1
        assert session.fields["waste_owner_id"] is None
        assert all(not files for files in session.attachment_groups.values())
        assert session.reconciliation.synced_count() == 0

    @pytest.mark.asyncio
    async def test_declined_redo_keeps_state(self, create_session, fill_valid, confirm_answers):
        session = fill_valid(create_session())
        confirm_answers.append(False)

        assert await session.handle_redo() is False
        assert session.fields["waste_owner_id"] == "owner-1"

    @pytest.mark.asyncio
    async def test_cancel(self, create_session, records, confirm_answers):
        session = create_session()
        confirm_answers.extend([False, True])

        assert await session.handle_cancel() is False
        assert not session.closed
        assert await session.handle_cancel() is True
        assert session.closed
        assert records.created == [] and records.updated == []


class TestAttachments:
    def test_duplicates_ignored(self, create_session, make_file):
        session = create_session()
        f = make_file("slip.jpg")

        assert session.handle_add_files(DocumentKind.WEIGHING_SLIP, [f]) == 1
        assert session.handle_add_files(DocumentKind.WEIGHING_SLIP, [f]) == 0
        assert len(session.attachment_groups[AttachmentCategory.EVIDENCE_PHOTO]) == 1

    @pytest.mark.asyncio
    async def test_re_picking_uploaded_file_is_ignored(self, edit_session, storage, make_file):
        session = edit_session()
        await session.mount()
        f = make_file("a.jpg")
        session.handle_add_files(DocumentKind.WEIGHING_SLIP, [f])
        await session.handle_save_draft()

        assert session.handle_add_files(DocumentKind.WEIGHING_SLIP, [f]) == 0
        evidence = session.attachment_groups[AttachmentCategory.EVIDENCE_PHOTO]
        assert [m.server_id for m in evidence] == ["f-ev1", "file-1"]

    def test_rejected_type_warns(self, create_session, make_file, notifications):
        session = create_session()

        added = session.handle_add_files(DocumentKind.HAZ_CERTIFICATE, [make_file("cert.jpg")])

        assert added == 0
        assert notifications[-1].level == "warning"

    def test_category_limit(self, create_session, make_file, notifications):
        session = create_session()

        added = session.handle_add_files(
            DocumentKind.QUALITY_BEFORE, [make_file(f"q{i}.pdf") for i in range(5)]
        )

        assert added == 3
        assert "At most 3" in notifications[-1].message

    def test_single_slot_swap(self, create_session, make_file):
        session = create_session()
        session.handle_add_files(DocumentKind.STOCKPILE_PHOTO, [make_file("a.jpg")])
        session.handle_add_files(DocumentKind.STOCKPILE_PHOTO, [make_file("b.jpg")])

        slot = session.attachment_groups[AttachmentCategory.STOCKPILE_PHOTO]
        assert [f.display_name for f in slot] == ["b.jpg"]
        assert slot[0].replaces_identity is None

    @pytest.mark.asyncio
    async def test_remove_pending_is_local(self, create_session, make_file, storage):
        session = create_session()
        f = make_file("q.pdf")
        session.handle_add_files(DocumentKind.QUALITY_BEFORE, [f])

        assert await session.handle_remove_file("quality_metrics", f.local_identity) is True
        assert session.attachment_groups[AttachmentCategory.QUALITY_METRICS] == []
        assert storage.calls == []

    @pytest.mark.asyncio
    async def test_remove_uploaded_deletes(self, edit_session, storage):
        session = edit_session()
        await session.mount()

        assert await session.handle_remove_file(AttachmentCategory.QUALITY_METRICS, "f-qb") is True
        assert storage.calls == [("delete_file", "f-qb")]
        assert not session.reconciliation.is_synced(AttachmentCategory.QUALITY_METRICS, "f-qb")

    @pytest.mark.asyncio
    async def test_failed_delete_keeps_file(self, edit_session, storage, notifications):
        session = edit_session()
        await session.mount()
        storage.fail_delete = True

        assert await session.handle_remove_file(AttachmentCategory.QUALITY_METRICS, "f-qb") is False
        assert len(session.attachment_groups[AttachmentCategory.QUALITY_METRICS]) == 1
        assert notifications[-1].level == "error"


class TestDisplay:
    @pytest.mark.asyncio
    async def test_selected_names(self, edit_session, reference_loader):
        session = edit_session()
        await session.mount()

        assert session.selected_contract_type_name() == "Annual contract"
        assert session.selected_waste_source_name() == "Used engine oil"
        assert session.selected_haz_code_name() == "Waste mineral oil (13 02 05)"
        assert await session.selected_waste_owner_name() == "Owner A"
        assert await session.selected_waste_owner_name() == "Owner A"
        assert reference_loader.owner_lookups == 1

    @pytest.mark.asyncio
    async def test_view(self, edit_session):
        session = edit_session()
        await session.mount()

        view = session.view()

        assert view["mode"] == "edit"
        assert view["draft_id"] == "draft-9"
        assert view["fields"]["collection_date"] == "15/03/2024"
        assert view["attachments"]["recycled_photo"][0]["identity"] == "f-rec"
        assert view["selected"]["contract_type"] == "Annual contract"
