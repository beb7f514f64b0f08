"""Form session - the collection record wizard state machine.

One FormSession drives one wizard instance: four linear steps, an
orthogonal busy activity, Save/Submit/Redo/Cancel sequencing and
attachment management. Collaborator failures never escape the handle_*
methods; they are logged, published as diagnostics and turned into
notifications.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from datetime import date
from typing import Any

from wastetrace.core.diagnostics import emit
from wastetrace.core.errors import PersistenceError, SessionStateError, UploadError
from wastetrace.core.logging import get_logger
from wastetrace.records import reference as ref
from wastetrace.records.dates import format_ddmmyyyy
from wastetrace.records.fields import CATEGORY_FIELD, FIELDS, FIELDS_BY_NAME, step_of
from wastetrace.records.hydration import hydrate
from wastetrace.records.identity import ReconciliationState
from wastetrace.records.interfaces import (
    Confirm,
    DraftLoader,
    DraftRecordsService,
    FileStorage,
    Notification,
    Notifier,
    ReferenceDataLoader,
)
from wastetrace.records.model import (
    FIRST_STEP,
    LAST_STEP,
    SINGLE_SLOT_CATEGORIES,
    Activity,
    AttachmentCategory,
    DocumentKind,
    FileStatus,
    FormMode,
    LocalFile,
    ManagedFile,
    OriginalSnapshot,
    Step,
    empty_groups,
    target_of,
)
from wastetrace.records.payload import build_payload
from wastetrace.records.reference import ReferenceData
from wastetrace.records.settings import SessionSettings
from wastetrace.records.uploads import UploadOrchestrator
from wastetrace.records.validation import (
    ValidationContext,
    check_file,
    is_present,
    validate_step,
    validate_submission,
)

logger = get_logger(__name__)

VEHICLE_PLATE_REQUIRED = "Vehicle plate is required before submitting"


async def _auto_confirm(message: str) -> bool:
    return True


class FormSession:
    """Collection record wizard session.

    Example:
        session = FormSession(
            mode=FormMode.CREATE,
            records=records_api,
            storage=file_storage,
            reference_loader=reference_api,
            confirm=ask_user,
            notifier=toast,
        )
        await session.mount()
        session.handle_field_change("waste_owner_id", "owner-1")
        session.handle_next()
        await session.handle_save_draft()
    """

    def __init__(
        self,
        *,
        mode: FormMode | str,
        records: DraftRecordsService,
        storage: FileStorage,
        reference_loader: ReferenceDataLoader,
        draft_loader: DraftLoader | None = None,
        draft_id: str | None = None,
        confirm: Confirm | None = None,
        notifier: Notifier | None = None,
        settings: SessionSettings | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        """Initialize session.

        Args:
            mode: create or edit (immutable for the session's lifetime)
            records: Draft persistence collaborator
            storage: File storage collaborator
            reference_loader: Dropdown data collaborator
            draft_loader: Existing-draft loader (edit mode)
            draft_id: Draft to edit (edit mode)
            confirm: Async confirmation capability; auto-confirms when None
            notifier: Receives user-facing notifications
            settings: Session settings (defaults when None)
            today: Clock for the default collection date

        Raises:
            SessionStateError: Edit mode without a draft id or loader
        """
        self.mode = FormMode(mode)
        if self.mode is FormMode.EDIT and (not draft_id or draft_loader is None):
            raise SessionStateError(
                "Edit mode needs the draft id and a draft loader",
                "Pass draft_id and draft_loader when editing an existing draft",
            )

        self.records = records
        self.storage = storage
        self.reference_loader = reference_loader
        self.draft_loader = draft_loader
        self.confirm: Confirm = confirm or _auto_confirm
        self.notifier = notifier
        self.settings = settings or SessionSettings()
        self._today = today

        self.current_step: int = FIRST_STEP
        self.draft_id: str | None = draft_id
        self.fields: dict[str, Any] = self._initial_fields()
        self.errors: dict[str, str] = {}
        self.attachment_groups = empty_groups()
        self.activity = Activity.IDLE
        self.original: OriginalSnapshot | None = None
        # Field values the server holds as of the last successful save.
        self.baseline: OriginalSnapshot | None = None
        self.reconciliation = ReconciliationState()
        self.reference = ReferenceData()
        self.orchestrator = UploadOrchestrator(storage, self.settings.max_concurrency)

        self.mounted = False
        self.submitted = False
        self.closed = False
        self._owner_names: dict[str, str] = {}

    # --- state helpers ---------------------------------------------------

    @property
    def is_busy(self) -> bool:
        return self.activity is not Activity.IDLE

    def _initial_fields(self) -> dict[str, Any]:
        fields: dict[str, Any] = {spec.name: None for spec in FIELDS}
        fields["stockpiled"] = False
        if self.mode is FormMode.CREATE:
            fields["collection_date"] = self._today()
        return fields

    def _context(self) -> ValidationContext:
        return ValidationContext(fields=self.fields, attachments=self.attachment_groups)

    def _store_step_errors(self, step: int, errors: dict[str, str]) -> None:
        kept = {k: v for k, v in self.errors.items() if step_of(k) != step}
        kept.update(errors)
        self.errors = kept

    def _notify(self, level: str, message: str, detail: str | None = None) -> None:
        emit(
            "session.notification",
            component="session",
            operation=level,
            data={"message": message, "detail": detail, "draft_id": self.draft_id},
        )
        if self.notifier is None:
            return
        try:
            self.notifier(Notification(level=level, message=message, detail=detail))
        except Exception as e:
            logger.warning(f"Notifier failed: {type(e).__name__}: {e}")

    async def _call(self, operation: str, fn: Callable[..., Awaitable[Any]], *args: Any) -> Any:
        """Run one persistence call inside diagnostics boundaries.

        Raises:
            PersistenceError: The collaborator raised
        """
        data = {"draft_id": self.draft_id, "mode": self.mode.value}
        emit("boundary.start", component="session", operation=operation, data=data)
        try:
            result = await fn(*args)
        except Exception as e:
            emit(
                "boundary.end",
                component="session",
                operation=operation,
                data={**data, "status": "failed", "error": str(e) or type(e).__name__},
            )
            logger.error(f"{operation} draft failed: {type(e).__name__}: {e}")
            raise PersistenceError(operation, self.draft_id, e) from e
        emit("boundary.end", component="session", operation=operation, data={**data, "status": "succeeded"})
        return result

    # --- lifecycle -------------------------------------------------------

    async def mount(self) -> bool:
        """Load reference data; in edit mode also load and hydrate the draft.

        Returns:
            False when the existing draft could not be loaded
        """
        try:
            self.reference = await self.reference_loader.load_reference_data()
        except Exception as e:
            logger.warning(f"Reference data unavailable: {type(e).__name__}: {e}")
            self._notify("warning", "Could not load dropdown options", str(e) or None)

        if self.mode is FormMode.EDIT:
            try:
                await self._load_existing()
            except PersistenceError as e:
                self._notify("error", e.message, e.suggestion)
                return False

        self.mounted = True
        return True

    async def _load_existing(self) -> None:
        existing = await self._call("load", self.draft_loader.load_existing_draft, self.draft_id)
        hydrated = hydrate(self.draft_id, existing)

        fields = self._initial_fields()
        fields.update(hydrated.fields)
        self.fields = fields
        self.draft_id = hydrated.draft_id
        self.attachment_groups = hydrated.groups
        self.original = hydrated.snapshot
        self.baseline = hydrated.snapshot
        self.reconciliation = ReconciliationState.from_snapshot(hydrated.snapshot)
        self.errors = {}

    # --- field and navigation handlers -------------------------------------

    def handle_field_change(self, field: str, value: Any) -> None:
        """Set a field value and clear its error.

        Raises:
            SessionStateError: Unknown field name
        """
        if field not in FIELDS_BY_NAME:
            raise SessionStateError(f"Unknown field '{field}'")
        self.fields[field] = value
        self.errors.pop(field, None)

    def handle_next(self) -> bool:
        if self.is_busy or self.current_step >= LAST_STEP:
            return False
        result = validate_step(self.current_step, self._context())
        self._store_step_errors(self.current_step, result.errors)
        if not result.valid:
            logger.debug(f"Step {self.current_step} gate failed: {sorted(result.errors)}")
            return False
        self.current_step += 1
        return True

    def handle_back(self) -> bool:
        if self.is_busy or self.current_step <= FIRST_STEP:
            return False
        self.current_step -= 1
        return True

    # --- save / submit -----------------------------------------------------

    async def _persist(self) -> None:
        """Create the draft or send the field changes.

        Edit-mode partials diff against the last saved values, so a value
        changed back to its load-time state after a save is still sent.
        """
        fields = dict(self.fields)
        payload = build_payload(
            self.mode,
            fields,
            self.baseline,
            legacy_falsy_numeric=self.settings.legacy_falsy_numeric_null,
        )
        if self.draft_id is None:
            record = await self._call("create", self.records.create_draft, payload.to_dict())
            draft_id = record.get("id") if isinstance(record, dict) else None
            if not draft_id:
                raise PersistenceError("create", None, ValueError("response has no draft id"))
            self.draft_id = str(draft_id)
            logger.info(f"Draft created: {self.draft_id}")
            return

        if payload.kind == "partial" and payload.is_empty:
            logger.debug(f"No field changes for draft {self.draft_id}")
            self._notify("info", "No field changes to save")
            return
        await self._call("update", self.records.update_draft, self.draft_id, payload.to_dict())
        if self.baseline is not None:
            self.baseline = self.baseline.rebased(fields)
        logger.verbose(f"Draft {self.draft_id} updated ({len(payload.data)} key(s))")

    async def _reconcile(self) -> None:
        if self.draft_id is None:
            return
        await self.orchestrator.reconcile(self.draft_id, self.attachment_groups, self.reconciliation)

    async def handle_save_draft(self) -> bool:
        """Persist the draft, gated on the current step's required fields only."""
        if self.is_busy:
            return False

        result = validate_step(self.current_step, self._context())
        self._store_step_errors(self.current_step, result.errors)
        if not result.valid:
            self._notify("error", "Please complete the required fields before saving")
            return False

        self.activity = Activity.SAVING
        try:
            await self._persist()
            await self._reconcile()
        except PersistenceError as e:
            self._notify("error", e.message, e.suggestion)
            return False
        except UploadError as e:
            self._notify("warning", e.message, e.suggestion)
            return False
        finally:
            self.activity = Activity.IDLE

        self._notify("success", "Draft saved")
        return True

    async def handle_submit(self) -> bool:
        """Validate everything, persist, reconcile files, then submit.

        On validation failure the session jumps to the lowest step holding
        an error and no collaborator is called.
        """
        if self.is_busy:
            return False

        result = validate_submission(self._context())
        if not result.valid:
            self.errors = dict(result.errors)
            self.current_step = int(result.first_step or FIRST_STEP)
            self._notify("error", "Please complete all required fields before submitting")
            return False

        if not is_present(self.fields.get("vehicle_plate")):
            self.errors["vehicle_plate"] = VEHICLE_PLATE_REQUIRED
            self.current_step = int(Step.COLLECTION)
            self._notify("error", VEHICLE_PLATE_REQUIRED)
            return False

        self.activity = Activity.SUBMITTING
        try:
            await self._persist()
            await self._reconcile()
            await self._call("submit", self.records.submit_draft, self.draft_id)
        except PersistenceError as e:
            self._notify("error", e.message, e.suggestion)
            return False
        except UploadError as e:
            # Incomplete evidence must not reach approval.
            self._notify("error", f"{e.message}; the record was not submitted", e.suggestion)
            return False
        finally:
            self.activity = Activity.IDLE

        self.submitted = True
        self.errors = {}
        logger.info(f"Draft submitted: {self.draft_id}")
        self._notify("success", "Record submitted for approval")
        return True

    async def handle_redo(self) -> bool:
        """Start over after confirmation.

        Create mode forgets the draft entirely; edit mode reloads it.
        """
        if self.is_busy:
            return False
        if not await self.confirm("Discard all changes and start over?"):
            return False

        if self.mode is FormMode.CREATE:
            self.fields = self._initial_fields()
            self.attachment_groups = empty_groups()
            self.errors = {}
            self.current_step = FIRST_STEP
            self.draft_id = None
            self.reconciliation = ReconciliationState()
            return True

        try:
            await self._load_existing()
        except PersistenceError as e:
            self._notify("error", e.message, e.suggestion)
            return False
        self.current_step = FIRST_STEP
        return True

    async def handle_cancel(self) -> bool:
        if not await self.confirm("Leave without saving?"):
            return False
        self.closed = True
        return True

    # --- attachments -------------------------------------------------------

    def handle_add_files(self, kind: DocumentKind | str, files: Iterable[LocalFile]) -> int:
        """Add picked files under a document kind.

        Rejected types and files beyond the category limit produce warning
        notifications. A file whose identity is already in the category is
        ignored. Single-slot categories swap their file.

        Returns:
            Number of files added
        """
        kind = DocumentKind(kind)
        category = target_of(kind).category
        group = self.attachment_groups[category]

        accepted: list[LocalFile] = []
        for f in files:
            message = check_file(category, f)
            if message:
                self._notify("warning", message)
                continue
            accepted.append(f)
        if not accepted:
            return 0

        if category in SINGLE_SLOT_CATEGORIES:
            source = accepted[-1]
            if source is self.reconciliation.slot_source(category) or any(f.source is source for f in group):
                logger.debug(f"{category.value} already holds {source.name}")
                return 0
            self.attachment_groups[category] = [self._swap_slot(kind, group, source)]
            self.errors.pop(CATEGORY_FIELD[category], None)
            return 1

        known = {f.identity for f in group} | {f.local_identity for f in group if f.local_identity}
        live = sum(1 for f in group if f.status is not FileStatus.DELETING)
        limit = self.settings.max_files_for(category)
        added = 0
        for f in accepted:
            if f.local_identity in known:
                logger.debug(f"Ignoring duplicate {f.name} in {category.value}")
                continue
            if live >= limit:
                self._notify("warning", f"At most {limit} file(s) allowed for {category.value}")
                break
            group.append(ManagedFile(kind=kind, source=f))
            known.add(f.local_identity)
            live += 1
            added += 1

        if added:
            self.errors.pop(CATEGORY_FIELD[category], None)
        return added

    @staticmethod
    def _swap_slot(kind: DocumentKind, group: list[ManagedFile], source: LocalFile) -> ManagedFile:
        replaces: str | None = None
        for old in group:
            if old.server_id and old.status is FileStatus.UPLOADED:
                replaces = old.server_id
            elif old.replaces_identity:
                replaces = old.replaces_identity
        return ManagedFile(kind=kind, source=source, replaces_identity=replaces)

    async def handle_remove_file(self, category: AttachmentCategory | str, identity: str) -> bool:
        """Remove one attachment after confirmation.

        Pending files are dropped locally; uploaded files are deleted from
        storage. Removing a pending replacement also deletes the stored
        file it was going to replace.
        """
        category = AttachmentCategory(category)
        group = self.attachment_groups[category]
        target = next((f for f in group if f.identity == identity), None)
        if target is None:
            return False
        if not await self.confirm(f"Remove {target.display_name}?"):
            return False

        stored: ManagedFile | None = None
        if target.server_id:
            stored = target
        elif target.replaces_identity:
            stored = ManagedFile(
                kind=target.kind, status=FileStatus.UPLOADED, server_id=target.replaces_identity
            )

        if stored is not None:
            try:
                await self.orchestrator.delete(stored, self.reconciliation)
            except UploadError as e:
                self._notify("error", f"Could not remove {target.display_name}", e.failures[0].reason)
                return False

        group.remove(target)
        return True

    # --- display helpers -----------------------------------------------------

    def selected_contract_type_name(self) -> str | None:
        return ref.contract_type_name(self.reference, self.fields.get("contract_type_id"))

    def selected_waste_source_name(self) -> str | None:
        return ref.waste_source_name(self.reference, self.fields.get("waste_source_id"))

    def selected_haz_code_name(self) -> str | None:
        return ref.haz_code_name(self.reference, self.fields.get("haz_waste_id"))

    async def selected_waste_owner_name(self) -> str | None:
        owner_id = self.fields.get("waste_owner_id")
        if not owner_id:
            return None
        owner_id = str(owner_id)
        if owner_id in self._owner_names:
            return self._owner_names[owner_id]
        try:
            owner = await self.reference_loader.get_waste_owner(owner_id)
        except Exception as e:
            logger.warning(f"Waste owner lookup failed for {owner_id}: {e}")
            return None
        name = (owner or {}).get("name")
        if name:
            self._owner_names[owner_id] = name
        return name

    def view(self) -> dict[str, Any]:
        """Plain snapshot of the session for presentation."""
        fields = {}
        for spec in FIELDS:
            value = self.fields.get(spec.name)
            fields[spec.name] = format_ddmmyyyy(value) if isinstance(value, date) else value
        return {
            "mode": self.mode.value,
            "step": self.current_step,
            "draft_id": self.draft_id,
            "activity": self.activity.value,
            "fields": fields,
            "errors": dict(self.errors),
            "attachments": {
                category.value: [f.to_dict() for f in files]
                for category, files in self.attachment_groups.items()
            },
            "selected": {
                "contract_type": self.selected_contract_type_name(),
                "waste_source": self.selected_waste_source_name(),
                "haz_code": self.selected_haz_code_name(),
            },
            "submitted": self.submitted,
            "closed": self.closed,
        }
