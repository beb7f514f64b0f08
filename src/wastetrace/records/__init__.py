"""Collection record drafts: validation, payloads, uploads and the wizard session."""

from wastetrace.records.changes import diff_fields
from wastetrace.records.hydration import fields_from_record, files_from_server, hydrate
from wastetrace.records.identity import ReconciliationState, identity_of, is_changed_single_file
from wastetrace.records.interfaces import (
    Confirm,
    DraftLoader,
    DraftRecordsService,
    ExistingDraft,
    FileStorage,
    Notification,
    Notifier,
    ReferenceDataLoader,
)
from wastetrace.records.model import (
    Activity,
    AttachmentCategory,
    DocumentKind,
    FileStatus,
    FormMode,
    LocalFile,
    ManagedFile,
    OriginalSnapshot,
    Step,
)
from wastetrace.records.payload import DraftPayload, build_payload
from wastetrace.records.reference import ReferenceData, ReferenceItem
from wastetrace.records.session import FormSession
from wastetrace.records.settings import SessionSettings
from wastetrace.records.uploads import ReconcileReport, UploadCall, UploadOrchestrator, plan
from wastetrace.records.validation import (
    SubmissionResult,
    ValidationContext,
    ValidationResult,
    check_file,
    validate_step,
    validate_submission,
)

__all__ = [
    # Session
    "FormSession",
    "SessionSettings",
    # Model
    "Activity",
    "AttachmentCategory",
    "DocumentKind",
    "FileStatus",
    "FormMode",
    "LocalFile",
    "ManagedFile",
    "OriginalSnapshot",
    "Step",
    # Payloads
    "DraftPayload",
    "build_payload",
    "diff_fields",
    # Identity and uploads
    "ReconciliationState",
    "identity_of",
    "is_changed_single_file",
    "ReconcileReport",
    "UploadCall",
    "UploadOrchestrator",
    "plan",
    # Validation
    "SubmissionResult",
    "ValidationContext",
    "ValidationResult",
    "check_file",
    "validate_step",
    "validate_submission",
    # Hydration and reference data
    "fields_from_record",
    "files_from_server",
    "hydrate",
    "ReferenceData",
    "ReferenceItem",
    # Collaborators
    "Confirm",
    "DraftLoader",
    "DraftRecordsService",
    "ExistingDraft",
    "FileStorage",
    "Notification",
    "Notifier",
    "ReferenceDataLoader",
]
