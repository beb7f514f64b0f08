"""Upload orchestrator - reconcile attachment groups with file storage.

A reconcile pass plans every call first (pure), then runs them as one
concurrent batch limited by a semaphore. A failing call never cancels the
others; failures are collected and raised together once the whole pass
has settled.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

from wastetrace.core.diagnostics import emit
from wastetrace.core.errors import UploadError, UploadFailure
from wastetrace.core.logging import get_logger
from wastetrace.records.identity import ReconciliationState, is_changed_single_file
from wastetrace.records.interfaces import FileStorage
from wastetrace.records.model import (
    SINGLE_SLOT_CATEGORIES,
    AttachmentCategory,
    AttachmentGroups,
    FileStatus,
    ManagedFile,
)

logger = get_logger(__name__)

UPLOAD_BATCH = "upload_batch"
UPLOAD_SINGLE = "upload_single"
REPLACE = "replace"
DELETE = "delete"

_SENDABLE = (FileStatus.PENDING, FileStatus.ERROR)


@dataclass(frozen=True)
class UploadCall:
    """One planned storage call."""

    operation: str
    category: AttachmentCategory
    files: tuple[ManagedFile, ...]
    sub_type: str | None = None
    replace_id: str | None = None

    @property
    def file_names(self) -> tuple[str, ...]:
        return tuple(f.display_name for f in self.files)


@dataclass
class ReconcileReport:
    calls: list[UploadCall] = field(default_factory=list)
    uploaded: list[ManagedFile] = field(default_factory=list)
    failures: list[UploadFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def call_count(self) -> int:
        return len(self.calls)


def _sendable(file: ManagedFile) -> bool:
    return file.status in _SENDABLE and file.source is not None


def plan(groups: AttachmentGroups, state: ReconciliationState) -> list[UploadCall]:
    """Decide which storage calls a reconcile pass must make.

    Multi-file categories: one batched upload per (category, sub_type)
    over files not yet sent to that category. Single-slot
    categories: at most one call, a replace when the file supersedes an
    uploaded one, and only when the slot source actually changed.

    Does not mutate groups or state.
    """
    calls: list[UploadCall] = []
    for category in AttachmentCategory:
        files = groups.get(category, [])
        if category in SINGLE_SLOT_CATEGORIES:
            candidate = next((f for f in files if _sendable(f)), None)
            if candidate is None:
                continue
            if not is_changed_single_file(candidate.source, state.slot_source(category)):
                continue
            if candidate.replaces_identity:
                calls.append(
                    UploadCall(REPLACE, category, (candidate,), replace_id=candidate.replaces_identity)
                )
            else:
                calls.append(UploadCall(UPLOAD_SINGLE, category, (candidate,)))
            continue

        by_sub_type: dict[str | None, list[ManagedFile]] = {}
        for f in files:
            if _sendable(f) and state.needs_upload(f):
                by_sub_type.setdefault(f.sub_type, []).append(f)
        for sub_type, batch in by_sub_type.items():
            calls.append(UploadCall(UPLOAD_BATCH, category, tuple(batch), sub_type=sub_type))
    return calls


def _server_id(record: Any) -> str:
    file_id = record.get("id") if isinstance(record, dict) else None
    if not file_id:
        raise ValueError("storage returned a file record without an id")
    return str(file_id)


class UploadOrchestrator:
    """Only mutator of a session's ReconciliationState."""

    def __init__(self, storage: FileStorage, max_concurrency: int = 4) -> None:
        """Initialize orchestrator.

        Args:
            storage: File storage collaborator
            max_concurrency: Maximum storage calls in flight
        """
        self.storage = storage
        self.max_concurrency = max_concurrency
        self.semaphore = asyncio.Semaphore(max_concurrency)

    async def reconcile(
        self,
        draft_id: str,
        groups: AttachmentGroups,
        state: ReconciliationState,
    ) -> ReconcileReport:
        """Upload/replace everything not yet represented server-side.

        Args:
            draft_id: Draft the files belong to
            groups: Session attachment groups (statuses are updated in place)
            state: Session reconciliation state

        Returns:
            Report of planned calls and uploaded files

        Raises:
            UploadError: After all calls settle, if any of them failed
        """
        calls = plan(groups, state)
        report = ReconcileReport(calls=calls)
        if not calls:
            logger.debug(f"Nothing to reconcile for draft {draft_id}")
            return report

        logger.verbose(f"Reconciling {len(calls)} storage call(s) for draft {draft_id}")
        outcomes = await asyncio.gather(
            *(self._execute(draft_id, call, state) for call in calls),
            return_exceptions=True,
        )

        for call, outcome in zip(calls, outcomes):
            if isinstance(outcome, UploadFailure):
                report.failures.append(outcome)
            elif isinstance(outcome, BaseException):
                # Bookkeeping bug rather than a storage failure.
                report.failures.append(
                    UploadFailure(call.operation, call.category.value, call.file_names, str(outcome))
                )
            else:
                report.uploaded.extend(call.files)

        if report.failures:
            logger.warning(f"{len(report.failures)} storage call(s) failed for draft {draft_id}")
            raise UploadError(report.failures, draft_id=draft_id)
        return report

    async def _execute(
        self, draft_id: str, call: UploadCall, state: ReconciliationState
    ) -> UploadFailure | None:
        async with self.semaphore:
            for f in call.files:
                f.status = FileStatus.UPLOADING
                f.error = None

            data = {
                "draft_id": draft_id,
                "category": call.category.value,
                "sub_type": call.sub_type,
                "files": list(call.file_names),
            }
            emit("boundary.start", component="uploads", operation=call.operation, data=data)
            try:
                ids = await self._send(draft_id, call)
            except Exception as e:
                reason = str(e) or type(e).__name__
                for f in call.files:
                    f.status = FileStatus.ERROR
                    f.error = reason
                emit(
                    "boundary.end",
                    component="uploads",
                    operation=call.operation,
                    data={**data, "status": "failed", "error": reason},
                )
                logger.error(f"{call.operation} failed for {call.category.value}: {reason}")
                return UploadFailure(call.operation, call.category.value, call.file_names, reason)

            self._mark_uploaded(call, ids, state)
            emit(
                "boundary.end",
                component="uploads",
                operation=call.operation,
                data={**data, "status": "succeeded", "ids": ids},
            )
            logger.verbose(f"{call.operation}: {len(ids)} file(s) stored in {call.category.value}")
            return None

    async def _send(self, draft_id: str, call: UploadCall) -> list[str]:
        sources = [f.source for f in call.files]
        category = call.category.value

        if call.operation == REPLACE:
            record = await self.storage.replace_file(call.replace_id, sources[0])
            # Replace keeps the file id when the storage does not hand back a new one.
            if isinstance(record, dict) and record.get("id"):
                return [str(record["id"])]
            return [str(call.replace_id)]

        if call.operation == UPLOAD_SINGLE:
            record = await self.storage.upload_single_file(draft_id, sources[0], category)
            return [_server_id(record)]

        records = await self.storage.upload_files(draft_id, sources, category, call.sub_type)
        if len(records) != len(sources):
            raise ValueError(f"storage returned {len(records)} record(s) for {len(sources)} file(s)")
        return [_server_id(r) for r in records]

    def _mark_uploaded(self, call: UploadCall, ids: list[str], state: ReconciliationState) -> None:
        if call.replace_id:
            state.forget(call.category, [call.replace_id])

        synced: list[str] = []
        sent: list[str] = []
        for f, server_id in zip(call.files, ids):
            source = f.source
            if source is not None:
                sent.append(source.local_identity)
                f.local_identity = source.local_identity
            synced.append(server_id)
            state.record_slot_source(call.category, source)

            f.server_id = server_id
            f.file_name = f.file_name or (source.name if source else None)
            f.status = FileStatus.UPLOADED
            f.replaces_identity = None
            f.error = None
            f.source = None
        state.record_synced(call.category, synced)
        state.record_sent(call.category, sent)

    async def delete(self, file: ManagedFile, state: ReconciliationState) -> None:
        """Delete an uploaded file and forget its identity.

        Raises:
            UploadError: Storage refused the delete; the file is kept
        """
        if not file.server_id:
            raise ValueError("only uploaded files can be deleted through storage")

        category = file.category
        data = {"category": category.value, "file_id": file.server_id}
        file.status = FileStatus.DELETING
        emit("boundary.start", component="uploads", operation=DELETE, data=data)
        try:
            await self.storage.delete_file(file.server_id)
        except Exception as e:
            reason = str(e) or type(e).__name__
            file.status = FileStatus.UPLOADED
            file.error = reason
            emit(
                "boundary.end",
                component="uploads",
                operation=DELETE,
                data={**data, "status": "failed", "error": reason},
            )
            logger.error(f"delete failed for {file.display_name}: {reason}")
            raise UploadError(
                [UploadFailure(DELETE, category.value, (file.display_name,), reason)]
            ) from e

        state.forget(category, [file.server_id, file.local_identity])
        if category in SINGLE_SLOT_CATEGORIES:
            state.record_slot_source(category, None)
        emit(
            "boundary.end",
            component="uploads",
            operation=DELETE,
            data={**data, "status": "succeeded"},
        )
        logger.verbose(f"Deleted {file.display_name} from {category.value}")
