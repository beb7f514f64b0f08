"""Collaborator interfaces for the draft record session.

The session only talks to these protocols. Hosts provide implementations
backed by the records API, the file storage API and their UI toolkit.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from wastetrace.records.model import LocalFile
    from wastetrace.records.reference import ReferenceData


class DraftRecordsService(Protocol):
    """Remote persistence for collection record drafts."""

    async def create_draft(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Create a draft.

        Returns:
            Created record; must contain "id"
        """
        ...

    async def update_draft(self, draft_id: str, payload: dict[str, Any]) -> Any:
        """Update a draft.

        Omitted keys mean "leave unchanged"; an explicit None clears the value.
        """
        ...

    async def submit_draft(self, draft_id: str) -> Any:
        """Move a draft to the submitted (pending approval) state."""
        ...


class FileStorage(Protocol):
    """Remote file storage for record attachments."""

    async def upload_files(
        self,
        draft_id: str,
        files: list[LocalFile],
        category: str,
        sub_type: str | None = None,
    ) -> list[dict[str, Any]]:
        """Register new files under a draft; one record (with "id") per file, in order."""
        ...

    async def upload_single_file(
        self, draft_id: str, file: LocalFile, category: str
    ) -> dict[str, Any]:
        """Register one new file under a draft."""
        ...

    async def replace_file(self, file_id: str, new_file: LocalFile) -> dict[str, Any]:
        """Swap the bytes under an existing file id (category and position kept)."""
        ...

    async def delete_file(self, file_id: str) -> None:
        ...


class ReferenceDataLoader(Protocol):
    """Read-only dropdown data."""

    async def load_reference_data(self) -> ReferenceData:
        ...

    async def get_waste_owner(self, owner_id: str) -> dict[str, Any]:
        """Return the waste owner record ("id", "name")."""
        ...


@dataclass
class ExistingDraft:
    """Server state of a draft for edit-mode hydration.

    record: the collection record as returned by the records API
    files: attachment records (id, category, subType, fileName, mimeType, signedUrl)
    """

    record: dict[str, Any]
    files: list[dict[str, Any]] = field(default_factory=list)


class DraftLoader(Protocol):
    async def load_existing_draft(self, draft_id: str) -> ExistingDraft:
        ...


@dataclass(frozen=True)
class Notification:
    level: str  # success | info | warning | error
    message: str
    detail: str | None = None


Confirm = Callable[[str], Awaitable[bool]]
Notifier = Callable[[Notification], None]
