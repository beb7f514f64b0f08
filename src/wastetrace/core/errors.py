"""Error handling with friendly messages."""

from __future__ import annotations

from dataclasses import dataclass


class WasteTraceError(Exception):
    """Base exception for all WasteTrace errors."""

    def __init__(self, message: str, suggestion: str | None = None) -> None:
        self.message = message
        self.suggestion = suggestion
        super().__init__(message)

    def __str__(self) -> str:
        if self.suggestion:
            return f"{self.message}\nSuggestion: {self.suggestion}"
        return self.message


class ConfigError(WasteTraceError):
    """Configuration error."""

    pass


class SessionStateError(WasteTraceError):
    """Operation not valid for the current session state."""

    pass


class PayloadError(WasteTraceError):
    """Draft payload could not be built."""

    pass


class PersistenceError(WasteTraceError):
    """Draft create/update/submit call failed.

    The session keeps fields, attachments and step untouched so the
    user can retry without re-entering data.
    """

    def __init__(self, operation: str, draft_id: str | None, cause: BaseException) -> None:
        self.operation = operation
        self.draft_id = draft_id
        self.cause = cause
        super().__init__(
            f"Could not {operation} draft: {_describe(cause)}",
            "Check the connection and try again; nothing entered has been lost",
        )


@dataclass(frozen=True)
class UploadFailure:
    """One failed attachment call."""

    operation: str  # upload_batch | upload_single | replace | delete
    category: str
    file_names: tuple[str, ...]
    reason: str


class UploadError(WasteTraceError):
    """One or more attachment calls failed.

    Raised after every call of a reconcile pass has settled. The draft
    itself may already be saved.
    """

    def __init__(self, failures: list[UploadFailure], draft_id: str | None = None) -> None:
        self.failures = list(failures)
        self.draft_id = draft_id
        count = sum(len(f.file_names) or 1 for f in self.failures)
        super().__init__(
            f"Draft saved, but {count} file(s) failed to upload",
            "Save again to retry; files already uploaded will not be sent twice",
        )


def _describe(cause: BaseException) -> str:
    text = str(cause).strip()
    if text:
        return text
    return type(cause).__name__
