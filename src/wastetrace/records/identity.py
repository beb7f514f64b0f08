"""File identity and per-session reconciliation sets.

A ReconciliationState belongs to exactly one FormSession. Only the
UploadOrchestrator records uploads and deletions in it.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from wastetrace.records.model import (
    SINGLE_SLOT_CATEGORIES,
    AttachmentCategory,
    LocalFile,
    ManagedFile,
    OriginalSnapshot,
)


def identity_of(file: LocalFile | ManagedFile) -> str:
    """Stable session-local identity.

    Unsent files: "<name>-<size>-<mtime>". Uploaded files: the server id.
    """
    if isinstance(file, ManagedFile):
        return file.identity
    return file.local_identity


def is_changed_single_file(current: LocalFile | None, original: LocalFile | None) -> bool:
    """True when a single-slot attachment was re-picked.

    The comparison is by reference: the same object means untouched.
    """
    if current is None:
        return False
    if original is None:
        return True
    return current is not original


@dataclass
class ReconciliationState:
    """What is already represented server-side for one session.

    Server ids are unique across the draft, so a server id synced under
    any category is not new. Local identities only say a file was sent to
    one category: the same document may still be attached to another.
    """

    synced: dict[AttachmentCategory, set[str]] = field(
        default_factory=lambda: {c: set() for c in AttachmentCategory}
    )
    sent: dict[AttachmentCategory, set[str]] = field(
        default_factory=lambda: {c: set() for c in AttachmentCategory}
    )
    # Last source sent (or hydrated) per single-slot category.
    slot_sources: dict[AttachmentCategory, LocalFile | None] = field(
        default_factory=lambda: {c: None for c in SINGLE_SLOT_CATEGORIES}
    )

    @classmethod
    def from_snapshot(cls, snapshot: OriginalSnapshot) -> ReconciliationState:
        state = cls()
        for category in AttachmentCategory:
            state.synced[category] = set(snapshot.identities(category))
        return state

    def is_synced(self, category: AttachmentCategory, identity: str) -> bool:
        return identity in self.synced[category]

    def is_new(self, identity: str) -> bool:
        """True iff the server id is absent from every category's synced set."""
        return not any(identity in ids for ids in self.synced.values())

    def is_sent(self, category: AttachmentCategory, local_identity: str) -> bool:
        return local_identity in self.sent[category]

    def needs_upload(self, file: ManagedFile) -> bool:
        if file.server_id:
            return self.is_new(file.server_id)
        return not self.is_sent(file.category, file.identity)

    def slot_source(self, category: AttachmentCategory) -> LocalFile | None:
        return self.slot_sources.get(category)

    def record_synced(self, category: AttachmentCategory, identities: list[str]) -> None:
        self.synced[category].update(i for i in identities if i)

    def record_sent(self, category: AttachmentCategory, local_identities: list[str]) -> None:
        self.sent[category].update(i for i in local_identities if i)

    def record_slot_source(self, category: AttachmentCategory, source: LocalFile | None) -> None:
        if category in SINGLE_SLOT_CATEGORIES:
            self.slot_sources[category] = source

    def forget(self, category: AttachmentCategory, identities: list[str | None]) -> None:
        """Drop server ids and local identities recorded for the category."""
        dropped = {i for i in identities if i}
        self.synced[category].difference_update(dropped)
        self.sent[category].difference_update(dropped)

    def synced_count(self) -> int:
        return sum(len(ids) for ids in self.synced.values()) + sum(
            len(ids) for ids in self.sent.values()
        )
