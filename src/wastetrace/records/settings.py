"""Session settings resolved from configuration."""

from __future__ import annotations

from dataclasses import dataclass, field

from wastetrace.core.config import ConfigResolver
from wastetrace.records.model import SINGLE_SLOT_CATEGORIES, AttachmentCategory

DEFAULT_MAX_CONCURRENCY = 4
DEFAULT_MAX_FILES: dict[AttachmentCategory, int] = {
    AttachmentCategory.EVIDENCE_PHOTO: 10,
    AttachmentCategory.STOCKPILE_PHOTO: 1,
    AttachmentCategory.RECYCLED_PHOTO: 1,
    AttachmentCategory.QUALITY_METRICS: 3,
    AttachmentCategory.OUTPUT_QUALITY_METRICS: 3,
    AttachmentCategory.HAZ_WASTE_CERTIFICATE: 5,
}


@dataclass(frozen=True)
class SessionSettings:
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    max_files: dict[AttachmentCategory, int] = field(default_factory=lambda: dict(DEFAULT_MAX_FILES))
    legacy_falsy_numeric_null: bool = True

    def max_files_for(self, category: AttachmentCategory) -> int:
        if category in SINGLE_SLOT_CATEGORIES:
            return 1
        return self.max_files.get(category, DEFAULT_MAX_FILES[category])

    @classmethod
    def from_resolver(cls, resolver: ConfigResolver) -> SessionSettings:
        """Resolve and validate session settings.

        Raises:
            ConfigError: Invalid numeric or boolean values
        """
        max_files: dict[AttachmentCategory, int] = {}
        for category in AttachmentCategory:
            if category in SINGLE_SLOT_CATEGORIES:
                max_files[category] = 1
                continue
            max_files[category] = resolver.resolve_int(
                f"attachments.max_files.{category.value}", DEFAULT_MAX_FILES[category], minimum=1
            )
        return cls(
            max_concurrency=resolver.resolve_int(
                "uploads.max_concurrency", DEFAULT_MAX_CONCURRENCY, minimum=1
            ),
            max_files=max_files,
            legacy_falsy_numeric_null=resolver.resolve_bool("payload.legacy_falsy_numeric_null", True),
        )
