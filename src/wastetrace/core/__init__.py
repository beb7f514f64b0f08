"""WasteTrace core: configuration, logging, events and errors."""

from wastetrace.core.config import ConfigResolver, ConfigSource
from wastetrace.core.diagnostics import build_envelope, emit, install_jsonl_sink
from wastetrace.core.errors import (
    ConfigError,
    PayloadError,
    PersistenceError,
    SessionStateError,
    UploadError,
    UploadFailure,
    WasteTraceError,
)
from wastetrace.core.events import EventBus, get_event_bus
from wastetrace.core.logging import (
    VerbosityLevel,
    apply_logging_config,
    apply_logging_level,
    get_logger,
    get_verbosity,
    set_colors,
    set_verbosity,
)

__all__ = [
    # Config
    "ConfigResolver",
    "ConfigSource",
    # Diagnostics
    "build_envelope",
    "emit",
    "install_jsonl_sink",
    # Errors
    "WasteTraceError",
    "ConfigError",
    "PayloadError",
    "PersistenceError",
    "SessionStateError",
    "UploadError",
    "UploadFailure",
    # Events
    "EventBus",
    "get_event_bus",
    # Logging
    "VerbosityLevel",
    "apply_logging_config",
    "apply_logging_level",
    "get_logger",
    "get_verbosity",
    "set_colors",
    "set_verbosity",
]
