"""Runtime diagnostics envelope + JSONL sink.

This module provides:
- A canonical envelope schema for diagnostic events.
- A fail-safe emit helper used around every remote call.
- A JSONL sink that can be enabled/disabled via ConfigResolver.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from wastetrace.core.config import ConfigError, ConfigResolver
from wastetrace.core.events import get_event_bus
from wastetrace.core.logging import get_logger

_logger = get_logger(__name__)

_ENVELOPE_KEYS = frozenset({"event", "component", "operation", "timestamp", "data"})


def build_envelope(
    *,
    event: str,
    component: str,
    operation: str,
    data: dict[str, Any],
) -> dict[str, Any]:
    """Build the canonical diagnostics envelope.

    Schema:
        {
          "event": "<string>",
          "component": "<string>",
          "operation": "<string>",
          "timestamp": "<iso8601 utc>",
          "data": { ... }
        }

    Timestamp is emitted in UTC with a trailing 'Z'.
    """
    ts = datetime.now(UTC).replace(microsecond=0).isoformat().replace("+00:00", "Z")
    return {
        "event": event,
        "component": component,
        "operation": operation,
        "timestamp": ts,
        "data": data,
    }


def emit(event: str, *, component: str, operation: str, data: dict[str, Any]) -> None:
    """Publish a diagnostics envelope on the global event bus.

    Diagnostics are fail-safe: nothing raised here reaches the caller.
    """
    try:
        env = build_envelope(event=event, component=component, operation=operation, data=data)
        get_event_bus().publish(event, env)
    except Exception:
        return


def is_envelope(obj: Any) -> bool:
    if not isinstance(obj, dict) or set(obj.keys()) != _ENVELOPE_KEYS:
        return False
    if not all(isinstance(obj.get(k), str) for k in ("event", "component", "operation", "timestamp")):
        return False
    return isinstance(obj.get("data"), dict)


_SINK_INSTALLED = False


def install_jsonl_sink(*, resolver: ConfigResolver) -> None:
    """Install the JSONL diagnostics sink subscriber.

    Idempotent: registers exactly once per process. When diagnostics are
    disabled, the subscriber performs no file IO.
    """
    global _SINK_INSTALLED
    if _SINK_INSTALLED:
        return

    def _on_any_event(event: str, data: dict[str, Any]) -> None:
        try:
            if not resolver.resolve_bool("diagnostics.enabled", False):
                return
            path_value = resolver.resolve_or("diagnostics.path", None)
        except ConfigError as e:
            _logger.warning(f"Diagnostics disabled by invalid config: {e}")
            return
        if not path_value:
            _logger.warning("Missing diagnostics.path; cannot write diagnostics JSONL.")
            return

        payload = data if is_envelope(data) else build_envelope(
            event=event, component="unknown", operation="unknown", data=data
        )
        out_path = Path(str(path_value))
        try:
            out_path.parent.mkdir(parents=True, exist_ok=True)
            line = json.dumps(payload, ensure_ascii=True, separators=(",", ":"), sort_keys=True, default=str)
            with out_path.open("a", encoding="utf-8") as f:
                f.write(line)
                f.write("\n")
        except Exception as e:
            _logger.warning(f"Diagnostics sink write failed: {type(e).__name__}: {e}")

    get_event_bus().subscribe_all(_on_any_event)
    _SINK_INSTALLED = True
