"""LogBus: publish/subscribe stream of log records.

Used by the UI layer to mirror session log lines (for example into a
status panel) without touching the console output. Publishing is
fail-safe: a raising subscriber never breaks the logger.
"""

from __future__ import annotations

import contextlib
import sys
import traceback
from collections.abc import Callable
from dataclasses import dataclass

Subscriber = Callable[["LogRecord"], None]


@dataclass(frozen=True)
class LogRecord:
    level_name: str
    message: str
    logger_name: str

    @property
    def plain(self) -> str:
        return f"[{self.level_name.lower()}] {self.message}"


class LogBus:
    def __init__(self) -> None:
        self._by_level: dict[str, list[Subscriber]] = {}
        self._all: list[Subscriber] = []

    def subscribe(self, level_name: str, cb: Subscriber) -> None:
        self._by_level.setdefault(level_name.upper(), []).append(cb)

    def unsubscribe(self, level_name: str, cb: Subscriber) -> None:
        subs = self._by_level.get(level_name.upper(), [])
        if cb in subs:
            subs.remove(cb)

    def subscribe_all(self, cb: Subscriber) -> None:
        self._all.append(cb)

    def unsubscribe_all(self, cb: Subscriber) -> None:
        if cb in self._all:
            self._all.remove(cb)

    def publish(self, record: LogRecord) -> None:
        targets = list(self._all) + list(self._by_level.get(record.level_name, []))
        for cb in targets:
            try:
                cb(record)
            except Exception:
                # Never route through the logger here (recursion).
                with contextlib.suppress(Exception):
                    sys.stderr.write("LogBus subscriber raised; suppressed.\n")
                    sys.stderr.write(traceback.format_exc())

    def clear(self) -> None:
        self._by_level.clear()
        self._all.clear()


_LOG_BUS: LogBus | None = None


def get_log_bus() -> LogBus:
    global _LOG_BUS
    if _LOG_BUS is None:
        _LOG_BUS = LogBus()
    return _LOG_BUS
