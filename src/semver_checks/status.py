"""Status events emitted by a release check.

The core never prints. It hands :class:`StatusEvent` records to the sink held
by an explicit :class:`Reporter`, and the presentation layer decides how (and
whether) to render them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum, StrEnum
from typing import Callable


class Verbosity(IntEnum):
    QUIET = 0
    NORMAL = 1
    VERBOSE = 2
    DEBUG = 3


class StatusKind(StrEnum):
    STATUS = "status"
    NOTE = "note"
    WARNING = "warning"
    ERROR = "error"
    DETAIL = "detail"


@dataclass(frozen=True)
class StatusEvent:
    kind: StatusKind
    header: str
    message: str
    level: Verbosity = Verbosity.NORMAL


StatusSink = Callable[[StatusEvent], None]


def discard_events(_event: StatusEvent) -> None:
    return None


@dataclass(frozen=True)
class Reporter:
    sink: StatusSink = discard_events
    verbosity: Verbosity = Verbosity.NORMAL
    events: list[StatusEvent] | None = field(default=None, compare=False)

    def is_verbose(self) -> bool:
        return self.verbosity >= Verbosity.VERBOSE

    def emit(self, event: StatusEvent) -> None:
        if event.level > self.verbosity:
            return
        if self.events is not None:
            self.events.append(event)
        self.sink(event)

    def status(self, header: str, message: str, *, level: Verbosity = Verbosity.NORMAL) -> None:
        self.emit(StatusEvent(StatusKind.STATUS, header, message, level))

    def verbose(self, header: str, message: str) -> None:
        self.status(header, message, level=Verbosity.VERBOSE)

    def detail(self, message: str, *, level: Verbosity = Verbosity.NORMAL) -> None:
        self.emit(StatusEvent(StatusKind.DETAIL, "", message, level))

    def note(self, message: str) -> None:
        self.emit(StatusEvent(StatusKind.NOTE, "note", message))

    def warn(self, message: str) -> None:
        self.emit(StatusEvent(StatusKind.WARNING, "warning", message, Verbosity.QUIET))


def recording_reporter(verbosity: Verbosity = Verbosity.DEBUG) -> Reporter:
    """Reporter that keeps every emitted event in ``reporter.events``."""
    return Reporter(verbosity=verbosity, events=[])
