"""Run log aggregation and delivery.

Entries recorded during a run are mirrored to the standard :mod:`logging`
tree right away and kept in memory.  At the end of the run the batch is
delivered once, as a single record, to a structured sink (Windows Event Log
or syslog).  When the sink cannot be reached the entries are appended to a
local fallback file instead.
"""

import logging
import logging.handlers
import sys
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union

from hostsync_app.config import Settings
from hostsync_app.errors import SinkError

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class Severity(Enum):
    INFORMATION = "Information"
    WARNING = "Warning"
    ERROR = "Error"

    @property
    def level(self) -> int:
        return _LEVELS[self]

    @property
    def event_id(self) -> int:
        return _EVENT_IDS[self]


_LEVELS = {
    Severity.INFORMATION: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}

_EVENT_IDS = {
    Severity.INFORMATION: 1000,
    Severity.WARNING: 2000,
    Severity.ERROR: 3000,
}


@dataclass(frozen=True)
class LogEntry:
    timestamp: datetime
    severity: Severity
    message: str

    def format(self) -> str:
        return f"{self.timestamp.strftime(TIMESTAMP_FORMAT)} - {self.severity.value} - {self.message}"


class SeverityFormatter(logging.Formatter):
    """Formatter printing ``Information``/``Warning``/``Error`` level names.

    With the default format and :data:`TIMESTAMP_FORMAT` the console mirror
    matches the fallback file line for line.
    """

    LEVEL_NAMES = {
        logging.INFO: Severity.INFORMATION.value,
        logging.WARNING: Severity.WARNING.value,
        logging.ERROR: Severity.ERROR.value,
    }

    def __init__(self, fmt: str = LOG_FORMAT, datefmt: str = TIMESTAMP_FORMAT) -> None:
        super().__init__(fmt, datefmt)

    def format(self, record: logging.LogRecord) -> str:
        original = record.levelname
        record.levelname = self.LEVEL_NAMES.get(record.levelno, original.title())
        try:
            return super().format(record)
        finally:
            record.levelname = original


class EventSink:
    """Destination accepting one severity-tagged message per run."""

    def register(self) -> None:
        """Declare the event source; must be safe to call on every run."""

    def write(self, severity: Severity, event_id: int, message: str) -> None:
        raise NotImplementedError


class EventLogSink(EventSink):
    """Windows Event Log sink backed by pywin32."""

    def __init__(self, source: str, log_type: str = "Application") -> None:
        self.source = source
        self.log_type = log_type

    @staticmethod
    def _modules():
        try:
            import win32evtlog
            import win32evtlogutil
        except ImportError as exc:
            raise SinkError("Windows Event Log requires the pywin32 package") from exc
        return win32evtlog, win32evtlogutil

    def register(self) -> None:
        _, evtlogutil = self._modules()
        try:
            evtlogutil.AddSourceToRegistry(self.source, eventLogType=self.log_type)
        except Exception as exc:
            raise SinkError(f"Failed to register event source '{self.source}': {exc}") from exc

    def write(self, severity: Severity, event_id: int, message: str) -> None:
        evtlog, evtlogutil = self._modules()
        event_types = {
            Severity.INFORMATION: evtlog.EVENTLOG_INFORMATION_TYPE,
            Severity.WARNING: evtlog.EVENTLOG_WARNING_TYPE,
            Severity.ERROR: evtlog.EVENTLOG_ERROR_TYPE,
        }
        try:
            evtlogutil.ReportEvent(
                self.source, event_id, eventType=event_types[severity], strings=[message]
            )
        except Exception as exc:
            raise SinkError(f"Failed to write to event log '{self.log_type}': {exc}") from exc


class _RaisingSysLogHandler(logging.handlers.SysLogHandler):
    """SysLogHandler that propagates delivery errors instead of printing them."""

    def handleError(self, record: logging.LogRecord) -> None:
        exc = sys.exc_info()[1]
        raise SinkError(f"Failed to deliver syslog message: {exc}") from exc


class SyslogSink(EventSink):
    """Syslog sink using :class:`logging.handlers.SysLogHandler`."""

    def __init__(self, source: str, address: Union[str, tuple] = "/dev/log") -> None:
        self.source = source
        self.address = address
        self._handler: Optional[logging.handlers.SysLogHandler] = None

    def register(self) -> None:
        if self._handler is not None:
            return
        try:
            handler = _RaisingSysLogHandler(address=self.address)
        except OSError as exc:
            raise SinkError(f"Syslog unavailable at {self.address}: {exc}") from exc
        handler.ident = f"{self.source}: "
        self._handler = handler

    def write(self, severity: Severity, event_id: int, message: str) -> None:
        self.register()
        record = logging.LogRecord(
            self.source, severity.level, __file__, 0, "[%d] %s", (event_id, message), None
        )
        self._handler.handle(record)

    def close(self) -> None:
        if self._handler is not None:
            self._handler.close()
            self._handler = None


def build_sink(settings: Settings) -> Optional[EventSink]:
    """Return the structured sink selected by ``settings.sink``.

    ``None`` means entries go straight to the fallback file.
    """
    choice = settings.sink
    if choice == "auto":
        choice = "eventlog" if sys.platform.startswith("win") else "syslog"
    if choice == "eventlog":
        return EventLogSink(settings.event_source, settings.event_log)
    if choice == "syslog":
        return SyslogSink(settings.event_source, settings.syslog_address)
    return None


@dataclass
class RunLog:
    """Ordered log entries of a single run.

    Stages add entries with :meth:`record` (or the severity shortcuts); the
    batch is delivered with one final :meth:`flush` call.
    """

    fallback_file: Path
    entries: List[LogEntry] = field(default_factory=list)
    flushed: bool = False
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger(__name__))

    def record(self, severity: Severity, message: str) -> LogEntry:
        entry = LogEntry(datetime.now(), severity, message)
        self.entries.append(entry)
        self.logger.log(severity.level, message)
        return entry

    def info(self, message: str) -> LogEntry:
        return self.record(Severity.INFORMATION, message)

    def warning(self, message: str) -> LogEntry:
        return self.record(Severity.WARNING, message)

    def error(self, message: str) -> LogEntry:
        return self.record(Severity.ERROR, message)

    def worst_severity(self) -> Severity:
        if not self.entries:
            return Severity.INFORMATION
        return max((entry.severity for entry in self.entries), key=lambda s: s.level)

    def render(self) -> str:
        return "\n".join(entry.format() for entry in self.entries)

    def flush(self, sink: Optional[EventSink]) -> bool:
        """Deliver all entries as one record and forget them.

        Returns ``True`` if the structured sink accepted the batch and
        ``False`` if the fallback file was used or nothing was delivered.
        Errors are logged, never raised.
        """
        if self.flushed:
            self.logger.debug("Run log already flushed")
            return False
        self.flushed = True
        if not self.entries:
            return False
        severity = self.worst_severity()
        delivered = False
        if sink is not None:
            try:
                sink.register()
                sink.write(severity, severity.event_id, self.render())
                delivered = True
            except Exception as exc:
                self.logger.warning("Log sink unavailable, using %s: %s", self.fallback_file, exc)
        else:
            self.logger.debug("No log sink configured; using %s", self.fallback_file)
        if not delivered:
            self._write_fallback()
        self.entries = []
        return delivered

    def _write_fallback(self) -> None:
        try:
            self.fallback_file.parent.mkdir(parents=True, exist_ok=True)
            with self.fallback_file.open("a", encoding="utf-8") as handle:
                for entry in self.entries:
                    handle.write(entry.format() + "\n")
        except Exception as exc:
            self.logger.exception("Failed to write fallback log %s: %s", self.fallback_file, exc)


def setup_logging(level: Union[int, str] = logging.INFO) -> None:
    """Configure console logging for the process."""
    handler = logging.StreamHandler()
    handler.setFormatter(SeverityFormatter())
    logging.basicConfig(level=level, handlers=[handler], force=True)
