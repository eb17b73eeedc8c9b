import logging
import os
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional

from ..backups import BackupRecord, create_backup, list_backups, restore_backup
from ..config import Settings
from ..errors import HostsSyncError
from ..fetcher import fetch
from ..hosts import Markers, apply_managed_block, needs_update, read_hosts_file
from ..logs import EventSink, RunLog, build_sink
from ..validator import validate


class RunOutcome(Enum):
    NO_CHANGE_NEEDED = "NoChangeNeeded"
    UPDATED = "Updated"
    FAILED = "Failed"


class RunStage(Enum):
    FETCHING = "Fetching"
    VALIDATING = "Validating"
    CHECKING = "Checking idempotency"
    BACKING_UP = "Backing up"
    PATCHING = "Patching"
    RESTORING = "Restoring"


@dataclass
class RunResult:
    """Terminal state of one run."""

    outcome: RunOutcome
    reason: Optional[str] = None
    stage: Optional[RunStage] = None
    backup: Optional[BackupRecord] = None

    @property
    def exit_code(self) -> int:
        return 1 if self.outcome is RunOutcome.FAILED else 0


class SyncService:
    """Service layer running the fetch, validate, backup and patch pipeline."""

    def __init__(
        self,
        settings: Settings,
        sink: Optional[EventSink] = None,
        fetcher: Callable[..., str] = fetch,
        newline: str = os.linesep,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        """Create the service.

        Parameters
        ----------
        settings: Settings
            Paths, markers and source URL of the run.
        sink: EventSink | None
            Structured log sink.  When ``None`` the sink selected by
            ``settings`` is used.
        fetcher: callable, optional
            Replacement for :func:`hostsync_app.fetcher.fetch`.
        newline: str, optional
            Line terminator for the managed block.
        clock: callable, optional
            Source of backup capture times.
        """
        self.settings = settings
        self.sink = sink if sink is not None else build_sink(settings)
        self.fetcher = fetcher
        self.newline = newline
        self.clock = clock
        self.markers = Markers(settings.start_marker, settings.end_marker)
        self.stage = RunStage.FETCHING
        self.logger = logging.getLogger(__name__)
        self.logger.debug("Using hosts file %s", settings.hosts_file)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------
    def run(self) -> RunResult:
        """Execute one sync run and flush its log.

        Every failure ends the run with :attr:`RunOutcome.FAILED`; the log is
        flushed exactly once whatever the outcome.
        """
        log = RunLog(self.settings.fallback_log)
        try:
            result = self._sync(log)
        except HostsSyncError as exc:
            stage = self.stage
            log.error(f"{stage.value} failed: {exc}")
            result = RunResult(RunOutcome.FAILED, str(exc), stage)
        except Exception as exc:
            stage = self.stage
            self.logger.exception("Unexpected error while %s", stage.value.lower())
            log.error(f"{stage.value} failed unexpectedly: {exc!r}")
            result = RunResult(RunOutcome.FAILED, repr(exc), stage)
        finally:
            log.flush(self.sink)
        return result

    def _sync(self, log: RunLog) -> RunResult:
        settings = self.settings
        path = settings.hosts_file

        self.stage = RunStage.FETCHING
        content = self.fetcher(settings.url, timeout=settings.timeout, newline=self.newline)
        log.info(f"Fetched {len(content.splitlines())} lines from {settings.url}")

        self.stage = RunStage.VALIDATING
        entries = validate(
            content,
            settings.comment_prefix,
            settings.entry_prefix,
            reserved=(self.markers.start, self.markers.end),
        )

        self.stage = RunStage.CHECKING
        current = read_hosts_file(path, settings.encoding)
        if not needs_update(current, content, self.markers):
            log.info(f"Managed block in {path} is up to date ({entries} entries); no changes made")
            return RunResult(RunOutcome.NO_CHANGE_NEEDED)

        self.stage = RunStage.BACKING_UP
        record = create_backup(path, settings.backup_dir, settings.retention, now=self.clock())
        log.info(f"Backed up {path} to {record.path}")
        for message in record.eviction_errors:
            log.warning(message)
        if record.evicted:
            log.info(f"Removed {len(record.evicted)} old backup(s) from {settings.backup_dir}")

        self.stage = RunStage.PATCHING
        apply_managed_block(
            path, current, content, self.markers, newline=self.newline, encoding=settings.encoding
        )
        log.info(f"Updated managed block in {path} with {entries} entries")
        return RunResult(RunOutcome.UPDATED, backup=record)

    # ------------------------------------------------------------------
    # Backups
    # ------------------------------------------------------------------
    def list_backups(self) -> List[BackupRecord]:
        return list_backups(self.settings.backup_dir, self.settings.hosts_file.name)

    def restore(self, name: Optional[str] = None) -> RunResult:
        """Restore the hosts file from a snapshot and flush the log."""
        log = RunLog(self.settings.fallback_log)
        try:
            record = restore_backup(self.settings.hosts_file, self.settings.backup_dir, name)
            log.info(f"Restored {self.settings.hosts_file} from {record.path}")
            result = RunResult(RunOutcome.UPDATED, backup=record)
        except HostsSyncError as exc:
            log.error(f"{RunStage.RESTORING.value} failed: {exc}")
            result = RunResult(RunOutcome.FAILED, str(exc), RunStage.RESTORING)
        finally:
            log.flush(self.sink)
        return result
