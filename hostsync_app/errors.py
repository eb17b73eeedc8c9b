"""Exception hierarchy shared by every stage of a sync run."""

from pathlib import Path
from typing import Union


class HostsSyncError(Exception):
    """Base class for failures that terminate a run."""


class ConfigError(HostsSyncError):
    """Configuration value is missing or unusable."""


class FetchError(HostsSyncError):
    """Remote list could not be retrieved or was empty."""


class ValidationError(HostsSyncError):
    """Remote list contains a line outside the accepted grammar."""

    def __init__(self, line: str, line_number: int) -> None:
        super().__init__(f"Invalid line {line_number}: {line!r}")
        self.line = line
        self.line_number = line_number


class MissingTargetError(HostsSyncError):
    """Hosts file to patch does not exist."""

    def __init__(self, path: Union[str, Path]) -> None:
        super().__init__(f"Hosts file not found: {path}")
        self.path = Path(path)


class MarkerError(HostsSyncError):
    """Managed block markers in the hosts file are unpaired or duplicated."""


class BackupError(HostsSyncError):
    """Snapshot of the hosts file could not be taken or restored."""


class ApplyError(HostsSyncError):
    """Patched hosts file could not be written or promoted."""


class SinkError(HostsSyncError):
    """Structured log sink rejected or could not receive a batch."""
