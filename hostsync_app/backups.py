"""Rotating snapshots of the hosts file.

Each snapshot is a verbatim copy named ``<hosts name>_<YYYYmmdd_HHMMSS>.bak``
inside the backup directory.  Only the newest ``retention`` snapshots are
kept; older ones are evicted after every new snapshot.
"""

import logging
import os
import re
import shutil
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple, Union

from hostsync_app.errors import BackupError
from hostsync_app.hosts import write_atomically

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


@dataclass
class BackupRecord:
    """Snapshot file together with its capture time."""

    path: Path
    captured_at: datetime
    evicted: List[Path] = field(default_factory=list)
    eviction_errors: List[str] = field(default_factory=list)


def backup_name(target_name: str, captured_at: datetime) -> str:
    return f"{target_name}_{captured_at.strftime(TIMESTAMP_FORMAT)}.bak"


def _name_pattern(target_name: str) -> "re.Pattern[str]":
    return re.compile(re.escape(target_name) + r"_(\d{8}_\d{6})\.bak")


def list_backups(backup_dir: Union[str, Path], target_name: str) -> List[BackupRecord]:
    """Return snapshots of ``target_name`` in ``backup_dir``, newest first.

    Files not following the naming scheme are ignored.
    """
    logger = logging.getLogger(__name__)
    directory = Path(backup_dir)
    if not directory.is_dir():
        return []
    pattern = _name_pattern(target_name)
    records = []
    for entry in directory.iterdir():
        match = pattern.fullmatch(entry.name)
        if not match or not entry.is_file():
            continue
        try:
            captured_at = datetime.strptime(match.group(1), TIMESTAMP_FORMAT)
        except ValueError:
            logger.debug("Skipping %s: timestamp out of range", entry)
            continue
        records.append(BackupRecord(entry, captured_at))
    records.sort(key=lambda record: record.captured_at, reverse=True)
    return records


def prune_backups(
    backup_dir: Union[str, Path], target_name: str, retention: int
) -> Tuple[List[Path], List[str]]:
    """Delete every snapshot beyond the newest ``retention`` ones.

    Returns the removed paths and a description of each listing or removal
    that failed.  Failures are not raised.
    """
    logger = logging.getLogger(__name__)
    evicted: List[Path] = []
    errors: List[str] = []
    try:
        stale = list_backups(backup_dir, target_name)[retention:]
    except OSError as exc:
        errors.append(f"Failed to list backups in {backup_dir}: {exc}")
        return evicted, errors
    for record in stale:
        try:
            record.path.unlink()
            evicted.append(record.path)
            logger.debug("Evicted backup %s", record.path)
        except OSError as exc:
            errors.append(f"Failed to remove backup {record.path}: {exc}")
    return evicted, errors


def create_backup(
    hosts_file: Union[str, Path],
    backup_dir: Union[str, Path],
    retention: int,
    now: Optional[datetime] = None,
) -> BackupRecord:
    """Copy ``hosts_file`` into ``backup_dir`` and rotate old snapshots.

    Parameters
    ----------
    hosts_file: str | Path
        File to snapshot.
    backup_dir: str | Path
        Directory holding snapshots; created when missing.
    retention: int
        Number of snapshots kept after rotation.
    now: datetime, optional
        Capture time, defaults to the current local time.

    Raises
    ------
    BackupError
        If the copy fails or a snapshot with the same name already exists.
        Eviction failures are reported in the returned record instead.
    """
    logger = logging.getLogger(__name__)
    if retention < 1:
        raise BackupError(f"Backup retention must be at least 1, got {retention}")
    source = Path(hosts_file)
    directory = Path(backup_dir)
    captured_at = (now or datetime.now()).replace(microsecond=0)
    destination = directory / backup_name(source.name, captured_at)
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise BackupError(f"Failed to create backup directory {directory}: {exc}") from exc

    try:
        with source.open("rb") as src, destination.open("xb") as dst:
            shutil.copyfileobj(src, dst)
    except FileExistsError as exc:
        raise BackupError(f"Backup {destination} already exists") from exc
    except OSError as exc:
        if destination.exists():
            try:
                os.unlink(destination)
            except OSError:
                logger.warning("Failed to remove partial backup %s", destination)
        raise BackupError(f"Failed to back up {source} to {destination}: {exc}") from exc
    logger.info("Backed up %s to %s", source, destination)

    record = BackupRecord(destination, captured_at)
    record.evicted, record.eviction_errors = prune_backups(directory, source.name, retention)
    return record


def restore_backup(
    hosts_file: Union[str, Path],
    backup_dir: Union[str, Path],
    name: Optional[str] = None,
) -> BackupRecord:
    """Atomically replace ``hosts_file`` with a snapshot.

    The newest snapshot is used unless ``name`` selects a specific file.
    """
    logger = logging.getLogger(__name__)
    target = Path(hosts_file)
    records = list_backups(backup_dir, target.name)
    if name is not None:
        records = [record for record in records if record.path.name == name]
    if not records:
        wanted = f"'{name}'" if name else "any"
        raise BackupError(f"No backup {wanted} of {target.name} found in {backup_dir}")
    record = records[0]
    try:
        data = record.path.read_bytes()
    except OSError as exc:
        raise BackupError(f"Failed to read backup {record.path}: {exc}") from exc
    write_atomically(target, data)
    logger.info("Restored %s from %s", target, record.path)
    return record
