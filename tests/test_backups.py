"""Tests for hosts file snapshots and their rotation."""

import configparser
import logging
from datetime import datetime, timedelta
from pathlib import Path
import sys

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from hostsync_app import backups
from hostsync_app.backups import (
    backup_name,
    create_backup,
    list_backups,
    prune_backups,
    restore_backup,
)
from hostsync_app.errors import BackupError


def _load_cfg() -> configparser.ConfigParser:
    cfg = configparser.ConfigParser(interpolation=None)
    cfg.read(Path(__file__).with_name("backups_test_config.ini"))
    return cfg


def _start(cfg) -> datetime:
    return datetime.strptime(cfg["backup"]["start"], "%Y-%m-%d %H:%M:%S")


def _hosts(tmp_path, cfg, content=None) -> Path:
    path = tmp_path / cfg["backup"]["hosts_name"]
    text = content if content is not None else cfg["backup"]["content"] + "\r\n"
    path.write_bytes(text.encode("utf-8"))
    return path


def test_backup_copies_file_verbatim(tmp_path) -> None:
    cfg = _load_cfg()
    hosts_file = _hosts(tmp_path, cfg)
    backup_dir = tmp_path / "nested" / "backups"

    record = create_backup(hosts_file, backup_dir, 3, now=_start(cfg))

    assert record.path == backup_dir / "hosts_20261018_080000.bak"
    assert record.path.read_bytes() == hosts_file.read_bytes()
    assert record.captured_at == _start(cfg)
    assert record.evicted == []


def test_backup_name_collision_is_error(tmp_path) -> None:
    cfg = _load_cfg()
    hosts_file = _hosts(tmp_path, cfg)
    backup_dir = tmp_path / "backups"
    first = create_backup(hosts_file, backup_dir, 3, now=_start(cfg))
    first_bytes = first.path.read_bytes()
    hosts_file.write_text("changed\n", encoding="utf-8")

    with pytest.raises(BackupError):
        create_backup(hosts_file, backup_dir, 3, now=_start(cfg))
    assert first.path.read_bytes() == first_bytes


def test_retention_keeps_newest(tmp_path) -> None:
    cfg = _load_cfg()
    hosts_file = _hosts(tmp_path, cfg)
    backup_dir = tmp_path / "backups"
    retention = cfg.getint("backup", "retention")
    times = [_start(cfg) + timedelta(minutes=i) for i in range(cfg.getint("backup", "count"))]

    for moment in times:
        create_backup(hosts_file, backup_dir, retention, now=moment)

    remaining = sorted(p.name for p in backup_dir.iterdir())
    expected = sorted(backup_name(hosts_file.name, moment) for moment in times[-retention:])
    assert remaining == expected


def test_rotation_ignores_foreign_files(tmp_path) -> None:
    cfg = _load_cfg()
    hosts_file = _hosts(tmp_path, cfg)
    backup_dir = tmp_path / "backups"
    backup_dir.mkdir()
    (backup_dir / "notes.txt").write_text("keep me", encoding="utf-8")
    (backup_dir / "other_20200101_000000.bak").write_text("keep me", encoding="utf-8")

    create_backup(hosts_file, backup_dir, 1, now=_start(cfg))
    create_backup(hosts_file, backup_dir, 1, now=_start(cfg) + timedelta(seconds=1))

    names = sorted(p.name for p in backup_dir.iterdir())
    assert names == ["hosts_20261018_080001.bak", "notes.txt", "other_20200101_000000.bak"]


def test_eviction_failure_is_reported_not_raised(monkeypatch, tmp_path) -> None:
    cfg = _load_cfg()
    hosts_file = _hosts(tmp_path, cfg)
    backup_dir = tmp_path / "backups"
    for i in range(2):
        create_backup(hosts_file, backup_dir, 5, now=_start(cfg) + timedelta(minutes=i))

    def deny(self, *args, **kwargs):
        raise PermissionError("denied")

    monkeypatch.setattr(Path, "unlink", deny)
    record = create_backup(hosts_file, backup_dir, 1, now=_start(cfg) + timedelta(minutes=5))

    assert record.path.exists()
    assert record.evicted == []
    assert len(record.eviction_errors) == 2
    assert all("denied" in message for message in record.eviction_errors)


def test_listing_failure_during_rotation_is_reported(monkeypatch, tmp_path) -> None:
    cfg = _load_cfg()
    hosts_file = _hosts(tmp_path, cfg)
    backup_dir = tmp_path / "backups"

    def unreadable(*args, **kwargs):
        raise PermissionError("listing denied")

    monkeypatch.setattr(backups, "list_backups", unreadable)
    record = create_backup(hosts_file, backup_dir, 1, now=_start(cfg))

    assert record.path.exists()
    assert record.evicted == []
    assert len(record.eviction_errors) == 1
    assert "listing denied" in record.eviction_errors[0]


def test_backup_is_logged_under_module_logger(tmp_path, caplog) -> None:
    cfg = _load_cfg()
    hosts_file = _hosts(tmp_path, cfg)

    with caplog.at_level(logging.INFO, logger="hostsync_app.backups"):
        record = create_backup(hosts_file, tmp_path / "backups", 3, now=_start(cfg))

    messages = [r.getMessage() for r in caplog.records if r.name == "hostsync_app.backups"]
    assert any(message.startswith("Backed up") and str(record.path) in message for message in messages)


def test_missing_source_is_backup_error(tmp_path) -> None:
    with pytest.raises(BackupError):
        create_backup(tmp_path / "absent", tmp_path / "backups", 3)
    assert list((tmp_path / "backups").iterdir()) == []


def test_invalid_retention_is_rejected(tmp_path) -> None:
    cfg = _load_cfg()
    with pytest.raises(BackupError):
        create_backup(_hosts(tmp_path, cfg), tmp_path / "backups", 0)


def test_list_backups_newest_first(tmp_path) -> None:
    cfg = _load_cfg()
    hosts_file = _hosts(tmp_path, cfg)
    backup_dir = tmp_path / "backups"
    for i in (2, 0, 1):
        create_backup(hosts_file, backup_dir, 10, now=_start(cfg) + timedelta(hours=i))

    records = list_backups(backup_dir, hosts_file.name)
    assert [r.captured_at for r in records] == [
        _start(cfg) + timedelta(hours=i) for i in (2, 1, 0)
    ]
    assert list_backups(tmp_path / "missing", hosts_file.name) == []


def test_prune_without_excess_removes_nothing(tmp_path) -> None:
    cfg = _load_cfg()
    hosts_file = _hosts(tmp_path, cfg)
    create_backup(hosts_file, tmp_path / "backups", 5, now=_start(cfg))
    assert prune_backups(tmp_path / "backups", hosts_file.name, 5) == ([], [])


def test_restore_newest_and_named(tmp_path) -> None:
    cfg = _load_cfg()
    backup_dir = tmp_path / "backups"
    hosts_file = _hosts(tmp_path, cfg, "first\n")
    older = create_backup(hosts_file, backup_dir, 5, now=_start(cfg))
    hosts_file.write_text("second\n", encoding="utf-8")
    create_backup(hosts_file, backup_dir, 5, now=_start(cfg) + timedelta(minutes=1))
    hosts_file.write_text("third\n", encoding="utf-8")

    restore_backup(hosts_file, backup_dir)
    assert hosts_file.read_text(encoding="utf-8") == "second\n"

    restore_backup(hosts_file, backup_dir, older.path.name)
    assert hosts_file.read_text(encoding="utf-8") == "first\n"


def test_restore_without_backups_fails(tmp_path) -> None:
    cfg = _load_cfg()
    hosts_file = _hosts(tmp_path, cfg)
    with pytest.raises(BackupError):
        restore_backup(hosts_file, tmp_path / "backups")
    with pytest.raises(BackupError):
        restore_backup(hosts_file, tmp_path / "backups", "hosts_19990101_000000.bak")
