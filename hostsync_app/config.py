"""Configuration loading for hostsync.

Settings are read from an INI file with :mod:`configparser`.  Every option has
a fixed default so a missing file or section still yields a usable
:class:`Settings` instance.
"""

import configparser
import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from hostsync_app.errors import ConfigError

CONFIG_FILE = "config.ini"

DEFAULT_URL = "https://hosts.example.org/blocklist.txt"
DEFAULT_START_MARKER = "# BEGIN HOSTSYNC MANAGED BLOCK"
DEFAULT_END_MARKER = "# END HOSTSYNC MANAGED BLOCK"
DEFAULT_RETENTION = 10
DEFAULT_TIMEOUT = 30.0
SINK_CHOICES = ("auto", "eventlog", "syslog", "none")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def default_hosts_file() -> Path:
    """Return the hosts file location for the running platform."""
    if sys.platform.startswith("win"):
        return Path(r"C:\Windows\System32\drivers\etc\hosts")
    return Path("/etc/hosts")


def default_data_dir() -> Path:
    """Return the directory holding backups and the fallback log."""
    if sys.platform.startswith("win"):
        base = os.environ.get("ProgramData", r"C:\ProgramData")
        return Path(base) / "HostsSync"
    return Path("/var/lib/hostsync")


@dataclass(frozen=True)
class Settings:
    url: str = DEFAULT_URL
    timeout: float = DEFAULT_TIMEOUT
    hosts_file: Path = default_hosts_file()
    encoding: str = "utf-8"
    start_marker: str = DEFAULT_START_MARKER
    end_marker: str = DEFAULT_END_MARKER
    comment_prefix: str = "#"
    entry_prefix: str = "0.0.0.0"
    backup_dir: Path = default_data_dir() / "backups"
    retention: int = DEFAULT_RETENTION
    log_level: str = "INFO"
    sink: str = "auto"
    event_source: str = "HostsSync"
    event_log: str = "Application"
    fallback_log: Path = default_data_dir() / "hostsync.log"
    syslog_address: str = "/dev/log"


def settings_from_config(cfg: configparser.ConfigParser) -> Settings:
    """Build :class:`Settings` from a parsed configuration.

    Raises
    ------
    ConfigError
        If a value cannot be converted or is out of range.
    """
    try:
        timeout = cfg.getfloat("source", "timeout", fallback=DEFAULT_TIMEOUT)
        retention = cfg.getint("backup", "retention", fallback=DEFAULT_RETENTION)
    except ValueError as exc:
        raise ConfigError(f"Invalid numeric option: {exc}") from exc

    data_dir = default_data_dir()
    settings = Settings(
        url=cfg.get("source", "url", fallback=DEFAULT_URL).strip(),
        timeout=timeout,
        hosts_file=Path(cfg.get("hosts", "file", fallback=str(default_hosts_file()))),
        encoding=cfg.get("hosts", "encoding", fallback="utf-8"),
        start_marker=cfg.get("hosts", "start_marker", fallback=DEFAULT_START_MARKER).strip(),
        end_marker=cfg.get("hosts", "end_marker", fallback=DEFAULT_END_MARKER).strip(),
        comment_prefix=cfg.get("validation", "comment_prefix", fallback="#"),
        entry_prefix=cfg.get("validation", "entry_prefix", fallback="0.0.0.0"),
        backup_dir=Path(cfg.get("backup", "directory", fallback=str(data_dir / "backups"))),
        retention=retention,
        log_level=cfg.get("logging", "level", fallback="INFO").upper(),
        sink=cfg.get("logging", "sink", fallback="auto").lower(),
        event_source=cfg.get("logging", "source", fallback="HostsSync"),
        event_log=cfg.get("logging", "event_log", fallback="Application"),
        fallback_log=Path(
            cfg.get("logging", "fallback_file", fallback=str(data_dir / "hostsync.log"))
        ),
        syslog_address=cfg.get("logging", "syslog_address", fallback="/dev/log"),
    )
    _check(settings)
    return settings


def _check(settings: Settings) -> None:
    if not settings.url:
        raise ConfigError("Source URL must not be empty")
    if settings.timeout <= 0:
        raise ConfigError(f"Timeout must be positive, got {settings.timeout}")
    if settings.retention < 1:
        raise ConfigError(f"Backup retention must be at least 1, got {settings.retention}")
    if not settings.start_marker or not settings.end_marker:
        raise ConfigError("Start and end markers must not be empty")
    if settings.start_marker in settings.end_marker or settings.end_marker in settings.start_marker:
        raise ConfigError("Start and end markers must differ and not contain each other")
    if not settings.entry_prefix.strip() or not settings.comment_prefix.strip():
        raise ConfigError("Comment and entry prefixes must not be empty")
    if settings.log_level not in LOG_LEVELS:
        raise ConfigError(f"Unknown log level '{settings.log_level}'")
    if settings.sink not in SINK_CHOICES:
        raise ConfigError(
            f"Unknown log sink '{settings.sink}'; expected one of {', '.join(SINK_CHOICES)}"
        )


def load_settings(file_path: Union[str, Path] = CONFIG_FILE) -> Settings:
    """Read ``file_path`` and return the resulting settings.

    A missing file is not an error; defaults apply.
    """
    logger = logging.getLogger(__name__)
    path = Path(file_path)
    cfg = configparser.ConfigParser(interpolation=None)
    if path.exists():
        try:
            cfg.read(path, encoding="utf-8")
        except configparser.Error as exc:
            raise ConfigError(f"Failed to parse {path}: {exc}") from exc
        logger.debug("Loaded configuration from %s", path)
    else:
        logger.info("Configuration file %s not found; using defaults", path)
    return settings_from_config(cfg)
