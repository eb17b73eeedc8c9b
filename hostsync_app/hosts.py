"""Utilities for maintaining the managed block of the system hosts file.

The managed block is the text between a start and an end marker line.  At
most one block may exist in the file.  Content outside the block is passed
through untouched; the block itself is always rewritten at the end of the
file.

The file is never edited in place.  New content is written to a temporary
file in the same directory and promoted with :func:`os.replace`, so readers
observe either the old or the new file.  Writing the system hosts file
requires elevated privileges; this module performs no privilege handling.
"""

import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union

from hostsync_app.errors import ApplyError, MarkerError, MissingTargetError
from hostsync_app.fetcher import normalize_newlines


@dataclass(frozen=True)
class Markers:
    """Literal delimiter lines surrounding the managed block."""

    start: str
    end: str


def read_hosts_file(hosts_file: Union[str, Path], encoding: str = "utf-8") -> str:
    """Return the full hosts file content with line terminators untouched."""
    path = Path(hosts_file)
    try:
        with path.open("r", encoding=encoding, newline="") as handle:
            return handle.read()
    except FileNotFoundError as exc:
        raise MissingTargetError(path) from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ApplyError(f"Failed to read hosts file {path}: {exc}") from exc


def _locate_block(content: str, markers: Markers) -> Optional[Tuple[int, int, int, int]]:
    """Return the offsets bounding the marker lines of the managed block.

    A marker counts only when a whole line, stripped of surrounding
    whitespace, equals it.  The result is ``(start_line_begin,
    start_line_end, end_line_begin, end_line_end)`` where each ``*_end``
    includes the line terminator.  ``None`` means no block is present.
    Unpaired, reversed or repeated markers raise :class:`MarkerError`.
    """
    starts = []
    ends = []
    offset = 0
    for line in content.splitlines(keepends=True):
        stripped = line.strip()
        if stripped == markers.start:
            starts.append((offset, offset + len(line)))
        elif stripped == markers.end:
            ends.append((offset, offset + len(line)))
        offset += len(line)
    if not starts and not ends:
        return None
    if not starts:
        raise MarkerError(f"End marker '{markers.end}' found without start marker")
    if not ends:
        raise MarkerError(f"Start marker '{markers.start}' found without end marker")
    if len(starts) > 1:
        raise MarkerError(f"Start marker '{markers.start}' appears more than once")
    if len(ends) > 1:
        raise MarkerError(f"End marker '{markers.end}' appears more than once")
    (start_begin, start_end), (end_begin, end_end) = starts[0], ends[0]
    if end_begin < start_begin:
        raise MarkerError("End marker precedes start marker")
    return start_begin, start_end, end_begin, end_end


def extract_managed_block(content: str, markers: Markers) -> Optional[str]:
    """Return the text strictly between the marker lines, or ``None``."""
    span = _locate_block(content, markers)
    if span is None:
        return None
    _, body_begin, body_end, _ = span
    return content[body_begin:body_end]


def needs_update(
    target_content: str,
    new_block: str,
    markers: Markers,
    logger: logging.Logger = logging.getLogger(__name__),
) -> bool:
    """Tell whether the installed block differs from ``new_block``.

    Both sides are compared after trimming surrounding whitespace only, so a
    trailing newline difference never triggers a rewrite.
    """
    current = extract_managed_block(target_content, markers)
    if current is None:
        logger.debug("No managed block present; update required")
        return True
    return current.strip() != new_block.strip()


def remove_managed_block(content: str, markers: Markers) -> str:
    """Return ``content`` without the managed block and its marker lines.

    The line terminator following the end marker is removed with it.
    """
    span = _locate_block(content, markers)
    if span is None:
        return content
    begin, _, _, end = span
    return content[:begin] + content[end:]


def render_hosts_content(
    content: str,
    new_block: str,
    markers: Markers,
    newline: str = os.linesep,
) -> str:
    """Return ``content`` with the managed block replaced by ``new_block``.

    Raises
    ------
    MarkerError
        If a line of ``new_block`` equals either marker.
    """
    block = normalize_newlines(new_block, newline).strip("\r\n")
    for line in block.splitlines():
        if line.strip() in (markers.start, markers.end):
            raise MarkerError(f"Managed block content contains marker line '{line.strip()}'")
    remainder = remove_managed_block(content, markers).rstrip("\r\n")
    lines = [markers.start]
    if block:
        lines.append(block)
    lines.append(markers.end)
    head = remainder + newline + newline if remainder else ""
    return head + newline.join(lines) + newline


def write_atomically(hosts_file: Union[str, Path], data: bytes) -> None:
    """Replace ``hosts_file`` with ``data`` through a same-directory temp file.

    The temporary file is removed if writing or promotion fails, and the
    original file is left as it was.
    """
    logger = logging.getLogger(__name__)
    path = Path(hosts_file)
    tmp_name = None
    try:
        with tempfile.NamedTemporaryFile(
            "wb", delete=False, dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
        ) as handle:
            tmp_name = handle.name
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        if path.exists():
            shutil.copymode(path, tmp_name)
        os.replace(tmp_name, path)
    except OSError as exc:
        if tmp_name and os.path.exists(tmp_name):
            try:
                os.unlink(tmp_name)
            except OSError as cleanup_exc:
                logger.warning("Failed to remove temporary file %s: %s", tmp_name, cleanup_exc)
        raise ApplyError(f"Failed to write hosts file {path}: {exc}") from exc
    logger.debug("Promoted %s over %s", tmp_name, path)


def apply_managed_block(
    hosts_file: Union[str, Path],
    content: str,
    new_block: str,
    markers: Markers,
    newline: str = os.linesep,
    encoding: str = "utf-8",
    logger: logging.Logger = logging.getLogger(__name__),
) -> str:
    """Write ``content`` with its managed block replaced to ``hosts_file``.

    Parameters
    ----------
    hosts_file: str | Path
        File to replace.
    content: str
        Current content of ``hosts_file`` as returned by
        :func:`read_hosts_file`.
    new_block: str
        Lines to place between the markers.
    markers: Markers
        Delimiters of the managed block.
    newline: str, optional
        Terminator used for the block and its separator line.
    encoding: str, optional
        Encoding of the hosts file.
    logger: logging.Logger, optional
        Logger used for reporting.

    Returns the content that was written.
    """
    path = Path(hosts_file)
    new_content = render_hosts_content(content, new_block, markers, newline)
    try:
        data = new_content.encode(encoding)
    except UnicodeEncodeError as exc:
        raise ApplyError(f"Content cannot be encoded as {encoding}: {exc}") from exc
    write_atomically(path, data)
    logger.info("Managed block written to %s", path)
    return new_content
