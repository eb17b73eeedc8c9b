"""Line grammar check for fetched hosts lists.

A list is accepted only if every line is blank, a comment, or an entry that
starts with the configured sentinel address followed by whitespace and at
least one host name.  Requiring the host name is stricter than a prefix and
whitespace alone: ``0.0.0.0`` followed only by spaces is rejected.  The first
offending line rejects the whole list.

Lines containing a reserved string (the managed block markers) are rejected
even when they are comments.
"""

import re
from typing import Iterable

from hostsync_app.errors import ValidationError


def _entry_pattern(entry_prefix: str) -> "re.Pattern[str]":
    return re.compile(re.escape(entry_prefix) + r"\s+\S")


def validate(
    content: str,
    comment_prefix: str = "#",
    entry_prefix: str = "0.0.0.0",
    reserved: Iterable[str] = (),
) -> int:
    """Check ``content`` line by line and return the number of entry lines.

    Raises
    ------
    ValidationError
        For the first line that is neither blank, a comment nor an entry, or
        that contains one of the ``reserved`` strings.
    """
    entry = _entry_pattern(entry_prefix)
    reserved = [text for text in reserved if text]
    entries = 0
    for number, line in enumerate(content.splitlines(), start=1):
        if any(text in line for text in reserved):
            raise ValidationError(line, number)
        if not line.strip() or line.startswith(comment_prefix):
            continue
        if entry.match(line):
            entries += 1
            continue
        raise ValidationError(line, number)
    return entries
