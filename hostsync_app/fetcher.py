"""Retrieval of the remote hosts list."""

import logging
import os

import requests

from hostsync_app.errors import FetchError


def normalize_newlines(text: str, newline: str = "\n") -> str:
    """Convert every line terminator in ``text`` to ``newline``."""
    unified = text.replace("\r\n", "\n").replace("\r", "\n")
    if newline == "\n":
        return unified
    return unified.replace("\n", newline)


def fetch(url: str, timeout: float = 30.0, newline: str = os.linesep) -> str:
    """Download ``url`` and return its body with normalized line endings.

    Parameters
    ----------
    url: str
        Location of the plain-text list.
    timeout: float, optional
        Seconds to wait for the connection and for each read.
    newline: str, optional
        Line terminator used in the returned text.

    Raises
    ------
    FetchError
        On any transport error, non-success status or an empty body.
    """
    logger = logging.getLogger(__name__)
    logger.debug("Fetching %s (timeout %.1fs)", url, timeout)
    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as exc:
        raise FetchError(f"Failed to fetch {url}: {exc}") from exc

    text = response.content.decode("utf-8-sig", errors="replace")
    if not text.strip():
        raise FetchError(f"Empty response body from {url}")
    logger.debug("Fetched %d characters from %s", len(text), url)
    return normalize_newlines(text, newline)
