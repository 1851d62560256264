# songguesser/services/lyrics.py
from __future__ import annotations

import logging
import re
from typing import Optional

import requests
from flask import current_app

from .http import get_session, timeout

logger = logging.getLogger(__name__)

LRCLIB_API = "https://lrclib.net/api/get"
UNAVAILABLE = "Lyrics unavailable for this song."
SNIPPET_LINES = 5

_TIMESTAMP = re.compile(r"^\[\d{2}:\d{2}\.\d{2}\]")
_TAG = re.compile(r"\[[^\]]*\]")
_SPACES = re.compile(r"\s{2,}")


def _strip_tags(line: str) -> str:
    return _SPACES.sub(" ", _TAG.sub("", line)).strip()


def lyrics_snippet(lyrics: Optional[str]) -> Optional[str]:
    """First few meaningful lines of a song's lyrics, or None."""
    if not lyrics or UNAVAILABLE in lyrics:
        return None

    raw = [line.strip() for line in lyrics.split("\n") if line.strip()]
    no_timestamps = [line for line in raw if not _TIMESTAMP.match(line)]
    no_sections = [line for line in no_timestamps if not (line.startswith("[") and line.endswith("]"))]

    # prefer clean lines, fall back to less filtered ones when too short
    lines = [l for l in map(_strip_tags, no_sections) if l]
    if len(lines) < SNIPPET_LINES:
        lines = [l for l in map(_strip_tags, no_timestamps) if l]
    if len(lines) < SNIPPET_LINES:
        lines = [l for l in map(_strip_tags, raw) if l]

    snippet = "\n".join(lines[:SNIPPET_LINES])
    return snippet or None


def fetch_lyrics(artist: str, title: str) -> Optional[str]:
    """Look up a lyrics snippet. None means "not found" and is not an error."""
    if not artist or not title:
        return None

    url = current_app.config.get("LYRICS_API_URL", LRCLIB_API)
    try:
        res = get_session().get(
            url,
            params={"artist_name": artist, "track_name": title},
            timeout=timeout(),
        )
    except requests.RequestException as exc:
        logger.error("All lyrics fetch attempts failed for %s - %s: %s", artist, title, exc)
        return None

    if res.status_code == 404:
        return None
    if not res.ok:
        logger.warning("Lyrics API status %s for %s - %s", res.status_code, artist, title)
        return None

    try:
        data = res.json()
    except ValueError:
        logger.warning("Lyrics API returned invalid JSON for %s - %s", artist, title)
        return None
    return lyrics_snippet(data.get("plainLyrics"))
