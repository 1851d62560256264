# songguesser/services/http.py
from __future__ import annotations

import requests
from flask import current_app
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

UA = "SongGuesser/1.0 (+https://github.com/song-guesser)"
TIMEOUT = 10
RETRY_STATUSES = (429, 500, 502, 503, 504)

_sessions: dict[int, requests.Session] = {}


def build_session(max_retries: int = 3, backoff: float = 0.5) -> requests.Session:
    """Session retrying connection errors and 429/5xx with 0.5s, 1s, 2s... backoff."""
    retry = Retry(
        total=max_retries,
        connect=max_retries,
        read=max_retries,
        status=max_retries,
        backoff_factor=backoff,
        status_forcelist=RETRY_STATUSES,
        allowed_methods=frozenset(["GET"]),
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session = requests.Session()
    session.headers.update({"User-Agent": UA, "Connection": "close"})
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


def get_session() -> requests.Session:
    retries = int(current_app.config.get("HTTP_MAX_RETRIES", 3))
    session = _sessions.get(retries)
    if session is None:
        session = _sessions[retries] = build_session(retries)
    return session


def timeout() -> int:
    return int(current_app.config.get("HTTP_TIMEOUT_SEC", TIMEOUT))
