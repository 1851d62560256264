# songguesser/services/tracks.py
"""Resolve a song to a playable preview through the Deezer search API."""
from __future__ import annotations

import logging
import re
from collections import OrderedDict
from dataclasses import dataclass, field
from threading import RLock
from typing import Optional

import requests
from flask import current_app

from .games.matching import levenshtein, normalize_for_compare, normalize_for_search
from .http import get_session, timeout

logger = logging.getLogger(__name__)

DEEZER_API = "https://api.deezer.com/search"
ACCEPT_SCORE = 40
CACHE_SIZE = 1024
VERSION_KEYWORDS = (
    "remix", "live", "acoustic", "edit", "remaster", "sped up", "slowed",
    "instrumental", "karaoke", "cover", "demo", "extended", "mix",
)

_FEATURES = re.compile(r"\s*\((feat\.?|with|ft\.?)\s+[^)]*\)", re.I)
_FEATURE_NAMES = re.compile(r"\((?:feat\.?|with|ft\.?)\s+([^)]+)\)", re.I)
_VERSION_SUFFIX = re.compile(r"\s*-\s*.*?(remix|version|edit|mix)", re.I)

_lock = RLock()
_cache: OrderedDict[str, "ResolvedTrack"] = OrderedDict()


@dataclass
class ResolvedTrack:
    resolved: bool
    score: int = 0
    preview_url: Optional[str] = None
    canonical_id: Optional[str] = None
    cover_url: Optional[str] = None
    reasons: list[str] = field(default_factory=list)


def normalize_preview_url(url: str) -> str:
    return re.sub(r"^http://", "https://", url.strip(), flags=re.I)


def version_tags(title: str) -> set[str]:
    lower = title.lower()
    return {kw for kw in VERSION_KEYWORDS if re.search(rf"\b{re.escape(kw)}\b", lower)}


def _base_title(title: str) -> str:
    return normalize_for_compare(_VERSION_SUFFIX.sub("", _FEATURES.sub("", title)).strip())


def _jaccard(a: str, b: str) -> float:
    sa, sb = set(a.split(" ")), set(b.split(" "))
    union = sa | sb
    return len(sa & sb) / len(union) if union else 0.0


def score_candidate(artist: str, title: str, candidate: dict,
                    duration_ms: Optional[int] = None) -> tuple[int, list[str], bool]:
    """Score a search hit; returns (score, reasons, artist_matched)."""
    score = 0
    reasons: list[str] = []

    src_title, cand_title = _base_title(title), _base_title(candidate.get("title", ""))
    if src_title == cand_title:
        score += 40
        reasons.append("exact title")
    else:
        overlap = _jaccard(src_title, cand_title)
        if overlap > 0.8:
            score += 30
            reasons.append("high title overlap")
        elif overlap > 0.5:
            score += 10
            reasons.append("partial title overlap")
        if levenshtein(src_title, cand_title) <= 2:
            score += 15
            reasons.append("close title")

    src_artist = normalize_for_compare(artist)
    cand_artist = normalize_for_compare((candidate.get("artist") or {}).get("name", ""))
    artist_matched = True
    if src_artist == cand_artist:
        score += 30
        reasons.append("exact artist")
    elif src_artist and cand_artist and (src_artist in cand_artist or cand_artist in src_artist):
        score += 20
        reasons.append("artist substring")
    elif levenshtein(src_artist, cand_artist) <= 2:
        score += 15
        reasons.append("close artist")
    else:
        artist_matched = False

    src_tags, cand_tags = version_tags(title), version_tags(candidate.get("title", ""))
    if not src_tags and cand_tags:
        score -= 35
        reasons.append(f"unexpected version {','.join(sorted(cand_tags))}")
    elif src_tags:
        if src_tags & cand_tags:
            score += 15
            reasons.append("version matched")
        else:
            score -= 20
            reasons.append("missing version")

    if duration_ms and candidate.get("duration"):
        diff = abs(duration_ms / 1000 - candidate["duration"])
        if diff <= 2:
            score += 25
            reasons.append("duration exact")
        elif diff <= 5:
            score += 15
            reasons.append("duration close")
        elif diff > 15:
            score -= 30
            reasons.append(f"duration off by {round(diff)}s")

    if (candidate.get("rank") or 0) > 500000:
        score += 5
        reasons.append("popular")

    return score, reasons, artist_matched


def _queries(artist: str, title: str) -> list[str]:
    clean_title = _FEATURES.sub("", title).strip()
    norm_artist, norm_title = normalize_for_search(artist), normalize_for_search(clean_title)
    feature = _FEATURE_NAMES.search(title)
    queries = [
        f'artist:"{artist}" track:"{title}"',
        f'"{artist}" "{clean_title}" "{feature.group(1)}"' if feature else f'"{artist}" "{title}"',
        f'artist:"{artist}" track:"{clean_title}"',
        f"{artist} {title}",
        f'artist:"{norm_artist}" track:"{norm_title}"',
        f"{norm_artist.replace('$', 's')} {norm_title}",
        norm_title,
    ]
    return list(dict.fromkeys(q for q in queries if q.strip()))


def _search(query: str) -> list[dict]:
    url = current_app.config.get("DEEZER_API_URL", DEEZER_API)
    try:
        res = get_session().get(url, params={"q": query, "limit": 10}, timeout=timeout())
        res.raise_for_status()
        return res.json().get("data") or []
    except (requests.RequestException, ValueError) as exc:
        logger.warning("Deezer search failed for %r: %s", query, exc)
        return []


def resolve_track(artist: str, title: str, duration_ms: Optional[int] = None) -> ResolvedTrack:
    """Find a playable preview for a song; ``resolved=False`` means no usable audio."""
    key = f"deezer:{normalize_for_compare(artist)}|{normalize_for_compare(title)}"
    with _lock:
        if key in _cache:
            _cache.move_to_end(key)
            return _cache[key]

    candidates: list[dict] = []
    for query in _queries(artist, title):
        candidates = _search(query)
        if candidates:
            break

    best, best_score, best_reasons, best_artist = None, -100, [], False
    for cand in candidates:
        if not cand.get("preview"):
            continue
        score, reasons, artist_matched = score_candidate(artist, title, cand, duration_ms)
        if score > best_score:
            best, best_score, best_reasons, best_artist = cand, score, reasons, artist_matched

    if best is not None and best_score > ACCEPT_SCORE and best_artist:
        album = best.get("album") or {}
        result = ResolvedTrack(
            resolved=True,
            score=best_score,
            preview_url=normalize_preview_url(best["preview"]),
            canonical_id=str(best.get("id")),
            cover_url=album.get("cover_xl") or album.get("cover_big"),
            reasons=best_reasons,
        )
        logger.info("Resolved %s - %s (score %s)", artist, title, best_score)
    else:
        result = ResolvedTrack(resolved=False, score=best_score if best else 0, reasons=best_reasons)
        logger.info("Could not resolve %s - %s (best score %s)", artist, title, best_score)

    # empty searches are never cached, an outage looks the same
    if candidates:
        _remember(key, result)
    return result


def _remember(key: str, result: ResolvedTrack) -> None:
    limit = int(current_app.config.get("TRACK_CACHE_SIZE", CACHE_SIZE))
    with _lock:
        _cache[key] = result
        _cache.move_to_end(key)
        while len(_cache) > limit:
            _cache.popitem(last=False)
