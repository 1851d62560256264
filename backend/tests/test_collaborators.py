import pytest
import requests

from songguesser.services import tracks
from songguesser.services.lyrics import UNAVAILABLE, fetch_lyrics, lyrics_snippet
from songguesser.services.tracks import normalize_preview_url, resolve_track, score_candidate


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError('no json')
        return self._payload


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, params))
        if self.error:
            raise self.error
        return self.response


LYRICS = "\n".join([
    "[Verse 1]",
    "[00:01.00] timed line",
    "First line",
    "Second line [x2]",
    "",
    "Third line",
    "[Chorus]",
    "Fourth line",
    "Fifth line",
    "Sixth line",
])


def test_snippet_keeps_five_clean_lines():
    assert lyrics_snippet(LYRICS) == "First line\nSecond line\nThird line\nFourth line\nFifth line"


def test_snippet_falls_back_when_short():
    assert lyrics_snippet("[Intro]\nOnly line\nSecond [x2]") == "Only line\nSecond"


def test_snippet_rejects_missing_lyrics():
    assert lyrics_snippet(None) is None
    assert lyrics_snippet("") is None
    assert lyrics_snippet(UNAVAILABLE) is None


def test_fetch_lyrics_returns_snippet(flask_app, monkeypatch):
    session = FakeSession(FakeResponse(200, {'plainLyrics': 'a\nb\nc\nd\ne\nf'}))
    monkeypatch.setattr('songguesser.services.lyrics.get_session', lambda: session)
    assert fetch_lyrics('SZA', 'Good Days') == 'a\nb\nc\nd\ne'
    assert session.calls[0][1] == {'artist_name': 'SZA', 'track_name': 'Good Days'}


@pytest.mark.parametrize('session', [
    FakeSession(FakeResponse(404)),
    FakeSession(FakeResponse(500)),
    FakeSession(FakeResponse(200, None)),
    FakeSession(error=requests.ConnectionError('down')),
])
def test_fetch_lyrics_failures_mean_not_found(flask_app, monkeypatch, session):
    monkeypatch.setattr('songguesser.services.lyrics.get_session', lambda: session)
    assert fetch_lyrics('SZA', 'Good Days') is None


def test_fetch_lyrics_needs_artist_and_title(flask_app):
    assert fetch_lyrics('', 'Good Days') is None


def _candidate(title, artist, preview='http://cdn.example.com/p.mp3', duration=None, cid=1):
    return {'id': cid, 'title': title, 'artist': {'name': artist}, 'preview': preview,
            'duration': duration, 'album': {'cover_xl': 'https://img.example.com/c.jpg'}}


def test_score_candidate_prefers_exact_original():
    exact, _, matched = score_candidate('SZA', 'Good Days', _candidate('Good Days', 'SZA'))
    remix, reasons, _ = score_candidate('SZA', 'Good Days', _candidate('Good Days (Remix)', 'SZA'))
    assert matched
    assert exact > remix
    assert any('unexpected version' in r for r in reasons)


def test_score_candidate_flags_wrong_artist():
    _, _, matched = score_candidate('SZA', 'Good Days', _candidate('Good Days', 'Someone Else Entirely'))
    assert not matched


def test_resolve_track_picks_best_candidate(flask_app, monkeypatch):
    tracks._cache.clear()
    candidates = [
        _candidate('Good Days (Live)', 'SZA', cid=1),
        _candidate('Good Days', 'SZA', duration=279, cid=2),
        _candidate('Good Days', 'SZA', preview='', cid=3),
    ]
    monkeypatch.setattr(tracks, '_search', lambda query: candidates)
    result = resolve_track('SZA', 'Good Days', duration_ms=279000)
    assert result.resolved
    assert result.canonical_id == '2'
    assert result.preview_url == 'https://cdn.example.com/p.mp3'
    tracks._cache.clear()


def test_resolve_track_rejects_weak_matches(flask_app, monkeypatch):
    tracks._cache.clear()
    monkeypatch.setattr(tracks, '_search', lambda query: [_candidate('Another Song', 'Other Artist')])
    assert not resolve_track('SZA', 'Good Days').resolved
    monkeypatch.setattr(tracks, '_search', lambda query: [])
    assert not resolve_track('Nobody', 'Nothing').resolved
    tracks._cache.clear()


def test_preview_urls_are_https():
    assert normalize_preview_url(' http://cdn.example.com/a.mp3 ') == 'https://cdn.example.com/a.mp3'


def test_failed_lookup_is_retried(flask_app, monkeypatch):
    tracks._cache.clear()
    monkeypatch.setattr(tracks, '_search', lambda query: [])
    assert not resolve_track('SZA', 'Good Days').resolved

    monkeypatch.setattr(tracks, '_search', lambda query: [_candidate('Good Days', 'SZA', cid=7)])
    result = resolve_track('SZA', 'Good Days')
    assert result.resolved
    assert result.canonical_id == '7'
    tracks._cache.clear()


def test_track_cache_evicts_oldest(flask_app, monkeypatch):
    tracks._cache.clear()
    flask_app.config['TRACK_CACHE_SIZE'] = 2
    searches = []

    def search(query):
        searches.append(query)
        return [_candidate('Song', 'Artist')]

    monkeypatch.setattr(tracks, '_search', search)
    for title in ('One', 'Two', 'Three'):
        resolve_track('Artist', title)
    assert len(tracks._cache) == 2
    assert not any('one' in key for key in tracks._cache)

    count = len(searches)
    resolve_track('Artist', 'Three')
    assert len(searches) == count
    tracks._cache.clear()
