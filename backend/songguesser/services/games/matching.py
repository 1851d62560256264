"""Fuzzy comparison of free-text guesses against song titles and artists."""
import re
import unicodedata
from typing import List

# A title guess may differ in length from the answer by at most this many
# characters when one contains the other.
TITLE_LENGTH_TOLERANCE = 2
# Substring matches between a guess and an artist name need more than this
# many characters on the contained side.
ARTIST_SUBSTRING_MIN_LENGTH = 3
MAX_EDIT_DISTANCE = 1

_ACCENTS = re.compile(r'[\u0300-\u036f]')
_NOT_ALLOWED = re.compile(r'[^a-z0-9$ ]')
_WHITESPACE = re.compile(r'\s+')

_TITLE_EXTRAS = [
    re.compile(r'\s*\(feat\.?.*?\)', re.IGNORECASE),
    re.compile(r'\s*\(ft\.?.*?\)', re.IGNORECASE),
    re.compile(r'\s*\(with .*?\)', re.IGNORECASE),
    re.compile(r'\s*\(remix.*?\)', re.IGNORECASE),
    re.compile(r'\s*\(edit.*?\)', re.IGNORECASE),
    re.compile(r'\s*\(remaster.*?\)', re.IGNORECASE),
    re.compile(r'\s*\(live.*?\)', re.IGNORECASE),
    re.compile(r'\s*\(acoustic.*?\)', re.IGNORECASE),
    re.compile(r'\s*\([^)]*\)'),
    re.compile(r'\s*\([^)]*$'),
    re.compile(r'\s*\[.*?\]'),
    re.compile(
        r'\s*-\s*(feat\.?.*|ft\.?.*|with .*|remix|edit|version|mix|live|acoustic|remaster|radio edit|extended mix).*$',
        re.IGNORECASE,
    ),
    re.compile(
        r'\s+(?:[a-z0-9]+\s+)?(?:version|remix|edit|mix|live|acoustic|remaster|instrumental|karaoke|cover|demo|extended)\b',
        re.IGNORECASE,
    ),
    # anything after a spaced dash or a slash is a subtitle
    re.compile(r'\s+-\s+.*$'),
    re.compile(r'/.*$'),
]

_ARTIST_SEP = '\x1f'
_ARTIST_ASIDES = [re.compile(r'\(.*?\)'), re.compile(r'\[.*?\]')]
_ARTIST_SEPARATORS = [
    re.compile(r'\b(feat|ft|with)\b\.?', re.IGNORECASE),
    re.compile(r'&'),
    re.compile(r'\band\b', re.IGNORECASE),
]


def normalize_for_search(text: str) -> str:
    """Light cleanup for search queries; keeps punctuation search engines use."""
    return _WHITESPACE.sub(' ', text.lower()).strip()


def normalize_for_compare(text: str) -> str:
    text = unicodedata.normalize('NFD', text.lower())
    text = _ACCENTS.sub('', text)
    text = text.replace('&', 'and')
    text = _NOT_ALLOWED.sub('', text)
    return _WHITESPACE.sub(' ', text).strip()


def strip_title_extras(title: str) -> str:
    for pattern in _TITLE_EXTRAS:
        title = pattern.sub(' ', title)
    return _WHITESPACE.sub(' ', title).strip()


def split_artists(artist: str) -> List[str]:
    cleaned = artist
    for pattern in _ARTIST_ASIDES:
        cleaned = pattern.sub(' ', cleaned)
    for pattern in _ARTIST_SEPARATORS:
        cleaned = pattern.sub(_ARTIST_SEP, cleaned)
    names = (normalize_for_compare(part) for part in cleaned.split(_ARTIST_SEP))
    return [name for name in names if name]


def levenshtein(a: str, b: str) -> int:
    rows = len(b) + 1
    cols = len(a) + 1
    table = [[0] * cols for _ in range(rows)]
    for i in range(rows):
        table[i][0] = i
    for j in range(cols):
        table[0][j] = j
    for i in range(1, rows):
        for j in range(1, cols):
            if b[i - 1] == a[j - 1]:
                table[i][j] = table[i - 1][j - 1]
            else:
                table[i][j] = 1 + min(
                    table[i - 1][j - 1],
                    table[i][j - 1],
                    table[i - 1][j],
                )
    return table[rows - 1][cols - 1]


def _title_matches(guess: str, answer: str) -> bool:
    if guess == answer:
        return True
    if answer in guess and len(guess) <= len(answer) + TITLE_LENGTH_TOLERANCE:
        return True
    if guess in answer and len(guess) >= len(answer) - TITLE_LENGTH_TOLERANCE:
        return True
    return levenshtein(guess, answer) <= MAX_EDIT_DISTANCE


def _artist_matches(guess: str, candidate: str) -> bool:
    if guess == candidate:
        return True
    if guess in candidate and len(guess) > ARTIST_SUBSTRING_MIN_LENGTH:
        return True
    if candidate in guess and len(candidate) > ARTIST_SUBSTRING_MIN_LENGTH:
        return True
    return levenshtein(guess, candidate) <= MAX_EDIT_DISTANCE


def is_match(guess: str, answer: str, is_artist: bool = False) -> bool:
    """Return True if a player's guess counts as the given title or artist.

    Titles are compared after dropping featuring credits and version tags,
    artists against each credited name on its own.
    """
    if not guess or not answer:
        return False
    guess = guess.strip()
    answer = answer.strip()
    if not guess or not answer:
        return False

    if is_artist:
        norm_guess = normalize_for_compare(guess)
        full_credit = normalize_for_compare(answer)
        if not norm_guess:
            return not full_credit
        candidates = split_artists(answer)
        if full_credit and full_credit not in candidates:
            candidates.append(full_credit)
        return any(_artist_matches(norm_guess, candidate) for candidate in candidates)

    norm_guess = normalize_for_compare(strip_title_extras(guess))
    norm_answer = normalize_for_compare(strip_title_extras(answer))
    if not norm_guess:
        # Punctuation-only guesses never match a real title by substring
        return norm_guess == norm_answer
    return _title_matches(norm_guess, norm_answer)
