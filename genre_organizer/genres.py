"""
Genre classification rules for Spotify artist tags.

Maps free-form Spotify micro-genre tags onto a fixed set of parent genres and
scores a track's tag set with a vote plus a priority tie-break.
"""

from collections import Counter
from typing import Dict, List, Optional, Tuple

OTHER = "Other"

# The closed set of parent genres, in display order
PARENT_GENRES: Tuple[str, ...] = (
    "Rock", "Pop", "Hip-Hop", "Electronic", "R&B", "Jazz", "Classical",
    "Country", "Metal", "Folk", "Latin", "Blues", "Reggae", "Punk",
    "Indie", "Soul", "Funk", "World", OTHER,
)

# Tie-breaking order (earlier = higher priority).
# More specific genres come before broader ones.
GENRE_PRIORITY: Tuple[str, ...] = (
    "Classical", "Jazz", "Blues", "Reggae", "Folk", "Country",
    "Metal", "Punk", "Funk", "Soul", "R&B", "Latin", "World",
    "Rock", "Electronic", "Hip-Hop", "Pop", "Indie", OTHER,
)

# Micro-genre keywords per parent genre. Declaration order is the substring
# scan order used by consolidate_genre().
GENRE_RULES: List[Tuple[List[str], str]] = [
    ([
        "rock", "indie rock", "alternative rock", "garage rock", "classic rock",
        "hard rock", "soft rock", "progressive rock", "psychedelic rock",
        "art rock", "glam rock", "grunge", "post-rock", "shoegaze", "britpop",
    ], "Rock"),
    ([
        "pop", "indie pop", "synth-pop", "electropop", "dance pop", "art pop",
        "dream pop", "chamber pop", "power pop", "teen pop", "k-pop", "j-pop",
    ], "Pop"),
    ([
        "hip hop", "rap", "trap", "conscious hip hop", "gangsta rap",
        "underground hip hop", "boom bap", "drill", "crunk", "grime",
    ], "Hip-Hop"),
    ([
        "electronic", "edm", "house", "techno", "trance", "dubstep",
        "drum and bass", "ambient", "idm", "downtempo", "trip hop", "chillwave",
        "synthwave", "deep house", "tech house", "progressive house",
    ], "Electronic"),
    ([
        "r&b", "rnb", "contemporary r&b", "neo soul", "new jack swing", "quiet storm",
    ], "R&B"),
    ([
        "jazz", "jazz fusion", "smooth jazz", "bebop", "cool jazz", "free jazz",
        "acid jazz", "nu jazz", "swing", "big band",
    ], "Jazz"),
    ([
        "classical", "baroque", "romantic", "contemporary classical", "opera",
        "orchestral", "chamber music", "symphony",
    ], "Classical"),
    ([
        "country", "country rock", "alt-country", "bluegrass", "americana",
        "outlaw country", "country pop",
    ], "Country"),
    ([
        "metal", "heavy metal", "thrash metal", "death metal", "black metal",
        "doom metal", "power metal", "progressive metal", "nu metal", "metalcore",
    ], "Metal"),
    ([
        "folk", "indie folk", "folk rock", "freak folk", "contemporary folk",
        "traditional folk",
    ], "Folk"),
    ([
        "latin", "reggaeton", "salsa", "bachata", "cumbia", "bossa nova",
        "latin pop", "latin rock",
    ], "Latin"),
    ([
        "blues", "electric blues", "delta blues", "chicago blues", "blues rock",
    ], "Blues"),
    ([
        "reggae", "dub", "ska", "dancehall", "roots reggae",
    ], "Reggae"),
    ([
        "punk", "punk rock", "pop punk", "post-punk", "hardcore punk", "emo",
        "skate punk",
    ], "Punk"),
    ([
        "indie", "lo-fi", "bedroom pop",
    ], "Indie"),
    ([
        "soul", "motown", "northern soul", "southern soul",
    ], "Soul"),
    ([
        "funk", "p-funk", "funk rock", "disco",
    ], "Funk"),
    ([
        "world", "afrobeat", "afropop", "celtic", "flamenco", "indian",
        "middle eastern",
    ], "World"),
]

# Flattened (micro-genre, parent) pairs in scan order, plus an exact-match index
GENRE_PAIRS: Tuple[Tuple[str, str], ...] = tuple(
    (keyword, parent) for keywords, parent in GENRE_RULES for keyword in keywords
)
_EXACT: Dict[str, str] = {}
for _keyword, _parent in GENRE_PAIRS:
    _EXACT.setdefault(_keyword, _parent)

_PRIORITY_RANK: Dict[str, int] = {genre: i for i, genre in enumerate(GENRE_PRIORITY)}


def get_parent_genres() -> List[str]:
    """All parent genres, "Other" last."""
    return list(PARENT_GENRES)


def priority_rank(genre: str) -> int:
    """Position of a parent genre in GENRE_PRIORITY (unknown genres sort last)."""
    return _PRIORITY_RANK.get(genre, len(GENRE_PRIORITY))


def consolidate_genre(micro_genre: str) -> str:
    """Map one Spotify genre tag to its parent genre.

    Exact match on the trimmed, case-folded tag first; otherwise the first
    keyword (in GENRE_PAIRS order) that contains the tag or is contained in it.
    Blank or unmatched tags map to "Other".
    """
    normalized = str(micro_genre).strip().casefold()
    if not normalized:
        return OTHER

    parent = _EXACT.get(normalized)
    if parent is not None:
        return parent

    for keyword, parent in GENRE_PAIRS:
        if keyword in normalized or normalized in keyword:
            return parent

    return OTHER


def consolidate_genres(micro_genres) -> List[str]:
    """Distinct parent genres for a list of tags, in first-seen order."""
    result = []
    seen = set()
    for genre in micro_genres:
        parent = consolidate_genre(genre)
        if parent not in seen:
            seen.add(parent)
            result.append(parent)
    return result


def score_genres(micro_genres) -> str:
    """Pick the best-fit parent genre for a track's tags.

    Every tag votes for its parent genre. The parent with the most votes wins;
    ties go to whichever candidate comes first in GENRE_PRIORITY.

    Args:
        micro_genres: Iterable of genre tags (the union of a track's artists' tags)

    Returns:
        A member of PARENT_GENRES ("Other" for an empty tag set)
    """
    votes = Counter(consolidate_genre(g) for g in micro_genres)
    if not votes:
        return OTHER

    max_votes = max(votes.values())
    candidates = [genre for genre, count in votes.items() if count == max_votes]
    if len(candidates) == 1:
        return candidates[0]

    for genre in GENRE_PRIORITY:
        if genre in candidates:
            return genre

    return OTHER


def classify_track(track) -> str:
    """Parent genre for a Track; tagless tracks go straight to "Other"."""
    if not track.genres:
        return OTHER
    return score_genres(track.genres)


def vote_breakdown(micro_genres) -> Optional[Dict[str, int]]:
    """Per-parent vote counts for a tag list, ordered by priority (None if empty)."""
    votes = Counter(consolidate_genre(g) for g in micro_genres)
    if not votes:
        return None
    return {genre: votes[genre] for genre in sorted(votes, key=priority_rank)}
