"""
Partition a track collection into at most N parent-genre groups.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from .genres import OTHER, classify_track, priority_rank
from .models import Track


@dataclass
class GenreGroup:
    genre: str
    tracks: List[Track] = field(default_factory=list)

    @property
    def track_count(self) -> int:
        return len(self.tracks)

    @property
    def track_ids(self) -> List[str]:
        return [t.id for t in self.tracks]


def group_by_genre(tracks: Iterable[Track]) -> Dict[str, List[Track]]:
    """Bucket tracks by parent genre, keeping first-seen genre order."""
    groups: Dict[str, List[Track]] = {}
    for track in tracks:
        groups.setdefault(classify_track(track), []).append(track)
    return groups


def rank_genres(groups: Dict[str, List[Track]]) -> List[str]:
    """Genres by descending group size; equal sizes fall back to GENRE_PRIORITY."""
    return sorted(groups, key=lambda genre: (-len(groups[genre]), priority_rank(genre)))


def partition_tracks(tracks: Iterable[Track], limit: int) -> List[GenreGroup]:
    """Group tracks by parent genre and cap the number of groups at `limit`.

    The `limit` largest groups are kept. Tracks from every other group are
    merged into "Other" when "Other" is kept; otherwise into the smallest kept
    group, which then acts as the catch-all. No track is dropped or duplicated.

    Args:
        tracks: Enriched tracks
        limit: Maximum number of groups (callers validate limit >= 1)

    Returns:
        Groups in selection order, counts reflecting any merge
    """
    if limit < 1:
        raise ValueError("limit must be >= 1")

    groups = group_by_genre(tracks)
    ranked = rank_genres(groups)
    if len(ranked) <= limit:
        return [GenreGroup(genre, groups[genre]) for genre in ranked]

    retained = ranked[:limit]
    excluded = ranked[limit:]
    catch_all = OTHER if OTHER in retained else retained[-1]

    for genre in excluded:
        groups[catch_all].extend(groups.pop(genre))

    return [GenreGroup(genre, groups[genre]) for genre in retained]
