"""
Library fetch and genre enrichment steps shared by the organizer and sync.

Saved tracks are paged until exhausted, artist genres are fetched in paced
batches, and every track gets the union of its artists' tags.
"""

from __future__ import annotations

import time
from dataclasses import replace
from typing import Callable, Dict, Iterable, List, Optional

from tqdm import tqdm

from . import config
from .jobs import JobStage, ProgressSink
from .logger import get_logger
from .models import Track

logger = get_logger(__name__)


def chunks(xs: list, n: int):
    for i in range(0, len(xs), n):
        yield xs[i:i + n]


def fetch_all_saved_tracks(
    library,
    sink: Optional[ProgressSink] = None,
    page_size: int = config.SPOTIFY_TRACK_PAGE_SIZE,
    show_progress: bool = False,
) -> List[Track]:
    """Fetch the user's whole saved-track library.

    Reports (processed, total) to `sink` after every page.
    """
    tracks: List[Track] = []
    offset = 0
    total = 0
    pbar = None
    try:
        while True:
            page = library.fetch_saved_tracks_page(offset=offset, limit=page_size)
            if total == 0:
                total = page.total
                if show_progress and total > page_size:
                    pbar = tqdm(total=total, desc="Fetching Liked Songs", unit="track")
            tracks.extend(page.tracks)
            consumed = (page.next_offset - offset) if page.next_offset is not None else len(page.tracks)
            if pbar:
                pbar.update(consumed)
            if sink is not None:
                sink.report(JobStage.FETCHING, len(tracks), max(total, len(tracks)))
            if page.next_offset is None or page.next_offset <= offset or page.next_offset >= total:
                break
            offset = page.next_offset
    finally:
        if pbar:
            pbar.close()

    logger.info("Fetched %d saved tracks", len(tracks))
    return tracks


def unique_artist_ids(tracks: Iterable[Track]) -> List[str]:
    """Distinct artist ids in first-seen order."""
    return list(dict.fromkeys(aid for t in tracks for aid in t.artist_ids))


def fetch_all_artist_genres(
    library,
    tracks: Iterable[Track],
    batch_size: int = config.SPOTIFY_ARTIST_BATCH_SIZE,
    delay: float = config.SPOTIFY_BATCH_DELAY,
    sleep: Callable[[float], None] = time.sleep,
) -> Dict[str, List[str]]:
    """Genre tags for every artist on the given tracks, fetched in paced batches."""
    artist_ids = unique_artist_ids(tracks)
    genre_map: Dict[str, List[str]] = {}
    total = len(artist_ids)
    for i, batch in enumerate(chunks(artist_ids, batch_size)):
        if i > 0 and delay > 0:
            sleep(delay)
        genre_map.update(library.fetch_artist_genres(batch))

    logger.debug("Resolved genres for %d/%d artists", len(genre_map), total)
    return genre_map


def enrich_tracks_with_genres(tracks: Iterable[Track], artist_genres: Dict[str, List[str]]) -> List[Track]:
    """Copies of the tracks carrying the union of their artists' genre tags."""
    enriched = []
    for track in tracks:
        genres = dict.fromkeys(
            g for aid in track.artist_ids for g in artist_genres.get(aid, [])
        )
        enriched.append(replace(track, genres=tuple(genres)))
    return enriched


def fetch_enriched_library(library, sink: Optional[ProgressSink] = None, **kwargs) -> List[Track]:
    """Fetch the saved-track library and enrich it with artist genres."""
    tracks = fetch_all_saved_tracks(library, sink=sink)
    artist_genres = fetch_all_artist_genres(library, tracks, **kwargs)
    return enrich_tracks_with_genres(tracks, artist_genres)


def discovered_genres(tracks: Iterable[Track]) -> List[str]:
    """Distinct raw genre tags across the tracks, sorted."""
    return sorted({g for t in tracks for g in t.genres})
