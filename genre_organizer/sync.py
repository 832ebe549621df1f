"""
Sync/diff engine: report new liked songs per managed playlist and bring
managed playlists back in line with the current library.

Resync is a full overwrite of each playlist with the current genre group,
never an append of deltas. Failures on one playlist do not stop the others.
"""

from __future__ import annotations

import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from . import config
from .catalog import SettingsCatalog
from .client import failure_kind
from .errors import UpstreamError, ValidationError
from .genres import classify_track
from .library import enrich_tracks_with_genres, fetch_all_artist_genres, fetch_all_saved_tracks
from .logger import get_logger, timed_step
from .models import PlaylistAssignment, Track, utcnow
from .organizer import add_tracks_in_batches, save_assignment
from .partition import group_by_genre
from .playlists import UNKNOWN_GENRE, extract_genre_from_name

logger = get_logger(__name__)

FETCH_FAILED_MESSAGE = "Failed to fetch your liked songs. Please try again."
GENRES_FAILED_MESSAGE = "Failed to analyze song genres. Please try again."


@dataclass
class PlaylistSyncStatus:
    playlist_id: str
    genre: str
    new_count: int

    def to_dict(self) -> dict:
        return {"spotify_id": self.playlist_id, "genre": self.genre, "new_count": self.new_count}


@dataclass
class SyncStatus:
    new_track_count: int = 0
    oldest_sync_at: Optional[datetime] = None
    playlists: List[PlaylistSyncStatus] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "new_songs_count": self.new_track_count,
            "oldest_sync_at": self.oldest_sync_at.isoformat() if self.oldest_sync_at else None,
            "playlists": [p.to_dict() for p in self.playlists],
        }


@dataclass
class SyncResult:
    playlists_updated: int = 0
    total_tracks: int = 0
    failed_playlist_genres: List[str] = field(default_factory=list)
    skipped_playlist_genres: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "playlists_updated": self.playlists_updated,
            "total_songs": self.total_tracks,
            "failed": list(self.failed_playlist_genres),
            "skipped": list(self.skipped_playlist_genres),
        }


def added_since(track: Track, cutoff: datetime) -> bool:
    """Tracks without an added timestamp never count as new."""
    return track.added_at is not None and track.added_at > cutoff


def _fetch_tracks(library) -> List[Track]:
    try:
        return fetch_all_saved_tracks(library)
    except Exception as e:
        logger.error("Fetching liked songs failed (%s)", failure_kind(e), exc_info=True)
        raise UpstreamError(FETCH_FAILED_MESSAGE) from e


def _enrich(library, tracks: List[Track], batch_delay: float, sleep) -> List[Track]:
    try:
        artist_genres = fetch_all_artist_genres(library, tracks, delay=batch_delay, sleep=sleep)
    except Exception as e:
        logger.error("Fetching artist genres failed (%s)", failure_kind(e), exc_info=True)
        raise UpstreamError(GENRES_FAILED_MESSAGE) from e
    return enrich_tracks_with_genres(tracks, artist_genres)


def get_sync_status(
    library,
    store: SettingsCatalog,
    user_id: str,
    buffer_seconds: int = config.SYNC_BUFFER_SECONDS,
    batch_delay: float = config.SPOTIFY_BATCH_DELAY,
    sleep: Callable[[float], None] = time.sleep,
) -> SyncStatus:
    """Count liked songs added since the oldest sync, per managed playlist.

    Only the new tracks are enriched and classified. Playlists with no new
    tracks are left out of the report.
    """
    oldest = store.get_oldest_sync_timestamp(user_id)
    if oldest is None:
        return SyncStatus()

    cutoff = oldest - timedelta(seconds=buffer_seconds)
    new_tracks = [t for t in _fetch_tracks(library) if added_since(t, cutoff)]
    if not new_tracks:
        return SyncStatus(oldest_sync_at=oldest)

    new_tracks = _enrich(library, new_tracks, batch_delay, sleep)
    counts = Counter(classify_track(t) for t in new_tracks)

    playlists = [
        PlaylistSyncStatus(playlist_id=pid, genre=a.genre, new_count=counts[a.genre])
        for pid, a in store.get_playlist_assignments(user_id).items()
        if a.genre and counts[a.genre] > 0
    ]
    logger.info("User %s has %d new liked songs across %d playlists",
                user_id, len(new_tracks), len(playlists))
    return SyncStatus(new_track_count=len(new_tracks), oldest_sync_at=oldest, playlists=playlists)


def overwrite_playlist(
    library,
    playlist_id: str,
    tracks: List[Track],
    batch_delay: float = config.SPOTIFY_BATCH_DELAY,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Replace a playlist's contents with exactly `tracks`."""
    library.clear_playlist(playlist_id)
    return add_tracks_in_batches(
        library, playlist_id, [t.id for t in tracks], delay=batch_delay, sleep=sleep
    )


def sync_all(
    library,
    store: SettingsCatalog,
    user_id: str,
    buffer_seconds: int = config.SYNC_BUFFER_SECONDS,
    batch_delay: float = config.SPOTIFY_BATCH_DELAY,
    sleep: Callable[[float], None] = time.sleep,
) -> SyncResult:
    """Fully resync every managed playlist against the whole current library.

    A playlist is skipped (no clear, no add, timestamp unchanged) when its
    genre group is empty or holds nothing added since that playlist's own
    last sync. Per-playlist failures are collected, not raised.
    """
    result = SyncResult()
    assignments = [a for a in store.get_playlist_assignments(user_id).values() if a.genre]
    if not assignments:
        return result

    with timed_step(f"sync user {user_id}: fetch and classify library", logger):
        tracks = _enrich(library, _fetch_tracks(library), batch_delay, sleep)
        groups = group_by_genre(tracks)

    for assignment in assignments:
        group = groups.get(assignment.genre) or []
        if not group:
            result.skipped_playlist_genres.append(assignment.genre)
            continue
        if assignment.last_synced_at is not None:
            cutoff = assignment.last_synced_at - timedelta(seconds=buffer_seconds)
            if not any(added_since(t, cutoff) for t in group):
                result.skipped_playlist_genres.append(assignment.genre)
                continue

        try:
            overwrite_playlist(library, assignment.playlist_id, group, batch_delay, sleep)
        except Exception as e:
            logger.error("Sync of %s playlist %s failed (%s)", assignment.genre,
                         assignment.playlist_id, failure_kind(e), exc_info=True)
            result.failed_playlist_genres.append(assignment.genre)
            continue

        assignment.last_synced_at = utcnow()
        save_assignment(store, assignment)
        result.playlists_updated += 1
        result.total_tracks += len(group)

    logger.info("Synced %d playlists (%d tracks, %d failed, %d skipped)",
                result.playlists_updated, result.total_tracks,
                len(result.failed_playlist_genres), len(result.skipped_playlist_genres))
    return result


def refresh_playlist(
    library,
    store: SettingsCatalog,
    user_id: str,
    playlist_id: str,
    batch_delay: float = config.SPOTIFY_BATCH_DELAY,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Re-derive one playlist from the current library and overwrite it.

    The genre comes from the stored assignment, or failing that from the
    playlist's name (then stored for next time). Returns the track count.
    """
    assignment = store.get_playlist_assignment(user_id, playlist_id)
    if assignment is None or not assignment.genre:
        try:
            owned = library.list_owned_playlists(user_id)
        except Exception as e:
            logger.error("Listing playlists for user %s failed", user_id, exc_info=True)
            raise UpstreamError("Failed to fetch playlists. Please try again.") from e
        template = store.get_user_settings(user_id).name_template
        genre = next(
            (extract_genre_from_name(p.name, template) for p in owned if p.id == playlist_id),
            UNKNOWN_GENRE,
        )
        if genre == UNKNOWN_GENRE:
            raise ValidationError("Could not determine playlist genre")
        assignment = assignment or PlaylistAssignment(user_id=user_id, playlist_id=playlist_id)
        assignment.genre = genre
        save_assignment(store, assignment)

    tracks = _enrich(library, _fetch_tracks(library), batch_delay, sleep)
    genre_tracks = [t for t in tracks if classify_track(t) == assignment.genre]
    try:
        overwrite_playlist(library, playlist_id, genre_tracks, batch_delay, sleep)
    except Exception as e:
        logger.error("Refreshing playlist %s failed", playlist_id, exc_info=True)
        raise UpstreamError("Failed to update playlist. Please try again.") from e

    assignment.last_synced_at = utcnow()
    save_assignment(store, assignment)
    logger.info("Refreshed %s playlist %s with %d tracks", assignment.genre, playlist_id, len(genre_tracks))
    return len(genre_tracks)
