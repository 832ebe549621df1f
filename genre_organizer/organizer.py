"""
Job orchestrator: runs the fetch -> analyze -> partition -> materialize
pipeline for one organize request on its own background thread.

Callers start a job, get its id back immediately and poll its status. Jobs
cannot be cancelled; every pipeline failure ends in a failed job rather
than an exception.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from . import config
from .catalog import SettingsCatalog
from .client import failure_kind
from .errors import JobNotFoundError, ValidationError, handle_errors
from .jobs import Job, JobProgress, JobRegistry, JobStage, JobStatus, NullProgress, ProgressSink
from .library import (
    chunks,
    discovered_genres,
    enrich_tracks_with_genres,
    fetch_all_artist_genres,
    fetch_all_saved_tracks,
)
from .logger import get_logger, timed_step
from .models import PlaylistAssignment, Track, UserSettings, utcnow
from .partition import GenreGroup, partition_tracks

logger = get_logger(__name__)

FETCH_FAILED_MESSAGE = "Failed to fetch your liked songs. Please try again."
ANALYZE_FAILED_MESSAGE = "Failed to analyze song genres. Please try again."
CREATE_FAILED_MESSAGE = "Failed to create playlists. Please try again."

PLAYLIST_URL_PREFIX = "https://open.spotify.com/playlist/"


@dataclass
class PlaylistResult:
    name: str
    genre: str
    playlist_id: str
    url: str
    track_count: int

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "genre": self.genre,
            "id": self.playlist_id,
            "url": self.url,
            "track_count": self.track_count,
        }


@dataclass
class OrganizeResult:
    playlists: List[PlaylistResult] = field(default_factory=list)

    @property
    def total_tracks(self) -> int:
        return sum(p.track_count for p in self.playlists)

    def to_dict(self) -> dict:
        return {
            "playlists": [p.to_dict() for p in self.playlists],
            "total_tracks": self.total_tracks,
        }


def validate_playlist_count(playlist_count) -> int:
    """Reject anything but an int within [MIN_PLAYLIST_COUNT, MAX_PLAYLIST_COUNT]."""
    if isinstance(playlist_count, bool) or not isinstance(playlist_count, int):
        raise ValidationError("playlist_count must be an integer")
    if not config.MIN_PLAYLIST_COUNT <= playlist_count <= config.MAX_PLAYLIST_COUNT:
        raise ValidationError(
            f"playlist_count must be between {config.MIN_PLAYLIST_COUNT} "
            f"and {config.MAX_PLAYLIST_COUNT}"
        )
    return playlist_count


def add_tracks_in_batches(
    library,
    playlist_id: str,
    track_ids: List[str],
    batch_size: int = config.SPOTIFY_ADD_TRACKS_BATCH_SIZE,
    delay: float = config.SPOTIFY_BATCH_DELAY,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Add tracks in fixed-size batches with a pacing delay between batches."""
    added = 0
    for i, batch in enumerate(chunks(list(track_ids), batch_size)):
        if i > 0 and delay > 0:
            sleep(delay)
        library.add_tracks(playlist_id, batch)
        added += len(batch)
    return added


@handle_errors(default_return=None)
def save_assignment(store: SettingsCatalog, assignment: PlaylistAssignment) -> Optional[PlaylistAssignment]:
    """Persist an assignment; failures are logged and only cost a future sync."""
    return store.upsert_playlist_assignment(assignment)


@handle_errors(default_return=None)
def record_playlist_genre(store: SettingsCatalog, user_id: str, playlist_id: str,
                          genre: str) -> Optional[PlaylistAssignment]:
    """Link a playlist to its genre and stamp it as synced, keeping any overrides."""
    assignment = store.get_playlist_assignment(user_id, playlist_id) or PlaylistAssignment(
        user_id=user_id, playlist_id=playlist_id
    )
    assignment.genre = genre
    assignment.last_synced_at = utcnow()
    return store.upsert_playlist_assignment(assignment)


def materialize_playlist(
    library,
    user_id: str,
    settings: UserSettings,
    group: GenreGroup,
    replace_existing: bool = False,
    batch_delay: float = config.SPOTIFY_BATCH_DELAY,
    sleep: Callable[[float], None] = time.sleep,
) -> PlaylistResult:
    """Create (or clear and reuse) the playlist for one genre group and fill it."""
    name = settings.build_playlist_name(group.genre)
    description = settings.build_description(group.genre)

    playlist = library.find_playlist_by_name(name) if replace_existing else None
    if playlist is not None:
        logger.info("Replacing contents of existing playlist %r (%s)", name, playlist.id)
        library.clear_playlist(playlist.id)
    else:
        playlist = library.create_playlist(user_id, name, description)
        logger.info("Created playlist %r (%s)", name, playlist.id)

    add_tracks_in_batches(library, playlist.id, group.track_ids, delay=batch_delay, sleep=sleep)
    return PlaylistResult(
        name=name,
        genre=group.genre,
        playlist_id=playlist.id,
        url=playlist.url or f"{PLAYLIST_URL_PREFIX}{playlist.id}",
        track_count=group.track_count,
    )


def organize_tracks(
    library,
    store: SettingsCatalog,
    user_id: str,
    tracks: List[Track],
    playlist_count: int,
    replace_existing: bool = False,
    sink: Optional[ProgressSink] = None,
    batch_delay: float = config.SPOTIFY_BATCH_DELAY,
    sleep: Callable[[float], None] = time.sleep,
) -> OrganizeResult:
    """Partition enriched tracks and materialize one playlist per retained group.

    Groups are processed in selection order. Any playlist error propagates and
    leaves the remaining groups untouched.
    """
    sink = sink or NullProgress()
    settings = store.get_user_settings(user_id)
    groups = partition_tracks(tracks, playlist_count)
    total = sum(g.track_count for g in groups)
    logger.info("Partitioned %d tracks into %d genre groups", total, len(groups))

    result = OrganizeResult()
    processed = 0
    sink.report(JobStage.CREATING, processed, total)
    for group in groups:
        playlist = materialize_playlist(
            library, user_id, settings, group,
            replace_existing=replace_existing, batch_delay=batch_delay, sleep=sleep,
        )
        record_playlist_genre(store, user_id, playlist.playlist_id, group.genre)
        result.playlists.append(playlist)
        processed += group.track_count
        sink.report(JobStage.CREATING, processed, total)
    return result


class Organizer:
    """Starts each organize job on its own daemon thread and answers status polls.

    Jobs never queue behind one another: a slow pipeline for one user cannot
    delay the start of another user's job.
    """

    def __init__(
        self,
        store: Optional[SettingsCatalog] = None,
        registry: Optional[JobRegistry] = None,
        batch_delay: float = config.SPOTIFY_BATCH_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store if store is not None else SettingsCatalog()
        self.registry = registry if registry is not None else JobRegistry()
        self.batch_delay = batch_delay
        self.sleep = sleep
        self._threads: Dict[str, threading.Thread] = {}
        self._threads_lock = threading.Lock()

    def start_organize(self, library, user_id: Optional[str], playlist_count,
                       replace_existing: bool = False) -> str:
        """Validate the request, register a pending job and launch its pipeline.

        Returns the new job id without waiting for any pipeline work.
        """
        playlist_count = validate_playlist_count(playlist_count)
        user_id = user_id or library.user_id
        job = self.registry.create(user_id=user_id)
        logger.info("organize job %s: queued for user %s (%d playlists, replace=%s)",
                    job.id, user_id, playlist_count, replace_existing)
        thread = threading.Thread(
            target=self._run_pipeline,
            args=(job.id, library, user_id, playlist_count, bool(replace_existing)),
            name=f"organize-{job.id[:8]}",
            daemon=True,
        )
        with self._threads_lock:
            self._threads[job.id] = thread
        thread.start()
        return job.id

    def get_organize_status(self, job_id: str, strict: bool = False) -> Optional[Job]:
        job = self.registry.get(job_id)
        if job is None and strict:
            raise JobNotFoundError(f"Job {job_id} not found")
        return job

    def wait(self, job_id: str, timeout: Optional[float] = None) -> Job:
        """Block until a job's pipeline has finished and return its final snapshot."""
        with self._threads_lock:
            thread = self._threads.get(job_id)
        if thread is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        thread.join(timeout)
        if thread.is_alive():
            raise TimeoutError(f"Job {job_id} still running after {timeout}s")
        return self.registry.get(job_id)

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None) -> None:
        """Join every job thread started so far. Threads are daemons, so this is optional."""
        if not wait:
            return
        with self._threads_lock:
            threads = list(self._threads.values())
        for thread in threads:
            thread.join(timeout)

    # -------------------------
    # Pipeline
    # -------------------------
    def _fail(self, job_id: str, message: str) -> None:
        self.registry.update(job_id, status=JobStatus.FAILED, error=message)

    def _run_pipeline(self, job_id: str, library, user_id: str, playlist_count: int,
                      replace_existing: bool) -> None:
        try:
            self._pipeline(job_id, library, user_id, playlist_count, replace_existing)
        except Exception:
            logger.exception("organize job %s: unexpected pipeline error", job_id)
            job = self.registry.get(job_id)
            if job is not None and job.status == JobStatus.PROCESSING:
                self._fail(job_id, CREATE_FAILED_MESSAGE)

    def _pipeline(self, job_id: str, library, user_id: str, playlist_count: int,
                  replace_existing: bool) -> None:
        sink = JobProgress(self.registry, job_id)
        self.registry.update(job_id, status=JobStatus.PROCESSING, stage=JobStage.FETCHING)

        try:
            with timed_step(f"organize job {job_id}: fetch liked songs", logger):
                tracks = fetch_all_saved_tracks(library, sink=sink)
        except Exception as e:
            logger.error("organize job %s: fetching liked songs failed (%s)", job_id, failure_kind(e), exc_info=True)
            self._fail(job_id, FETCH_FAILED_MESSAGE)
            return

        sink.report(JobStage.ANALYZING, 0, len(tracks))
        try:
            with timed_step(f"organize job {job_id}: analyze genres", logger):
                artist_genres = fetch_all_artist_genres(
                    library, tracks, delay=self.batch_delay, sleep=self.sleep
                )
                tracks = enrich_tracks_with_genres(tracks, artist_genres)
        except Exception as e:
            logger.error("organize job %s: genre analysis failed (%s)", job_id, failure_kind(e), exc_info=True)
            self._fail(job_id, ANALYZE_FAILED_MESSAGE)
            return
        self.registry.update(job_id, genres_discovered=discovered_genres(tracks))
        sink.report(JobStage.ANALYZING, len(tracks), len(tracks))

        try:
            with timed_step(f"organize job {job_id}: create playlists", logger):
                result = organize_tracks(
                    library, self.store, user_id, tracks, playlist_count,
                    replace_existing=replace_existing, sink=sink,
                    batch_delay=self.batch_delay, sleep=self.sleep,
                )
        except Exception as e:
            logger.error("organize job %s: creating playlists failed (%s)", job_id, failure_kind(e), exc_info=True)
            self._fail(job_id, CREATE_FAILED_MESSAGE)
            return

        self.registry.update(job_id, status=JobStatus.COMPLETED, stage=JobStage.DONE, result=result)
        logger.info("organize job %s: completed with %d playlists", job_id, len(result.playlists))
