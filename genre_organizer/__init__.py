"""
Genre Organizer - sort Spotify Liked Songs into parent-genre playlists.

Usage:
    from genre_organizer import Organizer, SpotifyLibrary

    library = SpotifyLibrary.from_env()
    organizer = Organizer()
    job_id = organizer.start_organize(library, library.user_id, playlist_count=10)
    job = organizer.wait(job_id)
"""

from .catalog import CacheConfig, SettingsCatalog
from .client import SpotifyLibrary
from .errors import (
    InvalidTransitionError,
    JobNotFoundError,
    OrganizerError,
    UpstreamError,
    ValidationError,
)
from .genres import (
    GENRE_PRIORITY,
    OTHER,
    PARENT_GENRES,
    consolidate_genre,
    consolidate_genres,
    get_parent_genres,
    score_genres,
)
from .jobs import Job, JobRegistry, JobStage, JobStatus, ProgressSink
from .models import Artist, PlaylistAssignment, PlaylistRef, Track, UserSettings
from .organizer import OrganizeResult, Organizer, PlaylistResult
from .partition import GenreGroup, partition_tracks
from .sync import SyncResult, SyncStatus, get_sync_status, refresh_playlist, sync_all

__version__ = "0.1.0"

__all__ = [
    # Orchestration
    "Organizer",
    "OrganizeResult",
    "PlaylistResult",
    "Job",
    "JobRegistry",
    "JobStage",
    "JobStatus",
    "ProgressSink",
    # Classification
    "OTHER",
    "PARENT_GENRES",
    "GENRE_PRIORITY",
    "consolidate_genre",
    "consolidate_genres",
    "get_parent_genres",
    "score_genres",
    "GenreGroup",
    "partition_tracks",
    # Sync
    "SyncResult",
    "SyncStatus",
    "get_sync_status",
    "refresh_playlist",
    "sync_all",
    # Collaborators
    "SpotifyLibrary",
    "SettingsCatalog",
    "CacheConfig",
    # Records
    "Artist",
    "Track",
    "PlaylistRef",
    "PlaylistAssignment",
    "UserSettings",
    # Errors
    "OrganizerError",
    "ValidationError",
    "UpstreamError",
    "JobNotFoundError",
    "InvalidTransitionError",
]
