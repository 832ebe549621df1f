"""
Managed playlist helpers: recognise organizer playlists among everything a
user owns, and apply name/description overrides.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

from . import config
from .catalog import SettingsCatalog
from .genres import PARENT_GENRES
from .logger import get_logger
from .models import PlaylistAssignment, PlaylistRef, UserSettings

logger = get_logger(__name__)

UNKNOWN_GENRE = "Unknown"
DEFAULT_NAME_MARKER = "by Organizer"


@dataclass
class ManagedPlaylist:
    playlist_id: str
    name: str
    genre: str
    track_count: int = 0
    url: str = ""
    image_url: Optional[str] = None
    custom_name: Optional[str] = None
    custom_description: Optional[str] = None
    last_synced_at: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "spotify_id": self.playlist_id,
            "name": self.name,
            "genre": self.genre,
            "song_count": self.track_count,
            "spotify_url": self.url,
            "image_url": self.image_url,
            "custom_name": self.custom_name,
            "custom_description": self.custom_description,
            "last_synced": self.last_synced_at,
        }


def _starts_with_genre(name: str, genre: str) -> bool:
    return name == genre or name.startswith(genre + " ")


def is_organizer_playlist(name: str, name_template: str = config.DEFAULT_NAME_TEMPLATE) -> bool:
    """Whether a playlist name looks like one the organizer created."""
    if DEFAULT_NAME_MARKER in name or "organizer" in name.lower():
        return True
    template_base = name_template.replace("{genre}", "").strip()
    if template_base and template_base in name:
        return True
    return any(_starts_with_genre(name, genre) for genre in PARENT_GENRES)


def extract_genre_from_name(name: str, name_template: str = config.DEFAULT_NAME_TEMPLATE) -> str:
    """Parent genre encoded in a playlist name, or "Unknown"."""
    idx = name.find(f" {DEFAULT_NAME_MARKER}")
    if idx > 0:
        return name[:idx]

    # Custom template: strip the literal text around {genre}
    if "{genre}" in name_template:
        prefix, _, suffix = name_template.partition("{genre}")
        if (prefix or suffix) and name.startswith(prefix) and name.endswith(suffix):
            candidate = name[len(prefix):len(name) - len(suffix)].strip()
            if candidate in PARENT_GENRES:
                return candidate

    lowered = name.lower()
    for genre in PARENT_GENRES:
        if _starts_with_genre(name, genre) or lowered.startswith(genre.lower()):
            return genre
    return UNKNOWN_GENRE


def list_managed_playlists(
    playlists: List[PlaylistRef],
    settings: UserSettings,
    assignments: Optional[Dict[str, PlaylistAssignment]] = None,
) -> List[ManagedPlaylist]:
    """Filter a user's playlists down to organizer playlists.

    The stored assignment wins for genre, overrides and last sync time; the
    name is only parsed for playlists the store does not know about.
    """
    assignments = assignments or {}
    managed = []
    for playlist in playlists:
        assignment = assignments.get(playlist.id)
        if assignment is None and not is_organizer_playlist(playlist.name, settings.name_template):
            continue
        genre = (assignment.genre if assignment else "") or extract_genre_from_name(
            playlist.name, settings.name_template
        )
        synced = assignment.last_synced_at if assignment else None
        managed.append(ManagedPlaylist(
            playlist_id=playlist.id,
            name=playlist.name,
            genre=genre,
            track_count=playlist.track_count,
            url=playlist.url,
            image_url=playlist.image_url,
            custom_name=assignment.custom_name if assignment else None,
            custom_description=assignment.custom_description if assignment else None,
            last_synced_at=synced.isoformat() if synced else None,
        ))
    logger.debug("%d of %d playlists are organizer playlists", len(managed), len(playlists))
    return managed


def fetch_managed_playlists(library, store: SettingsCatalog, user_id: str) -> List[ManagedPlaylist]:
    return list_managed_playlists(
        library.list_owned_playlists(user_id),
        store.get_user_settings(user_id),
        store.get_playlist_assignments(user_id),
    )


def update_playlist_details(
    library,
    store: SettingsCatalog,
    user_id: str,
    playlist_id: str,
    custom_name: Optional[str] = None,
    custom_description: Optional[str] = None,
) -> PlaylistAssignment:
    """Rename and/or redescribe a playlist and record the override.

    Free-tier users get the site footer appended to the description sent to
    Spotify; the stored override keeps the text as entered. Blank values
    leave both Spotify and the stored override unchanged.
    """
    name = custom_name or None
    raw_description = custom_description or None
    description = raw_description
    if description is not None and not store.get_user_settings(user_id).is_premium:
        description += config.FREE_TIER_FOOTER

    if name or description:
        library.update_playlist_details(playlist_id, name=name, description=description)

    assignment = store.get_playlist_assignment(user_id, playlist_id) or PlaylistAssignment(
        user_id=user_id, playlist_id=playlist_id
    )
    if name is not None:
        assignment.custom_name = name
    if raw_description is not None:
        assignment.custom_description = raw_description
    return store.upsert_playlist_assignment(assignment)


def delete_playlist(library, store: SettingsCatalog, user_id: str, playlist_id: str) -> bool:
    """Unfollow a playlist on Spotify, then forget its stored assignment.

    The assignment is only removed once Spotify has accepted the unfollow.
    Returns whether a stored assignment existed.
    """
    library.unfollow_playlist(playlist_id)
    removed = store.delete_playlist_assignment(user_id, playlist_id)
    logger.info("Deleted playlist %s for %s (assignment removed: %s)", playlist_id, user_id, removed)
    return removed
