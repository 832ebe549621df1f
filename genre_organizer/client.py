"""
Spotify catalog client - the saved-tracks, artist and playlist calls the
organizer needs, on top of spotipy.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

import requests
import spotipy
from spotipy.exceptions import SpotifyException
from spotipy.oauth2 import SpotifyOAuth

from . import config
from .logger import get_logger
from .models import Artist, PlaylistRef, Track
from .ratelimit import RateLimitError, rate_limited_call

logger = get_logger(__name__)


@dataclass
class LibraryPage:
    tracks: List[Track] = field(default_factory=list)
    total: int = 0
    next_offset: Optional[int] = None


def parse_added_at(value) -> Optional[datetime]:
    """Parse Spotify's ISO-8601 `added_at` into an aware UTC datetime."""
    if not value:
        return None
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        logger.debug("Unparseable added_at %r", value)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_saved_track(item: dict) -> Optional[Track]:
    """Build a Track from one item of /me/tracks (None for local/unavailable tracks)."""
    t = item.get("track") or {}
    tid = t.get("id")
    if not tid:
        return None
    artists = tuple(
        Artist(id=a.get("id"), name=a.get("name") or "")
        for a in t.get("artists", [])
        if a and a.get("id")
    )
    return Track(
        id=tid,
        name=t.get("name") or "",
        artists=artists,
        added_at=parse_added_at(item.get("added_at")),
    )


def parse_saved_tracks_page(resp: dict, offset: int = 0) -> LibraryPage:
    items = resp.get("items") or []
    tracks = [t for t in (parse_saved_track(it) for it in items) if t is not None]
    next_offset = None
    if resp.get("next") and items:
        next_offset = offset + len(items)
    return LibraryPage(tracks=tracks, total=resp.get("total") or 0, next_offset=next_offset)


def parse_playlist(p: dict) -> PlaylistRef:
    images = p.get("images") or []
    return PlaylistRef(
        id=p["id"],
        name=p.get("name") or "",
        url=(p.get("external_urls") or {}).get("spotify", ""),
        track_count=(p.get("tracks") or {}).get("total") or 0,
        image_url=images[0].get("url") if images else None,
        owner_id=(p.get("owner") or {}).get("id"),
    )


def failure_kind(error: BaseException) -> str:
    """Short label for a collaborator failure, used in log lines."""
    if isinstance(error, (requests.exceptions.ConnectionError, requests.exceptions.Timeout)):
        return "network"
    if isinstance(error, RateLimitError):
        return "rate limit"
    if isinstance(error, SpotifyException):
        return f"spotify {error.http_status}"
    return type(error).__name__


class SpotifyLibrary:
    """One user's view of the Spotify Web API."""

    def __init__(self, sp: spotipy.Spotify, user_id: Optional[str] = None):
        self.sp = sp
        self._user_id = user_id

    # -------------------------
    # Constructors
    # -------------------------
    @classmethod
    def from_token(cls, access_token: str, user_id: Optional[str] = None) -> "SpotifyLibrary":
        sp = spotipy.Spotify(
            auth=access_token,
            requests_session=requests.Session(),
            requests_timeout=config.SPOTIFY_REQUEST_TIMEOUT,
            retries=0,
            status_retries=0,
        )
        return cls(sp, user_id=user_id)

    @classmethod
    def from_env(cls, scope: str = config.SPOTIFY_SCOPES) -> "SpotifyLibrary":
        cid = config.get_env_or_none("SPOTIPY_CLIENT_ID")
        secret = config.get_env_or_none("SPOTIPY_CLIENT_SECRET")
        redir = config.parse_str_env("SPOTIPY_REDIRECT_URI", "http://127.0.0.1:8888/callback")
        if not (cid and secret):
            raise RuntimeError("Set SPOTIPY_CLIENT_ID and SPOTIPY_CLIENT_SECRET")
        config.DATA_DIR.mkdir(parents=True, exist_ok=True)
        auth = SpotifyOAuth(
            client_id=cid,
            client_secret=secret,
            redirect_uri=redir,
            scope=scope,
            cache_path=str(config.DATA_DIR / ".cache"),
        )
        sp = spotipy.Spotify(
            auth_manager=auth,
            requests_session=requests.Session(),
            requests_timeout=config.SPOTIFY_REQUEST_TIMEOUT,
            retries=0,
            status_retries=0,
        )
        return cls(sp)

    # -------------------------
    # User
    # -------------------------
    @property
    def user_id(self) -> str:
        if self._user_id is None:
            self._user_id = rate_limited_call(self.sp.current_user)["id"]
        return self._user_id

    # -------------------------
    # Library
    # -------------------------
    def fetch_saved_tracks_page(self, offset: int = 0,
                                limit: int = config.SPOTIFY_TRACK_PAGE_SIZE) -> LibraryPage:
        resp = rate_limited_call(self.sp.current_user_saved_tracks, limit=limit, offset=offset)
        return parse_saved_tracks_page(resp, offset=offset)

    def saved_tracks_count(self) -> int:
        resp = rate_limited_call(self.sp.current_user_saved_tracks, limit=1, offset=0)
        return resp.get("total") or 0

    def fetch_artist_genres(self, artist_ids: List[str]) -> Dict[str, List[str]]:
        """Genre tags for up to SPOTIFY_ARTIST_BATCH_SIZE artists."""
        if not artist_ids:
            return {}
        if len(artist_ids) > config.SPOTIFY_ARTIST_BATCH_SIZE:
            raise ValueError(f"At most {config.SPOTIFY_ARTIST_BATCH_SIZE} artists per request")
        resp = rate_limited_call(self.sp.artists, artist_ids)
        return {
            a["id"]: list(a.get("genres") or [])
            for a in resp.get("artists", [])
            if a and a.get("id")
        }

    # -------------------------
    # Playlists
    # -------------------------
    def list_owned_playlists(self, owner_id: Optional[str] = None) -> List[PlaylistRef]:
        playlists = []
        offset = 0
        limit = config.SPOTIFY_PLAYLIST_PAGE_SIZE
        while True:
            resp = rate_limited_call(self.sp.current_user_playlists, limit=limit, offset=offset)
            items = resp.get("items") or []
            playlists.extend(parse_playlist(p) for p in items if p and p.get("id"))
            if not resp.get("next") or len(items) < limit:
                break
            offset += limit
        if owner_id is not None:
            playlists = [p for p in playlists if p.owner_id in (None, owner_id)]
        return playlists

    def find_playlist_by_name(self, name: str) -> Optional[PlaylistRef]:
        """First owned playlist whose name equals `name` exactly."""
        for playlist in self.list_owned_playlists(self._user_id):
            if playlist.name == name:
                return playlist
        return None

    def create_playlist(self, owner_id: str, name: str, description: str) -> PlaylistRef:
        resp = rate_limited_call(
            self.sp.user_playlist_create,
            owner_id,
            name,
            public=False,
            description=description,
        )
        return parse_playlist(resp)

    def clear_playlist(self, playlist_id: str) -> None:
        rate_limited_call(self.sp.playlist_replace_items, playlist_id, [])

    def add_tracks(self, playlist_id: str, track_ids: Iterable[str]) -> None:
        """Add one batch (at most SPOTIFY_ADD_TRACKS_BATCH_SIZE) of tracks."""
        uris = [_to_uri(tid) for tid in track_ids]
        if not uris:
            return
        if len(uris) > config.SPOTIFY_ADD_TRACKS_BATCH_SIZE:
            raise ValueError(f"At most {config.SPOTIFY_ADD_TRACKS_BATCH_SIZE} tracks per request")
        rate_limited_call(self.sp.playlist_add_items, playlist_id, uris)

    def update_playlist_details(self, playlist_id: str, name: Optional[str] = None,
                                description: Optional[str] = None) -> None:
        rate_limited_call(
            self.sp.playlist_change_details,
            playlist_id,
            name=name or None,
            description=description or None,
        )

    def unfollow_playlist(self, playlist_id: str) -> None:
        """Remove a playlist from the user's library (Spotify has no hard delete)."""
        rate_limited_call(self.sp.current_user_unfollow_playlist, playlist_id)


def _to_uri(track_id: str) -> str:
    track_id = str(track_id)
    if track_id.startswith(config.TRACK_URI_PREFIX):
        return track_id
    return f"{config.TRACK_URI_PREFIX}{track_id}"
