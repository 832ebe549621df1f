"""Shared fixtures: an in-memory Spotify library and an in-memory settings store."""

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from genre_organizer.catalog import CacheConfig, SettingsCatalog
from genre_organizer.client import LibraryPage
from genre_organizer.models import Artist, PlaylistRef, Track
from genre_organizer.organizer import Organizer


def make_track(track_id: str, *artist_ids: str, added_at: Optional[datetime] = None) -> Track:
    return Track(
        id=track_id,
        name=f"Song {track_id}",
        artists=tuple(Artist(id=a, name=f"Artist {a}") for a in artist_ids),
        added_at=added_at,
    )


def days_ago(n: float) -> datetime:
    return datetime.now(timezone.utc) - timedelta(days=n)


class FakeLibrary:
    """Implements the SpotifyLibrary surface the core uses, in memory."""

    def __init__(self, saved=None, artist_genres=None, user_id="user1", page_size=2):
        self.saved: List[Track] = list(saved or [])
        self.artist_genres: Dict[str, List[str]] = dict(artist_genres or {})
        self.page_size = page_size
        self._user_id = user_id
        self.playlists: Dict[str, PlaylistRef] = {}
        self.contents: Dict[str, List[str]] = {}
        self.details: Dict[str, dict] = {}
        self.calls: List[tuple] = []
        self.fail_on: Dict[str, Exception] = {}
        self.failing_playlists = set()
        self.page_requests = 0
        self.artist_batches: List[List[str]] = []

    @property
    def user_id(self) -> str:
        return self._user_id

    def _call(self, method: str, *args):
        self.calls.append((method,) + args)
        if method in self.fail_on:
            raise self.fail_on[method]

    def calls_to(self, method: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == method]

    # Library
    def fetch_saved_tracks_page(self, offset=0, limit=50):
        self._call("fetch_saved_tracks_page", offset)
        self.page_requests += 1
        limit = min(limit, self.page_size)
        items = self.saved[offset:offset + limit]
        end = offset + len(items)
        next_offset = end if end < len(self.saved) else None
        return LibraryPage(tracks=items, total=len(self.saved), next_offset=next_offset)

    def saved_tracks_count(self):
        self._call("saved_tracks_count")
        return len(self.saved)

    def fetch_artist_genres(self, artist_ids):
        self._call("fetch_artist_genres", tuple(artist_ids))
        assert len(artist_ids) <= 50
        self.artist_batches.append(list(artist_ids))
        return {a: list(self.artist_genres.get(a, [])) for a in artist_ids}

    # Playlists
    def add_playlist(self, playlist_id: str, name: str, track_ids=()):
        self.playlists[playlist_id] = PlaylistRef(
            id=playlist_id, name=name, url=f"https://open.spotify.com/playlist/{playlist_id}",
            owner_id=self._user_id,
        )
        self.contents[playlist_id] = list(track_ids)
        return self.playlists[playlist_id]

    def list_owned_playlists(self, owner_id=None):
        self._call("list_owned_playlists", owner_id)
        return [
            PlaylistRef(id=p.id, name=p.name, url=p.url, owner_id=p.owner_id,
                        track_count=len(self.contents.get(p.id, [])))
            for p in self.playlists.values()
        ]

    def find_playlist_by_name(self, name):
        self._call("find_playlist_by_name", name)
        return next((p for p in self.playlists.values() if p.name == name), None)

    def create_playlist(self, owner_id, name, description):
        self._call("create_playlist", owner_id, name, description)
        playlist_id = f"pl{len(self.playlists) + 1}"
        ref = self.add_playlist(playlist_id, name)
        self.details[playlist_id] = {"name": name, "description": description}
        return ref

    def clear_playlist(self, playlist_id):
        self._call("clear_playlist", playlist_id)
        if playlist_id in self.failing_playlists:
            raise RuntimeError(f"cannot modify {playlist_id}")
        self.contents[playlist_id] = []

    def add_tracks(self, playlist_id, track_ids):
        self._call("add_tracks", playlist_id, tuple(track_ids))
        assert len(track_ids) <= 100
        if playlist_id in self.failing_playlists:
            raise RuntimeError(f"cannot modify {playlist_id}")
        self.contents.setdefault(playlist_id, []).extend(track_ids)

    def update_playlist_details(self, playlist_id, name=None, description=None):
        self._call("update_playlist_details", playlist_id, name, description)
        self.details[playlist_id] = {"name": name, "description": description}

    def unfollow_playlist(self, playlist_id):
        self._call("unfollow_playlist", playlist_id)
        if playlist_id in self.failing_playlists:
            raise RuntimeError(f"cannot modify {playlist_id}")
        self.playlists.pop(playlist_id, None)
        self.contents.pop(playlist_id, None)


@pytest.fixture
def store():
    return SettingsCatalog(CacheConfig(enabled=False))


@pytest.fixture
def scenario_library():
    """A:[rock], B:[rock, pop], C:[] - the classic three-track library."""
    return FakeLibrary(
        saved=[
            make_track("A", "a1", added_at=days_ago(3)),
            make_track("B", "a1", "a2", added_at=days_ago(2)),
            make_track("C", "a3", added_at=days_ago(1)),
        ],
        artist_genres={"a1": ["rock"], "a2": ["pop"], "a3": []},
    )


@pytest.fixture
def organizer(store):
    org = Organizer(store=store, batch_delay=0, sleep=lambda s: None)
    yield org
    org.shutdown(wait=True)
