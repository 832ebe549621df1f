"""
Domain records shared by the organizer, the sync engine and the stores.
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Optional, Tuple

from . import config


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Artist:
    id: str
    name: str = ""
    genres: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Track:
    """A saved track. `genres` is the union of its artists' tags once enriched."""

    id: str
    name: str = ""
    artists: Tuple[Artist, ...] = ()
    genres: Tuple[str, ...] = ()
    added_at: Optional[datetime] = None

    @property
    def uri(self) -> str:
        return f"{config.TRACK_URI_PREFIX}{self.id}"

    @property
    def artist_ids(self) -> Tuple[str, ...]:
        return tuple(a.id for a in self.artists if a.id)


@dataclass(frozen=True)
class PlaylistRef:
    id: str
    name: str = ""
    url: str = ""
    track_count: int = 0
    image_url: Optional[str] = None
    owner_id: Optional[str] = None


@dataclass
class PlaylistAssignment:
    """Persisted link between a Spotify playlist and the parent genre it holds."""

    user_id: str
    playlist_id: str
    genre: str = ""
    last_synced_at: Optional[datetime] = None
    custom_name: Optional[str] = None
    custom_description: Optional[str] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class UserSettings:
    user_id: str
    name_template: str = field(default_factory=lambda: config.DEFAULT_NAME_TEMPLATE)
    description_template: str = field(default_factory=lambda: config.DEFAULT_DESCRIPTION_TEMPLATE)
    is_premium: bool = False

    @classmethod
    def default(cls, user_id: str) -> "UserSettings":
        return cls(user_id=user_id)

    def _render(self, template: str, genre: str) -> str:
        year = utcnow().strftime("%Y")
        return template.replace("{genre}", genre).replace("{year}", year)

    def build_playlist_name(self, genre: str) -> str:
        """Replace {genre} and {year} tokens in the name template."""
        return self._render(self.name_template, genre)

    def build_description(self, genre: str) -> str:
        return self._render(self.description_template, genre)

    def to_dict(self) -> dict:
        return asdict(self)
