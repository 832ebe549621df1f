"""
Settings and playlist-assignment store.

User settings live in a JSON metadata file; playlist assignments are a
pandas table (parquet or csv) keyed by (user_id, playlist_id). Writes are
single-row upserts serialized by one lock; there are no cross-row
transactions.
"""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

import pandas as pd

from . import config
from .models import PlaylistAssignment, UserSettings, utcnow

ASSIGNMENTS_TABLE = "playlist_assignments"
ASSIGNMENT_COLUMNS = [
    "user_id",
    "playlist_id",
    "genre",
    "last_synced_at",
    "custom_name",
    "custom_description",
    "updated_at",
]
_TIMESTAMP_COLUMNS = ("last_synced_at", "updated_at")


def _default_data_dir() -> Path:
    return config.DATA_DIR


@dataclass
class CacheConfig:
    enabled: bool = True
    dir: Path = field(default_factory=_default_data_dir)
    fmt: str = "parquet"  # parquet or csv

    def __post_init__(self):
        # Convert string paths to Path objects
        if isinstance(self.dir, str):
            self.dir = Path(self.dir)


def _empty_assignments() -> pd.DataFrame:
    return pd.DataFrame({c: pd.Series(dtype=object) for c in ASSIGNMENT_COLUMNS})


def _clean(value):
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    return value


def _to_timestamp(value) -> Optional[datetime]:
    value = _clean(value)
    if value is None:
        return None
    ts = pd.Timestamp(value)
    ts = ts.tz_localize("UTC") if ts.tzinfo is None else ts.tz_convert("UTC")
    return ts.to_pydatetime()


def _to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


class SettingsCatalog:
    """Key-value store for user settings and playlist assignments."""

    def __init__(self, cache: Optional[CacheConfig] = None):
        self.cache = cache or CacheConfig()
        if self.cache.enabled:
            self.cache.dir.mkdir(parents=True, exist_ok=True)
        self._memo: Dict[str, pd.DataFrame] = {}
        self._meta: Optional[dict] = None
        self._lock = threading.RLock()

    # -------------------------
    # Storage primitives
    # -------------------------
    def _meta_path(self) -> Path:
        return self.cache.dir / "settings_meta.json"

    def load_meta(self) -> dict:
        if self._meta is not None:
            return self._meta
        meta = {}
        if self.cache.enabled and self._meta_path().exists():
            meta = json.loads(self._meta_path().read_text(encoding="utf-8"))
        self._meta = meta
        return meta

    def save_meta(self, meta: dict) -> None:
        self._meta = meta
        if not self.cache.enabled:
            return
        self._meta_path().write_text(json.dumps(meta, indent=2, sort_keys=True), encoding="utf-8")

    def table_path(self, key: str) -> Path:
        return self.cache.dir / f"{key}.{self.cache.fmt}"

    def load(self, key: str) -> Optional[pd.DataFrame]:
        if key in self._memo:
            return self._memo[key]
        if not self.cache.enabled:
            return None
        p = self.table_path(key)
        if not p.exists():
            return None
        if self.cache.fmt == "parquet":
            df = pd.read_parquet(p)
        else:
            df = pd.read_csv(p, dtype=str)
        self._memo[key] = df
        return df

    def save(self, key: str, df: pd.DataFrame) -> pd.DataFrame:
        self._memo[key] = df
        if not self.cache.enabled:
            return df
        p = self.table_path(key)
        if self.cache.fmt == "parquet":
            df.to_parquet(p, index=False)
        else:
            df.to_csv(p, index=False)
        return df

    # -------------------------
    # User settings
    # -------------------------
    def get_user_settings(self, user_id: str) -> UserSettings:
        """Stored settings for a user, or defaults when none are stored."""
        with self._lock:
            stored = (self.load_meta().get("user_settings") or {}).get(user_id)
        if not stored:
            return UserSettings.default(user_id)
        return UserSettings(
            user_id=user_id,
            name_template=stored.get("name_template") or config.DEFAULT_NAME_TEMPLATE,
            description_template=stored.get("description_template", config.DEFAULT_DESCRIPTION_TEMPLATE),
            is_premium=bool(stored.get("is_premium", False)),
        )

    def save_user_settings(self, settings: UserSettings) -> UserSettings:
        with self._lock:
            meta = dict(self.load_meta())
            all_settings = dict(meta.get("user_settings") or {})
            record = settings.to_dict()
            record["updated_at"] = utcnow().isoformat()
            all_settings[settings.user_id] = record
            meta["user_settings"] = all_settings
            self.save_meta(meta)
        return settings

    # -------------------------
    # Playlist assignments
    # -------------------------
    def _assignments(self) -> pd.DataFrame:
        df = self.load(ASSIGNMENTS_TABLE)
        if df is None:
            return _empty_assignments()
        return df

    @staticmethod
    def _to_assignment(row) -> PlaylistAssignment:
        return PlaylistAssignment(
            user_id=str(row["user_id"]),
            playlist_id=str(row["playlist_id"]),
            genre=_clean(row["genre"]) or "",
            last_synced_at=_to_timestamp(row["last_synced_at"]),
            custom_name=_clean(row["custom_name"]),
            custom_description=_clean(row["custom_description"]),
            updated_at=_to_timestamp(row["updated_at"]),
        )

    @staticmethod
    def _to_row(assignment: PlaylistAssignment) -> dict:
        row = assignment.to_dict()
        for col in _TIMESTAMP_COLUMNS:
            row[col] = _to_iso(row[col])
        return {c: row.get(c) for c in ASSIGNMENT_COLUMNS}

    def get_playlist_assignments(self, user_id: str) -> Dict[str, PlaylistAssignment]:
        """All assignments for a user keyed by playlist id, in insertion order."""
        with self._lock:
            df = self._assignments()
            rows = df[df["user_id"] == user_id]
            return {
                str(row["playlist_id"]): self._to_assignment(row)
                for _, row in rows.iterrows()
            }

    def get_playlist_assignment(self, user_id: str, playlist_id: str) -> Optional[PlaylistAssignment]:
        return self.get_playlist_assignments(user_id).get(playlist_id)

    def upsert_playlist_assignment(self, assignment: PlaylistAssignment) -> PlaylistAssignment:
        """Insert or replace the row for (user_id, playlist_id)."""
        assignment.updated_at = utcnow()
        row = self._to_row(assignment)
        with self._lock:
            df = self._assignments().copy()
            mask = (df["user_id"] == assignment.user_id) & (df["playlist_id"] == assignment.playlist_id)
            if mask.any():
                idx = df.index[mask][0]
                for col, value in row.items():
                    df.at[idx, col] = value
            elif df.empty:
                df = pd.DataFrame([row], columns=ASSIGNMENT_COLUMNS, dtype=object)
            else:
                df = pd.concat([df, pd.DataFrame([row], columns=ASSIGNMENT_COLUMNS, dtype=object)],
                               ignore_index=True)
            self.save(ASSIGNMENTS_TABLE, df)
        return assignment

    def delete_playlist_assignment(self, user_id: str, playlist_id: str) -> bool:
        """Drop the row for (user_id, playlist_id). Returns False if there was none."""
        with self._lock:
            df = self._assignments()
            mask = (df["user_id"] == user_id) & (df["playlist_id"] == playlist_id)
            if not mask.any():
                return False
            self.save(ASSIGNMENTS_TABLE, df.loc[~mask].reset_index(drop=True))
        return True

    def get_oldest_sync_timestamp(self, user_id: str) -> Optional[datetime]:
        """Earliest last_synced_at across the user's assignments (None if never synced)."""
        with self._lock:
            df = self._assignments()
            synced = pd.to_datetime(df.loc[df["user_id"] == user_id, "last_synced_at"],
                                    utc=True, errors="coerce", format="ISO8601").dropna()
        if synced.empty:
            return None
        return synced.min().to_pydatetime()
