"""
Configuration module for the genre organizer.

All environment variables and configuration constants are defined here.
"""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


def parse_int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def parse_float_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def parse_str_env(name: str, default: str) -> str:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw


def get_env_or_none(name: str) -> Optional[str]:
    value = os.environ.get(name)
    return value if value else None


# Markers that identify the project root
_PROJECT_MARKERS = ("pyproject.toml", ".git")


def get_project_root(current_file: str = None) -> Path:
    """
    Get the project root directory (the directory containing pyproject.toml).

    Walks up from the calling file looking for a marker; falls back to cwd.
    """
    path = Path(current_file).resolve().parent if current_file else Path.cwd()
    for _ in range(8):
        for marker in _PROJECT_MARKERS:
            if (path / marker).exists():
                return path
        if path == path.parent:
            break
        path = path.parent
    return Path.cwd().resolve()


def get_data_dir(current_file: str = None) -> Path:
    """Data directory: GENRE_ORGANIZER_DATA_DIR if set, else <project root>/data."""
    env_path = get_env_or_none("GENRE_ORGANIZER_DATA_DIR")
    if env_path:
        return Path(env_path).resolve()
    return (get_project_root(current_file) / "data").resolve()


PROJECT_ROOT = get_project_root(__file__)

# Load .env file early so environment variables are available
env_path = PROJECT_ROOT / ".env"
if env_path.exists():
    load_dotenv(env_path)

DATA_DIR = get_data_dir(__file__)
LOG_LEVEL = parse_str_env("LOG_LEVEL", "INFO")

# ============================================================================
# ORGANIZE REQUEST LIMITS
# ============================================================================
MIN_PLAYLIST_COUNT = parse_int_env("MIN_PLAYLIST_COUNT", 1)
MAX_PLAYLIST_COUNT = parse_int_env("MAX_PLAYLIST_COUNT", 50)

# ============================================================================
# API AND RATE LIMITING CONSTANTS
# ============================================================================

# Spotify API limits
SPOTIFY_TRACK_PAGE_SIZE = parse_int_env("SPOTIFY_TRACK_PAGE_SIZE", 50)
SPOTIFY_ARTIST_BATCH_SIZE = parse_int_env("SPOTIFY_ARTIST_BATCH_SIZE", 50)
SPOTIFY_ADD_TRACKS_BATCH_SIZE = parse_int_env("SPOTIFY_ADD_TRACKS_BATCH_SIZE", 100)
SPOTIFY_PLAYLIST_PAGE_SIZE = 50

# Pacing between batched calls (seconds)
SPOTIFY_BATCH_DELAY = parse_float_env("SPOTIFY_BATCH_DELAY", 0.1)
# Per-request timeout handed to spotipy (seconds)
SPOTIFY_REQUEST_TIMEOUT = parse_int_env("SPOTIFY_REQUEST_TIMEOUT", 30)

SPOTIFY_SCOPES = (
    "user-library-read playlist-modify-public playlist-modify-private "
    "user-read-email user-read-private"
)
TRACK_URI_PREFIX = "spotify:track:"

# ============================================================================
# SYNC
# ============================================================================
# Absorbs clock/precision skew between added_at and last_synced_at
SYNC_BUFFER_SECONDS = parse_int_env("SYNC_BUFFER_SECONDS", 60)

# Library count cache TTL for the request layer (seconds)
LIBRARY_COUNT_CACHE_TTL = parse_int_env("LIBRARY_COUNT_CACHE_TTL", 300)

# ============================================================================
# PLAYLIST NAME TEMPLATES
# ============================================================================
DEFAULT_NAME_TEMPLATE = parse_str_env("DEFAULT_NAME_TEMPLATE", "{genre} by Organizer")
DEFAULT_DESCRIPTION_TEMPLATE = parse_str_env(
    "DEFAULT_DESCRIPTION_TEMPLATE",
    "Organized by Spotify Genre Organizer"
)
FREE_TIER_FOOTER = " • spotifygenreorganizer.com"
