"""
Genre Organizer CLI - organize Liked Songs into genre playlists from the terminal.
"""

from __future__ import annotations

import argparse

from . import config
from .catalog import SettingsCatalog
from .client import SpotifyLibrary
from .errors import OrganizerError
from .genres import get_parent_genres, score_genres, vote_breakdown
from .library import discovered_genres, enrich_tracks_with_genres, fetch_all_artist_genres, fetch_all_saved_tracks
from .logger import setup_logging
from .organizer import organize_tracks, validate_playlist_count
from .partition import partition_tracks
from .playlists import fetch_managed_playlists
from .sync import get_sync_status, refresh_playlist, sync_all


def _fetch_library(library):
    tracks = fetch_all_saved_tracks(library, show_progress=True)
    return enrich_tracks_with_genres(tracks, fetch_all_artist_genres(library, tracks))


def _organize(library, store, args) -> None:
    count = validate_playlist_count(args.count)
    tracks = _fetch_library(library)
    print(f"🎵 {len(tracks):,} liked songs, {len(discovered_genres(tracks)):,} distinct genre tags")

    if args.dry_run:
        for group in partition_tracks(tracks, count):
            print(f"   • {group.genre}: {group.track_count:,} songs")
        return

    result = organize_tracks(library, store, library.user_id, tracks, count,
                             replace_existing=args.replace)
    for p in result.playlists:
        print(f"   • {p.name}: {p.track_count:,} songs  {p.url}")
    print(f"✅ Organized {result.total_tracks:,} songs into {len(result.playlists)} playlists")


def main():
    ap = argparse.ArgumentParser(
        prog="genre-organizer",
        description="Sort your Spotify Liked Songs into parent-genre playlists.",
    )
    ap.add_argument("--log-level", default=config.LOG_LEVEL, help="Logging level (default: INFO)")
    sub = ap.add_subparsers(dest="cmd", required=True)

    # Organize command
    ap_org = sub.add_parser("organize", help="Create one playlist per top genre.")
    ap_org.add_argument("--count", type=int, default=10,
                        help=f"Number of playlists ({config.MIN_PLAYLIST_COUNT}-{config.MAX_PLAYLIST_COUNT}, default: 10)")
    ap_org.add_argument("--replace", action="store_true",
                        help="Reuse playlists with the same name instead of creating new ones.")
    ap_org.add_argument("--dry-run", action="store_true", help="Only show the genre split.")

    # Sync commands
    sub.add_parser("sync-status", help="Count liked songs added since the last sync.")
    sub.add_parser("sync", help="Resync every organizer playlist with the current library.")
    ap_refresh = sub.add_parser("refresh", help="Resync a single playlist.")
    ap_refresh.add_argument("playlist_id")

    # Playlists command
    sub.add_parser("playlists", help="List organizer playlists.")

    # Classify command (offline)
    ap_cls = sub.add_parser("classify", help="Show how genre tags are scored.")
    ap_cls.add_argument("tags", nargs="*", help="Micro-genre tags, e.g. 'indie rock' 'dub'")

    # Serve command
    ap_serve = sub.add_parser("serve", help="Run the HTTP API.")
    ap_serve.add_argument("--host", default=None)
    ap_serve.add_argument("--port", type=int, default=None)

    args = ap.parse_args()
    setup_logging(log_level=args.log_level)

    if args.cmd == "classify":
        if not args.tags:
            print("Parent genres: " + ", ".join(get_parent_genres()))
            return
        for genre, votes in (vote_breakdown(args.tags) or {}).items():
            print(f"   • {genre}: {votes}")
        print(f"➡️  {score_genres(args.tags)}")
        return

    if args.cmd == "serve":
        from .server import SERVER_HOST, SERVER_PORT, main as serve

        serve(host=args.host or SERVER_HOST, port=args.port or SERVER_PORT)
        return

    library = SpotifyLibrary.from_env()
    store = SettingsCatalog()

    try:
        if args.cmd == "organize":
            _organize(library, store, args)
            return

        if args.cmd == "sync-status":
            status = get_sync_status(library, store, library.user_id)
            if status.oldest_sync_at is None:
                print("No organizer playlists have been synced yet.")
                return
            print(f"🆕 {status.new_track_count:,} new songs since {status.oldest_sync_at:%Y-%m-%d %H:%M}")
            for p in status.playlists:
                print(f"   • {p.genre}: +{p.new_count:,}")
            return

        if args.cmd == "sync":
            result = sync_all(library, store, library.user_id)
            print(f"✅ Updated {result.playlists_updated} playlists ({result.total_tracks:,} songs)")
            if result.failed_playlist_genres:
                print("⚠️  Failed: " + ", ".join(result.failed_playlist_genres))
            return

        if args.cmd == "refresh":
            count = refresh_playlist(library, store, library.user_id, args.playlist_id)
            print(f"✅ Playlist now holds {count:,} songs")
            return

        if args.cmd == "playlists":
            managed = fetch_managed_playlists(library, store, library.user_id)
            for p in managed:
                print(f"   • {p.name} [{p.genre}] {p.track_count:,} songs")
            print(f"📋 {len(managed)} organizer playlists")
            return
    except OrganizerError as e:
        raise SystemExit(f"Error: {e}")


if __name__ == "__main__":
    main()
