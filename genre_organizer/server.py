"""
HTTP request layer over the organizer core.

Usage:
    genre-organizer serve            # or
    python -m genre_organizer.server

Credentials come from the `access_token` / `user_id` cookies set by the
login flow (an `Authorization: Bearer` header also works for the token).
The OAuth flow itself lives outside this service.
"""

import threading
from datetime import timedelta
from typing import Callable, Dict, Optional, Tuple

from flask import Flask, jsonify, request
from flask_cors import CORS

from . import config
from .catalog import SettingsCatalog
from .client import SpotifyLibrary
from .errors import UpstreamError, ValidationError
from .logger import get_logger
from .models import utcnow
from .organizer import Organizer
from .playlists import delete_playlist, fetch_managed_playlists, update_playlist_details
from .sync import get_sync_status, refresh_playlist, sync_all

logger = get_logger(__name__)

SERVER_HOST = config.parse_str_env("GENRE_ORGANIZER_HOST", "0.0.0.0")
SERVER_PORT = config.parse_int_env("GENRE_ORGANIZER_PORT", 8080)


class NotAuthenticated(Exception):
    pass


def _credentials(require_token: bool = True) -> Tuple[Optional[str], str]:
    token = request.cookies.get("access_token")
    header = request.headers.get("Authorization", "")
    if not token and header.startswith("Bearer "):
        token = header[len("Bearer "):].strip()
    user_id = request.cookies.get("user_id") or request.headers.get("X-User-Id")
    if not user_id or (require_token and not token):
        raise NotAuthenticated()
    return token, user_id


def create_app(
    organizer: Optional[Organizer] = None,
    store: Optional[SettingsCatalog] = None,
    library_factory: Callable[[str, str], object] = SpotifyLibrary.from_token,
) -> Flask:
    """Build the Flask app around one organizer and one settings store."""
    if store is None:
        store = organizer.store if organizer is not None else SettingsCatalog()
    if organizer is None:
        organizer = Organizer(store=store)

    app = Flask(__name__)
    CORS(app, supports_credentials=True)
    app.config["ORGANIZER"] = organizer
    app.config["STORE"] = store

    count_cache: Dict[str, dict] = {}
    count_cache_lock = threading.Lock()
    count_cache_ttl = timedelta(seconds=config.LIBRARY_COUNT_CACHE_TTL)

    def _library() -> Tuple[object, str]:
        token, user_id = _credentials()
        return library_factory(token, user_id), user_id

    @app.errorhandler(NotAuthenticated)
    def not_authenticated(_e):
        return jsonify({"error": "not authenticated"}), 401

    @app.errorhandler(ValidationError)
    def bad_request(e):
        return jsonify({"error": str(e)}), 400

    @app.errorhandler(UpstreamError)
    def upstream_failed(e):
        return jsonify({"error": str(e)}), 502

    @app.route("/health", methods=["GET"])
    def health():
        """Health check endpoint."""
        return jsonify({"status": "ok"})

    # -------------------------
    # Organize jobs
    # -------------------------
    @app.route("/api/organize", methods=["POST"])
    def start_organize():
        library, user_id = _library()
        data = request.get_json(silent=True) or {}
        job_id = organizer.start_organize(
            library,
            user_id,
            data.get("playlist_count"),
            replace_existing=bool(data.get("replace_existing", False)),
        )
        return jsonify({"job_id": job_id, "status": "pending"}), 202

    @app.route("/api/organize/<job_id>", methods=["GET"])
    def organize_status(job_id):
        job = organizer.get_organize_status(job_id)
        if job is None:
            return jsonify({"error": "job not found"}), 404
        return jsonify(job.to_dict())

    # -------------------------
    # Sync
    # -------------------------
    @app.route("/api/sync/status", methods=["GET"])
    def sync_status():
        library, user_id = _library()
        return jsonify(get_sync_status(library, store, user_id).to_dict())

    @app.route("/api/sync", methods=["POST"])
    def sync():
        library, user_id = _library()
        result = sync_all(library, store, user_id)
        return jsonify({"success": not result.failed_playlist_genres, **result.to_dict()})

    # -------------------------
    # Playlists
    # -------------------------
    @app.route("/api/playlists", methods=["GET"])
    def playlists():
        library, user_id = _library()
        try:
            managed = fetch_managed_playlists(library, store, user_id)
        except Exception as e:
            logger.error("Listing playlists for %s failed", user_id, exc_info=True)
            raise UpstreamError("failed to fetch playlists") from e
        return jsonify({
            "playlists": [p.to_dict() for p in managed],
            "total_songs": sum(p.track_count for p in managed),
        })

    @app.route("/api/playlists/<playlist_id>", methods=["PATCH"])
    def update_playlist(playlist_id):
        library, user_id = _library()
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise ValidationError("invalid request")
        try:
            update_playlist_details(
                library, store, user_id, playlist_id,
                custom_name=data.get("custom_name"),
                custom_description=data.get("custom_description"),
            )
        except Exception as e:
            logger.error("Updating playlist %s failed", playlist_id, exc_info=True)
            raise UpstreamError("failed to update playlist") from e
        return jsonify({"success": True})

    @app.route("/api/playlists/<playlist_id>", methods=["DELETE"])
    def remove_playlist(playlist_id):
        library, user_id = _library()
        try:
            delete_playlist(library, store, user_id, playlist_id)
        except Exception as e:
            logger.error("Deleting playlist %s failed", playlist_id, exc_info=True)
            raise UpstreamError("failed to delete playlist") from e
        return jsonify({"success": True})

    @app.route("/api/playlists/<playlist_id>/refresh", methods=["POST"])
    def refresh(playlist_id):
        library, user_id = _library()
        count = refresh_playlist(library, store, user_id, playlist_id)
        return jsonify({"success": True, "song_count": count})

    # -------------------------
    # Settings
    # -------------------------
    @app.route("/api/settings", methods=["GET"])
    def get_settings():
        _, user_id = _credentials(require_token=False)
        return jsonify(store.get_user_settings(user_id).to_dict())

    @app.route("/api/settings", methods=["PUT"])
    def put_settings():
        _, user_id = _credentials(require_token=False)
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise ValidationError("invalid request")
        name_template = data.get("name_template") or ""
        if "{genre}" not in name_template:
            raise ValidationError("Name template must contain {genre}")
        settings = store.get_user_settings(user_id)
        settings.name_template = name_template
        settings.description_template = data.get("description_template") or ""
        store.save_user_settings(settings)
        return jsonify(settings.to_dict())

    # -------------------------
    # Library
    # -------------------------
    @app.route("/api/library/count", methods=["GET"])
    def library_count():
        library, user_id = _library()
        now = utcnow()
        with count_cache_lock:
            cached = count_cache.get(user_id)
        if cached and now - cached["cached_at"] < count_cache_ttl:
            return jsonify({"count": cached["count"], "cached_at": cached["cached_at"].isoformat()})

        try:
            count = library.saved_tracks_count()
        except Exception as e:
            logger.error("Counting liked songs for %s failed", user_id, exc_info=True)
            raise UpstreamError("failed to fetch count") from e
        with count_cache_lock:
            count_cache[user_id] = {"count": count, "cached_at": now}
        return jsonify({"count": count, "cached_at": now.isoformat()})

    return app


def main(host: str = SERVER_HOST, port: int = SERVER_PORT) -> None:
    from .logger import setup_logging

    setup_logging(config.DATA_DIR / "logs", config.LOG_LEVEL)
    app = create_app()
    logger.info("Genre organizer API listening on http://%s:%d", host, port)
    app.run(host=host, port=port, debug=False, threaded=True)


if __name__ == "__main__":
    main()
