"""End-to-end tests for organize jobs against the in-memory library."""

import threading

import pytest

from conftest import FakeLibrary, make_track
from genre_organizer.errors import JobNotFoundError, ValidationError
from genre_organizer.jobs import JobStage, JobStatus
from genre_organizer.models import Track, UserSettings
from genre_organizer.organizer import (
    ANALYZE_FAILED_MESSAGE,
    CREATE_FAILED_MESSAGE,
    FETCH_FAILED_MESSAGE,
    add_tracks_in_batches,
    organize_tracks,
    validate_playlist_count,
)


def _run(organizer, library, count, replace=False):
    job_id = organizer.start_organize(library, library.user_id, count, replace_existing=replace)
    return organizer.wait(job_id, timeout=10)


def test_scenario_two_playlists(organizer, scenario_library, store):
    job = _run(organizer, scenario_library, 2)

    assert job.status == JobStatus.COMPLETED
    assert job.stage == JobStage.DONE
    assert job.genres_discovered == ["pop", "rock"]
    assert [(p.genre, p.name, p.track_count) for p in job.result.playlists] == [
        ("Rock", "Rock by Organizer", 2),
        ("Other", "Other by Organizer", 1),
    ]
    rock, other = job.result.playlists
    assert scenario_library.contents[rock.playlist_id] == ["A", "B"]
    assert scenario_library.contents[other.playlist_id] == ["C"]
    assert job.songs_processed == job.total_songs == 3

    assignments = store.get_playlist_assignments("user1")
    assert {a.genre for a in assignments.values()} == {"Rock", "Other"}
    assert all(a.last_synced_at is not None for a in assignments.values())


def test_scenario_one_playlist(organizer, scenario_library):
    job = _run(organizer, scenario_library, 1)
    assert job.status == JobStatus.COMPLETED
    (playlist,) = job.result.playlists
    assert playlist.genre == "Rock"
    assert sorted(scenario_library.contents[playlist.playlist_id]) == ["A", "B", "C"]


def test_status_snapshot_serializes_result(organizer, scenario_library):
    job = _run(organizer, scenario_library, 2)
    data = job.to_dict()
    assert data["status"] == "completed"
    assert data["result"]["total_tracks"] == 3
    assert data["result"]["playlists"][0]["url"].startswith("https://open.spotify.com/playlist/")


def test_replace_existing_reuses_playlist(organizer, scenario_library):
    existing = scenario_library.add_playlist("old", "Rock by Organizer", ["Z"])
    job = _run(organizer, scenario_library, 2, replace=True)

    assert job.status == JobStatus.COMPLETED
    assert job.result.playlists[0].playlist_id == existing.id
    assert scenario_library.contents["old"] == ["A", "B"]
    assert len(scenario_library.calls_to("create_playlist")) == 1


def test_without_replace_creates_new_playlist(organizer, scenario_library):
    scenario_library.add_playlist("old", "Rock by Organizer", ["Z"])
    _run(organizer, scenario_library, 2)
    assert scenario_library.contents["old"] == ["Z"]
    assert scenario_library.calls_to("find_playlist_by_name") == []


def test_custom_name_template(organizer, scenario_library, store):
    store.save_user_settings(UserSettings(user_id="user1", name_template="My {genre}"))
    job = _run(organizer, scenario_library, 2)
    assert [p.name for p in job.result.playlists] == ["My Rock", "My Other"]


@pytest.mark.parametrize("failing,message", [
    ("fetch_saved_tracks_page", FETCH_FAILED_MESSAGE),
    ("fetch_artist_genres", ANALYZE_FAILED_MESSAGE),
    ("create_playlist", CREATE_FAILED_MESSAGE),
    ("add_tracks", CREATE_FAILED_MESSAGE),
])
def test_pipeline_failures_fail_the_job(organizer, scenario_library, failing, message):
    scenario_library.fail_on[failing] = RuntimeError("boom")
    job = _run(organizer, scenario_library, 2)
    assert job.status == JobStatus.FAILED
    assert job.error == message
    assert job.result is None


def test_playlist_error_stops_remaining_groups(organizer, scenario_library):
    scenario_library.fail_on["add_tracks"] = RuntimeError("boom")
    _run(organizer, scenario_library, 2)
    assert len(scenario_library.calls_to("create_playlist")) == 1


def test_persistence_failure_is_not_fatal(organizer, scenario_library, store, monkeypatch):
    def broken(assignment):
        raise OSError("disk full")

    monkeypatch.setattr(store, "upsert_playlist_assignment", broken)
    job = _run(organizer, scenario_library, 2)
    assert job.status == JobStatus.COMPLETED
    assert len(job.result.playlists) == 2


@pytest.mark.parametrize("count", [0, 51, -1, "10", 2.5, None, True])
def test_invalid_playlist_count_rejected_before_job(organizer, scenario_library, count):
    with pytest.raises(ValidationError):
        organizer.start_organize(scenario_library, "user1", count)
    assert len(organizer.registry) == 0
    assert scenario_library.calls == []


def test_validate_playlist_count_bounds():
    assert validate_playlist_count(1) == 1
    assert validate_playlist_count(50) == 50


def test_unknown_job(organizer):
    assert organizer.get_organize_status("nope") is None
    with pytest.raises(JobNotFoundError):
        organizer.get_organize_status("nope", strict=True)
    with pytest.raises(JobNotFoundError):
        organizer.wait("nope")


def test_large_library_pages_and_batches(organizer):
    tracks = [make_track(f"t{i}", f"a{i}") for i in range(260)]
    library = FakeLibrary(
        saved=tracks,
        artist_genres={f"a{i}": ["rock"] for i in range(260)},
        page_size=50,
    )
    job = _run(organizer, library, 5)

    assert job.status == JobStatus.COMPLETED
    assert library.page_requests == 6
    assert [len(b) for b in library.artist_batches] == [50, 50, 50, 50, 50, 10]
    (playlist,) = job.result.playlists
    adds = library.calls_to("add_tracks")
    assert [len(c[2]) for c in adds] == [100, 100, 60]
    assert len(library.contents[playlist.playlist_id]) == 260


def test_add_tracks_in_batches_paces_between_batches():
    library = FakeLibrary()
    sleeps = []
    added = add_tracks_in_batches(library, "p", [str(i) for i in range(250)],
                                  delay=0.25, sleep=sleeps.append)
    assert added == 250
    assert sleeps == [0.25, 0.25]


def test_organize_tracks_reports_progress(store, scenario_library):
    reports = []

    class Sink:
        def report(self, stage, processed, total):
            reports.append((stage, processed, total))

    tracks = [Track(id="A", genres=("rock",)), Track(id="B", genres=("rock", "pop")), Track(id="C")]
    organize_tracks(scenario_library, store, "user1", tracks, 2, sink=Sink(), batch_delay=0)
    assert reports == [
        (JobStage.CREATING, 0, 3),
        (JobStage.CREATING, 2, 3),
        (JobStage.CREATING, 3, 3),
    ]


class BlockingLibrary(FakeLibrary):
    """Holds every saved-tracks page request until `release` is set."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.entered = threading.Event()
        self.release = threading.Event()

    def fetch_saved_tracks_page(self, offset=0, limit=50):
        self.entered.set()
        assert self.release.wait(timeout=10), "fetch was never released"
        return super().fetch_saved_tracks_page(offset, limit)


def test_start_returns_before_pipeline_work(organizer):
    library = BlockingLibrary(saved=[make_track("A", "a1")], artist_genres={"a1": ["rock"]})
    try:
        job_id = organizer.start_organize(library, library.user_id, 2)
        assert organizer.get_organize_status(job_id).status in (JobStatus.PENDING, JobStatus.PROCESSING)

        assert library.entered.wait(timeout=10)
        job = organizer.get_organize_status(job_id)
        assert job.status == JobStatus.PROCESSING
        assert job.stage == JobStage.FETCHING
        assert job.result is None

        with pytest.raises(TimeoutError):
            organizer.wait(job_id, timeout=0.05)
    finally:
        library.release.set()

    assert organizer.wait(job_id, timeout=10).status == JobStatus.COMPLETED


def test_busy_jobs_do_not_delay_another_users_job(organizer, scenario_library):
    blocked = [
        BlockingLibrary(saved=[make_track(f"t{i}", "a1")], artist_genres={"a1": ["rock"]},
                        user_id=f"busy{i}")
        for i in range(12)
    ]
    try:
        blocked_ids = [organizer.start_organize(lib, lib.user_id, 1) for lib in blocked]
        for lib in blocked:
            assert lib.entered.wait(timeout=10)

        job = _run(organizer, scenario_library, 2)
        assert job.status == JobStatus.COMPLETED
        assert all(
            organizer.get_organize_status(job_id).status == JobStatus.PROCESSING
            for job_id in blocked_ids
        )
    finally:
        for lib in blocked:
            lib.release.set()

    assert all(organizer.wait(job_id, timeout=10).status == JobStatus.COMPLETED for job_id in blocked_ids)
