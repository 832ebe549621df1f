"""Tests for library fetch and genre enrichment."""

from conftest import FakeLibrary, make_track
from genre_organizer.jobs import JobStage
from genre_organizer.library import (
    discovered_genres,
    enrich_tracks_with_genres,
    fetch_all_artist_genres,
    fetch_all_saved_tracks,
    unique_artist_ids,
)


def test_enrich_unions_artist_tags_without_duplicates():
    tracks = [make_track("t1", "a1", "a2"), make_track("t2", "a3")]
    enriched = enrich_tracks_with_genres(tracks, {
        "a1": ["rock", "grunge"],
        "a2": ["grunge", "pop"],
    })
    assert enriched[0].genres == ("rock", "grunge", "pop")
    assert enriched[1].genres == ()
    assert tracks[0].genres == ()


def test_discovered_genres_sorted_raw_tags():
    tracks = enrich_tracks_with_genres(
        [make_track("t1", "a1"), make_track("t2", "a2")],
        {"a1": ["shoegaze", "dub"], "a2": ["dub"]},
    )
    assert discovered_genres(tracks) == ["dub", "shoegaze"]


def test_unique_artist_ids_first_seen():
    tracks = [make_track("t1", "b", "a"), make_track("t2", "a", "c")]
    assert unique_artist_ids(tracks) == ["b", "a", "c"]


def test_artist_batches_are_paced():
    tracks = [make_track(f"t{i}", f"a{i}") for i in range(120)]
    library = FakeLibrary(artist_genres={"a0": ["rock"]})
    sleeps = []
    genres = fetch_all_artist_genres(library, tracks, delay=0.5, sleep=sleeps.append)
    assert [len(b) for b in library.artist_batches] == [50, 50, 20]
    assert sleeps == [0.5, 0.5]
    assert genres["a0"] == ["rock"]
    assert len(genres) == 120


def test_fetch_reports_progress_per_page():
    reports = []

    class Sink:
        def report(self, stage, processed, total):
            reports.append((stage, processed, total))

    library = FakeLibrary(saved=[make_track(f"t{i}") for i in range(5)], page_size=2)
    tracks = fetch_all_saved_tracks(library, sink=Sink())
    assert [t.id for t in tracks] == ["t0", "t1", "t2", "t3", "t4"]
    assert reports == [
        (JobStage.FETCHING, 2, 5),
        (JobStage.FETCHING, 4, 5),
        (JobStage.FETCHING, 5, 5),
    ]


def test_fetch_empty_library():
    library = FakeLibrary()
    assert fetch_all_saved_tracks(library) == []
    assert library.page_requests == 1
