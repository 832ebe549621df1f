"""Tests for managed playlist detection and detail overrides."""

import pytest

from conftest import FakeLibrary
from genre_organizer import config
from genre_organizer.models import PlaylistAssignment, PlaylistRef, UserSettings
from genre_organizer.playlists import (
    UNKNOWN_GENRE,
    delete_playlist,
    extract_genre_from_name,
    fetch_managed_playlists,
    is_organizer_playlist,
    list_managed_playlists,
    update_playlist_details,
)


@pytest.mark.parametrize("name,expected", [
    ("Rock by Organizer", True),
    ("My organizer mix", True),
    ("Jazz", True),
    ("Jazz Classics", True),
    ("Road trip", False),
    ("Jazzy evenings", False),
])
def test_is_organizer_playlist_default_template(name, expected):
    assert is_organizer_playlist(name) is expected


def test_is_organizer_playlist_custom_template():
    assert is_organizer_playlist("Mixtape: Funk", "Mixtape: {genre}")
    assert not is_organizer_playlist("Road trip", "Mixtape: {genre}")


@pytest.mark.parametrize("name,template,expected", [
    ("Hip-Hop by Organizer", config.DEFAULT_NAME_TEMPLATE, "Hip-Hop"),
    ("Mixtape: Funk", "Mixtape: {genre}", "Funk"),
    ("Soul Sessions", config.DEFAULT_NAME_TEMPLATE, "Soul"),
    ("latin nights", config.DEFAULT_NAME_TEMPLATE, "Latin"),
    ("Road trip", config.DEFAULT_NAME_TEMPLATE, UNKNOWN_GENRE),
])
def test_extract_genre_from_name(name, template, expected):
    assert extract_genre_from_name(name, template) == expected


def test_list_managed_playlists_prefers_stored_assignment():
    playlists = [
        PlaylistRef(id="p1", name="Rock by Organizer", track_count=12, url="u1"),
        PlaylistRef(id="p2", name="Road trip", track_count=30, url="u2"),
        PlaylistRef(id="p3", name="Renamed by me", track_count=4, url="u3"),
    ]
    assignments = {
        "p3": PlaylistAssignment(user_id="u", playlist_id="p3", genre="Jazz", custom_name="Renamed by me"),
    }
    managed = list_managed_playlists(playlists, UserSettings(user_id="u"), assignments)

    assert [(m.playlist_id, m.genre) for m in managed] == [("p1", "Rock"), ("p3", "Jazz")]
    assert managed[1].custom_name == "Renamed by me"
    assert managed[0].to_dict()["song_count"] == 12


def test_fetch_managed_playlists_reads_store(store):
    library = FakeLibrary()
    library.add_playlist("p1", "Pop by Organizer", ["a", "b"])
    managed = fetch_managed_playlists(library, store, "user1")
    assert [(m.genre, m.track_count) for m in managed] == [("Pop", 2)]


def test_update_details_free_tier_gets_footer(store):
    library = FakeLibrary()
    assignment = update_playlist_details(library, store, "user1", "p1",
                                         custom_name="Loud", custom_description="Guitars")

    assert library.details["p1"] == {"name": "Loud", "description": "Guitars" + config.FREE_TIER_FOOTER}
    stored = store.get_playlist_assignment("user1", "p1")
    assert stored.custom_name == "Loud"
    assert stored.custom_description == "Guitars"
    assert assignment.playlist_id == "p1"


def test_update_details_premium_has_no_footer(store):
    store.save_user_settings(UserSettings(user_id="user1", is_premium=True))
    library = FakeLibrary()
    update_playlist_details(library, store, "user1", "p1", custom_description="Guitars")
    assert library.details["p1"] == {"name": None, "description": "Guitars"}


def test_update_details_keeps_genre(store):
    store.upsert_playlist_assignment(PlaylistAssignment(user_id="user1", playlist_id="p1", genre="Rock"))
    update_playlist_details(FakeLibrary(), store, "user1", "p1", custom_name="Loud")
    assert store.get_playlist_assignment("user1", "p1").genre == "Rock"


def test_update_details_nothing_to_send(store):
    library = FakeLibrary()
    update_playlist_details(library, store, "user1", "p1")
    assert library.calls_to("update_playlist_details") == []


def test_update_details_blank_values_change_nothing(store):
    store.upsert_playlist_assignment(PlaylistAssignment(
        user_id="user1", playlist_id="p1", genre="Rock",
        custom_name="Loud", custom_description="Guitars",
    ))
    library = FakeLibrary()
    update_playlist_details(library, store, "user1", "p1", custom_name="", custom_description="")

    assert library.calls_to("update_playlist_details") == []
    stored = store.get_playlist_assignment("user1", "p1")
    assert stored.custom_name == "Loud"
    assert stored.custom_description == "Guitars"


def test_update_details_blank_name_not_stored(store):
    library = FakeLibrary()
    update_playlist_details(library, store, "user1", "p1", custom_name="", custom_description="Guitars")
    stored = store.get_playlist_assignment("user1", "p1")
    assert stored.custom_name is None
    assert stored.custom_description == "Guitars"


def test_delete_playlist_unfollows_and_forgets_assignment(store):
    library = FakeLibrary()
    library.add_playlist("p1", "Rock by Organizer", ["a"])
    store.upsert_playlist_assignment(PlaylistAssignment(user_id="user1", playlist_id="p1", genre="Rock"))

    assert delete_playlist(library, store, "user1", "p1") is True
    assert library.calls_to("unfollow_playlist") == [("unfollow_playlist", "p1")]
    assert "p1" not in library.playlists
    assert store.get_playlist_assignment("user1", "p1") is None
    assert fetch_managed_playlists(library, store, "user1") == []


def test_delete_playlist_keeps_assignment_when_unfollow_fails(store):
    library = FakeLibrary()
    library.add_playlist("p1", "Rock by Organizer")
    library.failing_playlists.add("p1")
    store.upsert_playlist_assignment(PlaylistAssignment(user_id="user1", playlist_id="p1", genre="Rock"))

    with pytest.raises(RuntimeError):
        delete_playlist(library, store, "user1", "p1")
    assert store.get_playlist_assignment("user1", "p1").genre == "Rock"
