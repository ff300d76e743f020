import pytest

from skysync.models.track import Track, create_track_id
from skysync.sync.track_store import TrackStore


def make_track(group_id, index, start_ts, **fields):
    return Track(
        id=create_track_id(group_id, index),
        ts=[start_ts, start_ts + 1_000],
        lat=[45.0, 45.01],
        lon=[6.0, 6.01],
        alt=[1000, 1010],
        **fields,
    )


def test_tracks_are_ordered_by_first_sample():
    store = TrackStore()
    store.insert_many([make_track(1, 0, 3_000), make_track(2, 0, 1_000), make_track(1, 1, 2_000)])

    assert store.ids() == ["2-0", "1-1", "1-0"]
    assert [t.id for t in store] == ["2-0", "1-1", "1-0"]
    assert store.group_ids() == [2, 1]


def test_patch_merges_fields():
    store = TrackStore()
    store.insert_many([make_track(1, 0, 0)])

    assert store.patch("1-0", {"id": "1-0", "min_alt": 1000})
    assert store.patch("1-0", {"gnd_alt": [500, 510]})

    track = store.get("1-0")
    assert track.min_alt == 1000
    assert track.gnd_alt == [500, 510]
    assert track.alt == [1000, 1010]


def test_patch_on_unknown_track_is_a_no_op():
    store = TrackStore()
    store.insert_many([make_track(1, 0, 0)])
    store.set_current_track_id("1-0")

    assert store.patch("9-0", {"min_alt": 1}) is False

    assert len(store) == 1
    assert store.current_track_id == "1-0"


def test_removing_current_track_moves_cursor_to_first_track():
    store = TrackStore()
    store.insert_many([make_track(1, 0, 0), make_track(2, 0, 1_000), make_track(3, 0, 2_000)])
    store.set_current_track_id("2-0")

    removed = store.remove_by_group_ids([2])

    assert removed == ["2-0"]
    assert store.current_track_id == "1-0"


def test_removing_other_groups_keeps_cursor():
    store = TrackStore()
    store.insert_many([make_track(1, 0, 0), make_track(2, 0, 1_000)])
    store.set_current_track_id("2-0")

    store.remove_by_group_ids([1])

    assert store.current_track_id == "2-0"


def test_removing_everything_unsets_cursor():
    store = TrackStore()
    store.insert_many([make_track(1, 0, 0), make_track(1, 1, 10)])
    store.set_current_track_id("1-1")

    store.remove_by_group_ids([1])

    assert len(store) == 0
    assert store.current_track_id is None


def test_group_removal_matches_whole_group_ids():
    store = TrackStore()
    store.insert_many([make_track(4, 0, 0), make_track(42, 0, 10)])

    store.remove_by_group_ids([4])

    assert store.ids() == ["42-0"]


def test_select_next_wraps_around():
    store = TrackStore()
    store.insert_many([make_track(1, 0, 0), make_track(1, 1, 10)])

    assert store.select_next() is None

    store.set_current_track_id("1-0")
    assert store.select_next() == "1-1"
    assert store.select_next() == "1-0"


def test_current_track_must_exist():
    store = TrackStore()

    with pytest.raises(KeyError):
        store.set_current_track_id("1-0")
