# tests/test_delta.py
"""Test the sync delta computation"""

from playlist_cleaner.core.models import TrackMapping
from playlist_cleaner.sync.delta import PlaylistDelta, compute_delta
from playlist_cleaner.sync.orchestrator import plan_insertions

from conftest import make_track


def kept(track_id):
    """Mapping of a clean track kept as-is"""
    return TrackMapping(track_id, f"Song {track_id}", "Test Artist", False, True, track_id)


def replaced(track_id, clean_id):
    """Mapping of an explicit track replaced by a clean version"""
    return TrackMapping(track_id, f"Song {track_id}", "Test Artist", True, True, clean_id)


def dropped(track_id):
    """Mapping of an explicit track without a clean version"""
    return TrackMapping(track_id, f"Song {track_id}", "Test Artist", True, False)


def tracks(*ids):
    return [make_track(track_id) for track_id in ids]


def apply(target, delta):
    """Apply a delta the way the orchestrator does"""
    result = list(target)
    for position, ids in plan_insertions(target, delta):
        result[position:position] = ids
    return [t for t in result if t not in set(delta.tracks_to_remove)]


class TestComputeDelta:
    """Test delta contents"""

    def test_no_changes(self):
        """A synced pair yields an empty delta"""
        delta = compute_delta(tracks("A", "B"), ["A", "C"], [kept("A"), replaced("B", "C")])

        assert delta.is_empty
        assert delta.tracks_unchanged == ("A", "C")
        assert delta.desired_order == ("A", "C")

    def test_new_source_track_needs_match(self):
        """Source tracks without mapping are returned for matching"""
        delta = compute_delta(tracks("A", "N"), ["A"], [kept("A")])

        assert [t.spotify_id for t in delta.new_tracks_needing_match] == ["N"]
        assert delta.tracks_to_add == ()
        assert not delta.is_empty

    def test_removed_source_track(self):
        """The clean version of a removed source track is removed"""
        delta = compute_delta(tracks("A"), ["A", "C"], [kept("A"), replaced("B", "C")])

        assert delta.tracks_to_remove == ("C",)
        assert delta.desired_order == ("A",)

    def test_removed_track_already_gone_from_target(self):
        """Manual removals from the target are not removed again"""
        delta = compute_delta(tracks("A"), ["A"], [kept("A"), replaced("B", "C")])
        assert delta.tracks_to_remove == ()

    def test_mapped_track_missing_from_target_is_added(self):
        """Resolved tracks missing from the target are added back"""
        delta = compute_delta(tracks("A", "B"), ["A"], [kept("A"), replaced("B", "C")])

        assert delta.tracks_to_add == ("C",)
        assert delta.desired_order == ("A", "C")

    def test_unmatched_tracks_contribute_nothing(self):
        delta = compute_delta(tracks("A", "X"), ["A"], [kept("A"), dropped("X")])

        assert delta.is_empty
        assert delta.desired_order == ("A",)

    def test_desired_order_follows_source(self):
        """Order comes from the source, not the target"""
        delta = compute_delta(tracks("B", "A"), ["A", "B"], [kept("A"), kept("B")])
        assert delta.desired_order == ("B", "A")

    def test_duplicate_source_tracks(self):
        """Only the first occurrence of a source track counts"""
        delta = compute_delta(tracks("A", "N", "A", "N"), [], [kept("A")])

        assert delta.tracks_to_add == ("A",)
        assert [t.spotify_id for t in delta.new_tracks_needing_match] == ["N"]

    def test_shared_clean_version_not_removed(self):
        """A clean track still wanted by another source is kept"""
        delta = compute_delta(
            tracks("B2"), ["C"], [replaced("B1", "C"), replaced("B2", "C")]
        )
        assert delta.tracks_to_remove == ()
        assert delta.tracks_unchanged == ("C",)

    def test_removals_in_target_order(self):
        mappings = [kept("A"), kept("B"), kept("C")]
        delta = compute_delta([], ["C", "A", "B"], mappings)
        assert delta.tracks_to_remove == ("C", "A", "B")

    def test_inputs_not_modified(self):
        source = tracks("A", "B")
        target = ["A"]
        mappings = [kept("A")]
        compute_delta(source, target, mappings)

        assert [t.spotify_id for t in source] == ["A", "B"]
        assert target == ["A"]
        assert mappings == [kept("A")]

    def test_empty_delta(self):
        assert PlaylistDelta().is_empty


class TestDeltaProperties:
    """Test idempotence and round trip"""

    def test_idempotent(self):
        """Same inputs, same delta"""
        source = tracks("A", "B", "N")
        target = ["X", "A"]
        mappings = [kept("A"), replaced("B", "C"), kept("X"), replaced("Y", "Z")]

        assert compute_delta(source, target, mappings) == compute_delta(source, target, mappings)

    def test_round_trip_is_empty(self):
        """Applying a delta and diffing again yields nothing to do"""
        source = tracks("A", "B", "D", "E")
        target = ["X", "A", "E"]
        mappings = [kept("A"), replaced("B", "C"), kept("D"), kept("E"), kept("X")]

        delta = compute_delta(source, target, mappings)
        assert delta.tracks_to_add == ("C", "D")
        assert delta.tracks_to_remove == ("X",)

        new_target = apply(target, delta)
        again = compute_delta(source, new_target, mappings)

        assert again.tracks_to_add == ()
        assert again.tracks_to_remove == ()
        assert new_target == ["A", "C", "D", "E"]


class TestPlanInsertions:
    """Test insert positions that keep source order"""

    def test_insert_between_existing_tracks(self):
        delta = PlaylistDelta(tracks_to_add=("B",), desired_order=("A", "B", "C"))
        assert plan_insertions(["A", "C"], delta) == [(1, ["B"])]

    def test_consecutive_insertions_are_grouped(self):
        delta = PlaylistDelta(tracks_to_add=("A", "B", "D"), desired_order=("A", "B", "C", "D"))
        assert plan_insertions(["C"], delta) == [(0, ["A", "B"]), (3, ["D"])]

    def test_insert_into_empty_target(self):
        delta = PlaylistDelta(tracks_to_add=("A", "B"), desired_order=("A", "B"))
        assert plan_insertions([], delta) == [(0, ["A", "B"])]

    def test_user_added_tracks_stay_in_place(self):
        """Tracks the user added manually keep their position"""
        delta = PlaylistDelta(tracks_to_add=("B",), desired_order=("A", "B"))
        assert plan_insertions(["A", "MINE"], delta) == [(1, ["B"])]

    def test_duplicate_target_tracks_anchor_on_first(self):
        delta = PlaylistDelta(tracks_to_add=("B",), desired_order=("A", "B", "C"))
        assert plan_insertions(["A", "A", "C"], delta) == [(1, ["B"])]

    def test_reordered_target_never_moves_anchor_back(self):
        """A desired track found earlier in the target keeps later insertions after the anchor"""
        delta = PlaylistDelta(tracks_to_add=("B", "D"), desired_order=("A", "B", "C", "D"))
        assert plan_insertions(["C", "A"], delta) == [(2, ["B", "D"])]

    def test_large_interleaved_playlist(self):
        """Every other track is new; applying the plan yields the desired order"""
        desired = tuple(f"T{i}" for i in range(2000))
        target = list(desired[::2])
        delta = PlaylistDelta(tracks_to_add=desired[1::2], desired_order=desired)

        plan = plan_insertions(target, delta)

        assert len(plan) == 1000
        assert apply(target, delta) == list(desired)
