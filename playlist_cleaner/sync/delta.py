"""
Delta computation between a source playlist and its clean copy.

compute_delta() is pure: given the current source tracks, the current
target track ids and the mappings already resolved for the pair, it
returns the changes that bring the target in line with the source.

    source  [A(explicit), B, C(new)]
    target  [A', B, X']            mappings: A -> A', B -> B, X -> X'
    delta   add []   remove [X']   unchanged [A', B]   needs match [C]

Applying tracks_to_add and tracks_to_remove to the target and computing
the delta again (with no new source tracks) yields an empty delta.
"""

from dataclasses import dataclass
from typing import Iterable, Sequence

from playlist_cleaner.core.models import TrackMapping
from playlist_cleaner.spotify.models import Track


@dataclass(frozen=True)
class PlaylistDelta:
    """
    Changes to apply to a clean copy.

    Attributes:
        tracks_to_add: Target ids to add, in source order.
        tracks_to_remove: Target ids to remove, in target order.
        tracks_unchanged: Target ids already in place, in source order.
        new_tracks_needing_match: Source tracks with no mapping yet.
        desired_order: Every clean target id the copy should hold, in
                       source order (added and unchanged ids together).
    """
    tracks_to_add: tuple[str, ...] = ()
    tracks_to_remove: tuple[str, ...] = ()
    tracks_unchanged: tuple[str, ...] = ()
    new_tracks_needing_match: tuple[Track, ...] = ()
    desired_order: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        """True when nothing needs adding, removing or matching."""
        return not (self.tracks_to_add or self.tracks_to_remove or self.new_tracks_needing_match)


def _index_mappings(mappings: Iterable[TrackMapping]) -> dict[str, TrackMapping]:
    index: dict[str, TrackMapping] = {}
    for mapping in mappings:
        index.setdefault(mapping.source_track_id, mapping)
    return index


def compute_delta(
    source_tracks: Sequence[Track],
    target_track_ids: Sequence[str],
    existing_mappings: Iterable[TrackMapping]
) -> PlaylistDelta:
    """
    Compute what to add to and remove from the target playlist.

    Args:
        source_tracks: Current tracks of the source playlist.
        target_track_ids: Current track ids of the target playlist.
        existing_mappings: Mappings resolved so far for this pair.

    Returns:
        The PlaylistDelta. Inputs are not modified.
    """
    mappings = _index_mappings(existing_mappings)
    target_set = set(target_track_ids)

    source_ids: set[str] = set()
    to_add: list[str] = []
    unchanged: list[str] = []
    needs_match: list[Track] = []
    desired: list[str] = []
    desired_set: set[str] = set()

    for track in source_tracks:
        if track.spotify_id in source_ids:
            continue
        source_ids.add(track.spotify_id)

        mapping = mappings.get(track.spotify_id)
        if mapping is None:
            needs_match.append(track)
            continue
        if not mapping.has_clean_match or not mapping.target_track_id:
            continue

        target_id = mapping.target_track_id
        # Two sources resolving to one clean track share a single slot
        if target_id in desired_set:
            continue
        desired_set.add(target_id)
        desired.append(target_id)
        if target_id in target_set:
            unchanged.append(target_id)
        else:
            to_add.append(target_id)

    removable: set[str] = set()
    for source_id, mapping in mappings.items():
        if source_id in source_ids or not mapping.target_track_id:
            continue
        target_id = mapping.target_track_id
        if target_id in target_set and target_id not in desired_set:
            removable.add(target_id)

    to_remove: list[str] = []
    for target_id in target_track_ids:
        if target_id in removable:
            removable.discard(target_id)
            to_remove.append(target_id)

    return PlaylistDelta(
        tracks_to_add=tuple(to_add),
        tracks_to_remove=tuple(to_remove),
        tracks_unchanged=tuple(unchanged),
        new_tracks_needing_match=tuple(needs_match),
        desired_order=tuple(desired),
    )
