"""
OpenGov tracks (voting classes).

The same sixteen tracks exist on both Asset Hubs. IDs are not contiguous.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, List, Mapping, Optional, Tuple

from ..exceptions import ValidationError


@dataclass(frozen=True)
class Track:
    """A governance track."""
    id: int
    name: str

    def label(self) -> str:
        return f"Track {self.id} ({self.name})"


TRACKS: Mapping[int, Track] = MappingProxyType({
    t.id: t for t in (
        Track(0, "Root"),
        Track(1, "Whitelisted Caller"),
        Track(2, "Staking Admin"),
        Track(10, "Treasurer"),
        Track(11, "Lease Admin"),
        Track(12, "Fellowship Admin"),
        Track(13, "General Admin"),
        Track(14, "Auction Admin"),
        Track(15, "Referendum Canceller"),
        Track(20, "Referendum Killer"),
        Track(21, "Small Tipper"),
        Track(30, "Big Tipper"),
        Track(31, "Small Spender"),
        Track(32, "Medium Spender"),
        Track(33, "Big Spender"),
        Track(34, "Wish For Change"),
    )
})

ALL_TRACK_IDS: Tuple[int, ...] = tuple(TRACKS)


def track_name(track_id: int) -> str:
    track = TRACKS.get(track_id)
    return track.name if track else f"Track {track_id}"


def track_label(track_id: int) -> str:
    """'Track 0 (Root)' for known tracks, 'Track 99 (Unknown)' otherwise."""
    track = TRACKS.get(track_id)
    if track is None:
        return f"Track {track_id} (Unknown)"
    return track.label()


def validate_track_ids(track_ids: Optional[Iterable[int]]) -> List[int]:
    """
    Normalise a requested track list.

    None means every track, in table order. Duplicates and unknown IDs are
    rejected rather than silently fixed.
    """
    if track_ids is None:
        return list(ALL_TRACK_IDS)

    requested = list(track_ids)
    if not requested:
        raise ValidationError("Track list is empty")

    seen = set()
    for track_id in requested:
        if isinstance(track_id, bool) or not isinstance(track_id, int):
            raise ValidationError(f"Track ID must be an integer, got {track_id!r}")
        if track_id not in TRACKS:
            raise ValidationError(
                f"Unknown track {track_id}. Valid tracks: "
                f"{', '.join(str(t) for t in ALL_TRACK_IDS)}"
            )
        if track_id in seen:
            raise ValidationError(f"Duplicate track {track_id} in track list")
        seen.add(track_id)
    return requested
