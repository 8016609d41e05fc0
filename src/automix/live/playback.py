"""
Collaborators consumed by the auto-mix engine.

- Playback: two channels plus crossfader (audio output lives elsewhere)
- TrackLibrary: the track pool; owns Track lifetime
- SimulatedPlayback: in-memory playback used by demos and tests
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Dict, Iterable, Optional, Set, Tuple

from ..generate.planner import PITCH_RANGE_PERCENT
from ..models import ChannelId, ChannelSnapshot, Track

logger = logging.getLogger(__name__)


class Playback(ABC):
    """Playback collaborator interface."""

    @abstractmethod
    def load_track(self, channel: ChannelId, track: Track) -> bool:
        """Load a track at position 0. False means the track has no usable audio."""

    @abstractmethod
    def unload(self, channel: ChannelId) -> None:
        """Clear the channel's track and position."""

    @abstractmethod
    def play(self, channel: ChannelId) -> None:
        pass

    @abstractmethod
    def pause(self, channel: ChannelId) -> None:
        pass

    @abstractmethod
    def seek(self, channel: ChannelId, position: float) -> None:
        pass

    @abstractmethod
    def set_crossfader(self, value: float) -> None:
        """0 = channel A only, 100 = channel B only."""

    @abstractmethod
    def set_pitch(self, channel: ChannelId, percent: float) -> None:
        """Playback-rate offset in percent (+/-8)."""

    @abstractmethod
    def get_position(self, channel: ChannelId) -> float:
        pass

    @abstractmethod
    def channel_state(self, channel: ChannelId) -> ChannelSnapshot:
        """Fresh view of a channel."""

    @property
    @abstractmethod
    def crossfader(self) -> float:
        pass


class TrackLibrary:
    """In-memory track pool keyed by track id (insertion ordered)."""

    def __init__(self, tracks: Iterable[Track] = ()):
        self._tracks: Dict[str, Track] = {}
        for track in tracks:
            self.add(track)

    def add(self, track: Track) -> None:
        self._tracks[track.track_id] = track
        logger.debug(f"Library: added {track.track_id}")

    def update(self, track_id: str, title: Optional[str] = None, artist: Optional[str] = None) -> Track:
        """
        Edit display metadata. Analysis fields are left untouched.

        Raises:
            KeyError: If the track is not in the library.
        """
        track = self._tracks[track_id]
        changes = {}
        if title is not None:
            changes["title"] = title
        if artist is not None:
            changes["artist"] = artist
        updated = replace(track, **changes)
        self._tracks[track_id] = updated
        return updated

    def remove(self, track_id: str) -> None:
        self._tracks.pop(track_id, None)
        logger.debug(f"Library: removed {track_id}")

    def get(self, track_id: str) -> Optional[Track]:
        return self._tracks.get(track_id)

    def tracks(self) -> Tuple[Track, ...]:
        return tuple(self._tracks.values())

    def __len__(self) -> int:
        return len(self._tracks)


class _Channel:
    def __init__(self):
        self.track: Optional[Track] = None
        self.position = 0.0
        self.is_playing = False
        self.has_audio = False
        self.pitch = 0.0


class SimulatedPlayback(Playback):
    """
    Playback without audio output.

    Positions move only on advance(). A track whose id is in
    `failing_track_ids` loads as metadata-only (load_track returns False).
    """

    def __init__(self, crossfader: float = 50.0, failing_track_ids: Optional[Set[str]] = None):
        self._channels = {ChannelId.A: _Channel(), ChannelId.B: _Channel()}
        self._crossfader = crossfader
        self.failing_track_ids = set(failing_track_ids or ())

    def load_track(self, channel: ChannelId, track: Track) -> bool:
        deck = self._channels[channel]
        deck.track = track
        deck.position = 0.0
        deck.is_playing = False
        deck.has_audio = track.track_id not in self.failing_track_ids
        if not deck.has_audio:
            logger.warning(f"Track {track.track_id} has no audio source (channel {channel.value})")
        return deck.has_audio

    def unload(self, channel: ChannelId) -> None:
        self._channels[channel] = _Channel()

    def play(self, channel: ChannelId) -> None:
        deck = self._channels[channel]
        if deck.track is not None:
            deck.is_playing = True

    def pause(self, channel: ChannelId) -> None:
        self._channels[channel].is_playing = False

    def seek(self, channel: ChannelId, position: float) -> None:
        deck = self._channels[channel]
        if deck.track is None:
            return
        deck.position = max(0.0, min(float(position), deck.track.duration_seconds))

    def set_crossfader(self, value: float) -> None:
        self._crossfader = max(0.0, min(100.0, float(value)))

    def set_pitch(self, channel: ChannelId, percent: float) -> None:
        self._channels[channel].pitch = max(-PITCH_RANGE_PERCENT, min(PITCH_RANGE_PERCENT, percent))

    def pitch(self, channel: ChannelId) -> float:
        return self._channels[channel].pitch

    def get_position(self, channel: ChannelId) -> float:
        return self._channels[channel].position

    def channel_state(self, channel: ChannelId) -> ChannelSnapshot:
        deck = self._channels[channel]
        return ChannelSnapshot(track=deck.track, position=deck.position, is_playing=deck.is_playing)

    @property
    def crossfader(self) -> float:
        return self._crossfader

    def advance(self, seconds: float) -> None:
        """Move playing channels forward; a channel stops at the end of its track."""
        for deck in self._channels.values():
            if not deck.is_playing or deck.track is None:
                continue
            rate = 1.0 + deck.pitch / 100.0
            deck.position = min(deck.position + seconds * rate, deck.track.duration_seconds)
            if deck.position >= deck.track.duration_seconds:
                deck.is_playing = False
