"""
Core records shared by analysis, scoring and the live scheduler.

Tracks and snapshots are immutable. AutoMixState is replaced wholesale by
the scheduler on every tick, never mutated in place.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Tuple, Any


DEFAULT_INTRO_SECONDS = 16.0
DEFAULT_OUTRO_SECONDS = 16.0
NEUTRAL_ENERGY = 50.0


class TransitionStyle(Enum):
    """How the outgoing and incoming tracks are blended."""

    AUTO = "auto"
    CROSSFADE = "crossfade"
    BEATMATCH = "beatmatch"
    DROP = "drop"
    CUT = "cut"

    @classmethod
    def parse(cls, value: Any) -> "TransitionStyle":
        """Accept an enum member or its string value."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValueError(f"Unknown transition style: {value!r}")


class Phase(Enum):
    """Scheduler phase. Advances idle -> scanning -> waiting -> transitioning -> idle."""

    IDLE = "idle"
    SCANNING = "scanning"
    WAITING = "waiting"
    TRANSITIONING = "transitioning"


class ChannelId(Enum):
    """One of the two playback channels."""

    A = "A"
    B = "B"

    @property
    def other(self) -> "ChannelId":
        return ChannelId.B if self is ChannelId.A else ChannelId.A

    @property
    def crossfader_target(self) -> float:
        """Crossfader value that fully favors this channel."""
        return 0.0 if self is ChannelId.A else 100.0


@dataclass(frozen=True)
class Track:
    """Immutable container for track metadata and analysis data."""

    track_id: str
    title: str
    artist: str
    bpm: float
    duration_seconds: float
    key: Optional[str] = None  # Camelot notation (1A-12B)
    energy_map: Tuple[float, ...] = ()
    drop_points: Tuple[float, ...] = ()
    intro_length: Optional[float] = None
    outro_length: Optional[float] = None
    file_path: Optional[str] = None

    @property
    def is_analyzed(self) -> bool:
        return len(self.energy_map) > 0

    @property
    def first_energy(self) -> float:
        """Energy of the first segment (intro), neutral when unknown."""
        return float(self.energy_map[0]) if self.energy_map else NEUTRAL_ENERGY

    @property
    def last_energy(self) -> float:
        """Energy of the last segment (outro), neutral when unknown."""
        return float(self.energy_map[-1]) if self.energy_map else NEUTRAL_ENERGY

    def outro_seconds(self, default: float = DEFAULT_OUTRO_SECONDS) -> float:
        return self.outro_length if self.outro_length is not None else default

    def intro_seconds(self, default: float = DEFAULT_INTRO_SECONDS) -> float:
        return self.intro_length if self.intro_length is not None else default

    def with_profile(self, energy_map, drop_points, bpm: Optional[float] = None) -> "Track":
        """Copy of this track carrying analysis results."""
        return replace(
            self,
            energy_map=tuple(float(v) for v in energy_map),
            drop_points=tuple(float(t) for t in drop_points),
            bpm=self.bpm if bpm is None else float(bpm),
        )


@dataclass(frozen=True)
class ChannelSnapshot:
    """Point-in-time view of one playback channel. The track is not owned."""

    track: Optional[Track] = None
    position: float = 0.0
    is_playing: bool = False

    @property
    def track_id(self) -> Optional[str]:
        return self.track.track_id if self.track else None

    @property
    def time_remaining(self) -> float:
        if self.track is None:
            return 0.0
        return self.track.duration_seconds - self.position


@dataclass(frozen=True)
class AutoMixSettings:
    """Operator-facing auto-mix options."""

    enabled: bool = False
    transition_time_seconds: int = 16
    transition_style: TransitionStyle = TransitionStyle.AUTO
    smart_sync: bool = True
    energy_match: bool = True
    harmonic: bool = True

    def __post_init__(self):
        # Allow plain strings from config files and UI layers
        object.__setattr__(self, "transition_style", TransitionStyle.parse(self.transition_style))
        if int(self.transition_time_seconds) < 1:
            raise ValueError(
                f"transition_time_seconds must be >= 1, got {self.transition_time_seconds}"
            )

    @classmethod
    def from_config(cls, config) -> "AutoMixSettings":
        """Build settings from the [automix] config section."""
        section = config["automix"]
        return cls(
            enabled=bool(section.get("enabled", False)),
            transition_time_seconds=int(section.get("transition_time_seconds", 16)),
            transition_style=section.get("transition_style", "auto"),
            smart_sync=bool(section.get("smart_sync", True)),
            energy_match=bool(section.get("energy_match", True)),
            harmonic=bool(section.get("harmonic", True)),
        )

    def updated(self, **changes) -> "AutoMixSettings":
        return replace(self, **changes)


@dataclass(frozen=True)
class MixSnapshot:
    """Freshly read state of both channels, the crossfader and the track pool."""

    channel_a: ChannelSnapshot
    channel_b: ChannelSnapshot
    crossfader: float
    pool: Tuple[Track, ...] = ()
    settings: AutoMixSettings = field(default_factory=AutoMixSettings)

    def channel(self, channel_id: ChannelId) -> ChannelSnapshot:
        return self.channel_a if channel_id is ChannelId.A else self.channel_b

    @property
    def any_playing(self) -> bool:
        return self.channel_a.is_playing or self.channel_b.is_playing

    def primary_channel(self) -> Optional[ChannelId]:
        """
        Channel that is about to finish.

        The only playing channel, or, when both play, the one the crossfader
        favors (below 50 -> A).
        """
        a_playing = self.channel_a.is_playing
        b_playing = self.channel_b.is_playing
        if a_playing and b_playing:
            return ChannelId.A if self.crossfader < 50 else ChannelId.B
        if a_playing:
            return ChannelId.A
        if b_playing:
            return ChannelId.B
        return None


@dataclass(frozen=True)
class AutoMixState:
    """Status record owned by the scheduler; exposed read-only to the UI."""

    phase: Phase = Phase.IDLE
    transition_progress: float = 0.0
    queued_track_id: Optional[str] = None
    selected_style: Optional[TransitionStyle] = None
    is_analyzing: bool = False
    next_track_ready: bool = False
    suggested_mix_point: Optional[float] = None
    primary: Optional[ChannelId] = None
    pending_track_id: Optional[str] = None
    ramp_step: int = 0
    ramp_steps: int = 0
    ramp_from: float = 50.0
    ramp_to: float = 50.0
    finishing: bool = False

    @classmethod
    def idle(cls) -> "AutoMixState":
        return cls()

    def to_dict(self) -> dict:
        """Status view for presentation layers."""
        return {
            "phase": self.phase.value,
            "transition_progress": self.transition_progress,
            "queued_track_id": self.queued_track_id,
            "selected_style": self.selected_style.value if self.selected_style else None,
            "is_analyzing": self.is_analyzing,
            "next_track_ready": self.next_track_ready,
            "suggested_mix_point": self.suggested_mix_point,
        }
