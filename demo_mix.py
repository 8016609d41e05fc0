#!/usr/bin/env python3
"""Run a simulated auto-mix session and print what the engine does."""

import logging
import random
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent / "src"))

from automix.analyze.analyzer import TrackAnalyzer
from automix.analyze.energy import EnergyProfiler
from automix.config import Config
from automix.generate.planner import TransitionPlanner
from automix.generate.scorer import CompatibilityScorer
from automix.live.engine import AutoMixEngine
from automix.live.playback import SimulatedPlayback, TrackLibrary
from automix.live.scheduler import AutoMixScheduler
from automix.live.timers import ManualClock
from automix.models import ChannelId, Phase, Track

logging.basicConfig(level=logging.WARNING, format="[%(levelname)s] [%(name)s] %(message)s")

STEP = 0.1
SESSION_MINUTES = 20

TRACKS = [
    Track("t01", "Warehouse Intro", "Kova", bpm=122.0, duration_seconds=312.0, key="8A"),
    Track("t02", "Static Bloom", "Lune", bpm=124.0, duration_seconds=298.0, key="9A"),
    Track("t03", "Night Shift", "Aria", bpm=126.0, duration_seconds=355.0, key="9B"),
    Track("t04", "Copper Lines", "Mota", bpm=128.0, duration_seconds=276.0, key="10A"),
    Track("t05", "Late Signal", "Kova", bpm=128.0, duration_seconds=341.0, key="4B"),
    Track("t06", "Orbitals", "Sen", bpm=132.0, duration_seconds=289.0, key="11A"),
    Track("t07", "Breakwater", "Lune", bpm=140.0, duration_seconds=262.0, key="2A"),
    Track("t08", "Half Light", "Aria", bpm=118.0, duration_seconds=330.0, key="7A"),
]


def fmt_time(seconds: float) -> str:
    return f"{int(seconds // 60):2d}:{int(seconds % 60):02d}"


config = Config.load()
config["automix"]["enabled"] = True

rng = random.Random(42)
scheduler = AutoMixScheduler(
    scorer=CompatibilityScorer.from_config(config, rng=rng),
    planner=TransitionPlanner.from_config(config),
    analyzer=TrackAnalyzer(profiler=EnergyProfiler.from_config(config, rng=rng), decode_audio=False),
    default_outro_seconds=config.get("scheduler", "default_outro_seconds", 16.0),
)

library = TrackLibrary(TRACKS)
playback = SimulatedPlayback(crossfader=0.0)
clock = ManualClock()

playback.load_track(ChannelId.A, library.get("t01"))
playback.play(ChannelId.A)
engine = AutoMixEngine(playback, library, clock, config=config, scheduler=scheduler)

print(f"📚 Library: {len(library)} tracks")
print(f"▶️  {fmt_time(0)}  A: {TRACKS[0].artist} - {TRACKS[0].title} ({TRACKS[0].bpm:.0f} BPM, {TRACKS[0].key})\n")
print("🔄 TRANSITIONS:")
print("-" * 90)

last_phase = engine.state.phase
count = 0
for _ in range(int(SESSION_MINUTES * 60 / STEP)):
    playback.advance(STEP)
    clock.advance(STEP)

    state = engine.state
    if state.phase is last_phase:
        continue

    if state.phase is Phase.WAITING:
        incoming = state.primary.other
        track = playback.channel_state(incoming).track
        print(
            f"   {fmt_time(clock.now())}  queued on {incoming.value}: "
            f"{track.artist} - {track.title} ({track.bpm:.0f} BPM, {track.key}) "
            f"| {state.selected_style.value} at {fmt_time(state.suggested_mix_point)}"
        )
    elif state.phase is Phase.TRANSITIONING:
        count += 1
        print(
            f"{count:2d}. {fmt_time(clock.now())}  {state.primary.value} → {state.primary.other.value} "
            f"({state.selected_style.value}, {engine.settings.transition_time_seconds}s)"
        )
    last_phase = state.phase

engine.close()
print("-" * 90)
print(f"\n✅ Simulated {SESSION_MINUTES} minutes, {count} transitions")
