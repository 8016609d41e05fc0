"""
Unit tests for lazy track analysis.
"""

import random
from concurrent.futures import Executor, Future
from unittest.mock import Mock, patch

import numpy as np
import pytest

from automix.analyze.analyzer import ImmediateExecutor, TrackAnalyzer
from automix.analyze.audio import AudioLoadError
from automix.analyze.energy import EnergyProfiler
from automix.models import Track


class DeferredExecutor(Executor):
    """Holds work until run_all() is called."""

    def __init__(self):
        self.jobs = []

    def submit(self, fn, *args, **kwargs):
        future = Future()
        self.jobs.append((future, fn, args, kwargs))
        return future

    def run_all(self):
        for future, fn, args, kwargs in self.jobs:
            future.set_result(fn(*args, **kwargs))
        self.jobs = []


@pytest.fixture
def track():
    return Track("t1", "Night Drive", "Kova", bpm=120.0, duration_seconds=240.0, key="8A")


@pytest.fixture
def analyzer():
    return TrackAnalyzer(
        profiler=EnergyProfiler(rng=random.Random(1)),
        decode_audio=False,
    )


class TestImmediateExecutor:
    def test_result(self):
        future = ImmediateExecutor().submit(lambda x: x * 2, 21)
        assert future.done()
        assert future.result() == 42

    def test_exception_captured(self):
        def boom():
            raise RuntimeError("bad")

        future = ImmediateExecutor().submit(boom)
        assert isinstance(future.exception(), RuntimeError)


class TestTrackAnalyzer:
    """request() / ready() behaviour."""

    def test_profile_attached(self, analyzer, track):
        analyzer.request(track)
        analyzed = analyzer.ready(track)

        assert analyzed.is_analyzed
        assert analyzed.track_id == "t1"
        assert analyzed.bpm == 120.0
        # 240 s at 120 BPM, 4 s per 8-beat segment
        assert len(analyzed.energy_map) == 60
        assert analyzed.drop_points

    def test_original_track_untouched(self, analyzer, track):
        analyzer.request(track)
        analyzer.ready(track)
        assert track.energy_map == ()

    def test_not_requested(self, analyzer, track):
        assert analyzer.ready(track) is None

    def test_request_is_cached(self, analyzer, track):
        assert analyzer.request(track) is analyzer.request(track)

    def test_forget(self, analyzer, track):
        first = analyzer.request(track)
        analyzer.forget("t1")
        assert analyzer.request(track) is not first

    def test_forget_cancels_pending(self, track):
        analyzer = TrackAnalyzer(executor=DeferredExecutor(), decode_audio=False)
        future = analyzer.request(track)

        analyzer.forget("t1")
        assert future.cancelled()
        assert analyzer.ready(track) is None

    def test_retain_drops_other_ids(self, analyzer, track):
        other = Track("t2", "Daybreak", "Lune", bpm=124.0, duration_seconds=200.0)
        analyzer.request(track)
        analyzer.request(other)

        analyzer.retain(["t2", "t9"])
        assert analyzer.cached_ids == {"t2"}
        assert analyzer.ready(track) is None
        assert analyzer.ready(other).is_analyzed

    def test_already_analyzed_skips_executor(self, track):
        executor = Mock()
        analyzer = TrackAnalyzer(executor=executor, decode_audio=False)
        profiled = track.with_profile([40.0, 80.0], [30.0])

        analyzer.request(profiled)
        assert analyzer.ready(profiled) is profiled
        executor.submit.assert_not_called()

    def test_missing_bpm_uses_fallback(self, analyzer):
        track = Track("t2", "Untitled", "", bpm=0.0, duration_seconds=120.0)
        analyzer.request(track)
        assert analyzer.ready(track).bpm == 128.0

    def test_pending_until_done(self, track):
        executor = DeferredExecutor()
        analyzer = TrackAnalyzer(executor=executor, decode_audio=False)

        analyzer.request(track)
        assert analyzer.ready(track) is None

        executor.run_all()
        assert analyzer.ready(track).is_analyzed

    def test_failure_resolves_to_unchanged_track(self, track):
        profiler = Mock()
        profiler.fallback_bpm = 128.0
        profiler.profile.side_effect = RuntimeError("profiler crashed")
        analyzer = TrackAnalyzer(profiler=profiler, decode_audio=False)

        analyzer.request(track)
        assert analyzer.ready(track) is track

    def test_cancelled_resolves_to_unchanged_track(self, track):
        executor = DeferredExecutor()
        analyzer = TrackAnalyzer(executor=executor, decode_audio=False)

        analyzer.request(track).cancel()
        assert analyzer.ready(track) is track


class TestAudioDecoding:
    """Analysis from decoded files."""

    def test_undecodable_file_falls_back_to_stylised(self):
        track = Track("t3", "Broken", "", bpm=126.0, duration_seconds=180.0, file_path="/x/broken.mp3")
        analyzer = TrackAnalyzer(profiler=EnergyProfiler(rng=random.Random(2)))

        with patch("automix.analyze.analyzer.load_mono", side_effect=AudioLoadError("nope")):
            analyzer.request(track)
            analyzed = analyzer.ready(track)

        assert analyzed.is_analyzed
        assert analyzed.bpm == 126.0

    def test_decoded_audio_drives_bpm_and_energy(self):
        sr = 44100
        samples = np.zeros(sr * 30, dtype=np.float32)
        for start in range(22050, len(samples) - 441, 22050):
            samples[start:start + 441] = 1.0

        track = Track("t4", "Clicks", "", bpm=0.0, duration_seconds=30.0, file_path="/x/clicks.wav")
        analyzer = TrackAnalyzer()

        with patch("automix.analyze.analyzer.load_mono", return_value=(samples, sr)):
            analyzer.request(track)
            analyzed = analyzer.ready(track)

        assert analyzed.bpm == 120.0
        # 30 s at 120 BPM = 7 full segments
        assert len(analyzed.energy_map) == 7
