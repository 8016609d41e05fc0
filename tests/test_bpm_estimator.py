"""
Unit tests for onset-based BPM estimation.

Synthetic click tracks stand in for kick drums.
"""

import numpy as np
import pytest
from unittest.mock import patch

from automix.analyze.audio import AudioLoadError
from automix.analyze.bpm import BPMResult, OnsetBPMEstimator, _estimators, detect_bpm, shared_estimator
from automix.config import Config

SR = 44100


def click_track(interval_samples, seconds=30.0, click_len=441, sr=SR):
    """Rectangular clicks of amplitude 1.0, first click one interval in."""
    samples = np.zeros(int(seconds * sr), dtype=np.float32)
    start = interval_samples
    while start + click_len < len(samples):
        samples[start:start + click_len] = 1.0
        start += interval_samples
    return samples


@pytest.fixture
def estimator():
    return OnsetBPMEstimator()


class TestEstimate:
    """End-to-end tempo estimation on buffers."""

    def test_click_track_120(self, estimator):
        """Clicks every 0.5 s vote 120 and 60 equally; 120 wins."""
        result = estimator.estimate(click_track(22050), SR)
        assert result is not None
        assert result.bpm == 120.0
        assert result.confidence >= 0.9

    def test_click_track_100(self, estimator):
        """Clicks every 0.6 s; the half-interval vote (200) loses the tie."""
        result = estimator.estimate(click_track(26460), SR)
        assert result is not None
        assert result.bpm == 100.0

    def test_silence_is_inconclusive(self, estimator):
        assert estimator.estimate(np.zeros(SR * 5, dtype=np.float32), SR) is None

    def test_empty_buffer(self, estimator):
        assert estimator.estimate(np.zeros(0), SR) is None

    def test_invalid_sample_rate(self, estimator):
        assert estimator.estimate(click_track(22050, seconds=5), 0) is None

    def test_only_first_seconds_analyzed(self):
        """Clicks after max_duration are ignored."""
        estimator = OnsetBPMEstimator(max_duration=5.0)
        samples = np.zeros(SR * 20, dtype=np.float32)
        late = click_track(22050, seconds=15)
        samples[SR * 5:] = late
        assert estimator.estimate(samples, SR) is None


class TestBpmFromOnsets:
    """Interval voting on onset positions."""

    def test_regular_onsets(self, estimator):
        onsets = [0, 500, 1000, 1500, 2000]
        result = estimator.bpm_from_onsets(onsets, 1000)
        assert result == BPMResult(bpm=120.0, confidence=1.0)

    def test_too_few_onsets(self, estimator):
        assert estimator.bpm_from_onsets([0, 500, 1000], 1000) is None

    def test_intervals_out_of_range(self, estimator):
        """Intervals of 0.1 s are outside [0.3, 1.0] and never vote."""
        onsets = [0, 100, 200, 300, 400, 500]
        assert estimator.bpm_from_onsets(onsets, 1000) is None

    def test_confidence_counts_outliers(self, estimator):
        """One stray interval lowers confidence, rounded to 2 decimals."""
        onsets = [0, 500, 1000, 1500, 2000, 2730]
        result = estimator.bpm_from_onsets(onsets, 1000)
        assert result.bpm == 120.0
        assert result.confidence == 0.8


class TestSignalStages:
    """Individual pipeline stages."""

    def test_lowpass_keeps_dc(self, estimator):
        x = np.full(1000, 0.5)
        assert np.allclose(estimator.lowpass(x, SR), 0.5)

    def test_lowpass_attenuates_high_frequency(self, estimator):
        t = np.arange(SR) / SR
        x = np.sin(2 * np.pi * 5000 * t)
        y = estimator.lowpass(x, SR)
        assert np.abs(y[1000:]).max() < 0.1

    def test_envelope_length(self):
        env = OnsetBPMEstimator.envelope(np.ones(10000), 441)
        assert len(env) == len(range(0, 10000 - 882, 441))
        assert np.allclose(env, 1.0)

    def test_envelope_short_input(self):
        assert len(OnsetBPMEstimator.envelope(np.ones(500), 441)) == 0

    def test_onset_strength_is_rectified(self):
        strength = OnsetBPMEstimator.onset_strength(np.array([0.0, 1.0, 0.2, 0.5]))
        assert np.allclose(strength, [1.0, 0.0, 0.3])

    def test_detect_onsets_guard_interval(self):
        """Two peaks closer than min_onset_interval yield one onset."""
        estimator = OnsetBPMEstimator(min_onset_interval=0.1)
        envelope = np.zeros(100)
        envelope[20] = 1.0
        envelope[25] = 2.0
        envelope[60] = 1.0
        onsets = estimator.detect_onsets(envelope, hop_size=441, sample_rate=SR)
        # Peaks of the difference signal sit one hop before each rise
        assert onsets == [19 * 441, 59 * 441]


class TestEstimateFile:
    """File-level estimation with the name+size cache."""

    def test_result_cached_by_content_key(self, tmp_path, estimator):
        path = tmp_path / "club.wav"
        path.write_bytes(b"0" * 128)

        with patch("automix.analyze.bpm.load_mono", return_value=(click_track(22050), SR)) as load:
            first = estimator.estimate_file(str(path))
            second = estimator.estimate_file(str(path))

        assert first.bpm == 120.0
        assert second is first
        assert load.call_count == 1

    def test_inconclusive_not_cached(self, tmp_path, estimator):
        path = tmp_path / "silence.wav"
        path.write_bytes(b"0" * 64)

        with patch("automix.analyze.bpm.load_mono", return_value=(np.zeros(SR), SR)) as load:
            assert estimator.estimate_file(str(path)) is None
            assert estimator.estimate_file(str(path)) is None

        assert load.call_count == 2


class TestDetectBpm:
    """Config-driven file entry point."""

    @pytest.fixture(autouse=True)
    def fresh_estimators(self):
        _estimators.clear()
        yield
        _estimators.clear()

    def test_detect(self, tmp_path):
        path = tmp_path / "club.wav"
        path.write_bytes(b"0" * 32)
        with patch("automix.analyze.bpm.load_mono", return_value=(click_track(22050), SR)):
            assert detect_bpm(str(path), Config.default()) == 120.0

    def test_undecodable(self, tmp_path):
        with patch("automix.analyze.bpm.load_mono", side_effect=AudioLoadError("bad file")):
            assert detect_bpm(str(tmp_path / "x.mp3"), Config.default()) is None

    def test_repeat_calls_share_cache(self, tmp_path):
        path = tmp_path / "set_opener.wav"
        path.write_bytes(b"0" * 48)
        with patch("automix.analyze.bpm.load_mono", return_value=(click_track(22050), SR)) as load:
            assert detect_bpm(str(path), Config.default()) == 120.0
            assert detect_bpm(str(path), Config.default()) == 120.0
        assert load.call_count == 1

    def test_different_settings_get_own_estimator(self):
        config = Config.default()
        config["analysis"]["threshold_k"] = 2.0
        assert shared_estimator(config) is not shared_estimator(Config.default())
        assert shared_estimator(config) is shared_estimator(config)

    def test_explicit_estimator(self, tmp_path, estimator):
        path = tmp_path / "warmup.wav"
        path.write_bytes(b"0" * 16)
        with patch("automix.analyze.bpm.load_mono", return_value=(click_track(22050), SR)) as load:
            assert detect_bpm(str(path), Config.default(), estimator=estimator) == 120.0
            assert estimator.estimate_file(str(path)).bpm == 120.0
        assert load.call_count == 1
        assert _estimators == {}
