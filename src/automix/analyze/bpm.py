"""
Onset-based BPM estimation.

Pipeline:
1. One-pole low-pass (150 Hz) to keep kick/bass energy
2. RMS envelope over 20 ms windows, 10 ms hop
3. Rectified first difference = onset strength
4. Adaptive threshold (median + k * spread), peak picking with a 100 ms guard
5. Inter-onset intervals in [0.3 s, 1.0 s] vote for tempo candidates
6. Densest 2-BPM bucket wins; confidence = share of intervals agreeing

Inconclusive input yields None, never an exception.
"""

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import numpy as np
from scipy.signal import lfilter

from .audio import AudioLoadError, content_key, load_mono

logger = logging.getLogger(__name__)

BEAT_DIVISORS = (1.0, 2.0, 0.5)


@dataclass(frozen=True)
class BPMResult:
    """Detected tempo and how consistent the onsets were with it."""

    bpm: float
    confidence: float


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class OnsetBPMEstimator:
    """Tempo estimator working on raw mono PCM buffers."""

    def __init__(
        self,
        cutoff_hz: float = 150.0,
        threshold_k: float = 1.5,
        min_onset_interval: float = 0.1,
        max_duration: float = 30.0,
        match_tolerance: float = 0.05,
        interval_range=(0.3, 1.0),
        bpm_range=(60, 200),
    ):
        """
        Args:
            cutoff_hz: Low-pass cutoff applied before envelope extraction
            threshold_k: Spread multiplier for the adaptive onset threshold
            min_onset_interval: Minimum seconds between two onsets
            max_duration: Only the first N seconds of a buffer are analyzed
            match_tolerance: Seconds an interval may deviate and still count
                toward confidence
            interval_range: Inter-onset intervals kept for voting (seconds)
            bpm_range: Tempo votes kept (inclusive)
        """
        self.cutoff_hz = cutoff_hz
        self.threshold_k = threshold_k
        self.min_onset_interval = min_onset_interval
        self.max_duration = max_duration
        self.match_tolerance = match_tolerance
        self.interval_range = interval_range
        self.bpm_range = bpm_range
        self._cache: Dict[str, BPMResult] = {}

    @classmethod
    def from_config(cls, config) -> "OnsetBPMEstimator":
        """Build an estimator from the [analysis] config section."""
        section = config["analysis"]
        return cls(
            cutoff_hz=section.get("lowpass_cutoff_hz", 150.0),
            threshold_k=section.get("threshold_k", 1.5),
            min_onset_interval=section.get("min_onset_interval_seconds", 0.1),
            max_duration=section.get("max_analysis_seconds", 30),
            match_tolerance=section.get("match_tolerance_seconds", 0.05),
        )

    def lowpass(self, samples: np.ndarray, sample_rate: int) -> np.ndarray:
        """y[i] = y[i-1] + alpha * (x[i] - y[i-1]), seeded with y[0] = x[0]."""
        rc = 1.0 / (2.0 * math.pi * self.cutoff_hz)
        dt = 1.0 / sample_rate
        alpha = dt / (rc + dt)
        x = np.asarray(samples, dtype=np.float64)
        if len(x) == 0:
            return x
        zi = np.array([(1.0 - alpha) * x[0]])
        filtered, _ = lfilter([alpha], [1.0, -(1.0 - alpha)], x, zi=zi)
        return filtered

    @staticmethod
    def envelope(samples: np.ndarray, hop_size: int) -> np.ndarray:
        """RMS over windows of 2 * hop_size, stepped by hop_size."""
        window = hop_size * 2
        if len(samples) <= window:
            return np.zeros(0)
        starts = np.arange(0, len(samples) - window, hop_size)
        energy = np.concatenate(([0.0], np.cumsum(np.square(samples, dtype=np.float64))))
        sums = np.maximum(energy[starts + window] - energy[starts], 0.0)
        return np.sqrt(sums / window)

    @staticmethod
    def onset_strength(envelope: np.ndarray) -> np.ndarray:
        """Rectified first difference of the envelope."""
        if len(envelope) < 2:
            return np.zeros(0)
        return np.maximum(np.diff(envelope), 0.0)

    def detect_onsets(self, envelope: np.ndarray, hop_size: int, sample_rate: int) -> List[int]:
        """
        Pick onset positions (in samples) from an energy envelope.

        An onset is a local maximum of the onset-strength signal above
        median + k * spread, at least min_onset_interval after the last one.
        The spread is the RMS deviation around the median.
        """
        diff = self.onset_strength(envelope)
        if len(diff) < 3:
            return []

        min_interval = int(math.floor((sample_rate / hop_size) * self.min_onset_interval))

        median = float(np.sort(diff)[len(diff) // 2])
        spread = float(np.sqrt(np.mean((diff - median) ** 2)))
        threshold = median + spread * self.threshold_k

        inner = diff[1:-1]
        peaks = np.flatnonzero(
            (inner > threshold) & (inner > diff[:-2]) & (inner >= diff[2:])
        ) + 1

        onsets = []
        last_onset = -min_interval
        for i in peaks:
            if i - last_onset >= min_interval:
                onsets.append(int(i) * hop_size)
                last_onset = int(i)

        logger.debug(f"Onsets: {len(onsets)} (threshold {threshold:.5f}, {len(peaks)} peaks)")
        return onsets

    def bpm_from_onsets(self, onsets: Sequence[int], sample_rate: int) -> Optional[BPMResult]:
        """
        Vote for a tempo from inter-onset intervals.

        Args:
            onsets: Onset positions in samples, ascending
            sample_rate: Sample rate of the analyzed buffer

        Returns:
            BPMResult or None if fewer than 4 onsets / 3 usable intervals
        """
        if len(onsets) < 4:
            return None

        min_iv, max_iv = self.interval_range
        intervals = []
        for prev, cur in zip(onsets, onsets[1:]):
            interval = (cur - prev) / sample_rate
            if min_iv <= interval <= max_iv:
                intervals.append(interval)

        if len(intervals) < 3:
            return None

        min_bpm, max_bpm = self.bpm_range
        bpm_counts: Dict[int, int] = {}
        for interval in intervals:
            for divisor in BEAT_DIVISORS:
                bpm = _round_half_up(60.0 / (interval * divisor))
                if min_bpm <= bpm <= max_bpm:
                    bpm_counts[bpm] = bpm_counts.get(bpm, 0) + 1

        # Merge neighbours into 2-BPM buckets
        bpm_groups: Dict[int, int] = {}
        for bpm, count in bpm_counts.items():
            bucket = _round_half_up(bpm / 2.0) * 2
            bpm_groups[bucket] = bpm_groups.get(bucket, 0) + count

        max_count = 0
        detected_bpm = 0
        for bucket, count in bpm_groups.items():
            if count > max_count:
                max_count = count
                detected_bpm = bucket

        if detected_bpm == 0:
            return None

        expected = 60.0 / detected_bpm
        matching = 0
        for interval in intervals:
            if any(abs(interval * mult - expected) < self.match_tolerance for mult in BEAT_DIVISORS):
                matching += 1

        confidence = min(1.0, matching / len(intervals))
        return BPMResult(bpm=float(detected_bpm), confidence=round(confidence, 2))

    def estimate(self, samples: np.ndarray, sample_rate: int) -> Optional[BPMResult]:
        """
        Estimate tempo from a mono sample buffer.

        Args:
            samples: Mono float samples
            sample_rate: Sample rate in Hz

        Returns:
            BPMResult or None when analysis is inconclusive
        """
        if sample_rate <= 0 or samples is None or len(samples) == 0:
            return None

        analysis_length = min(len(samples), int(sample_rate * self.max_duration))
        samples = np.asarray(samples[:analysis_length])

        filtered = self.lowpass(samples, sample_rate)
        hop_size = int(sample_rate // 100)  # 10 ms
        envelope = self.envelope(filtered, hop_size)
        onsets = self.detect_onsets(envelope, hop_size, sample_rate)
        result = self.bpm_from_onsets(onsets, sample_rate)

        if result is None:
            logger.debug(f"BPM inconclusive ({len(onsets)} onsets)")
        else:
            logger.debug(f"BPM {result.bpm:.0f} (confidence {result.confidence:.2f})")
        return result

    def estimate_file(self, audio_path: str) -> Optional[BPMResult]:
        """
        Estimate tempo for an audio file, cached by file name + size.

        Raises:
            AudioLoadError: If the file cannot be decoded.
        """
        cache_key = content_key(audio_path)
        if cache_key in self._cache:
            return self._cache[cache_key]

        samples, sample_rate = load_mono(audio_path, max_duration=self.max_duration)
        result = self.estimate(samples, sample_rate)

        if result is not None:
            self._cache[cache_key] = result
            logger.info(
                f"✅ BPM detected: {result.bpm:.0f} "
                f"(confidence: {result.confidence:.2f}) for {audio_path}"
            )
        else:
            logger.warning(f"BPM analysis inconclusive for {audio_path}")
        return result


_estimators: Dict[tuple, OnsetBPMEstimator] = {}


def shared_estimator(config) -> OnsetBPMEstimator:
    """One estimator (and result cache) per distinct [analysis] section."""
    key = tuple(sorted(config["analysis"].items()))
    estimator = _estimators.get(key)
    if estimator is None:
        estimator = _estimators[key] = OnsetBPMEstimator.from_config(config)
    return estimator


def detect_bpm(audio_path: str, config, estimator: Optional[OnsetBPMEstimator] = None) -> Optional[float]:
    """
    Detect BPM of an audio file.

    Args:
        audio_path: Path to audio file
        config: Loaded Config (reads the [analysis] section)
        estimator: Estimator to use; the shared one for this config when None

    Returns:
        BPM value or None if the file is undecodable or analysis is inconclusive
    """
    estimator = estimator or shared_estimator(config)
    try:
        result = estimator.estimate_file(audio_path)
    except AudioLoadError as e:
        logger.warning(f"BPM detection failed for {audio_path}: {e}")
        return None
    return result.bpm if result is not None else None
