"""
Lazy track analysis behind futures.

The scheduler asks for a track's profile with request(); the work runs on
an executor and the scheduler polls ready() on later ticks. With the
default ImmediateExecutor the result is available on the same tick.
"""

import logging
from concurrent.futures import Executor, Future
from typing import Dict, Iterable, Optional, Set

from ..models import Track
from .audio import AudioLoadError, load_mono
from .bpm import OnsetBPMEstimator
from .energy import EnergyProfiler

logger = logging.getLogger(__name__)


class ImmediateExecutor(Executor):
    """Runs submitted work synchronously and returns a completed future."""

    def submit(self, fn, *args, **kwargs):
        future = Future()
        try:
            result = fn(*args, **kwargs)
        except Exception as e:
            future.set_exception(e)
        else:
            future.set_result(result)
        return future


class TrackAnalyzer:
    """Computes and caches energy profiles (and missing BPMs) per track id."""

    def __init__(
        self,
        estimator: Optional[OnsetBPMEstimator] = None,
        profiler: Optional[EnergyProfiler] = None,
        executor: Optional[Executor] = None,
        decode_audio: bool = True,
    ):
        """
        Args:
            estimator: Tempo estimator for tracks without a BPM
            profiler: Energy profiler
            executor: Where analysis runs (default: synchronously)
            decode_audio: Decode track files; False forces the stylised envelope
        """
        self.estimator = estimator or OnsetBPMEstimator()
        self.profiler = profiler or EnergyProfiler()
        self.executor = executor or ImmediateExecutor()
        self.decode_audio = decode_audio
        self._futures: Dict[str, Future] = {}

    def request(self, track: Track) -> Future:
        """
        Start (or reuse) analysis for a track.

        Already-analyzed tracks resolve immediately without touching the executor.
        """
        existing = self._futures.get(track.track_id)
        if existing is not None:
            return existing

        if track.is_analyzed:
            future = Future()
            future.set_result(track)
        else:
            logger.debug(f"Analysis requested for {track.track_id}")
            future = self.executor.submit(self._analyze, track)

        self._futures[track.track_id] = future
        return future

    def ready(self, track: Track) -> Optional[Track]:
        """
        Analyzed copy of the track if its analysis has finished, else None.

        A failed analysis resolves to the track unchanged so callers never
        wait on it forever.
        """
        future = self._futures.get(track.track_id)
        if future is None or not future.done():
            return None

        if future.cancelled():
            return track

        error = future.exception()
        if error is not None:
            logger.error(f"Analysis failed for {track.track_id}: {error}", exc_info=error)
            return track
        return future.result()

    def forget(self, track_id: str) -> None:
        """Drop a cached result, e.g. after the library replaced the file."""
        future = self._futures.pop(track_id, None)
        if future is not None:
            future.cancel()

    def retain(self, track_ids: Iterable[str]) -> None:
        """Forget every cached track whose id is not in track_ids."""
        keep = set(track_ids)
        stale = [track_id for track_id in self._futures if track_id not in keep]
        for track_id in stale:
            self.forget(track_id)
        if stale:
            logger.debug(f"Dropped {len(stale)} cached analyses")

    @property
    def cached_ids(self) -> Set[str]:
        return set(self._futures)

    def shutdown(self) -> None:
        for future in self._futures.values():
            future.cancel()
        self.executor.shutdown(wait=False)

    def _analyze(self, track: Track) -> Track:
        samples = None
        sample_rate = None

        if self.decode_audio and track.file_path:
            try:
                samples, sample_rate = load_mono(track.file_path)
            except AudioLoadError as e:
                logger.warning(f"No usable audio for {track.track_id}, using stylised profile: {e}")

        bpm = track.bpm
        if not bpm or bpm <= 0:
            bpm = self.profiler.fallback_bpm
            if samples is not None:
                result = self.estimator.estimate(samples, sample_rate)
                if result is not None:
                    bpm = result.bpm
                else:
                    logger.warning(f"BPM inconclusive for {track.track_id}; using {bpm:.0f}")

        profile = self.profiler.profile(track.duration_seconds, bpm, samples)
        logger.info(
            f"✅ Analyzed {track.track_id}: {len(profile.energy_map)} segments, "
            f"{len(profile.drop_points)} drops"
            f"{' (stylised)' if profile.synthetic else ''}"
        )
        return track.with_profile(profile.energy_map, profile.drop_points, bpm=bpm)
