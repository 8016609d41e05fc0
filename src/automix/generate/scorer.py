"""
Compatibility Scorer: rank candidate next-tracks against the playing track.

Score components:
- Harmonic: +50 when enabled and keys are Camelot-adjacent
- Tempo: +40 (<=3%), +25 (<=6%), +10 (<=10%) relative BPM difference
- Energy: when enabled, outro of current vs intro of candidate,
  +20 (diff <=15), +10 (diff <=30)
- Jitter: uniform [0, jitter_max) to vary the running order
"""

import logging
import random
from dataclasses import dataclass
from typing import Iterable, List, Optional

from ..models import AutoMixSettings, Track
from .harmony import camelot_adjacent

logger = logging.getLogger(__name__)

HARMONIC_BONUS = 50.0
TEMPO_BONUSES = ((0.03, 40.0), (0.06, 25.0), (0.10, 10.0))
ENERGY_BONUSES = ((15.0, 20.0), (30.0, 10.0))


def tempo_ratio(current_bpm: float, candidate_bpm: float) -> float:
    """Relative tempo difference |a - b| / a."""
    if not current_bpm:
        return float("inf")
    return abs(current_bpm - candidate_bpm) / current_bpm


@dataclass(frozen=True)
class ScoredCandidate:
    """A candidate track and its score breakdown."""

    track: Track
    harmonic: float
    tempo: float
    energy: float
    jitter: float

    @property
    def base_score(self) -> float:
        """Score without the random tie-breaker."""
        return self.harmonic + self.tempo + self.energy

    @property
    def score(self) -> float:
        return self.base_score + self.jitter


class CompatibilityScorer:
    """Scores a candidate pool for the track currently playing."""

    def __init__(self, jitter_max: float = 10.0, rng: Optional[random.Random] = None):
        """
        Args:
            jitter_max: Upper bound (exclusive) of the random tie-breaker
            rng: Random source; pass a seeded Random for reproducible runs
        """
        self.jitter_max = jitter_max
        self.rng = rng or random.Random()

    @classmethod
    def from_config(cls, config, rng: Optional[random.Random] = None) -> "CompatibilityScorer":
        return cls(jitter_max=float(config.get("scoring", "jitter_max", 10.0)), rng=rng)

    @staticmethod
    def tempo_bonus(current_bpm: float, candidate_bpm: float) -> float:
        ratio = tempo_ratio(current_bpm, candidate_bpm)
        for limit, bonus in TEMPO_BONUSES:
            if ratio <= limit:
                return bonus
        return 0.0

    @staticmethod
    def energy_bonus(current: Track, candidate: Track) -> float:
        diff = abs(current.last_energy - candidate.first_energy)
        for limit, bonus in ENERGY_BONUSES:
            if diff <= limit:
                return bonus
        return 0.0

    def score(self, current: Track, candidate: Track, settings: AutoMixSettings) -> ScoredCandidate:
        """Score one candidate against the current track."""
        harmonic = 0.0
        if settings.harmonic and camelot_adjacent(current.key, candidate.key):
            harmonic = HARMONIC_BONUS

        energy = self.energy_bonus(current, candidate) if settings.energy_match else 0.0
        jitter = self.rng.random() * self.jitter_max if self.jitter_max > 0 else 0.0

        return ScoredCandidate(
            track=candidate,
            harmonic=harmonic,
            tempo=self.tempo_bonus(current.bpm, candidate.bpm),
            energy=energy,
            jitter=jitter,
        )

    def rank(
        self,
        current: Track,
        candidates: Iterable[Track],
        settings: AutoMixSettings,
    ) -> List[ScoredCandidate]:
        """Score every candidate, best first."""
        scored = [self.score(current, c, settings) for c in candidates]
        scored.sort(key=lambda s: s.score, reverse=True)

        for s in scored:
            logger.debug(
                f"Candidate {s.track.track_id}: harmonic={s.harmonic:.0f}, "
                f"tempo={s.tempo:.0f}, energy={s.energy:.0f}, score={s.score:.1f}"
            )
        return scored

    def choose_next(
        self,
        current: Track,
        candidates: Iterable[Track],
        settings: AutoMixSettings,
    ) -> Optional[ScoredCandidate]:
        """
        Pick the highest-scoring candidate.

        Returns:
            ScoredCandidate, or None if the pool is empty
        """
        ranked = self.rank(current, candidates, settings)
        if not ranked:
            logger.debug("No candidates to score")
            return None

        best = ranked[0]
        logger.debug(
            f"Chose {best.track.track_id} (score {best.score:.1f}, "
            f"BPM {best.track.bpm}, key {best.track.key}, pool {len(ranked)})"
        )
        return best
