#!/usr/bin/env python3
"""
Analyze Tracks Script

Runs the auto-mix analysis over a folder of audio files and prints what the
scheduler would see for each track:
- BPM (tag value, else onset estimate) and confidence
- Camelot key from tags
- Energy map summary and drop points

Usage: python src/scripts/analyze_tracks.py [music_dir]
"""

import sys
import logging
import hashlib
import os
from pathlib import Path
from typing import Dict, Optional

# Add src/ to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from automix.config import Config
from automix.models import Track
from automix.analyze.audio import AUDIO_FORMATS, AudioLoadError
from automix.analyze.analyzer import TrackAnalyzer
from automix.analyze.bpm import OnsetBPMEstimator
from automix.analyze.energy import EnergyProfiler
from automix.generate.harmony import to_camelot

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


def _generate_track_id(file_path: str) -> str:
    """Track ID from file path, modification time and size."""
    stat = Path(file_path).stat()
    key_string = f"{file_path}:{stat.st_mtime}:{stat.st_size}"
    return hashlib.sha256(key_string.encode()).hexdigest()[:16]


def _first(tags, name: str) -> Optional[str]:
    values = tags.get(name) if tags is not None else None
    if not values:
        return None
    return str(values[0]).strip() or None


def read_tags(file_path: str) -> Dict[str, object]:
    """
    Read title, artist, BPM, key and duration with mutagen.

    Args:
        file_path: Path to audio file.

    Returns:
        Dict with title, artist, bpm, key, duration_seconds (missing values None).
    """
    import mutagen

    info = {
        "title": Path(file_path).stem,
        "artist": "",
        "bpm": None,
        "key": None,
        "duration_seconds": None,
    }

    try:
        audio = mutagen.File(file_path, easy=True)
    except Exception as e:
        logger.warning(f"Could not read tags from {file_path}: {e}")
        return info

    if audio is None:
        logger.debug(f"Unsupported format for tags: {Path(file_path).suffix}")
        return info

    if audio.info is not None and getattr(audio.info, "length", None):
        info["duration_seconds"] = float(audio.info.length)

    tags = audio.tags
    info["title"] = _first(tags, "title") or info["title"]
    info["artist"] = _first(tags, "artist") or ""

    bpm = _first(tags, "bpm")
    if bpm:
        try:
            info["bpm"] = float(bpm)
        except ValueError:
            logger.debug(f"Ignoring non-numeric BPM tag {bpm!r}")

    info["key"] = to_camelot(_first(tags, "initialkey") or _first(tags, "key"))
    return info


def discover_audio_files(library_path: str = "data/music") -> list:
    """
    Discover all audio files in a music folder.

    Args:
        library_path: Path to music directory.

    Returns:
        Sorted list of audio file paths.
    """
    lib_path = Path(library_path)

    if not lib_path.exists():
        logger.warning(f"Library path not found: {library_path}")
        return []

    audio_files = [
        p for p in lib_path.rglob("*")
        if p.is_file() and p.suffix.lower() in AUDIO_FORMATS
    ]

    logger.info(f"Found {len(audio_files)} audio files in {library_path}")
    return sorted(audio_files)


def analyze_track(file_path: str, analyzer: TrackAnalyzer) -> Optional[Track]:
    """
    Analyze a single file: tempo (when untagged) and energy profile.

    Args:
        file_path: Path to audio file.
        analyzer: TrackAnalyzer built from config.

    Returns:
        Analyzed Track, or None if the file cannot be used.
    """
    logger.info(f"Analyzing: {Path(file_path).name}")

    tags = read_tags(file_path)
    duration = tags["duration_seconds"]
    if not duration:
        logger.warning("  ✗ Unknown duration, skipping")
        return None

    confidence = None
    bpm = tags["bpm"]
    if not bpm:
        try:
            result = analyzer.estimator.estimate_file(file_path)
        except AudioLoadError as e:
            logger.warning(f"  ✗ Could not decode: {e}")
            return None
        if result is not None:
            bpm, confidence = result.bpm, result.confidence

    track = Track(
        track_id=_generate_track_id(file_path),
        title=tags["title"],
        artist=tags["artist"],
        bpm=bpm or 0.0,
        duration_seconds=duration,
        key=tags["key"],
        file_path=file_path,
    )

    analyzer.request(track)
    analyzed = analyzer.ready(track)

    conf_str = f" (confidence {confidence:.2f})" if confidence is not None else ""
    logger.info(f"  ✅ {analyzed.bpm:.0f} BPM{conf_str}, Key: {analyzed.key or 'unknown'}")
    return analyzed


def main():
    """Main analysis entrypoint."""
    try:
        logger.info("🔍 Starting track analysis...")

        config = Config.load()
        logger.info(f"Config loaded: {config}")

        analyzer = TrackAnalyzer(
            estimator=OnsetBPMEstimator.from_config(config),
            profiler=EnergyProfiler.from_config(config),
        )

        library_path = sys.argv[1] if len(sys.argv) > 1 else os.getenv("MUSIC_LIBRARY_PATH", "data/music")
        audio_files = discover_audio_files(library_path)

        if not audio_files:
            logger.warning("No audio files found!")
            return 0

        analyzed = []
        errors = 0
        for file_path in audio_files:
            track = analyze_track(str(file_path), analyzer)
            if track is None:
                errors += 1
            else:
                analyzed.append(track)

        logger.info("")
        logger.info("=" * 60)
        logger.info("📊 Analysis Summary")
        logger.info("=" * 60)
        for track in analyzed:
            peak = max(track.energy_map) if track.energy_map else 0.0
            drops = ", ".join(f"{t:.0f}s" for t in track.drop_points) or "none"
            logger.info(
                f"  {track.title[:40]:<40} | {track.bpm:6.1f} BPM | {track.key or '?':<3} | "
                f"{len(track.energy_map):3d} segs, peak {peak:3.0f} | drops: {drops}"
            )
        logger.info(f"  Analyzed:   {len(analyzed)}")
        logger.info(f"  Errors:     {errors}")

        if analyzed:
            bpms = [t.bpm for t in analyzed]
            logger.info(
                f"  BPM range:  {min(bpms):.0f} - {max(bpms):.0f} "
                f"(avg: {sum(bpms) / len(bpms):.0f})"
            )

        logger.info("=" * 60)
        logger.info("✅ Analysis complete")
        return 0

    except KeyboardInterrupt:
        logger.warning("Analysis interrupted by user")
        return 130
    except Exception as e:
        logger.error(f"Analysis failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
