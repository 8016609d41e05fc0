"""
Audio decoding via aubio.

Reads files as mono float32 at their native sample rate, streaming hop by
hop so only the requested duration is held in memory.
"""

import logging
from pathlib import Path
from typing import Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)

AUDIO_FORMATS = {".mp3", ".m4a", ".flac", ".wav", ".aif", ".aiff", ".ogg"}


class AudioLoadError(Exception):
    """Raised when an audio file cannot be opened or decoded."""
    pass


def content_key(file_path: str) -> str:
    """
    Identity key for analysis caches: file name + size.

    Args:
        file_path: Path to audio file.

    Returns:
        String key such as "track.mp3-5242880".
    """
    path_obj = Path(file_path)
    try:
        size = path_obj.stat().st_size
    except OSError:
        size = -1
    return f"{path_obj.name}-{size}"


def load_mono(
    file_path: str,
    max_duration: Optional[float] = None,
    hop_size: int = 512,
) -> Tuple[np.ndarray, int]:
    """
    Decode an audio file to a mono float32 buffer.

    Args:
        file_path: Path to audio file
        max_duration: Stop decoding after this many seconds (None = whole file)
        hop_size: aubio read block size

    Returns:
        Tuple of (samples, sample_rate)

    Raises:
        AudioLoadError: If the file is missing, unsupported or undecodable.
    """
    import aubio

    if not Path(file_path).exists():
        raise AudioLoadError(f"Audio file not found: {file_path}")

    try:
        # samplerate=0 keeps the native rate; reads are downmixed to mono
        source = aubio.source(file_path, samplerate=0, hop_size=hop_size)
    except Exception as e:
        raise AudioLoadError(f"Cannot open {file_path}: {e}")

    sample_rate = int(source.samplerate)
    max_samples = int(max_duration * sample_rate) if max_duration else None

    blocks = []
    total = 0
    try:
        while True:
            samples, num_read = source()
            if num_read == 0:
                break
            blocks.append(np.array(samples[:num_read], dtype=np.float32))
            total += num_read
            if max_samples is not None and total >= max_samples:
                break
            if num_read < hop_size:
                break
    except Exception as e:
        raise AudioLoadError(f"Decoding failed for {file_path}: {e}")
    finally:
        source.close()

    if not blocks:
        raise AudioLoadError(f"No audio frames in {file_path}")

    audio = np.concatenate(blocks)
    if max_samples is not None:
        audio = audio[:max_samples]

    logger.debug(f"Decoded {len(audio) / sample_rate:.1f}s of {Path(file_path).name} @ {sample_rate} Hz")
    return audio, sample_rate
