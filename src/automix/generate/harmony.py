"""
Camelot wheel helpers.

Keys are given per track (no detection here). Standard names such as
"A minor", "Am" or "F#" are converted to Camelot codes (1A-12B).
"""

import logging
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

STANDARD_TO_CAMELOT_MAJOR = {
    "C": "8B",
    "C#": "3B",
    "Db": "3B",
    "D": "10B",
    "D#": "5B",
    "Eb": "5B",
    "E": "12B",
    "F": "7B",
    "F#": "2B",
    "Gb": "2B",
    "G": "9B",
    "G#": "4B",
    "Ab": "4B",
    "A": "11B",
    "A#": "6B",
    "Bb": "6B",
    "B": "1B",
}

STANDARD_TO_CAMELOT_MINOR = {
    "C": "5A",
    "C#": "12A",
    "Db": "12A",
    "D": "7A",
    "D#": "2A",
    "Eb": "2A",
    "E": "9A",
    "F": "4A",
    "F#": "11A",
    "Gb": "11A",
    "G": "6A",
    "G#": "1A",
    "Ab": "1A",
    "A": "8A",
    "A#": "3A",
    "Bb": "3A",
    "B": "10A",
}


def parse_camelot(code: str) -> Tuple[int, str]:
    """
    Split a Camelot code into (number, letter).

    Args:
        code: e.g. "8A", "12b"

    Returns:
        Tuple such as (8, "A")

    Raises:
        ValueError: If the code is not one of the 24 Camelot keys.
    """
    text = str(code).strip().upper()
    if len(text) < 2 or text[-1] not in ("A", "B"):
        raise ValueError(f"Malformed Camelot key: {code!r}")
    try:
        number = int(text[:-1])
    except ValueError:
        raise ValueError(f"Malformed Camelot key: {code!r}")
    if not 1 <= number <= 12:
        raise ValueError(f"Camelot number out of range: {code!r}")
    return number, text[-1]


def camelot_adjacent(key1: Optional[str], key2: Optional[str]) -> bool:
    """
    Check if two Camelot keys mix harmonically.

    Compatible keys are:
    - Same key (e.g., 8A and 8A)
    - Same number, other letter (relative major/minor, 8A and 8B)
    - Number one step away on the wheel, same letter (8A and 9A, 12A and 1A)

    Unknown or malformed keys are never adjacent.
    """
    if not key1 or not key2:
        return False

    try:
        num1, letter1 = parse_camelot(key1)
        num2, letter2 = parse_camelot(key2)
    except ValueError:
        logger.debug(f"Malformed key: {key1} or {key2}, not adjacent")
        return False

    if num1 == num2:
        return True

    if letter1 != letter2:
        return False

    return (num1 % 12) + 1 == num2 or (num2 % 12) + 1 == num1


def to_camelot(key: Optional[str]) -> Optional[str]:
    """
    Normalise a key name to Camelot notation.

    Accepts Camelot codes ("8a" -> "8A"), "A minor", "A major", "Am", "F#m"
    and bare notes (treated as major). Returns None for anything else.
    """
    if not key:
        return None

    text = str(key).strip()
    try:
        number, letter = parse_camelot(text)
        return f"{number}{letter}"
    except ValueError:
        pass

    parts = text.split()
    note = parts[0]
    mode = parts[1].lower() if len(parts) > 1 else "major"

    if len(parts) == 1 and len(note) > 1 and note.endswith("m"):
        note, mode = note[:-1], "minor"

    note = note[:1].upper() + note[1:]
    mapping = STANDARD_TO_CAMELOT_MINOR if mode.startswith("min") else STANDARD_TO_CAMELOT_MAJOR
    camelot_key = mapping.get(note)
    if camelot_key is None:
        logger.debug(f"Unknown key name: {key}")
    return camelot_key
