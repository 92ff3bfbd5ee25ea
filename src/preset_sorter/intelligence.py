"""Filename intelligence: BPM, musical key and mood guessed from a file name.

Also decides whether a sample is a one-shot or a loop from its duration
and naming.  Everything here is pure string work; header metadata from
:mod:`preset_sorter.metadata_readers` always takes precedence and these
values only fill the gaps.
"""

from __future__ import annotations

import re
from typing import List, Optional, Tuple

from . import tuning
from .models import PRESET_MODE, SAMPLE_MODE, AudioMetadata

ONE_SHOT = "one-shot"
LOOP = "loop"
UNKNOWN = "unknown"

_SEPARATORS = re.compile(r"[_\-.]+")

BPM_PATTERNS: List[re.Pattern] = [
    re.compile(r"\bbpm\s*(\d{2,3})\b"),
    re.compile(r"\b(\d{2,3})\s?bpm\b"),
    re.compile(r"(?:^|\s)\((\d{2,3})\)"),
    re.compile(r"(?:^|\s)(\d{2,3})(?=\s|$)"),
]

_KEY_RE = re.compile(
    r"\b([a-g](?:#|b|sharp|flat)?)\s*(maj(?:or)?|min(?:or)?|m(?!a))?(?![a-z0-9])"
)

# Mood buckets in priority order; the first bucket with a hit wins.
SAMPLE_MOODS: List[Tuple[str, List[str]]] = [
    ("Dark", ["dark", "grim", "gloom", "heavy", "trap", "hard", "dirty", "aggressive"]),
    ("Bright", ["happy", "bright", "uplift", "plucky", "pop", "fun", "cheerful", "upbeat"]),
    ("Chill", ["ambient", "chill", "soft", "warm", "lush", "dream", "mellow", "relax"]),
    ("Epic", ["epic", "cinematic", "dramatic", "tension", "powerful", "massive"]),
]

PRESET_MOODS: List[Tuple[str, List[str]]] = [
    ("Dark", ["dark", "grim", "evil", "horror", "gloom", "heavy"]),
    ("Ambient", ["ambient", "atmos", "chill", "dream", "space", "calm", "soft"]),
]

ONE_SHOT_WORDS = ["one shot", "oneshot", "1shot", "hit", "stab", "single", "shot", "note"]
LOOP_WORDS = ["loop", "lp", "beat", "groove", "phrase", "riff", "progression"]


def normalize_name(file_name: str, ext: str = "") -> str:
    """Lower-case ``file_name`` without ``ext`` and turn ``_ - .`` runs into spaces."""
    name = file_name
    if ext and name.lower().endswith(ext.lower()):
        name = name[: -len(ext)]
    return _SEPARATORS.sub(" ", name.lower()).strip()


def _has_word(text: str, word: str) -> bool:
    return re.search(r"(?<![a-z0-9])" + re.escape(word) + r"(?![a-z0-9])", text) is not None


def extract_bpm(text: str) -> Optional[float]:
    low, high = tuning.BPM_SANE_RANGE
    for pattern in BPM_PATTERNS:
        for match in pattern.finditer(text):
            value = int(match.group(1))
            if low <= value <= high:
                return float(value)
    return None


def _format_note(base: str) -> str:
    base = base.replace("sharp", "#").replace("flat", "b")
    return base[0].upper() + base[1:]


def extract_key(text: str) -> Tuple[Optional[str], Optional[str]]:
    """Return ``(key, mood)``; ``mood`` is ``"Major"``/``"Minor"`` only when a mode was found."""
    match = _KEY_RE.search(text)
    if not match:
        return None, None
    base, mode = match.group(1), match.group(2)
    if mode is None:
        context = re.search(
            r"(?<![a-z0-9])" + re.escape(base) + r"\s+(major|minor|maj|min|m)(?![a-z0-9])",
            text,
        )
        if context:
            mode = context.group(1)
    note = _format_note(base)
    if mode is None:
        return note, None
    if mode.startswith("maj"):
        return note, "Major"
    return note + "m", "Minor"


def extract_mood(text: str, mode: str = SAMPLE_MODE) -> Optional[str]:
    buckets = PRESET_MOODS if mode == PRESET_MODE else SAMPLE_MOODS
    for mood, words in buckets:
        if any(_has_word(text, word) for word in words):
            return mood
    return None


def extract_intelligence(file_name: str, mode: str = SAMPLE_MODE, ext: str = "") -> AudioMetadata:
    """Guess BPM, key and mood from ``file_name``.

    Example: ``"Dark_Loop_120bpm_Cm.wav"`` gives bpm 120, key ``"Cm"``
    and mood ``"Minor"`` (a key mode beats the keyword buckets).
    """
    text = normalize_name(file_name, ext)
    key, key_mood = extract_key(text)
    return AudioMetadata(
        bpm=extract_bpm(text),
        key=key,
        mood=key_mood or extract_mood(text, mode),
    )


def detect_sample_type(file_name: str, duration_sec: Optional[float] = None, ext: str = "") -> str:
    if duration_sec is not None and 0 < duration_sec <= tuning.ONE_SHOT_MAX_DURATION:
        return ONE_SHOT
    text = normalize_name(file_name, ext)
    if any(_has_word(text, word) for word in ONE_SHOT_WORDS):
        return ONE_SHOT
    if any(_has_word(text, word) for word in LOOP_WORDS):
        return LOOP
    if duration_sec is not None and duration_sec > tuning.ONE_SHOT_MAX_DURATION:
        return LOOP
    return UNKNOWN

