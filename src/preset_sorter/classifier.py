"""Deterministic keyword classification for samples and presets.

A file name is split into segments and every dictionary category is
scored against them.  Sample mode uses five tiers per keyword (first
tier that fires wins for that keyword):

1. an abbreviation-expanded segment equals the keyword
2. a raw segment equals the keyword
3. a segment contains the keyword (keywords longer than 3 chars)
4. a segment is a near miss by Levenshtein distance (keywords of 5+ chars)
5. the keyword appears on a word boundary of the whole name, or as a weak
   substring for long keywords

Preset mode skips abbreviations and fuzzy matching; its strongest tier
is the pack prefix code (``"ww flute 01"`` -> ``"ww"``).

Scores per category are summed, the best category wins (earlier
categories win ties) and the score is mapped onto a 0-100 confidence.
All weights live in :mod:`preset_sorter.tuning`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from . import tuning
from .models import (
    MIDI_CATEGORY,
    MISC_CATEGORY,
    AudioMetadata,
    round_half_up,
)

ABBREVIATIONS: Dict[str, str] = {
    "kck": "kick",
    "kik": "kick",
    "kk": "kick",
    "bd": "kick",
    "kd": "kick",
    "bss": "bass",
    "bs": "bass",
    "808": "bass",
    "sub": "bass",
    "sn": "snare",
    "snr": "snare",
    "sd": "snare",
    "hh": "hihat",
    "hat": "hihat",
    "oh": "hihat",
    "ch": "hihat",
    "hihaat": "hihat",
    "clp": "clap",
    "cp": "clap",
    "prc": "percussion",
    "perc": "percussion",
    "percs": "percussion",
    "prcs": "percussion",
    "vox": "vocal",
    "voc": "vocal",
    "sfx": "fx",
    "drm": "drum",
    "dl": "drum loop",
    "lp": "loop",
    "mel": "melody",
    "cho": "chord",
    "amb": "ambience",
    "atm": "ambience",
    "gt": "guitar",
    "gtr": "guitar",
    "pno": "piano",
    "kbd": "piano",
    "str": "strings",
    "brs": "brass",
    "cym": "cymbal",
    "textue": "texture",
    "textur": "texture",
    "tex": "texture",
}

MIDI_EXTENSIONS = (".mid", ".midi")

_SEGMENT_SPLIT = re.compile(r"[_\-.=()\[\]]+")
_PREFIX_CODE = re.compile(r"^([a-z]{2,4})\s")

KeywordLists = Dict[str, List[str]]


@dataclass
class Classification:
    category: str
    score: int
    confidence: int


def levenshtein(a: str, b: str) -> int:
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(
                min(
                    previous[j] + 1,
                    current[j - 1] + 1,
                    previous[j - 1] + (ca != cb),
                )
            )
        previous = current
    return previous[-1]


def split_segments(file_name: str, ext: str = "") -> List[str]:
    """Lower-case segments of ``file_name`` with ``ext`` (or the last suffix) removed."""
    if ext and file_name.lower().endswith(ext.lower()) and len(file_name) > len(ext):
        stem = file_name[: -len(ext)]
    else:
        stem = file_name.rsplit(".", 1)[0] if "." in file_name else file_name
    return [seg.strip() for seg in _SEGMENT_SPLIT.split(stem.lower()) if seg.strip()]


def normalize_keywords(words: Iterable[str]) -> List[str]:
    """Lower-case, strip spaces/underscores and de-duplicate (order kept)."""
    seen: set[str] = set()
    out: List[str] = []
    for word in words:
        token = str(word).lower().strip(" _\t")
        if not token or token in seen:
            continue
        seen.add(token)
        out.append(token)
    return out


def _position_bonus(index: int, count: int) -> int:
    if index == count - 1:
        return tuning.POSITION_BONUS["last"]
    if index == 0:
        return tuning.POSITION_BONUS["first"]
    return tuning.POSITION_BONUS["middle"]


def _boundary_pattern(word: str) -> re.Pattern:
    return re.compile(r"(?<![a-z0-9])" + re.escape(word) + r"(?![a-z0-9])")


def confidence_from_score(score: float, bands: Optional[List[Tuple[int, int, int, int]]] = None) -> int:
    """Map a raw score onto 0-100 with a piecewise-linear curve."""
    if score <= 0:
        return 0
    bands = bands if bands is not None else tuning.SAMPLE_CONFIDENCE_BANDS
    chosen = bands[0]
    for band in bands:
        if score >= band[0]:
            chosen = band
    start, width, base, span = chosen
    return min(100, base + round_half_up((score - start) / width * span))


def metadata_boost(metadata: Optional[AudioMetadata]) -> int:
    if metadata is None:
        return 0
    boost = 0
    if metadata.bpm:
        boost += tuning.METADATA_BOOST["bpm"]
    if metadata.key:
        boost += tuning.METADATA_BOOST["key"]
    if metadata.mood:
        boost += tuning.METADATA_BOOST["mood"]
    return boost


# ------------------------------------------------------------------
# Sample mode


def _score_sample_keyword(word: str, segments: List[str], expanded: List[str], text: str) -> int:
    weights = tuning.SAMPLE_TIER_WEIGHTS
    count = len(segments)

    for index, seg in enumerate(expanded):
        if seg == word:
            return weights["expanded_exact"] + _position_bonus(index, count)

    for index, seg in enumerate(segments):
        if seg == word:
            return weights["raw_exact"] + _position_bonus(index, count)

    if len(word) >= tuning.CONTAINS_MIN_KEYWORD_LENGTH:
        if any(word in seg for seg in segments):
            return weights["contains"]

    if len(word) >= tuning.FUZZY_MIN_KEYWORD_LENGTH:
        if len(word) <= tuning.FUZZY_SHORT_KEYWORD_LENGTH:
            max_edits = tuning.FUZZY_SHORT_MAX_EDITS
        else:
            max_edits = tuning.FUZZY_LONG_MAX_EDITS
        for seg in segments:
            if abs(len(seg) - len(word)) > max_edits + 1:
                continue
            distance = levenshtein(seg, word)
            if 0 < distance <= max_edits:
                multiplier = tuning.FUZZY_MULTIPLIERS.get(distance, 0.0)
                return round_half_up((weights["fuzzy_base"] + len(word)) * multiplier)

    if _boundary_pattern(word).search(text):
        if len(word) <= 2:
            return weights["boundary_short"]
        if len(word) <= 4:
            return weights["boundary_mid"]
        if len(word) <= 7:
            return weights["boundary_long"] + len(word)
        return weights["boundary_xlong"] + len(word)
    if len(word) >= tuning.WEAK_SUBSTRING_MIN_KEYWORD_LENGTH and word in text:
        return weights["weak_substring"]
    return 0


def classify_sample(
    file_name: str,
    keywords: KeywordLists,
    metadata: Optional[AudioMetadata] = None,
    ext: str = "",
) -> Classification:
    """Classify a sample file name against ``{category: [keywords]}``.

    ``ext`` is the matched extension (``".stem.mp4"``); without it only
    the last suffix is dropped.  MIDI files short-circuit to the ``MIDI``
    category at full confidence.
    """
    lowered = file_name.lower()
    if lowered.endswith(MIDI_EXTENSIONS):
        return Classification(MIDI_CATEGORY, tuning.MIDI_SCORE, tuning.MIDI_CONFIDENCE)

    segments = split_segments(file_name, ext)
    expanded = [ABBREVIATIONS.get(seg, seg) for seg in segments]
    text = " ".join(segments)

    best_category = MISC_CATEGORY
    best_score = 0
    for category, words in keywords.items():
        total = 0
        for word in normalize_keywords(words):
            total += _score_sample_keyword(word, segments, expanded, text)
        if total > best_score:
            best_category, best_score = category, total

    if best_score <= 0:
        return Classification(MISC_CATEGORY, 0, 0)
    final_score = best_score + metadata_boost(metadata)
    return Classification(best_category, final_score, confidence_from_score(final_score))


# ------------------------------------------------------------------
# Preset mode


def _score_preset_keyword(word: str, segments: List[str], prefix: Optional[str], text: str) -> int:
    weights = tuning.PRESET_TIER_WEIGHTS
    if prefix is not None and prefix == word:
        return weights["prefix_code"]

    score = 0
    suffix = segments[-1] if segments else ""
    if suffix == word:
        score += weights["suffix_exact"]
    elif len(word) >= tuning.CONTAINS_MIN_KEYWORD_LENGTH and word in suffix:
        score += weights["suffix_contains"]
    elif _boundary_pattern(word).search(text):
        if len(word) <= 2:
            score += weights["boundary_short"]
        elif len(word) <= 4:
            score += weights["boundary_mid"]
        else:
            score += weights["boundary_long"] + len(word)
    elif len(word) >= tuning.WEAK_SUBSTRING_MIN_KEYWORD_LENGTH and word in text:
        score += weights["weak_substring"]

    if len(segments) > 1 and len(word) >= 3 and segments[0] == word:
        score += weights["first_segment"]
    return score


def classify_preset(file_name: str, keywords: KeywordLists, ext: str = "") -> Classification:
    """Classify a preset file name; pack prefix codes (``"LD Saw"``) score highest."""
    segments = split_segments(file_name, ext)
    text = " ".join(segments)
    prefix_match = _PREFIX_CODE.match(text)
    prefix = prefix_match.group(1) if prefix_match else None

    best_category = MISC_CATEGORY
    best_score = 0
    for category, words in keywords.items():
        total = 0
        for word in normalize_keywords(words):
            total += _score_preset_keyword(word, segments, prefix, text)
        if total > best_score:
            best_category, best_score = category, total

    if best_score <= 0:
        return Classification(MISC_CATEGORY, 0, 0)
    return Classification(
        best_category,
        best_score,
        confidence_from_score(best_score, tuning.PRESET_CONFIDENCE_BANDS),
    )
