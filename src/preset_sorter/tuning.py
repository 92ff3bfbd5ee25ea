"""Centralized tuning constants for keyword classification and filename intelligence.

All scoring weights, confidence curves, thresholds and sanity ranges are
defined here and referenced by the classifier, intelligence and sorter
modules (single source of truth).  ``tuning.json`` in the config
directory may override any of them through :func:`apply_overrides`.
"""

from __future__ import annotations

from typing import Any, Dict, List, Tuple

# ---------------------------------------------------------------------------
# Sample-mode keyword tiers
SAMPLE_TIER_WEIGHTS: Dict[str, int] = {
    "expanded_exact": 60,
    "raw_exact": 65,
    "contains": 50,
    "fuzzy_base": 55,
    "boundary_short": 2,
    "boundary_mid": 10,
    "boundary_long": 14,
    "boundary_xlong": 18,
    "weak_substring": 3,
}

# Bonus added to exact segment hits depending on where the segment sits.
POSITION_BONUS: Dict[str, int] = {
    "last": 20,
    "first": 12,
    "middle": 8,
}

# Fuzzy (Levenshtein) matching
FUZZY_MIN_KEYWORD_LENGTH = 5
FUZZY_SHORT_KEYWORD_LENGTH = 6
FUZZY_SHORT_MAX_EDITS = 1
FUZZY_LONG_MAX_EDITS = 2
FUZZY_MULTIPLIERS: Dict[int, float] = {1: 0.75, 2: 0.5}

CONTAINS_MIN_KEYWORD_LENGTH = 4
WEAK_SUBSTRING_MIN_KEYWORD_LENGTH = 6

# Added to the winning score when filename intelligence found a value.
METADATA_BOOST: Dict[str, int] = {
    "bpm": 5,
    "key": 5,
    "mood": 3,
}

# ---------------------------------------------------------------------------
# Preset-mode keyword tiers (no abbreviation or fuzzy tiers)
PRESET_TIER_WEIGHTS: Dict[str, int] = {
    "prefix_code": 60,
    "suffix_exact": 50,
    "suffix_contains": 30,
    "first_segment": 10,
    "boundary_short": 1,
    "boundary_mid": 4,
    "boundary_long": 6,
    "weak_substring": 2,
}

# ---------------------------------------------------------------------------
# Confidence curves: (score_start, band_width, confidence_start, confidence_span).
# Within a band confidence = start + round((score - score_start) / width * span).
SAMPLE_CONFIDENCE_BANDS: List[Tuple[int, int, int, int]] = [
    (0, 10, 0, 35),
    (10, 20, 35, 25),
    (30, 30, 60, 20),
    (60, 30, 80, 15),
    (90, 5, 95, 1),
]

PRESET_CONFIDENCE_BANDS: List[Tuple[int, int, int, int]] = [
    (0, 5, 0, 35),
    (5, 10, 35, 25),
    (15, 25, 60, 20),
    (40, 30, 80, 15),
    (70, 5, 95, 1),
]

MIDI_SCORE = 100
MIDI_CONFIDENCE = 100

# ---------------------------------------------------------------------------
# Filename intelligence / metadata
BPM_SANE_RANGE: Tuple[int, int] = (40, 250)

# Sort-time BPM filter default (full range means "no filter").
BPM_FILTER_RANGE: Tuple[int, int] = (0, 300)

ONE_SHOT_MAX_DURATION = 2.0

# Bytes scanned at the head of files whose tags live at the start.
MP3_HEAD_BYTES = 4096
MIDI_SCAN_BYTES = 65536
WAV_ID3_CHUNK_MAX = 4096
WAV_BEXT_SCAN_BYTES = 256
AIFF_TEXT_CHUNK_MAX = 512


def apply_overrides(data: Dict[str, Any]) -> None:
    """Merge numeric/dict tuning overrides into module globals (best-effort)."""
    if not isinstance(data, dict):
        return

    module_globals = globals()
    for key, value in data.items():
        if key not in module_globals:
            continue
        current = module_globals[key]
        if isinstance(current, dict) and isinstance(value, dict):
            current.update(value)
        elif isinstance(current, bool):
            continue
        elif isinstance(current, (int, float)) and isinstance(value, (int, float)):
            module_globals[key] = value
        elif isinstance(current, (list, tuple)) and isinstance(value, list):
            module_globals[key] = type(current)(
                tuple(v) if isinstance(v, list) else v for v in value
            )
