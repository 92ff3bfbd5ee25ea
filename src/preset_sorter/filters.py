"""Review-step filtering of scan results before a sort."""

from __future__ import annotations

from typing import Iterable, List, Optional

from .models import (
    EXACT_DUPLICATE,
    KEY_MODE_MAJOR,
    KEY_MODE_MINOR,
    KEY_MODE_NOTES,
    BpmRange,
    KeyFilter,
    ScanItem,
    round_half_up,
)


def normalize_key(key: Optional[str]) -> Optional[str]:
    if not key:
        return None
    key = key.strip()
    return key[:1].upper() + key[1:].lower() if key else None


def is_minor(item: ScanItem) -> bool:
    key = normalize_key(item.metadata.key)
    return bool(key and key.endswith("m")) or item.metadata.mood == "Minor"


def matches_key(item: ScanItem, key_filter: KeyFilter) -> bool:
    if not key_filter.is_active:
        return True
    key = normalize_key(item.metadata.key)
    if key_filter.mode == KEY_MODE_MAJOR:
        if is_minor(item):
            return False
        return key is not None or item.metadata.mood == "Major"
    if key_filter.mode == KEY_MODE_MINOR:
        return is_minor(item)
    if key_filter.mode == KEY_MODE_NOTES:
        wanted = {normalize_key(note) for note in key_filter.notes}
        return key in wanted
    return True


def matches_bpm(item: ScanItem, bpm_range: BpmRange) -> bool:
    """Items without a BPM always pass."""
    bpm = item.metadata.bpm
    if not bpm or bpm <= 0:
        return True
    return bpm_range.contains(round_half_up(bpm))


def filter_items(
    items: Iterable[ScanItem],
    categories: Optional[Iterable[str]] = None,
    key_filter: Optional[KeyFilter] = None,
    bpm_range: Optional[BpmRange] = None,
    skip_duplicate_copies: bool = False,
) -> List[ScanItem]:
    """Return the items a reviewer would send to the sorter.

    Manually excluded items are always dropped; ``skip_duplicate_copies``
    also drops exact duplicates that are not the kept copy.
    """
    allowed = set(categories) if categories else None
    key_filter = key_filter or KeyFilter()
    bpm_range = bpm_range or BpmRange()
    out: List[ScanItem] = []
    for item in items:
        if item.manually_excluded:
            continue
        if allowed is not None and item.category not in allowed:
            continue
        if skip_duplicate_copies and item.duplicate_type == EXACT_DUPLICATE and not item.is_kept_copy:
            continue
        if not matches_key(item, key_filter) or not matches_bpm(item, bpm_range):
            continue
        out.append(item)
    return out
