"""Duplicate detection over a completed scan result.

Items are grouped by lower-cased file name, then by size.  Same name and
same size is an *exact* duplicate (the first one in scan order is the
kept copy); same name with a unique size is a *variant* and is never
treated as disposable.
"""

from __future__ import annotations

from typing import Dict, List

from .models import EXACT_DUPLICATE, VARIANT_DUPLICATE, ScanItem


def mark_duplicates(items: List[ScanItem]) -> List[ScanItem]:
    """Flag duplicates in place and return ``items``; never touches disk."""
    by_name: Dict[str, List[ScanItem]] = {}
    for item in items:
        item.is_duplicate = False
        item.duplicate_type = None
        item.is_kept_copy = False
        by_name.setdefault(item.file_name.lower(), []).append(item)

    for group in by_name.values():
        if len(group) < 2:
            continue
        by_size: Dict[int, List[ScanItem]] = {}
        for item in group:
            by_size.setdefault(item.size, []).append(item)
        for same_size in by_size.values():
            if len(same_size) > 1:
                for index, item in enumerate(same_size):
                    item.is_duplicate = True
                    item.duplicate_type = EXACT_DUPLICATE
                    item.is_kept_copy = index == 0
            else:
                item = same_size[0]
                item.is_duplicate = True
                item.duplicate_type = VARIANT_DUPLICATE
                item.is_kept_copy = False
    return items
