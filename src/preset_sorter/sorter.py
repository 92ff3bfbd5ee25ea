"""Move reviewed scan items into category folders and record a move log.

Layout produced under the source directory::

    <source>/NEW_<base>[_Minor][_120-130BPM]/<Category>/<file>      (presets)
    <source>/NEW_<base>/<base> [Minor, 120-130BPM]/<Category>/<file> (samples)

The sample-mode label folder only appears when a key or BPM filter is
active.  Name collisions get `` (1)``, `` (2)`` ... before the extension.
"""

from __future__ import annotations

import datetime
import os
import re
import threading
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Tuple, Union

from .config_service import save_json_atomic
from .models import (
    MISC_CATEGORY,
    PRESET_MODE,
    BpmRange,
    KeyFilter,
    MoveLog,
    MoveRecord,
    ScanItem,
    SortResult,
)
from .scanner import SORT_ROOT_PREFIX, require_directory

LogFn = Callable[[str], None]
ProgressCallback = Callable[[int], None]


def destination_names(
    source_dir: Path,
    mode: str,
    key_filter: Optional[KeyFilter] = None,
    bpm_range: Optional[BpmRange] = None,
) -> Tuple[str, Optional[str]]:
    """Return ``(sort_root_name, label_folder_name_or_None)`` for a sort."""
    base = source_dir.name
    key_filter = key_filter or KeyFilter()
    bpm_range = bpm_range or BpmRange()

    if mode == PRESET_MODE:
        parts = [f"{SORT_ROOT_PREFIX}{base}"]
        if key_filter.suffix():
            parts.append(key_filter.suffix())
        if bpm_range.label():
            parts.append(bpm_range.label())
        return "_".join(parts), None

    labels = [label for label in (key_filter.label(), bpm_range.label()) if label]
    label_folder = f"{base} [{', '.join(labels)}]" if labels else None
    return f"{SORT_ROOT_PREFIX}{base}", label_folder


def category_folder_name(category: str) -> str:
    cleaned = re.sub(r"[\\/:*?\"<>|]", "-", category or "").strip().strip(".")
    return cleaned or MISC_CATEGORY


def split_extension(file_name: str, ext: str = "") -> Tuple[str, str]:
    """Split ``file_name`` into ``(stem, extension)`` honouring compound extensions."""
    if ext and file_name.lower().endswith(ext.lower()) and len(file_name) > len(ext):
        return file_name[: -len(ext)], file_name[-len(ext):]
    stem, dot, suffix = file_name.rpartition(".")
    if not dot or not stem:
        return file_name, ""
    return stem, dot + suffix


def resolve_collision(target: Path, ext: str = "") -> Path:
    """Return ``target`` or the first free ``"<stem> (n)<ext>"`` next to it."""
    if not target.exists():
        return target
    stem, suffix = split_extension(target.name, ext)
    counter = 1
    while True:
        candidate = target.with_name(f"{stem} ({counter}){suffix}")
        if not candidate.exists():
            return candidate
        counter += 1


def _ensure_dir(path: Path, created: List[str]) -> None:
    """Create ``path`` (and parents), remembering every folder that did not exist."""
    missing: List[Path] = []
    probe = path
    while not probe.exists():
        missing.append(probe)
        if probe.parent == probe:
            break
        probe = probe.parent
    path.mkdir(parents=True, exist_ok=True)
    for folder in reversed(missing):
        if str(folder) not in created:
            created.append(str(folder))


def execute_sort(
    source_dir: Union[str, os.PathLike],
    items: Iterable[ScanItem],
    mode: str,
    move_log_path: Union[str, os.PathLike],
    key_filter: Optional[KeyFilter] = None,
    bpm_range: Optional[BpmRange] = None,
    progress_callback: Optional[ProgressCallback] = None,
    cancel_event: Optional[threading.Event] = None,
    log: Optional[LogFn] = None,
) -> SortResult:
    """Move every non-excluded item into ``<sort root>/<category>``.

    A failed move is logged and counted; the batch continues.  The move
    log is written (atomically, replacing any previous log) even when the
    sort is cancelled part way.
    """
    source = require_directory(source_dir).resolve()
    items = list(items)
    root_name, label_folder = destination_names(source, mode, key_filter, bpm_range)
    sort_root = source / root_name
    category_parent = sort_root / label_folder if label_folder else sort_root

    def _log(msg: str) -> None:
        if log is not None:
            log(msg)

    created: List[str] = []
    moved: List[MoveRecord] = []
    failed = 0
    skipped = 0
    cancelled = False
    total = len(items)

    for index, item in enumerate(items):
        if cancel_event is not None and cancel_event.is_set():
            cancelled = True
            _log("Sort cancelled")
            break
        if item.manually_excluded:
            skipped += 1
        else:
            src = Path(item.source_path)
            try:
                target_dir = category_parent / category_folder_name(item.category)
                _ensure_dir(target_dir, created)
                dst = resolve_collision(target_dir / src.name, item.ext)
                os.rename(src, dst)
                moved.append(MoveRecord(source=str(src), destination=str(dst)))
            except OSError as exc:
                failed += 1
                _log(f"Move failed: {src}: {exc}")
        if progress_callback is not None:
            progress_callback((index + 1) * 100 // total)

    move_log = MoveLog(
        moved=moved,
        created_folders=created,
        source_dir=str(source),
        sort_root=str(sort_root),
        mode=mode,
        timestamp=datetime.datetime.now().isoformat(),
    )
    save_json_atomic(move_log.to_dict(), Path(move_log_path))
    _log(f"Sorted {len(moved)} file(s) into {sort_root} (failed={failed}, skipped={skipped})")

    return {
        "count": len(moved),
        "failed": failed,
        "skipped": skipped,
        "created_folders": created,
        "sort_root": str(sort_root),
        "move_log": str(move_log_path),
        "cancelled": cancelled,
    }
