"""Two-pass scan of a folder tree into classified :class:`ScanItem` objects.

Pass one only counts eligible files so progress can be reported as a
percentage; pass two reads headers, runs filename intelligence and the
keyword classifier for every file.  Duplicate flags are applied once the
whole list is complete.
"""

from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Optional, Sequence

from . import classifier, intelligence, metadata_readers
from .duplicates import mark_duplicates
from .models import PRESET_MODE, SAMPLE_MODE, ScanItem

ProgressCallback = Callable[[int], None]

PRESET_EXTENSIONS = (
    ".fxp", ".fxb", ".vstpreset", ".vital", ".vitalbank", ".nmsv", ".ksd",
    ".nmspresetx", ".spf", ".h2p", ".hypr", ".omnisphere", ".patchwork",
    ".aupreset", ".phase", ".nki", ".nkb", ".nkc", ".nkr", ".xpf", ".obxd",
    ".adg", ".adv", ".sfz",
)

SAMPLE_EXTENSIONS = (
    ".wav", ".aif", ".aiff", ".aifc", ".flac", ".alac", ".mp3", ".aac",
    ".ogg", ".opus", ".m4a", ".rx2", ".rex", ".rex2", ".mid", ".midi",
    ".stem.mp4",
)

IGNORE_RULES = (".DS_Store", "._", "Thumbs.db", "desktop.ini")

SORT_ROOT_PREFIX = "NEW_"

PLUGIN_ID_EXTENSIONS = (".fxp", ".fxb")


class ScanRootError(FileNotFoundError):
    """The directory to scan or sort does not exist or is not a directory."""


def extensions_for(mode: str) -> Sequence[str]:
    return PRESET_EXTENSIONS if mode == PRESET_MODE else SAMPLE_EXTENSIONS


def match_extension(file_name: str, extensions: Iterable[str]) -> Optional[str]:
    """Return the longest allowed extension ``file_name`` ends with (``.stem.mp4`` beats ``.mp4``)."""
    lowered = file_name.lower()
    best: Optional[str] = None
    for ext in extensions:
        if lowered.endswith(ext) and (best is None or len(ext) > len(best)):
            best = ext
    return best


def _should_ignore(name: str) -> bool:
    for rule in IGNORE_RULES:
        if name == rule or name.startswith(rule):
            return True
    return False


def require_directory(root_dir: os.PathLike | str) -> Path:
    root = Path(root_dir)
    if not root.is_dir():
        raise ScanRootError(f"Directory not found: {root}")
    return root


def iter_eligible_files(
    root: Path,
    extensions: Sequence[str],
    skip_dir_names: Optional[Iterable[str]] = None,
) -> Iterator[Path]:
    """Yield eligible files under ``root`` in deterministic (sorted) order.

    Directories named in ``skip_dir_names`` and previous sort roots
    (``NEW_*``) are not descended when ``skip_dir_names`` is given.
    Unreadable directories are skipped silently.
    """
    skip = set(skip_dir_names) if skip_dir_names is not None else None
    for current, dirs, files in os.walk(root):
        kept = [d for d in dirs if not _should_ignore(d)]
        if skip is not None:
            kept = [d for d in kept if d not in skip and not d.startswith(SORT_ROOT_PREFIX)]
        dirs[:] = sorted(kept)
        for fname in sorted(files):
            if _should_ignore(fname) or match_extension(fname, extensions) is None:
                continue
            yield Path(current) / fname


def build_item(path: Path, mode: str, keywords: classifier.KeywordLists, use_intelligence: bool = True) -> ScanItem:
    """Read, analyse and classify one file."""
    ext = match_extension(path.name, extensions_for(mode)) or path.suffix.lower()
    item = ScanItem(
        source_path=str(path.resolve()),
        file_name=path.name,
        ext=ext,
        mode=mode,
        size=path.stat().st_size,
    )

    if mode == PRESET_MODE:
        result = classifier.classify_preset(path.name, keywords, ext)
        if ext in PLUGIN_ID_EXTENSIONS:
            item.plugin_name = metadata_readers.read_plugin_name(path)
        item.synth_label = metadata_readers.synth_label_for(ext, item.plugin_name)
        item.metadata = intelligence.extract_intelligence(path.name, PRESET_MODE, ext)
    else:
        metadata = metadata_readers.read_metadata(path)
        if use_intelligence:
            metadata.fill_missing(intelligence.extract_intelligence(path.name, SAMPLE_MODE, ext))
        item.metadata = metadata
        result = classifier.classify_sample(path.name, keywords, metadata, ext)
        item.sample_type = intelligence.detect_sample_type(path.name, metadata.duration_sec, ext)

    item.category = result.category
    item.score = result.score
    item.confidence = result.confidence
    return item


def scan(
    root_dir: os.PathLike | str,
    mode: str,
    keywords: classifier.KeywordLists,
    use_intelligence: bool = True,
    skip_category_dirs: Optional[bool] = None,
    progress_callback: Optional[ProgressCallback] = None,
    cancel_event: Optional[threading.Event] = None,
) -> List[ScanItem]:
    """Scan ``root_dir`` for preset or sample files and classify them.

    ``skip_category_dirs`` defaults to ``True`` for presets and ``False``
    for samples.  Raises :class:`ScanRootError` when ``root_dir`` is
    missing; unreadable files are skipped.
    """
    root = require_directory(root_dir)
    if skip_category_dirs is None:
        skip_category_dirs = mode == PRESET_MODE
    skip_names = list(keywords.keys()) if skip_category_dirs else None
    extensions = extensions_for(mode)

    total = sum(1 for _ in iter_eligible_files(root, extensions, skip_names))
    items: List[ScanItem] = []
    processed = 0
    for path in iter_eligible_files(root, extensions, skip_names):
        if cancel_event is not None and cancel_event.is_set():
            break
        try:
            items.append(build_item(path, mode, keywords, use_intelligence))
        except OSError:
            pass  # unreadable file: skipped from the result
        processed += 1
        if progress_callback is not None and total:
            progress_callback(min(100, processed * 100 // total))

    if progress_callback is not None and not total:
        progress_callback(100)
    return mark_duplicates(items)
