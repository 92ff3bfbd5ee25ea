"""Core engine for Preset Sorter.

The :class:`SorterEngine` is the single entry point a caller (the CLI,
or a GUI running it on a worker thread) uses to scan a folder, sort the
reviewed results, undo the last sort and edit keyword dictionaries.

Design notes / safety defaults:
- Only one operation runs at a time per engine; a second call while one
  is running raises :class:`OperationInProgressError` instead of
  queueing.
- Per-file problems never abort an operation: unreadable files are left
  out of scans, failed moves are logged and counted.
- A missing root directory raises :class:`~preset_sorter.scanner.ScanRootError`.
- Keyword dictionaries are persisted after every edit.

This engine is UI-agnostic and depends only on
:class:`preset_sorter.config_service.ConfigService`.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Union

from . import scanner, sorter, undo
from .config_service import ConfigService
from .keyword_service import KeywordService
from .models import (
    PRESET_MODE,
    SAMPLE_MODE,
    BpmRange,
    KeyFilter,
    ScanItem,
    SortResult,
    UndoResult,
)

ProgressCallback = Callable[[int], None]
ItemsArg = Iterable[Union[ScanItem, Dict[str, Any]]]


class OperationInProgressError(RuntimeError):
    """Another scan, sort, undo or dictionary save is still running."""


@dataclass
class SorterEngine:
    config_service: ConfigService
    log_callback: Optional[Callable[[str], None]] = None
    log_to_console: bool = False
    config: Dict[str, Any] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        self.config_service.apply_tuning_overrides()
        if not self.config:
            self.config = self.config_service.load_config()

    # ------------------------------------------------------------------
    # Helpers

    def _emit_log(self, msg: str) -> None:
        if self.log_to_console:
            print(msg)
        if self.log_callback is not None:
            try:
                self.log_callback(msg)
            except Exception:
                pass

    @contextmanager
    def _operation(self, name: str) -> Iterator[None]:
        if not self._lock.acquire(blocking=False):
            raise OperationInProgressError(f"Cannot start {name}: another operation is in progress")
        try:
            yield
        finally:
            self._lock.release()

    def _skip_category_dirs(self, mode: str, override: Optional[bool]) -> bool:
        if override is not None:
            return override
        configured = self.config.get("skip_category_dirs", {})
        return bool(configured.get(mode, mode == PRESET_MODE))

    @staticmethod
    def _coerce_items(items: ItemsArg) -> List[ScanItem]:
        return [item if isinstance(item, ScanItem) else ScanItem.from_dict(item) for item in items]

    # ------------------------------------------------------------------
    # Scan

    def _scan(
        self,
        mode: str,
        root_dir,
        use_intelligence: bool,
        skip_category_dirs: Optional[bool],
        progress_callback: Optional[ProgressCallback],
        cancel_event: Optional[threading.Event],
    ) -> List[ScanItem]:
        with self._operation(f"{mode} scan"):
            keywords = KeywordService(self.config_service.load_keywords(mode)).keyword_lists()
            self._emit_log(f"Scan started: mode={mode} root={root_dir}")
            items = scanner.scan(
                root_dir,
                mode,
                keywords,
                use_intelligence=use_intelligence,
                skip_category_dirs=self._skip_category_dirs(mode, skip_category_dirs),
                progress_callback=progress_callback,
                cancel_event=cancel_event,
            )
            duplicates = sum(1 for item in items if item.is_duplicate)
            self._emit_log(f"Scan finished: {len(items)} file(s), {duplicates} duplicate(s)")
            return items

    def scan_presets(
        self,
        root_dir,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
        skip_category_dirs: Optional[bool] = None,
    ) -> List[ScanItem]:
        return self._scan(PRESET_MODE, root_dir, True, skip_category_dirs, progress_callback, cancel_event)

    def scan_samples(
        self,
        root_dir,
        use_intelligence: Optional[bool] = None,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
        skip_category_dirs: Optional[bool] = None,
    ) -> List[ScanItem]:
        if use_intelligence is None:
            use_intelligence = bool(self.config.get("use_intelligence", True))
        return self._scan(SAMPLE_MODE, root_dir, use_intelligence, skip_category_dirs, progress_callback, cancel_event)

    # ------------------------------------------------------------------
    # Sort / undo

    def _sort(
        self,
        mode: str,
        root_dir,
        items: ItemsArg,
        key_filter: Optional[KeyFilter],
        bpm_range: Optional[BpmRange],
        progress_callback: Optional[ProgressCallback],
        cancel_event: Optional[threading.Event],
    ) -> SortResult:
        with self._operation(f"{mode} sort"):
            return sorter.execute_sort(
                root_dir,
                self._coerce_items(items),
                mode,
                self.config_service.get_move_log_path(mode),
                key_filter=key_filter,
                bpm_range=bpm_range,
                progress_callback=progress_callback,
                cancel_event=cancel_event,
                log=self._emit_log,
            )

    def sort_presets(
        self,
        root_dir,
        items: ItemsArg,
        key_filter: Optional[KeyFilter] = None,
        bpm_range: Optional[BpmRange] = None,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> SortResult:
        return self._sort(PRESET_MODE, root_dir, items, key_filter, bpm_range, progress_callback, cancel_event)

    def sort_samples(
        self,
        root_dir,
        items: ItemsArg,
        key_filter: Optional[KeyFilter] = None,
        bpm_range: Optional[BpmRange] = None,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> SortResult:
        return self._sort(SAMPLE_MODE, root_dir, items, key_filter, bpm_range, progress_callback, cancel_event)

    def _undo(self, mode: str) -> UndoResult:
        with self._operation(f"{mode} undo"):
            return undo.undo_last_sort(self.config_service.get_move_log_path(mode), log=self._emit_log)

    def undo_last_preset_sort(self) -> UndoResult:
        return self._undo(PRESET_MODE)

    def undo_last_sample_sort(self) -> UndoResult:
        return self._undo(SAMPLE_MODE)

    # ------------------------------------------------------------------
    # Keyword dictionaries

    def get_keyword_dictionary(self, mode: str) -> Dict[str, Any]:
        return self.config_service.load_keywords(mode)

    def save_keyword_dictionary(self, mode: str, data: Dict[str, Any]) -> None:
        with self._operation(f"{mode} keyword save"):
            self.config_service.save_keywords(mode, data)
            self._emit_log(f"Saved {mode} keyword dictionary")

    def restore_default_keywords(self, mode: str) -> Dict[str, Any]:
        bundled = self.config_service.load_default_keywords(mode)
        return self._edit_keywords(mode, lambda s: s.restore_defaults(bundled))

    def _edit_keywords(self, mode: str, edit: Callable[[KeywordService], Any]) -> Dict[str, Any]:
        service = KeywordService(self.get_keyword_dictionary(mode))
        edit(service)
        self.save_keyword_dictionary(mode, service.to_dict())
        return service.to_dict()

    def add_keyword(self, mode: str, category: str, word: str) -> Dict[str, Any]:
        return self._edit_keywords(mode, lambda s: s.add_keyword(category, word))

    def remove_keyword(self, mode: str, category: str, word: str) -> Dict[str, Any]:
        return self._edit_keywords(mode, lambda s: s.remove_keyword(category, word))

    def add_category(self, mode: str, category: str) -> Dict[str, Any]:
        return self._edit_keywords(mode, lambda s: s.add_category(category))

    def remove_category(self, mode: str, category: str) -> Dict[str, Any]:
        return self._edit_keywords(mode, lambda s: s.remove_category(category))
