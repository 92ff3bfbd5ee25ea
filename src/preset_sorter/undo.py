"""Reverse the most recent sort recorded in a move log."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Callable, List, Optional, Union

from .config_service import load_json, validate_json
from .models import MoveLog, UndoResult

LogFn = Callable[[str], None]


def load_move_log(path: Union[str, os.PathLike]) -> Optional[MoveLog]:
    """Return the parsed move log, or ``None`` when it is missing or unusable."""
    try:
        data = load_json(Path(path))
        if not isinstance(data, dict):
            return None
        validate_json(data, "move_log.schema.json")
        return MoveLog.from_dict(data)
    except (OSError, ValueError):
        return None


def undo_last_sort(move_log_path: Union[str, os.PathLike], log: Optional[LogFn] = None) -> UndoResult:
    """Move files back, prune empty created folders and delete the log.

    Restoring never overwrites: a record whose original path is occupied
    again, or whose sorted file has gone, is skipped.  ``source_folder``
    always comes from the log itself.
    """
    path = Path(move_log_path)
    move_log = load_move_log(path)
    if move_log is None:
        return {"count": 0, "failed": 0, "source_folder": None, "removed_folders": []}

    def _log(msg: str) -> None:
        if log is not None:
            log(msg)

    restored = 0
    failed = 0
    for record in move_log.moved:
        src = Path(record.source)
        dst = Path(record.destination)
        try:
            if src.exists():
                raise FileExistsError(f"original path is occupied: {src}")
            src.parent.mkdir(parents=True, exist_ok=True)
            os.rename(dst, src)
            restored += 1
        except OSError as exc:
            failed += 1
            _log(f"Undo skipped: {dst}: {exc}")

    removed: List[str] = []
    for folder in sorted(move_log.created_folders, key=lambda p: len(Path(p).parts), reverse=True):
        folder_path = Path(folder)
        try:
            if folder_path.is_dir() and not any(folder_path.iterdir()):
                folder_path.rmdir()
                removed.append(folder)
        except OSError as exc:
            _log(f"Folder not removed: {folder}: {exc}")

    try:
        path.unlink()
    except FileNotFoundError:
        pass
    _log(f"Undo restored {restored} file(s) to {move_log.source_dir}")
    return {
        "count": restored,
        "failed": failed,
        "source_folder": move_log.source_dir or None,
        "removed_folders": removed,
    }
