"""Preset Sorter package

This package contains the classification and metadata engine, the
sort/undo bookkeeping, configuration services and the command‑line
interface for sorting plugin presets and audio samples into category
folders.  Public classes are re‑exported here for convenience.
"""

from .engine import OperationInProgressError, SorterEngine  # noqa: F401
from .config_service import ConfigService  # noqa: F401
from .keyword_service import KeywordService  # noqa: F401
from .models import AudioMetadata, BpmRange, KeyFilter, MoveLog, ScanItem  # noqa: F401
from .scanner import ScanRootError  # noqa: F401

__all__ = [
    "SorterEngine",
    "OperationInProgressError",
    "ConfigService",
    "KeywordService",
    "AudioMetadata",
    "BpmRange",
    "KeyFilter",
    "MoveLog",
    "ScanItem",
    "ScanRootError",
]
