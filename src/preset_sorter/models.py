"""Data model shared by the scanner, sorter, undo engine and CLI.

Everything here is a plain dataclass or TypedDict so scan results can be
written to JSON, edited during review and read back for sorting.
"""

from __future__ import annotations

import math
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, TypedDict

from . import tuning

PRESET_MODE = "preset"
SAMPLE_MODE = "sample"
MODES = (PRESET_MODE, SAMPLE_MODE)

MISC_CATEGORY = "Misc"
MIDI_CATEGORY = "MIDI"

EXACT_DUPLICATE = "exact"
VARIANT_DUPLICATE = "variant"


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative values (no banker's rounding)."""
    return int(math.floor(value + 0.5))


@dataclass
class AudioMetadata:
    """Metadata gathered from file headers and/or the file name."""

    bpm: Optional[float] = None
    key: Optional[str] = None
    mood: Optional[str] = None
    duration_sec: Optional[float] = None
    sample_rate: Optional[int] = None
    channels: Optional[int] = None

    def fill_missing(self, other: "AudioMetadata") -> "AudioMetadata":
        """Copy fields from ``other`` only where this instance has none."""
        for name, value in asdict(other).items():
            if getattr(self, name) is None and value is not None:
                setattr(self, name, value)
        return self

    def is_empty(self) -> bool:
        return all(value is None for value in asdict(self).values())

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "AudioMetadata":
        data = data or {}
        return cls(
            bpm=data.get("bpm"),
            key=data.get("key"),
            mood=data.get("mood"),
            duration_sec=data.get("duration_sec"),
            sample_rate=data.get("sample_rate"),
            channels=data.get("channels"),
        )


@dataclass
class ScanItem:
    """One scanned file with its classification and review state."""

    source_path: str
    file_name: str
    ext: str
    mode: str = SAMPLE_MODE
    size: int = 0
    category: str = MISC_CATEGORY
    score: int = 0
    confidence: int = 0
    metadata: AudioMetadata = field(default_factory=AudioMetadata)
    sample_type: Optional[str] = None
    plugin_name: Optional[str] = None
    synth_label: Optional[str] = None
    is_duplicate: bool = False
    duplicate_type: Optional[str] = None
    is_kept_copy: bool = False
    manually_excluded: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["metadata"] = self.metadata.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScanItem":
        source_path = str(data["source_path"])
        file_name = data.get("file_name") or re.split(r"[\\/]", source_path)[-1]
        return cls(
            source_path=source_path,
            file_name=file_name,
            ext=data.get("ext", ""),
            mode=data.get("mode", SAMPLE_MODE),
            size=int(data.get("size") or 0),
            category=data.get("category") or MISC_CATEGORY,
            score=int(data.get("score") or 0),
            confidence=int(data.get("confidence") or 0),
            metadata=AudioMetadata.from_dict(data.get("metadata")),
            sample_type=data.get("sample_type"),
            plugin_name=data.get("plugin_name"),
            synth_label=data.get("synth_label"),
            is_duplicate=bool(data.get("is_duplicate", False)),
            duplicate_type=data.get("duplicate_type"),
            is_kept_copy=bool(data.get("is_kept_copy", False)),
            manually_excluded=bool(data.get("manually_excluded", False)),
        )


@dataclass
class MoveRecord:
    source: str
    destination: str

    def to_dict(self) -> Dict[str, str]:
        return {"from": self.source, "to": self.destination}


@dataclass
class MoveLog:
    """Persisted record of one sort; consumed by the undo engine."""

    moved: List[MoveRecord] = field(default_factory=list)
    created_folders: List[str] = field(default_factory=list)
    source_dir: str = ""
    sort_root: str = ""
    mode: str = SAMPLE_MODE
    timestamp: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "moved": [record.to_dict() for record in self.moved],
            "createdFolders": list(self.created_folders),
            "sourceDir": self.source_dir,
            "sortRoot": self.sort_root,
            "mode": self.mode,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MoveLog":
        moved = [
            MoveRecord(source=str(entry["from"]), destination=str(entry["to"]))
            for entry in data.get("moved", [])
            if isinstance(entry, dict) and "from" in entry and "to" in entry
        ]
        return cls(
            moved=moved,
            created_folders=[str(p) for p in data.get("createdFolders", [])],
            source_dir=str(data.get("sourceDir", "")),
            sort_root=str(data.get("sortRoot", "")),
            mode=str(data.get("mode", SAMPLE_MODE)),
            timestamp=str(data.get("timestamp", "")),
        )


KEY_MODE_ALL = "all"
KEY_MODE_MAJOR = "major"
KEY_MODE_MINOR = "minor"
KEY_MODE_NOTES = "notes"
KEY_MODES = (KEY_MODE_ALL, KEY_MODE_MAJOR, KEY_MODE_MINOR, KEY_MODE_NOTES)


@dataclass
class KeyFilter:
    mode: str = KEY_MODE_ALL
    notes: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.mode not in KEY_MODES:
            raise ValueError(f"Unknown key filter mode: {self.mode}")

    @property
    def is_active(self) -> bool:
        if self.mode == KEY_MODE_NOTES:
            return bool(self.notes)
        return self.mode in (KEY_MODE_MAJOR, KEY_MODE_MINOR)

    def label(self) -> Optional[str]:
        """Human-readable label used for the sample-mode parent folder."""
        if not self.is_active:
            return None
        if self.mode == KEY_MODE_MAJOR:
            return "Major"
        if self.mode == KEY_MODE_MINOR:
            return "Minor"
        return ", ".join(self.notes)

    def suffix(self) -> Optional[str]:
        """Label safe for use inside the sort-root name."""
        if not self.is_active:
            return None
        if self.mode == KEY_MODE_MAJOR:
            return "Major"
        if self.mode == KEY_MODE_MINOR:
            return "Minor"
        cleaned = [re.sub(r"[^a-zA-Z0-9#b]", "", note) for note in self.notes]
        return "_".join(note for note in cleaned if note) or None


@dataclass
class BpmRange:
    minimum: int = field(default_factory=lambda: tuning.BPM_FILTER_RANGE[0])
    maximum: int = field(default_factory=lambda: tuning.BPM_FILTER_RANGE[1])

    @property
    def is_narrowed(self) -> bool:
        low, high = tuning.BPM_FILTER_RANGE
        return self.minimum > low or self.maximum < high

    def contains(self, bpm: float) -> bool:
        return self.minimum <= bpm <= self.maximum

    def label(self) -> Optional[str]:
        if not self.is_narrowed:
            return None
        if self.minimum == self.maximum:
            return f"{self.minimum}BPM"
        return f"{self.minimum}-{self.maximum}BPM"


class SortResult(TypedDict, total=False):
    count: int
    failed: int
    skipped: int
    created_folders: List[str]
    sort_root: str
    move_log: str
    cancelled: bool


class UndoResult(TypedDict, total=False):
    count: int
    failed: int
    source_folder: Optional[str]
    removed_folders: List[str]
