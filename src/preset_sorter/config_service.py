"""Configuration management for Preset Sorter.

This module centralises all logic related to finding, loading and
saving the JSON files the sorter depends on:

* ``preset_keywords.json`` / ``sample_keywords.json`` – the keyword
  dictionaries (one per mode)
* ``preset_move_log.json`` / ``sample_move_log.json`` – the log of the
  most recent sort, consumed by undo
* ``config.json`` – optional defaults for the CLI/engine
* ``tuning.json`` – optional overrides for :mod:`preset_sorter.tuning`

It supports both AppData and portable installation modes.  Portable mode
is controlled via a ``portable.flag`` file located alongside the
application or by passing ``--portable`` to the CLI.  The flag file
takes precedence over the command line.

Every document is validated against a JSON schema bundled in the
package.  A missing or corrupt keyword dictionary is replaced by the
bundled default, which is then written back.

Example usage::

    from preset_sorter.config_service import ConfigService

    config_service = ConfigService(app_dir=Path.cwd())
    keywords = config_service.load_keywords("sample")
    keywords["Kick"]["custom"].append("thump")
    config_service.save_keywords("sample", keywords)

"""

from __future__ import annotations

import copy
import json
import os
import platform
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import jsonschema

from . import tuning
from .models import MODES

PACKAGE_DIR = Path(__file__).resolve().parent
DATA_DIR = PACKAGE_DIR / "data"
SCHEMA_DIR = PACKAGE_DIR / "schemas"

APP_NAME = "PresetSorter"


def _get_appdata_root(app_name: str = APP_NAME) -> Path:
    """Return the platform‑specific base directory for config files."""
    system = platform.system().lower()
    if system == "windows":
        appdata = os.environ.get("APPDATA")
        if appdata:
            return Path(appdata) / app_name
        return Path.home() / f"AppData/Roaming/{app_name}"
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / app_name
    return Path.home() / ".config" / app_name


def load_json(path: Path) -> Any:
    if not path.exists():
        return None
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def save_json_atomic(data: Any, file_path: Path) -> None:
    """Write ``data`` to a temp file next to ``file_path`` and swap it in."""
    file_path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{file_path.name}.", suffix=".tmp", dir=str(file_path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_name, file_path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


_SCHEMA_CACHE: Dict[str, Any] = {}


def validate_json(data: Any, schema_name: str) -> None:
    """Validate ``data`` against a bundled schema; raise ``ValueError`` if invalid."""
    schema = _SCHEMA_CACHE.get(schema_name)
    if schema is None:
        schema = load_json(SCHEMA_DIR / schema_name)
        _SCHEMA_CACHE[schema_name] = schema
    try:
        jsonschema.validate(instance=data, schema=schema)
    except jsonschema.ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc.message}")


def _check_mode(mode: str) -> str:
    if mode not in MODES:
        raise ValueError(f"Unknown mode: {mode!r} (expected one of {', '.join(MODES)})")
    return mode


@dataclass
class ConfigService:
    """Resolve and manage Preset Sorter configuration."""

    app_dir: Path
    cli_portable: bool = False
    portable_flag_filename: str = "portable.flag"
    config_filename: str = "config.json"
    tuning_filename: str = "tuning.json"
    keywords_filename_template: str = "{mode}_keywords.json"
    move_log_filename_template: str = "{mode}_move_log.json"
    config_dir_override: Optional[Path] = None
    _cached_mode: Optional[bool] = field(default=None, init=False, repr=False)

    def _portable_flag_exists(self) -> bool:
        return (Path(self.app_dir) / self.portable_flag_filename).exists()

    def detect_mode(self) -> bool:
        """Return ``True`` if portable mode should be used.

        A ``portable.flag`` file in the application directory always
        forces portable mode; otherwise ``cli_portable`` decides.  The
        result is cached for subsequent calls.
        """
        if self._cached_mode is None:
            if self._portable_flag_exists():
                self._cached_mode = True
            else:
                self._cached_mode = bool(self.cli_portable)
        return self._cached_mode

    def get_config_dir(self) -> Path:
        """Return the resolved configuration directory."""
        if self.config_dir_override is not None:
            return Path(self.config_dir_override)
        if self.detect_mode():
            return Path(self.app_dir)
        return _get_appdata_root()

    def get_config_path(self) -> Path:
        return self.get_config_dir() / self.config_filename

    def get_tuning_path(self) -> Path:
        return self.get_config_dir() / self.tuning_filename

    def get_keywords_path(self, mode: str) -> Path:
        return self.get_config_dir() / self.keywords_filename_template.format(mode=_check_mode(mode))

    def get_move_log_path(self, mode: str) -> Path:
        return self.get_config_dir() / self.move_log_filename_template.format(mode=_check_mode(mode))

    # ------------------------------------------------------------------
    # config.json / tuning.json

    def load_config(self) -> Dict[str, Any]:
        path = self.get_config_path()
        try:
            data = load_json(path)
            if data is None:
                return {}
            validate_json(data, "config.schema.json")
            return data
        except (OSError, ValueError) as exc:
            print(f"Warning: ignoring {path}: {exc}")
            return {}

    def save_config(self, data: Dict[str, Any]) -> None:
        validate_json(data, "config.schema.json")
        save_json_atomic(data, self.get_config_path())

    def apply_tuning_overrides(self) -> bool:
        """Merge ``tuning.json`` into :mod:`preset_sorter.tuning`; return whether one was applied."""
        path = self.get_tuning_path()
        try:
            data = load_json(path)
        except (OSError, ValueError) as exc:
            print(f"Warning: ignoring {path}: {exc}")
            return False
        if not isinstance(data, dict):
            return False
        tuning.apply_overrides(data)
        return True

    # ------------------------------------------------------------------
    # Keyword dictionaries

    def load_default_keywords(self, mode: str) -> Dict[str, Any]:
        path = DATA_DIR / f"{_check_mode(mode)}_keywords.json"
        return copy.deepcopy(load_json(path))

    def load_keywords(self, mode: str) -> Dict[str, Any]:
        """Load the keyword dictionary for ``mode``.

        A missing, unreadable or invalid file is replaced by the bundled
        default dictionary, which is persisted before being returned.
        """
        path = self.get_keywords_path(mode)
        try:
            data = load_json(path)
            if data is not None:
                validate_json(data, "keywords.schema.json")
                return data
        except (OSError, ValueError) as exc:
            print(f"Warning: keyword dictionary {path} unusable ({exc}); restoring defaults")
        defaults = self.load_default_keywords(mode)
        self.save_keywords(mode, defaults)
        return defaults

    def save_keywords(self, mode: str, data: Dict[str, Any]) -> None:
        validate_json(data, "keywords.schema.json")
        save_json_atomic(data, self.get_keywords_path(mode))
