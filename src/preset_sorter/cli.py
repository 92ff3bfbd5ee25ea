"""Command‑line interface for Preset Sorter.

This module exposes one subcommand per engine operation.  Each
subcommand delegates to :class:`preset_sorter.engine.SorterEngine` and
prints its result as JSON.  Run ``python -m preset_sorter --help`` for
usage.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, List, Optional

from .config_service import ConfigService, load_json
from .engine import OperationInProgressError, SorterEngine
from .filters import filter_items
from .keyword_service import KeywordService
from .models import KEY_MODES, MODES, PRESET_MODE, SAMPLE_MODE, BpmRange, KeyFilter, ScanItem
from .scanner import ScanRootError
from . import tuning


def _parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="preset-sorter",
        description="Preset Sorter – sort presets and samples into category folders",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(subparser: argparse.ArgumentParser) -> None:
        subparser.add_argument(
            "--portable",
            "-p",
            action="store_true",
            help="Force portable mode (ignored if portable.flag is present)",
        )
        subparser.add_argument(
            "--config-dir",
            help="Use this directory for keyword dictionaries and move logs",
        )
        subparser.add_argument(
            "--verbose",
            action="store_true",
            help="Print log messages and progress",
        )

    def add_scan_options(subparser: argparse.ArgumentParser, samples: bool) -> None:
        subparser.add_argument("root", help="Folder to scan")
        if samples:
            subparser.add_argument(
                "--no-intelligence",
                action="store_true",
                help="Skip filename BPM/key/mood detection (header metadata is still read)",
            )
        skip = subparser.add_mutually_exclusive_group()
        skip.add_argument(
            "--skip-category-dirs",
            dest="skip_category_dirs",
            action="store_const",
            const=True,
            default=None,
            help="Do not descend into folders named like a category",
        )
        skip.add_argument(
            "--scan-category-dirs",
            dest="skip_category_dirs",
            action="store_const",
            const=False,
            help="Descend into folders named like a category",
        )

    def add_filter_options(subparser: argparse.ArgumentParser) -> None:
        low, high = tuning.BPM_FILTER_RANGE
        subparser.add_argument("--key-mode", choices=KEY_MODES, default="all")
        subparser.add_argument("--notes", nargs="*", default=[], help="Notes for --key-mode notes (e.g. Am C#m)")
        subparser.add_argument("--bpm-min", type=int, default=low)
        subparser.add_argument("--bpm-max", type=int, default=high)
        subparser.add_argument("--category", action="append", help="Only sort these categories (repeatable)")
        subparser.add_argument(
            "--skip-duplicates",
            action="store_true",
            help="Leave exact duplicates that are not the kept copy in place",
        )

    for mode_name, samples in (("presets", False), ("samples", True)):
        sp = subparsers.add_parser(f"scan-{mode_name}", help=f"Scan and classify {mode_name}; nothing is moved")
        add_scan_options(sp, samples)
        sp.add_argument("--output", "-o", help="Write the scan result list to this JSON file")
        add_common(sp)

        sp = subparsers.add_parser(f"sort-{mode_name}", help=f"Move {mode_name} into category folders")
        add_scan_options(sp, samples)
        sp.add_argument("--items", help="Sort a reviewed scan result JSON file instead of scanning")
        add_filter_options(sp)
        add_common(sp)

        sp = subparsers.add_parser(f"undo-{mode_name}", help=f"Undo the last {mode_name} sort")
        add_common(sp)

    sp = subparsers.add_parser("keywords", help="Show or edit a keyword dictionary")
    sp.add_argument("mode", choices=MODES)
    sp.add_argument(
        "action",
        choices=["show", "add", "remove", "add-category", "remove-category", "restore"],
    )
    sp.add_argument("category", nargs="?")
    sp.add_argument("word", nargs="?")
    add_common(sp)

    return parser.parse_args(argv)


def _construct_engine(args: argparse.Namespace) -> SorterEngine:
    config_dir = Path(args.config_dir).expanduser().resolve() if args.config_dir else None
    config_service = ConfigService(
        app_dir=Path.cwd(),
        cli_portable=bool(args.portable),
        config_dir_override=config_dir,
    )
    return SorterEngine(config_service=config_service, log_to_console=bool(args.verbose))


def _progress_printer(args: argparse.Namespace):
    if not args.verbose:
        return None

    def _print_progress(percent: int) -> None:
        print(f"Progress: {percent}%", file=sys.stderr)

    return _print_progress


def _scan(engine: SorterEngine, mode: str, args: argparse.Namespace) -> List[ScanItem]:
    progress = _progress_printer(args)
    if mode == PRESET_MODE:
        return engine.scan_presets(args.root, progress_callback=progress, skip_category_dirs=args.skip_category_dirs)
    return engine.scan_samples(
        args.root,
        use_intelligence=not args.no_intelligence,
        progress_callback=progress,
        skip_category_dirs=args.skip_category_dirs,
    )


def _load_items(path: str) -> List[ScanItem]:
    data = load_json(Path(path))
    if not isinstance(data, list):
        raise ValueError(f"{path} does not contain a list of scan items")
    return [ScanItem.from_dict(entry) for entry in data]


def _run_keywords(engine: SorterEngine, args: argparse.Namespace) -> Any:
    mode, action = args.mode, args.action
    if action == "show":
        return engine.get_keyword_dictionary(mode)
    if action == "restore":
        return engine.restore_default_keywords(mode)
    if not args.category:
        raise ValueError(f"keywords {action} requires a category")
    if action == "add-category":
        return engine.add_category(mode, args.category)
    if action == "remove-category":
        return engine.remove_category(mode, args.category)
    if not args.word:
        raise ValueError(f"keywords {action} requires a word")
    if action == "add":
        data = engine.add_keyword(mode, args.category, args.word)
    else:
        data = engine.remove_keyword(mode, args.category, args.word)
    return {args.category: KeywordService(data).keywords_for(args.category)}


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_arguments(argv)
    command = args.command
    engine = _construct_engine(args)
    try:
        if command == "keywords":
            result: Any = _run_keywords(engine, args)
        else:
            action, _, mode_name = command.partition("-")
            mode = PRESET_MODE if mode_name == "presets" else SAMPLE_MODE
            if action == "scan":
                items = _scan(engine, mode, args)
                payload = [item.to_dict() for item in items]
                if args.output:
                    Path(args.output).write_text(json.dumps(payload, indent=2), encoding="utf-8")
                    result = {"count": len(items), "output": str(Path(args.output).resolve())}
                else:
                    result = payload
            elif action == "sort":
                items = _load_items(args.items) if args.items else _scan(engine, mode, args)
                key_filter = KeyFilter(mode=args.key_mode, notes=list(args.notes))
                bpm_range = BpmRange(args.bpm_min, args.bpm_max)
                selected = filter_items(
                    items,
                    categories=args.category,
                    key_filter=key_filter,
                    bpm_range=bpm_range,
                    skip_duplicate_copies=args.skip_duplicates,
                )
                sort = engine.sort_presets if mode == PRESET_MODE else engine.sort_samples
                result = sort(
                    args.root,
                    selected,
                    key_filter=key_filter,
                    bpm_range=bpm_range,
                    progress_callback=_progress_printer(args),
                )
            elif action == "undo":
                if mode == PRESET_MODE:
                    result = engine.undo_last_preset_sort()
                else:
                    result = engine.undo_last_sample_sort()
            else:
                print(f"Error: unrecognized command {command}", file=sys.stderr)
                return 1
    except (ScanRootError, OperationInProgressError, ValueError, KeyError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
