# src/preset_sorter/__main__.py
from __future__ import annotations


def main() -> int:
    """
    Module entrypoint:
      - python -m preset_sorter            -> CLI help
      - python -m preset_sorter <command>  -> CLI command
    """
    from preset_sorter.cli import main as cli_main

    # Let the CLI parse sys.argv itself.
    return int(cli_main())


if __name__ == "__main__":
    raise SystemExit(main())
