import json
import sys
import threading
from pathlib import Path

import pytest

# Add the src directory to sys.path so that preset_sorter can be imported
SRC_DIR = Path(__file__).resolve().parents[1] / "src"
sys.path.insert(0, str(SRC_DIR))

from preset_sorter import sorter, undo
from preset_sorter.models import PRESET_MODE, SAMPLE_MODE, BpmRange, KeyFilter, ScanItem
from preset_sorter.scanner import ScanRootError


def _item(path: Path, category: str, mode: str = SAMPLE_MODE, ext: str = "", **kwargs) -> ScanItem:
    if not path.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"\x00" * 32)
    return ScanItem(
        source_path=str(path),
        file_name=path.name,
        ext=ext or path.suffix.lower(),
        mode=mode,
        size=path.stat().st_size,
        category=category,
        **kwargs,
    )


@pytest.fixture
def pack(tmp_path: Path) -> Path:
    root = tmp_path.resolve() / "MyPack"
    root.mkdir()
    return root


def _sort(pack: Path, items, tmp_path: Path, mode: str = SAMPLE_MODE, **kwargs):
    log_path = tmp_path / "config" / f"{mode}_move_log.json"
    return sorter.execute_sort(pack, items, mode, log_path, **kwargs), log_path


# ------------------------------------------------------------------
# Destination naming


def test_destination_names_without_filters():
    assert sorter.destination_names(Path("MyPack"), PRESET_MODE) == ("NEW_MyPack", None)
    assert sorter.destination_names(Path("MyPack"), SAMPLE_MODE) == ("NEW_MyPack", None)


def test_preset_sort_root_carries_filter_suffixes():
    names = sorter.destination_names(Path("MyPack"), PRESET_MODE, KeyFilter("minor"), BpmRange(120, 130))
    assert names == ("NEW_MyPack_Minor_120-130BPM", None)
    names = sorter.destination_names(Path("MyPack"), PRESET_MODE, KeyFilter("notes", ["Am", "C#m"]))
    assert names == ("NEW_MyPack_Am_C#m", None)


def test_sample_sort_adds_label_folder():
    names = sorter.destination_names(Path("MyPack"), SAMPLE_MODE, KeyFilter("major"), BpmRange(90, 90))
    assert names == ("NEW_MyPack", "MyPack [Major, 90BPM]")


def test_collision_names_keep_compound_extensions(tmp_path: Path):
    (tmp_path / "Vox.stem.mp4").write_bytes(b"")
    (tmp_path / "Vox (1).stem.mp4").write_bytes(b"")
    (tmp_path / "Kick.wav").write_bytes(b"")
    assert sorter.resolve_collision(tmp_path / "Vox.stem.mp4", ".stem.mp4").name == "Vox (2).stem.mp4"
    assert sorter.resolve_collision(tmp_path / "Kick.wav").name == "Kick (1).wav"
    assert sorter.resolve_collision(tmp_path / "Snare.wav").name == "Snare.wav"


def test_category_folder_name_is_filesystem_safe():
    assert sorter.category_folder_name("Drum Loop") == "Drum Loop"
    assert sorter.category_folder_name("FX/Risers") == "FX-Risers"
    assert sorter.category_folder_name("") == "Misc"


# ------------------------------------------------------------------
# Sorting


def test_sort_into_new_root_with_category_folders(pack: Path, tmp_path: Path):
    items = [
        _item(pack / "kick_01.wav", "Kick"),
        _item(pack / "sub_bass.wav", "Bass"),
        _item(pack / "Loops" / "808.wav", "Bass"),
    ]
    result, log_path = _sort(pack, items, tmp_path)

    sort_root = pack / "NEW_MyPack"
    assert result["count"] == 3
    assert result["failed"] == 0
    assert result["sort_root"] == str(sort_root)
    assert sorted(p.name for p in sort_root.iterdir()) == ["Bass", "Kick"]
    assert (sort_root / "Kick" / "kick_01.wav").exists()
    assert (sort_root / "Bass" / "808.wav").exists()
    assert not (pack / "kick_01.wav").exists()
    assert result["created_folders"] == [str(sort_root), str(sort_root / "Kick"), str(sort_root / "Bass")]

    saved = json.loads(log_path.read_text(encoding="utf-8"))
    assert saved["sourceDir"] == str(pack)
    assert saved["sortRoot"] == str(sort_root)
    assert saved["mode"] == SAMPLE_MODE
    assert saved["moved"][0] == {"from": str(pack / "kick_01.wav"), "to": str(sort_root / "Kick" / "kick_01.wav")}


def test_sort_resolves_name_collisions(pack: Path, tmp_path: Path):
    (pack / "NEW_MyPack" / "Kick").mkdir(parents=True)
    (pack / "NEW_MyPack" / "Kick" / "Kick.wav").write_bytes(b"already here")
    items = [
        _item(pack / "A" / "Kick.wav", "Kick"),
        _item(pack / "B" / "Kick.wav", "Kick"),
        _item(pack / "A" / "Vox.stem.mp4", "Vocal", ext=".stem.mp4"),
        _item(pack / "B" / "Vox.stem.mp4", "Vocal", ext=".stem.mp4"),
    ]
    result, _ = _sort(pack, items, tmp_path)

    kick_dir = pack / "NEW_MyPack" / "Kick"
    assert sorted(p.name for p in kick_dir.iterdir()) == ["Kick (1).wav", "Kick (2).wav", "Kick.wav"]
    assert (kick_dir / "Kick.wav").read_bytes() == b"already here"
    assert sorted(p.name for p in (pack / "NEW_MyPack" / "Vocal").iterdir()) == ["Vox (1).stem.mp4", "Vox.stem.mp4"]
    # Only folders the sort itself created are recorded.
    assert result["created_folders"] == [str(pack / "NEW_MyPack" / "Vocal")]


def test_sample_sort_with_filters_uses_label_folder(pack: Path, tmp_path: Path):
    items = [_item(pack / "pad_Am.wav", "Texture")]
    result, _ = _sort(pack, items, tmp_path, key_filter=KeyFilter("minor"), bpm_range=BpmRange(80, 100))
    target = pack / "NEW_MyPack" / "MyPack [Minor, 80-100BPM]" / "Texture" / "pad_Am.wav"
    assert target.exists()
    assert result["sort_root"] == str(pack / "NEW_MyPack")


def test_preset_sort_root_name(pack: Path, tmp_path: Path):
    items = [_item(pack / "LD Saw.fxp", "Lead", mode=PRESET_MODE)]
    result, _ = _sort(pack, items, tmp_path, mode=PRESET_MODE, key_filter=KeyFilter("major"))
    assert (pack / "NEW_MyPack_Major" / "Lead" / "LD Saw.fxp").exists()
    assert result["sort_root"] == str(pack / "NEW_MyPack_Major")


def test_failed_moves_are_counted_and_excluded_items_skipped(pack: Path, tmp_path: Path):
    logs = []
    good = _item(pack / "clap.wav", "Clap")
    gone = _item(pack / "gone.wav", "Clap")
    Path(gone.source_path).unlink()
    excluded = _item(pack / "keep_me.wav", "Clap", manually_excluded=True)

    result, log_path = _sort(pack, [good, gone, excluded], tmp_path, log=logs.append)

    assert (result["count"], result["failed"], result["skipped"]) == (1, 1, 1)
    assert (pack / "keep_me.wav").exists()
    assert any(line.startswith("Move failed") for line in logs)
    assert len(json.loads(log_path.read_text(encoding="utf-8"))["moved"]) == 1


def test_sort_progress_and_cancel(pack: Path, tmp_path: Path):
    progress = []
    items = [_item(pack / f"hit_{i}.wav", "FX") for i in range(4)]
    result, _ = _sort(pack, items, tmp_path, progress_callback=progress.append)
    assert progress == [25, 50, 75, 100]
    assert result["cancelled"] is False

    cancel = threading.Event()
    cancel.set()
    more = [_item(pack / "late.wav", "FX")]
    result, log_path = _sort(pack, more, tmp_path, cancel_event=cancel)
    assert result["cancelled"] is True
    assert result["count"] == 0
    assert (pack / "late.wav").exists()
    assert log_path.exists()


def test_sort_missing_source_dir(tmp_path: Path):
    with pytest.raises(ScanRootError):
        sorter.execute_sort(tmp_path / "missing", [], SAMPLE_MODE, tmp_path / "log.json")


# ------------------------------------------------------------------
# Undo


def test_undo_restores_files_and_removes_created_folders(pack: Path, tmp_path: Path):
    items = [
        _item(pack / "kick_01.wav", "Kick"),
        _item(pack / "Loops" / "bass_loop.wav", "Bass"),
    ]
    _, log_path = _sort(pack, items, tmp_path)

    result = undo.undo_last_sort(log_path)

    assert result["count"] == 2
    assert result["failed"] == 0
    assert result["source_folder"] == str(pack)
    assert (pack / "kick_01.wav").exists()
    assert (pack / "Loops" / "bass_loop.wav").exists()
    assert not (pack / "NEW_MyPack").exists()
    assert str(pack / "NEW_MyPack") in result["removed_folders"]
    assert not log_path.exists()


def test_undo_keeps_folders_that_existed_before(pack: Path, tmp_path: Path):
    kick_dir = pack / "NEW_MyPack" / "Kick"
    kick_dir.mkdir(parents=True)
    (kick_dir / "old.wav").write_bytes(b"x")
    _, log_path = _sort(pack, [_item(pack / "kick.wav", "Kick")], tmp_path)

    result = undo.undo_last_sort(log_path)

    assert result["count"] == 1
    assert result["removed_folders"] == []
    assert (kick_dir / "old.wav").exists()


def test_undo_never_overwrites_an_occupied_original(pack: Path, tmp_path: Path):
    logs = []
    _, log_path = _sort(pack, [_item(pack / "snare.wav", "Snare"), _item(pack / "clap.wav", "Clap")], tmp_path)
    (pack / "snare.wav").write_bytes(b"new file")

    result = undo.undo_last_sort(log_path, log=logs.append)

    assert result["count"] == 1
    assert result["failed"] == 1
    assert (pack / "snare.wav").read_bytes() == b"new file"
    assert (pack / "NEW_MyPack" / "Snare" / "snare.wav").exists()
    assert not (pack / "NEW_MyPack" / "Clap").exists()
    assert any("occupied" in line for line in logs)


def test_undo_without_log(tmp_path: Path):
    result = undo.undo_last_sort(tmp_path / "sample_move_log.json")
    assert result["count"] == 0
    assert result["source_folder"] is None


@pytest.mark.parametrize("content", ["{not json", "[]", json.dumps({"moved": []})])
def test_undo_with_unusable_log(tmp_path: Path, content: str):
    log_path = tmp_path / "sample_move_log.json"
    log_path.write_text(content, encoding="utf-8")
    result = undo.undo_last_sort(log_path)
    assert result["count"] == 0
    assert result["source_folder"] is None
