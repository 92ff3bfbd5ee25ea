import json
import sys
from pathlib import Path

import pytest

# Add the src directory to sys.path so that preset_sorter can be imported
SRC_DIR = Path(__file__).resolve().parents[1] / "src"
sys.path.insert(0, str(SRC_DIR))

from preset_sorter import tuning
from preset_sorter.config_service import ConfigService, load_json
from preset_sorter.engine import OperationInProgressError, SorterEngine
from preset_sorter.keyword_service import KeywordService

from audio_fixtures import make_wav


@pytest.fixture
def config_service(tmp_path: Path) -> ConfigService:
    return ConfigService(app_dir=tmp_path, config_dir_override=tmp_path / "config")


# ------------------------------------------------------------------
# Config directory resolution


def test_appdata_root_follows_xdg(tmp_path: Path, monkeypatch):
    monkeypatch.setattr("platform.system", lambda: "Linux")
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    service = ConfigService(app_dir=tmp_path / "app")
    assert service.detect_mode() is False
    assert service.get_config_dir() == tmp_path / "xdg" / "PresetSorter"


def test_portable_flag_beats_cli_argument(tmp_path: Path):
    (tmp_path / "portable.flag").write_text("", encoding="utf-8")
    service = ConfigService(app_dir=tmp_path, cli_portable=False)
    assert service.detect_mode() is True
    assert service.get_config_dir() == tmp_path
    assert service.get_keywords_path("preset") == tmp_path / "preset_keywords.json"


def test_cli_portable_and_override(tmp_path: Path):
    assert ConfigService(app_dir=tmp_path, cli_portable=True).get_config_dir() == tmp_path
    service = ConfigService(app_dir=tmp_path, config_dir_override=tmp_path / "elsewhere")
    assert service.get_move_log_path("sample") == tmp_path / "elsewhere" / "sample_move_log.json"


def test_unknown_mode_is_rejected(config_service: ConfigService):
    with pytest.raises(ValueError):
        config_service.get_keywords_path("drums")


# ------------------------------------------------------------------
# Keyword dictionaries on disk


def test_missing_dictionary_is_created_from_defaults(config_service: ConfigService):
    data = config_service.load_keywords("sample")
    assert "Kick" in data
    assert data["_meta"]["protected"] == ["MIDI"]
    assert load_json(config_service.get_keywords_path("sample")) == data


def test_corrupt_dictionary_falls_back_to_defaults(config_service: ConfigService, capsys):
    path = config_service.get_keywords_path("preset")
    path.parent.mkdir(parents=True)
    path.write_text("{broken", encoding="utf-8")

    data = config_service.load_keywords("preset")

    assert data == config_service.load_default_keywords("preset")
    assert "Warning" in capsys.readouterr().out
    assert load_json(path) == data


def test_dictionary_failing_schema_falls_back_to_defaults(config_service: ConfigService):
    path = config_service.get_keywords_path("sample")
    path.parent.mkdir(parents=True)
    path.write_text(json.dumps({"Kick": {"custom": ["thump"]}}), encoding="utf-8")
    assert config_service.load_keywords("sample") == config_service.load_default_keywords("sample")


def test_save_invalid_dictionary_raises(config_service: ConfigService):
    with pytest.raises(ValueError, match="Invalid configuration"):
        config_service.save_keywords("sample", {"Kick": {"default": "kick"}})
    assert not config_service.get_keywords_path("sample").exists()


def test_default_dictionary_is_a_fresh_copy(config_service: ConfigService):
    first = config_service.load_default_keywords("sample")
    first["Kick"]["default"].clear()
    assert config_service.load_default_keywords("sample")["Kick"]["default"]


# ------------------------------------------------------------------
# config.json / tuning.json


def test_invalid_config_is_ignored(config_service: ConfigService, capsys):
    path = config_service.get_config_path()
    path.parent.mkdir(parents=True)
    path.write_text(json.dumps({"use_intelligence": "yes"}), encoding="utf-8")
    assert config_service.load_config() == {}
    assert "Warning" in capsys.readouterr().out


def test_config_round_trip(config_service: ConfigService):
    config_service.save_config({"use_intelligence": False, "skip_category_dirs": {"sample": True}})
    assert config_service.load_config()["skip_category_dirs"] == {"sample": True}
    with pytest.raises(ValueError):
        config_service.save_config({"unknown": 1})


def test_tuning_overrides_are_applied(config_service: ConfigService, monkeypatch):
    monkeypatch.setattr(tuning, "METADATA_BOOST", dict(tuning.METADATA_BOOST))
    monkeypatch.setattr(tuning, "ONE_SHOT_MAX_DURATION", tuning.ONE_SHOT_MAX_DURATION)
    monkeypatch.setattr(tuning, "BPM_SANE_RANGE", tuning.BPM_SANE_RANGE)
    path = config_service.get_tuning_path()
    path.parent.mkdir(parents=True)
    path.write_text(
        json.dumps({"METADATA_BOOST": {"bpm": 9}, "ONE_SHOT_MAX_DURATION": 1.0, "BPM_SANE_RANGE": [60, 200], "NOPE": 1}),
        encoding="utf-8",
    )

    assert config_service.apply_tuning_overrides() is True
    assert tuning.METADATA_BOOST["bpm"] == 9
    assert tuning.METADATA_BOOST["key"] == 5
    assert tuning.ONE_SHOT_MAX_DURATION == 1.0
    assert tuning.BPM_SANE_RANGE == (60, 200)
    assert not hasattr(tuning, "NOPE")


def test_no_tuning_file(config_service: ConfigService):
    assert config_service.apply_tuning_overrides() is False


# ------------------------------------------------------------------
# KeywordService


@pytest.fixture
def keywords() -> KeywordService:
    return KeywordService(
        {
            "_meta": {"version": 1, "protected": ["MIDI"]},
            "Kick": {"default": ["kick", " Kick "]},
            "MIDI": {"default": [], "custom": []},
        }
    )


def test_keyword_lists_merge_and_normalise(keywords: KeywordService):
    assert keywords.categories() == ["Kick", "MIDI"]
    assert keywords.keyword_lists() == {"Kick": ["kick"], "MIDI": []}


def test_add_and_remove_keywords(keywords: KeywordService):
    assert keywords.add_keyword("Kick", " Thump ") is True
    assert keywords.add_keyword("Kick", "KICK") is False
    assert keywords.to_dict()["Kick"]["custom"] == ["thump"]
    assert keywords.remove_keyword("Kick", "thump") is True
    assert keywords.remove_keyword("Kick", "kick") is True
    assert keywords.keywords_for("Kick") == []
    assert keywords.remove_keyword("Kick", "missing") is False
    with pytest.raises(ValueError):
        keywords.add_keyword("Kick", "   ")
    with pytest.raises(KeyError):
        keywords.add_keyword("Snare", "snare")


def test_category_management(keywords: KeywordService):
    assert keywords.add_category("Snare") is True
    assert keywords.add_category("Snare") is False
    assert keywords.categories() == ["Kick", "MIDI", "Snare"]
    keywords.remove_category("Snare")
    with pytest.raises(ValueError):
        keywords.remove_category("MIDI")
    with pytest.raises(ValueError):
        keywords.add_category("_meta")
    with pytest.raises(KeyError):
        keywords.remove_category("Nope")


# ------------------------------------------------------------------
# Engine


def test_engine_persists_keyword_edits(config_service: ConfigService):
    engine = SorterEngine(config_service=config_service)
    engine.add_keyword("sample", "Kick", "thump")
    engine.add_category("sample", "Foley")

    reloaded = ConfigService(app_dir=config_service.app_dir, config_dir_override=config_service.config_dir_override)
    data = reloaded.load_keywords("sample")
    assert "thump" in data["Kick"]["custom"]
    assert data["Foley"] == {"default": [], "custom": []}

    engine.remove_keyword("sample", "Kick", "bassdrum")
    restored = engine.restore_default_keywords("sample")
    assert restored["Foley"] == {"default": [], "custom": []}
    assert restored["Kick"] == {"default": ["kick", "kicks", "bassdrum", "bass drum"], "custom": []}
    assert all(restored[name]["custom"] == [] for name in restored if name != "_meta")
    assert reloaded.load_keywords("sample") == restored


def test_restore_defaults_keeps_user_categories():
    service = KeywordService(
        {
            "_meta": {"version": 1},
            "Kick": {"default": ["kick"], "custom": ["thump"]},
            "Foley": {"default": ["steps"], "custom": ["door"]},
        }
    )
    service.restore_defaults(
        {
            "_meta": {"version": 1, "protected": ["MIDI"]},
            "Kick": {"default": ["kick", "bassdrum"], "custom": []},
            "MIDI": {"default": [], "custom": []},
        }
    )
    assert service.categories() == ["Kick", "Foley", "MIDI"]
    assert service.data["Kick"] == {"default": ["kick", "bassdrum"], "custom": []}
    assert service.data["Foley"] == {"default": ["steps"], "custom": []}
    assert service.protected == ["MIDI"]


def test_engine_refuses_to_remove_protected_category(config_service: ConfigService):
    engine = SorterEngine(config_service=config_service)
    with pytest.raises(ValueError):
        engine.remove_category("sample", "MIDI")


def test_engine_uses_custom_keywords_when_scanning(config_service: ConfigService, tmp_path: Path):
    make_wav(tmp_path / "pack" / "thump.wav", 0.2)
    engine = SorterEngine(config_service=config_service)
    engine.add_keyword("sample", "Kick", "thump")
    items = engine.scan_samples(tmp_path / "pack")
    assert items[0].category == "Kick"


def test_engine_reads_defaults_from_config(config_service: ConfigService, tmp_path: Path):
    config_service.save_config({"use_intelligence": False, "skip_category_dirs": {"sample": True}})
    make_wav(tmp_path / "pack" / "Kick" / "a_120bpm.wav", 0.2)
    make_wav(tmp_path / "pack" / "b_120bpm.wav", 0.2)
    engine = SorterEngine(config_service=config_service)

    items = engine.scan_samples(tmp_path / "pack")

    assert [item.file_name for item in items] == ["b_120bpm.wav"]
    assert items[0].metadata.bpm is None
    assert engine.scan_samples(tmp_path / "pack", use_intelligence=True, skip_category_dirs=False)[0].metadata.bpm == 120


def test_engine_rejects_overlapping_operations(config_service: ConfigService, tmp_path: Path):
    engine = SorterEngine(config_service=config_service)
    engine._lock.acquire()
    try:
        with pytest.raises(OperationInProgressError):
            engine.scan_presets(tmp_path)
        with pytest.raises(OperationInProgressError):
            engine.undo_last_sample_sort()
        with pytest.raises(OperationInProgressError):
            engine.save_keyword_dictionary("preset", config_service.load_default_keywords("preset"))
    finally:
        engine._lock.release()
    assert engine.scan_presets(tmp_path) == []


def test_engine_log_callback(config_service: ConfigService, tmp_path: Path):
    messages = []
    engine = SorterEngine(config_service=config_service, log_callback=messages.append)
    engine.scan_presets(tmp_path)
    assert messages[0].startswith("Scan started: mode=preset")
    assert messages[-1] == "Scan finished: 0 file(s), 0 duplicate(s)"


def test_failing_log_callback_does_not_break_operations(config_service: ConfigService, tmp_path: Path):
    def _boom(msg: str) -> None:
        raise RuntimeError(msg)

    engine = SorterEngine(config_service=config_service, log_callback=_boom)
    assert engine.scan_presets(tmp_path) == []


def test_engine_sort_and_undo_round_trip(config_service: ConfigService, tmp_path: Path):
    pack = (tmp_path / "MyPack").resolve()
    make_wav(pack / "Kick_01.wav", 0.3)
    make_wav(pack / "Snare_01.wav", 0.3)
    engine = SorterEngine(config_service=config_service)

    items = engine.scan_samples(pack)
    result = engine.sort_samples(pack, [item.to_dict() for item in items])
    assert result["count"] == 2
    assert (pack / "NEW_MyPack" / "Snare" / "Snare_01.wav").exists()
    assert config_service.get_move_log_path("sample").exists()

    undone = engine.undo_last_sample_sort()
    assert undone["count"] == 2
    assert undone["source_folder"] == str(pack)
    assert sorted(p.name for p in pack.iterdir()) == ["Kick_01.wav", "Snare_01.wav"]
    assert engine.undo_last_sample_sort()["count"] == 0
