from __future__ import annotations

import importlib.util
import json
import sys
from pathlib import Path

# Add the src directory to sys.path so that preset_sorter can be imported
SRC_DIR = Path(__file__).resolve().parents[1] / "src"
sys.path.insert(0, str(SRC_DIR))

from preset_sorter.config_service import ConfigService
from preset_sorter.engine import SorterEngine


def _load_corpus_module(repo_root: Path):
    module_path = repo_root / "scripts" / "generate_synthetic_corpus.py"
    spec = importlib.util.spec_from_file_location("generate_synthetic_corpus", module_path)
    if spec is None or spec.loader is None:
        raise RuntimeError(f"Unable to load corpus module from {module_path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_synthetic_corpus_scans_as_described(tmp_path: Path, monkeypatch) -> None:
    repo_root = Path(__file__).resolve().parents[1]
    corpus = _load_corpus_module(repo_root)
    output = tmp_path / "corpus"
    monkeypatch.setattr(sys, "argv", ["generate_synthetic_corpus.py", "--output", str(output)])

    assert corpus.main() == 0
    manifest = json.loads((output / "manifest.json").read_text(encoding="utf-8"))
    assert all((output / case["path"]).exists() for case in manifest["cases"])

    engine = SorterEngine(config_service=ConfigService(app_dir=tmp_path, config_dir_override=tmp_path / "config"))
    samples = {
        Path(item.source_path).relative_to(output.resolve()).as_posix(): item
        for item in engine.scan_samples(output / "samples")
    }
    assert len(samples) == 10

    midi = samples["samples/DemoPack/MIDI/Chords_Am_90.mid"]
    assert (midi.category, midi.metadata.bpm, midi.metadata.key) == ("MIDI", 90, "Am")

    loop = samples["samples/DemoPack/Loops/Dark_Drum_Loop_120bpm_Cm.wav"]
    assert (loop.metadata.bpm, loop.metadata.key, loop.sample_type) == (120, "Cm", "loop")
    assert loop.metadata.duration_sec > 2.0

    pad = samples["samples/DemoPack/Loops/Warm Pad Texture.aiff"]
    assert pad.metadata.bpm == 90
    assert pad.metadata.sample_rate == corpus.SAMPLE_RATE

    assert samples["samples/DemoPack/Kicks/kck_hard_01.wav"].category == "Kick"
    assert samples["samples/DemoPack/zzq_unknown.wav"].category == "Misc"
    assert samples["samples/DemoPack/Dupes/Groove.wav"].is_kept_copy
    assert samples["samples/DemoPack/Dupes/Copy/Groove.wav"].duplicate_type == "exact"
    assert samples["samples/DemoPack/Dupes/Alt/Groove.wav"].duplicate_type == "variant"

    presets = {item.file_name: item for item in engine.scan_presets(output / "presets")}
    assert presets["LD Saw Lead.fxp"].category == "Lead"
    assert presets["LD Saw Lead.fxp"].plugin_name == "SERUM"
    assert presets["Wobble - Bass.fxp"].synth_label == "SYLENTH1"
    assert presets["Pad - Warm Strings.fxp"].plugin_name is None
    assert presets["Init.vital"].synth_label == "VITAL"
