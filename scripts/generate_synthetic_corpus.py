from __future__ import annotations

import argparse
import json
import math
import struct
import wave
from pathlib import Path

SAMPLE_RATE = 22050


def _clamp(v: float) -> float:
    return max(-1.0, min(1.0, v))


def _pcm16(samples: list[float]) -> bytes:
    pcm = bytearray()
    for s in samples:
        pcm += int(_clamp(s) * 32767).to_bytes(2, byteorder="little", signed=True)
    return bytes(pcm)


def write_wav(path: Path, samples: list[float], sample_rate: int = SAMPLE_RATE) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with wave.open(str(path), "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)
        wf.writeframes(_pcm16(samples))


def _extended_80(value: int) -> bytes:
    exponent = value.bit_length() - 1
    return struct.pack(">HQ", exponent + 16383, value << (63 - exponent))


def write_aiff(path: Path, samples: list[float], name: str = "", sample_rate: int = SAMPLE_RATE) -> None:
    """Mono 16-bit AIFF with an optional NAME chunk (AIFF stores big-endian PCM)."""
    le = _pcm16(samples)
    be = b"".join(le[i + 1 : i + 2] + le[i : i + 1] for i in range(0, len(le), 2))
    chunks = b"COMM" + struct.pack(">IhIh", 18, 1, len(samples), 16) + _extended_80(sample_rate)
    if name:
        text = name.encode("ascii")
        chunks += b"NAME" + struct.pack(">I", len(text)) + text + (b"\x00" if len(text) % 2 else b"")
    ssnd = struct.pack(">II", 0, 0) + be
    chunks += b"SSND" + struct.pack(">I", len(ssnd)) + ssnd
    body = b"AIFF" + chunks
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"FORM" + struct.pack(">I", len(body)) + body)


def write_midi(path: Path, bpm: int, sharps_flats: int = 0, minor: bool = False) -> None:
    tempo = round(60_000_000 / bpm)
    events = b"\x00\xff\x51\x03" + tempo.to_bytes(3, "big")
    events += b"\x00\xff\x59\x02" + struct.pack(">bB", sharps_flats, 1 if minor else 0)
    for note in (60, 64, 67):
        events += bytes([0x00, 0x90, note, 96])
    events += bytes([0x60, 0x80, 60, 0]) + bytes([0x00, 0x80, 64, 0]) + bytes([0x00, 0x80, 67, 0])
    events += b"\x00\xff\x2f\x00"
    header = b"MThd" + struct.pack(">IHHH", 6, 0, 1, 96)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(header + b"MTrk" + struct.pack(">I", len(events)) + events)


def write_fxp(path: Path, plugin_id: str, program_name: str) -> None:
    name = program_name.encode("ascii")[:27].ljust(28, b"\x00")
    body = b"FxCk" + struct.pack(">I", 1) + plugin_id.encode("ascii") + struct.pack(">II", 1, 0) + name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"CcnK" + struct.pack(">I", len(body)) + body)


def sine_tone(freq: float, duration_s: float, amp: float = 0.6) -> list[float]:
    n = int(duration_s * SAMPLE_RATE)
    return [amp * math.sin(2.0 * math.pi * freq * (i / SAMPLE_RATE)) for i in range(n)]


def kick_like(duration_s: float = 0.14) -> list[float]:
    n = int(duration_s * SAMPLE_RATE)
    phase = 0.0
    out: list[float] = []
    for i in range(n):
        t = i / SAMPLE_RATE
        freq = 140.0 * math.exp(-12.0 * t) + 38.0
        phase += (2.0 * math.pi * freq) / SAMPLE_RATE
        out.append(0.85 * math.exp(-28.0 * t) * math.sin(phase))
    return out


def noise_hit(duration_s: float = 0.08, decay: float = 38.0) -> list[float]:
    n = int(duration_s * SAMPLE_RATE)
    out: list[float] = []
    state = 1
    for i in range(n):
        # Deterministic LCG pseudo-noise.
        state = (1103515245 * state + 12345) & 0x7FFFFFFF
        noise = ((state / 0x7FFFFFFF) * 2.0) - 1.0
        out.append(0.55 * math.exp(-decay * i / SAMPLE_RATE) * noise)
    return out


def pulse_loop(bpm: int, bars: int = 1, freq: float = 110.0) -> list[float]:
    """Four-on-the-floor tone pulses, ``bars`` bars long at ``bpm``."""
    beat = 60.0 / bpm
    out: list[float] = []
    for _ in range(bars * 4):
        tone = sine_tone(freq, beat * 0.5, amp=0.5)
        out.extend(tone)
        out.extend([0.0] * (int(beat * SAMPLE_RATE) - len(tone)))
    return out


def build_corpus(root: Path) -> list[dict[str, object]]:
    cases: list[dict[str, object]] = []

    def add(rel: str, mode: str, expected_category: str, note: str) -> None:
        cases.append(
            {
                "path": rel.replace("\\", "/"),
                "mode": mode,
                "expected_category_hint": expected_category,
                "note": note,
            }
        )

    samples = root / "samples" / "DemoPack"
    write_wav(samples / "Kicks" / "kck_hard_01.wav", kick_like(0.14))
    add("samples/DemoPack/Kicks/kck_hard_01.wav", "sample", "Kick", "Abbreviated kick name; one-shot by duration.")
    write_wav(samples / "Kicks" / "kck_808.wav", kick_like(0.2))
    add("samples/DemoPack/Kicks/kck_808.wav", "sample", "Bass", "808 outweighs the kick abbreviation with the full dictionary.")
    write_wav(samples / "Hats" / "Closed_HH_01.wav", noise_hit(0.06))
    add("samples/DemoPack/Hats/Closed_HH_01.wav", "sample", "HiHat", "hh expands to hihat.")
    write_wav(samples / "Loops" / "Dark_Drum_Loop_120bpm_Cm.wav", pulse_loop(120, bars=2))
    add("samples/DemoPack/Loops/Dark_Drum_Loop_120bpm_Cm.wav", "sample", "Drum Loop", "BPM, key and mood from the name.")
    write_aiff(samples / "Loops" / "Warm Pad Texture.aiff", sine_tone(220.0, 2.5, amp=0.3), name="Warm Pad 90 BPM")
    add("samples/DemoPack/Loops/Warm Pad Texture.aiff", "sample", "Texture", "AIFF with a BPM in its NAME chunk.")
    write_wav(samples / "Dupes" / "Groove.wav", pulse_loop(100))
    write_wav(samples / "Dupes" / "Copy" / "Groove.wav", pulse_loop(100))
    write_wav(samples / "Dupes" / "Alt" / "Groove.wav", pulse_loop(100, bars=2))
    for rel in ("Dupes/Groove.wav", "Dupes/Copy/Groove.wav", "Dupes/Alt/Groove.wav"):
        add(f"samples/DemoPack/{rel}", "sample", "Misc", "Duplicate demo: two exact copies and one variant.")
    write_wav(samples / "zzq_unknown.wav", noise_hit(0.3, decay=6.0))
    add("samples/DemoPack/zzq_unknown.wav", "sample", "Misc", "No keyword hit; lands in Misc with confidence 0.")
    write_midi(samples / "MIDI" / "Chords_Am_90.mid", 90, sharps_flats=0, minor=True)
    add("samples/DemoPack/MIDI/Chords_Am_90.mid", "sample", "MIDI", "MIDI short-circuit; tempo and key from events.")

    presets = root / "presets" / "DemoBank"
    write_fxp(presets / "LD Saw Lead.fxp", "XfsX", "LD Saw Lead")
    add("presets/DemoBank/LD Saw Lead.fxp", "preset", "Lead", "Prefix code plus suffix contains; Serum plugin ID.")
    write_fxp(presets / "Wobble - Bass.fxp", "syl1", "Wobble Bass")
    add("presets/DemoBank/Wobble - Bass.fxp", "preset", "Bass", "Suffix exact; Sylenth1 plugin ID.")
    write_fxp(presets / "Pad - Warm Strings.fxp", "Zzzz", "Warm Strings")
    add("presets/DemoBank/Pad - Warm Strings.fxp", "preset", "Pad", "First segment beats suffix contains; unknown plugin.")
    (presets / "Init.vital").write_text("{}", encoding="utf-8")
    add("presets/DemoBank/Init.vital", "preset", "Misc", "No keyword hit; synth label from extension.")

    return cases


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Generate a small deterministic sample/preset pack for demos and bug reports."
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=Path("examples") / "synthetic_corpus",
        help="Output folder (default: examples/synthetic_corpus)",
    )
    args = parser.parse_args()

    output_root = args.output.resolve()
    output_root.mkdir(parents=True, exist_ok=True)
    cases = build_corpus(output_root)

    manifest = {
        "version": 1,
        "description": "Deterministic synthetic sample and preset pack for Preset Sorter demos and bug reports.",
        "generator": "scripts/generate_synthetic_corpus.py",
        "cases": cases,
    }
    (output_root / "manifest.json").write_text(json.dumps(manifest, indent=2), encoding="utf-8")
    print(f"Generated {len(cases)} files under {output_root}")
    print(f"Wrote manifest: {output_root / 'manifest.json'}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
