"""Binary header readers for audio, MIDI and preset files.

Each reader walks only the headers it needs (never the audio payload)
and returns an :class:`~preset_sorter.models.AudioMetadata`.  A missing
or corrupt header ends the walk early; whatever was collected up to that
point is kept.  :func:`read_metadata` dispatches on the file extension
and never raises.

Supported containers:

* WAV (RIFF/RF64): ``fmt `` / ``data`` / ``id3 `` / ``bext`` chunks
* AIFF/AIFC: ``COMM`` / ``NAME`` / ``ANNO`` / ``ID3 `` chunks
* MP3: leading ID3v2 tag
* FLAC: ``STREAMINFO`` and ``VORBIS_COMMENT`` blocks
* MIDI: first Set-Tempo and Key-Signature meta events
* FXP/FXB: VST2 preset plugin ID
"""

from __future__ import annotations

import math
import os
import re
import struct
from pathlib import Path
from typing import BinaryIO, Dict, Optional, Union

from . import tuning
from .byte_reader import ByteCursor, TruncatedDataError
from .models import AudioMetadata, round_half_up

PathLike = Union[str, Path]

READ_ERRORS = (OSError, ValueError, struct.error, IndexError, OverflowError, ZeroDivisionError)

# VST2 unique IDs (the ``fxID`` field of an FXP/FXB header).
PLUGIN_IDS: Dict[str, str] = {
    "XfsX": "SERUM",
    "syl1": "SYLENTH1",
    "NiMa": "MASSIVE",
    "Spir": "SPIRE",
    "Nexs": "NEXUS",
    "DiVa": "DIVA",
    "Zeb2": "ZEBRA 2",
    "Hive": "HIVE",
    "Omni": "OMNISPHERE",
    "Vita": "VITAL",
    "TMdl": "ANALOG LAB",
    "Av3n": "AVENGER",
    "Pgm3": "PIGMENTS",
    "OBXd": "OB-XD",
    "Dune": "DUNE",
}

# Synth/format label shown for presets that carry no plugin ID.
EXTENSION_SYNTH_LABELS: Dict[str, str] = {
    ".fxp": "VST",
    ".fxb": "VST",
    ".vstpreset": "VST3",
    ".vital": "VITAL",
    ".vitalbank": "VITAL BANK",
    ".nmsv": "MASSIVE",
    ".ksd": "MASSIVE",
    ".nmspresetx": "MASSIVE X",
    ".spf": "SYLENTH1",
    ".h2p": "U-HE",
    ".hypr": "HIVE 2",
    ".omnisphere": "OMNISPHERE",
    ".nki": "KONTAKT",
    ".nkb": "KONTAKT",
    ".nkc": "KONTAKT",
    ".nkr": "KONTAKT",
    ".xpf": "ROB PAPEN",
    ".obxd": "OB-XD",
    ".adg": "ABLETON",
    ".adv": "ABLETON",
    ".aupreset": "AU",
    ".sfz": "SFZ",
    ".phase": "PHASE PLANT",
    ".patchwork": "PATCHWORK",
}

_TEXT_BPM_PATTERNS = (
    re.compile(r"\b(\d{2,3})\s?bpm\b"),
    re.compile(r"\bbpm[:\s]*(\d{2,3})\b"),
)

_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")

_MAJOR_KEYS = ["Cb", "Gb", "Db", "Ab", "Eb", "Bb", "F", "C", "G", "D", "A", "E", "B", "F#", "C#"]
_MINOR_KEYS = ["Ab", "Eb", "Bb", "F", "C", "G", "D", "A", "E", "B", "F#", "C#", "G#", "D#", "A#"]


def parse_bpm_from_text(text: str) -> Optional[float]:
    """Find ``"NN bpm"`` or ``"bpm: NN"`` in free text (bext, NAME, ANNO)."""
    lowered = text.lower()
    for pattern in _TEXT_BPM_PATTERNS:
        match = pattern.search(lowered)
        if match:
            return float(match.group(1))
    return None


# ------------------------------------------------------------------
# ID3v2


def _decode_id3_text(body: bytes) -> str:
    if not body:
        return ""
    encoding, payload = body[0], body[1:]
    if encoding == 1:
        text = payload.decode("utf-16", errors="replace")
    elif encoding == 2:
        text = payload.decode("utf-16-be", errors="replace")
    elif encoding == 3:
        text = payload.decode("utf-8", errors="replace")
    else:
        text = payload.decode("latin-1", errors="replace")
    # Multiple values are NUL separated; the first one wins.
    return text.split("\x00")[0].strip()


def _apply_id3_frame(frame_id: str, body: bytes, meta: AudioMetadata) -> None:
    if frame_id in ("TBPM", "TBP"):
        match = _NUMBER_RE.search(_decode_id3_text(body))
        if match and meta.bpm is None:
            value = float(match.group(0))
            if value > 0:
                meta.bpm = value
    elif frame_id in ("TKEY", "TKE"):
        text = _decode_id3_text(body)
        if text and meta.key is None:
            meta.key = text
    elif frame_id in ("TLEN", "TLE"):
        match = _NUMBER_RE.search(_decode_id3_text(body))
        if match and meta.duration_sec is None:
            millis = float(match.group(0))
            if millis > 0:
                meta.duration_sec = millis / 1000.0


def parse_id3(data: bytes) -> AudioMetadata:
    """Parse an ID3v2.2/2.3/2.4 tag starting at ``data[0]``.

    Reads ``TBPM`` (bpm), ``TKEY`` (key) and ``TLEN`` (milliseconds).
    Frame sizes are syncsafe for v2.4 and plain big-endian before that.
    """
    meta = AudioMetadata()
    cursor = ByteCursor(data)
    try:
        if cursor.read_bytes(3) != b"ID3":
            return meta
        major = cursor.read_u8()
        cursor.skip(1)  # revision
        flags = cursor.read_u8()
        tag_size = cursor.read_syncsafe()
        end = min(len(data), 10 + tag_size)

        if flags & 0x40 and major == 3:
            cursor.skip(cursor.read_u32_be())
        elif flags & 0x40 and major == 4:
            cursor.skip(cursor.read_syncsafe() - 4)

        id_length = 3 if major == 2 else 4
        header_length = 6 if major == 2 else 10
        while cursor.position + header_length <= end:
            raw_id = cursor.read_bytes(id_length)
            if raw_id[0] == 0:
                break  # padding
            if major == 2:
                size = cursor.read_u24_be()
            elif major == 4:
                size = cursor.read_syncsafe()
            else:
                size = cursor.read_u32_be()
            if major != 2:
                cursor.skip(2)  # frame flags
            if size <= 0 or cursor.position + size > end:
                break
            body = cursor.read_bytes(size)
            _apply_id3_frame(raw_id.decode("latin-1"), body, meta)
    except TruncatedDataError:
        pass
    return meta


# ------------------------------------------------------------------
# WAV


def _read_header(fh: BinaryIO, big_endian: bool = False):
    return ByteCursor(fh.read(8)).read_chunk_header(big_endian=big_endian)


def _walk_riff(fh: BinaryIO, file_size: int, meta: AudioMetadata, state: Dict[str, int]) -> None:
    header = ByteCursor(fh.read(12))
    riff_id, riff_size = header.read_chunk_header()
    if riff_id not in ("RIFF", "RF64") or header.read_fourcc() != "WAVE":
        return
    end = min(file_size, riff_size + 8)
    offset = 12
    while offset + 8 <= end:
        fh.seek(offset)
        chunk_id, size = _read_header(fh)
        body_start = offset + 8
        if chunk_id == "fmt ":
            fmt = ByteCursor(fh.read(min(size, 40)))
            fmt.skip(2)  # format tag
            meta.channels = fmt.read_u16_le()
            meta.sample_rate = fmt.read_u32_le()
            if fmt.remaining >= 8:
                fmt.skip(6)  # byte rate + block align
                state["bits"] = fmt.read_u16_le() or 16
        elif chunk_id == "data":
            state["data_size"] = min(size, max(0, file_size - body_start))
        elif chunk_id in ("id3 ", "ID3 ", "id3\x00", "ID3\x00"):
            tag = parse_id3(fh.read(min(size, tuning.WAV_ID3_CHUNK_MAX)))
            meta.fill_missing(tag)
        elif chunk_id == "bext" and meta.bpm is None:
            text = fh.read(min(size, tuning.WAV_BEXT_SCAN_BYTES)).decode("latin-1")
            meta.bpm = parse_bpm_from_text(text)
        offset = body_start + size + (size & 1)


def read_wav(path: PathLike) -> AudioMetadata:
    meta = AudioMetadata()
    state: Dict[str, int] = {"bits": 16}
    file_size = 0
    try:
        with open(path, "rb") as fh:
            file_size = os.fstat(fh.fileno()).st_size
            _walk_riff(fh, file_size, meta, state)
    except READ_ERRORS:
        pass  # keep what the walk collected

    if meta.sample_rate and meta.channels:
        bytes_per_sample = max(1, state["bits"] // 8)
        frame_bytes = meta.sample_rate * meta.channels
        if "data_size" in state:
            meta.duration_sec = state["data_size"] / (frame_bytes * bytes_per_sample)
        elif meta.duration_sec is None and file_size > 44:
            # No data chunk reached; estimate from a canonical 44-byte header.
            meta.duration_sec = (file_size - 44) / (frame_bytes * 2)
    return meta


# ------------------------------------------------------------------
# AIFF


def decode_extended_sample_rate(raw: bytes) -> int:
    """Decode the 80-bit IEEE extended sample rate stored in ``COMM``."""
    cursor = ByteCursor(raw)
    exponent = cursor.read_u16_be() & 0x7FFF
    mantissa = cursor.read_u32_be()
    if exponent == 0 and mantissa == 0:
        return 0
    return round_half_up(math.ldexp(mantissa, exponent - 16414))


def _walk_iff(fh: BinaryIO, file_size: int, meta: AudioMetadata) -> None:
    header = ByteCursor(fh.read(12))
    form_id, form_size = header.read_chunk_header(big_endian=True)
    if form_id != "FORM" or header.read_fourcc() not in ("AIFF", "AIFC"):
        return
    end = min(file_size, form_size + 8)
    offset = 12
    while offset + 8 <= end:
        fh.seek(offset)
        chunk_id, size = _read_header(fh, big_endian=True)
        if chunk_id == "COMM":
            comm = ByteCursor(fh.read(min(size, 18)))
            channels = comm.read_i16_be()
            frames = comm.read_u32_be()
            comm.skip(2)  # sample size
            sample_rate = decode_extended_sample_rate(comm.read_bytes(10))
            meta.channels = channels
            if sample_rate > 0:
                meta.sample_rate = sample_rate
                meta.duration_sec = frames / sample_rate
        elif chunk_id in ("NAME", "ANNO") and meta.bpm is None:
            text = fh.read(min(size, tuning.AIFF_TEXT_CHUNK_MAX)).decode("latin-1")
            meta.bpm = parse_bpm_from_text(text)
        elif chunk_id in ("ID3 ", "id3 "):
            meta.fill_missing(parse_id3(fh.read(size)))
        offset = offset + 8 + size + (size & 1)


def read_aiff(path: PathLike) -> AudioMetadata:
    meta = AudioMetadata()
    try:
        with open(path, "rb") as fh:
            _walk_iff(fh, os.fstat(fh.fileno()).st_size, meta)
    except READ_ERRORS:
        pass  # keep what the walk collected
    return meta


# ------------------------------------------------------------------
# MP3


def read_mp3(path: PathLike) -> AudioMetadata:
    try:
        with open(path, "rb") as fh:
            head = fh.read(tuning.MP3_HEAD_BYTES)
    except OSError:
        return AudioMetadata()
    if not head.startswith(b"ID3"):
        return AudioMetadata()
    return parse_id3(head)


# ------------------------------------------------------------------
# FLAC


def _apply_vorbis_comments(block: bytes, meta: AudioMetadata) -> None:
    cursor = ByteCursor(block)
    cursor.skip(cursor.read_u32_le())  # vendor string
    count = cursor.read_u32_le()
    for _ in range(count):
        entry = cursor.read_bytes(cursor.read_u32_le()).decode("utf-8", errors="replace")
        name, sep, value = entry.partition("=")
        if not sep:
            continue
        name = name.strip().lower()
        value = value.strip()
        if name == "bpm" and meta.bpm is None:
            match = _NUMBER_RE.search(value)
            if match and float(match.group(0)) > 0:
                meta.bpm = float(match.group(0))
        elif name in ("initialkey", "key") and value and meta.key is None:
            meta.key = value


def _walk_flac(fh: BinaryIO, meta: AudioMetadata) -> None:
    if fh.read(4) != b"fLaC":
        return
    while True:
        header = ByteCursor(fh.read(4))
        flags = header.read_u8()
        length = header.read_u24_be()
        block_type = flags & 0x7F
        if block_type == 0:
            info = fh.read(length)
            if len(info) < 18:
                return
            sample_rate = ((info[10] << 12) | (info[11] << 4) | (info[12] >> 4)) & 0xFFFFF
            channels = ((info[12] >> 1) & 0x07) + 1
            total_samples = ((info[13] & 0x0F) << 32) | struct.unpack(">I", info[14:18])[0]
            meta.channels = channels
            if sample_rate:
                meta.sample_rate = sample_rate
                if total_samples:
                    meta.duration_sec = total_samples / sample_rate
        elif block_type == 4:
            _apply_vorbis_comments(fh.read(length), meta)
        else:
            fh.seek(length, os.SEEK_CUR)
        if flags & 0x80:
            return


def read_flac(path: PathLike) -> AudioMetadata:
    meta = AudioMetadata()
    try:
        with open(path, "rb") as fh:
            _walk_flac(fh, meta)
    except READ_ERRORS:
        pass  # keep what the walk collected
    return meta


# ------------------------------------------------------------------
# MIDI


def read_midi(path: PathLike) -> AudioMetadata:
    meta = AudioMetadata()
    try:
        with open(path, "rb") as fh:
            data = fh.read(tuning.MIDI_SCAN_BYTES)
    except OSError:
        return meta
    if not data.startswith(b"MThd"):
        return meta

    tempo_at = data.find(b"\xff\x51\x03")
    if tempo_at >= 0 and tempo_at + 6 <= len(data):
        micros = ByteCursor(data, tempo_at + 3).read_u24_be()
        if micros > 0:
            meta.bpm = float(round_half_up(60_000_000 / micros))

    key_at = data.find(b"\xff\x59\x02")
    if key_at >= 0 and key_at + 5 <= len(data):
        sharps_flats = struct.unpack(">b", data[key_at + 3 : key_at + 4])[0]
        minor = data[key_at + 4] == 1
        if -7 <= sharps_flats <= 7:
            if minor:
                meta.key = _MINOR_KEYS[sharps_flats + 7] + "m"
                meta.mood = "Minor"
            else:
                meta.key = _MAJOR_KEYS[sharps_flats + 7]
                meta.mood = "Major"
    return meta


# ------------------------------------------------------------------
# FXP / FXB


def read_plugin_id(path: PathLike) -> Optional[str]:
    """Return the 4-character VST2 plugin ID of an FXP/FXB file, if any."""
    try:
        with open(path, "rb") as fh:
            cursor = ByteCursor(fh.read(20))
        if cursor.read_fourcc() != "CcnK":
            return None
        cursor.seek(16)
        return cursor.read_fourcc()
    except READ_ERRORS:
        return None


def read_plugin_name(path: PathLike) -> Optional[str]:
    plugin_id = read_plugin_id(path)
    if plugin_id is None:
        return None
    return PLUGIN_IDS.get(plugin_id)


def synth_label_for(ext: str, plugin_name: Optional[str] = None) -> Optional[str]:
    if plugin_name:
        return plugin_name
    return EXTENSION_SYNTH_LABELS.get(ext.lower())


# ------------------------------------------------------------------

_READERS = {
    ".wav": read_wav,
    ".aif": read_aiff,
    ".aiff": read_aiff,
    ".aifc": read_aiff,
    ".mp3": read_mp3,
    ".flac": read_flac,
    ".mid": read_midi,
    ".midi": read_midi,
}


def read_metadata(path: PathLike) -> AudioMetadata:
    """Read header metadata for ``path``; unsupported or broken files give empty metadata."""
    reader = _READERS.get(Path(path).suffix.lower())
    if reader is None:
        return AudioMetadata()
    try:
        return reader(path)
    except Exception:
        return AudioMetadata()
