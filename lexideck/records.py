"""Translation records and the Anki-importable CSV deck format."""

from __future__ import annotations

import csv
import hashlib
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Iterable, List

DEFAULT_AUDIO_EXTENSION = "wav"

_SOUND_RE = re.compile(r"^\[sound:(.*)\]$")


@dataclass(frozen=True)
class TranslationEntry:
    source_text: str
    source_context: str
    target_text: str
    target_context: str
    source_audio: str | None = None
    source_context_audio: str | None = None


@dataclass
class PipelineRecord:
    """Everything one translation produced for a single source word."""

    word: str
    entries: List[TranslationEntry] = field(default_factory=list)

    def audio_texts(self) -> Dict[str, str]:
        """Map audio filename to text for each distinct source text and context."""

        texts: Dict[str, str] = {}
        for entry in self.entries:
            for text, filename in (
                (entry.source_text, entry.source_audio),
                (entry.source_context, entry.source_context_audio),
            ):
                if text and filename and filename not in texts:
                    texts[filename] = text
        return texts


def audio_filename(text: str, extension: str = DEFAULT_AUDIO_EXTENSION) -> str:
    digest = hashlib.sha256(text.encode("utf-8")).hexdigest()
    return f"{digest}.{extension.lstrip('.')}"


def attach_audio(entry: TranslationEntry, extension: str = DEFAULT_AUDIO_EXTENSION) -> TranslationEntry:
    return replace(
        entry,
        source_audio=audio_filename(entry.source_text, extension) if entry.source_text else None,
        source_context_audio=(
            audio_filename(entry.source_context, extension) if entry.source_context else None
        ),
    )


def build_record(
    word: str,
    entries: Iterable[TranslationEntry],
    *,
    extension: str = DEFAULT_AUDIO_EXTENSION,
) -> PipelineRecord:
    return PipelineRecord(word=word, entries=[attach_audio(entry, extension) for entry in entries])


def wrap_sound(filename: str | None) -> str:
    return f"[sound:{filename}]" if filename else ""


def unwrap_sound(value: str) -> str | None:
    match = _SOUND_RE.match(value.strip())
    if match:
        return match.group(1) or None
    return value.strip() or None


def entry_to_row(entry: TranslationEntry) -> List[str]:
    return [
        entry.source_text,
        entry.source_context,
        entry.target_text,
        entry.target_context,
        wrap_sound(entry.source_audio),
        wrap_sound(entry.source_context_audio),
    ]


def row_to_entry(row: List[str]) -> TranslationEntry:
    padded = list(row) + [""] * (6 - len(row))
    return TranslationEntry(
        source_text=padded[0],
        source_context=padded[1],
        target_text=padded[2],
        target_context=padded[3],
        source_audio=unwrap_sound(padded[4]),
        source_context_audio=unwrap_sound(padded[5]),
    )


class DeckWriter:
    """Appends entries to a header-less six-column CSV file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def append(self, entries: Iterable[TranslationEntry]) -> int:
        rows = [entry_to_row(entry) for entry in entries]
        if not rows:
            return 0
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8", newline="") as handle:
            writer = csv.writer(handle, quoting=csv.QUOTE_ALL, lineterminator="\n")
            writer.writerows(rows)
        return len(rows)


def read_deck(path: str | Path) -> List[TranslationEntry]:
    file_path = Path(path)
    with file_path.open("r", encoding="utf-8", newline="") as handle:
        return [row_to_entry(row) for row in csv.reader(handle) if any(cell.strip() for cell in row)]


def write_deck(path: str | Path, entries: Iterable[TranslationEntry]) -> int:
    file_path = Path(path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    rows = [entry_to_row(entry) for entry in entries]
    tmp = file_path.with_suffix(file_path.suffix + ".tmp")
    with tmp.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle, quoting=csv.QUOTE_ALL, lineterminator="\n")
        writer.writerows(rows)
    tmp.replace(file_path)
    return len(rows)


__all__ = [
    "TranslationEntry",
    "PipelineRecord",
    "DeckWriter",
    "audio_filename",
    "attach_audio",
    "build_record",
    "read_deck",
    "write_deck",
    "wrap_sound",
    "unwrap_sound",
]
