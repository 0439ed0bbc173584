"""Word list loading and translation job seeding."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List

from .core.job_queue import JobQueue

TRANSLATE_JOB = "translate"


@dataclass(frozen=True)
class Word:
    index: int
    text: str


def load_words(path: str | Path) -> List[Word]:
    """Read one word per line, skipping blanks and repeated words."""

    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"Word list not found: {file_path}")
    words: List[Word] = []
    seen: set[str] = set()
    for index, line in enumerate(file_path.read_text(encoding="utf-8").splitlines()):
        text = line.strip()
        if not text or text in seen:
            continue
        seen.add(text)
        words.append(Word(index=index, text=text))
    return words


def seed_translation_jobs(queue: JobQueue, words: Iterable[Word], *, logger) -> int:
    """Queue a ``translate`` job per word; words already queued are skipped."""

    words = list(words)
    existing = len(queue.get_jobs())
    added = queue.add_jobs_bulk(
        (TRANSLATE_JOB, {"word": word.text, "index": word.index}, word.text) for word in words
    )
    logger.info(
        "Existing jobs: %d, words: %d, jobs added: %d", existing, len(words), len(added)
    )
    return len(added)


__all__ = ["Word", "load_words", "seed_translation_jobs", "TRANSLATE_JOB"]
