"""Prompt loading and hashing utilities."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from pathlib import Path

DEFAULT_PROMPT = """\
You are a Czech language teacher. You will be given words in Czech. You will be creating text for \
flashcards that map English words to Czech words. Since words don't always map 1 to 1 between \
languages, you will be listing all possible translations within different usage contexts. For each \
Czech word and each possible translation / usage context you must output the following in a strict \
json format: word in Czech (sourceText), context sentence in Czech (sourceContext), word in English \
(targetText), context sentence in English (targetContext).
"""


@dataclass(frozen=True)
class PromptBundle:
    prompt: str
    prompt_hash: str
    source_path: Path


class PromptManager:
    """Loads the instruction prompt, seeding the default one on first use."""

    def __init__(self, prompt_dir: str | Path, *, filename: str) -> None:
        self.prompt_dir = Path(prompt_dir)
        self.filename = filename

    @property
    def path(self) -> Path:
        return self.prompt_dir / self.filename

    def load(self) -> PromptBundle:
        path = self.path
        if not path.exists():
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(DEFAULT_PROMPT, encoding="utf-8")
        text = path.read_text(encoding="utf-8").strip()
        if not text:
            raise ValueError(f"Prompt file is empty: {path}")
        prompt_hash = hashlib.sha256(text.encode("utf-8")).hexdigest()
        return PromptBundle(prompt=text, prompt_hash=prompt_hash, source_path=path)


__all__ = ["PromptBundle", "PromptManager", "DEFAULT_PROMPT"]
