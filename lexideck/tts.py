"""Text-to-speech backends used by the audio stage."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, List, Mapping

import httpx

from .errors import ConfigurationError, SpeechGenerationError
from .logging_utils import get_logger


class SpeechBackend:
    """Common surface of every synthesis backend.

    ``concurrency`` is the fixed number of audio workers the pool runs
    against this backend.
    """

    kind = "base"

    def __init__(self, name: str, *, concurrency: int = 1, logger: logging.Logger | None = None) -> None:
        self.name = name
        self.concurrency = max(1, int(concurrency))
        self.logger = logger or get_logger("tts")

    async def synthesize(self, text: str, out_path: Path) -> Path:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, concurrency={self.concurrency})"


class CliSpeechBackend(SpeechBackend):
    """Runs a command-line synthesizer (Coqui ``tts`` style arguments)."""

    kind = "cli"

    def __init__(
        self,
        name: str,
        cli_path: str,
        model_name: str,
        *,
        concurrency: int = 1,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(name, concurrency=concurrency, logger=logger)
        self.cli_path = cli_path
        self.model_name = model_name

    def command(self, text: str, out_path: Path) -> List[str]:
        return [
            self.cli_path,
            "--model_name",
            self.model_name,
            "--out_path",
            str(out_path),
            "--text",
            text,
        ]

    async def synthesize(self, text: str, out_path: Path) -> Path:
        if not text:
            raise SpeechGenerationError("Text for TTS is empty", text=text, output_file=str(out_path))
        out_path = Path(out_path)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        # Same suffix as the target; synthesizers pick the audio format from it.
        partial = out_path.with_name(f"{out_path.stem}.part{out_path.suffix}")
        try:
            process = await asyncio.create_subprocess_exec(
                *self.command(text, partial),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise SpeechGenerationError(
                f"Unable to start {self.cli_path}: {exc}", text=text, output_file=str(out_path)
            ) from exc
        stdout_bytes, stderr_bytes = await process.communicate()
        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")
        if process.returncode != 0:
            partial.unlink(missing_ok=True)
            raise SpeechGenerationError(
                stderr.strip() or "Unknown error occurred",
                text=text,
                output_file=str(out_path),
                code=process.returncode,
                stderr=stderr,
                stdout=stdout,
            )
        if not partial.exists():
            raise SpeechGenerationError(
                f"{self.cli_path} exited cleanly but wrote no audio", text=text, output_file=str(out_path)
            )
        partial.replace(out_path)
        self.logger.debug("[%s] wrote %s", self.name, out_path)
        return out_path


class HttpSpeechBackend(SpeechBackend):
    """Calls a TTS server exposing ``GET /api/tts?text=...``."""

    kind = "http"

    def __init__(
        self,
        name: str,
        base_url: str,
        *,
        concurrency: int = 1,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(name, concurrency=concurrency, logger=logger)
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    async def synthesize(self, text: str, out_path: Path) -> Path:
        if not text:
            raise SpeechGenerationError("Text for TTS is empty", text=text, output_file=str(out_path))
        out_path = Path(out_path)
        try:
            response = await self._client.get("/api/tts", params={"text": text})
        except httpx.HTTPError as exc:
            raise SpeechGenerationError(
                f"HTTPError: {exc}", text=text, output_file=str(out_path)
            ) from exc
        if response.status_code != 200:
            raise SpeechGenerationError(
                f"{self.base_url} responded with HTTP {response.status_code}",
                text=text,
                output_file=str(out_path),
                code=response.status_code,
                stderr=response.text[:500],
            )
        if not response.content:
            raise SpeechGenerationError("Empty audio payload", text=text, output_file=str(out_path))
        out_path.parent.mkdir(parents=True, exist_ok=True)
        tmp = out_path.with_suffix(out_path.suffix + ".part")
        tmp.write_bytes(response.content)
        tmp.replace(out_path)
        self.logger.debug("[%s] wrote %s (%d bytes)", self.name, out_path, len(response.content))
        return out_path

    async def aclose(self) -> None:
        await self._client.aclose()


def build_backends(
    backends: List[Mapping[str, Any]],
    *,
    timeout: float = 120.0,
    logger: logging.Logger | None = None,
) -> List[SpeechBackend]:
    """Instantiate the ``audio.backends`` configuration entries."""

    built: List[SpeechBackend] = []
    for index, entry in enumerate(backends):
        kind = entry.get("kind")
        name = str(entry.get("name") or f"{kind}-{index}")
        concurrency = int(entry.get("concurrency", 1))
        if kind == "cli":
            built.append(
                CliSpeechBackend(
                    name,
                    str(entry.get("cli_path") or "tts"),
                    str(entry.get("model_name") or ""),
                    concurrency=concurrency,
                    logger=logger,
                )
            )
        elif kind == "http":
            if not entry.get("base_url"):
                raise ConfigurationError(f"Backend {name} requires base_url")
            built.append(
                HttpSpeechBackend(
                    name,
                    str(entry["base_url"]),
                    concurrency=concurrency,
                    timeout=float(entry.get("timeout", timeout)),
                    logger=logger,
                )
            )
        else:
            raise ConfigurationError(f"Unknown text-to-speech backend kind: {kind!r}")
    return built


__all__ = ["SpeechBackend", "CliSpeechBackend", "HttpSpeechBackend", "build_backends"]
