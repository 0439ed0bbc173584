"""Runtime orchestration for LexiDeck."""

from __future__ import annotations

import asyncio
import json
import time
from pathlib import Path
from typing import Any, Dict

from .completions import CompletionClient, completion_task
from .config import require_completion_settings
from .core import (
    AudioWorkerPool,
    GracefulShutdown,
    JobQueue,
    ProgressMonitor,
    RateLimiter,
    RetryConfig,
    RetryCoordinator,
    TaskQueue,
)
from .interleave import key_sequence, reorder
from .pipeline import TranslationStage
from .prompts import PromptManager
from .records import DeckWriter, read_deck, write_deck
from .tts import build_backends
from .words import load_words, seed_translation_jobs

TRANSLATION_QUEUE = "translation"
AUDIO_QUEUE = "audio"


class LexiDeckRuntime:
    def __init__(self, config: Dict[str, Any], logger) -> None:
        self.config = config
        self.logger = logger

    # ------------------------------------------------------------------
    @property
    def paths(self) -> Dict[str, str]:
        return self.config.get("paths", {})

    def open_queues(self) -> tuple[JobQueue, JobQueue]:
        audio_cfg = self.config.get("audio", {})
        translation = JobQueue(self.paths["jobs_db"], TRANSLATION_QUEUE, logger=self.logger)
        audio = JobQueue(
            self.paths["jobs_db"],
            AUDIO_QUEUE,
            logger=self.logger,
            max_attempts=int(audio_cfg.get("max_attempts", 3)),
            backoff=float(audio_cfg.get("backoff_seconds", 2.0)),
        )
        translation.initialize()
        audio.initialize()
        return translation, audio

    # ------------------------------------------------------------------
    def seed(self, words_path: str | None = None) -> int:
        words = load_words(words_path or self.paths["words"])
        translation, _ = self.open_queues()
        return seed_translation_jobs(translation, words, logger=self.logger)

    def status(self) -> Dict[str, Dict[str, int]]:
        translation, audio = self.open_queues()
        return {
            TRANSLATION_QUEUE: translation.get_job_counts(),
            AUDIO_QUEUE: audio.get_job_counts(),
        }

    def reorder(
        self,
        input_path: str | None = None,
        output_path: str | None = None,
        *,
        sequence_path: str | None = None,
        new_items_per_group: int | None = None,
        entries_per_group_item: int | None = None,
    ) -> int:
        deck_cfg = self.config.get("deck", {})
        new_items = int(
            new_items_per_group
            if new_items_per_group is not None
            else deck_cfg.get("new_items_per_group", 10)
        )
        per_item = int(
            entries_per_group_item
            if entries_per_group_item is not None
            else deck_cfg.get("entries_per_group_item", 1)
        )
        source = Path(input_path or self.paths["deck"])
        target = Path(output_path) if output_path else source.with_name(f"{source.stem}.ordered{source.suffix}")

        entries = read_deck(source)
        ordered = reorder(entries, new_items, per_item, key=lambda entry: entry.source_text)
        written = write_deck(target, ordered)
        self.logger.info("Reordered %d entr%s from %s into %s", written, "y" if written == 1 else "ies", source, target)

        if sequence_path:
            payload = {
                "wordsSequence": key_sequence(ordered, key=lambda entry: entry.source_text),
                "newWordsPerDay": new_items,
                "entriesPerWord": per_item,
            }
            Path(sequence_path).write_text(json.dumps(payload) + "\n", encoding="utf-8")
            self.logger.info("Word sequence written to %s", sequence_path)
        return written

    # ------------------------------------------------------------------
    async def run(self) -> bool:
        completion = require_completion_settings(self.config)
        translation_jobs, audio_jobs = self.open_queues()
        if translation_jobs.pending_jobs() == 0 and audio_jobs.pending_jobs() == 0:
            self.logger.warning("No pending jobs to process; run 'seed' first.")
            return False

        prompt = PromptManager(self.paths["prompts"], filename=str(completion.get("prompt_file"))).load()
        self.logger.info("Loaded prompt %s (hash %s)", prompt.source_path, prompt.prompt_hash[:12])

        client = CompletionClient(
            base_url=str(completion["base_url"]),
            api_key=str(completion["api_key"]),
            model=str(completion["model"]),
            prompt=prompt.prompt,
            timeout=float(completion.get("timeout", 120)),
            key_info_url=completion.get("key_info_url") or None,
            strict_schema=bool(completion.get("strict_schema", True)),
            logger=self.logger,
        )
        scheduler_cfg = self.config.get("scheduler", {})
        task_queue = TaskQueue(
            rate_limiter=RateLimiter(
                float(scheduler_cfg.get("initial_requests_per_second", 1)),
                refresh_interval=int(scheduler_cfg.get("refresh_interval", 10)),
            ),
            retry=RetryCoordinator(
                RetryConfig(
                    max_retries=int(scheduler_cfg.get("max_retries", 5)),
                    min_backoff=float(scheduler_cfg.get("min_backoff_seconds", 1.0)),
                    max_backoff=float(scheduler_cfg.get("max_backoff_seconds", 60.0)),
                ),
                logger=self.logger,
            ),
            refresh_rate=client.fetch_requests_per_second if client.key_info_url else None,
            logger=self.logger,
        )
        if client.key_info_url:
            await task_queue.refresh_rate_now()

        shutdown = GracefulShutdown()
        shutdown.install()

        audio_cfg = self.config.get("audio", {})
        translation_cfg = self.config.get("translation", {})
        monitor_cfg = self.config.get("monitor", {})
        stage = TranslationStage(
            jobs=translation_jobs,
            audio_jobs=audio_jobs,
            task_queue=task_queue,
            task_factory=lambda word: completion_task(client, word),
            writer=DeckWriter(self.paths["deck"]),
            shutdown=shutdown,
            logger=self.logger,
            concurrency=int(translation_cfg.get("concurrency", 4)),
            poll_interval=float(translation_cfg.get("poll_interval", 0.5)),
            audio_extension=str(audio_cfg.get("extension", "wav")),
        )
        audio_pool = AudioWorkerPool(
            job_queue=audio_jobs,
            backends=build_backends(audio_cfg.get("backends", []), logger=self.logger),
            audio_dir=self.paths["audio"],
            shutdown=shutdown,
            logger=self.logger,
            poll_interval=float(audio_cfg.get("poll_interval", 0.5)),
        )
        monitor = ProgressMonitor(
            {TRANSLATION_QUEUE: translation_jobs, AUDIO_QUEUE: audio_jobs},
            shutdown=shutdown,
            logger=self.logger,
            interval=float(monitor_cfg.get("interval", 1.0)),
            grace_period=float(monitor_cfg.get("grace_period", 5.0)),
        )

        tasks = [
            asyncio.create_task(stage.run(), name="translation-stage"),
            asyncio.create_task(audio_pool.run(), name="audio-stage"),
            asyncio.create_task(monitor.run(), name="progress-monitor"),
        ]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            shutdown.trigger("error")
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        finally:
            task_queue.clear()
            await task_queue.close()
            await client.aclose()

        summary = {
            "shutdown_reason": shutdown.reason,
            "requests_per_second": task_queue.rate_limiter.rate,
            "translation": dict(stage.stats),
            "audio": {name: dict(stats) for name, stats in audio_pool.stats.items()},
            "queues": {
                TRANSLATION_QUEUE: translation_jobs.get_job_counts(),
                AUDIO_QUEUE: audio_jobs.get_job_counts(),
            },
            "timestamp": time.time(),
        }
        self._write_summary(self.paths.get("summaries"), summary)
        return True

    def _write_summary(self, directory: str | None, summary: Dict[str, Any]) -> None:
        if not directory:
            return
        target_dir = Path(directory)
        target_dir.mkdir(parents=True, exist_ok=True)
        timestamp = time.strftime("%Y%m%dT%H%M%S", time.gmtime())
        summary_path = target_dir / f"run-summary-{timestamp}.json"
        summary_path.write_text(json.dumps(summary, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
        self.logger.info("Run summary written to %s", summary_path)


__all__ = ["LexiDeckRuntime", "TRANSLATION_QUEUE", "AUDIO_QUEUE"]
