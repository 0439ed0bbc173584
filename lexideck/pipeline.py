"""Translation stage: rate-limited completions feeding the audio queue."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any, Callable, Dict, List

from .core.graceful_shutdown import GracefulShutdown
from .core.job_queue import Job, JobQueue
from .core.task_queue import Task, TaskQueue
from .core.worker_pool import SYNTHESIZE_JOB
from .records import DEFAULT_AUDIO_EXTENSION, DeckWriter, PipelineRecord, TranslationEntry, build_record
from .words import TRANSLATE_JOB

TaskFactory = Callable[[str], Task]


class TranslationStage:
    """Turns ``translate`` jobs into deck rows and ``synthesize`` jobs.

    Several feeders pull jobs concurrently so the next request is always
    ready, but every completion call goes through the shared
    :class:`TaskQueue`, which dispatches them one at a time under the current
    rate ceiling.
    """

    def __init__(
        self,
        *,
        jobs: JobQueue,
        audio_jobs: JobQueue,
        task_queue: TaskQueue,
        task_factory: TaskFactory,
        writer: DeckWriter,
        shutdown: GracefulShutdown,
        logger,
        concurrency: int = 4,
        poll_interval: float = 0.5,
        audio_extension: str = DEFAULT_AUDIO_EXTENSION,
    ) -> None:
        self.jobs = jobs
        self.audio_jobs = audio_jobs
        self.task_queue = task_queue
        self.task_factory = task_factory
        self.writer = writer
        self.shutdown = shutdown
        self.logger = logger
        self.concurrency = max(1, int(concurrency))
        self.poll_interval = poll_interval
        self.audio_extension = audio_extension
        self.stats: Dict[str, int] = defaultdict(int)

    async def run(self) -> None:
        feeders = [
            asyncio.create_task(self._feeder(idx), name=f"translation-{idx}")
            for idx in range(self.concurrency)
        ]
        await asyncio.gather(*feeders)

    async def _feeder(self, feeder_id: int) -> None:
        while not self.shutdown.is_triggered():
            job = await asyncio.to_thread(self.jobs.fetch_job)
            if job is None:
                await self.shutdown.wait(self.poll_interval)
                continue
            await self.process_job(job)
        self.logger.debug("Translation feeder %d exiting.", feeder_id)

    async def process_job(self, job: Job) -> PipelineRecord | None:
        word = self._word_of(job)
        if not word:
            await asyncio.to_thread(self.jobs.mark_failed, job.identifier, error="Job has no word", retry=False)
            self.stats["failed"] += 1
            return None

        future = self.task_queue.enqueue(self.task_factory(word))
        stopper = asyncio.ensure_future(self.shutdown.event.wait())
        try:
            await asyncio.wait({future, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stopper.cancel()
        if not future.done():
            # Left active on purpose; the next run recovers it as waiting.
            self.logger.warning("Shutdown requested; abandoning translation of %r", word)
            self.stats["abandoned"] += 1
            return None

        try:
            entries: List[TranslationEntry] = future.result()
        except Exception as exc:
            # Retrying already happened inside the task queue where applicable.
            await self._fail(job, word, "Translation", exc)
            return None

        try:
            record = build_record(word, entries, extension=self.audio_extension)
            self.writer.append(record.entries)
            audio_texts = record.audio_texts()
            await asyncio.to_thread(
                self.audio_jobs.add_jobs_bulk,
                [
                    (SYNTHESIZE_JOB, {"text": text, "filename": filename, "word": word}, filename)
                    for filename, text in audio_texts.items()
                ],
            )
        except Exception as exc:
            await self._fail(job, word, "Storing translation", exc)
            return None

        await asyncio.to_thread(
            self.jobs.mark_completed,
            job.identifier,
            {"entries": len(record.entries), "audio": len(audio_texts)},
        )
        self.stats["completed"] += 1
        self.logger.info(
            "Translated %r: %d entr%s, %d audio job(s)",
            word,
            len(record.entries),
            "y" if len(record.entries) == 1 else "ies",
            len(audio_texts),
        )
        return record

    async def _fail(self, job: Job, word: str, stage: str, exc: Exception) -> None:
        await asyncio.to_thread(
            self.jobs.mark_failed, job.identifier, error=str(exc) or type(exc).__name__, retry=False
        )
        self.stats["failed"] += 1
        self.logger.error(
            "%s of %r failed: %s",
            stage,
            word,
            exc,
            extra={"queue": self.jobs.name, "job_id": job.identifier, "word": word},
        )

    @staticmethod
    def _word_of(job: Job) -> str:
        payload: Any = job.payload
        if isinstance(payload, dict):
            payload = payload.get("word")
        return str(payload or "").strip() if job.name == TRANSLATE_JOB else ""


__all__ = ["TranslationStage"]
