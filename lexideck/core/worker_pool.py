"""Concurrent audio workers pulling synthesis jobs from the durable queue."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from pathlib import Path
from typing import Dict, Iterable, List

from .graceful_shutdown import GracefulShutdown
from .job_queue import Job, JobQueue

SYNTHESIZE_JOB = "synthesize"


class AudioWorkerPool:
    """Runs ``backend.concurrency`` workers for every configured backend.

    All workers share one durable queue. A failed synthesis is reported back
    to that queue, which owns retrying it; sibling jobs are unaffected.
    """

    def __init__(
        self,
        *,
        job_queue: JobQueue,
        backends: Iterable,
        audio_dir: str | Path,
        shutdown: GracefulShutdown,
        logger,
        poll_interval: float = 0.5,
    ) -> None:
        self.job_queue = job_queue
        self.backends = list(backends)
        self.audio_dir = Path(audio_dir)
        self.shutdown = shutdown
        self.logger = logger
        self.poll_interval = poll_interval
        self.stats: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))

    async def run(self) -> None:
        if not self.backends:
            self.logger.warning("No text-to-speech backends configured; audio stage idle.")
            return
        tasks: List[asyncio.Task] = []
        for backend in self.backends:
            for idx in range(max(1, backend.concurrency)):
                tasks.append(
                    asyncio.create_task(
                        self._worker(backend, idx),
                        name=f"audio-{backend.name}-{idx}",
                    )
                )
        self.logger.info(
            "Started %d audio worker(s) across %d backend(s).", len(tasks), len(self.backends)
        )
        try:
            await asyncio.gather(*tasks)
        finally:
            for backend in self.backends:
                try:
                    await backend.aclose()
                except Exception as exc:  # pragma: no cover - cleanup best effort
                    self.logger.debug("Closing backend %s failed: %s", backend.name, exc)

    async def _worker(self, backend, worker_id: int) -> None:
        while not self.shutdown.is_triggered():
            job = await asyncio.to_thread(self.job_queue.fetch_job)
            if job is None:
                await self.shutdown.wait(self.poll_interval)
                continue
            await self.process_job(backend, job)
        self.logger.debug("Audio worker %s-%d exiting.", backend.name, worker_id)

    async def process_job(self, backend, job: Job) -> bool:
        payload = job.payload if isinstance(job.payload, dict) else {}
        text = str(payload.get("text") or "")
        filename = str(payload.get("filename") or "")
        if not filename:
            await asyncio.to_thread(
                self.job_queue.mark_failed, job.identifier, error="Job payload has no filename", retry=False
            )
            self.stats[backend.name]["failed"] += 1
            return False

        target = self.audio_dir / filename
        if target.exists():
            await asyncio.to_thread(
                self.job_queue.mark_completed, job.identifier, {"path": str(target), "cached": True}
            )
            self.stats[backend.name]["cached"] += 1
            return True

        try:
            await backend.synthesize(text, target)
        except Exception as exc:
            status = await asyncio.to_thread(
                self.job_queue.mark_failed, job.identifier, error=str(exc) or type(exc).__name__, retry=True
            )
            self.stats[backend.name]["failed"] += 1
            self.logger.warning(
                "[%s] Synthesis failed for job %s (attempt %d, now %s): %s",
                backend.name,
                job.identifier,
                job.attempts,
                status,
                exc,
                extra={"queue": self.job_queue.name, "job_id": job.identifier, "backend": backend.name},
            )
            return False

        await asyncio.to_thread(
            self.job_queue.mark_completed, job.identifier, {"path": str(target), "backend": backend.name}
        )
        self.stats[backend.name]["completed"] += 1
        self.logger.debug("[%s] Synthesized %s", backend.name, filename)
        return True


__all__ = ["AudioWorkerPool", "SYNTHESIZE_JOB"]
