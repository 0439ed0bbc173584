from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Dict, List

from lexideck.core.graceful_shutdown import GracefulShutdown
from lexideck.core.job_queue import ACTIVE, COMPLETED, FAILED, JobQueue
from lexideck.core.outcomes import Other, RateLimited, Success
from lexideck.core.rate_limiter import RateLimiter
from lexideck.core.retry import RetryConfig, RetryCoordinator
from lexideck.core.task_queue import TaskQueue
from lexideck.errors import CompletionError, RateLimitedError
from lexideck.pipeline import TranslationStage
from lexideck.records import DeckWriter, TranslationEntry, audio_filename, read_deck
from lexideck.words import TRANSLATE_JOB

FLASHCARDS: Dict[str, List[TranslationEntry]] = {
    "pes": [
        TranslationEntry("pes", "Pes štěká.", "dog", "The dog barks."),
        TranslationEntry("pes", "Je to starý pes.", "hound", "It is an old hound."),
    ],
    "kočka": [TranslationEntry("kočka", "Kočka spí.", "cat", "The cat sleeps.")],
}


class Harness:
    def __init__(self, tmp_path: Path, logger, clock, outcomes=None) -> None:
        self.translation = JobQueue(tmp_path / "jobs.db", "translation", logger=logger)
        self.audio = JobQueue(tmp_path / "jobs.db", "audio", logger=logger, max_attempts=3)
        self.translation.initialize()
        self.audio.initialize()
        self.deck_path = tmp_path / "translations.csv"
        self.clock = clock
        self.logger = logger
        self.outcomes = outcomes or {}
        self.requests: List[str] = []

    def task_factory(self, word: str):
        async def task():
            self.requests.append(word)
            scripted = self.outcomes.get(word)
            if scripted:
                return scripted.pop(0)
            return Success(list(FLASHCARDS[word]))

        return task

    def stage(self, task_queue: TaskQueue, shutdown: GracefulShutdown) -> TranslationStage:
        return TranslationStage(
            jobs=self.translation,
            audio_jobs=self.audio,
            task_queue=task_queue,
            task_factory=self.task_factory,
            writer=DeckWriter(self.deck_path),
            shutdown=shutdown,
            logger=self.logger,
            concurrency=2,
            poll_interval=0.01,
        )

    def task_queue(self, max_retries: int = 2) -> TaskQueue:
        return TaskQueue(
            rate_limiter=RateLimiter(1, refresh_interval=0, clock=self.clock, sleep=self.clock.sleep),
            retry=RetryCoordinator(RetryConfig(max_retries=max_retries)),
            sleep=self.clock.sleep,
            logger=self.logger,
        )

    def process(self, word: str, max_retries: int = 2):
        self.translation.add_job(TRANSLATE_JOB, {"word": word}, job_key=word)

        async def scenario():
            queue = self.task_queue(max_retries)
            try:
                return await self.stage(queue, GracefulShutdown()).process_job(self.translation.fetch_job())
            finally:
                await queue.close()

        return asyncio.run(scenario())


def test_successful_translation_writes_deck_and_queues_audio(tmp_path: Path, logger, clock) -> None:
    harness = Harness(tmp_path, logger, clock)

    record = harness.process("pes")

    assert record is not None
    rows = read_deck(harness.deck_path)
    assert [row.target_text for row in rows] == ["dog", "hound"]
    assert rows[0].source_audio == audio_filename("pes")

    audio_jobs = harness.audio.get_jobs()
    assert {job.job_key for job in audio_jobs} == {
        audio_filename("pes"),
        audio_filename("Pes štěká."),
        audio_filename("Je to starý pes."),
    }
    assert all(job.payload["word"] == "pes" for job in audio_jobs)
    [done] = harness.translation.get_jobs([COMPLETED])
    assert done.result == {"entries": 2, "audio": 3}


def test_shared_audio_is_queued_once_across_words(tmp_path: Path, logger, clock) -> None:
    harness = Harness(tmp_path, logger, clock)
    FLASHCARDS["psi"] = [TranslationEntry("psi", "Pes štěká.", "dogs", "The dog barks.")]
    try:
        harness.process("pes")
        harness.process("psi")
    finally:
        del FLASHCARDS["psi"]

    assert harness.audio.total_jobs() == 4


def test_rate_limited_translation_is_retried(tmp_path: Path, logger, clock) -> None:
    throttled = RateLimited(RateLimitedError("429"))
    harness = Harness(tmp_path, logger, clock, outcomes={"kočka": [throttled]})

    record = harness.process("kočka")

    assert record is not None
    assert harness.requests == ["kočka", "kočka"]
    assert 1.0 in clock.sleeps


def test_exhausted_retries_fail_job_without_side_effects(tmp_path: Path, logger, clock) -> None:
    throttled = RateLimited(RateLimitedError("429"))
    harness = Harness(tmp_path, logger, clock, outcomes={"pes": [throttled, throttled, throttled]})

    assert harness.process("pes", max_retries=2) is None

    [failed] = harness.translation.get_jobs([FAILED])
    assert failed.last_error == "Failed after 2 retries: 429"
    assert not harness.deck_path.exists()
    assert harness.audio.total_jobs() == 0


def test_permanent_failure_is_not_retried(tmp_path: Path, logger, clock) -> None:
    harness = Harness(tmp_path, logger, clock, outcomes={"pes": [Other(CompletionError("HTTP 500"))]})

    assert harness.process("pes") is None

    assert harness.requests == ["pes"]
    assert harness.translation.get_jobs([FAILED])[0].last_error == "HTTP 500"
    assert harness.audio.total_jobs() == 0


def test_shutdown_abandons_in_flight_translation(tmp_path: Path, logger, clock) -> None:
    harness = Harness(tmp_path, logger, clock)
    harness.translation.add_job(TRANSLATE_JOB, {"word": "pes"}, job_key="pes")

    async def scenario():
        blocker = asyncio.Event()
        shutdown = GracefulShutdown()
        queue = harness.task_queue()

        def hanging(word: str):
            async def task():
                await blocker.wait()
                return Success([])

            return task

        stage = harness.stage(queue, shutdown)
        stage.task_factory = hanging
        job = harness.translation.fetch_job()
        asyncio.get_running_loop().call_later(0.05, shutdown.trigger, "signal")
        try:
            return await stage.process_job(job), stage.stats["abandoned"]
        finally:
            queue.clear()
            await queue.close()

    record, abandoned = asyncio.run(scenario())

    assert record is None
    assert abandoned == 1
    assert harness.translation.get_job_counts()[ACTIVE] == 1


def test_run_processes_every_queued_word(tmp_path: Path, logger, clock) -> None:
    harness = Harness(tmp_path, logger, clock)
    for word in FLASHCARDS:
        harness.translation.add_job(TRANSLATE_JOB, {"word": word}, job_key=word)

    async def scenario():
        shutdown = GracefulShutdown()
        queue = harness.task_queue()
        stage = harness.stage(queue, shutdown)

        async def stop_when_drained():
            while harness.translation.pending_jobs():
                await asyncio.sleep(0.01)
            shutdown.trigger("drained")

        try:
            await asyncio.wait_for(asyncio.gather(stage.run(), stop_when_drained()), timeout=10)
        finally:
            await queue.close()
        return stage.stats

    stats = asyncio.run(scenario())

    assert stats["completed"] == 2
    assert sorted(harness.requests) == sorted(FLASHCARDS)
    assert len(read_deck(harness.deck_path)) == 3


class FullDiskWriter(DeckWriter):
    def append(self, entries) -> int:
        raise OSError("disk full")


def test_storage_errors_fail_the_word_and_keep_feeding(tmp_path: Path, logger, clock) -> None:
    harness = Harness(tmp_path, logger, clock)
    for word in FLASHCARDS:
        harness.translation.add_job(TRANSLATE_JOB, {"word": word}, job_key=word)

    async def scenario():
        shutdown = GracefulShutdown()
        queue = harness.task_queue()
        stage = harness.stage(queue, shutdown)
        stage.writer = FullDiskWriter(harness.deck_path)

        async def stop_when_settled():
            while harness.translation.get_job_counts()[FAILED] < len(FLASHCARDS):
                await asyncio.sleep(0.01)
            shutdown.trigger("drained")

        try:
            await asyncio.wait_for(asyncio.gather(stage.run(), stop_when_settled()), timeout=10)
        finally:
            await queue.close()
        return stage.stats

    stats = asyncio.run(scenario())

    assert stats["failed"] == 2
    assert stats["completed"] == 0
    assert sorted(harness.requests) == sorted(FLASHCARDS)
    assert {job.last_error for job in harness.translation.get_jobs([FAILED])} == {"disk full"}
    assert harness.translation.get_job_counts()[ACTIVE] == 0
    assert harness.audio.total_jobs() == 0
