"""Durable named job queues backed by SQLite."""

from __future__ import annotations

import json
import sqlite3
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S"

WAITING = "waiting"
ACTIVE = "active"
DELAYED = "delayed"
PAUSED = "paused"
COMPLETED = "completed"
FAILED = "failed"

STATUSES = (ACTIVE, WAITING, DELAYED, PAUSED, COMPLETED, FAILED)
PENDING_STATUSES = (ACTIVE, WAITING, DELAYED, PAUSED)


@dataclass
class Job:
    identifier: int
    queue: str
    name: str
    payload: Any
    status: str
    attempts: int
    job_key: str | None
    last_error: str | None
    result: Any
    updated_at: str


class JobQueue:
    """One named queue inside a shared SQLite database.

    Jobs move ``waiting -> active -> completed``. Failures reported with
    ``retry=True`` come back as ``delayed`` with exponential backoff until
    ``max_attempts`` is reached, after which they stay ``failed``.
    """

    def __init__(
        self,
        db_path: str | Path,
        name: str,
        *,
        logger,
        max_attempts: int = 3,
        backoff: float = 2.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.db_path = Path(db_path)
        self.name = name
        self.logger = logger
        self.max_attempts = max(1, int(max_attempts))
        self.backoff = float(backoff)
        self._clock = clock
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    def initialize(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS jobs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    queue TEXT NOT NULL,
                    name TEXT NOT NULL,
                    payload TEXT NOT NULL,
                    job_key TEXT,
                    status TEXT NOT NULL,
                    attempts INTEGER NOT NULL DEFAULT 0,
                    run_at REAL NOT NULL DEFAULT 0,
                    last_error TEXT,
                    result TEXT,
                    updated_at TEXT NOT NULL,
                    UNIQUE (queue, job_key)
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS jobs_queue_status ON jobs (queue, status)")
            conn.execute(
                "CREATE TABLE IF NOT EXISTS queue_flags (queue TEXT PRIMARY KEY, paused INTEGER NOT NULL)"
            )
            conn.commit()
        self.recover_incomplete_jobs()

    # ------------------------------------------------------------------
    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=30, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    # ------------------------------------------------------------------
    def recover_incomplete_jobs(self) -> int:
        """Return jobs left ``active`` by an interrupted run to ``waiting``."""

        with self._connect() as conn:
            result = conn.execute(
                "UPDATE jobs SET status=?, updated_at=? WHERE queue=? AND status=?",
                (WAITING, self._timestamp(), self.name, ACTIVE),
            )
            conn.commit()
        if result.rowcount:
            self.logger.info("Recovered %d interrupted job(s) in %s queue", result.rowcount, self.name)
        return result.rowcount

    # ------------------------------------------------------------------
    def add_job(self, name: str, payload: Any, *, job_key: str | None = None) -> Optional[int]:
        """Insert one job; returns its id, or ``None`` if ``job_key`` already exists."""

        with self._connect() as conn:
            job_id = self._insert(conn, name, payload, job_key)
            conn.commit()
        return job_id

    def add_jobs_bulk(self, jobs: Iterable[Tuple[str, Any] | Tuple[str, Any, str | None]]) -> List[int]:
        inserted: List[int] = []
        with self._connect() as conn:
            conn.execute("BEGIN")
            for job in jobs:
                name, payload = job[0], job[1]
                job_key = job[2] if len(job) > 2 else None
                job_id = self._insert(conn, name, payload, job_key)
                if job_id is not None:
                    inserted.append(job_id)
            conn.commit()
        if inserted:
            self.logger.debug("Added %d job(s) to %s queue", len(inserted), self.name)
        return inserted

    def _insert(self, conn: sqlite3.Connection, name: str, payload: Any, job_key: str | None) -> Optional[int]:
        status = PAUSED if self._is_paused(conn) else WAITING
        result = conn.execute(
            """
            INSERT OR IGNORE INTO jobs (queue, name, payload, job_key, status, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (self.name, name, json.dumps(payload, ensure_ascii=False), job_key, status, self._timestamp()),
        )
        if not result.rowcount:
            return None
        return int(result.lastrowid)

    # ------------------------------------------------------------------
    def fetch_job(self) -> Optional[Job]:
        """Claim the oldest runnable job, promoting delayed jobs that are due."""

        with self._lock:
            with self._connect() as conn:
                conn.execute("BEGIN IMMEDIATE")
                now = self._clock()
                conn.execute(
                    "UPDATE jobs SET status=? WHERE queue=? AND status=? AND run_at<=?",
                    (WAITING, self.name, DELAYED, now),
                )
                row = conn.execute(
                    "SELECT * FROM jobs WHERE queue=? AND status=? ORDER BY run_at, id LIMIT 1",
                    (self.name, WAITING),
                ).fetchone()
                if not row:
                    conn.commit()
                    return None
                conn.execute(
                    "UPDATE jobs SET status=?, attempts=attempts+1, updated_at=? WHERE id=?",
                    (ACTIVE, self._timestamp(), row["id"]),
                )
                conn.commit()
        job = self._row_to_job(row)
        job.status = ACTIVE
        job.attempts += 1
        return job

    # ------------------------------------------------------------------
    def mark_completed(self, job_id: int, result: Any = None) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE jobs
                SET status=?, result=?, last_error=NULL, updated_at=?
                WHERE id=?
                """,
                (COMPLETED, json.dumps(result, ensure_ascii=False), self._timestamp(), job_id),
            )
            conn.commit()

    # ------------------------------------------------------------------
    def mark_failed(self, job_id: int, *, error: str, retry: bool) -> str:
        """Record a failure and return the job's new status."""

        with self._connect() as conn:
            row = conn.execute("SELECT attempts FROM jobs WHERE id=?", (job_id,)).fetchone()
            attempts = int(row["attempts"]) if row else self.max_attempts
            if retry and attempts < self.max_attempts:
                status = DELAYED
                run_at = self._clock() + self.backoff * (2 ** max(0, attempts - 1))
            else:
                status = FAILED
                run_at = 0.0
            conn.execute(
                """
                UPDATE jobs
                SET status=?, run_at=?, last_error=?, updated_at=?
                WHERE id=?
                """,
                (status, run_at, error, self._timestamp(), job_id),
            )
            conn.commit()
        return status

    # ------------------------------------------------------------------
    def pause(self) -> None:
        self._set_status(WAITING, PAUSED)

    def resume(self) -> None:
        self._set_status(PAUSED, WAITING)

    def _set_status(self, current: str, new: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO queue_flags (queue, paused) VALUES (?, ?)",
                (self.name, 1 if new == PAUSED else 0),
            )
            conn.execute(
                "UPDATE jobs SET status=?, updated_at=? WHERE queue=? AND status=?",
                (new, self._timestamp(), self.name, current),
            )
            conn.commit()

    def _is_paused(self, conn: sqlite3.Connection) -> bool:
        row = conn.execute("SELECT paused FROM queue_flags WHERE queue=?", (self.name,)).fetchone()
        return bool(row and row["paused"])

    # ------------------------------------------------------------------
    def get_jobs(self, statuses: Sequence[str] | None = None) -> List[Job]:
        query = "SELECT * FROM jobs WHERE queue=?"
        params: list[Any] = [self.name]
        if statuses:
            query += f" AND status IN ({', '.join('?' for _ in statuses)})"
            params.extend(statuses)
        query += " ORDER BY id"
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_job(row) for row in rows]

    def get_job_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {status: 0 for status in STATUSES}
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT status, COUNT(*) AS total FROM jobs WHERE queue=? GROUP BY status",
                (self.name,),
            ).fetchall()
        for row in rows:
            counts[row["status"]] = int(row["total"])
        return counts

    def pending_jobs(self) -> int:
        counts = self.get_job_counts()
        return sum(counts[status] for status in PENDING_STATUSES)

    def total_jobs(self) -> int:
        return sum(self.get_job_counts().values())

    # ------------------------------------------------------------------
    def _row_to_job(self, row: Mapping[str, Any]) -> Job:
        return Job(
            identifier=int(row["id"]),
            queue=row["queue"],
            name=row["name"],
            payload=json.loads(row["payload"]),
            status=row["status"],
            attempts=int(row["attempts"]),
            job_key=row["job_key"],
            last_error=row["last_error"],
            result=json.loads(row["result"]) if row["result"] is not None else None,
            updated_at=row["updated_at"],
        )

    def _timestamp(self) -> str:
        return datetime.now(timezone.utc).strftime(ISO_FORMAT)


__all__ = [
    "Job",
    "JobQueue",
    "STATUSES",
    "PENDING_STATUSES",
    "WAITING",
    "ACTIVE",
    "DELAYED",
    "PAUSED",
    "COMPLETED",
    "FAILED",
]
