"""Core runtime components for LexiDeck."""

from .graceful_shutdown import GracefulShutdown
from .job_queue import Job, JobQueue
from .outcomes import Other, RateLimited, Success, TaskOutcome
from .progress_monitor import MonitorState, ProgressMonitor
from .rate_limiter import RateLimiter
from .retry import RetryConfig, RetryCoordinator
from .task_queue import TaskQueue
from .worker_pool import AudioWorkerPool

__all__ = [
    "GracefulShutdown",
    "Job",
    "JobQueue",
    "Success",
    "RateLimited",
    "Other",
    "TaskOutcome",
    "MonitorState",
    "ProgressMonitor",
    "RateLimiter",
    "RetryConfig",
    "RetryCoordinator",
    "TaskQueue",
    "AudioWorkerPool",
]
