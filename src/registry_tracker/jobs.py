"""Background job queue for per-package work.

Two job kinds exist, both keyed by package id and safe to run more than
once: refreshing a package's metadata and resolving its repository link.
Jobs are dispatched to a pool of asyncio worker tasks; failures are logged
and never retried inline.
"""

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

JobHandler = Callable[[int], Awaitable[object]]


class JobKind(str, enum.Enum):
    REFRESH_METADATA = "refresh_metadata"
    RESOLVE_REPOSITORY = "resolve_repository"


@dataclass(frozen=True)
class Job:
    kind: JobKind
    package_id: int


class JobQueue:
    """In-process job queue served by a pool of worker tasks.

    Attributes:
        workers: Number of worker tasks started by :meth:`start`.
    """

    def __init__(self, handlers: Optional[dict[JobKind, JobHandler]] = None, workers: int = 4) -> None:
        """Initialize the queue.

        Args:
            handlers: Coroutine functions run for each job kind.
            workers: Number of concurrent worker tasks.
        """
        self.handlers: dict[JobKind, JobHandler] = dict(handlers or {})
        self.workers = workers
        self._queue: asyncio.Queue[Job] = asyncio.Queue()
        self._tasks: list[asyncio.Task] = []

    def register(self, kind: JobKind, handler: JobHandler) -> None:
        self.handlers[kind] = handler

    def enqueue(self, kind: JobKind, package_id: int) -> Job:
        """Queue a job without waiting for it to run.

        Returns:
            The queued job.
        """
        job = Job(kind=kind, package_id=package_id)
        self._queue.put_nowait(job)
        logger.debug("Enqueued %s for package %d", kind.value, package_id)
        return job

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def run_job(self, job: Job) -> bool:
        """Run one job, logging instead of raising on failure.

        Returns:
            True if the handler completed without raising.
        """
        handler = self.handlers.get(job.kind)
        if handler is None:
            logger.error("No handler registered for %s jobs", job.kind.value)
            return False
        try:
            await handler(job.package_id)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Job %s for package %d failed", job.kind.value, job.package_id)
            return False
        return True

    async def _worker(self, number: int) -> None:
        logger.debug("Worker %d started", number)
        while True:
            job = await self._queue.get()
            try:
                await self.run_job(job)
            finally:
                self._queue.task_done()

    def start(self) -> None:
        """Start the worker tasks on the running event loop."""
        if self._tasks:
            logger.warning("Job queue already started")
            return
        self._tasks = [asyncio.create_task(self._worker(i)) for i in range(self.workers)]
        logger.info("Started %d job workers", self.workers)

    async def join(self) -> None:
        """Wait until every queued job has been processed."""
        await self._queue.join()

    async def stop(self) -> None:
        """Cancel the worker tasks. Jobs still queued are dropped."""
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Job workers stopped")
