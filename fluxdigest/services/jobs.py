"""
Generation job tracking.

POST /digests/generate returns immediately with a job id; the generation
runs as a background asyncio task and clients poll its status. Jobs live in
memory and expire 30 minutes after creation.
"""

import asyncio
import logging
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

DEFAULT_JOB_TTL = 30 * 60

PROGRESS_GENERATING = 20
PROGRESS_PUSHING = 90
PROGRESS_DONE = 100


@dataclass
class Job:
    id: str
    created_at: float
    status: str = "pending"  # pending | generating | completed | error
    progress: int = 0
    digest: Any = None
    push: Any = None
    error: str | None = None


class JobStore(ABC):
    """Storage for generation jobs."""

    @abstractmethod
    def get(self, job_id: str) -> Job | None:
        pass

    @abstractmethod
    def put(self, job: Job) -> None:
        pass

    @abstractmethod
    def sweep(self, cutoff: float) -> int:
        """Drop jobs created before cutoff. Returns the number removed."""
        pass


class InMemoryJobStore(JobStore):
    """Process-local job store; jobs are lost on restart."""

    def __init__(self):
        self._jobs: dict[str, Job] = {}

    def get(self, job_id: str) -> Job | None:
        return self._jobs.get(job_id)

    def put(self, job: Job) -> None:
        self._jobs[job.id] = job

    def sweep(self, cutoff: float) -> int:
        expired = [job_id for job_id, job in self._jobs.items() if job.created_at < cutoff]
        for job_id in expired:
            del self._jobs[job_id]
        return len(expired)

    def __len__(self) -> int:
        return len(self._jobs)


class JobTracker:
    """Creates, runs and reports generation jobs."""

    def __init__(
        self,
        store: JobStore | None = None,
        clock: Callable[[], float] = time.monotonic,
        ttl: float = DEFAULT_JOB_TTL,
    ):
        self.store = store if store is not None else InMemoryJobStore()
        self.clock = clock
        self.ttl = ttl
        # Strong references so background tasks are not garbage collected
        self._tasks: set[asyncio.Task] = set()

    def create(self) -> Job:
        """Create a pending job, sweeping expired ones first."""
        removed = self.store.sweep(self.clock() - self.ttl)
        if removed:
            logger.debug(f"Swept {removed} expired job(s)")
        job = Job(id=str(uuid.uuid4()), created_at=self.clock())
        self.store.put(job)
        return job

    def get(self, job_id: str) -> Job | None:
        """Return a job, or None when unknown or expired."""
        job = self.store.get(job_id)
        if job is None or job.created_at < self.clock() - self.ttl:
            return None
        return job

    async def run(
        self,
        job_id: str,
        generate: Callable[[], Awaitable[Any]],
        push: Callable[[Any], Awaitable[Any]] | None = None,
    ) -> Job | None:
        """
        Drive a job through generating -> completed | error.

        Args:
            job_id: Job created by create()
            generate: Returns a GenerationResult-like object with success,
                digest and error attributes
            push: Optional delivery step called with the digest; its outcome
                is recorded on the job and never fails it
        """
        job = self.store.get(job_id)
        if job is None:
            return None

        job.status = "generating"
        job.progress = PROGRESS_GENERATING
        try:
            result = await generate()
            if not result.success:
                job.status = "error"
                job.error = result.error or "Failed to generate digest"
                return job

            job.progress = PROGRESS_PUSHING
            if push is not None:
                try:
                    job.push = await push(result.digest)
                except Exception as e:
                    logger.exception(f"Push after job {job_id} failed: {e}")
                    job.push = {"success": False, "error": str(e)}

            job.digest = result.digest
            job.status = "completed"
            job.progress = PROGRESS_DONE
        except Exception as e:
            logger.exception(f"Background generation error: {e}")
            job.status = "error"
            job.error = str(e) or "Unexpected error during generation"
        return job

    def start(
        self,
        job_id: str,
        generate: Callable[[], Awaitable[Any]],
        push: Callable[[Any], Awaitable[Any]] | None = None,
    ) -> asyncio.Task:
        """Run a job in the background."""
        task = asyncio.create_task(self.run(job_id, generate, push))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task
