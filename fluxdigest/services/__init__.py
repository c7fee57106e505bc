"""
Service layer for business logic.

Services encapsulate business logic, keeping routes as thin HTTP adapters.
They are built once in the server lifespan and handed to routes through
the dependency getters in config.

Usage in routes:
    from ..services import DigestServiceDep

    @router.get("/digests")
    async def list_digests(service: DigestServiceDep):
        return service.list_digests()
"""

from typing import Annotated

from fastapi import Depends

from ..config import get_digest_service, get_jobs, get_push_service, get_scheduler

from .digest_service import (
    DigestOptions,
    DigestService,
    GeneratedDigest,
    GenerationResult,
    SourceConfig,
)
from .jobs import InMemoryJobStore, Job, JobStore, JobTracker
from .push_service import PushResult, PushService
from .scheduler import DigestScheduler, DigestTaskRunner, SchedulerRegistry, TaskRunResult

__all__ = [
    # Services
    "DigestService",
    "DigestScheduler",
    "DigestTaskRunner",
    "JobTracker",
    "PushService",
    # Value types
    "DigestOptions",
    "GeneratedDigest",
    "GenerationResult",
    "InMemoryJobStore",
    "Job",
    "JobStore",
    "PushResult",
    "SchedulerRegistry",
    "SourceConfig",
    "TaskRunResult",
    # Type aliases for dependency injection
    "DigestServiceDep",
    "JobTrackerDep",
    "PushServiceDep",
    "SchedulerDep",
]


DigestServiceDep = Annotated[DigestService, Depends(get_digest_service)]
JobTrackerDep = Annotated[JobTracker, Depends(get_jobs)]
PushServiceDep = Annotated[PushService, Depends(get_push_service)]
SchedulerDep = Annotated[DigestScheduler, Depends(get_scheduler)]
