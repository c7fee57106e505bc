"""
Scheduled digest task routes.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from ..auth import verify_api_key
from ..config import get_db
from ..database import Database
from ..exceptions import DigestError, require_task, to_http_exception
from ..schemas import (
    DigestResponse,
    PushResultResponse,
    ScheduledTaskCreateRequest,
    ScheduledTaskResponse,
    ScheduledTaskUpdateRequest,
    SchedulerStatusResponse,
    TaskRunResponse,
)
from ..services import SchedulerDep

router = APIRouter(
    prefix="/api/digests/schedule",
    tags=["schedule"],
    dependencies=[Depends(verify_api_key)]
)


@router.get("")
async def list_tasks(db: Annotated[Database, Depends(get_db)]) -> list[ScheduledTaskResponse]:
    """List all scheduled tasks, newest first."""
    return [ScheduledTaskResponse.from_db(t) for t in db.get_tasks()]


@router.get("/status")
async def scheduler_status(scheduler: SchedulerDep) -> SchedulerStatusResponse:
    return SchedulerStatusResponse(**scheduler.status())


@router.post("", status_code=201)
async def create_task(
    request: ScheduledTaskCreateRequest,
    scheduler: SchedulerDep,
) -> ScheduledTaskResponse:
    """Create a task; active tasks are scheduled immediately."""
    if not request.name.strip():
        raise HTTPException(status_code=400, detail="Task name is required")

    fields = request.model_dump()
    try:
        task = scheduler.create_task(**fields)
    except DigestError as e:
        raise to_http_exception(e)
    return ScheduledTaskResponse.from_db(task)


@router.get("/{task_id}")
async def get_task(
    task_id: int,
    db: Annotated[Database, Depends(get_db)],
) -> ScheduledTaskResponse:
    return ScheduledTaskResponse.from_db(require_task(db.get_task(task_id)))


@router.put("/{task_id}")
async def update_task(
    task_id: int,
    request: ScheduledTaskUpdateRequest,
    scheduler: SchedulerDep,
) -> ScheduledTaskResponse:
    """Update a task and reschedule it."""
    changes = request.changes()
    if not changes:
        raise HTTPException(status_code=400, detail="No updates provided")

    try:
        task = scheduler.update_task(task_id, **changes)
    except DigestError as e:
        raise to_http_exception(e)
    return ScheduledTaskResponse.from_db(require_task(task))


@router.delete("/{task_id}")
async def delete_task(task_id: int, scheduler: SchedulerDep) -> dict:
    if not scheduler.delete_task(task_id):
        raise HTTPException(status_code=404, detail="Task not found")
    return {"success": True}


@router.post("/{task_id}/enable")
async def enable_task(task_id: int, scheduler: SchedulerDep) -> ScheduledTaskResponse:
    return ScheduledTaskResponse.from_db(require_task(scheduler.enable_task(task_id)))


@router.post("/{task_id}/disable")
async def disable_task(task_id: int, scheduler: SchedulerDep) -> ScheduledTaskResponse:
    return ScheduledTaskResponse.from_db(require_task(scheduler.disable_task(task_id)))


@router.post("/{task_id}/run")
async def run_task(task_id: int, scheduler: SchedulerDep) -> TaskRunResponse:
    """Run a task now and wait for the result."""
    try:
        result = require_task(await scheduler.run_task_now(task_id))
    except DigestError as e:
        raise to_http_exception(e)

    return TaskRunResponse(
        success=result.success,
        digest=DigestResponse.from_generated(result.digest) if result.digest else None,
        push=PushResultResponse.from_result(result.push),
        error=result.error,
    )
