"""
Digest scheduler.

Each active scheduled task gets one asyncio task that sleeps until the next
cron time (computed with croniter in the task's timezone), re-reads the task
row and runs it. Runs record last_run_at, next_run_at and last_error on the
row; failures never stop the loop.
"""

import asyncio
import functools
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter

from ..config import config
from ..database import Database
from ..database.models import DBScheduledTask
from ..exceptions import ConfigurationError, InvalidCronError, TaskBusyError
from .digest_service import DigestOptions, DigestService, GeneratedDigest
from .push_service import PushResult, PushService

logger = logging.getLogger(__name__)


@dataclass
class TaskRunResult:
    success: bool
    digest: GeneratedDigest | None = None
    push: PushResult | None = None
    error: str | None = None


TaskRunner = Callable[[DBScheduledTask], Awaitable[TaskRunResult]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def next_run_time(
    cron_expression: str | None,
    tz_name: str | None = None,
    now: datetime | None = None,
) -> datetime | None:
    """
    Next firing time of a cron expression, in UTC.

    Returns None for an invalid expression or unknown timezone.
    """
    if not cron_expression or not croniter.is_valid(cron_expression):
        return None
    try:
        zone = ZoneInfo(tz_name or config.DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        return None
    base = (now or _utcnow()).astimezone(zone)
    return croniter(cron_expression, base).get_next(datetime).astimezone(timezone.utc)


def _current_task() -> asyncio.Task | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class SchedulerRegistry:
    """One trigger task per scheduled task id."""

    def __init__(self):
        self._tasks: dict[int, asyncio.Task] = {}

    def register(self, task_id: int, trigger: asyncio.Task):
        """Register a trigger, cancelling any previous one for the same id."""
        previous = self._tasks.pop(task_id, None)
        if previous is not None and previous is not trigger:
            previous.cancel()
        self._tasks[task_id] = trigger

    def unregister(self, task_id: int) -> bool:
        trigger = self._tasks.pop(task_id, None)
        if trigger is None:
            return False
        # A trigger may unregister itself; it then simply returns
        if trigger is not _current_task():
            trigger.cancel()
        return True

    def is_registered(self, task_id: int) -> bool:
        return task_id in self._tasks

    def ids(self) -> list[int]:
        return sorted(self._tasks)

    def clear(self) -> list[asyncio.Task]:
        """Cancel every trigger. Returns the cancelled tasks."""
        triggers = list(self._tasks.values())
        for trigger in triggers:
            trigger.cancel()
        self._tasks.clear()
        return triggers

    def __len__(self) -> int:
        return len(self._tasks)


class DigestTaskRunner:
    """Generates (and optionally pushes) the digest for one scheduled task."""

    def __init__(self, digest_service: DigestService, push_service: PushService | None = None):
        self.digest_service = digest_service
        self.push_service = push_service or PushService()

    async def __call__(self, task: DBScheduledTask) -> TaskRunResult:
        provider_config = self.digest_service.active_provider_config()
        if provider_config is None:
            raise ConfigurationError("AI not configured")
        source_config = self.digest_service.active_source_config()
        if source_config is None:
            raise ConfigurationError("Miniflux not configured")

        options = DigestOptions(
            scope=task.scope or "all",
            feed_id=task.scope_id if task.scope == "feed" else None,
            group_id=task.scope_id if task.scope == "group" else None,
            hours=task.hours if task.hours is not None else 24,
            target_lang=task.target_lang or "Simplified Chinese",
            unread_only=task.unread_only,
            timezone=task.timezone or config.DEFAULT_TIMEZONE,
            scope_name=task.scope_name or None,
        )
        result = await self.digest_service.generate(source_config, provider_config, options)
        if not result.success:
            return TaskRunResult(success=False, error=result.error or "Digest generation failed")

        digest = result.digest
        logger.info(f"Task {task.id} produced digest {digest.id}: {digest.title}")

        push = None
        if task.push_enabled and task.push_config and task.push_config.get("url"):
            push = await self.push_service.send(task.push_config, digest.title, digest.content)
            if not push.success:
                logger.warning(f"Push failed for task {task.id}: {push.error}")

        return TaskRunResult(success=True, digest=digest, push=push)


class DigestScheduler:
    """
    Cron scheduler for digest tasks.

    Trigger loops, run bookkeeping and task CRUD live here; generation is
    delegated to the injected runner.
    """

    def __init__(
        self,
        db: Database,
        runner: TaskRunner,
        registry: SchedulerRegistry | None = None,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.db = db
        self.runner = runner
        self.registry = registry if registry is not None else SchedulerRegistry()
        self.clock = clock
        self.sleep = sleep
        self._running: set[int] = set()
        # Runs are separate tasks so cancelling a trigger never cancels a run
        self._runs: set[asyncio.Task] = set()
        self._initialized = False

    # ─────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────

    async def initialize(self):
        """Register every active task."""
        tasks = self.db.get_tasks(active_only=True)
        logger.info(f"Found {len(tasks)} active scheduled task(s)")
        for task in tasks:
            self._register(task)
        self._initialized = True

    async def stop_all(self):
        """Cancel all trigger loops and wait for them to finish."""
        triggers = self.registry.clear()
        for trigger in triggers:
            try:
                await trigger
            except asyncio.CancelledError:
                pass
        self._initialized = False
        logger.info("All scheduled tasks stopped")

    def status(self) -> dict:
        return {
            "initialized": self._initialized,
            "active_tasks": len(self.registry),
            "task_ids": self.registry.ids(),
            "running_task_ids": sorted(self._running),
        }

    # ─────────────────────────────────────────────────────────────
    # Triggers
    # ─────────────────────────────────────────────────────────────

    def _register(self, task: DBScheduledTask) -> datetime | None:
        next_run = next_run_time(task.cron_expression, task.timezone, self.clock())
        if next_run is None:
            logger.error(f"Task {task.id} has an invalid schedule: {task.cron_expression!r}")
            self.registry.unregister(task.id)
            return None

        self.db.tasks.set_next_run(task.id, next_run)
        trigger = asyncio.create_task(self._trigger_loop(task.id))
        self.registry.register(task.id, trigger)
        logger.info(f"Task {task.id} ({task.name}) registered, next run: {next_run.isoformat()}")
        return next_run

    async def _trigger_loop(self, task_id: int):
        while True:
            task = self.db.get_task(task_id)
            if task is None or not task.is_active:
                logger.info(f"Task {task_id} is no longer active, stopping")
                self.registry.unregister(task_id)
                return

            next_run = next_run_time(task.cron_expression, task.timezone, self.clock())
            if next_run is None:
                logger.error(f"Task {task_id} has an invalid schedule, stopping")
                self.registry.unregister(task_id)
                return

            delay = max((next_run - self.clock()).total_seconds(), 0.0)
            await self.sleep(delay)
            await self._fire(task_id)

    async def _fire(self, task_id: int):
        # Re-read: the task may have been edited or disabled while sleeping
        task = self.db.get_task(task_id)
        if task is None or not task.is_active:
            return
        if task_id in self._running:
            logger.warning(f"Task {task_id} is still running, skipping this trigger")
            return
        # Editing or disabling the task cancels this trigger, not the run
        await asyncio.shield(self._start_run(task))

    # ─────────────────────────────────────────────────────────────
    # Execution
    # ─────────────────────────────────────────────────────────────

    def _start_run(self, task: DBScheduledTask) -> asyncio.Task:
        """Mark the task running and execute it in its own asyncio task."""
        self._running.add(task.id)
        run = asyncio.create_task(self._execute(task))
        self._runs.add(run)
        run.add_done_callback(functools.partial(self._run_finished, task.id))
        return run

    def _run_finished(self, task_id: int, run: asyncio.Task):
        self._runs.discard(run)
        self._running.discard(task_id)

    async def _execute(self, task: DBScheduledTask) -> TaskRunResult:
        logger.info(f"Executing task {task.id}: {task.name}")
        self.db.tasks.record_run_started(task.id, self.clock())

        try:
            result = await self.runner(task)
        except Exception as e:
            logger.exception(f"Task {task.id} failed: {e}")
            result = TaskRunResult(success=False, error=str(e) or type(e).__name__)

        if result.success:
            self.db.tasks.record_success(
                task.id, next_run_time(task.cron_expression, task.timezone, self.clock())
            )
        else:
            logger.warning(f"Task {task.id} failed: {result.error}")
            self.db.tasks.record_failure(task.id, result.error or "Digest generation failed")
        return result

    async def run_task_now(self, task_id: int) -> TaskRunResult | None:
        """
        Run a task immediately, regardless of its schedule or active flag.

        Returns:
            TaskRunResult, or None if the task does not exist

        Raises:
            TaskBusyError: If the task is already running
        """
        task = self.db.get_task(task_id)
        if task is None:
            return None
        if task_id in self._running:
            raise TaskBusyError(f"Task {task_id} is already running")
        return await asyncio.shield(self._start_run(task))

    # ─────────────────────────────────────────────────────────────
    # Task management
    # ─────────────────────────────────────────────────────────────

    def _validate_schedule(self, cron_expression: str, tz_name: str | None) -> datetime:
        next_run = next_run_time(cron_expression, tz_name, self.clock())
        if next_run is None:
            raise InvalidCronError("Invalid cron expression")
        return next_run

    def create_task(
        self,
        name: str,
        cron_expression: str,
        scope: str = "all",
        scope_id: int | None = None,
        scope_name: str = "",
        hours: int = 24,
        target_lang: str = "Simplified Chinese",
        unread_only: bool = True,
        push_enabled: bool = False,
        push_config: dict | None = None,
        timezone: str | None = None,
        is_active: bool = True,
    ) -> DBScheduledTask:
        """
        Persist a new task and register it when active.

        Raises:
            InvalidCronError: If the schedule has no next run time
        """
        timezone = timezone or config.DEFAULT_TIMEZONE
        next_run = self._validate_schedule(cron_expression, timezone)

        task_id = self.db.tasks.add(
            name=name,
            cron_expression=cron_expression,
            scope=scope,
            scope_id=scope_id,
            scope_name=scope_name,
            hours=hours,
            target_lang=target_lang,
            unread_only=unread_only,
            push_enabled=push_enabled,
            push_config=push_config,
            timezone=timezone,
            is_active=is_active,
            next_run_at=next_run,
        )
        task = self.db.get_task(task_id)
        if is_active:
            self._register(task)
        return self.db.get_task(task_id)

    def update_task(self, task_id: int, **changes) -> DBScheduledTask | None:
        """
        Apply changes and re-register (or drop) the trigger.

        Raises:
            InvalidCronError: If the resulting schedule is invalid; nothing is saved
        """
        task = self.db.get_task(task_id)
        if task is None:
            return None

        if "cron_expression" in changes or "timezone" in changes:
            self._validate_schedule(
                changes.get("cron_expression", task.cron_expression),
                changes.get("timezone", task.timezone),
            )

        if changes:
            self.db.tasks.update(task_id, **changes)

        task = self.db.get_task(task_id)
        if task.is_active:
            self._register(task)
        else:
            self.registry.unregister(task_id)
        return self.db.get_task(task_id)

    def delete_task(self, task_id: int) -> bool:
        self.registry.unregister(task_id)
        return self.db.tasks.delete(task_id)

    def enable_task(self, task_id: int) -> DBScheduledTask | None:
        if not self.db.tasks.set_active(task_id, True):
            return None
        self._register(self.db.get_task(task_id))
        return self.db.get_task(task_id)

    def disable_task(self, task_id: int) -> DBScheduledTask | None:
        self.registry.unregister(task_id)
        if not self.db.tasks.set_active(task_id, False):
            return None
        return self.db.get_task(task_id)
