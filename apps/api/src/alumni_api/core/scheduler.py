"""
Background Jobs

Thin layer over APScheduler's AsyncIOScheduler. Modules declare their jobs
with ``register_job`` at import time; ``start_scheduler`` picks them up in
the application lifespan. The alumni module uses it to retry notification
emails that failed to go out.

Jobs may run twice after a crash and must tolerate that.
"""

import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, JobExecutionEvent
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.base import BaseTrigger

logger = logging.getLogger(__name__)

JobFunc = Callable[[], Coroutine[Any, Any, Any]]

JOB_DEFAULTS = {
    "coalesce": True,
    "max_instances": 1,
    "misfire_grace_time": 300,
}


@dataclass
class RegisteredJob:
    func: JobFunc
    trigger: BaseTrigger


_job_registry: dict[str, RegisteredJob] = {}
_scheduler: AsyncIOScheduler | None = None


def _on_job_event(event: JobExecutionEvent) -> None:
    if event.exception is None:
        logger.debug(f"Job '{event.job_id}' finished")
        return
    logger.error(f"Job '{event.job_id}' raised: {event.exception}", exc_info=event.exception)


def _schedule(scheduler: AsyncIOScheduler, job_id: str, job: RegisteredJob) -> None:
    scheduler.add_job(job.func, trigger=job.trigger, id=job_id, replace_existing=True)
    logger.info(f"Job '{job_id}' scheduled ({job.trigger})")


def register_job(job_id: str, func: JobFunc, trigger: BaseTrigger) -> None:
    """
    Add a job to the registry, replacing any job with the same id.

    If the scheduler is already running the job is scheduled right away.
    """
    job = RegisteredJob(func=func, trigger=trigger)
    _job_registry[job_id] = job
    if _scheduler is not None:
        _schedule(_scheduler, job_id, job)


async def start_scheduler() -> AsyncIOScheduler:
    global _scheduler

    if _scheduler is not None and _scheduler.running:
        return _scheduler

    scheduler = AsyncIOScheduler(timezone="UTC", job_defaults=JOB_DEFAULTS)
    scheduler.add_listener(_on_job_event, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)
    for job_id, job in _job_registry.items():
        _schedule(scheduler, job_id, job)

    scheduler.start()
    _scheduler = scheduler
    logger.info(f"Scheduler running with {len(_job_registry)} job(s)")
    return scheduler


async def stop_scheduler() -> None:
    """Shut down the scheduler, letting in-flight jobs complete."""
    global _scheduler

    scheduler, _scheduler = _scheduler, None
    if scheduler is None or not scheduler.running:
        return

    scheduler.shutdown(wait=True)
    logger.info("Scheduler stopped")


def run_job_soon(job_id: str) -> bool:
    """
    Pull a scheduled job's next run forward to now, without waiting for it.

    Returns:
        False when the scheduler is not running or the job is not scheduled
    """
    if _scheduler is None or not _scheduler.running:
        return False

    job = _scheduler.get_job(job_id)
    if job is None:
        return False

    job.modify(next_run_time=datetime.now(UTC))
    logger.debug(f"Job '{job_id}' moved up to run now")
    return True


async def trigger_job_manually(job_id: str) -> dict[str, Any]:
    """
    Run a registered job now, outside its trigger.

    Failures are reported in the returned dict rather than raised.

    Raises:
        ValueError: Unknown job id
    """
    job = _job_registry.get(job_id)
    if job is None:
        raise ValueError(f"Unknown job '{job_id}'. Registered: {sorted(_job_registry)}")

    outcome: dict[str, Any] = {
        "job_id": job_id,
        "executed_at": datetime.now(UTC).isoformat(),
    }
    logger.info(f"Running job '{job_id}' on demand")

    try:
        outcome["result"] = await job.func()
    except Exception as e:
        logger.error(f"On-demand run of '{job_id}' failed: {e}", exc_info=True)
        outcome.update(status="error", error=str(e))
    else:
        outcome["status"] = "success"
    return outcome


def list_registered_jobs() -> list[dict[str, Any]]:
    def next_run(job_id: str) -> str | None:
        scheduled = _scheduler.get_job(job_id) if _scheduler is not None else None
        if scheduled is None or scheduled.next_run_time is None:
            return None
        return scheduled.next_run_time.isoformat()

    return [
        {"job_id": job_id, "registered": True, "next_run_time": next_run(job_id)}
        for job_id in _job_registry
    ]
