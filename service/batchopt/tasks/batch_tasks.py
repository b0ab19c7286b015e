"""Celery task running one stored batch through the batch driver."""

from __future__ import annotations

import time

from celery.exceptions import SoftTimeLimitExceeded
from loguru import logger

from .celery_app import celery_app
from ..core.driver import build_batch_driver
from ..core.store import store
from ..models.job import JobState
from ..models.plan import BatchReport


@celery_app.task(name="batchopt.batch.run")
def run_batch_job(job_id: str, batch_id: str):
    job = store.get_job(job_id)
    batch = store.get_batch(batch_id)
    if not job or not batch:
        logger.error("Job or batch missing for job_id={} batch_id={}", job_id, batch_id)
        return
    if job.state == JobState.cancelled:
        logger.info("Batch {} was cancelled before it started", batch_id)
        return

    t0 = time.monotonic()
    total = max(len(batch.plans), 1)

    def _elapsed():
        return round(time.monotonic() - t0, 1)

    def _on_progress(report: BatchReport, row: int):
        entry = report.plans[row - 1]
        store.update_job(
            job_id, state=JobState.running, progress=round(0.05 + 0.9 * row / total, 3),
            message=entry.message, stage="processing", current_row=row,
        )
        store.set_batch_report(batch_id, report)

    try:
        store.update_job(
            job_id, state=JobState.running, progress=0.02,
            message="Connecting to planning engine", stage="connecting",
        )
        driver = build_batch_driver(on_progress=_on_progress)
        report = driver.run(batch.plans, dose_calc_only=batch.dose_calc_only, check_first=batch.check_first)
        store.set_batch_report(batch_id, report)

    except SoftTimeLimitExceeded:
        logger.error("Soft time limit exceeded for batch {} (elapsed {:.1f}s)", batch_id, _elapsed())
        store.update_job(
            job_id, state=JobState.failed, progress=1.0,
            message=f"Timed out after {_elapsed():.0f}s", stage="timeout",
        )
        return

    except Exception as exc:
        logger.exception("Unexpected error in batch {}", batch_id)
        store.update_job(
            job_id, state=JobState.failed, progress=1.0,
            message=f"Internal error: {exc}", stage="error",
        )
        return

    if report.fatal_error:
        store.update_job(
            job_id, state=JobState.failed, progress=1.0,
            message=report.fatal_error, stage="connect_failed",
        )
        return

    counts = report.counts()
    store.update_job(
        job_id, state=JobState.succeeded, progress=1.0,
        message=(
            f"Batch completed in {_elapsed():.1f}s: {counts['succeeded']} succeeded, "
            f"{counts['failed']} failed"
        ),
        stage="done",
    )
