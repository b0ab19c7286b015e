"""Batch driver: checks, optimizes and computes dose for a list of plans.

Plans and their runs are processed strictly one at a time through a single
``OptimizationSession``. A failed run stops that plan's run loop only; an
unexpected fault while handling one plan is recorded against that plan and
the batch moves on. The dialog watchdog lives for exactly one batch.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional, Sequence

from loguru import logger

from ..config import Settings, get_settings
from ..models.optimization import RunOutcome
from ..models.plan import BatchReport, BatchStatus, PlanReport, PlanRequest
from .batch_log import BatchLog
from .session import OptimizationSession, get_optimization_session
from .watchdog import DialogWatchdog, build_watchdog

ProgressCallback = Callable[[BatchReport, int], None]
WatchdogFactory = Callable[[Callable[[str], None]], Optional[DialogWatchdog]]


def _utcnow():
    return datetime.now(timezone.utc)


class BatchDriver:
    def __init__(
        self,
        session: OptimizationSession,
        watchdog_factory: Optional[WatchdogFactory] = None,
        batch_log: Optional[BatchLog] = None,
        on_progress: Optional[ProgressCallback] = None,
    ):
        self.session = session
        self._watchdog_factory = watchdog_factory
        self._log = batch_log
        self._on_progress = on_progress

    # -- reporting --

    def _emit(self, text: str, failed: bool = False) -> None:
        if self._log is not None:
            self._log.write(text, failed=failed)
        elif failed:
            logger.warning(text)
        else:
            logger.info(text)

    def _record(
        self, entry: PlanReport, outcome: RunOutcome, status: Optional[BatchStatus] = None, run_index: int = 0
    ) -> bool:
        entry.message = outcome.message
        if run_index and not outcome.succeeded and f"run no.{run_index}" not in outcome.message:
            entry.message = f"{outcome.message} (run no.{run_index})"
        if outcome.succeeded:
            if status is not None:
                entry.status = status
        else:
            entry.status = BatchStatus.failed
        self._emit(entry.message, failed=not outcome.succeeded)
        return outcome.succeeded

    def _progress(self, report: BatchReport, row: int) -> None:
        if self._on_progress is None:
            return
        try:
            self._on_progress(report, row)
        except Exception as exc:
            logger.warning("Progress callback failed for row {}: {}", row, exc)

    def _connect(self, report: BatchReport) -> bool:
        outcome = self.session.connect()
        if not outcome.succeeded:
            report.fatal_error = outcome.message
            report.finished_at = _utcnow()
            self._emit(outcome.message, failed=True)
        return outcome.succeeded

    # -- check pass --

    def check(self, requests: Sequence[PlanRequest]) -> BatchReport:
        report = BatchReport(
            started_at=_utcnow(),
            plans=[PlanReport.for_request(row, req) for row, req in enumerate(requests, start=1)],
        )
        if not self._connect(report):
            return report

        self._emit(f"Checking {len(requests)} plans.")
        for entry, request in zip(report.plans, requests):
            outcome = self.session.check_plan(request)
            entry.status = BatchStatus.ready if outcome.succeeded else BatchStatus.failed
            entry.message = f"For row {entry.row}, {outcome.message}"
            self._emit(entry.message, failed=not outcome.succeeded)
            self._progress(report, entry.row)
        report.finished_at = _utcnow()
        return report

    # -- batch run --

    def run(
        self,
        requests: Sequence[PlanRequest],
        *,
        dose_calc_only: bool = False,
        check_first: bool = False,
    ) -> BatchReport:
        report = BatchReport(
            dose_calc_only=dose_calc_only,
            started_at=_utcnow(),
            plans=[PlanReport.for_request(row, req) for row, req in enumerate(requests, start=1)],
        )
        if not self._connect(report):
            return report

        if self._log is not None:
            self._log.start(self.session.user_id())
        watchdog = self._start_watchdog()
        try:
            self._emit("Start batch processing.")
            for entry, request in zip(report.plans, requests):
                try:
                    if dose_calc_only:
                        self._dose_only(entry, request)
                    else:
                        self._optimize_plan(entry, request, check_first)
                except Exception as exc:
                    logger.exception("Unexpected fault in row {}", entry.row)
                    entry.status = BatchStatus.failed
                    entry.message = f"For row {entry.row}, unexpected fault: {exc}"
                    self._emit(entry.message, failed=True)
                self._progress(report, entry.row)
        finally:
            if watchdog is not None:
                watchdog.stop()
            report.finished_at = _utcnow()
            self._emit("All batch process completed.")
            if self._log is not None:
                self._log.end()
        return report

    def _start_watchdog(self) -> Optional[DialogWatchdog]:
        if self._watchdog_factory is None:
            return None
        try:
            watchdog = self._watchdog_factory(self._emit)
            if watchdog is not None:
                watchdog.start()
            return watchdog
        except Exception as exc:
            self._emit(f"Something wrong with routine to close pop-up windows: {exc}")
            return None

    def _dose_only(self, entry: PlanReport, request: PlanRequest) -> None:
        self._emit(
            f"For patient {request.patient_id}, course {request.course_id}, plan {request.plan_id}, "
            "start dose computation."
        )
        self._record(entry, self.session.compute_dose(request), BatchStatus.succeeded)

    def _optimize_plan(self, entry: PlanReport, request: PlanRequest, check_first: bool) -> None:
        if check_first:
            if not self._record(entry, self.session.check_plan(request), BatchStatus.ready):
                return

        self._emit(
            f"For patient {request.patient_id}, course {request.course_id}, plan {request.plan_id}, "
            "start optimization."
        )
        for run_index in range(1, request.run_count + 1):
            self._emit(f"Start optimization run no.{run_index} in plan \"{request.plan_id}\".")
            outcome, context = self.session.build_context(request, run_index)
            if context is None:
                self._record(entry, outcome, run_index=run_index)
                return
            if not self._record(entry, self.session.optimize(request, context), run_index=run_index):
                return
            self._emit(f"Start dose computation in plan \"{request.plan_id}\".")
            if not self._record(entry, self.session.compute_dose(request), run_index=run_index):
                return
            entry.status = BatchStatus.succeeded
            entry.runs_completed = run_index


def build_batch_driver(
    settings: Settings | None = None,
    session: Optional[OptimizationSession] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> BatchDriver:
    settings = settings or get_settings()
    batch_log = BatchLog(settings.log_dir)
    folder = batch_log.check_folder()
    if not folder.succeeded:
        logger.warning(folder.message)
    return BatchDriver(
        session=session or get_optimization_session(),
        watchdog_factory=lambda on_event: build_watchdog(settings, on_event=on_event),
        batch_log=batch_log,
        on_progress=on_progress,
    )
