"""Store abstraction for batches and their jobs.

Batches live in memory only; nothing about the plans themselves is persisted.
"""

from __future__ import annotations

import abc
import threading
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

from ..models.batch import BatchDetail, BatchRequest, BatchSummary
from ..models.job import JobState, JobStatus
from ..models.plan import BatchReport

TERMINAL_STATES = {JobState.succeeded, JobState.failed, JobState.cancelled}


def _utcnow():
    return datetime.now(timezone.utc)


class StoreBase(abc.ABC):
    @abc.abstractmethod
    def create_batch(self, payload: BatchRequest) -> tuple[BatchDetail, JobStatus]: ...

    @abc.abstractmethod
    def list_batches(self) -> List[BatchSummary]: ...

    @abc.abstractmethod
    def get_batch(self, batch_id: str) -> Optional[BatchDetail]: ...

    @abc.abstractmethod
    def get_job(self, job_id: str) -> Optional[JobStatus]: ...

    @abc.abstractmethod
    def update_job(
        self,
        job_id: str,
        *,
        state: Optional[JobState] = None,
        progress: Optional[float] = None,
        message: Optional[str] = None,
        stage: Optional[str] = None,
        current_row: Optional[int] = None,
    ) -> Optional[JobStatus]: ...

    @abc.abstractmethod
    def set_batch_report(self, batch_id: str, report: BatchReport) -> None: ...

    @abc.abstractmethod
    def delete_batch(self, batch_id: str) -> bool:
        """Delete a batch and its job. Returns True if deleted."""
        ...


class InMemoryStore(StoreBase):
    def __init__(self):
        self._batches: Dict[str, BatchDetail] = {}
        self._jobs: Dict[str, JobStatus] = {}
        self._lock = threading.Lock()

    def create_batch(self, payload: BatchRequest) -> tuple[BatchDetail, JobStatus]:
        batch_id = str(uuid.uuid4())
        job_id = str(uuid.uuid4())
        now = _utcnow()
        detail = BatchDetail(
            id=batch_id,
            status=JobState.queued.value,
            created_at=now,
            updated_at=now,
            plan_count=len(payload.plans),
            dose_calc_only=payload.dose_calc_only,
            check_first=payload.check_first,
            notes=payload.notes,
            job_id=job_id,
            plans=list(payload.plans),
        )
        job = JobStatus(id=job_id, batch_id=batch_id, state=JobState.queued, progress=0.0)
        with self._lock:
            self._batches[batch_id] = detail
            self._jobs[job_id] = job
        return detail, job

    def list_batches(self) -> List[BatchSummary]:
        return [
            BatchSummary(**b.model_dump(include=set(BatchSummary.model_fields)))
            for b in self._batches.values()
        ]

    def get_batch(self, batch_id: str) -> BatchDetail | None:
        return self._batches.get(batch_id)

    def get_job(self, job_id: str) -> JobStatus | None:
        return self._jobs.get(job_id)

    def update_job(
        self,
        job_id: str,
        *,
        state: JobState | None = None,
        progress: float | None = None,
        message: str | None = None,
        stage: str | None = None,
        current_row: int | None = None,
    ) -> JobStatus | None:
        with self._lock:
            job = self._jobs.get(job_id)
            if not job:
                return None
            update_data = job.model_dump()
            now = _utcnow()
            if state:
                update_data["state"] = state
                if state == JobState.running and not update_data.get("started_at"):
                    update_data["started_at"] = now
                if state in TERMINAL_STATES:
                    update_data["finished_at"] = now
            if progress is not None:
                update_data["progress"] = progress
            if message is not None:
                update_data["message"] = message
            if stage is not None:
                update_data["stage"] = stage
            if current_row is not None:
                update_data["current_row"] = current_row
            updated = JobStatus(**update_data)
            self._jobs[job_id] = updated
            batch = self._batches.get(job.batch_id)
            if batch:
                batch.status = updated.state.value
                batch.updated_at = now
            return updated

    def set_batch_report(self, batch_id: str, report: BatchReport) -> None:
        batch = self._batches.get(batch_id)
        if not batch:
            return
        batch.report = report.model_copy(deep=True)
        batch.updated_at = _utcnow()

    def delete_batch(self, batch_id: str) -> bool:
        with self._lock:
            batch = self._batches.pop(batch_id, None)
            if not batch:
                return False
            self._jobs.pop(batch.job_id, None)
            return True


_store: Optional[StoreBase] = None


def get_store() -> StoreBase:
    global _store
    if _store is None:
        _store = InMemoryStore()
    return _store


def reset_store():
    """Reset the global store (for testing)."""
    global _store
    _store = None


class _StoreProxy:
    """Lazy proxy that forwards all attribute access to get_store()."""
    def __getattr__(self, name):
        return getattr(get_store(), name)

store = _StoreProxy()
