from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class BatchStatus(str, Enum):
    pending = "pending"
    ready = "ready"
    failed = "failed"
    succeeded = "succeeded"


STATUS_MARKS = {
    BatchStatus.pending: "⨁",
    BatchStatus.ready: "○",
    BatchStatus.failed: "✕",
    BatchStatus.succeeded: "✓",
}


class PlanRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    patient_id: str = Field(..., min_length=1)
    course_id: str = Field(..., min_length=1)
    plan_id: str = Field(..., min_length=1)
    run_count: int = Field(default=1, description="Optimization + dose runs; values below 1 become 1")

    @field_validator("patient_id", "course_id", "plan_id", mode="before")
    @classmethod
    def _strip(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("run_count", mode="after")
    @classmethod
    def _at_least_one(cls, value: int) -> int:
        return max(value, 1)

    @property
    def label(self) -> str:
        return f"{self.patient_id}/{self.course_id}/{self.plan_id}"


class PlanReport(BaseModel):
    """Per-plan row of the batch report; written only by the batch driver."""

    row: int
    patient_id: str
    course_id: str
    plan_id: str
    requested_runs: int
    runs_completed: int = 0
    status: BatchStatus = BatchStatus.pending
    message: str = ""

    @classmethod
    def for_request(cls, row: int, request: PlanRequest) -> "PlanReport":
        return cls(
            row=row,
            patient_id=request.patient_id,
            course_id=request.course_id,
            plan_id=request.plan_id,
            requested_runs=request.run_count,
        )


class BatchReport(BaseModel):
    dose_calc_only: bool = False
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    fatal_error: Optional[str] = None
    plans: List[PlanReport] = []

    @property
    def succeeded(self) -> bool:
        return self.fatal_error is None and all(p.status != BatchStatus.failed for p in self.plans)

    def counts(self) -> dict:
        counts = {status.value: 0 for status in BatchStatus}
        for plan in self.plans:
            counts[plan.status.value] += 1
        return counts

    def render(self) -> str:
        lines = []
        if self.fatal_error:
            lines.append(f"Batch aborted: {self.fatal_error}")
        header = f"{'Row':>3}  {'Stat':<4}  {'Patient':<12}  {'Course':<10}  {'Plan':<14}  {'Runs':>5}  Message"
        lines.append(header)
        lines.append("-" * len(header))
        for plan in self.plans:
            runs = f"{plan.runs_completed}/{plan.requested_runs}"
            lines.append(
                f"{plan.row:>3}  {STATUS_MARKS[plan.status]:<4}  {plan.patient_id:<12}  "
                f"{plan.course_id:<10}  {plan.plan_id:<14}  {runs:>5}  {plan.message}"
            )
        counts = self.counts()
        lines.append(
            f"{len(self.plans)} plans: {counts['succeeded']} succeeded, {counts['failed']} failed, "
            f"{counts['ready']} ready, {counts['pending']} pending"
        )
        return "\n".join(lines)
