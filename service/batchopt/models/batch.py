from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from .plan import BatchReport, PlanRequest


class BatchRequest(BaseModel):
    plans: List[PlanRequest] = Field(..., min_length=1)
    dose_calc_only: bool = Field(default=False, description="Skip optimization, compute dose once per plan")
    check_first: bool = Field(default=False, description="Check each plan before its run loop")
    notes: Optional[str] = None


class BatchSummary(BaseModel):
    id: str
    status: str
    created_at: datetime
    updated_at: datetime
    plan_count: int
    dose_calc_only: bool = False


class BatchDetail(BatchSummary):
    job_id: str
    check_first: bool = False
    notes: Optional[str] = None
    plans: List[PlanRequest] = []
    report: Optional[BatchReport] = None
