from typing import List

from fastapi import APIRouter
from pydantic import BaseModel, Field

from ...core.driver import BatchDriver
from ...core.session import get_optimization_session
from ...models.plan import BatchReport, PlanRequest

router = APIRouter(prefix="/plans", tags=["plans"])


class CheckRequest(BaseModel):
    plans: List[PlanRequest] = Field(..., min_length=1)


@router.post("/check", response_model=BatchReport)
def check_plans(request: CheckRequest):
    """Check every plan for optimization readiness without changing it."""
    driver = BatchDriver(session=get_optimization_session())
    return driver.check(request.plans)
