from .batch import BatchDetail, BatchRequest, BatchSummary
from .job import JobState, JobStatus
from .optimization import (
    ConvergenceOption,
    ErrorKind,
    IntermediateDoseOption,
    OptimizationDefaults,
    OptimizationDirective,
    ResumeMode,
    RunContext,
    RunOutcome,
    Technique,
)
from .plan import BatchReport, BatchStatus, PlanReport, PlanRequest

__all__ = [
    "BatchDetail",
    "BatchReport",
    "BatchRequest",
    "BatchStatus",
    "BatchSummary",
    "ConvergenceOption",
    "ErrorKind",
    "IntermediateDoseOption",
    "JobState",
    "JobStatus",
    "OptimizationDefaults",
    "OptimizationDirective",
    "PlanReport",
    "PlanRequest",
    "ResumeMode",
    "RunContext",
    "RunOutcome",
    "Technique",
]
