from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Technique(str, Enum):
    imrt = "IMRT"
    vmat = "VMAT"
    mixed = "Mixed"
    undetermined = "Undetermined"


class ResumeMode(str, Enum):
    restart = "restart"
    continue_ = "continue"


class ConvergenceOption(str, Enum):
    no_early_termination = "no_early_termination"
    terminate_if_converged = "terminate_if_converged"


class IntermediateDoseOption(str, Enum):
    none = "none"
    use_intermediate_dose = "use_intermediate_dose"


class ErrorKind(str, Enum):
    not_found = "not_found"
    state_conflict = "state_conflict"
    policy_rejected = "policy_rejected"
    engine_failure = "engine_failure"
    transport_failure = "transport_failure"
    config_warning = "config_warning"


class OptimizationDefaults(BaseModel):
    """Configured defaults the run option policy starts from."""

    imrt_max_iterations: int = Field(default=5000, gt=0)
    imrt_resume_mode: ResumeMode = ResumeMode.restart
    imrt_convergence: ConvergenceOption = ConvergenceOption.terminate_if_converged
    imrt_intermediate_dose: IntermediateDoseOption = IntermediateDoseOption.use_intermediate_dose
    vmat_resume_mode: ResumeMode = ResumeMode.restart
    vmat_intermediate_dose: IntermediateDoseOption = IntermediateDoseOption.use_intermediate_dose

    # VMAT run 1 without dose: fit jaws to the optimization aperture even
    # when the plan is not a dynamic-arc variant.
    jaw_fit_on_missing_dose: bool = True
    # IMRT runs after the first continue from the previous fluence.
    imrt_continue_subsequent_runs: bool = True


class RunContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    technique: Technique
    run_index: int = Field(..., ge=1)
    has_existing_dose: bool
    is_dynamic_arc_variant: bool = False


class OptimizationDirective(BaseModel):
    """Parameters for exactly one optimizer invocation."""

    model_config = ConfigDict(frozen=True)

    technique: Technique
    resume_mode: ResumeMode
    use_intermediate_dose: bool
    max_iterations: Optional[int] = None          # IMRT only
    convergence: Optional[ConvergenceOption] = None  # IMRT only
    fit_jaws_to_aperture: bool = False


class RunOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    succeeded: bool
    message: str = ""
    kind: Optional[ErrorKind] = None

    @classmethod
    def ok(cls, message: str) -> "RunOutcome":
        return cls(succeeded=True, message=message)

    @classmethod
    def fail(cls, kind: ErrorKind, message: str) -> "RunOutcome":
        return cls(succeeded=False, message=message, kind=kind)
