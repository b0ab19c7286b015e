"""Run option policy: which optimizer options to use for one run of a plan.

``decide`` is a pure function of its arguments. It returns either an
``OptimizationDirective`` or a ``Rejected`` carrying the reason the run may
not be optimized.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from ..models.optimization import (
    IntermediateDoseOption,
    OptimizationDefaults,
    OptimizationDirective,
    ResumeMode,
    RunContext,
    Technique,
)

TECHNIQUE_NOT_OPTIMIZABLE = "technique not optimizable"
DYNAMIC_ARC_SINGLE_RUN = "dynamic-arc variant permits only one run"


@dataclass(frozen=True)
class Rejected:
    reason: str


Decision = Union[OptimizationDirective, Rejected]


def _imrt(run_index: int, has_existing_dose: bool, defaults: OptimizationDefaults) -> OptimizationDirective:
    resume = defaults.imrt_resume_mode
    if run_index == 1 and not has_existing_dose:
        # no fluence to continue from
        resume = ResumeMode.restart
    elif run_index > 1 and defaults.imrt_continue_subsequent_runs:
        resume = ResumeMode.continue_
    return OptimizationDirective(
        technique=Technique.imrt,
        resume_mode=resume,
        use_intermediate_dose=defaults.imrt_intermediate_dose == IntermediateDoseOption.use_intermediate_dose,
        max_iterations=defaults.imrt_max_iterations,
        convergence=defaults.imrt_convergence,
    )


def _vmat(run_index: int, has_existing_dose: bool, is_dynamic_arc: bool, defaults: OptimizationDefaults) -> Decision:
    if run_index > 1:
        if is_dynamic_arc:
            return Rejected(DYNAMIC_ARC_SINGLE_RUN)
        return OptimizationDirective(
            technique=Technique.vmat,
            resume_mode=ResumeMode.continue_,
            use_intermediate_dose=False,
        )

    if not has_existing_dose or is_dynamic_arc:
        return OptimizationDirective(
            technique=Technique.vmat,
            resume_mode=ResumeMode.restart,
            use_intermediate_dose=defaults.vmat_intermediate_dose == IntermediateDoseOption.use_intermediate_dose,
            fit_jaws_to_aperture=is_dynamic_arc or defaults.jaw_fit_on_missing_dose,
        )

    return OptimizationDirective(
        technique=Technique.vmat,
        resume_mode=defaults.vmat_resume_mode,
        use_intermediate_dose=False,
    )


def decide(
    technique: Technique,
    run_index: int,
    has_existing_dose: bool,
    is_dynamic_arc: bool,
    defaults: OptimizationDefaults,
) -> Decision:
    if run_index < 1:
        raise ValueError(f"run_index must be >= 1, got {run_index}")
    if technique == Technique.imrt:
        return _imrt(run_index, has_existing_dose, defaults)
    if technique == Technique.vmat:
        return _vmat(run_index, has_existing_dose, is_dynamic_arc, defaults)
    return Rejected(TECHNIQUE_NOT_OPTIMIZABLE)


def decide_for(context: RunContext, defaults: OptimizationDefaults) -> Decision:
    return decide(
        context.technique,
        context.run_index,
        context.has_existing_dose,
        context.is_dynamic_arc_variant,
        defaults,
    )
