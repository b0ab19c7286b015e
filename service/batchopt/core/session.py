"""Optimization session: the run-outcome boundary over a planning engine.

Every public operation returns a ``RunOutcome`` and never raises. At most one
engine session (one open plan) is alive at any time: it is acquired at the
start of an operation and closed before the operation returns, on every path.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional, Tuple

import numpy as np
from loguru import logger

from ..adapters.engine import (
    UNAPPROVED,
    Beam,
    EngineConnectionError,
    EngineError,
    PlanHandle,
    PlanningEngine,
    PlanStateError,
    SessionHandle,
    build_engine,
)
from ..config import Settings, get_settings
from ..models.optimization import (
    ErrorKind,
    OptimizationDefaults,
    RunContext,
    RunOutcome,
    Technique,
)
from ..models.plan import PlanRequest
from .loaders import load_optimization_defaults
from .policy import Rejected, decide_for
from .technique import classify_plan, treatment_beams


def strip_domain(user_id: str) -> str:
    return user_id.rsplit("\\", 1)[-1]


def preset_meterset(beams: List[Beam]) -> Optional[dict]:
    """Monitor units per beam when every treatment beam carries a valid value."""
    if not beams:
        return None
    values = np.array([b.meterset for b in beams], dtype=float)
    if np.isnan(values).any():
        return None
    return {b.id: float(b.meterset) for b in beams}


class OptimizationSession:
    def __init__(
        self,
        engine: Optional[PlanningEngine] = None,
        defaults: Optional[OptimizationDefaults] = None,
        engine_factory: Optional[Callable[[], PlanningEngine]] = None,
    ):
        if engine is None and engine_factory is None:
            raise ValueError("OptimizationSession needs an engine or an engine_factory")
        self.engine = engine
        self.defaults = defaults or OptimizationDefaults()
        self._engine_factory = engine_factory
        self._connected = False
        self._active: Optional[SessionHandle] = None
        self._lock = threading.RLock()

    # -- lifecycle --

    @property
    def connected(self) -> bool:
        return self._connected

    def connect(self) -> RunOutcome:
        with self._lock:
            if self._connected:
                return RunOutcome.ok("Planning engine already connected.")
            try:
                if self.engine is None:
                    self.engine = self._engine_factory()
                self.engine.connect()
            except Exception as exc:
                logger.error("Planning engine connection failed: {}", exc)
                return RunOutcome.fail(ErrorKind.transport_failure, f"Planning engine connection failed: {exc}")
            self._connected = True
            return RunOutcome.ok("Planning engine connection successful.")

    def user_id(self) -> str:
        if not self._connected:
            return "unknown"
        try:
            return strip_domain(self.engine.current_user())
        except Exception as exc:
            logger.warning("Cannot read current user: {}", exc)
            return "unknown"

    def exit(self) -> None:
        with self._lock:
            if self.engine is None or not self._connected:
                return
            self._release_active()
            try:
                self.engine.dispose()
            except Exception as exc:
                logger.warning("Planning engine dispose failed: {}", exc)
            finally:
                self._connected = False

    # -- session handle --

    def _release_active(self) -> None:
        handle, self._active = self._active, None
        if handle is None:
            return
        try:
            self.engine.close_session(handle)
        except Exception as exc:
            logger.warning("Closing session {} failed: {}", handle.id, exc)

    @contextmanager
    def _open_plan(self, request: PlanRequest) -> Iterator[PlanHandle]:
        if not self._connected:
            raise EngineConnectionError("Planning engine is not connected.")
        self._release_active()
        self._active = self.engine.open_session()
        try:
            yield self.engine.find_plan(self._active, request.patient_id, request.course_id, request.plan_id)
        finally:
            self._release_active()

    def _failure(self, exc: Exception, message: str) -> RunOutcome:
        if isinstance(exc, EngineError):
            return RunOutcome.fail(exc.kind, f"{message}: {exc}")
        logger.opt(exception=exc).error(message)
        return RunOutcome.fail(ErrorKind.engine_failure, f"{message}: {exc}")

    # -- operations --

    def check_plan(self, request: PlanRequest) -> RunOutcome:
        """Verify the plan exists, is unapproved and has at least one objective."""
        with self._lock:
            try:
                with self._open_plan(request) as plan:
                    self.engine.open_plan_for_edit(plan)
                    state = self.engine.plan_state(plan)
                    if state.approval_status != UNAPPROVED:
                        raise PlanStateError(f"Plan {request.plan_id} is not in unapproved status.")
                    if state.objective_count < 1:
                        raise PlanStateError(f"No objective in plan {request.plan_id}.")
            except EngineError as exc:
                return RunOutcome.fail(exc.kind, str(exc))
            except Exception as exc:
                return self._failure(exc, f"Something is wrong with plan {request.plan_id}")
        return RunOutcome.ok(f"Plan {request.plan_id} is ready for optimization.")

    def build_context(self, request: PlanRequest, run_index: int) -> Tuple[RunOutcome, Optional[RunContext]]:
        """Read technique and dose presence fresh from the plan for one run."""
        with self._lock:
            try:
                with self._open_plan(request) as plan:
                    state = self.engine.plan_state(plan)
                    technique, dynamic = classify_plan(self.engine.list_beams(plan))
            except Exception as exc:
                return self._failure(exc, f"Cannot read plan \"{request.plan_id}\" before run no.{run_index}"), None
        context = RunContext(
            technique=technique,
            run_index=run_index,
            has_existing_dose=state.has_dose,
            is_dynamic_arc_variant=dynamic,
        )
        return RunOutcome.ok(f"Plan \"{request.plan_id}\" is {technique.value}."), context

    def optimize(self, request: PlanRequest, context: RunContext) -> RunOutcome:
        run = context.run_index
        decision = decide_for(context, self.defaults)
        if isinstance(decision, Rejected):
            return RunOutcome.fail(
                ErrorKind.policy_rejected,
                f"Cannot optimize plan \"{request.plan_id}\" run no.{run}: {decision.reason}.",
            )

        with self._lock:
            try:
                with self._open_plan(request) as plan:
                    self.engine.open_plan_for_edit(plan)
                    if decision.fit_jaws_to_aperture:
                        self._fit_jaws(plan)
                    logger.debug("Optimizing {} run {} with {}", request.label, run, decision)
                    result = self.engine.run_optimizer(plan, decision)
                    if result.success and decision.technique == Technique.imrt:
                        if not self.engine.calculate_leaf_motions(plan):
                            raise EngineError("leaf motion calculation failed")
                    self.engine.save_changes(plan.session)
            except Exception as exc:
                return self._failure(exc, f"Fail to optimize plan \"{request.plan_id}\" during run no.{run}")

        if not result.success:
            return RunOutcome.fail(
                ErrorKind.engine_failure, f"Fail to optimize plan \"{request.plan_id}\" during run no.{run}."
            )
        return RunOutcome.ok(
            f"Plan \"{request.plan_id}\" completed optimization run no.{run} ({result.iteration_count} iterations)."
        )

    def _fit_jaws(self, plan: PlanHandle) -> None:
        """Copy each beam's arc optimization aperture onto its control point jaws."""
        for beam in treatment_beams(self.engine.list_beams(plan)):
            if beam.arc_optimization_aperture is None:
                raise EngineError(f"Beam {beam.id} reports no arc optimization aperture")
            self.engine.set_jaw_positions(plan, beam.id, beam.arc_optimization_aperture)

    def compute_dose(self, request: PlanRequest) -> RunOutcome:
        with self._lock:
            try:
                with self._open_plan(request) as plan:
                    self.engine.open_plan_for_edit(plan)
                    preset = preset_meterset(treatment_beams(self.engine.list_beams(plan)))
                    success = self.engine.compute_dose(plan, preset)
                    self.engine.save_changes(plan.session)
            except Exception as exc:
                return self._failure(exc, f"Fail to compute dose in plan \"{request.plan_id}\"")

        if not success:
            return RunOutcome.fail(ErrorKind.engine_failure, f"Fail to compute dose in plan \"{request.plan_id}\".")
        mode = "with preset monitor units" if preset else "with full calculation"
        return RunOutcome.ok(f"Plan \"{request.plan_id}\" dose computation completed {mode}.")


# Module-level singleton (lazy)
_session: Optional[OptimizationSession] = None


def build_session(settings: Settings | None = None) -> OptimizationSession:
    settings = settings or get_settings()
    defaults, outcome = load_optimization_defaults(settings.optimization_config_file)
    if outcome.succeeded:
        logger.info(outcome.message)
    else:
        logger.warning(outcome.message)
    return OptimizationSession(defaults=defaults, engine_factory=lambda: build_engine(settings))


def get_optimization_session() -> OptimizationSession:
    global _session
    if _session is None:
        _session = build_session()
    return _session


def reset_optimization_session() -> None:
    """Dispose the shared session (for testing)."""
    global _session
    if _session is not None:
        _session.exit()
    _session = None
