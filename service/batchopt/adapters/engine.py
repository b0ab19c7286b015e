from __future__ import annotations

import copy
import importlib
import itertools
import math
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger

from ..config import Settings, get_settings
from ..models.optimization import ErrorKind, OptimizationDirective
from . import sample_data

JawRect = Tuple[float, float, float, float]  # X1, Y1, X2, Y2 in mm

UNAPPROVED = "UnApproved"


class EngineError(RuntimeError):
    kind = ErrorKind.engine_failure


class PlanNotFoundError(EngineError):
    kind = ErrorKind.not_found


class EditConflictError(EngineError):
    kind = ErrorKind.state_conflict


class PlanStateError(EngineError):
    kind = ErrorKind.state_conflict


class EngineConnectionError(EngineError):
    kind = ErrorKind.transport_failure


@dataclass(frozen=True)
class ControlPoint:
    gantry_angle: float
    jaw_positions: JawRect = (-50.0, -50.0, 50.0, 50.0)


@dataclass(frozen=True)
class Beam:
    id: str
    technique_id: str
    is_setup_field: bool = False
    meterset: float = math.nan
    control_points: Tuple[ControlPoint, ...] = ()
    arc_optimization_aperture: Optional[JawRect] = None


@dataclass
class SessionHandle:
    id: str
    user_id: str
    closed: bool = False


@dataclass
class PlanHandle:
    session: SessionHandle
    patient_id: str
    course_id: str
    plan_id: str
    raw: Any = None


@dataclass(frozen=True)
class PlanState:
    approval_status: str
    objective_count: int
    has_dose: bool


@dataclass(frozen=True)
class OptimizerResult:
    success: bool
    iteration_count: int = 0


class PlanningEngine:
    """Contract of the external treatment planning session provider.

    Implementations may raise any ``EngineError`` subclass; the optimization
    session translates them into run outcomes.
    """

    def connect(self) -> None:
        raise NotImplementedError

    def current_user(self) -> str:
        raise NotImplementedError

    def open_session(self) -> SessionHandle:
        raise NotImplementedError

    def find_plan(self, session: SessionHandle, patient_id: str, course_id: str, plan_id: str) -> PlanHandle:
        raise NotImplementedError

    def open_plan_for_edit(self, plan: PlanHandle) -> None:
        raise NotImplementedError

    def plan_state(self, plan: PlanHandle) -> PlanState:
        raise NotImplementedError

    def list_beams(self, plan: PlanHandle) -> List[Beam]:
        raise NotImplementedError

    def set_jaw_positions(self, plan: PlanHandle, beam_id: str, jaw_positions: JawRect) -> None:
        raise NotImplementedError

    def run_optimizer(self, plan: PlanHandle, directive: OptimizationDirective) -> OptimizerResult:
        raise NotImplementedError

    def calculate_leaf_motions(self, plan: PlanHandle) -> bool:
        raise NotImplementedError

    def compute_dose(self, plan: PlanHandle, preset_meterset: Optional[Dict[str, float]] = None) -> bool:
        raise NotImplementedError

    def save_changes(self, session: SessionHandle) -> None:
        raise NotImplementedError

    def close_session(self, session: SessionHandle) -> None:
        raise NotImplementedError

    def dispose(self) -> None:
        raise NotImplementedError


@dataclass
class _FakePlan:
    approval_status: str = UNAPPROVED
    objectives: List[str] = field(default_factory=list)
    has_dose: bool = False
    beams: List[Beam] = field(default_factory=list)
    locked: bool = False
    optimizer_fails: bool = False
    dose_fails: bool = False
    iterations: int = 120


class FakePlanningEngine(PlanningEngine):
    """In-memory planning engine backed by ``sample_data`` (dev and tests).

    Every engine call is appended to ``calls`` as ``(method, plan_id)``.
    """

    def __init__(self, patients: Optional[Dict[str, Any]] = None, user_id: str = "CLINIC\\physicist",
                 fail_connect: bool = False):
        source = sample_data.SAMPLE_PATIENTS if patients is None else patients
        self._patients = {
            patient_id: {
                course_id: {plan_id: _build_fake_plan(spec) for plan_id, spec in plans.items()}
                for course_id, plans in courses.items()
            }
            for patient_id, courses in copy.deepcopy(source).items()
        }
        self._user_id = user_id
        self._fail_connect = fail_connect
        self._connected = False
        self._open: Optional[SessionHandle] = None
        self._ids = itertools.count(1)
        self.calls: List[Tuple[str, Optional[str]]] = []

    # -- helpers for callers inspecting the simulated state --

    def plan_record(self, patient_id: str, course_id: str, plan_id: str) -> _FakePlan:
        return self._patients[patient_id][course_id][plan_id]

    @property
    def open_session_handle(self) -> Optional[SessionHandle]:
        return self._open

    def _record(self, plan: PlanHandle) -> _FakePlan:
        return plan.raw

    def _log(self, method: str, plan: Optional[PlanHandle] = None):
        self.calls.append((method, plan.plan_id if plan else None))

    # -- PlanningEngine --

    def connect(self) -> None:
        self._log("connect")
        if self._fail_connect:
            raise EngineConnectionError("Planning engine connection failed.")
        self._connected = True

    def current_user(self) -> str:
        return self._user_id

    def open_session(self) -> SessionHandle:
        if not self._connected:
            raise EngineConnectionError("Planning engine is not connected.")
        if self._open is not None:
            raise EditConflictError(f"Session {self._open.id} is still open.")
        self._open = SessionHandle(id=f"session-{next(self._ids)}", user_id=self._user_id)
        self._log("open_session")
        return self._open

    def find_plan(self, session: SessionHandle, patient_id: str, course_id: str, plan_id: str) -> PlanHandle:
        courses = self._patients.get(patient_id)
        if courses is None:
            raise PlanNotFoundError(f"Patient {patient_id} cannot be found.")
        plans = courses.get(course_id)
        if plans is None:
            raise PlanNotFoundError(f"Course {course_id} cannot be found.")
        record = plans.get(plan_id)
        if record is None:
            raise PlanNotFoundError(f"Plan {plan_id} cannot be found.")
        return PlanHandle(session=session, patient_id=patient_id, course_id=course_id, plan_id=plan_id, raw=record)

    def open_plan_for_edit(self, plan: PlanHandle) -> None:
        self._log("open_plan_for_edit", plan)
        if self._record(plan).locked:
            raise EditConflictError(f"Cannot modify patient {plan.patient_id}, make sure patient is closed.")

    def plan_state(self, plan: PlanHandle) -> PlanState:
        record = self._record(plan)
        return PlanState(
            approval_status=record.approval_status,
            objective_count=len(record.objectives),
            has_dose=record.has_dose,
        )

    def list_beams(self, plan: PlanHandle) -> List[Beam]:
        return list(self._record(plan).beams)

    def set_jaw_positions(self, plan: PlanHandle, beam_id: str, jaw_positions: JawRect) -> None:
        self._log("set_jaw_positions", plan)
        record = self._record(plan)
        for idx, beam in enumerate(record.beams):
            if beam.id == beam_id:
                points = tuple(replace(cp, jaw_positions=tuple(jaw_positions)) for cp in beam.control_points)
                record.beams[idx] = replace(beam, control_points=points)
                return
        raise EngineError(f"Beam {beam_id} not found in plan {plan.plan_id}.")

    def run_optimizer(self, plan: PlanHandle, directive: OptimizationDirective) -> OptimizerResult:
        self._log("run_optimizer", plan)
        record = self._record(plan)
        if record.optimizer_fails:
            return OptimizerResult(success=False)
        # new fluence invalidates the monitor units until dose is recomputed
        record.beams = [replace(b, meterset=math.nan) if not b.is_setup_field else b for b in record.beams]
        iterations = min(record.iterations, directive.max_iterations or record.iterations)
        return OptimizerResult(success=True, iteration_count=iterations)

    def calculate_leaf_motions(self, plan: PlanHandle) -> bool:
        self._log("calculate_leaf_motions", plan)
        return True

    def compute_dose(self, plan: PlanHandle, preset_meterset: Optional[Dict[str, float]] = None) -> bool:
        self._log("compute_dose_preset" if preset_meterset else "compute_dose", plan)
        record = self._record(plan)
        if record.dose_fails:
            return False
        if not preset_meterset:
            record.beams = [replace(b, meterset=100.0) if not b.is_setup_field else b for b in record.beams]
        record.has_dose = True
        return True

    def save_changes(self, session: SessionHandle) -> None:
        self._log("save_changes")

    def close_session(self, session: SessionHandle) -> None:
        self._log("close_session")
        session.closed = True
        if self._open is session:
            self._open = None

    def dispose(self) -> None:
        self._log("dispose")
        self._connected = False
        self._open = None


def _build_fake_plan(spec: Dict[str, Any]) -> _FakePlan:
    beams = []
    for b in spec.get("beams", []):
        points = tuple(ControlPoint(gantry_angle=float(a)) for a in b.get("gantry_angles", [0.0]))
        aperture = b.get("aperture")
        beams.append(
            Beam(
                id=b["id"],
                technique_id=b["technique"],
                is_setup_field=b.get("setup", False),
                meterset=float(b.get("mu", math.nan)),
                control_points=points,
                arc_optimization_aperture=tuple(aperture) if aperture else None,
            )
        )
    return _FakePlan(
        approval_status=spec.get("approval", UNAPPROVED),
        objectives=list(spec.get("objectives", [])),
        has_dose=spec.get("has_dose", False),
        beams=beams,
        locked=spec.get("locked", False),
        optimizer_fails=spec.get("optimizer_fails", False),
        dose_fails=spec.get("dose_fails", False),
    )


def _load_factory(path: str):
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise EngineConnectionError(f"Invalid engine factory '{path}', expected module:callable")
    try:
        module = importlib.import_module(module_name)
        return getattr(module, attr)
    except (ImportError, AttributeError) as exc:
        raise EngineConnectionError(f"Cannot load engine factory '{path}': {exc}") from exc


def build_engine(settings: Settings | None = None) -> PlanningEngine:
    settings = settings or get_settings()
    if settings.engine_use_mock:
        logger.info("Using in-memory planning engine (mock data mode)")
        return FakePlanningEngine()

    if not settings.engine_factory:
        raise EngineConnectionError("No planning engine configured; set BATCHOPT_ENGINE_FACTORY")
    logger.info("Using planning engine from {}", settings.engine_factory)
    return _load_factory(settings.engine_factory)()
