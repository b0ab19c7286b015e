from .engine import (
    Beam,
    ControlPoint,
    EditConflictError,
    EngineConnectionError,
    EngineError,
    FakePlanningEngine,
    PlanHandle,
    PlanNotFoundError,
    PlanningEngine,
    PlanState,
    PlanStateError,
    SessionHandle,
    build_engine,
)
from .windows import NullWindowBackend, WindowBackend, WindowInfo, build_window_backend

__all__ = [
    "Beam",
    "ControlPoint",
    "EditConflictError",
    "EngineConnectionError",
    "EngineError",
    "FakePlanningEngine",
    "NullWindowBackend",
    "PlanHandle",
    "PlanNotFoundError",
    "PlanState",
    "PlanStateError",
    "PlanningEngine",
    "SessionHandle",
    "WindowBackend",
    "WindowInfo",
    "build_engine",
    "build_window_backend",
]
