"""
Shared fixtures and environment for the batchopt tests.

Forces the in-memory planning engine, eager Celery with an in-memory broker,
and a temporary log directory before anything from batchopt is imported.
"""

import os
import sys
import tempfile

_repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
_service_dir = os.path.join(_repo_root, "service")
if _service_dir not in sys.path:
    sys.path.insert(0, _service_dir)

_test_log_dir = tempfile.mkdtemp(prefix="batchopt_logs_")

os.environ["BATCHOPT_ENVIRONMENT"] = "dev"
os.environ["BATCHOPT_ENGINE_USE_MOCK"] = "true"
os.environ["BATCHOPT_BROKER_URL"] = "memory://"
os.environ["BATCHOPT_RESULT_BACKEND"] = "cache+memory://"
os.environ["BATCHOPT_LOG_DIR"] = _test_log_dir
os.environ["BATCHOPT_OPTIMIZATION_CONFIG_FILE"] = os.path.join(_repo_root, "BatchOptimization.cfg")
os.environ["BATCHOPT_WATCHDOG_POLL_INTERVAL"] = "0.05"

import math  # noqa: E402

import pytest  # noqa: E402

from batchopt.adapters.engine import Beam, ControlPoint, FakePlanningEngine  # noqa: E402
from batchopt.core.session import OptimizationSession  # noqa: E402
from batchopt.models.optimization import OptimizationDefaults  # noqa: E402
from batchopt.models.plan import PlanRequest  # noqa: E402

APERTURE = (-60.0, -55.0, 60.0, 55.0)


def static_beam(beam_id="F1", angle=0.0, mu=math.nan, setup=False):
    return Beam(
        id=beam_id,
        technique_id="STATIC",
        is_setup_field=setup,
        meterset=mu,
        control_points=(ControlPoint(gantry_angle=angle),),
    )


def arc_beam(beam_id="ARC1", angles=(181.0, 270.0, 0.0, 90.0, 179.0), mu=math.nan, aperture=APERTURE):
    return Beam(
        id=beam_id,
        technique_id="ARC",
        meterset=mu,
        control_points=tuple(ControlPoint(gantry_angle=a) for a in angles),
        arc_optimization_aperture=aperture,
    )


def plan_request(patient="BATCH001", course="C1", plan="IMRT_7F", runs=1):
    return PlanRequest(patient_id=patient, course_id=course, plan_id=plan, run_count=runs)


@pytest.fixture
def log_dir():
    return _test_log_dir


@pytest.fixture
def defaults():
    return OptimizationDefaults()


@pytest.fixture
def fake_engine():
    return FakePlanningEngine()


@pytest.fixture
def session(fake_engine, defaults):
    s = OptimizationSession(engine=fake_engine, defaults=defaults)
    assert s.connect().succeeded
    yield s
    s.exit()
