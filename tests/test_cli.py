"""Command line exit codes and report output."""

import pytest

from batchopt.cli import EXIT_FATAL, EXIT_OK, EXIT_PLAN_FAILED, main
from batchopt.core.session import reset_optimization_session


@pytest.fixture(autouse=True)
def fresh_session():
    reset_optimization_session()
    yield
    reset_optimization_session()


def _batch_file(tmp_path, *rows):
    path = tmp_path / "batch.csv"
    path.write_text("PatientId;CourseId;PlanId;Runs\n" + "".join(f"{r}\n" for r in rows), encoding="utf-8")
    return str(path)


def test_run_all_succeeded(tmp_path, capsys):
    path = _batch_file(tmp_path, "BATCH001;C1;IMRT_7F;2", "BATCH001;C1;VMAT_2A;1")
    assert main(["run", path]) == EXIT_OK
    out = capsys.readouterr().out
    assert "2 plans: 2 succeeded, 0 failed" in out


def test_run_with_failed_plan(tmp_path, capsys):
    path = _batch_file(tmp_path, "BATCH001;C1;IMRT_7F;1", "BATCH002;C1;MIXED;1")
    assert main(["run", path]) == EXIT_PLAN_FAILED
    assert "technique not optimizable" in capsys.readouterr().out


def test_check_with_plan_arguments(capsys):
    assert main(["check", "--plan", "BATCH001/C1/IMRT_7F", "--plan", "BATCH002/C1/NO_OBJ"]) == EXIT_PLAN_FAILED
    out = capsys.readouterr().out
    assert "No objective in plan NO_OBJ." in out


def test_dose_only(capsys):
    assert main(["run", "--dose-only", "--plan", "BATCH002/C1/VMAT_DYN"]) == EXIT_OK


def test_malformed_batch_file_is_fatal(tmp_path):
    path = _batch_file(tmp_path, "BATCH001;C1;IMRT_7F")
    assert main(["run", path]) == EXIT_FATAL


def test_no_plans_is_fatal():
    assert main(["run"]) == EXIT_FATAL


def test_batch_file_in_legacy_encoding_is_fatal(tmp_path):
    path = tmp_path / "batch.csv"
    path.write_bytes("PatientId;CourseId;PlanId;Runs\nMüller;C1;IMRT_7F;1\n".encode("cp1252"))
    assert main(["run", str(path)]) == EXIT_FATAL
