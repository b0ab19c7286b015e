"""Optimization defaults file and batch plan file readers."""

import os

import pytest

from batchopt.core.loaders import (
    BatchFileError,
    load_batch_file,
    load_optimization_defaults,
    parse_plan_argument,
)
from batchopt.models.optimization import (
    ConvergenceOption,
    ErrorKind,
    IntermediateDoseOption,
    OptimizationDefaults,
    ResumeMode,
)

REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))


def _write(tmp_path, name, text):
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return str(path)


def test_shipped_config_matches_builtin_defaults():
    defaults, outcome = load_optimization_defaults(os.path.join(REPO_ROOT, "BatchOptimization.cfg"))
    assert outcome.succeeded
    assert outcome.message == "Config file loaded."
    assert defaults == OptimizationDefaults()


def test_config_values_are_decoded(tmp_path):
    path = _write(
        tmp_path,
        "opt.cfg",
        "# site overrides\n"
        "IMRT_maxiterations: 800\n"
        "IMRT_initialState: 1\n"
        "IMRT_convergenceOption: 0\n"
        "IMRT_intermediateDoseOption: 0\n"
        "VMAT_initialState: 1\n"
        "VMAT_intermediateDoseOption: 0\n"
        "VMAT_jawFitOnMissingDose: false\n"
        "IMRT_continueSubsequentRuns: 0\n"
        "SomethingElse: ignored\n",
    )
    defaults, outcome = load_optimization_defaults(path)
    assert outcome.succeeded
    assert defaults.imrt_max_iterations == 800
    assert defaults.imrt_resume_mode == ResumeMode.continue_
    assert defaults.imrt_convergence == ConvergenceOption.no_early_termination
    assert defaults.imrt_intermediate_dose == IntermediateDoseOption.none
    assert defaults.vmat_resume_mode == ResumeMode.continue_
    assert defaults.vmat_intermediate_dose == IntermediateDoseOption.none
    assert defaults.jaw_fit_on_missing_dose is False
    assert defaults.imrt_continue_subsequent_runs is False


def test_missing_config_keeps_defaults(tmp_path):
    defaults, outcome = load_optimization_defaults(str(tmp_path / "absent.cfg"))
    assert defaults == OptimizationDefaults()
    assert outcome.kind == ErrorKind.config_warning
    assert outcome.message == "Error loading config file, default parameter values are used."


def test_bad_values_fall_back_per_key(tmp_path):
    path = _write(tmp_path, "opt.cfg", "IMRT_maxiterations: lots\nVMAT_initialState: 7\nIMRT_initialState: 1\n")
    defaults, outcome = load_optimization_defaults(path)
    assert not outcome.succeeded
    assert outcome.kind == ErrorKind.config_warning
    assert "IMRT_maxiterations" in outcome.message and "VMAT_initialState" in outcome.message
    assert defaults.imrt_max_iterations == 5000
    assert defaults.vmat_resume_mode == ResumeMode.restart
    assert defaults.imrt_resume_mode == ResumeMode.continue_


def test_batch_file_rows(tmp_path):
    path = _write(
        tmp_path,
        "batch.csv",
        "PatientId;CourseId;PlanId;Runs\n BATCH001 ;C1;IMRT_7F;2\n\nBATCH002;C1;VMAT_DYN;0\n",
    )
    plans = load_batch_file(path)
    assert [p.label for p in plans] == ["BATCH001/C1/IMRT_7F", "BATCH002/C1/VMAT_DYN"]
    assert plans[0].run_count == 2
    assert plans[1].run_count == 1


def test_sample_batch_file_loads():
    plans = load_batch_file(os.path.join(REPO_ROOT, "data", "sample_batch.csv"))
    assert len(plans) == 3


@pytest.mark.parametrize(
    "row",
    ["BATCH001;C1;IMRT_7F", "BATCH001;C1;IMRT_7F;two", "BATCH001;;IMRT_7F;1"],
)
def test_malformed_row_fails_whole_file(tmp_path, row):
    path = _write(tmp_path, "batch.csv", f"PatientId;CourseId;PlanId;Runs\nBATCH001;C1;VMAT_2A;1\n{row}\n")
    with pytest.raises(BatchFileError, match="line 3"):
        load_batch_file(path)


def test_missing_batch_file(tmp_path):
    with pytest.raises(BatchFileError, match="not found"):
        load_batch_file(str(tmp_path / "nope.csv"))


def test_plan_argument():
    plan = parse_plan_argument("BATCH001/C1/VMAT_2A/3")
    assert plan.label == "BATCH001/C1/VMAT_2A"
    assert plan.run_count == 3
    assert parse_plan_argument("BATCH001/C1/IMRT_7F").run_count == 1
    with pytest.raises(BatchFileError):
        parse_plan_argument("BATCH001/IMRT_7F")
    with pytest.raises(BatchFileError):
        parse_plan_argument("BATCH001/C1/IMRT_7F/x")


def test_config_in_legacy_encoding_is_soft_warning(tmp_path):
    path = tmp_path / "opt.cfg"
    path.write_bytes("# Gantry 180° plans\nIMRT_maxiterations: 300\n".encode("cp1252"))
    defaults, outcome = load_optimization_defaults(str(path))
    assert defaults == OptimizationDefaults()
    assert outcome.kind == ErrorKind.config_warning
    assert outcome.message == "Error loading config file, default parameter values are used."


def test_batch_file_in_legacy_encoding_is_batch_file_error(tmp_path):
    path = tmp_path / "batch.csv"
    path.write_bytes("PatientId;CourseId;PlanId;Runs\nMüller;C1;IMRT_7F;1\n".encode("cp1252"))
    with pytest.raises(BatchFileError, match="not UTF-8"):
        load_batch_file(str(path))
