"""Readers for the optimization defaults file and the batch plan file."""

from __future__ import annotations

import csv
import os
from typing import Any, Callable, Dict, List, Optional, Tuple

from loguru import logger
from pydantic import ValidationError

from ..models.optimization import (
    ConvergenceOption,
    ErrorKind,
    IntermediateDoseOption,
    OptimizationDefaults,
    ResumeMode,
    RunOutcome,
)
from ..models.plan import PlanRequest


class BatchFileError(ValueError):
    pass


# Integer codes used in the defaults file, indexed by value.
RESUME_CODES = (ResumeMode.restart, ResumeMode.continue_)
CONVERGENCE_CODES = (ConvergenceOption.no_early_termination, ConvergenceOption.terminate_if_converged)
INTERMEDIATE_DOSE_CODES = (IntermediateDoseOption.none, IntermediateDoseOption.use_intermediate_dose)


def _code(options: tuple) -> Callable[[str], Any]:
    def parse(raw: str):
        value = int(raw)
        if not 0 <= value < len(options):
            raise ValueError(f"code {value} out of range 0..{len(options) - 1}")
        return options[value]
    return parse


def _positive_int(raw: str) -> int:
    value = int(raw)
    if value < 1:
        raise ValueError(f"must be positive, got {value}")
    return value


def _flag(raw: str) -> bool:
    value = raw.strip().lower()
    if value in ("1", "true", "yes"):
        return True
    if value in ("0", "false", "no"):
        return False
    raise ValueError(f"not a boolean: {raw!r}")


CONFIG_KEYS: Dict[str, Tuple[str, Callable[[str], Any]]] = {
    "IMRT_maxiterations": ("imrt_max_iterations", _positive_int),
    "IMRT_initialState": ("imrt_resume_mode", _code(RESUME_CODES)),
    "IMRT_convergenceOption": ("imrt_convergence", _code(CONVERGENCE_CODES)),
    "IMRT_intermediateDoseOption": ("imrt_intermediate_dose", _code(INTERMEDIATE_DOSE_CODES)),
    "VMAT_initialState": ("vmat_resume_mode", _code(RESUME_CODES)),
    "VMAT_intermediateDoseOption": ("vmat_intermediate_dose", _code(INTERMEDIATE_DOSE_CODES)),
    "VMAT_jawFitOnMissingDose": ("jaw_fit_on_missing_dose", _flag),
    "IMRT_continueSubsequentRuns": ("imrt_continue_subsequent_runs", _flag),
}


def load_optimization_defaults(
    path: str, base: Optional[OptimizationDefaults] = None
) -> Tuple[OptimizationDefaults, RunOutcome]:
    """Read ``KEY: VALUE`` lines over ``base`` (built-in defaults if omitted).

    Never raises: a missing file or bad value leaves the affected defaults in
    place and is reported as a ``config_warning`` outcome.
    """
    defaults = base or OptimizationDefaults()
    try:
        with open(path, "r", encoding="utf-8") as fh:
            lines = fh.readlines()
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("Cannot read optimization config {}: {}", path, exc)
        return defaults, RunOutcome.fail(
            ErrorKind.config_warning, "Error loading config file, default parameter values are used."
        )

    updates: Dict[str, Any] = {}
    bad: List[str] = []
    for lineno, line in enumerate(lines, start=1):
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, raw = line.partition(":")
        entry = CONFIG_KEYS.get(key.strip())
        if entry is None:
            continue
        field_name, parse = entry
        try:
            if not sep:
                raise ValueError("missing ':'")
            updates[field_name] = parse(raw.strip())
        except ValueError as exc:
            logger.warning("Ignoring {} on line {} of {}: {}", key.strip(), lineno, path, exc)
            bad.append(key.strip())

    defaults = defaults.model_copy(update=updates)
    if bad:
        return defaults, RunOutcome.fail(
            ErrorKind.config_warning,
            f"Error loading config file ({', '.join(bad)}), some default parameter values may be used.",
        )
    return defaults, RunOutcome.ok("Config file loaded.")


def parse_batch_rows(rows: List[List[str]], source: str = "<input>") -> List[PlanRequest]:
    plans: List[PlanRequest] = []
    for lineno, row in enumerate(rows, start=2):
        if not any(cell.strip() for cell in row):
            continue
        if len(row) < 4:
            raise BatchFileError(f"{source} line {lineno}: expected 4 fields, got {len(row)}")
        try:
            plans.append(
                PlanRequest(
                    patient_id=row[0],
                    course_id=row[1],
                    plan_id=row[2],
                    run_count=int(row[3].strip()),
                )
            )
        except (ValueError, ValidationError) as exc:
            raise BatchFileError(f"{source} line {lineno}: {exc}") from exc
    return plans


def load_batch_file(path: str) -> List[PlanRequest]:
    """Load ``patient;course;plan;runs`` rows after a header row.

    Any malformed row fails the whole file.
    """
    if not os.path.isfile(path):
        raise BatchFileError(f"Batch file {path} not found")
    try:
        with open(path, "r", encoding="utf-8-sig", newline="") as fh:
            reader = csv.reader(fh, delimiter=";")
            next(reader, None)  # header
            rows = list(reader)
    except UnicodeDecodeError as exc:
        raise BatchFileError(f"{path} is not UTF-8 text: {exc}") from exc
    except OSError as exc:
        raise BatchFileError(f"Cannot read batch file {path}: {exc}") from exc
    plans = parse_batch_rows(rows, source=path)
    logger.info("Loaded {} plans from {}", len(plans), path)
    return plans


def parse_plan_argument(text: str) -> PlanRequest:
    """Parse ``PATIENT/COURSE/PLAN[/RUNS]`` as given on the command line."""
    parts = text.split("/")
    if len(parts) not in (3, 4):
        raise BatchFileError(f"Invalid plan '{text}', expected PATIENT/COURSE/PLAN[/RUNS]")
    try:
        runs = int(parts[3]) if len(parts) == 4 else 1
        return PlanRequest(patient_id=parts[0], course_id=parts[1], plan_id=parts[2], run_count=runs)
    except (ValueError, ValidationError) as exc:
        raise BatchFileError(f"Invalid plan '{text}': {exc}") from exc
