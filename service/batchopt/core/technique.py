"""Delivery technique classification from a snapshot of a plan's beams."""

from __future__ import annotations

from typing import Iterable, List, Sequence, Tuple

import numpy as np

from ..adapters.engine import Beam
from ..models.optimization import Technique

GANTRY_REPEAT_TOLERANCE_DEG = 1e-3


def treatment_beams(beams: Iterable[Beam]) -> List[Beam]:
    """Drop setup/reference fields, keeping delivery order."""
    return [b for b in beams if not b.is_setup_field]


def is_static(beam: Beam) -> bool:
    return "STATIC" in beam.technique_id.upper()


def is_arc(beam: Beam) -> bool:
    return "ARC" in beam.technique_id.upper()


def classify(beams: Sequence[Beam]) -> Technique:
    beams = treatment_beams(beams)
    has_static = any(is_static(b) for b in beams)
    has_arc = any(is_arc(b) for b in beams)
    if has_static and has_arc:
        return Technique.mixed
    if has_static:
        return Technique.imrt
    if has_arc:
        return Technique.vmat
    return Technique.undetermined


def has_repeated_gantry_angle(angles: Sequence[float], tolerance: float = GANTRY_REPEAT_TOLERANCE_DEG) -> bool:
    """True when two consecutive control points sit at the same gantry angle."""
    if len(angles) < 2:
        return False
    steps = np.abs(np.diff(np.asarray(angles, dtype=float)))
    return bool(np.any(steps < tolerance))


def is_dynamic_arc_variant(beams: Sequence[Beam]) -> bool:
    # Always recomputed from the raw control points; never cached on the plan.
    for beam in treatment_beams(beams):
        if not is_arc(beam):
            continue
        if has_repeated_gantry_angle([cp.gantry_angle for cp in beam.control_points]):
            return True
    return False


def classify_plan(beams: Sequence[Beam]) -> Tuple[Technique, bool]:
    """Return ``(technique, is_dynamic_arc_variant)``; the flag is only set for VMAT."""
    technique = classify(beams)
    dynamic = technique == Technique.vmat and is_dynamic_arc_variant(beams)
    return technique, dynamic
