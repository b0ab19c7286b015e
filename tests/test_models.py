"""Plan request validation and batch report helpers."""

import pytest
from pydantic import ValidationError

from batchopt.models.plan import STATUS_MARKS, BatchReport, BatchStatus, PlanReport, PlanRequest


def test_plan_request_normalizes_fields():
    request = PlanRequest(patient_id=" P1 ", course_id="C1", plan_id="PL", run_count=-3)
    assert request.patient_id == "P1"
    assert request.run_count == 1
    assert request.label == "P1/C1/PL"


def test_plan_request_rejects_blank_ids():
    with pytest.raises(ValidationError):
        PlanRequest(patient_id="  ", course_id="C1", plan_id="PL")


def test_report_success_and_counts():
    request = PlanRequest(patient_id="P1", course_id="C1", plan_id="PL", run_count=2)
    report = BatchReport(plans=[PlanReport.for_request(1, request), PlanReport.for_request(2, request)])
    assert report.succeeded
    report.plans[0].status = BatchStatus.succeeded
    report.plans[1].status = BatchStatus.failed
    assert not report.succeeded
    assert report.counts() == {"pending": 0, "ready": 0, "failed": 1, "succeeded": 1}

    rendered = report.render()
    assert "✓" in rendered and "✕" in rendered
    assert "0/2" in rendered


def test_fatal_error_fails_report():
    report = BatchReport(fatal_error="Planning engine connection failed.")
    assert not report.succeeded
    assert report.render().startswith("Batch aborted: Planning engine connection failed.")


def test_ready_and_pending_render_differently():
    request = PlanRequest(patient_id="P1", course_id="C1", plan_id="PL")
    pending, ready = PlanReport.for_request(1, request), PlanReport.for_request(2, request)
    ready.status = BatchStatus.ready
    assert len(set(STATUS_MARKS.values())) == len(BatchStatus)

    rows = BatchReport(plans=[pending, ready]).render().splitlines()[2:4]
    assert STATUS_MARKS[BatchStatus.pending] in rows[0]
    assert STATUS_MARKS[BatchStatus.ready] in rows[1]
    assert STATUS_MARKS[BatchStatus.pending] not in rows[1]
