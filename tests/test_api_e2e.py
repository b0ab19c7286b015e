"""
End-to-end API test for the batch optimization FastAPI service.

Exercises the full data flow:
  POST /plans/check → POST /batches → GET /jobs/{id} → GET /batches/{id} → DELETE /batches/{id}

Uses Celery eager mode (task_always_eager) so no broker is needed, and the
in-memory planning engine so no treatment planning system is needed.
"""

import pytest
from fastapi.testclient import TestClient

from batchopt.app import create_app
from batchopt.core.session import reset_optimization_session
from batchopt.core.store import reset_store


@pytest.fixture(scope="module")
def client():
    reset_store()
    reset_optimization_session()
    app = create_app()
    with TestClient(app) as c:
        yield c
    reset_optimization_session()
    reset_store()


def _plan(plan_id, patient="BATCH001", runs=1):
    return {"patient_id": patient, "course_id": "C1", "plan_id": plan_id, "run_count": runs}


# ---- Info ----

def test_root(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_info(client):
    resp = client.get("/api/v1/info")
    assert resp.status_code == 200
    data = resp.json()
    assert data["name"] == "Batch Optimization Service"
    assert data["engine"] == {"mode": "mock", "connected": True}
    assert data["optimization_defaults"]["imrt_max_iterations"] == 5000
    assert data["watchdog"]["title_patterns"] == ["Warning"]


# ---- Check ----

def test_check_plans(client):
    payload = {"plans": [_plan("IMRT_7F"), _plan("APPROVED", patient="BATCH002"), _plan("NOPE")]}
    resp = client.post("/api/v1/plans/check", json=payload)
    assert resp.status_code == 200
    report = resp.json()
    assert [p["status"] for p in report["plans"]] == ["ready", "failed", "failed"]
    assert report["plans"][2]["message"] == "For row 3, Plan NOPE cannot be found."


def test_check_requires_plans(client):
    resp = client.post("/api/v1/plans/check", json={"plans": []})
    assert resp.status_code == 422


# ---- Batches ----

def test_create_batch_runs_to_completion(client):
    payload = {
        "plans": [_plan("IMRT_7F", runs=2), _plan("MIXED", patient="BATCH002")],
        "notes": "E2E test batch",
    }
    resp = client.post("/api/v1/batches", json=payload)
    assert resp.status_code == 201
    batch = resp.json()
    assert batch["id"]
    assert batch["job_id"]
    assert batch["plan_count"] == 2

    # In eager mode the task runs synchronously during POST.
    resp = client.get(f"/api/v1/jobs/{batch['job_id']}")
    assert resp.status_code == 200
    job = resp.json()
    assert job["state"] == "succeeded"
    assert job["stage"] == "done"
    assert job["progress"] == 1.0
    assert "1 succeeded, 1 failed" in job["message"]

    resp = client.get(f"/api/v1/batches/{batch['id']}")
    assert resp.status_code == 200
    report = resp.json()["report"]
    first, second = report["plans"]
    assert first["status"] == "succeeded"
    assert first["runs_completed"] == 2
    assert second["status"] == "failed"
    assert "technique not optimizable" in second["message"]


def test_dose_only_batch(client):
    resp = client.post(
        "/api/v1/batches",
        json={"plans": [_plan("VMAT_DYN", patient="BATCH002")], "dose_calc_only": True},
    )
    assert resp.status_code == 201
    report = client.get(f"/api/v1/batches/{resp.json()['id']}").json()["report"]
    assert report["dose_calc_only"] is True
    assert report["plans"][0]["status"] == "succeeded"
    assert report["plans"][0]["runs_completed"] == 0


def test_invalid_batch_rejected(client):
    resp = client.post("/api/v1/batches", json={"plans": [{"patient_id": "", "course_id": "C1", "plan_id": "X"}]})
    assert resp.status_code == 422


def test_list_batches(client):
    resp = client.get("/api/v1/batches")
    assert resp.status_code == 200
    batches = resp.json()
    assert isinstance(batches, list)
    assert len(batches) >= 1


def test_delete_batch(client):
    resp = client.post("/api/v1/batches", json={"plans": [_plan("IMRT_7F")]})
    assert resp.status_code == 201
    batch_id = resp.json()["id"]

    resp = client.delete(f"/api/v1/batches/{batch_id}")
    assert resp.status_code == 204

    resp = client.get(f"/api/v1/batches/{batch_id}")
    assert resp.status_code == 404


def test_unknown_ids(client):
    assert client.get("/api/v1/batches/nonexistent").status_code == 404
    assert client.get("/api/v1/jobs/nonexistent").status_code == 404
    assert client.delete("/api/v1/batches/nonexistent").status_code == 404
