"""BatchOptClient: Python client for the batch optimization API.

Usage::

    from batchopt.client import BatchOptClient

    client = BatchOptClient("http://localhost:8000/api/v1")
    batch = client.create_batch([
        {"patient_id": "BATCH001", "course_id": "C1", "plan_id": "IMRT_7F", "run_count": 2},
    ])
    job = client.poll_job(batch["job_id"], timeout=3600)
    report = client.get_batch(batch["id"])["report"]
"""

from __future__ import annotations

import time
from typing import Any, Dict, List, Optional, Sequence

import httpx


class BatchOptClientError(RuntimeError):
    """Raised when the API returns an unexpected status."""

    def __init__(self, status_code: int, detail: str):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"HTTP {status_code}: {detail}")


class BatchOptClient:
    """Synchronous HTTP client for the batch optimization API."""

    def __init__(
        self,
        base_url: str = "http://localhost:8000/api/v1",
        timeout: float = 30.0,
        username: Optional[str] = None,
        password: Optional[str] = None,
    ):
        self.base_url = base_url.rstrip("/")
        auth = (username, password) if username else None
        self._http = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            auth=auth,
        )

    def close(self):
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    # -- helpers --

    def _check(self, resp: httpx.Response, expected: int = 200) -> httpx.Response:
        if resp.status_code != expected:
            detail = resp.text[:500]
            raise BatchOptClientError(resp.status_code, detail)
        return resp

    # -- Info --

    def info(self) -> Dict[str, Any]:
        """GET /info: service metadata and optimization defaults."""
        return self._check(self._http.get("/info")).json()

    # -- Plans --

    def check_plans(self, plans: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
        """POST /plans/check: synchronous readiness check, returns a batch report."""
        return self._check(self._http.post("/plans/check", json={"plans": list(plans)})).json()

    # -- Batches --

    def create_batch(
        self,
        plans: Sequence[Dict[str, Any]],
        dose_calc_only: bool = False,
        check_first: bool = False,
        notes: Optional[str] = None,
    ) -> Dict[str, Any]:
        """POST /batches: submit a batch. Returns batch detail with job_id."""
        payload: Dict[str, Any] = {
            "plans": list(plans),
            "dose_calc_only": dose_calc_only,
            "check_first": check_first,
        }
        if notes:
            payload["notes"] = notes
        return self._check(self._http.post("/batches", json=payload), 201).json()

    def get_batch(self, batch_id: str) -> Dict[str, Any]:
        return self._check(self._http.get(f"/batches/{batch_id}")).json()

    def list_batches(self) -> List[Dict[str, Any]]:
        return self._check(self._http.get("/batches")).json()

    def delete_batch(self, batch_id: str) -> None:
        self._check(self._http.delete(f"/batches/{batch_id}"), 204)

    # -- Jobs --

    def get_job(self, job_id: str) -> Dict[str, Any]:
        """GET /jobs/{id}: job state, progress, stage."""
        return self._check(self._http.get(f"/jobs/{job_id}")).json()

    def poll_job(
        self,
        job_id: str,
        timeout: float = 3600.0,
        interval: float = 5.0,
    ) -> Dict[str, Any]:
        """Poll GET /jobs/{id} until a terminal state (succeeded/failed/cancelled).

        Raises ``BatchOptClientError`` on timeout.
        """
        deadline = time.monotonic() + timeout
        terminal = {"succeeded", "failed", "cancelled"}
        while time.monotonic() < deadline:
            job = self.get_job(job_id)
            if job["state"] in terminal:
                return job
            time.sleep(interval)
        raise BatchOptClientError(408, f"Job {job_id} did not complete within {timeout}s")
