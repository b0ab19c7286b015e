from fastapi import APIRouter, HTTPException
from fastapi.responses import Response

from ...core.store import TERMINAL_STATES, store
from ...models.batch import BatchDetail, BatchRequest, BatchSummary
from ...models.job import JobState
from ...tasks.batch_tasks import run_batch_job

router = APIRouter(prefix="/batches", tags=["batches"])


@router.get("", response_model=list[BatchSummary])
async def list_batches():
    return store.list_batches()


@router.post("", response_model=BatchDetail, status_code=201)
def create_batch(request: BatchRequest):
    batch, job = store.create_batch(request)
    run_batch_job.delay(job.id, batch.id)
    return store.get_batch(batch.id) or batch


@router.get("/{batch_id}", response_model=BatchDetail)
async def get_batch(batch_id: str):
    batch = store.get_batch(batch_id)
    if not batch:
        raise HTTPException(status_code=404, detail="Batch not found")
    return batch


@router.delete("/{batch_id}", status_code=204, response_class=Response)
async def delete_batch(batch_id: str):
    batch = store.get_batch(batch_id)
    if not batch:
        raise HTTPException(status_code=404, detail="Batch not found")
    job = store.get_job(batch.job_id)
    if job and job.state not in TERMINAL_STATES:
        store.update_job(batch.job_id, state=JobState.cancelled, message="Cancelled by user")
    store.delete_batch(batch_id)
    return Response(status_code=204)
