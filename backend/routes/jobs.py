"""Bulk generation jobs API.

POST /api/jobs/bulk-generate
  → Validates plan features, returns { job_id, status } immediately.
  → Background task runs the chunked orchestrator against the connected store.

GET /api/jobs/{job_id}
  → Poll for status, counts, progress and per-product outcomes.
"""

from __future__ import annotations

import hashlib
import json
import logging
from datetime import datetime

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from pydantic import BaseModel, Field

from backend.auth import require_auth, require_feature
from backend.deps import get_services
from descgen.accounts.models import Account
from descgen.errors import ConflictError, NotFoundError
from descgen.generation.schemas import GenerationOptions, ItemOutcome
from descgen.jobs import BatchJob, new_job_id
from descgen.plans import Feature, check_generation_options
from descgen.services import Services

logger = logging.getLogger(__name__)
router = APIRouter()


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------

class BulkGenerateRequest(BaseModel):
    product_ids: list[str] = Field(min_length=1, max_length=1000)
    options: GenerationOptions = Field(default_factory=GenerationOptions)
    push_to_store: bool = False


class JobStartResponse(BaseModel):
    """Immediate response for POST /api/jobs/bulk-generate."""

    job_id: str
    status: str
    total: int
    deduplicated: bool = False


class JobStatusResponse(BaseModel):
    job_id: str
    status: str
    total: int
    processed: int
    successful: int
    failed: int
    progress: int
    push_to_store: bool
    cancel_requested: bool
    results: list[ItemOutcome]
    error_message: str | None = None
    created_at: datetime
    updated_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_job(cls, job: BatchJob) -> JobStatusResponse:
        return cls(
            job_id=job.job_id,
            status=job.status.value,
            total=job.total_products,
            processed=job.processed_products,
            successful=job.successful,
            failed=job.failed,
            progress=job.progress,
            push_to_store=job.push_to_store,
            cancel_requested=job.cancel_requested,
            results=job.results,
            error_message=job.error_message,
            created_at=job.created_at,
            updated_at=job.updated_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _idempotency_key(account_id: str, request: BulkGenerateRequest) -> str:
    """Stable hash of account + ordered product ids + options."""
    payload = json.dumps(
        {
            "account": account_id,
            "products": request.product_ids,
            "options": request.options.model_dump(mode="json"),
            "push": request.push_to_store,
        },
        sort_keys=True,
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def _owned_job(services: Services, job_id: str, account: Account) -> BatchJob:
    job = services.jobs.get(job_id)
    if job is None or job.account_id != account.id:
        raise NotFoundError(f"Job {job_id} not found")
    return job


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("/jobs/bulk-generate", response_model=JobStartResponse)
async def bulk_generate(
    request: BulkGenerateRequest,
    background_tasks: BackgroundTasks,
    account: Account = Depends(require_feature(Feature.BULK_GENERATION)),
    services: Services = Depends(get_services),
):
    """Queue a bulk job. Identical in-flight requests return the existing job."""
    check_generation_options(account.plan, request.options.tone, request.options.language)
    orchestrator = services.require_orchestrator()

    key = _idempotency_key(account.id, request)
    existing = services.jobs.get_by_idempotency_key(key)
    if existing is not None:
        logger.info("Bulk request deduplicated onto job %s", existing.job_id)
        return JobStartResponse(
            job_id=existing.job_id,
            status=existing.status.value,
            total=existing.total_products,
            deduplicated=True,
        )

    job = services.jobs.create(
        BatchJob(
            job_id=new_job_id(),
            account_id=account.id,
            idempotency_key=key,
            product_ids=request.product_ids,
            options=request.options,
            push_to_store=request.push_to_store,
            total_products=len(request.product_ids),
        )
    )
    adapter = services.store_adapter(account)
    background_tasks.add_task(orchestrator.run_job, job.job_id, adapter, adapter)
    logger.info("Queued job %s (%d products) for account %s", job.job_id, job.total_products, account.id)
    return JobStartResponse(job_id=job.job_id, status=job.status.value, total=job.total_products)


@router.get("/jobs", response_model=list[JobStatusResponse])
async def list_jobs(
    limit: int = Query(default=20, ge=1, le=100),
    account: Account = Depends(require_auth),
    services: Services = Depends(get_services),
):
    return [JobStatusResponse.from_job(j) for j in services.jobs.list_for_account(account.id, limit)]


@router.get("/jobs/{job_id}", response_model=JobStatusResponse)
async def get_job(
    job_id: str,
    account: Account = Depends(require_auth),
    services: Services = Depends(get_services),
):
    """Poll a job's progress."""
    return JobStatusResponse.from_job(_owned_job(services, job_id, account))


@router.post("/jobs/{job_id}/cancel", response_model=JobStatusResponse)
async def cancel_job(
    job_id: str,
    account: Account = Depends(require_auth),
    services: Services = Depends(get_services),
):
    """Request cancellation; the running chunk finishes, later chunks are skipped."""
    job = _owned_job(services, job_id, account)
    if job.status.is_terminal or not services.jobs.request_cancel(job_id):
        raise ConflictError(
            f"Job {job_id} is already {job.status.value}",
            details={"status": job.status.value},
        )
    logger.info("Cancel requested for job %s", job_id)
    return JobStatusResponse.from_job(_owned_job(services, job_id, account))
