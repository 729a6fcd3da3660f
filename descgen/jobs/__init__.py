"""Bulk generation jobs: record, storage, orchestration."""

from descgen.jobs.models import ACTIVE_STATUSES, BatchJob, JobStatus
from descgen.jobs.orchestrator import BatchOrchestrator, DescriptionSink, ProductSource
from descgen.jobs.store import (
    FileJobStore,
    JobStore,
    PostgresJobStore,
    create_job_store,
    new_job_id,
)

__all__ = [
    "ACTIVE_STATUSES",
    "BatchJob",
    "BatchOrchestrator",
    "DescriptionSink",
    "FileJobStore",
    "JobStatus",
    "JobStore",
    "PostgresJobStore",
    "ProductSource",
    "create_job_store",
    "new_job_id",
]
