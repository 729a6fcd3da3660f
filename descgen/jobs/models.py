"""Bulk generation job schema and status."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field

from descgen.generation.schemas import GenerationOptions, ItemOutcome


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)


ACTIVE_STATUSES = (JobStatus.QUEUED, JobStatus.PROCESSING)


class BatchJob(BaseModel):
    """Bulk description job, persisted for async polling."""

    job_id: str = ""
    account_id: str = ""
    idempotency_key: str = ""
    product_ids: list[str] = Field(default_factory=list)
    options: GenerationOptions = Field(default_factory=GenerationOptions)
    push_to_store: bool = False
    status: JobStatus = JobStatus.QUEUED
    total_products: int = 0
    processed_products: int = 0
    successful: int = 0
    failed: int = 0
    results: list[ItemOutcome] = Field(default_factory=list)
    cancel_requested: bool = False
    error_message: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def progress(self) -> int:
        """Percentage of products processed (0-100)."""
        if not self.total_products:
            return 100 if self.status.is_terminal else 0
        return int(self.processed_products * 100 / self.total_products)

    def record_chunk(self, outcomes: list[ItemOutcome]) -> None:
        """Append one chunk of outcomes. Counts only ever grow."""
        successes = sum(1 for o in outcomes if o.success)
        if self.processed_products + len(outcomes) > self.total_products:
            raise ValueError(
                f"Job {self.job_id}: {self.processed_products + len(outcomes)} outcomes "
                f"exceed {self.total_products} products"
            )
        self.results.extend(outcomes)
        self.processed_products += len(outcomes)
        self.successful += successes
        self.failed += len(outcomes) - successes
        self.updated_at = utcnow()

    def mark_processing(self) -> None:
        self.status = JobStatus.PROCESSING
        self.started_at = self.started_at or utcnow()
        self.updated_at = utcnow()

    def finish(self, status: JobStatus, error_message: str | None = None) -> None:
        if not status.is_terminal:
            raise ValueError(f"{status.value} is not a terminal status")
        self.status = status
        if error_message is not None:
            self.error_message = error_message[:500]
        self.completed_at = utcnow()
        self.updated_at = self.completed_at
