"""Bulk generation orchestrator.

Drives the description generator over many products in throttled chunks,
records per-item outcomes, and keeps the persisted job record in step with
each chunk barrier so pollers see monotonic progress.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Protocol

from descgen.batching import chunked_throttled_map
from descgen.generation.client import DescriptionGenerator
from descgen.generation.schemas import (
    BatchGenerationResult,
    GeneratedDescription,
    GenerationOptions,
    ItemOutcome,
    ProductAttributes,
)
from descgen.jobs.models import BatchJob, JobStatus
from descgen.jobs.store import JobStore

logger = logging.getLogger(__name__)


class ProductSource(Protocol):
    """Where a job reads product data from (a connected store)."""

    async def verify(self) -> None:
        """Raise if the store credentials are unusable."""

    async def fetch(self, product_id: str) -> ProductAttributes | None: ...


class DescriptionSink(Protocol):
    """Where generated descriptions are written back to."""

    async def push(self, product_id: str, description: GeneratedDescription) -> None: ...


def _summarise(outcomes: list[ItemOutcome]) -> BatchGenerationResult:
    successful = sum(1 for o in outcomes if o.success)
    return BatchGenerationResult(
        total=len(outcomes),
        successful=successful,
        failed=len(outcomes) - successful,
        results=outcomes,
    )


class BatchOrchestrator:
    def __init__(
        self,
        generator: DescriptionGenerator,
        job_store: JobStore | None = None,
        *,
        chunk_size: int = 5,
        delay_seconds: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._generator = generator
        self._store = job_store
        self._chunk_size = chunk_size
        self._delay = delay_seconds
        self._sleep = sleep

    # ------------------------------------------------------------------
    # In-memory batch (no job record)
    # ------------------------------------------------------------------

    async def generate_batch(
        self,
        products: Sequence[ProductAttributes],
        options: GenerationOptions | None = None,
    ) -> BatchGenerationResult:
        """Attempt every product; failures are recorded, never raised."""
        options = options or GenerationOptions()

        async def _one(product: ProductAttributes) -> ItemOutcome:
            try:
                description = await self._generator.generate(product, options)
            except Exception as e:
                logger.warning("Generation failed for product %s: %s", product.id, e)
                return ItemOutcome(product_id=product.id, success=False, error=str(e))
            return ItemOutcome(product_id=product.id, success=True, description=description)

        outcomes = await chunked_throttled_map(
            products,
            _one,
            chunk_size=self._chunk_size,
            delay_seconds=self._delay,
            sleep=self._sleep,
        )
        result = _summarise(outcomes)
        logger.info(
            "Batch generation finished: %d/%d successful", result.successful, result.total
        )
        return result

    # ------------------------------------------------------------------
    # Persisted job
    # ------------------------------------------------------------------

    async def run_job(
        self,
        job_id: str,
        source: ProductSource | None,
        sink: DescriptionSink | None = None,
    ) -> BatchJob | None:
        """Run a queued job to a terminal state. Safe to call as a background task."""
        if self._store is None:
            raise RuntimeError("run_job needs a job store")
        job = self._store.get(job_id)
        if job is None:
            logger.error("Job %s not found", job_id)
            return None
        if job.status != JobStatus.QUEUED:
            logger.info("Job %s is %s, not starting", job_id, job.status.value)
            return job

        if self._store.is_cancel_requested(job_id):
            job.finish(JobStatus.CANCELLED)
            self._store.update(job)
            logger.info("Job %s cancelled before start", job_id)
            return job

        if source is None:
            return self._fail(job, "Shopify store not connected")
        try:
            await source.verify()
        except Exception as e:
            logger.warning("Store credential check failed for job %s: %s", job_id, e)
            return self._fail(job, f"Store credential check failed: {e}")

        job.mark_processing()
        self._store.update(job)
        logger.info("Job %s processing %d products", job_id, job.total_products)

        stopped = False

        def _should_stop() -> bool:
            nonlocal stopped
            if self._store.is_cancel_requested(job_id):
                stopped = True
            return stopped

        async def _on_chunk(index: int, outcomes: list[ItemOutcome]) -> None:
            job.record_chunk(outcomes)
            self._store.update(job)
            logger.info(
                "Job %s chunk %d done (%d/%d)",
                job_id, index + 1, job.processed_products, job.total_products,
            )

        async def _step(product_id: str) -> ItemOutcome:
            return await self._process_item(product_id, job, source, sink)

        try:
            await chunked_throttled_map(
                job.product_ids,
                _step,
                chunk_size=self._chunk_size,
                delay_seconds=self._delay,
                should_stop=_should_stop,
                on_chunk=_on_chunk,
                sleep=self._sleep,
            )
        except Exception as e:
            logger.exception("Job %s aborted", job_id)
            return self._fail(job, str(e))

        if stopped:
            job.finish(JobStatus.CANCELLED)
            logger.info("Job %s cancelled after %d products", job_id, job.processed_products)
        else:
            job.finish(JobStatus.COMPLETED)
            logger.info(
                "Job %s completed: %d successful, %d failed",
                job_id, job.successful, job.failed,
            )
        self._store.update(job)
        return job

    async def _process_item(
        self,
        product_id: str,
        job: BatchJob,
        source: ProductSource,
        sink: DescriptionSink | None,
    ) -> ItemOutcome:
        try:
            product = await source.fetch(product_id)
            if product is None:
                return ItemOutcome(product_id=product_id, success=False, error="Product not found")
            description = await self._generator.generate(product, job.options)
        except Exception as e:
            logger.warning("Job %s: product %s failed: %s", job.job_id, product_id, e)
            return ItemOutcome(product_id=product_id, success=False, error=str(e))

        if job.push_to_store and sink is not None:
            try:
                await sink.push(product_id, description)
            except Exception as e:
                logger.warning("Job %s: push for %s failed: %s", job.job_id, product_id, e)
                return ItemOutcome(
                    product_id=product_id,
                    success=False,
                    description=description,
                    error=f"Push to store failed: {e}",
                )
        return ItemOutcome(product_id=product_id, success=True, description=description)

    def _fail(self, job: BatchJob, message: str) -> BatchJob:
        """Mark *job* failed. A store that cannot persist it is logged, not raised."""
        job.finish(JobStatus.FAILED, message)
        try:
            self._store.update(job)
        except Exception:
            logger.exception("Could not persist failure of job %s", job.job_id)
        return job
