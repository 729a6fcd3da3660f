"""Batch job storage: Postgres (preferred) or file-based fallback.

The cancel flag is written only by ``request_cancel`` and is never touched by
``update``, so an orchestrator saving progress cannot clobber a cancel that
arrived mid-chunk.
"""

from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path
from typing import Protocol

from descgen.config import Settings
from descgen.jobs.models import ACTIVE_STATUSES, BatchJob, JobStatus

logger = logging.getLogger(__name__)


class JobStore(Protocol):
    def create(self, job: BatchJob) -> BatchJob: ...
    def get(self, job_id: str) -> BatchJob | None: ...
    def get_by_idempotency_key(self, key: str) -> BatchJob | None: ...
    def list_for_account(self, account_id: str, limit: int = 50) -> list[BatchJob]: ...
    def update(self, job: BatchJob) -> None: ...
    def request_cancel(self, job_id: str) -> bool: ...
    def is_cancel_requested(self, job_id: str) -> bool: ...
    def close(self) -> None: ...


# ---------------------------------------------------------------------------
# Postgres implementation
# ---------------------------------------------------------------------------

class PostgresJobStore:
    """Persist jobs in Postgres. Survives restarts."""

    _COLUMNS = "job_id, account_id, idempotency_key, status, cancel_requested, payload"

    def __init__(self, database_url: str):
        self._url = database_url
        self._conn = self._connect()

    def _connect(self):
        try:
            import psycopg
        except ImportError:
            raise ImportError(
                "psycopg required for Postgres job store. pip install 'psycopg[binary]'"
            )
        conn = psycopg.connect(self._url, autocommit=True)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS descgen_batch_jobs (
                job_id TEXT PRIMARY KEY,
                account_id TEXT NOT NULL,
                idempotency_key TEXT NOT NULL,
                status TEXT NOT NULL,
                cancel_requested BOOLEAN NOT NULL DEFAULT FALSE,
                payload JSONB NOT NULL,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_descgen_batch_jobs_idempotency
            ON descgen_batch_jobs (idempotency_key, status)
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_descgen_batch_jobs_account
            ON descgen_batch_jobs (account_id, created_at DESC)
        """)
        return conn

    def create(self, job: BatchJob) -> BatchJob:
        self._conn.execute(
            """
            INSERT INTO descgen_batch_jobs
            (job_id, account_id, idempotency_key, status, cancel_requested, payload,
             created_at, updated_at)
            VALUES (%s, %s, %s, %s, %s, %s::jsonb, NOW(), NOW())
            """,
            (
                job.job_id,
                job.account_id,
                job.idempotency_key,
                job.status.value,
                job.cancel_requested,
                job.model_dump_json(),
            ),
        )
        return job

    def get(self, job_id: str) -> BatchJob | None:
        row = self._conn.execute(
            f"SELECT {self._COLUMNS} FROM descgen_batch_jobs WHERE job_id = %s",
            (job_id,),
        ).fetchone()
        if not row:
            return None
        return self._row_to_job(row)

    def get_by_idempotency_key(self, key: str) -> BatchJob | None:
        """Return in-flight job (queued or processing) for this key, if any."""
        row = self._conn.execute(
            f"""
            SELECT {self._COLUMNS} FROM descgen_batch_jobs
            WHERE idempotency_key = %s AND status IN ('queued', 'processing')
            ORDER BY created_at DESC LIMIT 1
            """,
            (key,),
        ).fetchone()
        if not row:
            return None
        return self._row_to_job(row)

    def list_for_account(self, account_id: str, limit: int = 50) -> list[BatchJob]:
        rows = self._conn.execute(
            f"""
            SELECT {self._COLUMNS} FROM descgen_batch_jobs
            WHERE account_id = %s ORDER BY created_at DESC LIMIT %s
            """,
            (account_id, limit),
        ).fetchall()
        return [self._row_to_job(r) for r in rows]

    def update(self, job: BatchJob) -> None:
        self._conn.execute(
            """
            UPDATE descgen_batch_jobs SET
                status = %s, payload = %s::jsonb, updated_at = NOW()
            WHERE job_id = %s
            """,
            (job.status.value, job.model_dump_json(exclude={"cancel_requested"}), job.job_id),
        )

    def request_cancel(self, job_id: str) -> bool:
        cur = self._conn.execute(
            """
            UPDATE descgen_batch_jobs SET cancel_requested = TRUE, updated_at = NOW()
            WHERE job_id = %s AND status IN ('queued', 'processing')
            """,
            (job_id,),
        )
        return cur.rowcount > 0

    def is_cancel_requested(self, job_id: str) -> bool:
        row = self._conn.execute(
            "SELECT cancel_requested FROM descgen_batch_jobs WHERE job_id = %s",
            (job_id,),
        ).fetchone()
        return bool(row and row[0])

    def close(self) -> None:
        self._conn.close()

    def _row_to_job(self, row) -> BatchJob:
        payload = row[5] if isinstance(row[5], dict) else json.loads(row[5])
        job = BatchJob.model_validate(payload)
        job.status = JobStatus(row[3])
        job.cancel_requested = bool(row[4])
        return job


# ---------------------------------------------------------------------------
# File-based implementation (fallback when no Postgres)
# ---------------------------------------------------------------------------

class FileJobStore:
    """Persist jobs as JSON files. Survives restarts within same data dir."""

    def __init__(self, data_dir: Path):
        self._dir = Path(data_dir) / "jobs"
        self._dir.mkdir(parents=True, exist_ok=True)
        self._index_path = self._dir / "index.json"
        self._index: dict[str, str] = self._load_index()

    def _load_index(self) -> dict[str, str]:
        """Maps idempotency_key -> job_id for lookup."""
        if self._index_path.exists():
            with open(self._index_path, "r", encoding="utf-8") as f:
                return json.load(f)
        return {}

    def _save_index(self) -> None:
        with open(self._index_path, "w", encoding="utf-8") as f:
            json.dump(self._index, f, indent=2)

    def _job_path(self, job_id: str) -> Path:
        return self._dir / f"{job_id}.json"

    def _cancel_path(self, job_id: str) -> Path:
        return self._dir / f"{job_id}.cancel"

    def create(self, job: BatchJob) -> BatchJob:
        if job.idempotency_key:
            self._index[job.idempotency_key] = job.job_id
            self._save_index()
        self._write_job(job)
        return job

    def get(self, job_id: str) -> BatchJob | None:
        path = self._job_path(job_id)
        if not path.exists():
            return None
        job = self._read_job(path)
        job.cancel_requested = self._cancel_path(job_id).exists()
        return job

    def get_by_idempotency_key(self, key: str) -> BatchJob | None:
        job_id = self._index.get(key)
        if not job_id:
            return None
        job = self.get(job_id)
        if job is None or job.status not in ACTIVE_STATUSES:
            return None
        return job

    def list_for_account(self, account_id: str, limit: int = 50) -> list[BatchJob]:
        jobs = []
        for path in self._dir.glob("job_*.json"):
            job = self._read_job(path)
            if job.account_id == account_id:
                job.cancel_requested = self._cancel_path(job.job_id).exists()
                jobs.append(job)
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return jobs[:limit]

    def update(self, job: BatchJob) -> None:
        self._write_job(job)

    def request_cancel(self, job_id: str) -> bool:
        job = self.get(job_id)
        if job is None or job.status not in ACTIVE_STATUSES:
            return False
        self._cancel_path(job_id).touch()
        return True

    def is_cancel_requested(self, job_id: str) -> bool:
        return self._cancel_path(job_id).exists()

    def close(self) -> None:
        pass

    def _write_job(self, job: BatchJob) -> None:
        path = self._job_path(job.job_id)
        data = job.model_dump(mode="json", exclude={"cancel_requested"})
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, default=str)

    def _read_job(self, path: Path) -> BatchJob:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return BatchJob.model_validate(data)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def create_job_store(settings: Settings) -> JobStore:
    """Build the job store (Postgres if configured, else file-based)."""
    if settings.database_url:
        try:
            store = PostgresJobStore(settings.database_url)
            logger.info("Using Postgres job store")
            return store
        except Exception as e:
            logger.warning("Postgres job store failed (%s), falling back to file store", e)
    logger.info("Using file-based job store (%s/jobs)", settings.data_dir)
    return FileJobStore(settings.data_dir)


def new_job_id() -> str:
    return f"job_{uuid.uuid4().hex[:16]}"
