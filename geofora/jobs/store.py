"""
Job Stores

Registries for export jobs, GDPR requests and download artifacts.

Classes:
    JobStore          - async interface every registry implements
    InMemoryJobStore  - process-local dict; jobs vanish on restart
    SqlJobStore       - ``background_jobs`` table; jobs survive restarts

Both implementations hand out copies, so a worker only publishes changes
to a job by calling ``put`` again.
"""

import enum
import logging
from abc import ABC, abstractmethod
from typing import Generic, TypeVar

from pydantic import BaseModel
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from geofora.models.background_job import BackgroundJob

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class JobStore(ABC, Generic[ModelT]):
    """Async key/value registry of pydantic job models."""

    @abstractmethod
    async def get(self, job_id: str) -> ModelT | None:
        """Return a copy of the job, or None."""

    @abstractmethod
    async def put(self, job_id: str, job: ModelT) -> None:
        """Insert or replace the job."""

    @abstractmethod
    async def delete(self, job_id: str) -> bool:
        """Remove the job; False if it was already gone."""

    @abstractmethod
    async def values(self) -> list[ModelT]:
        """Return copies of every stored job, oldest first."""


class InMemoryJobStore(JobStore[ModelT]):
    def __init__(self) -> None:
        self._jobs: dict[str, ModelT] = {}

    async def get(self, job_id: str) -> ModelT | None:
        job = self._jobs.get(job_id)
        return job.model_copy(deep=True) if job is not None else None

    async def put(self, job_id: str, job: ModelT) -> None:
        self._jobs[job_id] = job.model_copy(deep=True)

    async def delete(self, job_id: str) -> bool:
        return self._jobs.pop(job_id, None) is not None

    async def values(self) -> list[ModelT]:
        return [job.model_copy(deep=True) for job in self._jobs.values()]


class SqlJobStore(JobStore[ModelT]):
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        kind: str,
        model: type[ModelT],
    ) -> None:
        self._session_factory = session_factory
        self._kind = kind
        self._model = model

    async def get(self, job_id: str) -> ModelT | None:
        async with self._session_factory() as db:
            row = await db.get(BackgroundJob, (self._kind, job_id))
            if row is None:
                return None
            return self._model.model_validate_json(row.payload)

    async def put(self, job_id: str, job: ModelT) -> None:
        status = getattr(job, "status", None)
        if isinstance(status, enum.Enum):
            status = status.value

        async with self._session_factory() as db:
            row = BackgroundJob(
                kind=self._kind,
                id=job_id,
                status=status,
                payload=job.model_dump_json(),
                expires_at=getattr(job, "expires_at", None),
            )
            created_at = getattr(job, "created_at", None) or getattr(job, "requested_at", None)
            if created_at is not None:
                row.created_at = created_at
            await db.merge(row)
            await db.commit()

    async def delete(self, job_id: str) -> bool:
        async with self._session_factory() as db:
            result = await db.execute(
                delete(BackgroundJob).where(BackgroundJob.kind == self._kind, BackgroundJob.id == job_id)
            )
            await db.commit()
            return result.rowcount > 0

    async def values(self) -> list[ModelT]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(BackgroundJob).where(BackgroundJob.kind == self._kind).order_by(BackgroundJob.created_at)
            )
            return [self._model.model_validate_json(row.payload) for row in result.scalars().all()]
