"""
Service wiring.

``build_container`` assembles the services, job stores and background
dispatcher once per application; routes reach them through
``get_services``.
"""

import logging
from dataclasses import dataclass

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from geofora.config import settings
from geofora.database import AsyncSessionLocal
from geofora.jobs.dispatcher import TaskDispatcher
from geofora.jobs.store import InMemoryJobStore, JobStore, SqlJobStore
from geofora.schemas.export import DownloadArtifact, ExportResult
from geofora.schemas.privacy import GDPRRequest
from geofora.services.anonymization_service import AnonymizationService
from geofora.services.consent_service import ConsentService
from geofora.services.export_service import ExportService
from geofora.services.privacy_service import PrivacyService
from geofora.utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    session_factory: async_sessionmaker[AsyncSession]
    dispatcher: TaskDispatcher
    consent: ConsentService
    anonymization: AnonymizationService
    exports: ExportService
    privacy: PrivacyService


def _make_store(backend: str, session_factory, kind: str, model) -> JobStore:
    if backend == "database":
        return SqlJobStore(session_factory, kind, model)
    if backend == "memory":
        return InMemoryJobStore()
    raise ValueError(f"Unknown job store backend: {backend}")


def build_container(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    clock: Clock = utcnow,
    job_store_backend: str | None = None,
) -> ServiceContainer:
    session_factory = session_factory or AsyncSessionLocal
    backend = job_store_backend or settings.job_store_backend
    dispatcher = TaskDispatcher()

    consent = ConsentService(session_factory, clock=clock, consent_version=settings.consent_version)
    anonymization = AnonymizationService(session_factory, consent, clock=clock)
    exports = ExportService(
        session_factory,
        consent,
        anonymization,
        job_store=_make_store(backend, session_factory, "export", ExportResult),
        artifact_store=_make_store(backend, session_factory, "export_artifact", DownloadArtifact),
        dispatcher=dispatcher,
        clock=clock,
        base_url=settings.base_url,
        expiry_days=settings.export_expiry_days,
        max_records=settings.max_export_records,
    )
    privacy = PrivacyService(
        session_factory,
        consent,
        anonymization,
        request_store=_make_store(backend, session_factory, "gdpr_request", GDPRRequest),
        artifact_store=_make_store(backend, session_factory, "gdpr_artifact", DownloadArtifact),
        dispatcher=dispatcher,
        clock=clock,
        base_url=settings.base_url,
    )

    logger.info("Service container built with %s job store", backend)
    return ServiceContainer(
        session_factory=session_factory,
        dispatcher=dispatcher,
        consent=consent,
        anonymization=anonymization,
        exports=exports,
        privacy=privacy,
    )


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


async def get_db(request: Request):
    async with get_services(request).session_factory() as db:
        try:
            yield db
        except Exception as e:
            logger.error("Database session error: %s", e)
            raise
