"""
Export Service

Builds anonymized datasets of forum content for AI providers in JSON, JSON
Lines, CSV or plain text. Exports run in the background: ``create_export``
validates the request, registers a pending job and returns it; the caller
polls the job until it is ``completed`` or ``failed``.
"""

import json
import logging
from datetime import timedelta
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from geofora.exceptions import ConsentRequiredError, ProviderNotFoundError, ServiceError, ValidationError
from geofora.jobs.dispatcher import TaskDispatcher
from geofora.jobs.state import EXPORT_TRANSITIONS, advance, is_terminal
from geofora.jobs.store import JobStore
from geofora.models.consent_record import ConsentRecord
from geofora.models.content import Answer, Forum, Question
from geofora.models.provider import AIProvider
from geofora.schemas.export import (
    DailyExportBucket,
    DataExportStats,
    DownloadArtifact,
    ExportConfig,
    ExportMetadata,
    ExportResult,
    ExportStatus,
    ExportTrends,
    SupportedFormat,
    SupportedProvider,
)
from geofora.services.anonymization_service import AnonymizationService
from geofora.services.consent_service import ConsentService
from geofora.utils.clock import Clock, utcnow
from geofora.utils.ids import generate_id

logger = logging.getLogger(__name__)

# Hard cap on rows fetched per content type
MAX_EXPORT_LIMIT = 10000
EXPORT_EXPIRY_DAYS = 7

SUPPORTED_FORMATS = [
    SupportedFormat(format="json", description="JSON format", mime_type="application/json"),
    SupportedFormat(format="csv", description="CSV format", mime_type="text/csv"),
    SupportedFormat(format="jsonl", description="JSON Lines format", mime_type="application/x-jsonlines"),
    SupportedFormat(format="txt", description="Plain text format", mime_type="text/plain"),
]

SUPPORTED_PROVIDERS = [
    SupportedProvider(provider="openai", description="OpenAI", supported_formats=["json", "jsonl", "txt"]),
    SupportedProvider(provider="anthropic", description="Anthropic", supported_formats=["json", "txt"]),
    SupportedProvider(provider="deepseek", description="DeepSeek", supported_formats=["json", "jsonl", "txt"]),
    SupportedProvider(provider="google", description="Google DeepMind", supported_formats=["json", "csv", "txt"]),
    SupportedProvider(provider="meta", description="Meta AI", supported_formats=["json", "jsonl", "txt"]),
    SupportedProvider(provider="xai", description="XAI", supported_formats=["json", "txt"]),
]

# content type -> (model, export item type, anonymization data type)
CONTENT_SOURCES = {
    "questions": (Question, "question", "question"),
    "answers": (Answer, "answer", "answer"),
    "forums": (Forum, "forum", "conversation"),
}

CSV_HEADERS = ["type", "id", "content", "createdAt", "updatedAt"]


def _mime_type(fmt: str) -> str:
    for supported in SUPPORTED_FORMATS:
        if supported.format == fmt:
            return supported.mime_type
    return "application/octet-stream"


def convert_to_csv(items: list[dict[str, Any]]) -> str:
    """Render export items as CSV; content is always quoted with doubled inner quotes."""
    if not items:
        return ""

    rows = [",".join(CSV_HEADERS)]
    for item in items:
        metadata = item.get("metadata") or {}
        content = item["content"].replace('"', '""')
        row = [
            item["type"],
            str(item["id"]),
            f'"{content}"',
            metadata.get("createdAt") or "",
            metadata.get("updatedAt") or "",
        ]
        rows.append(",".join(row))

    return "\n".join(rows)


def format_export_data(items: list[dict[str, Any]], fmt: str) -> str:
    """Serialize export items in the requested format."""
    if fmt == "json":
        return json.dumps(items, indent=2)
    if fmt == "jsonl":
        return "\n".join(json.dumps(item) for item in items)
    if fmt == "csv":
        return convert_to_csv(items)
    if fmt == "txt":
        return "\n\n".join(f"{item['type'].upper()}: {item['content']}" for item in items)
    raise ServiceError(f"Unsupported format: {fmt}", service="export")


class ExportService:
    """Service for exporting anonymized forum content to AI providers"""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        consent_service: ConsentService,
        anonymization_service: AnonymizationService,
        job_store: JobStore[ExportResult],
        artifact_store: JobStore[DownloadArtifact],
        dispatcher: TaskDispatcher,
        clock: Clock = utcnow,
        base_url: str = "https://geofora.com",
        expiry_days: int = EXPORT_EXPIRY_DAYS,
        max_records: int = MAX_EXPORT_LIMIT,
    ):
        self._session_factory = session_factory
        self._consent_service = consent_service
        self._anonymization_service = anonymization_service
        self._jobs = job_store
        self._artifacts = artifact_store
        self._dispatcher = dispatcher
        self._clock = clock
        self._base_url = base_url.rstrip("/")
        self._expiry_days = expiry_days
        self._max_records = max_records

        # Running statistics, updated as jobs finish
        self._stats = DataExportStats()
        self._total_bytes_exported = 0

    # ── Job lifecycle ─────────────────────────────────────────────────────────

    def validate_export_config(self, config: ExportConfig) -> list[str]:
        """Return every problem with the configuration; an empty list means valid."""
        errors: list[str] = []

        if not config.provider:
            errors.append("Provider is required")

        if config.format not in {f.format for f in SUPPORTED_FORMATS}:
            errors.append("Valid format is required")

        if not config.content_types:
            errors.append("At least one content type is required")

        for content_type in config.content_types:
            if content_type not in CONTENT_SOURCES:
                errors.append(f"Unsupported content type: {content_type}")

        if config.max_records is not None and config.max_records < 1:
            errors.append("Max records must be greater than 0")

        if config.date_range is not None and config.date_range.start >= config.date_range.end:
            errors.append("Start date must be before end date")

        return errors

    async def create_export(self, config: ExportConfig | dict) -> ExportResult:
        """
        Register an export job and start processing it in the background.

        Returns the pending job immediately.

        Raises:
            ValidationError: the configuration is malformed
            ProviderNotFoundError: the provider name is unknown or inactive
            ConsentRequiredError: include_consent is set and no consent is on record
        """
        config = ExportConfig.model_validate(config)

        errors = self.validate_export_config(config)
        if errors:
            raise ValidationError("Invalid export configuration", details={"errors": errors})

        provider_id = await self._resolve_provider_id(config.provider)

        if config.include_consent and not await self._consent_service.has_consent(
            config.organization_id, provider_id
        ):
            raise ConsentRequiredError(config.provider)

        now = self._clock()
        job = ExportResult(
            id=generate_id("export"),
            organization_id=config.organization_id,
            provider=config.provider,
            format=config.format,
            created_at=now,
            expires_at=now + timedelta(days=self._expiry_days),
            status=ExportStatus.PENDING,
        )
        await self._jobs.put(job.id, job)
        self._stats.total_exports += 1

        self._dispatcher.dispatch(self._process_export(job.id, config, provider_id), name=f"export:{job.id}")

        logger.info(
            "Export %s queued: org=%d provider=%s format=%s",
            job.id,
            config.organization_id,
            config.provider,
            config.format,
        )
        return job

    async def _process_export(self, export_id: str, config: ExportConfig, provider_id: int) -> None:
        job = await self._jobs.get(export_id)
        if job is None:
            logger.warning("Export %s disappeared before processing", export_id)
            return

        try:
            advance(job, ExportStatus.PROCESSING, EXPORT_TRANSITIONS, "Export")
            await self._jobs.put(job.id, job)

            items = await self._collect_export_data(config)
            anonymized = await self._anonymize_export_data(items, config, provider_id)
            body = format_export_data(anonymized, config.format)
            file_size = len(body.encode("utf-8"))
            download_url = await self._store_artifact(job, body)
            consent_records = await self._count_consent_records(config.organization_id)

            job.record_count = len(anonymized)
            job.file_size = file_size
            job.download_url = download_url
            job.metadata = ExportMetadata(
                total_records=len(items),
                anonymized_records=len(anonymized),
                consent_records=consent_records,
                date_range=config.date_range,
                content_types=config.content_types,
                anonymization_level=config.anonymization_level,
                provider=config.provider,
                export_id=job.id,
            )
            advance(job, ExportStatus.COMPLETED, EXPORT_TRANSITIONS, "Export")
            await self._jobs.put(job.id, job)
        except Exception as e:
            logger.error("Export %s failed: %s", export_id, e)
            # Fall back to the last persisted state; the local copy may be ahead of it
            job = await self._jobs.get(export_id) or job
            if is_terminal(job.status, EXPORT_TRANSITIONS):
                return
            job.record_count = 0
            job.file_size = 0
            job.download_url = ""
            job.error = str(e)
            if job.status == ExportStatus.PENDING:
                advance(job, ExportStatus.PROCESSING, EXPORT_TRANSITIONS, "Export")
            advance(job, ExportStatus.FAILED, EXPORT_TRANSITIONS, "Export")
            await self._jobs.put(job.id, job)
            self._stats.failed_exports += 1
            return

        self._record_success(job, config)
        logger.info("Export %s completed: %d records, %d bytes", job.id, job.record_count, job.file_size)

    def _record_success(self, job: ExportResult, config: ExportConfig) -> None:
        stats = self._stats
        stats.successful_exports += 1
        stats.total_records_exported += job.record_count
        stats.provider_distribution[config.provider] = stats.provider_distribution.get(config.provider, 0) + 1
        stats.format_distribution[config.format] = stats.format_distribution.get(config.format, 0) + 1
        self._total_bytes_exported += job.file_size
        stats.average_export_size = self._total_bytes_exported / stats.successful_exports

    async def _collect_export_data(self, config: ExportConfig) -> list[dict[str, Any]]:
        """Fetch source rows for each requested content type, newest first."""
        limit = min(config.max_records or self._max_records, self._max_records)
        items: list[dict[str, Any]] = []

        async with self._session_factory() as db:
            for content_type in config.content_types:
                model, item_type, data_type = CONTENT_SOURCES[content_type]

                stmt = select(model)
                if config.date_range is not None:
                    stmt = stmt.where(
                        model.created_at >= config.date_range.start,
                        model.created_at <= config.date_range.end,
                    )
                stmt = stmt.order_by(model.created_at.desc(), model.id.desc()).limit(limit)

                result = await db.execute(stmt)
                for row in result.scalars().all():
                    items.append(self._to_export_item(row, item_type, data_type))

        return items

    @staticmethod
    def _to_export_item(row, item_type: str, data_type: str) -> dict[str, Any]:
        if isinstance(row, Forum):
            content = row.description or row.name
            thread_id, post_id = 0, 0
        elif isinstance(row, Answer):
            content = row.content
            thread_id, post_id = row.question_id, row.id
        else:
            content = row.content
            thread_id, post_id = row.id, 0

        return {
            "type": item_type,
            "data_type": data_type,
            "id": row.id,
            "content": content,
            "user_id": row.user_id,
            "thread_id": thread_id,
            "post_id": post_id,
            "created_at": row.created_at,
            "updated_at": row.updated_at,
        }

    async def _anonymize_export_data(
        self, items: list[dict[str, Any]], config: ExportConfig, provider_id: int
    ) -> list[dict[str, Any]]:
        anonymized_items: list[dict[str, Any]] = []

        for item in items:
            result = await self._anonymization_service.anonymize_content(
                item["content"],
                config.organization_id,
                item["data_type"],
                provider_id,
                thread_id=item["thread_id"],
                post_id=item["post_id"],
                user_id=item["user_id"],
            )

            export_item: dict[str, Any] = {
                "type": item["type"],
                "id": item["id"],
                "content": result.anonymized_content,
            }
            if config.include_metadata:
                export_item["metadata"] = {
                    "createdAt": item["created_at"].isoformat() if item["created_at"] else None,
                    "updatedAt": item["updated_at"].isoformat() if item["updated_at"] else None,
                    "anonymizationLevel": config.anonymization_level,
                    "provider": config.provider,
                }
            anonymized_items.append(export_item)

        return anonymized_items

    async def _store_artifact(self, job: ExportResult, body: str) -> str:
        artifact = DownloadArtifact(
            id=job.id,
            content=body,
            media_type=_mime_type(job.format),
            filename=f"{job.id}.{job.format}",
            created_at=self._clock(),
            expires_at=job.expires_at,
        )
        await self._artifacts.put(job.id, artifact)
        return f"{self._base_url}/api/exports/download/{job.id}"

    async def _resolve_provider_id(self, provider: str) -> int:
        async with self._session_factory() as db:
            result = await db.execute(
                select(AIProvider.id).where(AIProvider.name == provider, AIProvider.is_active.is_(True))
            )
            provider_id = result.scalars().first()
        if provider_id is None:
            raise ProviderNotFoundError(provider)
        return provider_id

    async def _count_consent_records(self, organization_id: int) -> int:
        async with self._session_factory() as db:
            count = await db.scalar(
                select(func.count()).select_from(ConsentRecord).where(ConsentRecord.organization_id == organization_id)
            )
        return count or 0

    # ── Reads ─────────────────────────────────────────────────────────────────

    async def get_export_status(self, export_id: str) -> ExportResult | None:
        return await self._jobs.get(export_id)

    async def get_export_artifact(self, export_id: str) -> DownloadArtifact | None:
        return await self._artifacts.get(export_id)

    async def get_export_metadata(self, export_id: str) -> ExportMetadata | None:
        job = await self._jobs.get(export_id)
        return job.metadata if job else None

    async def list_exports(self) -> list[ExportResult]:
        return await self._jobs.values()

    async def list_exports_by_provider(self, provider: str) -> list[ExportResult]:
        return [job for job in await self._jobs.values() if job.provider == provider]

    async def get_export_history(self, limit: int = 50) -> list[ExportResult]:
        jobs = await self._jobs.values()
        return sorted(jobs, key=lambda job: job.created_at, reverse=True)[:limit]

    def get_export_statistics(self) -> DataExportStats:
        return self._stats.model_copy(deep=True)

    def get_supported_formats(self) -> list[SupportedFormat]:
        return list(SUPPORTED_FORMATS)

    def get_supported_providers(self) -> list[SupportedProvider]:
        return list(SUPPORTED_PROVIDERS)

    async def get_export_trends(self, days: int = 30) -> ExportTrends:
        """
        Bucket exports by calendar day over the trailing ``days`` days (today
        included) and tally provider and format distributions.
        """
        today = self._clock().date()
        first_day = today - timedelta(days=days - 1)
        recent = [job for job in await self._jobs.values() if job.created_at.date() >= first_day]

        daily_exports = []
        for offset in range(days):
            day = first_day + timedelta(days=offset)
            day_jobs = [job for job in recent if job.created_at.date() == day]
            daily_exports.append(
                DailyExportBucket(
                    date=day.isoformat(),
                    count=len(day_jobs),
                    size=sum(job.file_size for job in day_jobs),
                )
            )

        provider_trends: dict[str, int] = {}
        format_trends: dict[str, int] = {}
        for job in recent:
            provider_trends[job.provider] = provider_trends.get(job.provider, 0) + 1
            format_trends[job.format] = format_trends.get(job.format, 0) + 1

        return ExportTrends(daily_exports=daily_exports, provider_trends=provider_trends, format_trends=format_trends)

    # ── Removal ───────────────────────────────────────────────────────────────

    async def delete_export(self, export_id: str) -> bool:
        await self._artifacts.delete(export_id)
        return await self._jobs.delete(export_id)

    async def cleanup_expired_exports(self) -> int:
        """Remove every job whose download window has passed; returns how many were removed."""
        now = self._clock()
        cleaned = 0

        for job in await self._jobs.values():
            if job.expires_at < now and await self.delete_export(job.id):
                cleaned += 1

        if cleaned:
            logger.info("Cleaned up %d expired exports", cleaned)
        return cleaned
