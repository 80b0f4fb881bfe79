"""
Data Anonymization Service

Redacts personal, business and temporal details from forum content before
it is shared with an AI provider. Redaction is regex based and therefore
deterministic: the same content under the same policy always produces the
same output.

Passes run in a fixed order, each replacing its matches with a sentinel:
    personal info  -> [REDACTED]
    business info  -> [BUSINESS_INFO]
    timestamps     -> [TIMESTAMP]
    URLs           -> [URL]
    keywords       -> [KEYWORD]
"""

import logging
import re
from datetime import datetime

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from geofora.exceptions import NoConsentError
from geofora.models.anonymized_record import AnonymizedRecord
from geofora.models.consent_record import ConsentRecord
from geofora.models.provider import AIProvider
from geofora.schemas.anonymization import (
    AnonymizationConfig,
    AnonymizationLevel,
    AnonymizationStatistics,
    AnonymizationStats,
    AnonymizedContent,
    AnonymizedRecordResponse,
)
from geofora.services.consent_service import ConsentService
from geofora.utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)

# \d, \w and \b match ASCII only; URLs end at any whitespace
PERSONAL_INFO_PATTERNS = [
    re.compile(r"\b[A-Z][a-z]+ [A-Z][a-z]+\b", re.ASCII),  # names
    re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b", re.ASCII),  # emails
    re.compile(r"\b\d{3}-\d{2}-\d{4}\b", re.ASCII),  # SSN
    re.compile(r"\b\d{3}-\d{3}-\d{4}\b", re.ASCII),  # phone numbers
]

BUSINESS_PATTERNS = [
    re.compile(r"\b[A-Z][a-z]+ (?:Inc|LLC|Corp|Company|Ltd)\.?\b", re.ASCII),  # company names
    re.compile(r"\$\d+(?:,\d{3})*(?:\.\d{2})?\b", re.ASCII),  # money amounts
    re.compile(r"\b\d{4,}\b", re.ASCII),  # large numbers (ids, codes)
]

TIMESTAMP_PATTERNS = [
    re.compile(r"\b\d{4}-\d{2}-\d{2}\b", re.ASCII),
    re.compile(r"\b\d{1,2}:\d{2}(?::\d{2})?\s*(?:AM|PM)?\b", re.ASCII),
    re.compile(r"\b(?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)[a-z]* \d{1,2},? \d{4}\b", re.ASCII),
]

URL_PATTERN = re.compile(r"https?://[^\s]+")

PRESERVED_ELEMENTS = ["content_structure", "topic_context", "technical_terms"]


def _redact(content: str, pattern: re.Pattern, token: str, removed: list[str]) -> str:
    matches = [match.group(0) for match in pattern.finditer(content)]
    if not matches:
        return content
    removed.extend(matches)
    return pattern.sub(token, content)


def determine_anonymization_level(config: AnonymizationConfig) -> AnonymizationLevel:
    """Classify by how many boolean toggles are on, not by what was redacted."""
    enabled = config.enabled_toggle_count()
    if enabled >= 6:
        return "strict"
    if enabled >= 4:
        return "standard"
    return "basic"


def apply_anonymization(content: str, config: AnonymizationConfig) -> AnonymizedContent:
    """Run the redaction passes enabled in ``config`` over ``content``."""
    anonymized = content
    removed: list[str] = []

    if config.remove_personal_info:
        for pattern in PERSONAL_INFO_PATTERNS:
            anonymized = _redact(anonymized, pattern, "[REDACTED]", removed)

    if config.remove_business_specifics:
        for pattern in BUSINESS_PATTERNS:
            anonymized = _redact(anonymized, pattern, "[BUSINESS_INFO]", removed)

    if config.remove_timestamps:
        for pattern in TIMESTAMP_PATTERNS:
            anonymized = _redact(anonymized, pattern, "[TIMESTAMP]", removed)

    if config.remove_urls:
        anonymized = _redact(anonymized, URL_PATTERN, "[URL]", removed)

    for keyword in config.mask_keywords:
        if not keyword:
            continue
        pattern = re.compile(rf"\b{re.escape(keyword)}\b", re.IGNORECASE | re.ASCII)
        anonymized = _redact(anonymized, pattern, "[KEYWORD]", removed)

    return AnonymizedContent(
        original_content=content,
        anonymized_content=anonymized,
        anonymization_level=determine_anonymization_level(config),
        removed_elements=removed,
        preserved_elements=list(PRESERVED_ELEMENTS),
    )


class AnonymizationService:
    """Service that anonymizes content under an organization's consent and tracks the results."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        consent_service: ConsentService,
        clock: Clock = utcnow,
    ):
        self._session_factory = session_factory
        self._consent_service = consent_service
        self._clock = clock

    async def anonymize_content(
        self,
        content: str,
        organization_id: int,
        data_type: str,
        provider_id: int,
        *,
        thread_id: int = 0,
        post_id: int = 0,
        ai_model: str = "unknown",
        user_id: int | None = None,
    ) -> AnonymizedContent:
        """
        Anonymize content under the organization's consent for a provider and
        persist the result as a non-exported AnonymizedRecord.

        Only the consent flag is checked here; version and retention expiry
        are enforced by ConsentService.validate_consent.

        Raises:
            NoConsentError: no consent row, or consent has been revoked
        """
        async with self._session_factory() as db:
            consent = await self._get_consent_record(db, organization_id, provider_id)
            if consent is None or not consent.has_consent:
                raise NoConsentError(organization_id, provider_id)

            config = self.get_anonymization_config(consent.data_scope)
            result = apply_anonymization(content, config)

            record = AnonymizedRecord(
                organization_id=organization_id,
                user_id=user_id,
                provider_id=provider_id,
                thread_id=thread_id,
                post_id=post_id,
                anonymized_content=result.anonymized_content,
                data_type=data_type,
                ai_provider=await self._get_provider_name(db, provider_id),
                ai_model=ai_model,
                consent_version=consent.consent_version,
                exported=False,
                created_at=self._clock(),
            )
            db.add(record)
            await db.commit()
            await db.refresh(record)

        logger.debug(
            "Anonymized %s for org=%d provider=%d: %d elements removed",
            data_type,
            organization_id,
            provider_id,
            len(result.removed_elements),
        )
        result.record_id = record.id
        return result

    @staticmethod
    def get_anonymization_config(data_scope: dict | None) -> AnonymizationConfig:
        """Derive redaction switches from a stored data scope; missing switches default to on."""
        return AnonymizationConfig.model_validate(data_scope or {})

    async def export_anonymized_data(
        self,
        organization_id: int,
        provider_id: int,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> list[AnonymizedRecordResponse]:
        """
        Hand over every not-yet-exported record for the organization, whichever
        provider it was anonymized for, flipping each row's ``exported`` flag.
        Consent is checked against ``provider_id`` only.

        Rows are marked one at a time. The returned snapshot reflects the rows
        as they were before being marked.

        Raises:
            NoConsentError: no consent row, or consent has been revoked
        """
        async with self._session_factory() as db:
            consent = await self._get_consent_record(db, organization_id, provider_id)
            if consent is None or not consent.has_consent:
                raise NoConsentError(organization_id, provider_id, message="No consent for data export")

            stmt = select(AnonymizedRecord).where(
                AnonymizedRecord.organization_id == organization_id,
                AnonymizedRecord.exported.is_(False),
            )
            if start_date is not None:
                stmt = stmt.where(AnonymizedRecord.created_at >= start_date)
            if end_date is not None:
                stmt = stmt.where(AnonymizedRecord.created_at <= end_date)

            result = await db.execute(stmt.order_by(AnonymizedRecord.id))
            records = result.scalars().all()
            snapshot = [AnonymizedRecordResponse.model_validate(record) for record in records]

            for row in snapshot:
                # Guarded so a row can only ever move from not-exported to exported
                await db.execute(
                    update(AnonymizedRecord)
                    .where(AnonymizedRecord.id == row.id, AnonymizedRecord.exported.is_(False))
                    .values(exported=True, exported_at=self._clock())
                )
                await db.commit()

        logger.info(
            "Exported %d anonymized records for org=%d provider=%d",
            len(snapshot),
            organization_id,
            provider_id,
        )
        return snapshot

    async def get_anonymization_stats(self, organization_id: int) -> AnonymizationStats:
        async with self._session_factory() as db:
            total = await db.scalar(
                select(func.count())
                .select_from(AnonymizedRecord)
                .where(AnonymizedRecord.organization_id == organization_id)
            )
            exported = await db.scalar(
                select(func.count())
                .select_from(AnonymizedRecord)
                .where(
                    AnonymizedRecord.organization_id == organization_id,
                    AnonymizedRecord.exported.is_(True),
                )
            )

        providers = await self._consent_service.list_providers_with_consent(organization_id)
        total = total or 0
        exported = exported or 0

        return AnonymizationStats(
            total_records=total,
            exported_records=exported,
            pending_records=total - exported,
            providers_with_consent=len(providers),
        )

    async def get_anonymization_statistics(self) -> AnonymizationStatistics:
        """Totals across every organization, used by the compliance report."""
        async with self._session_factory() as db:
            total = await db.scalar(select(func.count()).select_from(AnonymizedRecord))
            exported = await db.scalar(
                select(func.count()).select_from(AnonymizedRecord).where(AnonymizedRecord.exported.is_(True))
            )
        return AnonymizationStatistics(total_anonymized=total or 0, total_exported=exported or 0)

    async def revoke_consent(self, organization_id: int, provider_id: int) -> int:
        """
        Revoke consent for the provider and delete every non-exported record of
        the organization. Exported records stay as an audit trail.

        Returns the number of records deleted.
        """
        await self._consent_service.revoke_consent(organization_id, provider_id)

        async with self._session_factory() as db:
            result = await db.execute(
                delete(AnonymizedRecord).where(
                    AnonymizedRecord.organization_id == organization_id,
                    AnonymizedRecord.exported.is_(False),
                )
            )
            await db.commit()

        logger.info(
            "Deleted %d pending anonymized records after consent revocation: org=%d provider=%d",
            result.rowcount,
            organization_id,
            provider_id,
        )
        return result.rowcount

    async def _get_consent_record(
        self, db: AsyncSession, organization_id: int, provider_id: int
    ) -> ConsentRecord | None:
        result = await db.execute(
            select(ConsentRecord)
            .where(
                ConsentRecord.organization_id == organization_id,
                ConsentRecord.provider_id == provider_id,
            )
            .limit(1)
        )
        return result.scalars().first()

    async def _get_provider_name(self, db: AsyncSession, provider_id: int) -> str:
        name = await db.scalar(select(AIProvider.name).where(AIProvider.id == provider_id))
        return name or f"provider_{provider_id}"
