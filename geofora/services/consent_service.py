"""
Consent Management Service

Tracks which AI providers each organization has agreed to share anonymized
data with, and under which data-scope policy. Validity is computed on read:
a grant silently stops being valid when the policy version moves on or its
retention period elapses.
"""

import asyncio
import logging
from collections import defaultdict
from datetime import datetime, timedelta

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from geofora.exceptions import ProviderNotFoundError
from geofora.models.consent_record import ConsentRecord
from geofora.models.provider import AIProvider
from geofora.schemas.consent import (
    ConsentExport,
    ConsentRequest,
    ConsentResponse,
    ConsentStatistics,
    ConsentStats,
    ConsentSummary,
    DataScopePolicy,
)
from geofora.utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)

DEFAULT_CONSENT_VERSION = "1.0.0"


def get_default_data_scope(tier: str) -> DataScopePolicy:
    """Return the canned data scope for a subscription tier."""
    scope = DataScopePolicy()

    if tier == "starter":
        scope.allowed_data_types = ["question"]
        scope.retention_period = 180
    elif tier == "pro":
        scope.allowed_data_types = ["question", "answer"]
        scope.retention_period = 365
    elif tier == "enterprise":
        scope.allowed_data_types = ["question", "answer", "conversation"]
        scope.retention_period = 730
        # Enterprise plans keep more business context
        scope.remove_business_specifics = False

    return scope


def to_consent_response(record: ConsentRecord) -> ConsentResponse:
    return ConsentResponse(
        id=record.id,
        organization_id=record.organization_id,
        provider_id=record.provider_id,
        user_id=record.user_id,
        has_consent=record.has_consent,
        consent_date=record.consent_date,
        consent_version=record.consent_version,
        data_scope=DataScopePolicy.model_validate(record.data_scope or {}),
        created_at=record.created_at,
    )


class ConsentService:
    """Service for granting, revoking and validating data sharing consent."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Clock = utcnow,
        consent_version: str = DEFAULT_CONSENT_VERSION,
    ):
        self._session_factory = session_factory
        self._clock = clock
        self.consent_version = consent_version
        self._grant_locks: defaultdict[tuple[int, int], asyncio.Lock] = defaultdict(asyncio.Lock)

    async def grant_consent(
        self,
        organization_id: int,
        provider_id: int,
        data_scope: DataScopePolicy | dict,
        consent_version: str,
        user_id: int | None = None,
    ) -> ConsentResponse:
        """
        Grant (or re-grant) consent for sharing data with an AI provider.

        Re-granting updates the existing (organization, provider) row in place.
        Concurrent grants for the same pair are last-writer-wins: grants in this
        process are serialized, and a row inserted by another process between
        the lookup and the commit is picked up and updated instead.

        Raises:
            ProviderNotFoundError: provider_id is unknown or inactive
        """
        scope = DataScopePolicy.model_validate(data_scope)

        async with self._grant_locks[(organization_id, provider_id)], self._session_factory() as db:
            provider = await db.get(AIProvider, provider_id)
            if provider is None or not provider.is_active:
                raise ProviderNotFoundError(provider_id)

            now = self._clock()
            record = await self._get_record(db, organization_id, provider_id)
            if record is None:
                record = ConsentRecord(organization_id=organization_id, provider_id=provider_id, created_at=now)
                db.add(record)
            self._apply_grant(record, scope, consent_version, user_id, now)

            try:
                await db.commit()
            except IntegrityError:
                # uq_consent_org_provider: the row appeared after the lookup
                await db.rollback()
                record = await self._get_record(db, organization_id, provider_id)
                self._apply_grant(record, scope, consent_version, user_id, now)
                await db.commit()

            await db.refresh(record)

        logger.info(
            "Consent granted: org=%d provider=%d version=%s",
            organization_id,
            provider_id,
            consent_version,
        )
        return to_consent_response(record)

    @staticmethod
    def _apply_grant(
        record: ConsentRecord,
        scope: DataScopePolicy,
        consent_version: str,
        user_id: int | None,
        now: datetime,
    ) -> None:
        record.has_consent = True
        record.consent_date = now
        record.consent_version = consent_version
        record.data_scope = scope.model_dump()
        if user_id is not None:
            record.user_id = user_id

    async def revoke_consent(self, organization_id: int, provider_id: int) -> None:
        """Withdraw consent. The row is kept; revoking twice is harmless."""
        async with self._session_factory() as db:
            await db.execute(
                update(ConsentRecord)
                .where(
                    ConsentRecord.organization_id == organization_id,
                    ConsentRecord.provider_id == provider_id,
                )
                .values(has_consent=False, consent_date=self._clock())
            )
            await db.commit()

        logger.info("Consent revoked: org=%d provider=%d", organization_id, provider_id)

    async def get_consent(self, organization_id: int, provider_id: int) -> ConsentResponse | None:
        async with self._session_factory() as db:
            record = await self._get_record(db, organization_id, provider_id)
            return to_consent_response(record) if record else None

    async def list_organization_consents(self, organization_id: int) -> list[ConsentResponse]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(ConsentRecord)
                .where(ConsentRecord.organization_id == organization_id)
                .order_by(ConsentRecord.provider_id)
            )
            return [to_consent_response(record) for record in result.scalars().all()]

    async def list_providers_with_consent(self, organization_id: int) -> list[int]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(ConsentRecord.provider_id)
                .where(
                    ConsentRecord.organization_id == organization_id,
                    ConsentRecord.has_consent.is_(True),
                )
                .order_by(ConsentRecord.provider_id)
            )
            return list(result.scalars().all())

    async def has_consent(self, organization_id: int, provider_id: int) -> bool:
        """Boolean flag only; see validate_consent for version and expiry checks."""
        consent = await self.get_consent(organization_id, provider_id)
        return bool(consent and consent.has_consent)

    async def validate_consent(self, organization_id: int, provider_id: int) -> bool:
        """
        Return True only if consent is granted, was given against the current
        policy version, and is still inside the scope's retention period.
        """
        consent = await self.get_consent(organization_id, provider_id)

        if consent is None or not consent.has_consent:
            return False

        if consent.consent_version != self.consent_version:
            return False

        if consent.consent_date is not None:
            expires_at = consent.consent_date + timedelta(days=consent.data_scope.retention_period)
            if self._clock() > expires_at:
                return False

        return True

    def get_default_data_scope(self, tier: str) -> DataScopePolicy:
        return get_default_data_scope(tier)

    def create_consent_request(self, organization_id: int, provider_id: int, tier: str) -> ConsentRequest:
        """Build a grant request pre-filled with the tier's scope and the current policy version."""
        return ConsentRequest(
            organization_id=organization_id,
            provider_id=provider_id,
            data_scope=get_default_data_scope(tier),
            consent_version=self.consent_version,
        )

    async def get_consent_stats(self, organization_id: int) -> ConsentStats:
        consents = await self.list_organization_consents(organization_id)
        consented = [c for c in consents if c.has_consent]

        async with self._session_factory() as db:
            total_providers = await db.scalar(
                select(func.count()).select_from(AIProvider).where(AIProvider.is_active.is_(True))
            )

        consent_dates: list[datetime] = [c.consent_date for c in consented if c.consent_date is not None]

        return ConsentStats(
            total_providers=total_providers or 0,
            consented_providers=len(consented),
            consent_rate=(len(consented) / total_providers) * 100 if total_providers else 0,
            last_consent_date=max(consent_dates) if consent_dates else None,
        )

    async def get_consent_statistics(self) -> ConsentStatistics:
        """Totals across every organization, used by the compliance report."""
        async with self._session_factory() as db:
            total = await db.scalar(select(func.count()).select_from(ConsentRecord))
            active = await db.scalar(
                select(func.count()).select_from(ConsentRecord).where(ConsentRecord.has_consent.is_(True))
            )
        return ConsentStatistics(total_consents=total or 0, active_consents=active or 0)

    async def export_consent_data(self, organization_id: int) -> ConsentExport:
        """Compliance report of every consent row for the organization."""
        consents = await self.list_organization_consents(organization_id)
        stats = await self.get_consent_stats(organization_id)

        return ConsentExport(
            organization_id=organization_id,
            export_date=self._clock(),
            consents=[
                ConsentSummary(
                    provider_id=c.provider_id,
                    has_consent=c.has_consent,
                    consent_date=c.consent_date,
                    consent_version=c.consent_version,
                    data_scope=c.data_scope,
                )
                for c in consents
            ],
            statistics=stats,
        )

    async def _get_record(self, db: AsyncSession, organization_id: int, provider_id: int) -> ConsentRecord | None:
        result = await db.execute(
            select(ConsentRecord)
            .where(
                ConsentRecord.organization_id == organization_id,
                ConsentRecord.provider_id == provider_id,
            )
            .limit(1)
        )
        return result.scalars().first()
