"""
Privacy Controls Service

Handles data subject rights (GDPR requests), per-user privacy settings,
data breach reports, the privacy audit log, and the compliance scorecard.

GDPR requests follow the same fire-and-forget shape as exports: the request
is registered as ``pending``, processing is dispatched to the background,
and the caller polls until the request is ``completed`` or ``rejected``.
"""

import json
import logging
from datetime import timedelta
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_snake
from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from geofora.exceptions import DataBreachNotFoundError, ValidationError
from geofora.jobs.dispatcher import TaskDispatcher
from geofora.jobs.state import BREACH_TRANSITIONS, GDPR_TRANSITIONS, advance, is_terminal
from geofora.jobs.store import JobStore
from geofora.models.anonymized_record import AnonymizedRecord
from geofora.models.consent_record import ConsentRecord
from geofora.models.privacy import (
    BreachSeverity,
    BreachStatus,
    DataBreachReport,
    PrivacyAuditLog,
    PrivacySettingsRecord,
)
from geofora.models.usage_log import UsageLog
from geofora.models.user import User
from geofora.schemas.anonymization import AnonymizedRecordResponse
from geofora.schemas.export import DownloadArtifact
from geofora.schemas.privacy import (
    DataBreachMetrics,
    DataBreachResponse,
    DataProtectionStatus,
    GDPRComplianceScore,
    GDPRRequest,
    GDPRRequestStatus,
    GDPRRequestType,
    PrivacyAuditLogResponse,
    PrivacyCleanupResult,
    PrivacyComplianceReport,
    PrivacySettings,
    PrivacyStatistics,
    UsageLogEntry,
    UserProfile,
    UserRightsMetrics,
)
from geofora.services.anonymization_service import AnonymizationService
from geofora.services.consent_service import ConsentService, to_consent_response
from geofora.utils.clock import Clock, utcnow
from geofora.utils.ids import generate_id

logger = logging.getLogger(__name__)

GDPR_REQUEST_RETENTION_DAYS = 365
AUDIT_LOG_RETENTION_DAYS = 7 * 365

ERASED_DATA_CATEGORIES = ["personal_data", "consent_records", "anonymized_data", "activity_logs"]
RESTRICTED_PROCESSING = ["analytics", "personalization", "marketing", "research"]
OBJECTED_PROCESSING = ["marketing", "personalization"]
NOTIFIED_SEVERITIES = {BreachSeverity.HIGH, BreachSeverity.CRITICAL}


def _normalize_keys(value: Any) -> Any:
    """Convert camelCase keys to snake_case at every nesting level."""
    if isinstance(value, dict):
        return {to_snake(key): _normalize_keys(item) for key, item in value.items()}
    return value


def _dump(model) -> dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True)


class PrivacyService:
    """Service for GDPR requests, privacy settings, breach reports and compliance reporting"""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        consent_service: ConsentService,
        anonymization_service: AnonymizationService,
        request_store: JobStore[GDPRRequest],
        artifact_store: JobStore[DownloadArtifact],
        dispatcher: TaskDispatcher,
        clock: Clock = utcnow,
        base_url: str = "https://geofora.com",
    ):
        self._session_factory = session_factory
        self._consent_service = consent_service
        self._anonymization_service = anonymization_service
        self._requests = request_store
        self._artifacts = artifact_store
        self._dispatcher = dispatcher
        self._clock = clock
        self._base_url = base_url.rstrip("/")

        self._handlers = {
            GDPRRequestType.ACCESS: self._process_access_request,
            GDPRRequestType.RECTIFICATION: self._process_rectification_request,
            GDPRRequestType.ERASURE: self._process_erasure_request,
            GDPRRequestType.PORTABILITY: self._process_portability_request,
            GDPRRequestType.RESTRICTION: self._process_restriction_request,
            GDPRRequestType.OBJECTION: self._process_objection_request,
        }

    # ── Privacy settings ──────────────────────────────────────────────────────

    async def get_privacy_settings(self, user_id: int) -> PrivacySettings:
        """Return the user's settings, creating the defaults on first access."""
        async with self._session_factory() as db:
            record = await db.get(PrivacySettingsRecord, user_id)
            if record is not None:
                return PrivacySettings.model_validate({**record.settings, "user_id": user_id})

            settings = PrivacySettings(user_id=user_id)
            db.add(
                PrivacySettingsRecord(
                    user_id=user_id,
                    settings=settings.model_dump(exclude={"user_id"}),
                    updated_at=self._clock(),
                )
            )
            await db.commit()

        logger.info("Created default privacy settings for user %d", user_id)
        return settings

    async def update_privacy_settings(self, user_id: int, updates: dict[str, Any]) -> PrivacySettings:
        """
        Merge a partial update into the user's settings, one section at a time.

        Raises:
            ValidationError: the merged settings are not valid
        """
        current = (await self.get_privacy_settings(user_id)).model_dump()
        updates = _normalize_keys(updates)
        updates.pop("user_id", None)

        merged = dict(current)
        for section, values in updates.items():
            if isinstance(values, dict) and isinstance(merged.get(section), dict):
                merged[section] = {**merged[section], **values}
            else:
                merged[section] = values

        try:
            settings = PrivacySettings.model_validate(merged)
        except PydanticValidationError as e:
            errors = [
                {"field": ".".join(str(loc) for loc in err["loc"]), "message": err["msg"]} for err in e.errors()
            ]
            raise ValidationError("Invalid privacy settings", details={"errors": errors}) from e

        await self._save_privacy_settings(settings)
        await self.log_privacy_action(
            user_id, "privacy_settings_updated", "privacy_settings", details={"sections": sorted(updates)}
        )
        return settings

    async def _save_privacy_settings(self, settings: PrivacySettings) -> None:
        async with self._session_factory() as db:
            await db.merge(
                PrivacySettingsRecord(
                    user_id=settings.user_id,
                    settings=settings.model_dump(exclude={"user_id"}),
                    updated_at=self._clock(),
                )
            )
            await db.commit()

    # ── Audit log ─────────────────────────────────────────────────────────────

    async def log_privacy_action(
        self,
        user_id: int | None,
        action: str,
        resource: str,
        details: dict[str, Any] | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        """Append an audit entry in its own session; failures are logged, not raised."""
        try:
            async with self._session_factory() as db:
                db.add(
                    PrivacyAuditLog(
                        user_id=user_id,
                        action=action,
                        resource=resource,
                        timestamp=self._clock(),
                        ip_address=ip_address,
                        user_agent=user_agent,
                        details=details,
                    )
                )
                await db.commit()
        except SQLAlchemyError as e:
            logger.error("Failed to write privacy audit log: %s", e)

    async def get_audit_logs(self, user_id: int | None = None, limit: int = 100) -> list[PrivacyAuditLogResponse]:
        async with self._session_factory() as db:
            stmt = select(PrivacyAuditLog)
            if user_id is not None:
                stmt = stmt.where(PrivacyAuditLog.user_id == user_id)
            stmt = stmt.order_by(PrivacyAuditLog.timestamp.desc(), PrivacyAuditLog.id.desc()).limit(limit)
            result = await db.execute(stmt)
            return [PrivacyAuditLogResponse.model_validate(log) for log in result.scalars().all()]

    # ── GDPR requests ─────────────────────────────────────────────────────────

    async def create_gdpr_request(self, user_id: int, request_type: str, description: str = "") -> GDPRRequest:
        """
        Register a data subject request and start processing it in the background.

        Raises:
            ValidationError: request_type is not a supported GDPR right
        """
        try:
            gdpr_type = GDPRRequestType(request_type)
        except ValueError:
            raise ValidationError(f"Unsupported GDPR request type: {request_type}", field="type") from None

        request = GDPRRequest(
            id=generate_id("gdpr"),
            user_id=user_id,
            type=gdpr_type,
            description=description,
            requested_at=self._clock(),
        )
        await self._requests.put(request.id, request)
        await self.log_privacy_action(
            user_id, "gdpr_request_created", "gdpr_request", details={"request_id": request.id, "type": gdpr_type.value}
        )

        self._dispatcher.dispatch(self._process_gdpr_request(request.id), name=f"gdpr:{request.id}")
        logger.info("GDPR %s request %s queued for user %d", gdpr_type.value, request.id, user_id)
        return request

    async def _process_gdpr_request(self, request_id: str) -> None:
        request = await self._requests.get(request_id)
        if request is None:
            logger.warning("GDPR request %s disappeared before processing", request_id)
            return

        try:
            advance(request, GDPRRequestStatus.PROCESSING, GDPR_TRANSITIONS, "GDPR request")
            await self._requests.put(request.id, request)

            request.response_data = await self._handlers[request.type](request)
            request.processed_at = self._clock()
            advance(request, GDPRRequestStatus.COMPLETED, GDPR_TRANSITIONS, "GDPR request")
            await self._requests.put(request.id, request)
        except Exception as e:
            logger.error("GDPR request %s rejected: %s", request_id, e)
            request = await self._requests.get(request_id) or request
            if is_terminal(request.status, GDPR_TRANSITIONS):
                return
            request.rejection_reason = str(e)
            request.processed_at = self._clock()
            if request.status == GDPRRequestStatus.PENDING:
                advance(request, GDPRRequestStatus.PROCESSING, GDPR_TRANSITIONS, "GDPR request")
            advance(request, GDPRRequestStatus.REJECTED, GDPR_TRANSITIONS, "GDPR request")
            await self._requests.put(request.id, request)
            await self.log_privacy_action(
                request.user_id,
                "gdpr_request_rejected",
                "gdpr_request",
                details={"request_id": request.id, "type": request.type.value, "reason": str(e)},
            )
            return

        await self.log_privacy_action(
            request.user_id,
            "gdpr_request_completed",
            "gdpr_request",
            details={"request_id": request.id, "type": request.type.value},
        )
        logger.info("GDPR request %s completed", request.id)

    async def _process_access_request(self, request: GDPRRequest) -> dict[str, Any]:
        return await self._collect_user_data(request.user_id)

    async def _process_rectification_request(self, request: GDPRRequest) -> dict[str, Any]:
        # Corrections are applied by the owning systems; this only acknowledges receipt
        return {
            "message": "Data rectification request processed",
            "timestamp": self._clock().isoformat(),
        }

    async def _process_erasure_request(self, request: GDPRRequest) -> dict[str, Any]:
        await self._delete_user_data(request.user_id)
        return {
            "message": "Data erasure completed",
            "deletedData": list(ERASED_DATA_CATEGORIES),
            "timestamp": self._clock().isoformat(),
        }

    async def _process_portability_request(self, request: GDPRRequest) -> dict[str, Any]:
        user_data = await self._collect_user_data(request.user_id)
        artifact = DownloadArtifact(
            id=request.id,
            content=json.dumps(user_data, indent=2),
            media_type="application/json",
            filename=f"{request.id}.json",
            created_at=self._clock(),
        )
        await self._artifacts.put(request.id, artifact)

        return {
            "message": "Data portability request completed",
            "downloadUrl": f"{self._base_url}/api/privacy/download/{request.id}",
            "formats": ["json"],
            "timestamp": self._clock().isoformat(),
        }

    async def _process_restriction_request(self, request: GDPRRequest) -> dict[str, Any]:
        settings = await self.get_privacy_settings(request.user_id)
        for toggle in RESTRICTED_PROCESSING:
            setattr(settings.data_processing, toggle, False)
        await self._save_privacy_settings(settings)

        return {
            "message": "Data processing restriction applied",
            "restrictedProcessing": list(RESTRICTED_PROCESSING),
            "timestamp": self._clock().isoformat(),
        }

    async def _process_objection_request(self, request: GDPRRequest) -> dict[str, Any]:
        settings = await self.get_privacy_settings(request.user_id)
        for toggle in OBJECTED_PROCESSING:
            setattr(settings.data_processing, toggle, False)
        await self._save_privacy_settings(settings)

        return {
            "message": "Objection to data processing processed",
            "stoppedProcessing": list(OBJECTED_PROCESSING),
            "timestamp": self._clock().isoformat(),
        }

    async def _collect_user_data(self, user_id: int) -> dict[str, Any]:
        """Everything held about a user, keyed the way access responses present it."""
        async with self._session_factory() as db:
            user = await db.get(User, user_id)
            consents = (await db.execute(select(ConsentRecord).where(ConsentRecord.user_id == user_id))).scalars().all()
            anonymized = (
                (await db.execute(select(AnonymizedRecord).where(AnonymizedRecord.user_id == user_id))).scalars().all()
            )
            logs = (
                (await db.execute(select(UsageLog).where(UsageLog.user_id == user_id).order_by(UsageLog.created_at)))
                .scalars()
                .all()
            )

        return {
            "personalData": _dump(UserProfile.model_validate(user)) if user else None,
            "activityData": [_dump(UsageLogEntry.model_validate(log)) for log in logs],
            "consentData": [_dump(to_consent_response(consent)) for consent in consents],
            "processingData": [_dump(AnonymizedRecordResponse.model_validate(record)) for record in anonymized],
        }

    async def _delete_user_data(self, user_id: int) -> None:
        async with self._session_factory() as db:
            await db.execute(delete(ConsentRecord).where(ConsentRecord.user_id == user_id))
            await db.execute(delete(AnonymizedRecord).where(AnonymizedRecord.user_id == user_id))
            await db.execute(delete(UsageLog).where(UsageLog.user_id == user_id))
            await db.execute(delete(PrivacySettingsRecord).where(PrivacySettingsRecord.user_id == user_id))
            await db.execute(delete(User).where(User.id == user_id))
            await db.commit()

        logger.info("Erased all data held for user %d", user_id)

    async def get_gdpr_request(self, request_id: str) -> GDPRRequest | None:
        return await self._requests.get(request_id)

    async def list_gdpr_requests_for_user(self, user_id: int) -> list[GDPRRequest]:
        requests = [request for request in await self._requests.values() if request.user_id == user_id]
        return sorted(requests, key=lambda request: request.requested_at, reverse=True)

    async def get_portability_artifact(self, request_id: str) -> DownloadArtifact | None:
        return await self._artifacts.get(request_id)

    # ── Data breaches ─────────────────────────────────────────────────────────

    async def report_data_breach(
        self,
        severity: BreachSeverity,
        description: str,
        affected_users: int,
        data_types: list[str],
    ) -> DataBreachResponse:
        """
        Record a breach in ``investigating`` status. High and critical
        breaches trigger notifications before this call returns.
        """
        now = self._clock()
        severity = BreachSeverity(severity)

        breach = DataBreachReport(
            id=generate_id("breach"),
            severity=severity,
            description=description,
            affected_users=affected_users,
            data_types=list(data_types),
            discovered_at=now,
            reported_at=now,
            status=BreachStatus.INVESTIGATING,
            actions=[],
            notifications_sent=False,
        )

        if severity in NOTIFIED_SEVERITIES:
            self._send_breach_notifications(breach)

        async with self._session_factory() as db:
            db.add(breach)
            await db.commit()
            await db.refresh(breach)

        await self.log_privacy_action(
            None,
            "data_breach_reported",
            "data_breach",
            details={"breach_id": breach.id, "severity": severity.value, "affected_users": affected_users},
        )
        logger.warning("Data breach %s reported: severity=%s affected_users=%d", breach.id, severity.value, affected_users)
        return DataBreachResponse.model_validate(breach)

    def _send_breach_notifications(self, breach: DataBreachReport) -> None:
        logger.warning(
            "Notifying %d affected users and regulators of %s breach %s",
            breach.affected_users,
            breach.severity.value,
            breach.id,
        )
        breach.actions = [*breach.actions, "Notifications sent to affected users", "Regulatory authorities notified"]
        breach.notifications_sent = True

    async def update_breach_status(self, breach_id: str, status: BreachStatus) -> DataBreachResponse:
        """
        Move a breach forward through investigating -> contained -> resolved.

        Raises:
            DataBreachNotFoundError: no breach with this id
            InvalidStatusTransitionError: the move goes backwards or repeats
        """
        status = BreachStatus(status)

        async with self._session_factory() as db:
            breach = await db.get(DataBreachReport, breach_id)
            if breach is None:
                raise DataBreachNotFoundError(breach_id)

            advance(breach, status, BREACH_TRANSITIONS, "Data breach")
            breach.actions = [*breach.actions, f"Status changed to {status.value}"]
            if status == BreachStatus.RESOLVED:
                breach.resolved_at = self._clock()

            await db.commit()
            await db.refresh(breach)

        await self.log_privacy_action(
            None, "data_breach_status_updated", "data_breach", details={"breach_id": breach_id, "status": status.value}
        )
        return DataBreachResponse.model_validate(breach)

    async def get_data_breach(self, breach_id: str) -> DataBreachResponse | None:
        async with self._session_factory() as db:
            breach = await db.get(DataBreachReport, breach_id)
            return DataBreachResponse.model_validate(breach) if breach else None

    async def list_data_breaches(self) -> list[DataBreachResponse]:
        async with self._session_factory() as db:
            result = await db.execute(select(DataBreachReport).order_by(DataBreachReport.reported_at.desc()))
            return [DataBreachResponse.model_validate(breach) for breach in result.scalars().all()]

    # ── Reporting ─────────────────────────────────────────────────────────────

    async def generate_privacy_compliance_report(self) -> PrivacyComplianceReport:
        requests = await self._requests.values()
        breaches = await self.list_data_breaches()
        consent_stats = await self._consent_service.get_consent_statistics()
        anonymization_stats = await self._anonymization_service.get_anonymization_statistics()

        return PrivacyComplianceReport(
            gdpr_compliance=self._calculate_compliance_score(
                consent_stats.total_consents, anonymization_stats.total_anonymized, requests, breaches
            ),
            data_protection=DataProtectionStatus(
                encryption_status=True,
                anonymization_status=anonymization_stats.total_anonymized > 0,
                consent_status=consent_stats.total_consents > 0,
                retention_status=True,
            ),
            user_rights=self._calculate_user_rights_metrics(requests),
            data_breaches=self._calculate_breach_metrics(breaches),
        )

    @staticmethod
    def _calculate_compliance_score(
        total_consents: int,
        total_anonymized: int,
        requests: list[GDPRRequest],
        breaches: list[DataBreachResponse],
    ) -> GDPRComplianceScore:
        score = 100
        issues: list[str] = []
        recommendations: list[str] = []

        if total_consents == 0:
            score -= 20
            issues.append("No consent records found")
            recommendations.append("Implement consent management system")

        if total_anonymized == 0:
            score -= 15
            issues.append("No data anonymization implemented")
            recommendations.append("Implement data anonymization pipeline")

        pending = [r for r in requests if r.status == GDPRRequestStatus.PENDING]
        if pending:
            score -= 10
            issues.append(f"{len(pending)} pending GDPR requests")
            recommendations.append("Process pending GDPR requests")

        unresolved = [b for b in breaches if b.status != BreachStatus.RESOLVED]
        if unresolved:
            score -= 25
            issues.append(f"{len(unresolved)} unresolved data breaches")
            recommendations.append("Resolve outstanding data breaches")

        return GDPRComplianceScore(score=max(0, score), issues=issues, recommendations=recommendations)

    @staticmethod
    def _calculate_user_rights_metrics(requests: list[GDPRRequest]) -> UserRightsMetrics:
        completed = [r for r in requests if r.status == GDPRRequestStatus.COMPLETED and r.processed_at]
        average_hours = (
            sum((r.processed_at - r.requested_at).total_seconds() for r in completed) / len(completed) / 3600
            if completed
            else 0
        )
        return UserRightsMetrics(
            access_requests=sum(1 for r in requests if r.type == GDPRRequestType.ACCESS),
            deletion_requests=sum(1 for r in requests if r.type == GDPRRequestType.ERASURE),
            portability_requests=sum(1 for r in requests if r.type == GDPRRequestType.PORTABILITY),
            average_processing_time=average_hours,
        )

    @staticmethod
    def _calculate_breach_metrics(breaches: list[DataBreachResponse]) -> DataBreachMetrics:
        resolved = [b for b in breaches if b.status == BreachStatus.RESOLVED and b.resolved_at]
        average_days = (
            sum((b.resolved_at - b.discovered_at).total_seconds() for b in resolved) / len(resolved) / 86400
            if resolved
            else 0
        )
        return DataBreachMetrics(total=len(breaches), resolved=len(resolved), average_resolution_time=average_days)

    async def get_privacy_statistics(self) -> PrivacyStatistics:
        async with self._session_factory() as db:
            total_users = await db.scalar(select(func.count()).select_from(User))
            configured = await db.scalar(select(func.count()).select_from(PrivacySettingsRecord))
            breaches = await db.scalar(select(func.count()).select_from(DataBreachReport))
            audit_logs = await db.scalar(select(func.count()).select_from(PrivacyAuditLog))

        return PrivacyStatistics(
            total_users=total_users or 0,
            privacy_settings_configured=configured or 0,
            gdpr_requests_total=len(await self._requests.values()),
            data_breaches_total=breaches or 0,
            audit_logs_total=audit_logs or 0,
        )

    async def cleanup_expired_data(self) -> PrivacyCleanupResult:
        """Drop GDPR requests older than a year and audit entries older than seven years."""
        now = self._clock()
        deleted_records = 0
        deleted_types: list[str] = []

        request_cutoff = now - timedelta(days=GDPR_REQUEST_RETENTION_DAYS)
        deleted_requests = 0
        for request in await self._requests.values():
            if request.requested_at < request_cutoff and await self._requests.delete(request.id):
                await self._artifacts.delete(request.id)
                deleted_requests += 1
        if deleted_requests:
            deleted_records += deleted_requests
            deleted_types.append("gdpr_requests")

        log_cutoff = now - timedelta(days=AUDIT_LOG_RETENTION_DAYS)
        async with self._session_factory() as db:
            result = await db.execute(delete(PrivacyAuditLog).where(PrivacyAuditLog.timestamp < log_cutoff))
            await db.commit()
        if result.rowcount:
            deleted_records += result.rowcount
            deleted_types.append("audit_logs")

        if deleted_records:
            logger.info("Privacy cleanup removed %d records (%s)", deleted_records, ", ".join(deleted_types))
        return PrivacyCleanupResult(deleted_records=deleted_records, deleted_types=deleted_types)
