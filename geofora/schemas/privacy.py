import enum
from datetime import datetime
from typing import Any, Literal

from pydantic import Field

from geofora.models.privacy import BreachSeverity, BreachStatus
from geofora.schemas.base import CamelModel


class GDPRRequestType(str, enum.Enum):
    ACCESS = "access"
    RECTIFICATION = "rectification"
    ERASURE = "erasure"
    PORTABILITY = "portability"
    RESTRICTION = "restriction"
    OBJECTION = "objection"


class GDPRRequestStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    REJECTED = "rejected"


class GDPRRequest(CamelModel):
    id: str
    user_id: int
    type: GDPRRequestType
    status: GDPRRequestStatus = GDPRRequestStatus.PENDING
    description: str = ""
    requested_at: datetime
    processed_at: datetime | None = None
    response_data: dict[str, Any] | None = None
    rejection_reason: str | None = None


class GDPRRequestCreate(CamelModel):
    user_id: int
    # Checked by the service so unsupported types surface as a 400
    type: str
    description: str = ""


# ── Privacy settings ──────────────────────────────────────────────────────────


class DataSharingSettings(CamelModel):
    enabled: bool = False
    providers: list[str] = Field(default_factory=list)
    purposes: list[str] = Field(default_factory=list)
    retention_period: int = 365


class DataProcessingSettings(CamelModel):
    analytics: bool = True
    personalization: bool = False
    marketing: bool = False
    research: bool = False


class DataRetentionSettings(CamelModel):
    account_data: int = 2555  # 7 years
    activity_logs: int = 365
    anonymized_data: int = 1095  # 3 years
    consent_records: int = 2555


class DataPortabilitySettings(CamelModel):
    enabled: bool = True
    formats: list[str] = Field(default_factory=lambda: ["json", "csv"])
    frequency: Literal["on-demand", "monthly", "quarterly"] = "on-demand"


class DataDeletionSettings(CamelModel):
    enabled: bool = True
    automatic_deletion: bool = False
    deletion_period: int = 30


class NotificationSettings(CamelModel):
    data_breach: bool = True
    consent_changes: bool = True
    data_export: bool = True
    data_deletion: bool = True


class PrivacySettings(CamelModel):
    user_id: int
    data_sharing: DataSharingSettings = Field(default_factory=DataSharingSettings)
    data_processing: DataProcessingSettings = Field(default_factory=DataProcessingSettings)
    data_retention: DataRetentionSettings = Field(default_factory=DataRetentionSettings)
    data_portability: DataPortabilitySettings = Field(default_factory=DataPortabilitySettings)
    data_deletion: DataDeletionSettings = Field(default_factory=DataDeletionSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)


# ── Breaches & audit ──────────────────────────────────────────────────────────


class DataBreachCreate(CamelModel):
    severity: BreachSeverity
    description: str
    affected_users: int = Field(0, ge=0)
    data_types: list[str] = Field(default_factory=list)


class DataBreachStatusUpdate(CamelModel):
    status: BreachStatus


class DataBreachResponse(CamelModel):
    id: str
    severity: BreachSeverity
    description: str
    affected_users: int
    data_types: list[str]
    discovered_at: datetime
    reported_at: datetime
    resolved_at: datetime | None = None
    status: BreachStatus
    actions: list[str]
    notifications_sent: bool


class PrivacyAuditLogResponse(CamelModel):
    id: int
    user_id: int | None = None
    action: str
    resource: str
    timestamp: datetime
    ip_address: str | None = None
    user_agent: str | None = None
    details: dict[str, Any] | None = None


# ── Compliance report ─────────────────────────────────────────────────────────


class GDPRComplianceScore(CamelModel):
    score: int
    issues: list[str]
    recommendations: list[str]


class DataProtectionStatus(CamelModel):
    encryption_status: bool
    anonymization_status: bool
    consent_status: bool
    retention_status: bool


class UserRightsMetrics(CamelModel):
    access_requests: int
    deletion_requests: int
    portability_requests: int
    average_processing_time: float  # hours


class DataBreachMetrics(CamelModel):
    total: int
    resolved: int
    average_resolution_time: float  # days


class PrivacyComplianceReport(CamelModel):
    gdpr_compliance: GDPRComplianceScore
    data_protection: DataProtectionStatus
    user_rights: UserRightsMetrics
    data_breaches: DataBreachMetrics


class PrivacyStatistics(CamelModel):
    total_users: int
    privacy_settings_configured: int
    gdpr_requests_total: int
    data_breaches_total: int
    audit_logs_total: int


class PrivacyCleanupResult(CamelModel):
    deleted_records: int
    deleted_types: list[str]


# ── User data collected by access / portability requests ──────────────────────


class UserProfile(CamelModel):
    id: int
    username: str
    email: str
    display_name: str | None = None
    created_at: datetime


class UsageLogEntry(CamelModel):
    id: int
    user_id: int
    organization_id: int | None = None
    action: str
    resource: str | None = None
    created_at: datetime
