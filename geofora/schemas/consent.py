from datetime import datetime
from typing import Literal

from pydantic import Field

from geofora.schemas.base import CamelModel

SubscriptionTier = Literal["starter", "pro", "enterprise"]


class DataScopePolicy(CamelModel):
    """What an anonymization pass may keep or remove for one consent grant."""

    remove_personal_info: bool = True
    remove_business_specifics: bool = True
    remove_timestamps: bool = True
    remove_user_ids: bool = True
    remove_urls: bool = True
    mask_keywords: list[str] = Field(default_factory=list)
    preserve_structure: bool = True
    allowed_data_types: list[str] = Field(default_factory=lambda: ["question", "answer"])
    retention_period: int = Field(365, ge=0, description="Retention period in days")


class ConsentRequest(CamelModel):
    organization_id: int
    provider_id: int
    data_scope: DataScopePolicy
    consent_version: str
    user_id: int | None = None


class ConsentResponse(CamelModel):
    id: int
    organization_id: int
    provider_id: int
    user_id: int | None = None
    has_consent: bool
    consent_date: datetime | None = None
    consent_version: str
    data_scope: DataScopePolicy
    created_at: datetime


class ConsentStats(CamelModel):
    total_providers: int
    consented_providers: int
    consent_rate: float
    last_consent_date: datetime | None = None


class ConsentStatistics(CamelModel):
    total_consents: int
    active_consents: int


class ConsentSummary(CamelModel):
    provider_id: int
    has_consent: bool
    consent_date: datetime | None = None
    consent_version: str
    data_scope: DataScopePolicy


class ConsentExport(CamelModel):
    organization_id: int
    export_date: datetime
    consents: list[ConsentSummary]
    statistics: ConsentStats
