from datetime import datetime
from typing import Literal

from pydantic import Field

from geofora.schemas.base import CamelModel

AnonymizationLevel = Literal["basic", "standard", "strict"]
DataType = Literal["question", "answer", "conversation"]


class AnonymizationConfig(CamelModel):
    """Effective redaction switches derived from a consent's data scope."""

    remove_personal_info: bool = True
    remove_business_specifics: bool = True
    remove_timestamps: bool = True
    remove_user_ids: bool = True
    remove_urls: bool = True
    mask_keywords: list[str] = Field(default_factory=list)
    preserve_structure: bool = True

    def enabled_toggle_count(self) -> int:
        return sum(
            [
                self.remove_personal_info,
                self.remove_business_specifics,
                self.remove_timestamps,
                self.remove_user_ids,
                self.remove_urls,
                self.preserve_structure,
            ]
        )


class AnonymizedContent(CamelModel):
    original_content: str
    anonymized_content: str
    anonymization_level: AnonymizationLevel
    removed_elements: list[str]
    preserved_elements: list[str]
    record_id: int | None = None


class AnonymizeRequest(CamelModel):
    content: str
    organization_id: int
    data_type: DataType
    provider_id: int
    thread_id: int = 0
    post_id: int = 0
    ai_model: str = "unknown"
    user_id: int | None = None


class AnonymizedRecordResponse(CamelModel):
    id: int
    organization_id: int
    user_id: int | None = None
    provider_id: int
    thread_id: int
    post_id: int
    anonymized_content: str
    data_type: str
    ai_provider: str
    ai_model: str
    consent_version: str
    exported: bool
    exported_at: datetime | None = None
    created_at: datetime


class ExportAnonymizedRequest(CamelModel):
    organization_id: int
    provider_id: int
    start_date: datetime | None = None
    end_date: datetime | None = None


class AnonymizationStats(CamelModel):
    total_records: int
    exported_records: int
    pending_records: int
    providers_with_consent: int


class AnonymizationStatistics(CamelModel):
    total_anonymized: int
    total_exported: int
