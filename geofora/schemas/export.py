import enum
from datetime import datetime

from pydantic import Field

from geofora.schemas.base import CamelModel


class ExportStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class DateRange(CamelModel):
    start: datetime
    end: datetime


class ExportConfig(CamelModel):
    """
    Export request as submitted by a caller.

    Fields are loose; ``ExportService.validate_export_config``
    reports every problem at once instead of failing on the first.
    """

    organization_id: int
    provider: str = ""
    format: str = ""
    include_metadata: bool = False
    anonymization_level: str = "standard"
    date_range: DateRange | None = None
    content_types: list[str] = Field(default_factory=list)
    max_records: int | None = None
    include_consent: bool = False


class ExportMetadata(CamelModel):
    total_records: int
    anonymized_records: int
    consent_records: int
    date_range: DateRange | None = None
    content_types: list[str]
    anonymization_level: str
    provider: str
    export_id: str


class ExportResult(CamelModel):
    id: str
    organization_id: int
    provider: str
    format: str
    record_count: int = 0
    file_size: int = 0
    download_url: str = ""
    created_at: datetime
    expires_at: datetime
    status: ExportStatus = ExportStatus.PENDING
    error: str | None = None
    metadata: ExportMetadata | None = None


class DownloadArtifact(CamelModel):
    """Formatted bytes behind a download URL, kept until the owning job expires."""

    id: str
    content: str
    media_type: str
    filename: str
    created_at: datetime
    expires_at: datetime | None = None


class DataExportStats(CamelModel):
    total_exports: int = 0
    successful_exports: int = 0
    failed_exports: int = 0
    total_records_exported: int = 0
    provider_distribution: dict[str, int] = Field(default_factory=dict)
    format_distribution: dict[str, int] = Field(default_factory=dict)
    average_export_size: float = 0


class DailyExportBucket(CamelModel):
    date: str
    count: int
    size: int


class ExportTrends(CamelModel):
    daily_exports: list[DailyExportBucket]
    provider_trends: dict[str, int]
    format_trends: dict[str, int]


class SupportedFormat(CamelModel):
    format: str
    description: str
    mime_type: str


class SupportedProvider(CamelModel):
    provider: str
    description: str
    supported_formats: list[str]
