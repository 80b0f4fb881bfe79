"""
Anonymization Routes
"""

from fastapi import APIRouter, Depends

from geofora.container import ServiceContainer, get_services
from geofora.schemas.anonymization import (
    AnonymizationStats,
    AnonymizedContent,
    AnonymizedRecordResponse,
    AnonymizeRequest,
    ExportAnonymizedRequest,
)

router = APIRouter(prefix="/anonymize", tags=["Anonymization"])


@router.post("", response_model=AnonymizedContent)
async def anonymize_content(request: AnonymizeRequest, services: ServiceContainer = Depends(get_services)):
    """
    Anonymize content under the organization's consent for the provider.

    **Returns**: the redacted content and the elements removed from it
    """
    return await services.anonymization.anonymize_content(
        request.content,
        request.organization_id,
        request.data_type,
        request.provider_id,
        thread_id=request.thread_id,
        post_id=request.post_id,
        ai_model=request.ai_model,
        user_id=request.user_id,
    )


@router.post("/export", response_model=list[AnonymizedRecordResponse])
async def export_anonymized_data(request: ExportAnonymizedRequest, services: ServiceContainer = Depends(get_services)):
    """Hand over pending anonymized records and mark them exported."""
    return await services.anonymization.export_anonymized_data(
        request.organization_id,
        request.provider_id,
        start_date=request.start_date,
        end_date=request.end_date,
    )


@router.get("/{organization_id}/stats", response_model=AnonymizationStats)
async def get_anonymization_stats(organization_id: int, services: ServiceContainer = Depends(get_services)):
    return await services.anonymization.get_anonymization_stats(organization_id)
