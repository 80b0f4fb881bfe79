"""
Privacy & GDPR Compliance Routes

Provides endpoints for:
- Privacy settings
- Data subject requests (access, rectification, erasure, portability,
  restriction, objection)
- Data breach reporting
- Audit log and compliance reporting
"""

from typing import Any

from fastapi import APIRouter, Body, Depends, Query, Response, status

from geofora.container import ServiceContainer, get_services
from geofora.exceptions import DataBreachNotFoundError, GDPRRequestNotFoundError
from geofora.schemas.privacy import (
    DataBreachCreate,
    DataBreachResponse,
    DataBreachStatusUpdate,
    GDPRRequest,
    GDPRRequestCreate,
    PrivacyAuditLogResponse,
    PrivacyComplianceReport,
    PrivacySettings,
    PrivacyStatistics,
)

router = APIRouter(prefix="/privacy", tags=["Privacy & GDPR"])


@router.get("/settings/{user_id}", response_model=PrivacySettings)
async def get_privacy_settings(user_id: int, services: ServiceContainer = Depends(get_services)):
    return await services.privacy.get_privacy_settings(user_id)


@router.put("/settings/{user_id}", response_model=PrivacySettings)
async def update_privacy_settings(
    user_id: int,
    updates: dict[str, Any] = Body(...),
    services: ServiceContainer = Depends(get_services),
):
    """
    Partially update privacy settings. Sections present in the body are
    merged into the stored ones; omitted sections are left alone.
    """
    return await services.privacy.update_privacy_settings(user_id, updates)


@router.post("/requests", response_model=GDPRRequest, status_code=status.HTTP_202_ACCEPTED)
async def create_gdpr_request(request: GDPRRequestCreate, services: ServiceContainer = Depends(get_services)):
    """
    File a data subject request.

    **Returns**: the pending request; poll it until completed or rejected
    """
    return await services.privacy.create_gdpr_request(request.user_id, request.type, request.description)


@router.get("/requests/{request_id}", response_model=GDPRRequest)
async def get_gdpr_request(request_id: str, services: ServiceContainer = Depends(get_services)):
    request = await services.privacy.get_gdpr_request(request_id)
    if request is None:
        raise GDPRRequestNotFoundError(request_id)
    return request


@router.get("/users/{user_id}/requests", response_model=list[GDPRRequest])
async def list_user_gdpr_requests(user_id: int, services: ServiceContainer = Depends(get_services)):
    return await services.privacy.list_gdpr_requests_for_user(user_id)


@router.get("/download/{request_id}")
async def download_portable_data(request_id: str, services: ServiceContainer = Depends(get_services)):
    """Download the JSON produced by a completed portability request."""
    artifact = await services.privacy.get_portability_artifact(request_id)
    if artifact is None:
        raise GDPRRequestNotFoundError(request_id)

    return Response(
        content=artifact.content,
        media_type=artifact.media_type,
        headers={"Content-Disposition": f"attachment; filename={artifact.filename}"},
    )


@router.post("/breaches", response_model=DataBreachResponse, status_code=status.HTTP_201_CREATED)
async def report_data_breach(breach: DataBreachCreate, services: ServiceContainer = Depends(get_services)):
    return await services.privacy.report_data_breach(
        breach.severity, breach.description, breach.affected_users, breach.data_types
    )


@router.get("/breaches", response_model=list[DataBreachResponse])
async def list_data_breaches(services: ServiceContainer = Depends(get_services)):
    return await services.privacy.list_data_breaches()


@router.get("/breaches/{breach_id}", response_model=DataBreachResponse)
async def get_data_breach(breach_id: str, services: ServiceContainer = Depends(get_services)):
    breach = await services.privacy.get_data_breach(breach_id)
    if breach is None:
        raise DataBreachNotFoundError(breach_id)
    return breach


@router.patch("/breaches/{breach_id}", response_model=DataBreachResponse)
async def update_breach_status(
    breach_id: str,
    update: DataBreachStatusUpdate,
    services: ServiceContainer = Depends(get_services),
):
    return await services.privacy.update_breach_status(breach_id, update.status)


@router.get("/audit-logs", response_model=list[PrivacyAuditLogResponse])
async def get_audit_logs(
    user_id: int | None = None,
    limit: int = Query(100, ge=1, le=1000),
    services: ServiceContainer = Depends(get_services),
):
    return await services.privacy.get_audit_logs(user_id=user_id, limit=limit)


@router.get("/compliance-report", response_model=PrivacyComplianceReport)
async def get_compliance_report(services: ServiceContainer = Depends(get_services)):
    return await services.privacy.generate_privacy_compliance_report()


@router.get("/statistics", response_model=PrivacyStatistics)
async def get_privacy_statistics(services: ServiceContainer = Depends(get_services)):
    return await services.privacy.get_privacy_statistics()
