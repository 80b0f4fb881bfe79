"""
Export Routes

API endpoints for creating and retrieving AI provider data exports.
Exports are processed in the background; poll ``GET /exports/{id}`` until
the status is ``completed`` or ``failed``.
"""

from fastapi import APIRouter, Depends, Query, Response, status

from geofora.container import ServiceContainer, get_services
from geofora.exceptions import ExportNotFoundError
from geofora.schemas.export import (
    DataExportStats,
    ExportConfig,
    ExportMetadata,
    ExportResult,
    ExportTrends,
    SupportedFormat,
    SupportedProvider,
)

router = APIRouter(prefix="/exports", tags=["Exports"])


@router.post("", response_model=ExportResult, status_code=status.HTTP_202_ACCEPTED)
async def create_export(config: ExportConfig, services: ServiceContainer = Depends(get_services)):
    """
    Queue an export.

    **Returns**: the pending export job
    """
    return await services.exports.create_export(config)


@router.get("", response_model=list[ExportResult])
async def list_exports(
    provider: str | None = None,
    limit: int = Query(50, ge=1, le=500),
    services: ServiceContainer = Depends(get_services),
):
    """Most recent exports first, optionally restricted to one provider."""
    if provider:
        exports = await services.exports.list_exports_by_provider(provider)
        return sorted(exports, key=lambda job: job.created_at, reverse=True)[:limit]
    return await services.exports.get_export_history(limit)


@router.get("/stats", response_model=DataExportStats)
async def get_export_stats(services: ServiceContainer = Depends(get_services)):
    return services.exports.get_export_statistics()


@router.get("/trends", response_model=ExportTrends)
async def get_export_trends(
    days: int = Query(30, ge=1, le=365),
    services: ServiceContainer = Depends(get_services),
):
    return await services.exports.get_export_trends(days)


@router.get("/formats", response_model=list[SupportedFormat])
async def get_supported_formats(services: ServiceContainer = Depends(get_services)):
    return services.exports.get_supported_formats()


@router.get("/providers", response_model=list[SupportedProvider])
async def get_supported_providers(services: ServiceContainer = Depends(get_services)):
    return services.exports.get_supported_providers()


@router.get("/download/{export_id}")
async def download_export(export_id: str, services: ServiceContainer = Depends(get_services)):
    """
    Download a completed export.

    **Returns**: the formatted file
    """
    artifact = await services.exports.get_export_artifact(export_id)
    if artifact is None:
        raise ExportNotFoundError(export_id)

    return Response(
        content=artifact.content,
        media_type=artifact.media_type,
        headers={"Content-Disposition": f"attachment; filename={artifact.filename}"},
    )


@router.get("/{export_id}", response_model=ExportResult)
async def get_export(export_id: str, services: ServiceContainer = Depends(get_services)):
    job = await services.exports.get_export_status(export_id)
    if job is None:
        raise ExportNotFoundError(export_id)
    return job


@router.get("/{export_id}/metadata", response_model=ExportMetadata)
async def get_export_metadata(export_id: str, services: ServiceContainer = Depends(get_services)):
    metadata = await services.exports.get_export_metadata(export_id)
    if metadata is None:
        raise ExportNotFoundError(export_id)
    return metadata


@router.delete("/{export_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_export(export_id: str, services: ServiceContainer = Depends(get_services)):
    if not await services.exports.delete_export(export_id):
        raise ExportNotFoundError(export_id)
