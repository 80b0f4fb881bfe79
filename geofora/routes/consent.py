"""
Consent Routes

Grant, revoke and inspect data sharing consent between organizations and
AI providers.
"""

from fastapi import APIRouter, Depends, status

from geofora.container import ServiceContainer, get_services
from geofora.exceptions import ResourceNotFoundError
from geofora.schemas.consent import (
    ConsentExport,
    ConsentRequest,
    ConsentResponse,
    ConsentStats,
    DataScopePolicy,
    SubscriptionTier,
)

router = APIRouter(prefix="/consent", tags=["Consent"])


@router.post("", response_model=ConsentResponse, status_code=status.HTTP_201_CREATED)
async def grant_consent(request: ConsentRequest, services: ServiceContainer = Depends(get_services)):
    """
    Grant (or re-grant) consent for an organization to share anonymized data
    with an AI provider.
    """
    return await services.consent.grant_consent(
        request.organization_id,
        request.provider_id,
        request.data_scope,
        request.consent_version,
        user_id=request.user_id,
    )


@router.get("/scopes/{tier}", response_model=DataScopePolicy)
async def get_default_scope(tier: SubscriptionTier, services: ServiceContainer = Depends(get_services)):
    return services.consent.get_default_data_scope(tier)


@router.get("/{organization_id}", response_model=list[ConsentResponse])
async def list_consents(organization_id: int, services: ServiceContainer = Depends(get_services)):
    return await services.consent.list_organization_consents(organization_id)


@router.get("/{organization_id}/export", response_model=ConsentExport)
async def export_consents(organization_id: int, services: ServiceContainer = Depends(get_services)):
    """Compliance export of every consent the organization has on record."""
    return await services.consent.export_consent_data(organization_id)


@router.get("/{organization_id}/stats", response_model=ConsentStats)
async def get_consent_stats(organization_id: int, services: ServiceContainer = Depends(get_services)):
    return await services.consent.get_consent_stats(organization_id)


@router.get("/{organization_id}/{provider_id}", response_model=ConsentResponse)
async def get_consent(organization_id: int, provider_id: int, services: ServiceContainer = Depends(get_services)):
    consent = await services.consent.get_consent(organization_id, provider_id)
    if consent is None:
        raise ResourceNotFoundError("Consent", f"{organization_id}/{provider_id}")
    return consent


@router.get("/{organization_id}/{provider_id}/valid")
async def validate_consent(organization_id: int, provider_id: int, services: ServiceContainer = Depends(get_services)):
    valid = await services.consent.validate_consent(organization_id, provider_id)
    return {"organizationId": organization_id, "providerId": provider_id, "valid": valid}


@router.get("/{organization_id}/{provider_id}/request", response_model=ConsentRequest)
async def get_consent_request(
    organization_id: int,
    provider_id: int,
    tier: SubscriptionTier = "pro",
    services: ServiceContainer = Depends(get_services),
):
    """Pre-filled grant request for the tier, against the current consent version."""
    return services.consent.create_consent_request(organization_id, provider_id, tier)


@router.delete("/{organization_id}/{provider_id}")
async def revoke_consent(organization_id: int, provider_id: int, services: ServiceContainer = Depends(get_services)):
    """
    Revoke consent. Anonymized records not yet exported to the provider are
    deleted; exported ones are kept.
    """
    deleted = await services.anonymization.revoke_consent(organization_id, provider_id)
    return {"organizationId": organization_id, "providerId": provider_id, "revoked": True, "deletedRecords": deleted}
