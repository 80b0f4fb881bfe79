"""
ConsentRecord model for organization-to-provider data sharing consent.

One row per (organization, provider) pair. Revocation flips ``has_consent``
and keeps the row so the consent history stays retrievable.
"""

from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint

from geofora.database import Base


class ConsentRecord(Base):
    __tablename__ = "data_sharing_consent"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, nullable=False, index=True)
    provider_id = Column(Integer, ForeignKey("ai_providers.id"), nullable=False)
    # User who granted the consent on behalf of the organization
    user_id = Column(Integer, nullable=True, index=True)
    has_consent = Column(Boolean, default=False, nullable=False)
    consent_date = Column(DateTime, nullable=True)
    consent_version = Column(String(20), nullable=False)
    # Serialized DataScopePolicy (snake_case keys)
    data_scope = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("organization_id", "provider_id", name="uq_consent_org_provider"),
        Index("idx_consent_org_has_consent", "organization_id", "has_consent"),
    )
