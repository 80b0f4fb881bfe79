"""
Privacy models: per-user privacy settings, the append-only privacy audit
log, and data breach reports.
"""

import enum
from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, Enum, Index, Integer, String, Text

from geofora.database import Base


class BreachSeverity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class BreachStatus(str, enum.Enum):
    INVESTIGATING = "investigating"
    CONTAINED = "contained"
    RESOLVED = "resolved"


class PrivacySettingsRecord(Base):
    __tablename__ = "privacy_settings"

    user_id = Column(Integer, primary_key=True)
    # Serialized PrivacySettings sections (snake_case keys)
    settings = Column(JSON, nullable=False, default=dict)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class PrivacyAuditLog(Base):
    """Immutable record of a privacy-relevant action."""

    __tablename__ = "privacy_audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    # None for actions performed by the system itself
    user_id = Column(Integer, nullable=True)
    action = Column(String(100), nullable=False)
    resource = Column(String(100), nullable=False)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)
    # IPv6 addresses can be up to 39 chars; 45 allows for mapped IPv4 addresses
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(512), nullable=True)
    details = Column(JSON, nullable=True)

    __table_args__ = (Index("idx_privacy_audit_user_timestamp", "user_id", "timestamp"),)


class DataBreachReport(Base):
    __tablename__ = "data_breach_reports"

    id = Column(String(64), primary_key=True)
    severity = Column(Enum(BreachSeverity), nullable=False)
    description = Column(Text, nullable=False)
    affected_users = Column(Integer, default=0, nullable=False)
    data_types = Column(JSON, nullable=False, default=list)
    discovered_at = Column(DateTime, nullable=False)
    reported_at = Column(DateTime, nullable=False)
    resolved_at = Column(DateTime, nullable=True)
    status = Column(Enum(BreachStatus), default=BreachStatus.INVESTIGATING, nullable=False)
    actions = Column(JSON, nullable=False, default=list)
    notifications_sent = Column(Boolean, default=False, nullable=False)
