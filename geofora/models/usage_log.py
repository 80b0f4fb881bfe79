from datetime import datetime

from sqlalchemy import Column, DateTime, Index, Integer, String

from geofora.database import Base


class UsageLog(Base):
    """Per-user activity row; part of the data returned by access requests."""

    __tablename__ = "usage_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False)
    organization_id = Column(Integer, nullable=True)
    action = Column(String(100), nullable=False)
    resource = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (Index("idx_usage_user_created", "user_id", "created_at"),)
