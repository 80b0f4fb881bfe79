"""Persisted job registry used by the database-backed job store."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Index, String, Text

from geofora.database import Base


class BackgroundJob(Base):
    """
    One export job, GDPR request or download artifact.

    ``kind`` namespaces the id space; ``payload`` holds the JSON-serialized
    pydantic model.
    """

    __tablename__ = "background_jobs"

    kind = Column(String(50), primary_key=True)
    id = Column(String(64), primary_key=True)
    status = Column(String(20), nullable=True)
    payload = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=True)

    __table_args__ = (Index("idx_background_jobs_kind_created", "kind", "created_at"),)
