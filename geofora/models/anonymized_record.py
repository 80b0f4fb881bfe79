"""
AnonymizedRecord model: one piece of forum content after redaction.

Rows are immutable apart from the one-way ``exported`` flag, which flips
from False to True when an export pulls the row.
"""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String, Text

from geofora.database import Base


class AnonymizedRecord(Base):
    __tablename__ = "anonymized_data"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, nullable=False, index=True)
    # Author of the source content, when known
    user_id = Column(Integer, nullable=True, index=True)
    provider_id = Column(Integer, nullable=False)
    thread_id = Column(Integer, default=0, nullable=False)
    post_id = Column(Integer, default=0, nullable=False)
    anonymized_content = Column(Text, nullable=False)
    # "question", "answer" or "conversation"
    data_type = Column(String(20), nullable=False)
    ai_provider = Column(String(50), nullable=False)
    ai_model = Column(String(100), default="unknown", nullable=False)
    consent_version = Column(String(20), nullable=False)
    exported = Column(Boolean, default=False, nullable=False)
    exported_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (Index("idx_anonymized_org_provider_exported", "organization_id", "provider_id", "exported"),)
