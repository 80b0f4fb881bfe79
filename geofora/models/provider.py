from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String

from geofora.database import Base


class AIProvider(Base):
    """An AI provider that organizations may share anonymized data with."""

    __tablename__ = "ai_providers"

    id = Column(Integer, primary_key=True, index=True)
    # Machine name, e.g. "openai", "anthropic"
    name = Column(String(50), unique=True, nullable=False)
    display_name = Column(String(100), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
