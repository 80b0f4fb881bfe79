from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String

from geofora.database import Base


class User(Base):
    """Forum account; the data subject of GDPR requests."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(100), unique=True, nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    display_name = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
