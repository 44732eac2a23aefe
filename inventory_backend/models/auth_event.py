from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text

from inventory_backend.core.database import Base


class AuthEvent(Base):
    __tablename__ = "auth_events"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=True, index=True)
    tenant_id = Column(String(100), nullable=True, index=True)
    session_id = Column(String(64), nullable=True)
    event_type = Column(String(50), nullable=False)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)
    success = Column(Boolean, nullable=False, default=True)
    meta_json = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
