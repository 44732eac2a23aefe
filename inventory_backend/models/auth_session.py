from datetime import datetime

import sqlalchemy as sa
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB

from inventory_backend.core.database import Base


class SessionRecord(Base):
    __tablename__ = "user_sessions"

    id = Column(String(64), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    tenant_id = Column(String(100), nullable=False)
    access_token = Column(Text, nullable=False, default="")
    refresh_token = Column(String(64), unique=True, nullable=False, index=True)
    # TenantAccess snapshot taken at session creation
    tenant_context = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=False)

    is_active = Column(Boolean, nullable=False, default=True)
    expires_at = Column(DateTime, nullable=False)
    refresh_expires_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    last_used_at = Column(DateTime, default=datetime.utcnow)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)
