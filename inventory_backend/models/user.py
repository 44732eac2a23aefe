from datetime import datetime

import sqlalchemy as sa
from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sqlalchemy.dialects.postgresql import JSONB

from inventory_backend.core.database import Base


class UserRecord(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(100), unique=True, nullable=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(50), nullable=False)

    is_enterprise_user = Column(Boolean, nullable=False, default=False)
    primary_tenant_id = Column(String(100), nullable=True, index=True)
    # Set only for CUSTOMER_CONTACT users
    customer_id = Column(Integer, nullable=True, index=True)
    contact_type = Column(String(20), nullable=True)

    # Ordered list of TenantAccess dicts
    tenant_access = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=False, default=list)

    is_active = Column(Boolean, nullable=False, default=True)
    last_login_at = Column(DateTime, nullable=True)
    failed_login_attempts = Column(Integer, nullable=False, default=0)
    locked_until = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)
