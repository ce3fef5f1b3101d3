"""
Common mixins for multi-tenant models
"""
from sqlalchemy import Column, DateTime
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from uuid import uuid4


class TenantMixin:
    """Mixin for multi-tenant models that adds tenant_id and ensures tenant isolation"""

    tenant_id = Column(UUID(as_uuid=True), nullable=False, index=True)


class BranchMixin:
    """Sucursal (filial) opcional dentro del tenant"""

    branch_id = Column(UUID(as_uuid=True), nullable=True, index=True)


class TimestampMixin:
    """Mixin for models that need timestamp tracking"""

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class IdMixin:
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4, index=True)


class BaseMixin(IdMixin, TenantMixin, TimestampMixin):
    """Combines id, tenant and timestamp functionality for most business models"""
