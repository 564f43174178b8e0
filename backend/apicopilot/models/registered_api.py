import uuid

from sqlalchemy import Column, String, Text, DateTime, Boolean, JSON, UniqueConstraint
from sqlalchemy.sql import func

from apicopilot.db.base_class import Base


class RegisteredApi(Base):
    """A tenant's third-party REST API exposed to the agent as tools."""
    __tablename__ = "registered_apis"  # type: ignore[assignment]
    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_registered_apis_tenant_name"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    base_url = Column(String, nullable=False)
    auth_type = Column(String, nullable=False, default="none")  # none, api_key, bearer, basic, oauth2
    auth_config = Column(JSON, nullable=True)  # opaque per auth_type, e.g. {"token": ...}
    headers = Column(JSON, nullable=True)  # default headers sent with every call
    endpoints = Column(JSON, nullable=False, default=list)  # ordered list of endpoint dicts
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)
