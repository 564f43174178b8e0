from sqlalchemy import Column, Integer, String, DateTime, Float
from sqlalchemy.sql import func

from apicopilot.db.base_class import Base


class UsageLog(Base):
    """Token usage per processed message."""
    __tablename__ = "usage_logs"  # type: ignore[assignment]

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String, nullable=False, index=True)
    user_id = Column(String, nullable=True)
    session_id = Column(String, nullable=True)
    conversation_id = Column(String, nullable=True, index=True)
    type = Column(String, nullable=False, default="message")
    input_tokens = Column(Integer, nullable=False, default=0)
    output_tokens = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class ApiCallLog(Base):
    """One outbound tool HTTP call and its outcome."""
    __tablename__ = "api_call_logs"  # type: ignore[assignment]

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String, nullable=False, index=True)
    conversation_id = Column(String, nullable=True, index=True)
    api_id = Column(String, nullable=False)
    endpoint_id = Column(String, nullable=False)
    method = Column(String, nullable=False)
    url = Column(String, nullable=False)
    status_code = Column(Integer, nullable=False)
    duration_ms = Column(Float, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
