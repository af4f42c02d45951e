"""Authorization audit log model — append-only."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, func
from accademia.db.base import Base


class AuthAuditLog(Base):
    """Outcome of a permission check on an audited operation.

    This table is APPEND-ONLY: no UPDATE or DELETE operations should ever
    be performed on it (enforced at application level).
    """
    __tablename__ = "auth_audit_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=True, index=True)
    action = Column(String(100), nullable=False, index=True)
    resource = Column(String(100), nullable=False, index=True)
    granted = Column(Boolean, nullable=False)
    reason = Column(String(255), nullable=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(500), nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False, index=True)
