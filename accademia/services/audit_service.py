"""Audit service — append-only record of permission-check outcomes."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session, sessionmaker

from accademia.models.audit_log import AuthAuditLog


@dataclass(frozen=True)
class AuditLogEntry:
    user_id: Optional[int]
    action: str
    resource: str
    granted: bool
    reason: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class AuditService:
    """Writes audit entries in their own session so they commit independently."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self.session_factory = session_factory

    def append(self, entry: AuditLogEntry) -> None:
        """Write a single audit log record.

        Commits immediately so the entry survives whatever the audited
        operation does next. Raises on persistence errors; callers decide
        whether that blocks anything.
        """
        if self.session_factory is None:
            from accademia.db.session import SessionLocal
            self.session_factory = SessionLocal

        with self.session_factory() as db:
            db.add(AuthAuditLog(
                user_id=entry.user_id,
                action=entry.action,
                resource=entry.resource,
                granted=entry.granted,
                reason=entry.reason,
                ip_address=entry.ip_address,
                user_agent=(entry.user_agent or "")[:500] or None,
                created_at=entry.timestamp.replace(tzinfo=None),
            ))
            db.commit()

    @staticmethod
    def query_logs(
        db: Session,
        user_id: Optional[int] = None,
        resource: Optional[str] = None,
        granted: Optional[bool] = None,
        page: int = 1,
        page_size: int = 50,
    ):
        """Query audit logs with filters and pagination."""
        query = db.query(AuthAuditLog)

        if user_id:
            query = query.filter(AuthAuditLog.user_id == user_id)
        if resource:
            query = query.filter(AuthAuditLog.resource == resource)
        if granted is not None:
            query = query.filter(AuthAuditLog.granted == granted)

        total = query.count()
        logs = (
            query.order_by(AuthAuditLog.created_at.desc(), AuthAuditLog.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )

        return {
            "logs": logs,
            "total": total,
            "page": page,
            "page_size": page_size,
        }


audit_service = AuditService()
