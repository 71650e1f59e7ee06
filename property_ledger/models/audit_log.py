"""
Audit log model.

Records ledger-significant events: voids, reversals, balance
corrections, account deactivation and deletion. Every change
that is not a plain post must be traceable.
"""

from datetime import datetime

from sqlalchemy import String, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column

from property_ledger.models.base import Base


class AuditLog(Base):
    """
    Immutable record of a system event.

    Like transaction entries, audit logs are append-only.
    """

    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(primary_key=True)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    subject: Mapped[str] = mapped_column(String(128), nullable=False)
    details: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    @classmethod
    def record(cls, db, event_type: str, subject: str, **details) -> "AuditLog":
        """Add an audit record to the session; the caller commits."""
        entry = cls(event_type=event_type, subject=subject, details=details)
        db.add(entry)
        return entry

    def __repr__(self) -> str:
        return f"<AuditLog {self.event_type} {self.subject}>"
