from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from store_platform.models.audit_entry import AuditEntry


class AuditLog:
    def __init__(self, session_factory: sessionmaker[Session]):
        self.session_factory = session_factory

    def record(
        self,
        action: str,
        resource_type: str,
        resource_id: str | None,
        resource_name: str | None,
        details: str | None = None,
        ip_address: str | None = None,
    ) -> AuditEntry:
        with self.session_factory() as db:
            entry = AuditEntry(
                action=action,
                resource_type=resource_type,
                resource_id=resource_id,
                resource_name=resource_name,
                details=details,
                ip_address=ip_address,
            )
            db.add(entry)
            db.commit()
            db.refresh(entry)
            return entry

    def list_recent(self, limit: int = 50) -> list[AuditEntry]:
        with self.session_factory() as db:
            return list(db.scalars(select(AuditEntry).order_by(AuditEntry.created_at.desc()).limit(limit)).all())
