import uuid

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, sessionmaker

from store_platform.models.enums import EventStatus
from store_platform.models.provisioning_event import ProvisioningEvent


class EventLog:
    """Append-only step history per store."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self.session_factory = session_factory

    def log(self, store_id: uuid.UUID, step: str, status: EventStatus, message: str) -> ProvisioningEvent:
        with self.session_factory() as db:
            event = ProvisioningEvent(store_id=store_id, step=step, status=status, message=message)
            db.add(event)
            db.commit()
            db.refresh(event)
            return event

    def list_for_store(self, store_id: uuid.UUID) -> list[ProvisioningEvent]:
        with self.session_factory() as db:
            return list(
                db.scalars(
                    select(ProvisioningEvent)
                    .where(ProvisioningEvent.store_id == store_id)
                    .order_by(ProvisioningEvent.created_at.asc(), ProvisioningEvent.id.asc())
                ).all()
            )

    def delete_for_store(self, store_id: uuid.UUID) -> int:
        with self.session_factory() as db:
            result = db.execute(delete(ProvisioningEvent).where(ProvisioningEvent.store_id == store_id))
            db.commit()
            return result.rowcount
