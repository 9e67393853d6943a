import uuid
from datetime import datetime, timezone

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from store_platform.core.errors import InvalidTransitionError, SlugConflictError, StoreNotFoundError
from store_platform.models.enums import StorePlan, StoreStatus, transition_sources
from store_platform.models.store import Store


class StoreRepository:
    """Durable store records.

    Status writes are compare-and-set against the lifecycle table, so two writers racing on
    the same row cannot move it backwards.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self.session_factory = session_factory

    def create(self, name: str, slug: str, namespace: str, admin_email: str, plan: StorePlan) -> Store:
        with self.session_factory() as db:
            store = Store(
                name=name,
                slug=slug,
                namespace=namespace,
                admin_email=admin_email,
                plan=plan,
                status=StoreStatus.PROVISIONING,
            )
            db.add(store)
            try:
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise SlugConflictError(slug) from exc
            db.refresh(store)
            return store

    def get(self, store_id: uuid.UUID) -> Store | None:
        with self.session_factory() as db:
            return db.get(Store, store_id)

    def get_by_slug(self, slug: str) -> Store | None:
        with self.session_factory() as db:
            return db.scalar(select(Store).where(Store.slug == slug))

    def list_active(self) -> list[Store]:
        with self.session_factory() as db:
            return list(
                db.scalars(
                    select(Store).where(Store.status != StoreStatus.DELETING).order_by(Store.created_at.desc())
                ).all()
            )

    def count_active(self) -> int:
        with self.session_factory() as db:
            return db.scalar(select(func.count(Store.id)).where(Store.status != StoreStatus.DELETING)) or 0

    def update_status(self, store_id: uuid.UUID, status: StoreStatus, error_message: str | None = None) -> None:
        values: dict = {"status": status}
        if error_message:
            values["error_message"] = error_message
        self._transition(store_id, status, values)

    def mark_ready(self, store_id: uuid.UUID, url: str, admin_url: str, admin_password: str) -> None:
        self._transition(
            store_id,
            StoreStatus.READY,
            {
                "status": StoreStatus.READY,
                "url": url,
                "admin_url": admin_url,
                "admin_password": admin_password,
                "error_message": None,
                "provisioned_at": datetime.now(timezone.utc),
            },
        )

    def fail_interrupted(self, message: str) -> list[uuid.UUID]:
        """Move every row still ``Provisioning`` to ``Failed``; returns the ids moved."""
        with self.session_factory() as db:
            ids = list(db.scalars(select(Store.id).where(Store.status == StoreStatus.PROVISIONING)).all())
            if ids:
                db.execute(
                    update(Store)
                    .where(Store.id.in_(ids), Store.status == StoreStatus.PROVISIONING)
                    .values(status=StoreStatus.FAILED, error_message=message)
                )
                db.commit()
            return ids

    def update_admin_password(self, store_id: uuid.UUID, admin_password: str) -> None:
        with self.session_factory() as db:
            result = db.execute(update(Store).where(Store.id == store_id).values(admin_password=admin_password))
            db.commit()
        if result.rowcount == 0:
            raise StoreNotFoundError(store_id)

    def delete(self, store_id: uuid.UUID) -> None:
        with self.session_factory() as db:
            db.execute(delete(Store).where(Store.id == store_id))
            db.commit()

    def _transition(self, store_id: uuid.UUID, target: StoreStatus, values: dict) -> None:
        with self.session_factory() as db:
            result = db.execute(
                update(Store)
                .where(Store.id == store_id, Store.status.in_(transition_sources(target)))
                .values(**values)
            )
            db.commit()
            if result.rowcount:
                return
            current = db.scalar(select(Store.status).where(Store.id == store_id))
        if current is None:
            raise StoreNotFoundError(store_id)
        raise InvalidTransitionError(store_id, current.value, target.value)
