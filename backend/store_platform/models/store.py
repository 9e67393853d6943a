from datetime import datetime
from sqlalchemy import DateTime, Enum, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column
import uuid

from store_platform.models.base import Base
from store_platform.models.enums import StorePlan, StoreStatus


def _enum_values(enum_cls) -> list[str]:
    return [item.value for item in enum_cls]


class Store(Base):
    __tablename__ = "stores"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    slug: Mapped[str] = mapped_column(String(40), unique=True, nullable=False)
    namespace: Mapped[str] = mapped_column(String(60), unique=True, nullable=False)
    status: Mapped[StoreStatus] = mapped_column(
        Enum(StoreStatus, name="store_status", values_callable=_enum_values),
        nullable=False,
        default=StoreStatus.PROVISIONING,
        index=True,
    )
    plan: Mapped[StorePlan] = mapped_column(
        Enum(StorePlan, name="store_plan", values_callable=_enum_values),
        nullable=False,
        default=StorePlan.WOOCOMMERCE,
    )
    url: Mapped[str | None] = mapped_column(String(255), nullable=True)
    admin_url: Mapped[str | None] = mapped_column(String(255), nullable=True)
    admin_email: Mapped[str] = mapped_column(String(255), nullable=False)
    admin_password: Mapped[str | None] = mapped_column(String(128), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    provisioned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
