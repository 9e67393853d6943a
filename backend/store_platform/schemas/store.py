from datetime import datetime
from pydantic import BaseModel, EmailStr, Field

from store_platform.models.enums import EventStatus, StorePlan, StoreStatus


class CreateStoreRequest(BaseModel):
    name: str = Field(min_length=2, max_length=50, pattern=r"^[A-Za-z0-9 -]+$")
    admin_email: EmailStr
    plan: str = Field(default=StorePlan.WOOCOMMERCE.value)


class StoreResponse(BaseModel):
    id: str
    name: str
    slug: str
    namespace: str
    status: StoreStatus
    plan: StorePlan
    url: str | None
    admin_url: str | None
    admin_email: str
    admin_password: str | None
    error_message: str | None
    created_at: datetime
    provisioned_at: datetime | None


class StoreListResponse(BaseModel):
    stores: list[StoreResponse]
    queue_size: int


class StoreEventResponse(BaseModel):
    id: int
    step: str
    status: EventStatus
    message: str
    created_at: datetime


class DeletionResponse(BaseModel):
    message: str
    store_id: str


class LogsResponse(BaseModel):
    pod: str
    container: str
    logs: str


class PodResources(BaseModel):
    cpu_request: str
    cpu_limit: str
    memory_request: str
    memory_limit: str


class PodHealth(BaseModel):
    name: str
    app: str
    phase: str | None
    ready: bool
    restart_count: int
    start_time: datetime | None
    uptime_seconds: int
    resources: PodResources
    image: str


class PvcInfo(BaseModel):
    name: str
    status: str | None
    capacity: str
    storage_class: str


class QuotaUsage(BaseModel):
    hard: dict[str, str]
    used: dict[str, str]


class StoreHealthResponse(BaseModel):
    namespace: str
    pods: list[PodHealth]
    pvcs: list[PvcInfo]
    quota: QuotaUsage | None


class RestartResponse(BaseModel):
    message: str
    restarted: list[str]


class PasswordResetResponse(BaseModel):
    message: str
    new_password: str


class AuditEntryResponse(BaseModel):
    id: str
    action: str
    resource_type: str
    resource_id: str | None
    resource_name: str | None
    details: str | None
    ip_address: str | None
    created_at: datetime
