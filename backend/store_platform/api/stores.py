import asyncio
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from prometheus_client import Counter
from sqlalchemy.orm import Session

from store_platform.api.deps import get_platform, parse_store_id, request_identity
from store_platform.core.config import get_settings
from store_platform.core.errors import (
    ClusterError,
    InvalidStoreNameError,
    InvalidTransitionError,
    PodNotFoundError,
    SlugConflictError,
    StoreLimitError,
    StoreNotFoundError,
    StoreNotReadyError,
    UnknownPlanError,
)
from store_platform.db.session import get_db
from store_platform.models.provisioning_event import ProvisioningEvent
from store_platform.models.store import Store
from store_platform.schemas.store import (
    CreateStoreRequest,
    DeletionResponse,
    LogsResponse,
    PasswordResetResponse,
    RestartResponse,
    StoreEventResponse,
    StoreHealthResponse,
    StoreListResponse,
    StoreResponse,
)
from store_platform.services.platform import StorePlatform
from store_platform.services.rate_limit import RateLimiter

router = APIRouter(prefix="/api/stores", tags=["stores"])
settings = get_settings()
rate_limiter = RateLimiter(settings.rate_limit_window_seconds)
stores_created_total = Counter("stores_created_total", "Total stores accepted for provisioning")
stores_deleted_total = Counter("stores_deleted_total", "Total stores accepted for deletion")
api_rate_limited_total = Counter("api_rate_limited_total", "Total API requests rejected by rate limiting")


def _enforce_rate_limit(db: Session, request: Request, scope: str, limit: int) -> None:
    allow, _ = rate_limiter.allow(db, f"{scope}:{request_identity(request)}", limit)
    if not allow:
        api_rate_limited_total.inc()
        raise HTTPException(status_code=429, detail="Rate limit exceeded. Try again later.")


def _to_store_response(store: Store) -> StoreResponse:
    return StoreResponse(
        id=str(store.id),
        name=store.name,
        slug=store.slug,
        namespace=store.namespace,
        status=store.status,
        plan=store.plan,
        url=store.url,
        admin_url=store.admin_url,
        admin_email=store.admin_email,
        admin_password=store.admin_password,
        error_message=store.error_message,
        created_at=store.created_at,
        provisioned_at=store.provisioned_at,
    )


def _to_event_response(event: ProvisioningEvent) -> StoreEventResponse:
    return StoreEventResponse(
        id=event.id,
        step=event.step,
        status=event.status,
        message=event.message,
        created_at=event.created_at,
    )


@router.post("", response_model=StoreResponse, status_code=status.HTTP_201_CREATED)
async def create_store(
    payload: CreateStoreRequest,
    request: Request,
    db: Session = Depends(get_db),
    platform: StorePlatform = Depends(get_platform),
) -> StoreResponse:
    await asyncio.to_thread(_enforce_rate_limit, db, request, "create", settings.rate_limit_create_per_window)

    try:
        store = await platform.create_store(
            payload.name, payload.admin_email, payload.plan, request_identity(request)
        )
    except (InvalidStoreNameError, UnknownPlanError) as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except StoreLimitError as exc:
        raise HTTPException(status_code=429, detail=str(exc)) from exc
    except SlugConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc

    stores_created_total.inc()
    return _to_store_response(store)


@router.get("", response_model=StoreListResponse)
def list_stores(platform: StorePlatform = Depends(get_platform)) -> StoreListResponse:
    return StoreListResponse(
        stores=[_to_store_response(s) for s in platform.list_stores()],
        queue_size=platform.queue_backlog_size(),
    )


@router.get("/{store_id}", response_model=StoreResponse)
def get_store(store_id: str, platform: StorePlatform = Depends(get_platform)) -> StoreResponse:
    store = platform.get_store(parse_store_id(store_id))
    if not store:
        raise HTTPException(status_code=404, detail="Store not found")
    return _to_store_response(store)


@router.delete("/{store_id}", response_model=DeletionResponse, status_code=status.HTTP_202_ACCEPTED)
async def delete_store(
    store_id: str,
    request: Request,
    db: Session = Depends(get_db),
    platform: StorePlatform = Depends(get_platform),
) -> DeletionResponse:
    await asyncio.to_thread(_enforce_rate_limit, db, request, "delete", settings.rate_limit_action_per_window)
    parsed_id = parse_store_id(store_id)

    try:
        await platform.request_deletion(parsed_id, request_identity(request))
    except StoreNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Store not found") from exc
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc

    stores_deleted_total.inc()
    return DeletionResponse(message="Store deletion initiated", store_id=str(parsed_id))


@router.get("/{store_id}/events", response_model=list[StoreEventResponse])
def list_store_events(store_id: str, platform: StorePlatform = Depends(get_platform)) -> list[StoreEventResponse]:
    try:
        events = platform.list_events(parse_store_id(store_id))
    except StoreNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Store not found") from exc
    return [_to_event_response(e) for e in events]


@router.get("/{store_id}/logs/{pod}", response_model=LogsResponse)
async def get_store_logs(
    store_id: str,
    pod: Literal["wordpress", "mysql"],
    tail: int = Query(default=100, ge=1, le=5000),
    platform: StorePlatform = Depends(get_platform),
) -> LogsResponse:
    try:
        pod_name, logs = await platform.fetch_logs(parse_store_id(store_id), pod, tail)
    except StoreNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Store not found") from exc
    except PodNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ClusterError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return LogsResponse(pod=pod_name, container=pod, logs=logs)


@router.get("/{store_id}/health", response_model=StoreHealthResponse)
async def get_store_health(store_id: str, platform: StorePlatform = Depends(get_platform)) -> StoreHealthResponse:
    try:
        health = await platform.store_health(parse_store_id(store_id))
    except StoreNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Store not found") from exc
    except ClusterError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return StoreHealthResponse(**health)


@router.post("/{store_id}/actions/restart", response_model=RestartResponse)
async def restart_store(
    store_id: str,
    request: Request,
    target: Literal["all", "wordpress", "mysql"] = "all",
    db: Session = Depends(get_db),
    platform: StorePlatform = Depends(get_platform),
) -> RestartResponse:
    await asyncio.to_thread(_enforce_rate_limit, db, request, "action", settings.rate_limit_action_per_window)

    try:
        restarted = await platform.restart_store(parse_store_id(store_id), target, request_identity(request))
    except StoreNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Store not found") from exc
    except StoreNotReadyError as exc:
        raise HTTPException(status_code=409, detail="Can only restart ready stores") from exc
    except ClusterError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return RestartResponse(message="Restart initiated", restarted=restarted)


@router.post("/{store_id}/actions/reset-password", response_model=PasswordResetResponse)
async def reset_password(
    store_id: str,
    request: Request,
    db: Session = Depends(get_db),
    platform: StorePlatform = Depends(get_platform),
) -> PasswordResetResponse:
    await asyncio.to_thread(_enforce_rate_limit, db, request, "action", settings.rate_limit_action_per_window)

    try:
        new_password = await platform.reset_admin_password(parse_store_id(store_id), request_identity(request))
    except StoreNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Store not found") from exc
    except StoreNotReadyError as exc:
        raise HTTPException(status_code=409, detail="Can only reset password for ready stores") from exc
    except PodNotFoundError as exc:
        raise HTTPException(status_code=404, detail="WordPress pod not found") from exc
    except ClusterError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return PasswordResetResponse(message="Password reset successful", new_password=new_password)
