import uuid

from fastapi import HTTPException, Request

from store_platform.services.platform import StorePlatform


def get_platform(request: Request) -> StorePlatform:
    platform = getattr(request.app.state, "platform", None)
    if platform is None:
        raise HTTPException(status_code=503, detail="Platform is not initialised")
    return platform


def request_identity(request: Request) -> str:
    xff = request.headers.get("x-forwarded-for")
    if xff:
        return xff.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def parse_store_id(store_id: str) -> uuid.UUID:
    try:
        return uuid.UUID(store_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid store id") from exc
