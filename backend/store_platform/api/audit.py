from fastapi import APIRouter, Depends, Query

from store_platform.api.deps import get_platform
from store_platform.schemas.store import AuditEntryResponse
from store_platform.services.platform import StorePlatform

router = APIRouter(prefix="/api/audit", tags=["audit"])


@router.get("", response_model=list[AuditEntryResponse])
def list_audit(
    limit: int = Query(default=50, ge=1, le=500),
    platform: StorePlatform = Depends(get_platform),
) -> list[AuditEntryResponse]:
    return [
        AuditEntryResponse(
            id=str(entry.id),
            action=entry.action,
            resource_type=entry.resource_type,
            resource_id=entry.resource_id,
            resource_name=entry.resource_name,
            details=entry.details,
            ip_address=entry.ip_address,
            created_at=entry.created_at,
        )
        for entry in platform.list_audit(limit)
    ]
