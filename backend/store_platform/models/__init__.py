from store_platform.models.audit_entry import AuditEntry
from store_platform.models.base import Base
from store_platform.models.provisioning_event import ProvisioningEvent
from store_platform.models.rate_limit_bucket import RateLimitBucket
from store_platform.models.store import Store

__all__ = ["AuditEntry", "Base", "ProvisioningEvent", "RateLimitBucket", "Store"]
