"""
Notification preference engine configuration.

Values are read once at import time from the environment.
"""

import os
from datetime import timedelta
from typing import Optional

# Current preference schema version, stamped on every save
SCHEMA_VERSION = "1.0.0"

# Storage key for the single-user deployment; tenants get scoped keys
PREFERENCES_KEY = os.getenv("NOTIFICATION_PREFERENCES_KEY", "@notification_preferences")
TENANT_KEY_PREFIX = "notification_preferences"

CACHE_TTL_HOURS = int(os.getenv("NOTIFICATION_PREFERENCES_CACHE_TTL_HOURS", "24"))
CACHE_TTL = timedelta(hours=CACHE_TTL_HOURS)

# Per-user services kept in memory by the HTTP registry before LRU eviction
MAX_CACHED_SERVICES = int(os.getenv("NOTIFICATION_PREFERENCES_MAX_SERVICES", "1000"))

# Empty means the in-memory store is used
REDIS_URL: Optional[str] = os.getenv("REDIS_URL") or None


def tenant_storage_key(tenant_id: str, user_id: Optional[str] = None) -> str:
    """
    Build the storage key for a tenant user's preferences.

    A missing user_id addresses the tenant-wide default record.
    """
    normalized_tenant_id = str(tenant_id or "").strip()
    if not normalized_tenant_id:
        raise ValueError("tenant_id is required")
    normalized_user_id = str(user_id or "").strip() or "default"
    return f"{TENANT_KEY_PREFIX}:{normalized_tenant_id}:{normalized_user_id}"
