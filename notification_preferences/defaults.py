"""
Default preference factory.

Used on first run, on reset, and as the source for fields a migrated
record does not set.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import ValidationError

from .config import SCHEMA_VERSION
from .errors import PreferenceValidationError, validation_details
from .models import (
    AdvancedConfig,
    CategoryRule,
    ChannelSettings,
    DeliveryChannel,
    NotificationCategory,
    NotificationPreferences,
    PriorityFilterConfig,
    PriorityLevel,
    TimingConfig,
)

# Categories whose default floor is raised above medium
HIGH_PRIORITY_CATEGORIES = frozenset({
    NotificationCategory.SYSTEM,
    NotificationCategory.CONTRACT,
})

DEFAULT_DELIVERY_METHODS = (DeliveryChannel.PUSH, DeliveryChannel.IN_APP)


def default_category_rule(category: NotificationCategory) -> CategoryRule:
    minimum = (
        PriorityLevel.HIGH
        if category in HIGH_PRIORITY_CATEGORIES
        else PriorityLevel.MEDIUM
    )
    return CategoryRule(
        enabled=True,
        delivery_methods=DEFAULT_DELIVERY_METHODS,
        minimum_priority=minimum,
    )


def create_defaults(now: Optional[datetime] = None) -> NotificationPreferences:
    """Build a complete, schema-valid default configuration."""
    return NotificationPreferences(
        global_enabled=True,
        categories={c: default_category_rule(c) for c in NotificationCategory},
        delivery_methods=ChannelSettings(),
        timing=TimingConfig(),
        priority_filter=PriorityFilterConfig(),
        advanced=AdvancedConfig(),
        last_updated=now or datetime.now(timezone.utc),
        version=SCHEMA_VERSION,
    )


def create_preferences(
    now: Optional[datetime] = None,
    **overrides: Any,
) -> NotificationPreferences:
    """
    Build defaults with top-level fields replaced by overrides.

    Keys may be snake_case or camelCase. last_updated is always stamped.

    Raises:
        PreferenceValidationError: If the result is not a valid aggregate
    """
    payload = create_defaults(now).model_dump()
    payload.update(_normalize_top_level(overrides))
    payload["last_updated"] = now or datetime.now(timezone.utc)
    try:
        return NotificationPreferences.model_validate(payload)
    except ValidationError as exc:
        raise PreferenceValidationError(
            "Invalid preference overrides",
            details=validation_details(exc),
        ) from exc


def defaults_json_dict(now: Optional[datetime] = None) -> Dict[str, Any]:
    """Defaults in persisted camelCase layout, used as the migration merge base."""
    return create_defaults(now).to_json_dict()


def _normalize_top_level(overrides: Dict[str, Any]) -> Dict[str, Any]:
    by_alias = {
        info.alias: name
        for name, info in NotificationPreferences.model_fields.items()
        if info.alias
    }
    normalized: Dict[str, Any] = {}
    for key, value in overrides.items():
        name = by_alias.get(key, key)
        if name not in NotificationPreferences.model_fields:
            raise PreferenceValidationError(
                f"Unknown preference field: {key}",
                details={"field": key},
            )
        normalized[name] = value
    return normalized
