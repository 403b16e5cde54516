"""
Notification preference and delivery-eligibility engine.

Usage:
    from notification_preferences import InMemoryPreferenceStore, PreferenceService

    service = PreferenceService(InMemoryPreferenceStore())
    await service.update_category("payment", minimum_priority="high")
    decision = await service.should_show_notification("payment", "medium")
    if decision.should_show:
        deliver(decision.allowed_methods)
"""

from .config import SCHEMA_VERSION, tenant_storage_key
from .defaults import create_defaults, create_preferences
from .eligibility import evaluate_eligibility
from .errors import (
    PreferenceError,
    PreferenceLoadError,
    PreferenceSaveError,
    PreferenceValidationError,
)
from .migrations import MIGRATIONS, MigrationRegistry, migrate_preferences
from .models import (
    CATEGORY_INFO,
    PRIORITY_INFO,
    AdvancedConfig,
    CategoryRule,
    ChannelSettings,
    DeliveryChannel,
    EligibilityDecision,
    NotificationCategory,
    NotificationPreferences,
    PriorityFilterConfig,
    PriorityLevel,
    TimingConfig,
    validate_preferences,
)
from .service import ListenerOutcome, PreferenceService, PreferenceServiceRegistry
from .store import InMemoryPreferenceStore, PreferenceStore, RedisPreferenceStore, build_store

__all__ = [
    "SCHEMA_VERSION",
    "tenant_storage_key",
    "create_defaults",
    "create_preferences",
    "evaluate_eligibility",
    "PreferenceError",
    "PreferenceLoadError",
    "PreferenceSaveError",
    "PreferenceValidationError",
    "MIGRATIONS",
    "MigrationRegistry",
    "migrate_preferences",
    "CATEGORY_INFO",
    "PRIORITY_INFO",
    "AdvancedConfig",
    "CategoryRule",
    "ChannelSettings",
    "DeliveryChannel",
    "EligibilityDecision",
    "NotificationCategory",
    "NotificationPreferences",
    "PriorityFilterConfig",
    "PriorityLevel",
    "TimingConfig",
    "validate_preferences",
    "ListenerOutcome",
    "PreferenceService",
    "PreferenceServiceRegistry",
    "InMemoryPreferenceStore",
    "PreferenceStore",
    "RedisPreferenceStore",
    "build_store",
]
