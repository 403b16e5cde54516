"""
Notification preference service.

Owns the in-memory cache of one user's preferences, mediates every read and
write through the injected PreferenceStore, migrates old records, publishes
changes to subscribers, and answers eligibility questions.

Persisted record layout (JSON):

    {"data": <preferences, camelCase>, "timestamp": <epoch millis>, "version": "1.0.0"}

Failure policy:
- load() never raises for storage or schema problems; it logs and returns
  defaults without persisting or caching them, so the next call retries.
- save() raises PreferenceSaveError when the store write fails.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from .config import (
    CACHE_TTL,
    MAX_CACHED_SERVICES,
    PREFERENCES_KEY,
    SCHEMA_VERSION,
    tenant_storage_key,
)
from .defaults import create_defaults, default_category_rule
from .eligibility import evaluate_eligibility
from .errors import (
    PreferenceLoadError,
    PreferenceSaveError,
    PreferenceValidationError,
    validation_details,
)
from .migrations import MIGRATIONS, MigrationRegistry, migrate_preferences
from .models import (
    CHANNEL_FIELDS,
    DeliveryChannel,
    EligibilityDecision,
    NotificationCategory,
    NotificationPreferences,
    PriorityLevel,
)
from .store import PreferenceStore

logger = logging.getLogger(__name__)

Listener = Callable[[NotificationPreferences], Any]
Clock = Callable[[], datetime]
ModelT = TypeVar("ModelT", bound=BaseModel)


def _local_now() -> datetime:
    return datetime.now().astimezone()


@dataclass(frozen=True)
class ListenerOutcome:
    """Result of delivering one change notification to one subscriber."""

    listener: Listener
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def merge_model(model: ModelT, updates: Mapping[str, Any]) -> ModelT:
    """
    Shallow-merge updates into a preference sub-model and re-validate.

    Keys may use the Python field name or the camelCase alias.

    Raises:
        PreferenceValidationError: On unknown keys or invalid values
    """
    model_cls = type(model)
    by_alias = {
        info.alias: name
        for name, info in model_cls.model_fields.items()
        if info.alias
    }
    payload = model.model_dump()
    for key, value in updates.items():
        name = by_alias.get(key, key)
        if name not in model_cls.model_fields:
            raise PreferenceValidationError(
                f"Unknown {model_cls.__name__} field: {key}",
                details={"field": key},
            )
        payload[name] = value
    try:
        return model_cls.model_validate(payload)
    except ValidationError as exc:
        raise PreferenceValidationError(
            f"Invalid {model_cls.__name__} update",
            details=validation_details(exc),
        ) from exc


def _coerce_enum(enum_cls: Type, value: Any, label: str):
    try:
        return enum_cls(value)
    except ValueError as exc:
        raise PreferenceValidationError(
            f"Unknown {label}: {value}",
            details={label: str(value)},
        ) from exc


class PreferenceService:
    """Cached, persisted, observable notification preferences for one user."""

    def __init__(
        self,
        store: PreferenceStore,
        *,
        clock: Optional[Clock] = None,
        storage_key: str = PREFERENCES_KEY,
        cache_ttl: timedelta = CACHE_TTL,
        migrations: Optional[MigrationRegistry] = None,
    ) -> None:
        normalized_key = str(storage_key).strip()
        if not normalized_key:
            raise ValueError("storage_key is required")
        self.storage_key = normalized_key
        self._store = store
        self._clock = clock or _local_now
        self._cache_ttl = cache_ttl
        self._migrations = migrations if migrations is not None else MIGRATIONS

        self._cache: Optional[NotificationPreferences] = None
        self._cached_at: Optional[datetime] = None
        self._dirty = False
        self._listeners: List[Listener] = []
        # Serializes read-modify-write cycles on this instance. Binds to the
        # running loop on first contention, so construction may happen outside it.
        self._write_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def load(self) -> NotificationPreferences:
        """Return current preferences, from cache while it is fresh."""
        if self._cache is not None and self._is_cache_valid():
            return self._cache

        try:
            loaded = await self._read()
        except PreferenceLoadError as exc:
            logger.warning(
                "Failed to load notification preferences; using defaults",
                extra={"storage_key": self.storage_key, "error": exc.detail},
                exc_info=True,
            )
            return create_defaults(self._clock())

        if loaded is None:
            defaults = create_defaults(self._clock())
            try:
                return await self._write(defaults)
            except PreferenceSaveError:
                logger.warning(
                    "Failed to persist initial notification preferences; using defaults",
                    extra={"storage_key": self.storage_key},
                    exc_info=True,
                )
                return defaults

        preferences, migrated = loaded
        self._update_cache(preferences)
        self._dirty = migrated
        return preferences

    async def refresh(self) -> NotificationPreferences:
        """Drop the cache and re-read from the store."""
        self.invalidate()
        return await self.load()

    def invalidate(self) -> None:
        self._cache = None
        self._cached_at = None

    def get_cached(self) -> Optional[NotificationPreferences]:
        """Synchronous cache peek; None until the first successful load."""
        return self._cache

    @property
    def is_dirty(self) -> bool:
        """True when the cached value was migrated and not yet saved."""
        return self._dirty

    @property
    def is_writing(self) -> bool:
        return self._write_lock.locked()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def save(
        self,
        preferences: Union[NotificationPreferences, Mapping[str, Any]],
    ) -> List[ListenerOutcome]:
        """
        Persist the full aggregate, refresh the cache, and notify subscribers.

        Returns one ListenerOutcome per subscriber, in registration order.

        Raises:
            PreferenceValidationError: If a mapping payload is not a valid aggregate
            PreferenceSaveError: If the store write fails
        """
        if not isinstance(preferences, NotificationPreferences):
            try:
                preferences = NotificationPreferences.model_validate(preferences)
            except ValidationError as exc:
                raise PreferenceValidationError(
                    "Invalid notification preferences",
                    details=validation_details(exc),
                ) from exc
        async with self._write_lock:
            return await self._save_locked(preferences)

    async def update_category(
        self,
        category: Union[NotificationCategory, str],
        /,
        **updates: Any,
    ) -> List[ListenerOutcome]:
        category = _coerce_enum(NotificationCategory, category, "category")
        async with self._write_lock:
            preferences = await self.load()
            current = preferences.categories.get(category) or default_category_rule(category)
            updated = preferences.with_category_rule(category, merge_model(current, updates))
            return await self._save_locked(updated)

    async def update_delivery_method(
        self,
        channel: Union[DeliveryChannel, str],
        /,
        **updates: Any,
    ) -> List[ListenerOutcome]:
        channel = _coerce_enum(DeliveryChannel, channel, "channel")
        field_name = CHANNEL_FIELDS[channel]
        async with self._write_lock:
            preferences = await self.load()
            channels = preferences.delivery_methods
            updated = merge_model(getattr(channels, field_name), updates)
            return await self._save_locked(preferences.model_copy(update={
                "delivery_methods": channels.model_copy(update={field_name: updated}),
            }))

    async def update_timing(self, **updates: Any) -> List[ListenerOutcome]:
        return await self._update_section("timing", updates)

    async def update_priority_filter(self, **updates: Any) -> List[ListenerOutcome]:
        return await self._update_section("priority_filter", updates)

    async def update_advanced(self, **updates: Any) -> List[ListenerOutcome]:
        return await self._update_section("advanced", updates)

    async def toggle_global(self, enabled: bool) -> List[ListenerOutcome]:
        async with self._write_lock:
            preferences = await self.load()
            return await self._save_locked(preferences.model_copy(update={"global_enabled": bool(enabled)}))

    async def reset(self) -> List[ListenerOutcome]:
        """Replace everything with fresh factory defaults."""
        async with self._write_lock:
            return await self._save_locked(create_defaults(self._clock()))

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a callback run synchronously after every successful save.

        Returns a function that removes the registration; calling it again
        has no effect.
        """
        self._listeners.append(listener)
        unsubscribed = False

        def unsubscribe() -> None:
            nonlocal unsubscribed
            if unsubscribed:
                return
            unsubscribed = True
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    # ------------------------------------------------------------------
    # Eligibility
    # ------------------------------------------------------------------

    async def should_show_notification(
        self,
        category: Union[NotificationCategory, str],
        priority: Union[PriorityLevel, str],
        timestamp: Optional[datetime] = None,
    ) -> EligibilityDecision:
        category = _coerce_enum(NotificationCategory, category, "category")
        priority = _coerce_enum(PriorityLevel, priority, "priority")
        preferences = await self.load()
        return evaluate_eligibility(preferences, category, priority, timestamp or self._clock())

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _update_section(self, field_name: str, updates: Mapping[str, Any]) -> List[ListenerOutcome]:
        async with self._write_lock:
            preferences = await self.load()
            updated = merge_model(getattr(preferences, field_name), updates)
            return await self._save_locked(preferences.model_copy(update={field_name: updated}))

    async def _save_locked(self, preferences: NotificationPreferences) -> List[ListenerOutcome]:
        saved = await self._write(preferences)
        return self._notify_listeners(saved)

    async def _write(self, preferences: NotificationPreferences) -> NotificationPreferences:
        now = self._clock()
        stamped = preferences.model_copy(update={"last_updated": now, "version": SCHEMA_VERSION})
        record = {
            "data": stamped.to_json_dict(),
            "timestamp": int(now.timestamp() * 1000),
            "version": SCHEMA_VERSION,
        }
        try:
            await self._store.set(self.storage_key, json.dumps(record))
        except Exception as exc:
            logger.error(
                "Failed to save notification preferences",
                extra={"storage_key": self.storage_key},
                exc_info=True,
            )
            raise PreferenceSaveError(self.storage_key, exc) from exc

        self._update_cache(stamped)
        self._dirty = False
        return stamped

    async def _read(self) -> Optional[Tuple[NotificationPreferences, bool]]:
        """Return (preferences, migrated) or None when nothing is stored."""
        try:
            raw = await self._store.get(self.storage_key)
        except Exception as exc:
            raise PreferenceLoadError(self.storage_key, f"store read failed: {exc}") from exc
        if raw is None:
            return None

        try:
            record = json.loads(raw)
        except (TypeError, ValueError) as exc:
            raise PreferenceLoadError(self.storage_key, "stored record is not valid JSON") from exc
        if not isinstance(record, dict) or not isinstance(record.get("data"), dict):
            raise PreferenceLoadError(self.storage_key, "stored record has no data object")

        data: Dict[str, Any] = record["data"]
        stored_version = str(record.get("version") or data.get("version") or "")

        if stored_version == SCHEMA_VERSION:
            try:
                return NotificationPreferences.model_validate(data), False
            except ValidationError as exc:
                raise PreferenceLoadError(
                    self.storage_key, f"stored preferences failed validation: {exc}"
                ) from exc

        try:
            preferences = migrate_preferences(
                data,
                stored_version,
                registry=self._migrations,
                now=self._clock(),
            )
        except Exception as exc:
            raise PreferenceLoadError(
                self.storage_key, f"migration from {stored_version or 'unknown'} failed: {exc}"
            ) from exc
        return preferences, True

    def _update_cache(self, preferences: NotificationPreferences) -> None:
        self._cache = preferences
        self._cached_at = self._clock()

    def _is_cache_valid(self) -> bool:
        if self._cache is None or self._cached_at is None:
            return False
        return self._clock() - self._cached_at < self._cache_ttl

    def _notify_listeners(self, preferences: NotificationPreferences) -> List[ListenerOutcome]:
        outcomes: List[ListenerOutcome] = []
        for listener in list(self._listeners):
            try:
                listener(preferences)
            except Exception as exc:
                logger.exception(
                    "Notification preference listener failed",
                    extra={"storage_key": self.storage_key},
                )
                outcomes.append(ListenerOutcome(listener=listener, error=exc))
            else:
                outcomes.append(ListenerOutcome(listener=listener))
        return outcomes


class PreferenceServiceRegistry:
    """
    One PreferenceService per tenant user, sharing a store and clock.

    At most max_services are kept; the least recently used service is
    dropped first. A service with a write in progress is never dropped.
    """

    def __init__(
        self,
        store: PreferenceStore,
        *,
        clock: Optional[Clock] = None,
        cache_ttl: timedelta = CACHE_TTL,
        migrations: Optional[MigrationRegistry] = None,
        max_services: int = MAX_CACHED_SERVICES,
    ) -> None:
        if max_services < 1:
            raise ValueError("max_services must be at least 1")
        self._store = store
        self._clock = clock
        self._cache_ttl = cache_ttl
        self._migrations = migrations
        self._max_services = max_services
        self._services: OrderedDict[str, PreferenceService] = OrderedDict()

    def for_user(self, tenant_id: str, user_id: Optional[str] = None) -> PreferenceService:
        key = tenant_storage_key(tenant_id, user_id)
        service = self._services.get(key)
        if service is not None:
            self._services.move_to_end(key)
            return service

        service = PreferenceService(
            self._store,
            clock=self._clock,
            storage_key=key,
            cache_ttl=self._cache_ttl,
            migrations=self._migrations,
        )
        self._services[key] = service
        self._evict()
        return service

    def _evict(self) -> None:
        overflow = len(self._services) - self._max_services
        if overflow <= 0:
            return
        idle = [key for key, service in self._services.items() if not service.is_writing]
        for key in idle[:overflow]:
            del self._services[key]
            logger.debug("Evicted notification preference service", extra={"storage_key": key})

    def __contains__(self, key: object) -> bool:
        return key in self._services

    def __len__(self) -> int:
        return len(self._services)
