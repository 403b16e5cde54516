"""
Delivery eligibility for a single notification.

Gates run in a fixed order and the first failing gate decides the outcome:

1. global switch
2. category rule
3. priority floor (urgent may bypass this gate only)
4. timing: do-not-disturb, business hours, quiet hours
5. delivery channel resolution

Each gate returns None when it passes, or the human-readable reason it
rejects. The urgent override is applied in the priority gate alone; timing
suppression holds for every priority.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional, Tuple

from .models import (
    BusinessHoursOnly,
    CategoryRule,
    ChannelSettings,
    DeliveryChannel,
    DoNotDisturb,
    EligibilityDecision,
    NotificationCategory,
    NotificationPreferences,
    PriorityFilterConfig,
    PriorityLevel,
    QuietHours,
    parse_time_of_day,
)

logger = logging.getLogger(__name__)

NO_DELIVERY_METHODS = "No delivery methods enabled"

_SATURDAY = 5
_SUNDAY = 6


def _time_of_day(at: datetime) -> int:
    return at.hour * 100 + at.minute


def _as_aware(value: datetime) -> datetime:
    # naive timestamps are treated as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def check_global(prefs: NotificationPreferences) -> Optional[str]:
    if not prefs.global_enabled:
        return "Global notifications disabled"
    return None


def check_category(
    prefs: NotificationPreferences,
    category: NotificationCategory,
) -> Optional[str]:
    rule = prefs.categories.get(category)
    if rule is None or not rule.enabled:
        return f"{category.value} notifications disabled"
    return None


def effective_priority_floor(
    rule: CategoryRule,
    priority_filter: PriorityFilterConfig,
) -> PriorityLevel:
    return max(rule.minimum_priority, priority_filter.minimum_priority, key=lambda p: p.rank)


def check_priority(
    priority: PriorityLevel,
    rule: CategoryRule,
    priority_filter: PriorityFilterConfig,
) -> Optional[str]:
    if priority is PriorityLevel.URGENT and priority_filter.urgent_override:
        return None
    if priority.rank < effective_priority_floor(rule, priority_filter).rank:
        return f"Priority {priority.value} below minimum threshold"
    return None


def check_do_not_disturb(dnd: DoNotDisturb, at: datetime) -> Optional[str]:
    if not dnd.enabled:
        return None
    if dnd.end_time is None or _as_aware(dnd.end_time) > _as_aware(at):
        return "Do Not Disturb mode active"
    return None


def check_business_hours(window: BusinessHoursOnly, at: datetime) -> Optional[str]:
    if not window.enabled:
        return None
    if window.weekdays_only and at.weekday() in (_SATURDAY, _SUNDAY):
        return "Outside business hours (weekend)"
    current = _time_of_day(at)
    start = parse_time_of_day(window.start_time)
    end = parse_time_of_day(window.end_time)
    if current < start or current > end:
        return "Outside business hours"
    return None


def is_quiet_hours_active(window: QuietHours, at: datetime) -> bool:
    current = _time_of_day(at)
    start = parse_time_of_day(window.start_time)
    end = parse_time_of_day(window.end_time)
    if start > end:
        # overnight window, e.g. 22:00-07:00
        return current >= start or current <= end
    return start <= current <= end


def check_quiet_hours(window: QuietHours, at: datetime) -> Optional[str]:
    if window.enabled and is_quiet_hours_active(window, at):
        return "Quiet hours active"
    return None


def check_timing(prefs: NotificationPreferences, at: datetime) -> Optional[str]:
    timing = prefs.timing
    return (
        check_do_not_disturb(timing.do_not_disturb, at)
        or check_business_hours(timing.business_hours_only, at)
        or check_quiet_hours(timing.quiet_hours, at)
    )


def resolve_delivery_methods(
    rule: CategoryRule,
    channels: ChannelSettings,
) -> Tuple[DeliveryChannel, ...]:
    """Category channels whose own channel settings are enabled, in category order."""
    return tuple(m for m in rule.delivery_methods if channels.is_enabled(m))


def evaluate_eligibility(
    prefs: NotificationPreferences,
    category: NotificationCategory,
    priority: PriorityLevel,
    at: Optional[datetime] = None,
) -> EligibilityDecision:
    """Decide whether a notification is delivered and on which channels."""
    category = NotificationCategory(category)
    priority = PriorityLevel(priority)
    at = at or datetime.now(timezone.utc)

    reason = check_global(prefs) or check_category(prefs, category)
    if reason:
        return _reject(category, priority, reason)

    rule = prefs.categories[category]
    reason = check_priority(priority, rule, prefs.priority_filter) or check_timing(prefs, at)
    if reason:
        return _reject(category, priority, reason)

    allowed = resolve_delivery_methods(rule, prefs.delivery_methods)
    if not allowed:
        return _reject(category, priority, NO_DELIVERY_METHODS)
    return EligibilityDecision(should_show=True, allowed_methods=allowed, reasons=())


def _reject(
    category: NotificationCategory,
    priority: PriorityLevel,
    reason: str,
) -> EligibilityDecision:
    logger.debug(
        "Notification suppressed: %s",
        reason,
        extra={"category": category.value, "priority": priority.value},
    )
    return EligibilityDecision.rejected(reason)
