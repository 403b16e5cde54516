"""
Typed notification preference schema.

The persisted JSON layout uses camelCase keys (globalEnabled, deliveryMethods,
inApp, startTime, ...). Python attributes are snake_case; both spellings are
accepted on input and camelCase is produced by to_json_dict().
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_serializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


class NotificationCategory(str, enum.Enum):
    """Functional origin of a notification."""
    MAINTENANCE = "maintenance"
    PAYMENT = "payment"
    TENANT = "tenant"
    PROPERTY = "property"
    SYSTEM = "system"
    INVOICE = "invoice"
    CONTRACT = "contract"


class PriorityLevel(str, enum.Enum):
    """
    Notification severity.

    Levels are only ever compared by rank: low < medium < high < urgent.
    """
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANKS[self]


_PRIORITY_RANKS = {
    PriorityLevel.LOW: 1,
    PriorityLevel.MEDIUM: 2,
    PriorityLevel.HIGH: 3,
    PriorityLevel.URGENT: 4,
}


class DeliveryChannel(str, enum.Enum):
    """Transport a notification can use."""
    PUSH = "push"
    IN_APP = "inApp"
    EMAIL = "email"


def parse_time_of_day(value: str) -> int:
    """Convert "HH:MM" into the comparable integer HH*100+MM."""
    match = _TIME_PATTERN.match(value)
    if match is None:
        raise ValueError(f"invalid time of day: {value!r} (expected HH:MM)")
    return int(match.group(1)) * 100 + int(match.group(2))


class _PreferenceModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


class CategoryRule(_PreferenceModel):
    """Per-category gate: on/off, channels, and priority floor."""

    enabled: bool = True
    delivery_methods: Tuple[DeliveryChannel, ...] = ()
    minimum_priority: PriorityLevel = PriorityLevel.MEDIUM

    @field_validator("delivery_methods")
    @classmethod
    def _dedupe_methods(cls, value: Tuple[DeliveryChannel, ...]) -> Tuple[DeliveryChannel, ...]:
        return tuple(dict.fromkeys(value))


class PushSettings(_PreferenceModel):
    enabled: bool = True
    sound: bool = True
    vibration: bool = True
    badge: bool = True


class InAppSettings(_PreferenceModel):
    enabled: bool = True
    show_unread_count: bool = True


class EmailSettings(_PreferenceModel):
    enabled: bool = False
    # Only used by delivery, never by eligibility
    address: Optional[str] = None
    digest: bool = True


class ChannelSettings(_PreferenceModel):
    push: PushSettings = Field(default_factory=PushSettings)
    in_app: InAppSettings = Field(default_factory=InAppSettings)
    email: EmailSettings = Field(default_factory=EmailSettings)

    def for_channel(self, channel: DeliveryChannel) -> _PreferenceModel:
        return getattr(self, CHANNEL_FIELDS[DeliveryChannel(channel)])

    def is_enabled(self, channel: DeliveryChannel) -> bool:
        return bool(self.for_channel(channel).enabled)


CHANNEL_FIELDS: Mapping[DeliveryChannel, str] = MappingProxyType({
    DeliveryChannel.PUSH: "push",
    DeliveryChannel.IN_APP: "in_app",
    DeliveryChannel.EMAIL: "email",
})


class _DailyWindow(_PreferenceModel):
    enabled: bool = False
    start_time: str
    end_time: str

    @field_validator("start_time", "end_time")
    @classmethod
    def _check_time(cls, value: str) -> str:
        parse_time_of_day(value)
        return value


class QuietHours(_DailyWindow):
    """Recurring daily suppression; start > end means the window spans midnight."""

    start_time: str = "22:00"
    end_time: str = "07:00"


class DoNotDisturb(_PreferenceModel):
    """One-shot suppression, active until end_time (or indefinitely when unset)."""

    enabled: bool = False
    end_time: Optional[datetime] = None


class WeekendMode(_PreferenceModel):
    """Stored and round-tripped, but not consulted by eligibility."""

    enabled: bool = False
    reduced_types: Tuple[NotificationCategory, ...] = (NotificationCategory.SYSTEM,)


class BusinessHoursOnly(_DailyWindow):
    start_time: str = "09:00"
    end_time: str = "17:00"
    weekdays_only: bool = True


class TimingConfig(_PreferenceModel):
    quiet_hours: QuietHours = Field(default_factory=QuietHours)
    do_not_disturb: DoNotDisturb = Field(default_factory=DoNotDisturb)
    weekend_mode: WeekendMode = Field(default_factory=WeekendMode)
    business_hours_only: BusinessHoursOnly = Field(default_factory=BusinessHoursOnly)


class PriorityFilterConfig(_PreferenceModel):
    """Global priority floor plus the urgent bypass of priority checks."""

    minimum_priority: PriorityLevel = PriorityLevel.MEDIUM
    urgent_override: bool = True


class AdvancedConfig(_PreferenceModel):
    """Notification list policy; not consulted by eligibility."""

    group_similar: bool = True
    auto_mark_read: bool = False
    retention_days: int = Field(default=30, gt=0)
    max_notifications: int = Field(default=1000, gt=0)


class NotificationPreferences(_PreferenceModel):
    """Aggregate root of a user's notification configuration."""

    global_enabled: bool
    categories: Mapping[NotificationCategory, CategoryRule]
    delivery_methods: ChannelSettings
    timing: TimingConfig
    priority_filter: PriorityFilterConfig
    advanced: AdvancedConfig
    last_updated: datetime
    version: str

    @field_validator("categories")
    @classmethod
    def _freeze_categories(
        cls, value: Dict[NotificationCategory, CategoryRule]
    ) -> Mapping[NotificationCategory, CategoryRule]:
        # read-only; use with_category_rule() to replace a rule
        return MappingProxyType(dict(value))

    @field_serializer("categories")
    def _serialize_categories(
        self, value: Mapping[NotificationCategory, CategoryRule]
    ) -> Dict[NotificationCategory, CategoryRule]:
        return dict(value)

    @model_validator(mode="after")
    def _every_category_has_a_rule(self) -> "NotificationPreferences":
        missing = [c.value for c in NotificationCategory if c not in self.categories]
        if missing:
            raise ValueError(f"missing category rules: {', '.join(missing)}")
        return self

    def with_category_rule(
        self, category: NotificationCategory, rule: CategoryRule
    ) -> "NotificationPreferences":
        """Copy with one category rule replaced."""
        categories = dict(self.categories)
        categories[category] = rule
        return self.model_copy(update={"categories": MappingProxyType(categories)})

    def to_json_dict(self) -> Dict[str, Any]:
        """Serialize to the persisted camelCase JSON layout."""
        return self.model_dump(mode="json", by_alias=True)


@dataclass(frozen=True)
class EligibilityDecision:
    """Outcome of an eligibility check for one notification."""

    should_show: bool
    allowed_methods: Tuple[DeliveryChannel, ...] = ()
    reasons: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def rejected(cls, reason: str) -> "EligibilityDecision":
        return cls(should_show=False, allowed_methods=(), reasons=(reason,))

    def to_dict(self) -> dict:
        return {
            "shouldShow": self.should_show,
            "allowedMethods": [m.value for m in self.allowed_methods],
            "reasons": list(self.reasons),
        }


def validate_preferences(raw: Any) -> bool:
    """Return True if raw is a structurally valid preferences payload."""
    if isinstance(raw, NotificationPreferences):
        return True
    if not isinstance(raw, dict):
        return False
    try:
        NotificationPreferences.model_validate(raw)
    except ValidationError:
        return False
    return True


# Display metadata for settings screens
CATEGORY_INFO: Mapping[NotificationCategory, Mapping[str, str]] = MappingProxyType({
    NotificationCategory.MAINTENANCE: {
        "title": "Maintenance",
        "description": "Work orders, repair requests, completion updates",
    },
    NotificationCategory.PAYMENT: {
        "title": "Payments",
        "description": "Rent payments, payment confirmations, reminders",
    },
    NotificationCategory.TENANT: {
        "title": "Tenants",
        "description": "Tenant applications, lease renewals, tenant updates",
    },
    NotificationCategory.PROPERTY: {
        "title": "Properties",
        "description": "Property status changes, listing updates, inquiries",
    },
    NotificationCategory.SYSTEM: {
        "title": "System",
        "description": "App updates, system maintenance, important announcements",
    },
    NotificationCategory.INVOICE: {
        "title": "Invoices",
        "description": "VAT invoices, billing statements, payment due notices",
    },
    NotificationCategory.CONTRACT: {
        "title": "Contracts",
        "description": "Lease agreements, contract renewals, legal notices",
    },
})

PRIORITY_INFO: Mapping[PriorityLevel, Mapping[str, str]] = MappingProxyType({
    PriorityLevel.LOW: {
        "title": "Low Priority",
        "description": "General updates and non-urgent information",
        "color": "#6B7280",
    },
    PriorityLevel.MEDIUM: {
        "title": "Medium Priority",
        "description": "Standard notifications requiring attention",
        "color": "#3B82F6",
    },
    PriorityLevel.HIGH: {
        "title": "High Priority",
        "description": "Important notifications requiring prompt attention",
        "color": "#F59E0B",
    },
    PriorityLevel.URGENT: {
        "title": "Urgent Priority",
        "description": "Critical notifications requiring immediate attention",
        "color": "#EF4444",
    },
})
