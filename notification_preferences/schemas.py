"""
Pydantic schemas for the notification preferences API.

The preference aggregate itself is served with NotificationPreferences from
models.py; these cover the request/response shapes around it.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .models import DeliveryChannel, EligibilityDecision, NotificationCategory, PriorityLevel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GlobalToggleRequest(_CamelModel):
    """Request body for switching all notifications on or off."""

    enabled: bool = Field(..., description="Whether notifications are delivered at all")


class EligibilityRequest(_CamelModel):
    """Request body for an eligibility check."""

    category: NotificationCategory = Field(..., description="Notification category")
    priority: PriorityLevel = Field(..., description="Notification priority")
    timestamp: Optional[datetime] = Field(
        None, description="Evaluation time; defaults to now"
    )


class EligibilityResponse(_CamelModel):
    """Eligibility decision for one notification."""

    should_show: bool = Field(..., description="Whether the notification is delivered")
    allowed_methods: List[DeliveryChannel] = Field(
        default_factory=list, description="Channels the notification may use"
    )
    reasons: List[str] = Field(
        default_factory=list, description="Why the notification was suppressed"
    )

    @classmethod
    def from_decision(cls, decision: EligibilityDecision) -> "EligibilityResponse":
        return cls(
            should_show=decision.should_show,
            allowed_methods=list(decision.allowed_methods),
            reasons=list(decision.reasons),
        )
