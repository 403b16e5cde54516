"""
Notification preferences API routes.

Provides endpoints for:
- Reading and replacing a user's notification preferences
- Scoped partial updates (category, channel, timing, priority filter, advanced)
- Resetting to defaults and forcing a re-read
- Checking delivery eligibility for a notification

SECURITY:
- Every route requires a tenant id (X-Tenant-ID); missing tenant -> 401
- Preferences are stored per tenant and per user (X-User-ID)
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Request, status

from .errors import PreferenceSaveError, PreferenceValidationError
from .models import DeliveryChannel, NotificationCategory, NotificationPreferences
from .schemas import EligibilityRequest, EligibilityResponse, GlobalToggleRequest
from .service import PreferenceService, PreferenceServiceRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notification-preferences", tags=["notification-preferences"])


def get_preference_registry(request: Request) -> PreferenceServiceRegistry:
    registry = getattr(request.app.state, "preference_registry", None)
    if registry is None:
        logger.error("Notification preference registry is not configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Notification preferences unavailable",
        )
    return registry


def get_preference_service(
    x_tenant_id: Optional[str] = Header(None),
    x_user_id: Optional[str] = Header(None),
    registry: PreferenceServiceRegistry = Depends(get_preference_registry),
) -> PreferenceService:
    if not x_tenant_id or not x_tenant_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Tenant context required",
        )
    return registry.for_user(x_tenant_id, x_user_id)


def _parse_category(category: str) -> NotificationCategory:
    try:
        return NotificationCategory(category)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown notification category: {category}",
        )


def _parse_channel(channel: str) -> DeliveryChannel:
    try:
        return DeliveryChannel(channel)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown delivery channel: {channel}",
        )


async def _apply(service: PreferenceService, operation) -> NotificationPreferences:
    """Run a write operation, map engine errors to HTTP, and return the new state."""
    try:
        await operation
    except PreferenceValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=exc.to_dict()["error"],
        )
    except PreferenceSaveError as exc:
        logger.error(
            "Notification preference write failed",
            extra={"storage_key": exc.storage_key},
        )
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=exc.to_dict()["error"],
        )
    return await service.load()


@router.get("", response_model=NotificationPreferences)
async def get_preferences(service: PreferenceService = Depends(get_preference_service)):
    """Return the current user's notification preferences."""
    return await service.load()


@router.put("", response_model=NotificationPreferences)
async def replace_preferences(
    payload: Dict[str, Any] = Body(...),
    service: PreferenceService = Depends(get_preference_service),
):
    """Replace the full preference aggregate."""
    return await _apply(service, service.save(payload))


@router.patch("/categories/{category}", response_model=NotificationPreferences)
async def update_category(
    category: str,
    updates: Dict[str, Any] = Body(...),
    service: PreferenceService = Depends(get_preference_service),
):
    parsed = _parse_category(category)
    return await _apply(service, service.update_category(parsed, **updates))


@router.patch("/delivery-methods/{channel}", response_model=NotificationPreferences)
async def update_delivery_method(
    channel: str,
    updates: Dict[str, Any] = Body(...),
    service: PreferenceService = Depends(get_preference_service),
):
    parsed = _parse_channel(channel)
    return await _apply(service, service.update_delivery_method(parsed, **updates))


@router.patch("/timing", response_model=NotificationPreferences)
async def update_timing(
    updates: Dict[str, Any] = Body(...),
    service: PreferenceService = Depends(get_preference_service),
):
    return await _apply(service, service.update_timing(**updates))


@router.patch("/priority-filter", response_model=NotificationPreferences)
async def update_priority_filter(
    updates: Dict[str, Any] = Body(...),
    service: PreferenceService = Depends(get_preference_service),
):
    return await _apply(service, service.update_priority_filter(**updates))


@router.patch("/advanced", response_model=NotificationPreferences)
async def update_advanced(
    updates: Dict[str, Any] = Body(...),
    service: PreferenceService = Depends(get_preference_service),
):
    return await _apply(service, service.update_advanced(**updates))


@router.put("/global", response_model=NotificationPreferences)
async def toggle_global(
    body: GlobalToggleRequest,
    service: PreferenceService = Depends(get_preference_service),
):
    return await _apply(service, service.toggle_global(body.enabled))


@router.post("/reset", response_model=NotificationPreferences)
async def reset_preferences(service: PreferenceService = Depends(get_preference_service)):
    """Restore factory defaults."""
    return await _apply(service, service.reset())


@router.post("/refresh", response_model=NotificationPreferences)
async def refresh_preferences(service: PreferenceService = Depends(get_preference_service)):
    """Drop the cached copy and re-read from storage (e.g. after another device saved)."""
    return await service.refresh()


@router.post("/eligibility", response_model=EligibilityResponse)
async def check_eligibility(
    body: EligibilityRequest,
    service: PreferenceService = Depends(get_preference_service),
):
    """Decide whether a notification should be delivered, and on which channels."""
    decision = await service.should_show_notification(
        body.category,
        body.priority,
        body.timestamp,
    )
    return EligibilityResponse.from_decision(decision)
