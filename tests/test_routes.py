"""
Integration tests for the notification preferences API.

Tests cover:
- Tenant header enforcement
- Reading, replacing, and partially updating preferences
- Error mapping (unknown path values -> 404, invalid payload -> 422, write failure -> 503)
- Eligibility checks
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from notification_preferences.defaults import create_defaults
from notification_preferences.routes import router
from notification_preferences.service import PreferenceServiceRegistry
from notification_preferences.store import InMemoryPreferenceStore

from .conftest import FIXED_NOW, FailingStore, FakeClock

BASE = "/api/notification-preferences"
HEADERS = {"X-Tenant-ID": "tenant-1", "X-User-ID": "user-1"}


def _build_app(store):
    app = FastAPI()
    app.include_router(router)
    app.state.preference_registry = PreferenceServiceRegistry(store, clock=FakeClock())
    return app


@pytest.fixture
def store():
    return InMemoryPreferenceStore()


@pytest.fixture
def client(store):
    with TestClient(_build_app(store)) as client:
        yield client


class TestTenantContext:

    def test_missing_tenant_returns_401(self, client):
        response = client.get(BASE)
        assert response.status_code == 401
        assert response.json()["detail"] == "Tenant context required"

    def test_blank_tenant_returns_401(self, client):
        response = client.get(BASE, headers={"X-Tenant-ID": "  "})
        assert response.status_code == 401

    def test_registry_not_configured_returns_503(self):
        app = FastAPI()
        app.include_router(router)
        with TestClient(app) as client:
            response = client.get(BASE, headers=HEADERS)
        assert response.status_code == 503

    def test_users_are_isolated(self, client, store):
        client.put(f"{BASE}/global", json={"enabled": False}, headers=HEADERS)

        other = client.get(BASE, headers={"X-Tenant-ID": "tenant-1", "X-User-ID": "user-2"})

        assert other.json()["globalEnabled"] is True
        assert "notification_preferences:tenant-1:user-1" in store
        assert "notification_preferences:tenant-1:user-2" in store


class TestReadAndReplace:

    def test_get_returns_defaults_in_camel_case(self, client):
        response = client.get(BASE, headers=HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert body["globalEnabled"] is True
        assert body["version"] == "1.0.0"
        assert body["categories"]["system"]["minimumPriority"] == "high"
        assert body["deliveryMethods"]["inApp"]["enabled"] is True
        assert body["timing"]["quietHours"]["startTime"] == "22:00"

    def test_put_replaces_aggregate(self, client):
        payload = create_defaults(FIXED_NOW).to_json_dict()
        payload["globalEnabled"] = False
        payload["categories"]["payment"]["enabled"] = False

        response = client.put(BASE, json=payload, headers=HEADERS)

        assert response.status_code == 200
        assert response.json()["globalEnabled"] is False
        assert response.json()["categories"]["payment"]["enabled"] is False

    def test_put_invalid_payload_returns_422(self, client):
        response = client.put(BASE, json={"globalEnabled": True}, headers=HEADERS)

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "VALIDATION_ERROR"

    def test_reset(self, client):
        client.put(f"{BASE}/global", json={"enabled": False}, headers=HEADERS)

        response = client.post(f"{BASE}/reset", headers=HEADERS)

        assert response.status_code == 200
        assert response.json()["globalEnabled"] is True

    def test_refresh(self, client):
        client.get(BASE, headers=HEADERS)
        response = client.post(f"{BASE}/refresh", headers=HEADERS)
        assert response.status_code == 200
        assert response.json()["globalEnabled"] is True


class TestPartialUpdates:

    def test_update_category(self, client):
        response = client.patch(
            f"{BASE}/categories/maintenance",
            json={"minimumPriority": "urgent", "deliveryMethods": ["email"]},
            headers=HEADERS,
        )

        assert response.status_code == 200
        rule = response.json()["categories"]["maintenance"]
        assert rule == {
            "enabled": True,
            "deliveryMethods": ["email"],
            "minimumPriority": "urgent",
        }

    def test_update_unknown_category_returns_404(self, client):
        response = client.patch(f"{BASE}/categories/parking", json={"enabled": False}, headers=HEADERS)
        assert response.status_code == 404

    def test_update_category_unknown_field_returns_422(self, client):
        response = client.patch(f"{BASE}/categories/payment", json={"colour": "red"}, headers=HEADERS)

        assert response.status_code == 422
        assert response.json()["detail"]["message"] == "Unknown CategoryRule field: colour"

    def test_update_delivery_method(self, client):
        response = client.patch(
            f"{BASE}/delivery-methods/email",
            json={"enabled": True, "address": "owner@example.com"},
            headers=HEADERS,
        )

        assert response.status_code == 200
        email = response.json()["deliveryMethods"]["email"]
        assert email["enabled"] is True
        assert email["address"] == "owner@example.com"

    def test_update_unknown_channel_returns_404(self, client):
        response = client.patch(f"{BASE}/delivery-methods/sms", json={"enabled": True}, headers=HEADERS)
        assert response.status_code == 404

    def test_update_timing(self, client):
        response = client.patch(
            f"{BASE}/timing",
            json={"businessHoursOnly": {"enabled": True, "startTime": "08:30"}},
            headers=HEADERS,
        )

        assert response.status_code == 200
        window = response.json()["timing"]["businessHoursOnly"]
        assert window["enabled"] is True
        assert window["startTime"] == "08:30"
        assert window["endTime"] == "17:00"

    def test_update_timing_invalid_time_returns_422(self, client):
        response = client.patch(
            f"{BASE}/timing",
            json={"quietHours": {"enabled": True, "startTime": "25:00"}},
            headers=HEADERS,
        )
        assert response.status_code == 422

    def test_update_priority_filter(self, client):
        response = client.patch(
            f"{BASE}/priority-filter",
            json={"urgentOverride": False},
            headers=HEADERS,
        )
        assert response.status_code == 200
        assert response.json()["priorityFilter"] == {
            "minimumPriority": "medium",
            "urgentOverride": False,
        }

    def test_update_advanced(self, client):
        response = client.patch(f"{BASE}/advanced", json={"retentionDays": 14}, headers=HEADERS)
        assert response.status_code == 200
        assert response.json()["advanced"]["retentionDays"] == 14

    def test_toggle_global_requires_body(self, client):
        response = client.put(f"{BASE}/global", json={}, headers=HEADERS)
        assert response.status_code == 422


class TestWriteFailure:

    def test_write_failure_returns_503(self):
        store = FailingStore(fail_set=True)
        with TestClient(_build_app(store)) as client:
            read = client.get(BASE, headers=HEADERS)
            write = client.put(f"{BASE}/global", json={"enabled": False}, headers=HEADERS)

        assert read.status_code == 200
        assert write.status_code == 503
        assert write.json()["detail"]["code"] == "PREFERENCES_SAVE_FAILED"


class TestEligibility:

    def test_defaults_allow_medium_payment(self, client):
        response = client.post(
            f"{BASE}/eligibility",
            json={"category": "payment", "priority": "medium"},
            headers=HEADERS,
        )

        assert response.status_code == 200
        assert response.json() == {
            "shouldShow": True,
            "allowedMethods": ["push", "inApp"],
            "reasons": [],
        }

    def test_suppressed_with_reason(self, client):
        response = client.post(
            f"{BASE}/eligibility",
            json={"category": "system", "priority": "medium"},
            headers=HEADERS,
        )

        assert response.json() == {
            "shouldShow": False,
            "allowedMethods": [],
            "reasons": ["Priority medium below minimum threshold"],
        }

    def test_explicit_timestamp(self, client):
        client.patch(f"{BASE}/timing", json={"quietHours": {"enabled": True}}, headers=HEADERS)

        response = client.post(
            f"{BASE}/eligibility",
            json={
                "category": "payment",
                "priority": "urgent",
                "timestamp": "2026-03-04T23:30:00+00:00",
            },
            headers=HEADERS,
        )

        assert response.json()["reasons"] == ["Quiet hours active"]

    def test_unknown_category_returns_422(self, client):
        response = client.post(
            f"{BASE}/eligibility",
            json={"category": "parking", "priority": "medium"},
            headers=HEADERS,
        )
        assert response.status_code == 422
