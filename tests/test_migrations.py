"""
Tests for the migration registry and record upgrade.
"""

import pytest
from pydantic import ValidationError

from notification_preferences.config import SCHEMA_VERSION
from notification_preferences.migrations import (
    MIGRATIONS,
    MigrationRegistry,
    deep_merge,
    migrate_preferences,
)
from notification_preferences.models import NotificationCategory, PriorityLevel

from .conftest import FIXED_NOW


def _tag(label):
    def transform(data):
        data.setdefault("applied", []).append(label)
        return data
    return transform


class TestRegistration:

    def test_register_returns_transform(self, registry):
        transform = _tag("a")
        assert registry.register("0.1.0", "0.2.0")(transform) is transform
        assert ("0.1.0", "0.2.0") in registry
        assert registry.get("0.1.0", "0.2.0") is transform
        assert len(registry) == 1

    def test_duplicate_registration_rejected(self, registry):
        registry.register("0.1.0", "0.2.0")(_tag("a"))
        with pytest.raises(ValueError, match="already registered"):
            registry.register("0.1.0", "0.2.0")(_tag("b"))

    @pytest.mark.parametrize("pair", [("", "1.0.0"), ("1.0.0", " "), ("1.0.0", "1.0.0")])
    def test_invalid_pairs_rejected(self, registry, pair):
        with pytest.raises(ValueError):
            registry.register(*pair)

    def test_get_missing(self, registry):
        assert registry.get("0.1.0", "0.2.0") is None

    def test_shipped_registry_is_a_registry(self):
        assert isinstance(MIGRATIONS, MigrationRegistry)


class TestPlan:

    def test_direct_step_preferred(self, registry):
        registry.register("0.1.0", "0.2.0")(_tag("hop"))
        registry.register("0.1.0", "1.0.0")(_tag("direct"))
        assert registry.plan("0.1.0", "1.0.0") == [("0.1.0", "1.0.0")]

    def test_chained_steps(self, registry):
        registry.register("0.1.0", "0.2.0")(_tag("first"))
        registry.register("0.2.0", "1.0.0")(_tag("second"))
        assert registry.plan("0.1.0", "1.0.0") == [("0.1.0", "0.2.0"), ("0.2.0", "1.0.0")]

    def test_no_path(self, registry):
        registry.register("0.2.0", "1.0.0")(_tag("unrelated"))
        assert registry.plan("0.1.0", "1.0.0") == []

    def test_dead_end_stops(self, registry):
        registry.register("0.1.0", "0.2.0")(_tag("first"))
        assert registry.plan("0.1.0", "1.0.0") == [("0.1.0", "0.2.0")]

    def test_cycle_stops(self, registry):
        registry.register("0.1.0", "0.2.0")(_tag("forward"))
        registry.register("0.2.0", "0.1.0")(_tag("back"))
        assert registry.plan("0.1.0", "1.0.0") == [("0.1.0", "0.2.0")]

    def test_same_version_is_empty(self, registry):
        assert registry.plan("1.0.0", "1.0.0") == []


class TestApply:

    def test_runs_steps_in_order(self, registry):
        registry.register("0.1.0", "0.2.0")(_tag("first"))
        registry.register("0.2.0", "1.0.0")(_tag("second"))

        result = registry.apply({}, "0.1.0", "1.0.0")

        assert result["applied"] == ["first", "second"]

    def test_transform_must_return_dict(self, registry):
        @registry.register("0.1.0", "1.0.0")
        def _forgot_return(data):
            data["globalEnabled"] = False

        with pytest.raises(ValueError, match="returned NoneType, expected dict"):
            registry.apply({}, "0.1.0", "1.0.0")

    def test_does_not_mutate_input(self, registry):
        registry.register("0.1.0", "1.0.0")(_tag("only"))
        original = {"applied": ["earlier"]}

        registry.apply(original, "0.1.0", "1.0.0")

        assert original == {"applied": ["earlier"]}


class TestDeepMerge:

    def test_nested_dicts_merge(self):
        base = {"a": {"x": 1, "y": 2}, "b": 1}
        assert deep_merge(base, {"a": {"y": 3}}) == {"a": {"x": 1, "y": 3}, "b": 1}

    def test_lists_replace(self):
        assert deep_merge({"m": [1, 2]}, {"m": [3]}) == {"m": [3]}

    def test_non_dict_override_wins(self):
        assert deep_merge({"a": {"x": 1}}, {"a": None}) == {"a": None}

    def test_inputs_untouched(self):
        base = {"a": {"x": 1}}
        override = {"a": {"y": 2}}
        deep_merge(base, override)
        assert base == {"a": {"x": 1}}
        assert override == {"a": {"y": 2}}


class TestMigratePreferences:

    def test_fills_missing_fields_from_defaults(self, registry):
        data = {
            "globalEnabled": False,
            "categories": {"system": {"minimumPriority": "urgent"}},
            "timing": {"quietHours": {"enabled": True}},
        }

        prefs = migrate_preferences(data, "0.5.0", registry=registry, now=FIXED_NOW)

        assert prefs.global_enabled is False
        assert prefs.categories[NotificationCategory.SYSTEM].minimum_priority is PriorityLevel.URGENT
        assert prefs.categories[NotificationCategory.SYSTEM].enabled is True
        assert prefs.categories[NotificationCategory.PAYMENT].minimum_priority is PriorityLevel.MEDIUM
        assert prefs.timing.quiet_hours.enabled is True
        assert prefs.timing.quiet_hours.start_time == "22:00"
        assert prefs.advanced.retention_days == 30

    def test_restamps(self, registry):
        data = {"version": "0.5.0", "lastUpdated": "2020-01-01T00:00:00+00:00"}

        prefs = migrate_preferences(data, "0.5.0", registry=registry, now=FIXED_NOW)

        assert prefs.version == SCHEMA_VERSION
        assert prefs.last_updated == FIXED_NOW

    def test_applies_registered_transform(self, registry):
        @registry.register("0.5.0", SCHEMA_VERSION)
        def _rename(data):
            data["advanced"] = {"retentionDays": data.pop("keepDays")}
            return data

        prefs = migrate_preferences({"keepDays": 7}, "0.5.0", registry=registry, now=FIXED_NOW)

        assert prefs.advanced.retention_days == 7
        assert prefs.advanced.max_notifications == 1000

    def test_custom_target_version(self, registry):
        prefs = migrate_preferences({}, "0.5.0", registry=registry, target_version="2.0.0", now=FIXED_NOW)
        assert prefs.version == "2.0.0"

    def test_still_malformed_raises(self, registry):
        with pytest.raises(ValidationError):
            migrate_preferences(
                {"advanced": {"retentionDays": -1}},
                "0.5.0",
                registry=registry,
                now=FIXED_NOW,
            )
