"""
Schema migration for persisted notification preferences.

Transforms are registered per (from_version, to_version) pair and operate on
the raw camelCase JSON dict. After the transforms run, the result is merged
over the factory defaults so any field the old record does not carry is
re-derived from the factory, then re-stamped with the current version.

Registering a migration:

    @MIGRATIONS.register("1.0.0", "1.1.0")
    def _add_sms_channel(data):
        data["deliveryMethods"]["sms"] = {"enabled": False}
        return data
"""

from __future__ import annotations

import copy
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from .config import SCHEMA_VERSION
from .defaults import defaults_json_dict
from .models import NotificationPreferences

logger = logging.getLogger(__name__)

MigrationTransform = Callable[[Dict[str, Any]], Dict[str, Any]]
VersionPair = Tuple[str, str]


class MigrationRegistry:
    """Additive registry of version-to-version transforms."""

    def __init__(self) -> None:
        self._transforms: Dict[VersionPair, MigrationTransform] = {}

    def register(self, from_version: str, to_version: str) -> Callable[[MigrationTransform], MigrationTransform]:
        from_version = str(from_version).strip()
        to_version = str(to_version).strip()
        if not from_version or not to_version:
            raise ValueError("from_version and to_version are required")
        if from_version == to_version:
            raise ValueError("a migration must change the version")

        def decorator(transform: MigrationTransform) -> MigrationTransform:
            key = (from_version, to_version)
            if key in self._transforms:
                raise ValueError(f"migration already registered: {from_version} -> {to_version}")
            self._transforms[key] = transform
            return transform

        return decorator

    def get(self, from_version: str, to_version: str) -> Optional[MigrationTransform]:
        return self._transforms.get((from_version, to_version))

    def plan(self, from_version: str, to_version: str) -> List[VersionPair]:
        """
        Resolve the chain of registered steps from from_version to to_version.

        A direct step is preferred at every hop; otherwise the earliest
        registered step leaving the current version is taken. The walk stops
        when no step leaves the current version or a version repeats.
        """
        steps: List[VersionPair] = []
        visited = {from_version}
        current = from_version
        while current != to_version:
            if (current, to_version) in self._transforms:
                steps.append((current, to_version))
                break
            next_step = next((k for k in self._transforms if k[0] == current), None)
            if next_step is None or next_step[1] in visited:
                break
            steps.append(next_step)
            visited.add(next_step[1])
            current = next_step[1]
        return steps

    def apply(self, data: Dict[str, Any], from_version: str, to_version: str) -> Dict[str, Any]:
        migrated = copy.deepcopy(data)
        for step in self.plan(from_version, to_version):
            logger.info(
                "Applying notification preference migration",
                extra={"from_version": step[0], "to_version": step[1]},
            )
            migrated = self._transforms[step](migrated)
            if not isinstance(migrated, dict):
                raise ValueError(
                    f"migration {step[0]} -> {step[1]} returned "
                    f"{type(migrated).__name__}, expected dict"
                )
        return migrated

    def __len__(self) -> int:
        return len(self._transforms)

    def __contains__(self, pair: object) -> bool:
        return pair in self._transforms


# Shipped migrations register here
MIGRATIONS = MigrationRegistry()


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively overlay override onto base; non-dict values in override win."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def migrate_preferences(
    data: Dict[str, Any],
    stored_version: str,
    *,
    registry: Optional[MigrationRegistry] = None,
    target_version: str = SCHEMA_VERSION,
    now: Optional[datetime] = None,
) -> NotificationPreferences:
    """
    Upgrade a stored record to target_version.

    Raises:
        pydantic.ValidationError: If the migrated record is still malformed
    """
    registry = registry if registry is not None else MIGRATIONS
    stamped_at = now or datetime.now(timezone.utc)

    transformed = registry.apply(data, stored_version, target_version)
    merged = deep_merge(defaults_json_dict(stamped_at), transformed)
    merged["version"] = target_version
    merged["lastUpdated"] = stamped_at.isoformat()
    merged.pop("last_updated", None)

    logger.info(
        "Migrated notification preferences",
        extra={"from_version": stored_version, "to_version": target_version},
    )
    return NotificationPreferences.model_validate(merged)
