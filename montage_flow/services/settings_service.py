"""
Settings Service — policy flags and automation rule enablement.

Persisted settings are read once per operation into an immutable
``AutomationSettings`` snapshot, which callers pass explicitly to the
automation engine and the status state machine.
"""

import logging
from dataclasses import dataclass, field, replace
from types import MappingProxyType

from flask import current_app

from montage_flow.auth import require_admin
from montage_flow.core.exceptions import NotFoundError, ValidationError
from montage_flow.models import db
from montage_flow.models.settings import AppSetting, AutomationRuleSetting

logger = logging.getLogger(__name__)

REQUIRE_INSTALLER_FOR_MEASUREMENT = "requireInstallerForMeasurement"

# Policy key → config key holding its deployment default
POLICY_FLAGS = {
    REQUIRE_INSTALLER_FOR_MEASUREMENT: "REQUIRE_INSTALLER_FOR_MEASUREMENT",
}


@dataclass(frozen=True)
class AutomationSettings:
    """Point-in-time view of rule enablement and policy flags."""

    rule_overrides: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))
    require_installer_for_measurement: bool = True

    def rule_enabled(self, rule_id, default=True):
        return self.rule_overrides.get(rule_id, default)

    def with_rule(self, rule_id, enabled):
        overrides = dict(self.rule_overrides)
        overrides[rule_id] = bool(enabled)
        return replace(self, rule_overrides=MappingProxyType(overrides))


# ── Snapshot ─────────────────────────────────────────────────────────────


def load_settings():
    """Read the current settings into an AutomationSettings snapshot."""
    overrides = {r.rule_id: r.enabled for r in AutomationRuleSetting.query.all()}
    return AutomationSettings(
        rule_overrides=MappingProxyType(overrides),
        require_installer_for_measurement=get_bool(REQUIRE_INSTALLER_FOR_MEASUREMENT),
    )


# ── Policy flags ─────────────────────────────────────────────────────────


def _policy_default(key):
    if key not in POLICY_FLAGS:
        raise NotFoundError(resource="Setting", resource_id=key)
    return bool(current_app.config.get(POLICY_FLAGS[key], True))


def get_bool(key):
    """Return a policy flag, falling back to the deployment default."""
    default = _policy_default(key)
    row = db.session.get(AppSetting, key)
    if row is None or not isinstance(row.value, bool):
        return default
    return row.value


def set_bool(key, value, actor):
    """Persist a policy flag (admin only)."""
    require_admin(actor, f"changing setting '{key}'")
    _policy_default(key)
    if not isinstance(value, bool):
        raise ValidationError(f"Setting '{key}' must be a boolean", details={"value": value})

    row = db.session.get(AppSetting, key)
    if row is None:
        row = AppSetting(key=key)
        db.session.add(row)
    row.value = value
    row.updated_by = actor.user_id
    db.session.commit()
    logger.info("Setting %s=%s by %s", key, value, actor.user_id)
    return row


def list_policies():
    return [{"key": key, "value": get_bool(key)} for key in POLICY_FLAGS]


# ── Rule enablement ──────────────────────────────────────────────────────


def get_rule_enabled(rule_id, default=True):
    row = db.session.get(AutomationRuleSetting, rule_id)
    return default if row is None else row.enabled


def store_rule_enabled(rule_id, enabled, actor):
    """Persist a rule override. Rule id validation is the engine's job."""
    require_admin(actor, f"toggling automation '{rule_id}'")
    row = db.session.get(AutomationRuleSetting, rule_id)
    if row is None:
        row = AutomationRuleSetting(rule_id=rule_id, enabled=bool(enabled))
        db.session.add(row)
    row.enabled = bool(enabled)
    row.updated_by = actor.user_id
    db.session.commit()
    logger.info("Automation rule %s enabled=%s by %s", rule_id, row.enabled, actor.user_id,
                extra={"rule_id": rule_id, "actor_id": actor.user_id})
    return row
