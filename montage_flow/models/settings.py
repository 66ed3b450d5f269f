"""
Montage Workflow Service
Process-wide settings.

Models:
    - AppSetting: key/value policy flags (e.g. requireInstallerForMeasurement)
    - AutomationRuleSetting: ruleId → enabled override
"""

from datetime import datetime, timezone

from montage_flow.models import db


class AppSetting(db.Model):
    """Persisted policy flag; value is stored as JSON."""

    __tablename__ = "app_settings"

    key = db.Column(db.String(100), primary_key=True)
    value = db.Column(db.JSON, nullable=True)
    updated_by = db.Column(db.String(100), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "key": self.key,
            "value": self.value,
            "updated_by": self.updated_by,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class AutomationRuleSetting(db.Model):
    """Override for one automation rule. Absent rows mean the rule default."""

    __tablename__ = "automation_rule_settings"

    rule_id = db.Column(db.String(100), primary_key=True)
    enabled = db.Column(db.Boolean, nullable=False)
    updated_by = db.Column(db.String(100), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "rule_id": self.rule_id,
            "enabled": self.enabled,
            "updated_by": self.updated_by,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<AutomationRuleSetting {self.rule_id}={self.enabled}>"
