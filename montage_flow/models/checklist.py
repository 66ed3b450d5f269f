"""
Montage Workflow Service
Checklist template model.

Models:
    - ChecklistItemTemplate: admin-editable blueprint for per-job checklist items
"""

from datetime import datetime, timezone

from montage_flow.models import db

# ── Constants ────────────────────────────────────────────────────────────────

ASSIGNABLE_ROLES = {"admin", "office", "installer"}


class ChecklistItemTemplate(db.Model):
    """
    One checklist item definition, scoped to a lifecycle stage.

    ``locked`` templates are referenced by compiled-in automations and
    cannot be removed through the template editor.
    """

    __tablename__ = "checklist_item_templates"

    id = db.Column(db.String(100), primary_key=True)
    label = db.Column(db.String(300), nullable=False)
    allow_attachment = db.Column(db.Boolean, default=False, nullable=False)
    associated_stage = db.Column(db.String(50), nullable=False, index=True)
    assigned_role = db.Column(db.String(30), nullable=True)
    locked = db.Column(db.Boolean, default=False, nullable=False)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "label": self.label,
            "allow_attachment": self.allow_attachment,
            "associated_stage": self.associated_stage,
            "assigned_role": self.assigned_role,
            "locked": self.locked,
            "sort_order": self.sort_order,
        }

    def __repr__(self):
        return f"<ChecklistItemTemplate {self.id} [{self.associated_stage}]>"
