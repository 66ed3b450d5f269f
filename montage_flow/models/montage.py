"""
Montage Workflow Service
Montage domain model.

Models:
    - Montage: an installation job moving through the lifecycle stages
    - MontageChecklistItem: job-scoped checklist entry (from a template or custom)
    - MontageEvent: append-only history of what happened to a job

``Montage.status`` is written only by ``services.status_machine.transition``.
"""

import uuid
from datetime import datetime, timedelta, timezone

from montage_flow.core.process_definition import INITIAL_STATUS, status_label
from montage_flow.models import db

# ── Constants ────────────────────────────────────────────────────────────────

CUSTOM_TEMPLATE_ID = "custom"

MONTAGE_EVENT_TYPES = {
    "created",
    "status_change",
    "checklist_init",
    "checklist_toggle",
    "checklist_add",
    "checklist_rename",
    "checklist_delete",
    "attachment",
    "automation_skipped",
    "details_update",
}


def _new_id():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


def isoformat_utc(value):
    """Stable ISO string for a timestamp whether or not the driver kept tzinfo.

    SQLite returns naive datetimes on reload; PostgreSQL keeps the offset.
    Both are normalised to naive UTC so version comparisons stay exact.
    """
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat()


class Montage(db.Model):
    """
    Installation job.

    The engine only cares about ``status`` and ``checklist_items``; the
    business attributes serve display, search and the lead conversion guard.
    """

    __tablename__ = "montages"

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    display_id = db.Column(db.String(30), unique=True, nullable=True, index=True, comment="M/<year>/<NNN>")
    status = db.Column(db.String(50), nullable=False, default=INITIAL_STATUS, index=True)

    # Client
    client_name = db.Column(db.String(200), nullable=False)
    contact_phone = db.Column(db.String(50), default="")
    contact_email = db.Column(db.String(200), default="")
    installation_address = db.Column(db.Text, default="")

    # Scheduling
    installer_id = db.Column(db.String(100), nullable=True, index=True)
    measurement_date = db.Column(db.DateTime(timezone=True), nullable=True)
    scheduled_installation_date = db.Column(db.DateTime(timezone=True), nullable=True)

    # Materials
    material_details = db.Column(db.Text, default="")

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    checklist_items = db.relationship(
        "MontageChecklistItem", backref="montage", lazy="select",
        cascade="all, delete-orphan", order_by="MontageChecklistItem.order_index",
    )
    events = db.relationship(
        "MontageEvent", backref="montage", lazy="dynamic",
        cascade="all, delete-orphan", order_by="MontageEvent.created_at.desc()",
    )

    def touch(self):
        """Stamp a new version; every persisted mutation of the job calls this.

        Versions strictly increase even when two writes land in the same
        clock tick.
        """
        now = _utcnow()
        previous = self.updated_at
        if previous is not None:
            if previous.tzinfo is None:
                previous = previous.replace(tzinfo=timezone.utc)
            if now <= previous:
                now = previous + timedelta(microseconds=1)
        self.updated_at = now

    @property
    def version(self):
        return isoformat_utc(self.updated_at)

    def items_for_stage(self, stage_id):
        return [i for i in self.checklist_items if i.associated_stage == stage_id]

    def to_dict(self, include_checklist=True):
        d = {
            "id": self.id,
            "display_id": self.display_id,
            "status": self.status,
            "status_label": status_label(self.status),
            "client_name": self.client_name,
            "contact_phone": self.contact_phone,
            "contact_email": self.contact_email,
            "installation_address": self.installation_address,
            "installer_id": self.installer_id,
            "measurement_date": isoformat_utc(self.measurement_date),
            "scheduled_installation_date": isoformat_utc(self.scheduled_installation_date),
            "material_details": self.material_details,
            "created_at": isoformat_utc(self.created_at),
            "updated_at": self.version,
            "completed_at": isoformat_utc(self.completed_at),
        }
        if include_checklist:
            d["checklist_items"] = [i.to_dict() for i in self.checklist_items]
        return d

    def __repr__(self):
        return f"<Montage {self.display_id or self.id} [{self.status}]>"


class MontageChecklistItem(db.Model):
    """
    Job-scoped checklist entry.

    ``associated_stage`` is copied from the template at instantiation, so
    later template edits never move an existing job's gate.
    Custom items have ``template_id == "custom"`` and no stage.
    """

    __tablename__ = "montage_checklist_items"
    __table_args__ = (
        db.UniqueConstraint("montage_id", "order_index", name="uq_checklist_item_order"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    montage_id = db.Column(
        db.String(36), db.ForeignKey("montages.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    template_id = db.Column(db.String(100), nullable=False, default=CUSTOM_TEMPLATE_ID)
    label = db.Column(db.String(300), nullable=False)
    allow_attachment = db.Column(db.Boolean, default=False, nullable=False)
    completed = db.Column(db.Boolean, default=False, nullable=False)
    order_index = db.Column(db.Integer, nullable=False)
    associated_stage = db.Column(db.String(50), nullable=True)
    assigned_role = db.Column(db.String(30), nullable=True)
    attachment_ref = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    @property
    def is_custom(self):
        return self.template_id == CUSTOM_TEMPLATE_ID

    def to_dict(self):
        return {
            "id": self.id,
            "montage_id": self.montage_id,
            "template_id": self.template_id,
            "label": self.label,
            "allow_attachment": self.allow_attachment,
            "completed": self.completed,
            "order_index": self.order_index,
            "associated_stage": self.associated_stage,
            "assigned_role": self.assigned_role,
            "attachment_ref": self.attachment_ref,
        }

    def __repr__(self):
        return f"<MontageChecklistItem {self.order_index}: {self.label[:40]}>"


class MontageEvent(db.Model):
    """Append-only history entry for a montage."""

    __tablename__ = "montage_events"

    id = db.Column(db.Integer, primary_key=True)
    montage_id = db.Column(
        db.String(36), db.ForeignKey("montages.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    event_type = db.Column(db.String(40), nullable=False)
    message = db.Column(db.Text, default="")
    actor_id = db.Column(db.String(100), nullable=True)
    payload = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, index=True)

    def to_dict(self):
        return {
            "id": self.id,
            "montage_id": self.montage_id,
            "event_type": self.event_type,
            "message": self.message,
            "actor_id": self.actor_id,
            "payload": self.payload or {},
            "created_at": isoformat_utc(self.created_at),
        }

    def __repr__(self):
        return f"<MontageEvent {self.event_type} montage={self.montage_id}>"
