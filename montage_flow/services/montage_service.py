"""
Montage Service — board-facing operations on montages and their checklists.

Every write returns the full, post-automation montage so the board can
resynchronise without a second round trip. Status changes go through
``status_machine.transition``; checklist toggles re-run the automation
engine before returning.
"""

import logging
import os
from datetime import datetime, timezone

from flask import current_app

from montage_flow.auth import require_admin
from montage_flow.core.exceptions import ValidationError
from montage_flow.core.process_definition import INITIAL_STATUS
from montage_flow.integrations.blob_storage import get_blob_storage
from montage_flow.models import db
from montage_flow.models.montage import CUSTOM_TEMPLATE_ID, Montage, MontageChecklistItem
from montage_flow.services import automation_engine, settings_service, status_machine
from montage_flow.services.checklist_template_service import instantiate_for_job
from montage_flow.services.history import list_events, record_event
from montage_flow.services.record_store import (
    check_version,
    list_montages,
    load_item,
    load_montage,
    save_montage,
)

logger = logging.getLogger(__name__)

# Fields a caller may edit directly; status only changes through the state machine.
_EDITABLE_FIELDS = (
    "client_name",
    "contact_phone",
    "contact_email",
    "installation_address",
    "installer_id",
    "measurement_date",
    "scheduled_installation_date",
    "material_details",
)
_DT_FIELDS = {"measurement_date", "scheduled_installation_date"}


# ── Helpers ──────────────────────────────────────────────────────────────────


def _parse_dt(val):
    """Accept ISO strings (``YYYY-MM-DD`` or full timestamps), datetimes or None."""
    if val is None or isinstance(val, datetime):
        return val
    if isinstance(val, str):
        val = val.strip()
        if not val:
            return None
        try:
            return datetime.fromisoformat(val.replace("Z", "+00:00"))
        except ValueError as exc:
            raise ValidationError(f"Invalid date: {val!r}") from exc
    raise ValidationError(f"Invalid date: {val!r}")


def generate_display_id(now=None) -> str:
    """Next human-readable id for the year: M/2026/001, M/2026/002, ..."""
    year = (now or datetime.now(timezone.utc)).year
    prefix = f"M/{year}/"
    rows = db.session.query(Montage.display_id).filter(Montage.display_id.like(f"{prefix}%")).all()
    highest = 0
    for (display_id,) in rows:
        suffix = display_id[len(prefix):]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return f"{prefix}{highest + 1:03d}"


def _apply_fields(montage, data):
    for field in _EDITABLE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field in _DT_FIELDS:
            value = _parse_dt(value)
        elif isinstance(value, str):
            value = value.strip()
        if field == "installer_id":
            value = value or None
        setattr(montage, field, value)


# ── Montage CRUD ─────────────────────────────────────────────────────────────


def get_montage(montage_id) -> Montage:
    return load_montage(montage_id)


def create_montage(data: dict, actor, initialize_checklist: bool = True) -> Montage:
    """Create a montage at the first stage, optionally with its checklist.

    Args:
        data: input dict; ``client_name`` is required, any editable field
              may be given. A ``status`` key is ignored.
        actor: caller, recorded in history.
        initialize_checklist: instantiate items from the current templates.
    """
    client_name = str(data.get("client_name") or "").strip()
    if not client_name:
        raise ValidationError("client_name is required", details={"client_name": "required"})

    montage = Montage(status=INITIAL_STATUS, display_id=generate_display_id())
    _apply_fields(montage, data)
    montage.client_name = client_name
    montage.touch()
    db.session.add(montage)
    db.session.flush()
    record_event(montage.id, "created", f"Montage {montage.display_id} created", actor)
    db.session.commit()
    logger.info("Montage created id=%s display_id=%s", montage.id, montage.display_id)

    if initialize_checklist:
        instantiate_for_job(montage.id, actor)
    return montage


def update_montage(montage_id, data: dict, actor, *, expected_version=None) -> Montage:
    """Update business attributes. Status changes must use ``request_status_change``."""
    if "status" in data:
        raise ValidationError("status cannot be edited directly; request a status change")
    montage = load_montage(montage_id)
    check_version(montage, expected_version)
    if "client_name" in data and not str(data.get("client_name") or "").strip():
        raise ValidationError("client_name is required", details={"client_name": "required"})

    _apply_fields(montage, data)
    changed = sorted(f for f in _EDITABLE_FIELDS if f in data)
    record_event(montage.id, "details_update", f"Updated: {', '.join(changed)}", actor,
                 payload={"fields": changed})
    save_montage(montage)
    logger.info("Montage updated id=%s fields=%s", montage.id, changed)
    return montage


def get_history(montage_id, limit=100):
    load_montage(montage_id)
    return list_events(montage_id, limit=limit)


# ── Status ───────────────────────────────────────────────────────────────────


def request_status_change(montage_id, to_status, actor, *, expected_version=None,
                          settings=None, notifier=None) -> Montage:
    """Manual status change; the whole montage is returned on success."""
    montage = load_montage(montage_id)
    check_version(montage, expected_version)
    settings = settings or settings_service.load_settings()
    return status_machine.transition(montage, to_status, actor, settings, notifier=notifier)


# ── Checklist ────────────────────────────────────────────────────────────────


def initialize_checklist(montage_id, actor) -> Montage:
    """Instantiate the checklist from templates; no-op if items already exist."""
    instantiate_for_job(montage_id, actor)
    return load_montage(montage_id)


def toggle_checklist_item(montage_id, item_id, completed: bool, actor, *, expected_version=None,
                          settings=None, notifier=None):
    """
    Set an item's ``completed`` flag, then let the automation engine react.

    The toggle is committed before automation runs, so a refused
    auto-transition never undoes it.

    Returns:
        ``(montage, decision)`` — the post-automation montage and the
        AutomationDecision describing what fired.
    """
    montage = load_montage(montage_id)
    check_version(montage, expected_version)
    item = load_item(montage, item_id)

    was_completed = item.completed
    item.completed = bool(completed)
    record_event(
        montage.id, "checklist_toggle",
        f"'{item.label}' marked {'done' if item.completed else 'not done'}",
        actor,
        payload={"item_id": item.id, "completed": item.completed},
    )
    save_montage(montage)

    settings = settings or settings_service.load_settings()
    decision = automation_engine.on_checklist_item_toggled(
        montage, item.id, item.completed, settings,
        actor=actor, was_completed=was_completed, notifier=notifier,
    )
    return montage, decision


def add_checklist_item(montage_id, label, actor, allow_attachment=False) -> MontageChecklistItem:
    """Append a custom item; it has no stage and never drives automation."""
    label = str(label or "").strip()
    if not label:
        raise ValidationError("label is required", details={"label": "required"})
    montage = load_montage(montage_id)

    next_index = max((i.order_index for i in montage.checklist_items), default=-1) + 1
    item = MontageChecklistItem(
        template_id=CUSTOM_TEMPLATE_ID,
        label=label,
        allow_attachment=bool(allow_attachment),
        completed=False,
        order_index=next_index,
        associated_stage=None,
    )
    montage.checklist_items.append(item)
    db.session.flush()
    record_event(montage.id, "checklist_add", f"Added '{label}'", actor, payload={"item_id": item.id})
    save_montage(montage)
    return item


def rename_checklist_item(montage_id, item_id, label, actor, *, expected_version=None) -> MontageChecklistItem:
    label = str(label or "").strip()
    if not label:
        raise ValidationError("label is required", details={"label": "required"})
    montage = load_montage(montage_id)
    check_version(montage, expected_version)
    item = load_item(montage, item_id)

    old_label = item.label
    item.label = label
    record_event(montage.id, "checklist_rename", f"'{old_label}' renamed to '{label}'", actor,
                 payload={"item_id": item.id})
    save_montage(montage)
    return item


def delete_checklist_item(montage_id, item_id, actor) -> None:
    """Remove an item (admin only). Remaining order indexes are kept as they are."""
    require_admin(actor, "deleting checklist items")
    montage = load_montage(montage_id)
    item = load_item(montage, item_id)

    montage.checklist_items.remove(item)
    record_event(montage.id, "checklist_delete", f"Deleted '{item.label}'", actor,
                 payload={"item_id": item_id})
    save_montage(montage)
    logger.info("Checklist item %s deleted from montage=%s by %s", item_id, montage.id, actor.user_id)


def _file_size(file) -> int:
    stream = file.stream
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(0)
    return size


def attach_file(montage_id, item_id, file, actor) -> MontageChecklistItem:
    """Store ``file`` via blob storage and link it to the item."""
    montage = load_montage(montage_id)
    item = load_item(montage, item_id)
    if not item.allow_attachment:
        raise ValidationError("This checklist item does not accept attachments")
    if file is None or not file.filename:
        raise ValidationError("file is required", details={"file": "required"})

    size = _file_size(file)
    limit = current_app.config.get("MAX_ATTACHMENT_SIZE_BYTES", 25 * 1024 * 1024)
    if size == 0:
        raise ValidationError("File is empty", details={"file": "empty"})
    if size > limit:
        raise ValidationError(
            f"File is too large (max {limit // (1024 * 1024)} MB)",
            details={"size": size, "limit": limit},
        )

    url = get_blob_storage().upload_attachment(montage.id, item.id, file)
    item.attachment_ref = url
    record_event(montage.id, "attachment", f"Attachment added to '{item.label}'", actor,
                 payload={"item_id": item.id, "url": url})
    save_montage(montage)
    return item

