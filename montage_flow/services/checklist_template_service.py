"""
Checklist Template Service — admin-editable checklist blueprints.

Templates are the only input to per-job checklist instantiation. Edits
never touch items already instantiated on a job: each job item carries its
own copy of label, attachment flag and associated stage.

When the template table is empty the compiled-in defaults are seeded on
first read, so a fresh deployment always has a usable checklist.
"""

import logging
import uuid

from sqlalchemy.exc import IntegrityError

from montage_flow.auth import require_admin
from montage_flow.core.exceptions import NotFoundError, ValidationError
from montage_flow.core.process_definition import STAGE_IDS, stage_index
from montage_flow.models import db
from montage_flow.models.checklist import ASSIGNABLE_ROLES, ChecklistItemTemplate
from montage_flow.models.montage import CUSTOM_TEMPLATE_ID, Montage, MontageChecklistItem
from montage_flow.services.history import record_event

logger = logging.getLogger(__name__)


# ── Defaults ─────────────────────────────────────────────────────────────


def _get_default_templates() -> list[dict]:
    """Default checklist, in lifecycle order."""
    return [
        {"id": "lead_contact", "label": "First contact with the client",
         "associated_stage": "lead", "assigned_role": "office"},
        {"id": "measurement_done", "label": "Measurement protocol",
         "associated_stage": "before_measurement", "assigned_role": "installer",
         "allow_attachment": True},
        {"id": "labor_cost_estimate", "label": "Labor cost estimate",
         "associated_stage": "before_measurement", "assigned_role": "installer"},
        {"id": "quote_accepted", "label": "Quote accepted by the client",
         "associated_stage": "before_first_payment", "assigned_role": "office"},
        {"id": "advance_invoice", "label": "Advance invoice issued",
         "associated_stage": "before_first_payment", "assigned_role": "office",
         "allow_attachment": True},
        {"id": "deposit_paid", "label": "Deposit paid",
         "associated_stage": "before_first_payment", "assigned_role": "office",
         "locked": True},
        {"id": "materials_ordered", "label": "Materials ordered",
         "associated_stage": "before_installation", "assigned_role": "office"},
        {"id": "installation_date_set", "label": "Installation date agreed",
         "associated_stage": "before_installation", "assigned_role": "office"},
        {"id": "protocol_signed", "label": "Handover protocol signed",
         "associated_stage": "before_installation", "assigned_role": "installer",
         "allow_attachment": True, "locked": True},
        {"id": "final_invoice_issued", "label": "Final invoice issued",
         "associated_stage": "before_final_invoice", "assigned_role": "office",
         "allow_attachment": True},
    ]


def seed_default_templates():
    """
    Insert the default templates that are missing.
    Safe to run multiple times — existing ids are left untouched.

    Returns the number of templates created (flushed, not committed).
    """
    created = 0
    for order, t in enumerate(_get_default_templates()):
        if db.session.get(ChecklistItemTemplate, t["id"]) is None:
            db.session.add(ChecklistItemTemplate(sort_order=order, **t))
            created += 1
    if created:
        db.session.flush()
        logger.info("Seeded %d checklist templates", created)
    return created


# ── Read ─────────────────────────────────────────────────────────────────


def _ordered(templates):
    return sorted(templates, key=lambda t: (stage_index(t.associated_stage) or 0, t.sort_order))


def list_templates():
    """Return all templates in instantiation order (stage order, then sort order)."""
    templates = ChecklistItemTemplate.query.all()
    if not templates:
        seed_default_templates()
        db.session.commit()
        templates = ChecklistItemTemplate.query.all()
    return _ordered(templates)


def stages_with_templates(templates=None):
    templates = list_templates() if templates is None else templates
    return {t.associated_stage for t in templates}


# ── Write ────────────────────────────────────────────────────────────────


def _validate_entries(entries):
    if not isinstance(entries, list) or not entries:
        raise ValidationError("Template list must not be empty")

    errors = {}
    seen = set()
    cleaned = []
    for pos, raw in enumerate(entries):
        if not isinstance(raw, dict):
            errors[str(pos)] = "must be an object"
            continue
        label = str(raw.get("label") or "").strip()
        if not label:
            errors[str(pos)] = "label is required"
            continue
        stage = raw.get("associated_stage")
        if stage not in STAGE_IDS:
            errors[str(pos)] = f"associated_stage must be one of {', '.join(STAGE_IDS)}"
            continue
        role = raw.get("assigned_role") or None
        if role is not None and role not in ASSIGNABLE_ROLES:
            errors[str(pos)] = f"assigned_role must be one of {', '.join(sorted(ASSIGNABLE_ROLES))}"
            continue
        tid = raw.get("id") or None
        if tid is not None:
            tid = str(tid)
            if tid == CUSTOM_TEMPLATE_ID:
                errors[str(pos)] = f"id '{CUSTOM_TEMPLATE_ID}' is reserved"
                continue
            if tid in seen:
                errors[str(pos)] = f"duplicate id '{tid}'"
                continue
            seen.add(tid)
        cleaned.append({
            "id": tid,
            "label": label,
            "associated_stage": stage,
            "assigned_role": role,
            "allow_attachment": bool(raw.get("allow_attachment", False)),
        })

    if errors:
        raise ValidationError("Invalid checklist templates", details=errors)
    return cleaned


def upsert_templates(entries, actor):
    """
    Replace the whole template set (admin only).

    Entries with a known ``id`` update that template, entries without one
    create a new template, templates absent from ``entries`` are deleted.
    Deleting a locked template is rejected and nothing is changed.
    """
    require_admin(actor, "editing checklist templates")
    cleaned = _validate_entries(entries)

    existing = {t.id: t for t in list_templates()}
    incoming_ids = {e["id"] for e in cleaned if e["id"]}

    removed_locked = sorted(tid for tid, t in existing.items() if t.locked and tid not in incoming_ids)
    if removed_locked:
        raise ValidationError(
            "Locked templates cannot be deleted",
            details={"locked": removed_locked},
        )
    moved_locked = sorted(
        e["id"] for e in cleaned
        if e["id"] in existing and existing[e["id"]].locked
        and existing[e["id"]].associated_stage != e["associated_stage"]
    )
    if moved_locked:
        raise ValidationError(
            "Locked templates cannot change stage",
            details={"locked": moved_locked},
        )

    for tid, template in existing.items():
        if tid not in incoming_ids:
            db.session.delete(template)

    for order, entry in enumerate(cleaned):
        template = existing.get(entry["id"]) if entry["id"] else None
        if template is None:
            template = ChecklistItemTemplate(id=entry["id"] or f"tpl_{uuid.uuid4().hex[:12]}", locked=False)
            db.session.add(template)
        template.label = entry["label"]
        template.associated_stage = entry["associated_stage"]
        template.assigned_role = entry["assigned_role"]
        template.allow_attachment = entry["allow_attachment"]
        template.sort_order = order

    db.session.commit()
    logger.info("Checklist templates replaced by %s: %d templates (%d removed)",
                actor.user_id, len(cleaned), len(set(existing) - incoming_ids))
    return list_templates()


# ── Instantiation ────────────────────────────────────────────────────────


def instantiate_for_job(montage_id, actor=None):
    """
    Copy current templates into fresh checklist items for a montage.

    No-op when the montage already has items; returns the montage's items
    either way.
    """
    montage = db.session.get(Montage, montage_id)
    if montage is None:
        raise NotFoundError(resource="Montage", resource_id=montage_id)
    if montage.checklist_items:
        return list(montage.checklist_items)

    try:
        for order, template in enumerate(list_templates()):
            montage.checklist_items.append(MontageChecklistItem(
                template_id=template.id,
                label=template.label,
                allow_attachment=template.allow_attachment,
                associated_stage=template.associated_stage,
                assigned_role=template.assigned_role,
                completed=False,
                order_index=order,
            ))
        montage.touch()
        record_event(montage.id, "checklist_init",
                     f"Checklist initialised with {len(montage.checklist_items)} items", actor)
        db.session.commit()
    except IntegrityError:
        # Another request initialised the checklist first
        db.session.rollback()
        logger.info("Checklist for montage=%s already initialised concurrently", montage_id)
        return list(db.session.get(Montage, montage_id).checklist_items)
    logger.info("Checklist initialised for montage=%s items=%d", montage.id, len(montage.checklist_items))
    return list(montage.checklist_items)
