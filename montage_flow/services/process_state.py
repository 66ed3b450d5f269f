"""
Process State — read model combining the process definition, the
checklist templates and one montage's checklist.

Stage states:
    done     the montage has moved past the stage
    current  the montage is in the stage
    locked   not reached yet

``completed`` marks every stage done. ``cancelled`` keeps the stages
before the status the montage was cancelled from done and locks the rest.
"""

from montage_flow.core.process_definition import (
    STAGES,
    auto_advance_rule_id,
    is_terminal,
    stage_index,
    status_label,
)
from montage_flow.services.automation_engine import has_auto_advance_rule
from montage_flow.services.checklist_template_service import list_templates, stages_with_templates


def _status_before_cancel(montage):
    for event in montage.events.filter_by(event_type="status_change"):
        payload = event.payload or {}
        if payload.get("to") == "cancelled":
            return payload.get("from")
    return None


def _stage_states(montage):
    status = montage.status
    if status == "completed":
        return {s.id: "done" for s in STAGES}
    if status == "cancelled":
        reached = stage_index(_status_before_cancel(montage))
        return {
            s.id: "done" if reached is not None and i < reached else "locked"
            for i, s in enumerate(STAGES)
        }
    current = stage_index(status)
    states = {}
    for i, stage in enumerate(STAGES):
        if current is None or i > current:
            states[stage.id] = "locked"
        elif i == current:
            states[stage.id] = "current"
        else:
            states[stage.id] = "done"
    return states


def compute_process_state(montage, settings, templates=None):
    """Live process view of one montage."""
    templates = list_templates() if templates is None else templates
    template_stages = stages_with_templates(templates)
    states = _stage_states(montage)

    stages = []
    for stage in STAGES:
        items = montage.items_for_stage(stage.id)
        rule_id = auto_advance_rule_id(stage.id) if has_auto_advance_rule(stage, template_stages) else None
        stages.append({
            "id": stage.id,
            "label": stage.label,
            "actor": stage.actor.value,
            "state": states[stage.id],
            "checkpoints": [
                {
                    **cp.to_dict(),
                    "met": any(i.template_id == cp.template_id and i.completed for i in items),
                }
                for cp in stage.checkpoints
            ],
            "items_total": len(items),
            "items_completed": sum(1 for i in items if i.completed),
            "gate_ready": bool(items) and all(i.completed for i in items),
            "auto_advance_rule": rule_id,
            "auto_advance_enabled": settings.rule_enabled(rule_id) if rule_id else False,
            "automations": [
                {**a.to_dict(), "enabled": settings.rule_enabled(a.id, a.enabled_by_default)}
                for a in stage.automations
            ],
        })

    all_items = montage.checklist_items
    return {
        "montage_id": montage.id,
        "status": montage.status,
        "status_label": status_label(montage.status),
        "is_terminal": is_terminal(montage.status),
        "stages": stages,
        "progress": {
            "completed": sum(1 for i in all_items if i.completed),
            "total": len(all_items),
        },
    }


def describe_process(settings, templates=None):
    """Static definition with templates per stage and effective rule enablement."""
    templates = list_templates() if templates is None else templates
    template_stages = stages_with_templates(templates)

    stages = []
    for stage in STAGES:
        d = stage.to_dict()
        d["templates"] = [t.to_dict() for t in templates if t.associated_stage == stage.id]
        for automation in d["automations"]:
            automation["enabled"] = settings.rule_enabled(automation["id"], automation["enabled_by_default"])
        if has_auto_advance_rule(stage, template_stages):
            rule_id = auto_advance_rule_id(stage.id)
            d["auto_advance_rule"] = {"id": rule_id, "enabled": settings.rule_enabled(rule_id)}
        else:
            d["auto_advance_rule"] = None
        stages.append(d)
    return {
        "stages": stages,
        "terminal_statuses": [{"id": "completed", "label": status_label("completed")},
                              {"id": "cancelled", "label": status_label("cancelled")}],
    }
