"""
Automation Rule Engine — checklist-driven auto-advance / auto-revert.

Rules:
    - Every static stage automation (``Stage.automations``) is a rule.
    - Every stage with at least one checklist template, an open gate and a
      next stage also gets a synthesized ``auto_advance_<stage>`` rule.

On a checklist toggle the engine decides, from the montage snapshot alone:
    ADVANCE  the current stage just became fully completed
             → move to the next stage
    REVERT   a fully completed stage behind the current status lost an item
             → move one stage back from the current status
    NONE     anything else, including every terminal status

Only one step is ever taken in either direction. A job several stages past
the unchecked item's stage still goes back a single stage.

The transition itself goes through ``status_machine.transition``; if it is
refused (e.g. policy violation) the failure is logged and swallowed so the
checklist toggle that triggered it still stands.
"""

import logging
from dataclasses import dataclass, replace

from montage_flow.auth import require_admin
from montage_flow.core.exceptions import NotFoundError, PolicyViolationError, UnknownStatusError
from montage_flow.core.process_definition import (
    STAGES,
    auto_advance_rule_id,
    get_stage,
    is_terminal,
    next_stage,
    previous_stage,
    stage_index,
)
from montage_flow.models import db
from montage_flow.services import settings_service
from montage_flow.services.checklist_template_service import list_templates, stages_with_templates
from montage_flow.services.history import record_event
from montage_flow.services.status_machine import SOURCE_AUTOMATION, transition

logger = logging.getLogger(__name__)

ADVANCE = "advance"
REVERT = "revert"
NONE = "none"


@dataclass(frozen=True)
class AutomationDecision:
    action: str
    reason: str = ""
    stage_id: str | None = None
    rule_id: str | None = None
    target_status: str | None = None
    applied: bool = False
    error: str | None = None

    @property
    def fires(self):
        return self.action != NONE

    def to_dict(self):
        return {
            "action": self.action,
            "reason": self.reason,
            "stage_id": self.stage_id,
            "rule_id": self.rule_id,
            "target_status": self.target_status,
            "applied": self.applied,
            "error": self.error,
        }


# ── Registry ─────────────────────────────────────────────────────────────


def has_auto_advance_rule(stage, template_stages):
    return (
        stage.gate_to_next_stage
        and next_stage(stage.id) is not None
        and stage.id in template_stages
    )


def list_rules(settings, templates=None):
    """Every rule with its effective enablement, in stage order."""
    template_stages = stages_with_templates(templates)
    rules = []
    for stage in STAGES:
        for automation in stage.automations:
            rules.append({
                "id": automation.id,
                "kind": "automation",
                "stage": stage.id,
                "label": automation.label,
                "description": automation.description,
                "trigger": automation.trigger,
                "enabled": settings.rule_enabled(automation.id, automation.enabled_by_default),
            })
        if has_auto_advance_rule(stage, template_stages):
            rule_id = auto_advance_rule_id(stage.id)
            target = next_stage(stage.id)
            rules.append({
                "id": rule_id,
                "kind": "auto_advance",
                "stage": stage.id,
                "label": f"Auto-advance: {stage.label}",
                "description": (
                    f"Move to '{target.label}' once every '{stage.label}' checklist item is completed; "
                    f"unchecking one after the job moved on steps it back"
                ),
                "trigger": "Checklist completed",
                "enabled": settings.rule_enabled(rule_id),
            })
    return rules


def known_rule_ids(templates=None):
    return {r["id"] for r in list_rules(settings_service.AutomationSettings(), templates)}


def set_rule_enabled(rule_id, enabled, actor):
    """Enable/disable one rule (admin). Past transitions are not undone."""
    require_admin(actor, f"toggling automation '{rule_id}'")
    if rule_id not in known_rule_ids(list_templates()):
        raise NotFoundError(resource="AutomationRule", resource_id=rule_id)
    settings_service.store_rule_enabled(rule_id, enabled, actor)
    rules = list_rules(settings_service.load_settings())
    return next(r for r in rules if r["id"] == rule_id)


# ── Evaluation ───────────────────────────────────────────────────────────


def evaluate_toggle(status, items, item_id, was_completed, settings, template_stages):
    """
    Decide what a checklist toggle triggers. Pure: reads, never writes.

    ``items`` is the montage's checklist after the toggle was applied;
    ``was_completed`` is the toggled item's state before it;
    ``template_stages`` holds the stages that currently have templates,
    i.e. the stages whose auto-advance rule exists.
    """
    if is_terminal(status):
        return AutomationDecision(NONE, "terminal status")

    item = next((i for i in items if i.id == item_id), None)
    if item is None:
        return AutomationDecision(NONE, "unknown item")
    if item.is_custom or not item.associated_stage:
        return AutomationDecision(NONE, "item has no stage")

    stage = get_stage(item.associated_stage)
    if stage is None:
        return AutomationDecision(NONE, "item stage no longer exists")
    if not has_auto_advance_rule(stage, template_stages):
        return AutomationDecision(NONE, "stage has no auto-advance gate", stage_id=stage.id)

    rule_id = auto_advance_rule_id(stage.id)
    stage_items = [i for i in items if i.associated_stage == stage.id]
    done_after = all(i.completed for i in stage_items)
    done_before = all(was_completed if i.id == item.id else i.completed for i in stage_items)

    if done_after and not done_before:
        if status != stage.id:
            return AutomationDecision(NONE, "stage is not the current status", stage.id, rule_id)
        if not settings.rule_enabled(rule_id):
            return AutomationDecision(NONE, "rule disabled", stage.id, rule_id)
        return AutomationDecision(
            ADVANCE, "stage checklist completed", stage.id, rule_id,
            target_status=next_stage(stage.id).id,
        )

    if done_before and not done_after:
        current_idx = stage_index(status)
        if current_idx is None or current_idx <= stage_index(stage.id):
            return AutomationDecision(NONE, "status is not past the stage", stage.id, rule_id)
        if not settings.rule_enabled(rule_id):
            return AutomationDecision(NONE, "rule disabled", stage.id, rule_id)
        return AutomationDecision(
            REVERT, "completed stage reopened", stage.id, rule_id,
            target_status=previous_stage(status).id,
        )

    return AutomationDecision(NONE, "stage completion unchanged", stage.id, rule_id)


def on_checklist_item_toggled(montage, item_id, completed, settings, *, actor=None,
                              was_completed=None, notifier=None):
    """
    Re-evaluate automation after a committed checklist toggle and apply
    the resulting transition, if any.

    Returns the AutomationDecision, with ``applied`` set when the status
    actually changed.
    """
    if was_completed is None:
        was_completed = not completed
    decision = evaluate_toggle(
        montage.status, montage.checklist_items, item_id, was_completed, settings,
        stages_with_templates(list_templates()),
    )
    if not decision.fires:
        logger.debug("montage=%s item=%s automation=none (%s)", montage.id, item_id, decision.reason)
        return decision

    try:
        transition(montage, decision.target_status, actor, settings,
                   source=SOURCE_AUTOMATION, notifier=notifier)
    except (PolicyViolationError, UnknownStatusError) as exc:
        logger.warning(
            "Automation %s (%s) for montage=%s skipped: %s",
            decision.rule_id, decision.action, montage.id, exc,
            extra={"montage_id": montage.id, "rule_id": decision.rule_id},
        )
        record_event(
            montage.id, "automation_skipped",
            f"{decision.action} to '{decision.target_status}' not applied: {exc}",
            actor,
            payload={"rule_id": decision.rule_id, "action": decision.action},
        )
        db.session.commit()
        return replace(decision, applied=False, error=str(exc))

    if decision.action == REVERT:
        logger.info("montage=%s reverted by %s after item=%s was unchecked",
                    montage.id, decision.rule_id, item_id)
    return replace(decision, applied=True)
