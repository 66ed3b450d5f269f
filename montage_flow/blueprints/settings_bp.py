"""
Settings Blueprint — checklist templates, automation rules, policy flags.

Endpoints:
  GET /settings/checklist-templates
  PUT /settings/checklist-templates            (admin, full replace)
  GET /settings/automations
  PUT /settings/automations/<rule_id>          (admin)
  GET /settings/policies
  PUT /settings/policies/<key>                 (admin)
"""

from flask import Blueprint, jsonify, request

from montage_flow.auth import get_actor
from montage_flow.core.exceptions import ValidationError
from montage_flow.services import automation_engine, settings_service
from montage_flow.services.checklist_template_service import list_templates, upsert_templates
from montage_flow.utils.errors import register_error_handlers

settings_bp = Blueprint("settings", __name__, url_prefix="/api/v1/settings")
register_error_handlers(settings_bp)


def _bool_field(data, name):
    value = data.get(name)
    if not isinstance(value, bool):
        raise ValidationError(f"{name} must be a boolean", details={name: value})
    return value


# ── Checklist templates ──────────────────────────────────────────────────────

@settings_bp.route("/checklist-templates", methods=["GET"])
def get_templates():
    templates = list_templates()
    return jsonify({"items": [t.to_dict() for t in templates], "total": len(templates)})


@settings_bp.route("/checklist-templates", methods=["PUT"])
def put_templates():
    data = request.get_json(silent=True) or {}
    entries = data.get("templates") if isinstance(data, dict) else data
    templates = upsert_templates(entries, get_actor())
    return jsonify({"items": [t.to_dict() for t in templates], "total": len(templates)})


# ── Automation rules ─────────────────────────────────────────────────────────

@settings_bp.route("/automations", methods=["GET"])
def get_automations():
    rules = automation_engine.list_rules(settings_service.load_settings())
    return jsonify({"items": rules, "total": len(rules)})


@settings_bp.route("/automations/<rule_id>", methods=["PUT"])
def put_automation(rule_id):
    data = request.get_json(silent=True) or {}
    enabled = _bool_field(data, "enabled")
    return jsonify(automation_engine.set_rule_enabled(rule_id, enabled, get_actor()))


# ── Policy flags ─────────────────────────────────────────────────────────────

@settings_bp.route("/policies", methods=["GET"])
def get_policies():
    return jsonify({"items": settings_service.list_policies()})


@settings_bp.route("/policies/<key>", methods=["PUT"])
def put_policy(key):
    data = request.get_json(silent=True) or {}
    row = settings_service.set_bool(key, data.get("value"), get_actor())
    return jsonify(row.to_dict())
