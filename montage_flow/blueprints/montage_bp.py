"""
Montage Blueprint — board-facing API.

Endpoints:
  Montage:    GET/POST /montages, GET/PATCH /montages/<id>
              POST /montages/<id>/status
  Checklist:  POST   /montages/<id>/checklist/init
              POST   /montages/<id>/checklist
              PATCH  /montages/<id>/checklist/<item_id>      (completed / label)
              DELETE /montages/<id>/checklist/<item_id>      (admin)
              POST   /montages/<id>/checklist/<item_id>/attachment  (multipart "file")
  Read model: GET /montages/<id>/process
              GET /montages/<id>/history
              GET /montages/<id>/notifications
              POST /montages/<id>/notifications/<nid>/read
              POST /montages/<id>/notifications/read-all

Every write returns the full post-automation montage, so the board can
resynchronise from the response alone. ``expected_updated_at`` in a write
body enables the stale-write check.
"""

from flask import Blueprint, jsonify, request

from montage_flow.auth import get_actor
from montage_flow.core.exceptions import ValidationError
from montage_flow.services import montage_service
from montage_flow.services.notification import NotificationService
from montage_flow.services.process_state import compute_process_state
from montage_flow.services.settings_service import load_settings
from montage_flow.utils.errors import register_error_handlers

montage_bp = Blueprint("montages", __name__, url_prefix="/api/v1/montages")
register_error_handlers(montage_bp)


def _json_body():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _parse_bool_arg(name):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    return raw.lower() in ("1", "true", "yes", "on")


# ═════════════════════════════════════════════════════════════════════════════
# Montage CRUD + status
# ═════════════════════════════════════════════════════════════════════════════

@montage_bp.route("", methods=["GET"])
def list_montages():
    """List montages filtered by status, installer, free text and archive flag."""
    items = montage_service.list_montages(
        status=request.args.get("status") or None,
        installer_id=request.args.get("installer_id") or None,
        search=request.args.get("q") or None,
        archived=_parse_bool_arg("archived"),
    )
    include_checklist = _parse_bool_arg("include_checklist")
    return jsonify({
        "items": [m.to_dict(include_checklist=include_checklist is not False) for m in items],
        "total": len(items),
    })


@montage_bp.route("", methods=["POST"])
def create_montage():
    data = _json_body()
    montage = montage_service.create_montage(
        data, get_actor(), initialize_checklist=data.get("initialize_checklist", True) is not False,
    )
    return jsonify(montage.to_dict()), 201


@montage_bp.route("/<montage_id>", methods=["GET"])
def get_montage(montage_id):
    return jsonify(montage_service.get_montage(montage_id).to_dict())


@montage_bp.route("/<montage_id>", methods=["PATCH"])
def update_montage(montage_id):
    data = _json_body()
    expected = data.pop("expected_updated_at", None)
    montage = montage_service.update_montage(montage_id, data, get_actor(), expected_version=expected)
    return jsonify(montage.to_dict())


@montage_bp.route("/<montage_id>/status", methods=["POST"])
def change_status(montage_id):
    """Manual status change (board drag or status picker)."""
    data = _json_body()
    status = data.get("status")
    if not status:
        raise ValidationError("status is required", details={"status": "required"})
    montage = montage_service.request_status_change(
        montage_id, status, get_actor(), expected_version=data.get("expected_updated_at"),
    )
    return jsonify(montage.to_dict())


# ═════════════════════════════════════════════════════════════════════════════
# Checklist
# ═════════════════════════════════════════════════════════════════════════════

@montage_bp.route("/<montage_id>/checklist/init", methods=["POST"])
def init_checklist(montage_id):
    montage = montage_service.initialize_checklist(montage_id, get_actor())
    return jsonify(montage.to_dict())


@montage_bp.route("/<montage_id>/checklist", methods=["POST"])
def add_checklist_item(montage_id):
    data = _json_body()
    actor = get_actor()
    montage_service.add_checklist_item(
        montage_id, data.get("label"), actor, allow_attachment=bool(data.get("allow_attachment", False)),
    )
    return jsonify(montage_service.get_montage(montage_id).to_dict()), 201


@montage_bp.route("/<montage_id>/checklist/<item_id>", methods=["PATCH"])
def update_checklist_item(montage_id, item_id):
    """Rename (``label``) and/or toggle (``completed``) one item."""
    data = _json_body()
    if "label" not in data and "completed" not in data:
        raise ValidationError("Provide 'completed' and/or 'label'")
    if "completed" in data and not isinstance(data["completed"], bool):
        raise ValidationError("completed must be a boolean", details={"completed": data["completed"]})
    actor = get_actor()
    expected = data.get("expected_updated_at")

    if "label" in data:
        montage_service.rename_checklist_item(
            montage_id, item_id, data["label"], actor, expected_version=expected,
        )
        expected = None

    automation = None
    if "completed" in data:
        _, decision = montage_service.toggle_checklist_item(
            montage_id, item_id, data["completed"], actor,
            expected_version=expected,
        )
        automation = decision.to_dict()

    body = montage_service.get_montage(montage_id).to_dict()
    body["automation"] = automation
    return jsonify(body)


@montage_bp.route("/<montage_id>/checklist/<item_id>", methods=["DELETE"])
def delete_checklist_item(montage_id, item_id):
    montage_service.delete_checklist_item(montage_id, item_id, get_actor())
    return jsonify(montage_service.get_montage(montage_id).to_dict())


@montage_bp.route("/<montage_id>/checklist/<item_id>/attachment", methods=["POST"])
def upload_attachment(montage_id, item_id):
    item = montage_service.attach_file(montage_id, item_id, request.files.get("file"), get_actor())
    return jsonify(item.to_dict()), 201


# ═════════════════════════════════════════════════════════════════════════════
# Read models
# ═════════════════════════════════════════════════════════════════════════════

@montage_bp.route("/<montage_id>/process", methods=["GET"])
def process_state(montage_id):
    montage = montage_service.get_montage(montage_id)
    return jsonify(compute_process_state(montage, load_settings()))


@montage_bp.route("/<montage_id>/history", methods=["GET"])
def history(montage_id):
    limit = request.args.get("limit", 100, type=int)
    events = montage_service.get_history(montage_id, limit=min(max(limit, 1), 500))
    return jsonify({"items": [e.to_dict() for e in events], "total": len(events)})


@montage_bp.route("/<montage_id>/notifications", methods=["GET"])
def notifications(montage_id):
    montage_service.get_montage(montage_id)
    unread_only = _parse_bool_arg("unread") is True
    items, total = NotificationService.list_for_montage(montage_id, unread_only=unread_only)
    return jsonify({"items": [n.to_dict() for n in items], "total": total})


@montage_bp.route("/<montage_id>/notifications/<int:notification_id>/read", methods=["POST"])
def mark_notification_read(montage_id, notification_id):
    montage_service.get_montage(montage_id)
    return jsonify(NotificationService.mark_read(montage_id, notification_id).to_dict())


@montage_bp.route("/<montage_id>/notifications/read-all", methods=["POST"])
def mark_all_notifications_read(montage_id):
    montage_service.get_montage(montage_id)
    return jsonify({"updated": NotificationService.mark_all_read(montage_id)})
