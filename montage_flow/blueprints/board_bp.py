"""
Board Blueprint — canonical board partition and the process definition.

Endpoints:
  GET /board            columns of montages by status (filters: installer_id, q, archived)
  GET /board/process    stages, checkpoints, templates and rule enablement
"""

from flask import Blueprint, jsonify, request

from montage_flow.board.view import build_board
from montage_flow.services import montage_service
from montage_flow.services.process_state import describe_process
from montage_flow.services.settings_service import load_settings
from montage_flow.utils.errors import register_error_handlers

board_bp = Blueprint("board", __name__, url_prefix="/api/v1/board")
register_error_handlers(board_bp)


@board_bp.route("", methods=["GET"])
def get_board():
    archived = request.args.get("archived")
    montages = montage_service.list_montages(
        installer_id=request.args.get("installer_id") or None,
        search=request.args.get("q") or None,
        archived=None if not archived else archived.lower() in ("1", "true", "yes"),
    )
    return jsonify(build_board([m.to_dict() for m in montages]).to_dict())


@board_bp.route("/process", methods=["GET"])
def get_process():
    return jsonify(describe_process(load_settings()))
