"""Standardised API error responses.

Usage
-----
    from montage_flow.utils.errors import api_error, E, register_error_handlers

    return api_error(E.NOT_FOUND, "Montage not found")
    return api_error(E.VALIDATION_RULE, "status is required")

    register_error_handlers(montage_bp)
"""

from __future__ import annotations

import logging

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from montage_flow.core.exceptions import (
    ConcurrentModificationError,
    ForbiddenError,
    NotFoundError,
    PolicyViolationError,
    UnknownStatusError,
    ValidationError,
)

logger = logging.getLogger(__name__)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants."""

    # Validation – HTTP 400 / 422
    VALIDATION_RULE = "ERR_VALIDATION_RULE"
    UNKNOWN_STATUS = "ERR_UNKNOWN_STATUS"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict – HTTP 409
    CONFLICT_STATE = "ERR_CONFLICT_STATE"
    POLICY_VIOLATION = "ERR_POLICY_VIOLATION"

    # Permissions – HTTP 403
    FORBIDDEN = "ERR_FORBIDDEN"

    # Server – HTTP 500
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_RULE: 422,
    E.UNKNOWN_STATUS: 400,
    E.NOT_FOUND: 404,
    E.CONFLICT_STATE: 409,
    E.POLICY_VIOLATION: 409,
    E.FORBIDDEN: 403,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for operators / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload.

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


def register_error_handlers(bp):
    """Attach the service exception → HTTP mapping to a blueprint."""

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_RULE, str(error), details=error.details)

    @bp.errorhandler(UnknownStatusError)
    def _handle_unknown_status(error: UnknownStatusError):
        return api_error(E.UNKNOWN_STATUS, str(error), details={"status": error.status})

    @bp.errorhandler(PolicyViolationError)
    def _handle_policy(error: PolicyViolationError):
        details = {"policy": error.policy} if error.policy else None
        return api_error(E.POLICY_VIOLATION, str(error), details=details)

    @bp.errorhandler(ConcurrentModificationError)
    def _handle_concurrent(error: ConcurrentModificationError):
        return api_error(
            E.CONFLICT_STATE, str(error),
            details={"expected": error.expected, "actual": error.actual},
        )

    @bp.errorhandler(ForbiddenError)
    def _handle_forbidden(error: ForbiddenError):
        return api_error(E.FORBIDDEN, str(error))

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return jsonify({"error": error.description or error.name}), error.code
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")

    return bp
