"""
Montage Workflow Service
Caller identity & role checks.

Authentication happens upstream (reverse proxy / SSO gateway). This module
only resolves the already-authenticated caller from request headers:

    X-User-Id    — opaque user id, recorded in history and notifications
    X-User-Role  — admin | office | installer

Missing headers resolve to the ``system`` actor with the ``office`` role
when ``ALLOW_ANONYMOUS_ACTOR`` is set (development / testing only);
otherwise the request is rejected with 401.
"""

import logging
from dataclasses import dataclass

from flask import current_app, g, jsonify, request

from montage_flow.core.exceptions import ForbiddenError

logger = logging.getLogger(__name__)

# ── Roles ────────────────────────────────────────────────────────────────────

ROLES = {"admin", "office", "installer"}


@dataclass(frozen=True)
class Actor:
    """Who is performing an operation."""

    user_id: str
    role: str

    @property
    def is_admin(self):
        return self.role == "admin"


SYSTEM_ACTOR = Actor(user_id="system", role="office")


def require_admin(actor: Actor, action: str = "this operation"):
    """Raise ForbiddenError unless the actor is an administrator."""
    if actor is None or not actor.is_admin:
        role = actor.role if actor else None
        logger.warning("Access denied: role '%s' attempted %s", role, action)
        raise ForbiddenError(f"Administrator role required for {action}", role=role)


def resolve_actor():
    """Build an Actor from the current request headers, or None if absent/invalid."""
    user_id = (request.headers.get("X-User-Id") or "").strip()
    role = (request.headers.get("X-User-Role") or "").strip().lower()
    if not user_id and not role:
        if current_app.config.get("ALLOW_ANONYMOUS_ACTOR", False):
            return SYSTEM_ACTOR
        return None
    if role not in ROLES:
        logger.warning("Unknown role '%s' for user '%s'", role, user_id)
        return None
    return Actor(user_id=user_id or "anonymous", role=role)


def get_actor() -> Actor:
    """Actor resolved for this request (set by the before_request hook)."""
    actor = getattr(g, "actor", None)
    if actor is None:
        actor = resolve_actor() or SYSTEM_ACTOR
        g.actor = actor
    return actor


def init_auth(app):
    """Resolve the caller for every /api/v1/ request except health checks."""

    @app.before_request
    def _resolve_request_actor():
        if not request.path.startswith("/api/v1/"):
            return None
        if request.path.startswith("/api/v1/health"):
            return None
        if request.method == "OPTIONS":
            return None

        actor = resolve_actor()
        if actor is None:
            return jsonify({"error": "Authentication required. Provide X-User-Id and X-User-Role headers."}), 401
        g.actor = actor
        return None
