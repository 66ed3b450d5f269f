"""
Board backends — where a BoardSession sends moves and fetches canonical state.

A backend exposes:
    request_status_change(montage_id, to_status) -> result
    list_montages(**filters) -> result

Results carry ``ok``, ``data``, ``error`` and ``code`` and are returned,
never raised. ``LocalBoardBackend`` calls the service layer in-process;
``montage_flow.integrations.montage_api.MontageApiClient`` does the same
over HTTP.
"""

from __future__ import annotations

import logging
from contextlib import nullcontext

from flask import current_app, has_app_context

from montage_flow.core.exceptions import (
    ConcurrentModificationError,
    ForbiddenError,
    NotFoundError,
    PolicyViolationError,
    UnknownStatusError,
    ValidationError,
)
from montage_flow.models import db
from montage_flow.services import montage_service
from montage_flow.utils.errors import E

logger = logging.getLogger(__name__)

_ERROR_CODES = {
    NotFoundError: E.NOT_FOUND,
    ValidationError: E.VALIDATION_RULE,
    UnknownStatusError: E.UNKNOWN_STATUS,
    PolicyViolationError: E.POLICY_VIOLATION,
    ConcurrentModificationError: E.CONFLICT_STATE,
    ForbiddenError: E.FORBIDDEN,
}
_SERVICE_ERRORS = tuple(_ERROR_CODES)


class BackendResult:
    """Outcome of a backend call. Always check .ok before using .data."""

    __slots__ = ("ok", "data", "error", "code")

    def __init__(self, *, ok: bool, data=None, error: str | None = None, code: str | None = None) -> None:
        self.ok = ok
        self.data = data
        self.error = error
        self.code = code

    def __repr__(self) -> str:
        return f"<BackendResult ok={self.ok} code={self.code}>"


class LocalBoardBackend:
    """In-process backend bound to an app and an acting user."""

    def __init__(self, app, actor, notifier=None) -> None:
        self.app = app
        self.actor = actor
        self.notifier = notifier

    def _context(self):
        if has_app_context() and current_app._get_current_object() is self.app:
            return nullcontext()
        return self.app.app_context()

    def _failure(self, exc: Exception) -> BackendResult:
        db.session.rollback()
        code = next(c for cls, c in _ERROR_CODES.items() if isinstance(exc, cls))
        return BackendResult(ok=False, error=str(exc), code=code)

    def request_status_change(self, montage_id, to_status, expected_version=None) -> BackendResult:
        with self._context():
            try:
                montage = montage_service.request_status_change(
                    montage_id, to_status, self.actor,
                    expected_version=expected_version, notifier=self.notifier,
                )
            except _SERVICE_ERRORS as exc:
                logger.info("Board move of montage=%s to %s refused: %s", montage_id, to_status, exc)
                return self._failure(exc)
            return BackendResult(ok=True, data=montage.to_dict())

    def toggle_checklist_item(self, montage_id, item_id, completed, expected_version=None) -> BackendResult:
        with self._context():
            try:
                montage, decision = montage_service.toggle_checklist_item(
                    montage_id, item_id, completed, self.actor,
                    expected_version=expected_version, notifier=self.notifier,
                )
            except _SERVICE_ERRORS as exc:
                return self._failure(exc)
            data = montage.to_dict()
            data["automation"] = decision.to_dict()
            return BackendResult(ok=True, data=data)

    def list_montages(self, **filters) -> BackendResult:
        with self._context():
            montages = montage_service.list_montages(**filters)
            return BackendResult(ok=True, data=[m.to_dict() for m in montages])
