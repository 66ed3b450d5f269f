"""
BoardSession — owner of one board view and its optimistic moves.

    begin_move   apply the move locally, hand out a pending token
    confirm_move server accepted; keep the view, clear the token
    reject_move  server refused; rebuild the whole view from canonical data

Several moves may be pending at once and resolve independently. A
rejection rebuilds from canonical state, which also drops the optimistic
effect of any other move that has not been confirmed yet: the last
reconciliation wins, views are never merged.

Tokens that are never resolved (closed window, navigation) leak nothing:
the view can always be rebuilt from canonical data.
"""

import logging
import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone

from montage_flow.board.view import BoardCard, BoardView, apply_move, build_board, replace_card
from montage_flow.core.exceptions import NotFoundError
from montage_flow.utils.errors import E

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingMove:
    montage_id: str
    from_status: str
    to_status: str
    base_version: int
    token: str = field(default_factory=lambda: uuid.uuid4().hex)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class MoveOutcome:
    ok: bool
    view: BoardView
    montage: dict | None = None
    error: str | None = None
    code: str | None = None


def _token_key(token):
    return token.token if isinstance(token, PendingMove) else token


class BoardSession:
    """Thread-safe holder of the current BoardView for one UI session."""

    def __init__(self, backend=None, records=()):
        self._backend = backend
        self._lock = threading.Lock()
        self._view = build_board(records)
        self._pending = {}
        self.last_error = None

    @property
    def view(self) -> BoardView:
        return self._view

    # ── Canonical state ──────────────────────────────────────────────────

    def refresh(self, records) -> BoardView:
        """Replace the view with a fresh partition of ``records``."""
        with self._lock:
            self._view = build_board(records, version=self._view.version + 1)
            return self._view

    def load(self, **filters):
        """Fetch canonical montages from the backend and rebuild the view."""
        result = self._backend.list_montages(**filters)
        if result.ok:
            self.refresh(result.data)
        else:
            logger.warning("Board refresh failed: %s", result.error)
        return result

    # ── Optimistic moves ─────────────────────────────────────────────────

    def begin_move(self, montage_id, from_status, to_status):
        """
        Move the card locally before the server has answered.

        Returns ``(view, pending)``; ``pending`` is None when the move is a
        no-op (same column).
        """
        with self._lock:
            if from_status == to_status:
                return self._view, None
            new_view = apply_move(self._view, montage_id, from_status, to_status)
            pending = PendingMove(
                montage_id=montage_id,
                from_status=from_status,
                to_status=to_status,
                base_version=self._view.version,
            )
            self._pending[pending.token] = pending
            self._view = new_view
            return new_view, pending

    def confirm_move(self, token, record=None) -> BoardView:
        """
        Keep the optimistic view; ``record`` (server copy) refreshes the
        card's data.

        The card stays in the column it occupies now, so a later move of the
        same card that is still pending keeps its optimistic placement.
        """
        with self._lock:
            pending = self._pending.pop(_token_key(token), None)
            if pending is None:
                logger.debug("confirm_move: unknown or already resolved token %s", _token_key(token))
            if record is not None:
                card = BoardCard.from_record(record)
                column = self._view.find(card.id)
                if column is not None:
                    self._view = replace_card(self._view, replace(card, status=column))
            return self._view

    def reject_move(self, token, canonical_records=None, error=None) -> BoardView:
        """
        Discard the optimistic view.

        With ``canonical_records`` the whole board is rebuilt from them.
        Without (canonical fetch failed) only this move is undone locally.
        """
        with self._lock:
            pending = self._pending.pop(_token_key(token), None)
            self.last_error = error
            if canonical_records is not None:
                self._view = build_board(canonical_records, version=self._view.version + 1)
            elif pending is not None:
                try:
                    self._view = apply_move(self._view, pending.montage_id, pending.to_status, pending.from_status)
                except NotFoundError:
                    logger.debug("reject_move: card %s no longer on the board", pending.montage_id)
            return self._view

    def is_pending(self, montage_id) -> bool:
        """True while a move of this card awaits the server (card should be disabled)."""
        with self._lock:
            return any(p.montage_id == montage_id for p in self._pending.values())

    def pending_moves(self):
        with self._lock:
            return tuple(self._pending.values())

    # ── Round trip ───────────────────────────────────────────────────────

    def move(self, montage_id, from_status, to_status) -> MoveOutcome:
        """begin → backend request → confirm, or reject with a canonical re-fetch."""
        try:
            view, pending = self.begin_move(montage_id, from_status, to_status)
        except NotFoundError as exc:
            logger.info("Move of montage=%s ignored: card is not on the board", montage_id,
                        extra={"montage_id": montage_id})
            with self._lock:
                self.last_error = str(exc)
            return MoveOutcome(ok=False, view=self._view, error=str(exc), code=E.NOT_FOUND)
        if pending is None:
            return MoveOutcome(ok=True, view=view)

        result = self._backend.request_status_change(montage_id, to_status)
        if result.ok:
            view = self.confirm_move(pending, result.data)
            return MoveOutcome(ok=True, view=view, montage=result.data)

        logger.warning("Move of montage=%s %s -> %s rejected: %s",
                       montage_id, from_status, to_status, result.error,
                       extra={"montage_id": montage_id, "from_status": from_status, "to_status": to_status})
        canonical = self._backend.list_montages()
        view = self.reject_move(pending, canonical.data if canonical.ok else None, error=result.error)
        return MoveOutcome(ok=False, view=view, error=result.error, code=result.code)
