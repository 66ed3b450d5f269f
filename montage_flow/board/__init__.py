"""
Montage Workflow Service
Pipeline board — optimistic, locally owned view of montages by status.

Usage:
    from montage_flow.board import BoardSession, LocalBoardBackend

    session = BoardSession(LocalBoardBackend(app, actor))
    session.load()
    outcome = session.move(montage_id, "lead", "before_measurement")
"""

from montage_flow.board.backends import BackendResult, LocalBoardBackend
from montage_flow.board.session import BoardSession, MoveOutcome, PendingMove
from montage_flow.board.view import BoardCard, BoardView, apply_move, build_board

__all__ = [
    "BackendResult",
    "BoardCard",
    "BoardSession",
    "BoardView",
    "LocalBoardBackend",
    "MoveOutcome",
    "PendingMove",
    "apply_move",
    "build_board",
]
