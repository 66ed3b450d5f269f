"""
Status Transition State Machine — the only writer of ``Montage.status``.

Shape: a linear chain of stages plus two absorbing terminal states
(``completed``, ``cancelled``). Any known status may be requested manually
from a non-terminal one; the automation engine may only move between stages.

Manual backward moves do not touch checklist items.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from montage_flow.core.exceptions import PolicyViolationError, UnknownStatusError
from montage_flow.core.process_definition import (
    INITIAL_STATUS,
    is_known_status,
    is_terminal,
    status_label,
)
from montage_flow.models import db
from montage_flow.services.history import record_event
from montage_flow.services.notification import NotificationService
from montage_flow.services.settings_service import REQUIRE_INSTALLER_FOR_MEASUREMENT

logger = logging.getLogger(__name__)

SOURCE_MANUAL = "manual"
SOURCE_AUTOMATION = "automation"
TRANSITION_SOURCES = {SOURCE_MANUAL, SOURCE_AUTOMATION}


@dataclass(frozen=True)
class StatusChangeEvent:
    montage_id: str
    from_status: str
    to_status: str
    source: str
    actor_id: str | None = None


def check_transition(montage, requested_status, settings, *, source=SOURCE_MANUAL):
    """Raise if ``requested_status`` may not be applied; never mutates."""
    if source not in TRANSITION_SOURCES:
        raise ValueError(f"Unknown transition source: {source}")
    if not is_known_status(requested_status):
        raise UnknownStatusError(requested_status)

    current = montage.status
    if requested_status == current:
        return

    if is_terminal(current):
        raise PolicyViolationError(
            f"Montage is {status_label(current).lower()}; its status can no longer change",
            policy="terminal_status",
        )
    if source == SOURCE_AUTOMATION and is_terminal(requested_status):
        raise PolicyViolationError(
            f"Automation cannot move a montage to '{requested_status}'",
            policy="manual_terminal_only",
        )
    if (
        current == INITIAL_STATUS
        and requested_status != "cancelled"
        and settings.require_installer_for_measurement
        and not montage.installer_id
    ):
        raise PolicyViolationError(
            "Assign an installer before converting the lead",
            policy=REQUIRE_INSTALLER_FOR_MEASUREMENT,
        )


def transition(montage, requested_status, actor, settings, *, source=SOURCE_MANUAL, notifier=None):
    """
    Validate and apply a status change, then dispatch the notification.

    Args:
        montage: the Montage to change (attached to the session).
        requested_status: target stage id or terminal status.
        actor: the caller, recorded in history.
        settings: AutomationSettings snapshot read for this operation.
        source: "manual" or "automation".
        notifier: callable(StatusChangeEvent); defaults to the in-app
            notification dispatcher.

    Returns:
        The updated montage. A request for the current status is a no-op.
    """
    check_transition(montage, requested_status, settings, source=source)

    from_status = montage.status
    if requested_status == from_status:
        return montage

    montage.status = requested_status
    montage.touch()
    montage.completed_at = datetime.now(timezone.utc) if requested_status == "completed" else None
    record_event(
        montage.id, "status_change",
        f"{status_label(from_status)} → {status_label(requested_status)}",
        actor,
        payload={"from": from_status, "to": requested_status, "source": source},
    )
    db.session.commit()

    logger.info(
        "montage=%s %s -> %s source=%s", montage.id, from_status, requested_status, source,
        extra={
            "montage_id": montage.id,
            "from_status": from_status,
            "to_status": requested_status,
            "source": source,
        },
    )

    event = StatusChangeEvent(
        montage_id=montage.id,
        from_status=from_status,
        to_status=requested_status,
        source=source,
        actor_id=actor.user_id if actor is not None else None,
    )
    _dispatch(notifier or NotificationService.notify_status_change, event)
    return montage


def _dispatch(notifier, event):
    try:
        notifier(event)
    except Exception:
        db.session.rollback()
        logger.warning("Status notification failed for montage=%s", event.montage_id,
                       exc_info=True, extra={"montage_id": event.montage_id})
