"""
History Service — append-only MontageEvent trail.

``record_event`` only adds to the session; the caller's commit persists the
event together with the change it describes.
"""

import logging

from montage_flow.models import db
from montage_flow.models.montage import MONTAGE_EVENT_TYPES, MontageEvent

logger = logging.getLogger(__name__)


def record_event(montage_id, event_type, message="", actor=None, payload=None):
    if event_type not in MONTAGE_EVENT_TYPES:
        raise ValueError(f"Unknown montage event type: {event_type}")
    event = MontageEvent(
        montage_id=montage_id,
        event_type=event_type,
        message=message,
        actor_id=actor.user_id if actor is not None else None,
        payload=payload,
    )
    db.session.add(event)
    return event


def list_events(montage_id, limit=100):
    """Newest first."""
    return (
        MontageEvent.query.filter_by(montage_id=montage_id)
        .order_by(MontageEvent.created_at.desc(), MontageEvent.id.desc())
        .limit(limit)
        .all()
    )
