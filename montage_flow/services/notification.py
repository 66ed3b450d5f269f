"""
Montage Workflow Service
Notification Service.

Creates and queries in-app notifications. ``notify_status_change`` is the
dispatcher the status state machine calls after a committed transition:
it is fire-and-forget and never raises.
"""

import logging
from datetime import datetime, timezone

from montage_flow.core.exceptions import NotFoundError
from montage_flow.core.process_definition import status_label
from montage_flow.models import db
from montage_flow.models.notification import Notification

logger = logging.getLogger(__name__)


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def create(*, title, message="", category="system", severity="info",
               recipient="all", montage_id=None, from_status=None, to_status=None):
        """
        Create a single notification record.

        Returns:
            The created Notification instance (already committed).
        """
        notif = Notification(
            montage_id=montage_id,
            recipient=recipient,
            title=title,
            message=message,
            category=category,
            severity=severity,
            from_status=from_status,
            to_status=to_status,
        )
        db.session.add(notif)
        db.session.commit()
        return notif

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_montage(montage_id, unread_only=False, limit=50, offset=0):
        """Notifications for one montage, newest first."""
        q = Notification.query.filter_by(montage_id=montage_id)
        if unread_only:
            q = q.filter_by(is_read=False)
        total = q.count()
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset).limit(limit).all()
        )
        return items, total

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(montage_id, notification_id):
        """Mark one of a montage's notifications as read."""
        notif = db.session.get(Notification, notification_id)
        if notif is None or notif.montage_id != montage_id:
            raise NotFoundError(resource="Notification", resource_id=notification_id)
        if not notif.is_read:
            notif.mark_read()
            db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(montage_id):
        now = datetime.now(timezone.utc)
        count = Notification.query.filter_by(montage_id=montage_id, is_read=False).update(
            {"is_read": True, "read_at": now}, synchronize_session="fetch",
        )
        db.session.commit()
        return count

    # ── Dispatcher ────────────────────────────────────────────────────────

    @staticmethod
    def notify_status_change(event):
        """
        Record a status-change notification for ``event``
        (a ``StatusChangeEvent``). Failures are logged and swallowed; the
        transition has already been committed and must stand.
        """
        try:
            return NotificationService.create(
                title=f"Status changed: {status_label(event.to_status)}",
                message=(
                    f"{status_label(event.from_status)} → {status_label(event.to_status)}"
                    f" ({event.source})"
                ),
                category="status",
                severity="success" if event.to_status == "completed" else "info",
                montage_id=event.montage_id,
                from_status=event.from_status,
                to_status=event.to_status,
            )
        except Exception:
            db.session.rollback()
            logger.warning(
                "Notification dispatch failed for montage=%s %s -> %s",
                event.montage_id, event.from_status, event.to_status,
                exc_info=True,
                extra={"montage_id": event.montage_id},
            )
            return None
