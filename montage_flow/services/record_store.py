"""
Record Store — load / save / list montages.

Atomic read/replace over the ORM. There is no row-level locking: a caller
that read a montage at version V can pass ``expected_version=V`` and the
save is refused with ConcurrentModificationError if someone else saved in
between. Without it the last write wins.
"""

import logging

from sqlalchemy import or_

from montage_flow.core.exceptions import ConcurrentModificationError, NotFoundError
from montage_flow.core.process_definition import TERMINAL_STATUSES
from montage_flow.models import db
from montage_flow.models.montage import Montage, MontageChecklistItem

logger = logging.getLogger(__name__)


def load_montage(montage_id) -> Montage:
    montage = db.session.get(Montage, montage_id)
    if montage is None:
        raise NotFoundError(resource="Montage", resource_id=montage_id)
    return montage


def load_item(montage, item_id) -> MontageChecklistItem:
    item = next((i for i in montage.checklist_items if i.id == item_id), None)
    if item is None:
        raise NotFoundError(resource="ChecklistItem", resource_id=item_id)
    return item


def check_version(montage, expected_version):
    """Raise if ``expected_version`` is given and no longer matches the stored one."""
    if not expected_version:
        return
    if montage.version != expected_version:
        logger.info("Stale write refused for montage=%s expected=%s stored=%s",
                    montage.id, expected_version, montage.version)
        raise ConcurrentModificationError(montage.id, expected_version, montage.version)


def save_montage(montage, *, expected_version=None) -> Montage:
    """Stamp a new version and commit."""
    check_version(montage, expected_version)
    montage.touch()
    db.session.add(montage)
    db.session.commit()
    return montage


def list_montages(status=None, installer_id=None, search=None, archived=None) -> list[Montage]:
    """Return montages, most recently changed first.

    Args:
        status: exact status filter.
        installer_id: only montages assigned to this installer.
        search: case-insensitive match on client name or display id.
        archived: True → terminal statuses only, False → active only.
    """
    q = Montage.query
    if status:
        q = q.filter(Montage.status == status)
    if installer_id:
        q = q.filter(Montage.installer_id == installer_id)
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(or_(Montage.client_name.ilike(like), Montage.display_id.ilike(like)))
    if archived is True:
        q = q.filter(Montage.status.in_(list(TERMINAL_STATUSES)))
    elif archived is False:
        q = q.filter(Montage.status.notin_(list(TERMINAL_STATUSES)))
    return q.order_by(Montage.updated_at.desc(), Montage.id).all()
