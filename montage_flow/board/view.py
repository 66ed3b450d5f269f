"""
Board view — status → ordered cards, as an immutable snapshot.

A move produces a new BoardView that shares every untouched column tuple
with its predecessor; only the source and target columns are rebuilt.
Each snapshot carries a version counter so owners can swap views by
reference and tell which one is newer.
"""

from dataclasses import dataclass, replace
from types import MappingProxyType

from montage_flow.core.exceptions import NotFoundError
from montage_flow.core.process_definition import STAGE_IDS, TERMINAL_STATUSES, status_label


@dataclass(frozen=True)
class BoardCard:
    id: str
    status: str
    client_name: str = ""
    display_id: str | None = None
    installer_id: str | None = None
    updated_at: str | None = None
    items_completed: int = 0
    items_total: int = 0

    @classmethod
    def from_record(cls, record: dict) -> "BoardCard":
        """Build a card from a serialised montage (``Montage.to_dict()`` shape)."""
        items = record.get("checklist_items") or []
        return cls(
            id=record["id"],
            status=record["status"],
            client_name=record.get("client_name") or "",
            display_id=record.get("display_id"),
            installer_id=record.get("installer_id"),
            updated_at=record.get("updated_at"),
            items_completed=sum(1 for i in items if i.get("completed")),
            items_total=len(items),
        )

    def to_dict(self):
        return {
            "id": self.id,
            "status": self.status,
            "client_name": self.client_name,
            "display_id": self.display_id,
            "installer_id": self.installer_id,
            "updated_at": self.updated_at,
            "items_completed": self.items_completed,
            "items_total": self.items_total,
        }


@dataclass(frozen=True)
class BoardView:
    columns: MappingProxyType
    order: tuple
    version: int = 0

    def column(self, status):
        return self.columns.get(status, ())

    def find(self, montage_id):
        """Status column currently holding the card, or None."""
        for status in self.order:
            if any(card.id == montage_id for card in self.columns[status]):
                return status
        return None

    def card(self, montage_id):
        for status in self.order:
            for card in self.columns[status]:
                if card.id == montage_id:
                    return card
        return None

    def to_dict(self):
        return {
            "version": self.version,
            "columns": [
                {
                    "status": status,
                    "label": status_label(status),
                    "cards": [c.to_dict() for c in self.columns[status]],
                }
                for status in self.order
            ],
        }


_DEFAULT_ORDER = STAGE_IDS + tuple(TERMINAL_STATUSES)


def build_board(records, version=0) -> BoardView:
    """Partition montages by status, keeping the input order within a column.

    Every known status gets a column, even when empty; unknown statuses get
    their own column after the known ones, in first-seen order.
    """
    columns = {status: [] for status in _DEFAULT_ORDER}
    order = list(_DEFAULT_ORDER)
    for record in records:
        card = record if isinstance(record, BoardCard) else BoardCard.from_record(record)
        if card.status not in columns:
            columns[card.status] = []
            order.append(card.status)
        columns[card.status].append(card)
    return BoardView(
        columns=MappingProxyType({status: tuple(cards) for status, cards in columns.items()}),
        order=tuple(order),
        version=version,
    )


def apply_move(view: BoardView, montage_id, from_status, to_status, card=None) -> BoardView:
    """
    Return a new view with the card removed from ``from_status`` and
    prepended to ``to_status``.

    If the card is not in ``from_status`` (a stale drag source) it is taken
    from whichever column holds it. ``card`` replaces the moved card's data.
    """
    source = from_status if any(c.id == montage_id for c in view.column(from_status)) else view.find(montage_id)
    if source is None:
        raise NotFoundError(resource="BoardCard", resource_id=montage_id)

    moving = card or next(c for c in view.columns[source] if c.id == montage_id)
    moving = replace(moving, status=to_status)

    columns = dict(view.columns)
    columns[source] = tuple(c for c in view.columns[source] if c.id != montage_id)
    target = tuple(c for c in columns.get(to_status, ()) if c.id != montage_id)
    columns[to_status] = (moving,) + target

    order = view.order if to_status in view.order else view.order + (to_status,)
    return BoardView(columns=MappingProxyType(columns), order=order, version=view.version + 1)


def replace_card(view: BoardView, card: BoardCard) -> BoardView:
    """Swap a card's data in place, or move it if its status changed."""
    current = view.find(card.id)
    if current is None:
        return view
    if current != card.status:
        return apply_move(view, card.id, current, card.status, card=card)
    columns = dict(view.columns)
    columns[current] = tuple(card if c.id == card.id else c for c in view.columns[current])
    return BoardView(columns=MappingProxyType(columns), order=view.order, version=view.version + 1)
