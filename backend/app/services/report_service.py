"""
Report service: read-only projections over items and movements.

Windowed reports take a [from, to] date range, inclusive on both days, that
defaults to the trailing 30 days ending today (UTC).
"""
import csv
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from io import StringIO
from typing import Any, Dict, Iterable, Iterator, List, Optional, TypedDict

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from app.core.errors import ValidationError
from app.models.category import Category
from app.models.item import Item
from app.models.movement import Movement, MovementKind
from app.models.user import User


DEFAULT_WINDOW_DAYS = 30

EXPORT_HEADERS = [
    "fecha",
    "tipo",
    "codigo",
    "producto",
    "cantidad",
    "precio_unitario",
    "total",
    "categoria",
    "usuario",
]


class KpiData(TypedDict):
    range: Dict[str, str]
    inventory_value: float
    items_in_alert: int
    inbound: int
    outbound: int
    outbound_cost: float


@dataclass(frozen=True)
class ReportWindow:
    date_from: date
    date_to: date

    @property
    def start(self) -> datetime:
        return datetime.combine(self.date_from, time.min, tzinfo=timezone.utc)

    @property
    def end(self) -> datetime:
        # Exclusive upper bound: midnight after the last day
        return datetime.combine(self.date_to + timedelta(days=1), time.min, tzinfo=timezone.utc)

    def as_dict(self) -> Dict[str, str]:
        return {"from": self.date_from.isoformat(), "to": self.date_to.isoformat()}


def resolve_window(
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    today: Optional[date] = None,
) -> ReportWindow:
    today = today or datetime.now(timezone.utc).date()
    window = ReportWindow(
        date_from=date_from or today - timedelta(days=DEFAULT_WINDOW_DAYS),
        date_to=date_to or today,
    )
    if window.date_from > window.date_to:
        raise ValidationError("from must be on or before to", field="from")
    return window


def sanitize_limit(value: Optional[int], default: int = 5, maximum: int = 100) -> int:
    if value is None:
        return default
    return min(max(int(value), 1), maximum)


def _movement_filters(window: ReportWindow, actor_id: Optional[int] = None, kind: Optional[str] = None) -> list:
    filters = [Movement.created_at >= window.start, Movement.created_at < window.end]
    if actor_id is not None:
        filters.append(Movement.actor_id == actor_id)
    if kind is not None:
        filters.append(Movement.kind == kind)
    return filters


def _sum_kind(kind: MovementKind):
    return func.coalesce(func.sum(case((Movement.kind == kind.value, Movement.quantity), else_=0)), 0)


# ---------------------------------------------------------------------------
# Snapshot reports (no window)
# ---------------------------------------------------------------------------

def total_items(db: Session) -> int:
    return int(db.query(func.count(Item.id)).scalar() or 0)


def total_units(db: Session) -> int:
    return int(db.query(func.coalesce(func.sum(Item.quantity), 0)).scalar() or 0)


def total_value(db: Session) -> float:
    value = db.query(func.coalesce(func.sum(Item.quantity * Item.unit_price), 0)).scalar()
    return float(value or 0)


def items_by_stock(db: Session, limit: int, descending: bool = True) -> List[Dict[str, Any]]:
    order = Item.quantity.desc() if descending else Item.quantity.asc()
    rows = (
        db.query(Item.id, Item.name, Item.quantity)
        .order_by(order, Item.id.asc())
        .limit(limit)
        .all()
    )
    return [{"id": r.id, "name": r.name, "quantity": r.quantity} for r in rows]


def low_stock(db: Session) -> List[Dict[str, Any]]:
    """Items below their minimum, largest shortfall first."""
    rows = (
        db.query(Item.id, Item.name, Item.quantity, Item.stock_min)
        .filter(Item.quantity < Item.stock_min)
        .order_by((Item.stock_min - Item.quantity).desc(), Item.name.asc())
        .all()
    )
    return [
        {"id": r.id, "name": r.name, "quantity": r.quantity, "stock_min": r.stock_min}
        for r in rows
    ]


# ---------------------------------------------------------------------------
# Windowed reports
# ---------------------------------------------------------------------------

def kpis(db: Session, window: ReportWindow) -> KpiData:
    in_window = _movement_filters(window)
    totals = db.query(
        _sum_kind(MovementKind.inbound).label("inbound"),
        _sum_kind(MovementKind.outbound).label("outbound"),
    ).filter(*in_window).one()

    outbound_cost = (
        db.query(func.coalesce(func.sum(Movement.quantity * Item.unit_price), 0))
        .select_from(Movement)
        .join(Item, Item.id == Movement.item_id)
        .filter(Movement.kind == MovementKind.outbound.value, *in_window)
        .scalar()
    )
    items_in_alert = db.query(func.count(Item.id)).filter(Item.quantity < Item.stock_min).scalar()

    return {
        "range": window.as_dict(),
        "inventory_value": total_value(db),
        "items_in_alert": int(items_in_alert or 0),
        "inbound": int(totals.inbound or 0),
        "outbound": int(totals.outbound or 0),
        "outbound_cost": float(outbound_cost or 0),
    }


def series(
    db: Session,
    window: ReportWindow,
    actor_id: Optional[int] = None,
    kind: Optional[str] = None,
) -> Dict[str, Any]:
    """Inbound and outbound totals per day."""
    day = func.date(Movement.created_at)
    rows = (
        db.query(
            day.label("day"),
            _sum_kind(MovementKind.inbound).label("inbound"),
            _sum_kind(MovementKind.outbound).label("outbound"),
        )
        .filter(*_movement_filters(window, actor_id, kind))
        .group_by(day)
        .order_by(day)
        .all()
    )
    return {
        "range": window.as_dict(),
        "series": [
            {"day": str(r.day), "inbound": int(r.inbound or 0), "outbound": int(r.outbound or 0)}
            for r in rows
        ],
    }


def top_consumption(db: Session, window: ReportWindow, limit: int) -> Dict[str, Any]:
    total = func.sum(Movement.quantity).label("total_outbound")
    rows = (
        db.query(Item.id, Item.name, total)
        .select_from(Item)
        .join(Movement, Movement.item_id == Item.id)
        .filter(Movement.kind == MovementKind.outbound.value, *_movement_filters(window))
        .group_by(Item.id, Item.name)
        .order_by(total.desc(), Item.id.asc())
        .limit(limit)
        .all()
    )
    return {
        "range": window.as_dict(),
        "items": [{"id": r.id, "name": r.name, "total_outbound": int(r.total_outbound or 0)} for r in rows],
    }


def consumption_by_category(db: Session, window: ReportWindow) -> Dict[str, Any]:
    total = func.coalesce(func.sum(Movement.quantity), 0).label("total")
    rows = (
        db.query(Category.id.label("category_id"), Category.name.label("category"), total)
        .select_from(Movement)
        .join(Item, Item.id == Movement.item_id)
        .outerjoin(Category, Category.id == Item.category_id)
        .filter(Movement.kind == MovementKind.outbound.value, *_movement_filters(window))
        .group_by(Category.id, Category.name)
        .order_by(total.desc())
        .all()
    )
    return {
        "range": window.as_dict(),
        "items": [
            {"category_id": r.category_id, "category": r.category, "total": int(r.total or 0)}
            for r in rows
        ],
    }


def movements_by_user(db: Session, window: ReportWindow) -> Dict[str, Any]:
    inbound = _sum_kind(MovementKind.inbound).label("inbound")
    outbound = _sum_kind(MovementKind.outbound).label("outbound")
    rows = (
        db.query(User.id.label("user_id"), User.name, inbound, outbound)
        .select_from(Movement)
        .outerjoin(User, User.id == Movement.actor_id)
        .filter(*_movement_filters(window))
        .group_by(User.id, User.name)
        .order_by(outbound.desc(), inbound.desc())
        .all()
    )
    return {
        "range": window.as_dict(),
        "items": [
            {"user_id": r.user_id, "name": r.name, "inbound": int(r.inbound or 0), "outbound": int(r.outbound or 0)}
            for r in rows
        ],
    }


# ---------------------------------------------------------------------------
# CSV export
# ---------------------------------------------------------------------------

def export_rows(
    db: Session,
    window: ReportWindow,
    actor_id: Optional[int] = None,
    kind: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """
    Movement rows for the CSV export, newest first. Movements of deleted items
    keep their snapshot name/code and carry no price.
    """
    rows = (
        db.query(
            Movement.created_at,
            Movement.kind,
            func.coalesce(Movement.item_code, Item.code).label("code"),
            func.coalesce(Movement.item_name, Item.name).label("name"),
            Movement.quantity,
            Item.unit_price,
            Category.name.label("category"),
            User.name.label("user"),
        )
        .select_from(Movement)
        .outerjoin(Item, Item.id == Movement.item_id)
        .outerjoin(Category, Category.id == Item.category_id)
        .outerjoin(User, User.id == Movement.actor_id)
        .filter(*_movement_filters(window, actor_id, kind))
        .order_by(Movement.created_at.desc(), Movement.id.desc())
        .all()
    )
    result = []
    for r in rows:
        total = r.quantity * r.unit_price if r.unit_price is not None else None
        result.append({
            "fecha": r.created_at.strftime("%Y-%m-%d %H:%M:%S") if r.created_at else None,
            "tipo": r.kind,
            "codigo": r.code,
            "producto": r.name,
            "cantidad": r.quantity,
            "precio_unitario": r.unit_price,
            "total": total,
            "categoria": r.category,
            "usuario": r.user,
        })
    return result


def iter_export_csv(rows: Iterable[Dict[str, Any]]) -> Iterator[str]:
    """Header line unquoted, then every field double-quoted with quotes doubled."""
    yield ",".join(EXPORT_HEADERS) + "\n"
    buf = StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for row in rows:
        writer.writerow(["" if row.get(h) is None else row[h] for h in EXPORT_HEADERS])
        yield buf.getvalue()
        buf.seek(0)
        buf.truncate(0)
