"""Read-only report endpoints."""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.errors import ValidationError
from app.models.movement import MovementKind
from app.services import report_service
from app.services.report_service import ReportWindow
from app.services.stock_ledger import BALANCE_KINDS


router = APIRouter()


def get_window(
    date_from: Optional[date] = Query(None, alias="from"),
    date_to: Optional[date] = Query(None, alias="to"),
) -> ReportWindow:
    return report_service.resolve_window(date_from, date_to)


def _movement_kind(kind: Optional[str]) -> Optional[str]:
    if kind is None or not kind.strip():
        return None
    value = kind.strip().lower()
    if value not in {k.value for k in BALANCE_KINDS}:
        raise ValidationError(
            f"kind must be {MovementKind.inbound.value!r} or {MovementKind.outbound.value!r}", field="kind"
        )
    return value


@router.get("/total-items")
def total_items(db: Session = Depends(get_db)):
    return {"total_items": report_service.total_items(db)}


@router.get("/total-units")
def total_units(db: Session = Depends(get_db)):
    return {"total_units": report_service.total_units(db)}


@router.get("/total-value")
def total_value(db: Session = Depends(get_db)):
    return {"total_value": report_service.total_value(db)}


@router.get("/top-stock")
def top_stock(limit: Optional[int] = Query(None), db: Session = Depends(get_db)):
    return report_service.items_by_stock(db, report_service.sanitize_limit(limit), descending=True)


@router.get("/bottom-stock")
def bottom_stock(limit: Optional[int] = Query(None), db: Session = Depends(get_db)):
    return report_service.items_by_stock(db, report_service.sanitize_limit(limit), descending=False)


@router.get("/low-stock")
def low_stock(db: Session = Depends(get_db)):
    return report_service.low_stock(db)


@router.get("/kpis")
def kpis(window: ReportWindow = Depends(get_window), db: Session = Depends(get_db)):
    return report_service.kpis(db, window)


@router.get("/series")
def series(
    window: ReportWindow = Depends(get_window),
    actor_id: Optional[int] = Query(None),
    kind: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    """Inbound/outbound totals per day."""
    return report_service.series(db, window, actor_id=actor_id, kind=_movement_kind(kind))


@router.get("/top-consumption")
def top_consumption(
    window: ReportWindow = Depends(get_window),
    limit: Optional[int] = Query(None),
    db: Session = Depends(get_db),
):
    return report_service.top_consumption(db, window, report_service.sanitize_limit(limit, default=5, maximum=50))


@router.get("/consumption-by-category")
def consumption_by_category(window: ReportWindow = Depends(get_window), db: Session = Depends(get_db)):
    return report_service.consumption_by_category(db, window)


@router.get("/movements-by-user")
def movements_by_user(window: ReportWindow = Depends(get_window), db: Session = Depends(get_db)):
    return report_service.movements_by_user(db, window)


@router.get("/export")
def export_movements(
    window: ReportWindow = Depends(get_window),
    actor_id: Optional[int] = Query(None),
    kind: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    # Rows are read before streaming starts; the request session closes first
    rows = report_service.export_rows(db, window, actor_id=actor_id, kind=_movement_kind(kind))
    return StreamingResponse(
        report_service.iter_export_csv(rows),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": 'attachment; filename="movimientos.csv"'},
    )
