from datetime import date
from typing import Any

from fastapi import APIRouter, Body, Depends, Query, Response, status
from sqlalchemy.orm import Session

from backoffice.database import get_db
from backoffice.schemas import MovementReceipt, StockMovementOut
from backoffice.services import movement_log, stock_ledger

router = APIRouter(
    prefix="/movements",
    tags=["Stock Movements"]
)

@router.post("/", response_model=MovementReceipt, status_code=status.HTTP_201_CREATED)
def create_movement(
    response: Response,
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db)
):
    # Raw body on purpose: field checks raise ValidationError (400), not FastAPI's 422
    receipt = stock_ledger.record_movement(db, payload)
    if receipt.duplicate:
        response.status_code = status.HTTP_200_OK
    return receipt

@router.get("/", response_model=list[StockMovementOut])
def list_movements(
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    tipo_producto: str | None = Query(None),
    db: Session = Depends(get_db)
):
    """
    Retrieve the movement log, newest first, with optional filtering
    on the movement date and product type.
    """
    return movement_log.list_movements(db, start_date, end_date, tipo_producto)
