from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backoffice.database import get_db
from backoffice.schemas import CurrentStockOut, ReconciliationRow
from backoffice.services import stock_ledger

router = APIRouter(
    prefix="/stock",
    tags=["Stock"]
)

@router.get("/", response_model=list[CurrentStockOut])
def current_stock(db: Session = Depends(get_db)):
    return stock_ledger.get_current_stock(db)

@router.get("/reconciliation", response_model=list[ReconciliationRow])
def reconciliation(
    only_mismatches: bool = Query(False),
    db: Session = Depends(get_db)
):
    """
    Compares each stored balance with the total rebuilt from the movement log.
    matches = false means the balance drifted from the log.
    """
    rows = stock_ledger.reconcile(db)
    if only_mismatches:
        rows = [row for row in rows if not row.matches]
    return rows
