"""
Stock ledger: one running balance per product signature, kept in lockstep
with the movement log.

Every ``record_movement`` call writes the raw movement and adjusts the
matching ``current_stock`` row inside one transaction. The balance update is
a single ``INSERT ... ON CONFLICT DO UPDATE`` that adds the delta in the
database, so concurrent calls for the same signature never lose an update.
"""

import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy import case, func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from backoffice.exceptions import TransactionError
from backoffice.models import CurrentStock, StockMovement
from backoffice.schemas import ENTRADA, MOVEMENT_TYPES, MovementCreate, MovementReceipt, ReconciliationRow
from backoffice.services import movement_log
from backoffice.services.movement_log import MovementInput

logger = logging.getLogger(__name__)

NULL_TOKEN = "N/A"

# Dialects whose insert() construct supports on_conflict_do_update
_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


# ----------------------------
# Product signature
# ----------------------------
def _render_component(value) -> str:
    if value is None:
        return NULL_TOKEN
    if isinstance(value, float):
        # Plain decimal notation: 1.0 -> "1", 1e-05 -> "0.00001"
        return format(Decimal(repr(value)).normalize(), "f")
    return str(value)


def product_signature(
    tipo_producto: str,
    ancho: Optional[float] = None,
    calibre: Optional[int] = None,
    peso: Optional[float] = None,
) -> str:
    """
    Deterministic key for a product: ``tipo-ancho-calibre-peso``.

    Null attributes render as ``N/A``. Dimensions are non-negative, so the
    last three segments never contain a hyphen and the key splits back
    unambiguously with ``key.rsplit("-", 3)``.

    >>> product_signature("Lamina", 1.2, 22, None)
    'Lamina-1.2-22-N/A'
    """
    parts = [tipo_producto, ancho, calibre, peso]
    return "-".join(_render_component(p) for p in parts)


def signed_delta(movement_type: str, cantidad: int) -> int:
    """Entrada adds stock; every other kind removes it."""
    return cantidad if movement_type == ENTRADA else -cantidad


# ----------------------------
# Balance upsert
# ----------------------------
def _upsert_balance(db: Session, referencia_id: str, payload: MovementCreate, delta: int) -> None:
    dialect = db.get_bind().dialect.name
    make_insert = _UPSERT_INSERTS.get(dialect)

    if make_insert is None:
        _lock_and_update_balance(db, referencia_id, payload, delta)
        return

    table = CurrentStock.__table__
    stmt = make_insert(table).values(
        referencia_id=referencia_id,
        tipo_producto=payload.tipo_producto,
        ancho=payload.ancho,
        calibre=payload.calibre,
        peso=payload.peso,
        cantidad_actual=delta,
        last_updated=func.now(),
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c.referencia_id],
        set_={
            "cantidad_actual": table.c.cantidad_actual + stmt.excluded.cantidad_actual,
            "last_updated": func.now(),
        },
    )
    db.execute(stmt)


def _lock_and_update_balance(db: Session, referencia_id: str, payload: MovementCreate, delta: int) -> None:
    # Lock balance row to prevent race conditions
    balance = (
        db.query(CurrentStock)
        .populate_existing()
        .filter(CurrentStock.referencia_id == referencia_id)
        .with_for_update()
        .first()
    )

    if balance is None:
        # A concurrent first insert surfaces as IntegrityError on flush
        db.add(CurrentStock(
            referencia_id=referencia_id,
            tipo_producto=payload.tipo_producto,
            ancho=payload.ancho,
            calibre=payload.calibre,
            peso=payload.peso,
            cantidad_actual=delta,
            last_updated=func.now(),
        ))
    else:
        balance.cantidad_actual = CurrentStock.cantidad_actual + delta
        balance.last_updated = func.now()

    db.flush()


# ----------------------------
# Operations
# ----------------------------
def _duplicate_receipt(db: Session, request_id: str) -> Optional[MovementReceipt]:
    existing = movement_log.find_by_request_id(db, request_id)
    if existing is None:
        return None

    logger.warning("Movement request %s already recorded as movement %s", request_id, existing.id)
    return MovementReceipt(
        movement_id=existing.id,
        referencia_id=product_signature(
            existing.tipo_producto, existing.ancho, existing.calibre, existing.peso
        ),
        delta=signed_delta(existing.movement_type, existing.cantidad),
        duplicate=True,
    )


def record_movement(db: Session, request: MovementInput) -> MovementReceipt:
    """
    Append a movement to the log and apply its signed quantity to the
    product's balance, atomically.

    Raises ``ValidationError`` before touching storage when the request is
    malformed, and ``TransactionError`` when the write could not be committed;
    in the latter case the session has been rolled back.
    """
    payload = movement_log.validate_movement(request)

    referencia_id = product_signature(payload.tipo_producto, payload.ancho, payload.calibre, payload.peso)
    delta = signed_delta(payload.movement_type, payload.cantidad)

    if payload.movement_type not in MOVEMENT_TYPES:
        logger.warning(
            "Unrecognised movement type %r for %s, recording as a debit of %s",
            payload.movement_type, referencia_id, payload.cantidad,
        )

    try:
        if payload.request_id:
            receipt = _duplicate_receipt(db, payload.request_id)
            if receipt is not None:
                db.rollback()
                return receipt

        movement_id = movement_log.append(db, payload)
        _upsert_balance(db, referencia_id, payload, delta)
    except IntegrityError as exc:
        db.rollback()
        if payload.request_id:
            # Lost the race against a concurrent request with the same key
            try:
                receipt = _duplicate_receipt(db, payload.request_id)
            except SQLAlchemyError as lookup_exc:
                db.rollback()
                logger.error("Duplicate lookup for request %s failed: %s", payload.request_id, lookup_exc)
                raise TransactionError(f"Transaction failed: {exc.orig}") from lookup_exc
            db.rollback()
            if receipt is not None:
                return receipt
        logger.error("Stock movement for %s rolled back: %s", referencia_id, exc)
        raise TransactionError(f"Transaction failed: {exc.orig}") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Stock movement for %s rolled back: %s", referencia_id, exc)
        raise TransactionError(f"Transaction failed: {exc}") from exc
    except Exception:
        db.rollback()
        raise

    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Commit of movement %s for %s failed, outcome unknown: %s", movement_id, referencia_id, exc)
        raise TransactionError(
            f"Commit failed, the movement may or may not have been applied: {exc}",
            ambiguous=True,
        ) from exc
    except Exception:
        db.rollback()
        raise

    logger.info(
        "Recorded %s of %s for %s (movement %s, delta %+d)",
        payload.movement_type, payload.cantidad, referencia_id, movement_id, delta,
    )
    return MovementReceipt(movement_id=movement_id, referencia_id=referencia_id, delta=delta)


def get_current_stock(db: Session):
    return (
        db.query(CurrentStock)
        .populate_existing()
        .order_by(
            CurrentStock.tipo_producto.asc(),
            CurrentStock.ancho.asc().nulls_last(),
            CurrentStock.calibre.asc().nulls_last(),
            CurrentStock.peso.asc().nulls_last(),
        )
        .all()
    )


def _log_totals(db: Session) -> dict:
    signed = case(
        (StockMovement.movement_type == ENTRADA, StockMovement.cantidad),
        else_=-StockMovement.cantidad,
    )
    rows = (
        db.query(
            StockMovement.tipo_producto,
            StockMovement.ancho,
            StockMovement.calibre,
            StockMovement.peso,
            func.sum(signed).label("net_movement"),
        )
        .group_by(
            StockMovement.tipo_producto,
            StockMovement.ancho,
            StockMovement.calibre,
            StockMovement.peso,
        )
        .all()
    )

    totals = {}
    for tipo_producto, ancho, calibre, peso, net_movement in rows:
        key = product_signature(tipo_producto, ancho, calibre, peso)
        totals[key] = ((tipo_producto, ancho, calibre, peso), int(net_movement or 0))
    return totals


def reconcile(db: Session, repair: bool = False) -> list[ReconciliationRow]:
    """
    Compare every balance row against the total rebuilt from the movement log.

    With ``repair=True`` balances that disagree (or are missing) are set to
    the log total and committed in one transaction. Balance rows are never
    deleted; one with no movements behind it is reset to zero.
    """
    totals = _log_totals(db)
    balances = {row.referencia_id: row for row in db.query(CurrentStock).populate_existing().all()}

    report = []
    for referencia_id in sorted(set(totals) | set(balances)):
        attributes, log_quantity = totals.get(referencia_id, (None, 0))
        balance = balances.get(referencia_id)
        ledger_quantity = balance.cantidad_actual if balance is not None else None
        report.append(ReconciliationRow(
            referencia_id=referencia_id,
            ledger_quantity=ledger_quantity,
            log_quantity=log_quantity,
            matches=ledger_quantity == log_quantity,
        ))

        if not repair or ledger_quantity == log_quantity:
            continue

        if balance is None:
            tipo_producto, ancho, calibre, peso = attributes
            db.add(CurrentStock(
                referencia_id=referencia_id,
                tipo_producto=tipo_producto,
                ancho=ancho,
                calibre=calibre,
                peso=peso,
                cantidad_actual=log_quantity,
                last_updated=func.now(),
            ))
        else:
            balance.cantidad_actual = log_quantity
            balance.last_updated = func.now()
        logger.warning(
            "Balance for %s repaired from %s to %s", referencia_id, ledger_quantity, log_quantity
        )

    if repair:
        try:
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise TransactionError(f"Reconciliation repair failed: {exc}") from exc

    return report
