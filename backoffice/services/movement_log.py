from collections.abc import Mapping
from datetime import date
from typing import Any, Union

import pydantic
from sqlalchemy.orm import Session

from backoffice.exceptions import ValidationError
from backoffice.models import StockMovement
from backoffice.schemas import MovementCreate

MovementInput = Union[MovementCreate, Mapping[str, Any]]


def validate_movement(movement: MovementInput) -> MovementCreate:
    """Coerce raw caller input into a MovementCreate or raise ValidationError."""
    if isinstance(movement, MovementCreate):
        return movement
    if not isinstance(movement, Mapping):
        raise ValidationError("Movement must be a mapping of fields")

    try:
        return MovementCreate.model_validate(dict(movement))
    except pydantic.ValidationError as exc:
        errors = [
            {
                "field": ".".join(str(part) for part in err["loc"]) or "movement",
                "message": err["msg"],
            }
            for err in exc.errors()
        ]
        fields = ", ".join(e["field"] for e in errors)
        raise ValidationError(f"Invalid or missing stock movement fields: {fields}", errors) from exc


def append(db: Session, movement: MovementInput) -> int:
    """
    Insert one movement row and return its id.

    The quantity is stored unsigned, exactly as submitted. The row is only
    flushed: committing (or rolling back) is up to the caller's transaction.
    """
    payload = validate_movement(movement)

    row = StockMovement(
        fecha=payload.fecha,
        turno=payload.turno,
        movement_type=payload.movement_type,
        tipo_producto=payload.tipo_producto,
        cantidad=payload.cantidad,
        ancho=payload.ancho,
        calibre=payload.calibre,
        peso=payload.peso,
        request_id=payload.request_id,
    )
    db.add(row)
    db.flush()
    return row.id


def find_by_request_id(db: Session, request_id: str) -> StockMovement | None:
    return (
        db.query(StockMovement)
        .filter(StockMovement.request_id == request_id)
        .one_or_none()
    )


def list_movements(
    db: Session,
    start_date: date | None = None,
    end_date: date | None = None,
    tipo_producto: str | None = None,
):
    query = db.query(StockMovement)

    if start_date:
        query = query.filter(StockMovement.fecha >= start_date)

    if end_date:
        query = query.filter(StockMovement.fecha <= end_date)

    if tipo_producto:
        query = query.filter(StockMovement.tipo_producto == tipo_producto)

    return query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc()).all()
