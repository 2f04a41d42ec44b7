from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import date, datetime

ENTRADA = "Entrada"
SALIDA = "Salida"
MOVEMENT_TYPES = (ENTRADA, SALIDA)

# Largest value an INTEGER column holds on PostgreSQL
MAX_INTEGER = 2**31 - 1


class MovementCreate(BaseModel):
    """A stock movement as submitted by the caller."""

    fecha: date
    turno: str
    movement_type: str
    tipo_producto: str
    cantidad: int = Field(gt=0, le=MAX_INTEGER)
    ancho: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)
    calibre: Optional[int] = Field(default=None, ge=0, le=MAX_INTEGER)
    peso: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)
    request_id: Optional[str] = Field(default=None, max_length=128)

    class Config:
        str_strip_whitespace = True

    @field_validator("fecha", mode="before")
    @classmethod
    def fecha_not_empty(cls, value):
        if isinstance(value, str) and not value.strip():
            raise ValueError("must not be empty")
        return value

    @field_validator("turno", "movement_type", "tipo_producto")
    @classmethod
    def text_not_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_validator("cantidad", mode="before")
    @classmethod
    def cantidad_is_number(cls, value):
        if isinstance(value, bool):
            raise ValueError("must be a number")
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("ancho", "calibre", "peso", mode="before")
    @classmethod
    def blank_dimension_is_null(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("request_id", mode="before")
    @classmethod
    def blank_request_id_is_null(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class StockMovementOut(BaseModel):
    id: int
    fecha: date
    turno: str
    movement_type: str
    tipo_producto: str
    cantidad: int
    ancho: Optional[float]
    calibre: Optional[int]
    peso: Optional[float]
    request_id: Optional[str]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class CurrentStockOut(BaseModel):
    referencia_id: str
    tipo_producto: str
    ancho: Optional[float]
    calibre: Optional[int]
    peso: Optional[float]
    cantidad_actual: int
    last_updated: Optional[datetime]

    class Config:
        from_attributes = True


class MovementReceipt(BaseModel):
    movement_id: int
    referencia_id: str
    delta: int
    duplicate: bool = False


class ReconciliationRow(BaseModel):
    referencia_id: str
    ledger_quantity: Optional[int]  # None when no balance row exists
    log_quantity: int
    matches: bool
