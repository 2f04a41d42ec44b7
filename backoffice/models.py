from sqlalchemy import Column, Integer, String, Date, DateTime, Float, Text
from sqlalchemy.sql import func

from backoffice.database import Base


class StockMovement(Base):
    """One entry (Entrada) or exit (Salida) of raw material. Rows are never updated."""

    __tablename__ = "stock_movements"

    id = Column(Integer, primary_key=True, index=True)
    fecha = Column(Date, nullable=False)
    turno = Column(Text, nullable=False)
    movement_type = Column(Text, nullable=False)  # "Entrada" / "Salida"
    tipo_producto = Column(Text, nullable=False)
    cantidad = Column(Integer, nullable=False)  # as submitted, unsigned
    ancho = Column(Float)
    calibre = Column(Integer)
    peso = Column(Float)
    request_id = Column(String(128), unique=True, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class CurrentStock(Base):
    """Running balance per product signature, derived from stock_movements."""

    __tablename__ = "current_stock"

    referencia_id = Column(Text, primary_key=True)
    tipo_producto = Column(Text, nullable=False)
    ancho = Column(Float)
    calibre = Column(Integer)
    peso = Column(Float)
    cantidad_actual = Column(Integer, nullable=False)
    last_updated = Column(DateTime(timezone=True))
