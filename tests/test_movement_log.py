from datetime import date

import pytest

from backoffice.exceptions import ValidationError
from backoffice.models import CurrentStock, StockMovement
from backoffice.services import movement_log
from conftest import make_movement


def test_append_inserts_unsigned_row_and_returns_id(db):
    movement_id = movement_log.append(db, make_movement(movement_type="Salida", cantidad=30))
    db.commit()

    row = db.get(StockMovement, movement_id)
    assert row.cantidad == 30
    assert row.movement_type == "Salida"
    assert row.fecha == date(2024, 1, 10)
    assert row.ancho == 1.2
    assert row.calibre == 22
    assert row.peso is None
    assert row.created_at is not None


def test_append_never_touches_current_stock(db):
    movement_log.append(db, make_movement())
    db.commit()

    assert db.query(CurrentStock).count() == 0


def test_append_leaves_commit_to_the_caller(db):
    movement_log.append(db, make_movement())
    db.rollback()

    assert db.query(StockMovement).count() == 0


def test_ids_are_monotonic(db):
    first = movement_log.append(db, make_movement())
    second = movement_log.append(db, make_movement())

    assert second > first


@pytest.mark.parametrize("field", ["fecha", "turno", "movement_type", "tipo_producto", "cantidad"])
def test_missing_required_field_is_rejected(db, field):
    movement = make_movement()
    del movement[field]

    with pytest.raises(ValidationError) as excinfo:
        movement_log.append(db, movement)

    assert field in [e["field"] for e in excinfo.value.errors]
    assert db.query(StockMovement).count() == 0


@pytest.mark.parametrize("field", ["fecha", "turno", "movement_type", "tipo_producto"])
@pytest.mark.parametrize("blank", ["", "   "])
def test_empty_required_field_is_rejected(db, field, blank):
    with pytest.raises(ValidationError) as excinfo:
        movement_log.append(db, make_movement(**{field: blank}))

    assert field in [e["field"] for e in excinfo.value.errors]


def test_numeric_string_quantity_is_parsed():
    payload = movement_log.validate_movement(make_movement(cantidad="50"))

    assert payload.cantidad == 50


@pytest.mark.parametrize("cantidad", ["abc", 0, -5, 2.5, True, None])
def test_invalid_quantity_is_rejected(cantidad):
    with pytest.raises(ValidationError) as excinfo:
        movement_log.validate_movement(make_movement(cantidad=cantidad))

    assert excinfo.value.errors[0]["field"] == "cantidad"


def test_blank_dimensions_are_null():
    payload = movement_log.validate_movement(make_movement(ancho="", calibre="", peso=" "))

    assert payload.ancho is None
    assert payload.calibre is None
    assert payload.peso is None


def test_absent_dimensions_are_null():
    movement = make_movement()
    del movement["ancho"], movement["calibre"], movement["peso"]

    payload = movement_log.validate_movement(movement)

    assert (payload.ancho, payload.calibre, payload.peso) == (None, None, None)


@pytest.mark.parametrize("field", ["ancho", "calibre", "peso"])
def test_negative_dimension_is_rejected(field):
    with pytest.raises(ValidationError):
        movement_log.validate_movement(make_movement(**{field: -1}))


def test_text_fields_are_stripped():
    payload = movement_log.validate_movement(make_movement(tipo_producto="  Lamina ", turno=" PM"))

    assert payload.tipo_producto == "Lamina"
    assert payload.turno == "PM"


def test_non_mapping_input_is_rejected():
    with pytest.raises(ValidationError):
        movement_log.validate_movement(["Lamina", 100])


def test_list_movements_filters_and_orders_newest_first(db):
    first = movement_log.append(db, make_movement(fecha="2024-01-05"))
    second = movement_log.append(db, make_movement(fecha="2024-01-10", tipo_producto="Bobina"))
    third = movement_log.append(db, make_movement(fecha="2024-01-20"))
    db.commit()

    assert [m.id for m in movement_log.list_movements(db)] == [third, second, first]
    assert [m.id for m in movement_log.list_movements(db, start_date=date(2024, 1, 10))] == [third, second]
    assert [m.id for m in movement_log.list_movements(db, end_date=date(2024, 1, 10))] == [second, first]
    assert [m.id for m in movement_log.list_movements(db, tipo_producto="Lamina")] == [third, first]
