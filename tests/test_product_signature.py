import pytest

from backoffice.services.stock_ledger import product_signature, signed_delta


def test_signature_with_null_weight():
    assert product_signature("Lamina", 1.2, 22, None) == "Lamina-1.2-22-N/A"


def test_signature_is_deterministic_including_all_nulls():
    assert product_signature("Lamina", 1.2, 22, 3.5) == product_signature("Lamina", 1.2, 22, 3.5)
    assert product_signature("Lamina") == product_signature("Lamina", None, None, None)
    assert product_signature("Lamina") == "Lamina-N/A-N/A-N/A"


@pytest.mark.parametrize("other", [
    ("Bobina", 1.2, 22, 3.5),
    ("Lamina", 1.3, 22, 3.5),
    ("Lamina", 1.2, 24, 3.5),
    ("Lamina", 1.2, 22, 3.6),
    ("Lamina", None, 22, 3.5),
    ("Lamina", 1.2, None, 3.5),
    ("Lamina", 1.2, 22, None),
])
def test_signature_changes_when_one_attribute_changes(other):
    assert product_signature(*other) != product_signature("Lamina", 1.2, 22, 3.5)


def test_integral_floats_render_without_decimal_point():
    assert product_signature("Lamina", 1.0, 22, 100.0) == "Lamina-1-22-100"
    assert product_signature("Lamina", 1.0) == product_signature("Lamina", 1)


def test_small_floats_render_in_plain_notation():
    assert product_signature("Lamina", 0.00001) == "Lamina-0.00001-N/A-N/A"


def test_zero_is_not_treated_as_null():
    assert product_signature("Lamina", 0.0, 0, 0.0) == "Lamina-0-0-0"
    assert product_signature("Lamina", 0.0) != product_signature("Lamina")


def test_hyphenated_product_type_splits_back_from_the_right():
    key = product_signature("Lamina-Galv", 1.2, 22, None)

    assert key.rsplit("-", 3) == ["Lamina-Galv", "1.2", "22", "N/A"]
    assert key != product_signature("Lamina", None, 22, None)


def test_signed_delta():
    assert signed_delta("Entrada", 10) == 10
    assert signed_delta("Salida", 10) == -10
    assert signed_delta("Devolucion", 10) == -10
