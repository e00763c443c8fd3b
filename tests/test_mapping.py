"""
Тесты преобразования строк БД в записи.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from storefront.core.errors import InvalidValue
from storefront.services.mapping import (
    map_category_row,
    map_product_row,
    map_request_row,
    to_finite_number,
    to_nullable_finite_number,
    to_optional_text,
)


class TestNumbers:
    @pytest.mark.parametrize(
        "value, expected",
        [(12, 12), ("12", 12.0), (" 4.5 ", 4.5), (Decimal("45.50"), 45.5), (3.25, 3.25)],
    )
    def test_finite_values(self, value, expected):
        assert to_finite_number(value) == expected

    def test_int_stays_int(self):
        assert isinstance(to_finite_number(7), int)

    @pytest.mark.parametrize("value", [None, "", "abc", float("nan"), float("inf"), "-inf", True, [1]])
    def test_invalid_values_raise(self, value):
        with pytest.raises(InvalidValue):
            to_finite_number(value)

    @pytest.mark.parametrize("value", [None, "abc", float("nan"), False])
    def test_nullable_returns_none(self, value):
        assert to_nullable_finite_number(value) is None

    def test_optional_text(self):
        assert to_optional_text("hi") == "hi"
        assert to_optional_text(5) is None
        assert to_optional_text(None) is None


class TestRows:
    def test_product_row_with_defaults(self):
        product = map_product_row({"id": "3", "name": "Ваза", "in_stock": 1})
        assert product.id == 3
        assert product.category_id is None
        assert product.image is None
        assert product.price is None
        assert product.in_stock is True

    def test_product_row_coerces_numeric_strings(self):
        product = map_product_row(
            {"id": 1, "name": "Тарелка", "category_id": "2", "price": "45.5", "in_stock": 0, "image": ""}
        )
        assert product.category_id == 2
        assert product.price == 45.5
        assert product.in_stock is False
        assert product.image is None

    def test_product_row_invalid_price_becomes_null(self):
        assert map_product_row({"id": 1, "name": "x", "price": "n/a"}).price is None

    def test_product_row_without_id_raises(self):
        with pytest.raises(InvalidValue):
            map_product_row({"name": "Без id"})

    def test_fractional_id_raises(self):
        with pytest.raises(InvalidValue):
            map_category_row({"id": 1.5, "name": "x", "slug": "x"})

    def test_request_row(self):
        created = datetime(2026, 3, 14, 9, 30)
        request = map_request_row(
            {
                "id": 10,
                "client_name": "Анна",
                "client_phone": "+79990000000",
                "client_message": None,
                "product_id": None,
                "status": "new",
                "created_at": created,
            }
        )
        assert request.id == 10
        assert request.client_message is None
        assert request.created_at == created.isoformat()
