"""
Преобразование строк БД в типизированные записи.

Строки приходят как словари со значениями произвольного типа (строки,
Decimal, None). Здесь нет ввода-вывода, только приведение типов:

- обязательный id: привести к конечному числу или выбросить InvalidValue;
- необязательные числа: привести или вернуть None;
- булевы поля: по истинности;
- image / category_id: None, если поля нет.
"""

import math
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional, Union

from storefront.core.errors import InvalidValue
from storefront.schemas.catalog import CategoryOut, ProductOut, RequestOut

Number = Union[int, float]


def _coerce(value: Any) -> Optional[Number]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, (float, Decimal)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(Decimal(text))
        except (InvalidOperation, ValueError):
            return None
    else:
        return None

    if not math.isfinite(number):
        return None
    return number


def to_finite_number(value: Any) -> Number:
    """
    Привести значение к конечному числу.

    Raises:
        InvalidValue: Если значение отсутствует, не число, NaN или бесконечность
    """
    number = _coerce(value)
    if number is None:
        raise InvalidValue(f"Invalid numeric value: {value!r}")
    return number


def to_nullable_finite_number(value: Any) -> Optional[Number]:
    """Привести значение к конечному числу или вернуть None."""
    return _coerce(value)


def to_identifier(value: Any) -> int:
    """Целочисленный идентификатор (обязательный)."""
    number = to_finite_number(value)
    if isinstance(number, float):
        if not number.is_integer():
            raise InvalidValue(f"Invalid identifier: {value!r}")
        number = int(number)
    return number


def to_nullable_identifier(value: Any) -> Optional[int]:
    number = to_nullable_finite_number(value)
    if number is None:
        return None
    if isinstance(number, float):
        return int(number) if number.is_integer() else None
    return number


def to_optional_text(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _timestamp_text(value: Any) -> Optional[str]:
    if isinstance(value, datetime):
        return value.isoformat()
    return to_optional_text(value)


def map_category_row(row: Mapping[str, Any]) -> CategoryOut:
    return CategoryOut(
        id=to_identifier(row.get("id")),
        name=row.get("name") or "",
        slug=row.get("slug") or "",
    )


def map_product_row(row: Mapping[str, Any]) -> ProductOut:
    """
    Строка таблицы products -> ProductOut.

    Args:
        row: Словарь с полями id, name, category_id, in_stock, price, image

    Raises:
        InvalidValue: Если id строки не приводится к числу
    """
    price = to_nullable_finite_number(row.get("price"))
    return ProductOut(
        id=to_identifier(row.get("id")),
        name=row.get("name") or "",
        category_id=to_nullable_identifier(row.get("category_id")),
        in_stock=bool(row.get("in_stock")),
        price=float(price) if price is not None else None,
        image=row.get("image") or None,
    )


def map_request_row(row: Mapping[str, Any]) -> RequestOut:
    return RequestOut(
        id=to_identifier(row.get("id")),
        client_name=to_optional_text(row.get("client_name")),
        client_phone=to_optional_text(row.get("client_phone")),
        client_message=to_optional_text(row.get("client_message")),
        product_id=to_nullable_identifier(row.get("product_id")),
        status=to_optional_text(row.get("status")),
        created_at=_timestamp_text(row.get("created_at")),
    )
