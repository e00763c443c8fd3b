"""
Форматирование значений для отображения в админке.
"""

import math
from datetime import datetime
from typing import Optional, Union

EMPTY = "—"

STATUS_LABELS = {
    "new": "Новая",
    "processing": "В обработке",
    "done": "Выполнена",
}


def get_status_label(status: Optional[str]) -> str:
    if not status:
        return EMPTY
    return STATUS_LABELS.get(status, status)


def format_money(value: Optional[float]) -> str:
    """
    Цена без лишних нулей, до двух знаков после запятой.

    Example:
        format_money(1234.5) -> "1 234,5"
    """
    if value is None:
        return EMPTY
    text = f"{value:,.2f}".rstrip("0").rstrip(".")
    return text.replace(",", " ").replace(".", ",")


def format_bytes(size: Optional[Union[int, float]]) -> str:
    """Размер файла в B / KB / MB."""
    if size is None or not math.isfinite(size) or size < 0:
        return EMPTY
    if size < 1024:
        return f"{int(size)} B"
    kb = size / 1024
    if kb < 1024:
        return f"{kb:.1f} KB"
    return f"{kb / 1024:.2f} MB"


def format_datetime(value: Optional[Union[str, datetime]]) -> str:
    """Дата и время в формате ДД.ММ.ГГГГ ЧЧ:ММ; нераспознанная строка возвращается как есть."""
    if not value:
        return EMPTY
    if isinstance(value, datetime):
        return value.strftime("%d.%m.%Y %H:%M")
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return value
    return parsed.strftime("%d.%m.%Y %H:%M")
