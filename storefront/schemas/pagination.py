"""
Схемы и функции для пагинации.
"""

import math
from typing import Generic, List, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


def compute_total_pages(total: int, page_size: int) -> int:
    """
    Количество страниц, не меньше 1 даже для пустой выборки.

    Args:
        total: Общее количество записей
        page_size: Размер страницы (>= 1)
    """
    return max(1, math.ceil(total / page_size)) if total > 0 else 1


def clamp_page(page: int, total_pages: int) -> int:
    """Прижать номер страницы к диапазону [1, total_pages]."""
    return min(max(1, page), max(1, total_pages))


class Page(BaseModel, Generic[T]):
    """
    Одна страница выборки с метаданными.

    Attributes:
        items: Записи текущей страницы
        total: Общее количество записей
        page: Номер текущей страницы
        page_size: Размер страницы
        total_pages: Общее количество страниц (>= 1)
    """

    items: List[T]
    total: int
    page: int
    page_size: int
    total_pages: int

    @classmethod
    def create(cls, items: List[T], page: int, page_size: int, total: int) -> "Page[T]":
        """
        Создает страницу с автоматическим расчетом total_pages.
        """
        return cls(
            items=items,
            total=total,
            page=page,
            page_size=page_size,
            total_pages=compute_total_pages(total, page_size),
        )

    @classmethod
    def empty(cls, page: int, page_size: int) -> "Page[T]":
        return cls.create(items=[], page=page, page_size=page_size, total=0)
