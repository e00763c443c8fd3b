"""
Модели базы данных.

Импортирует все модели для корректной работы SQLAlchemy.
"""

from .base import Base
from .category import Category
from .product import Product
from .request import REQUEST_STATUSES, Request

__all__ = [
    "Base",
    "Category",
    "Product",
    "Request",
    "REQUEST_STATUSES",
]
