"""
Схемы записей каталога: категории, товары, заявки.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from storefront.schemas.pagination import Page


class CategoryOut(BaseModel):
    id: int
    name: str
    slug: str


class ProductOut(BaseModel):
    id: int
    name: str
    category_id: Optional[int] = None
    in_stock: bool = False
    price: Optional[float] = None
    image: Optional[str] = None


class RequestOut(BaseModel):
    """Заявка клиента в том виде, в котором ее видит админка."""

    id: int
    client_name: Optional[str] = None
    client_phone: Optional[str] = None
    client_message: Optional[str] = None
    product_id: Optional[int] = None
    status: Optional[str] = None
    created_at: Optional[str] = None


class RequestPage(Page[RequestOut]):
    """Страница заявок вместе с товарами, на которые они ссылаются."""

    products_map: Dict[int, ProductOut] = Field(default_factory=dict)


class CategoryWithPresence(CategoryOut):
    has_products: bool = True


class StorefrontView(BaseModel):
    """
    Витрина для одного значения фильтра.

    Attributes:
        category: Активный slug категории (None - все товары)
        preview: Первая страница блока на главной
        catalog: Текущая страница полного каталога
    """

    category: Optional[str] = None
    preview: Page[ProductOut]
    catalog: Page[ProductOut]


class LegacyCategoryOut(BaseModel):
    id: int
    name: str
    slug: str


class LegacyProductOut(BaseModel):
    """Формат товара старого API (camelCase для categoryId)."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    name: str
    description: Optional[str] = None
    price: Optional[float] = None
    image: Optional[str] = None
    category_id: Optional[int] = Field(default=None, serialization_alias="categoryId")


def legacy_products(products: List) -> List[dict]:
    """Сериализовать ORM товары в формат старого API."""
    return [
        LegacyProductOut(
            id=p.id,
            name=p.name,
            description=p.description,
            price=p.price,
            image=p.image,
            category_id=p.category_id,
        ).model_dump(by_alias=True)
        for p in products
    ]
