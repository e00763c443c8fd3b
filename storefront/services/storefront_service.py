"""
Витрина: блок на главной и полный каталог для одного фильтра категории.

Обе выборки независимы: блок всегда показывает первую страницу
(SHOP_PREVIEW_SIZE товаров), каталог - текущую страницу
(CATALOG_PAGE_SIZE товаров). Смена фильтра сбрасывает страницу каталога на 1.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.orm import Session

from storefront.core.config import settings
from storefront.schemas.catalog import CategoryWithPresence, ProductOut, StorefrontView
from storefront.schemas.pagination import Page
from storefront.services import catalog_service
from storefront.services.query_cache import QueryCache

logger = logging.getLogger(__name__)


@dataclass
class StorefrontState:
    """Фильтр и страница каталога."""

    category: Optional[str] = None
    catalog_page: int = 1

    def select_category(self, category: Optional[str]) -> "StorefrontState":
        if category == self.category:
            return self
        return StorefrontState(category=category, catalog_page=1)

    def go_to_page(self, page: int) -> "StorefrontState":
        return StorefrontState(category=self.category, catalog_page=max(1, int(page)))


def normalize_category(category: Optional[str]) -> Optional[str]:
    """Пустое значение и "all" означают отсутствие фильтра."""
    if category is None:
        return None
    category = category.strip()
    return None if not category or category == "all" else category


def products_page(
    db: Session,
    cache: QueryCache,
    category: Optional[str],
    page: int,
    page_size: int,
) -> Page[ProductOut]:
    """Страница товаров через кэш; номер за пределами прижимается к последней."""
    if category:
        view = "products_by_category"

        def fetch(page):
            return cache.fetch(
                (view, category, page, page_size),
                lambda: catalog_service.fetch_products_page(
                    db, page=page, page_size=page_size, category_slug=category
                ),
            )
    else:
        def fetch(page):
            return cache.fetch(
                ("products", page, page_size),
                lambda: catalog_service.fetch_products_page(db, page=page, page_size=page_size),
            )

    page, _ = catalog_service.clamp_paging(page, page_size)
    return catalog_service.fetch_clamped(fetch, page)


def build_storefront_view(
    db: Session,
    cache: QueryCache,
    category_slug: Optional[str] = None,
    catalog_page: int = 1,
) -> StorefrontView:
    """
    Собрать витрину для фильтра.

    Args:
        db: Сессия базы данных
        cache: Кэш запросов
        category_slug: Slug категории или None для всех товаров
        catalog_page: Страница полного каталога

    Returns:
        StorefrontView: Блок (страница 1) и каталог (текущая страница)
    """
    category = normalize_category(category_slug)
    preview = products_page(db, cache, category, 1, settings.SHOP_PREVIEW_SIZE)
    catalog = products_page(db, cache, category, catalog_page, settings.CATALOG_PAGE_SIZE)
    return StorefrontView(category=category, preview=preview, catalog=catalog)


def visible_categories(db: Session, cache: QueryCache) -> List[CategoryWithPresence]:
    """Категории для фильтра на главной с признаком наличия товаров."""
    categories = cache.fetch(("categories",), lambda: catalog_service.list_categories(db))
    presence = cache.fetch(
        ("category_presence",),
        lambda: catalog_service.categories_with_products(db, categories),
    )
    return [
        CategoryWithPresence(
            id=category.id,
            name=category.name,
            slug=category.slug,
            has_products=presence.get(category.id, True),
        )
        for category in categories
    ]
