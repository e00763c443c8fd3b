"""
API endpoints для работы с товарами витрины.

Постраничный список с фильтром по категории и карточка товара.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from storefront.core.config import settings
from storefront.db.database import get_db
from storefront.schemas.catalog import ProductOut
from storefront.schemas.pagination import Page
from storefront.services import catalog_service
from storefront.services.query_cache import QueryCache, get_query_cache
from storefront.services.storefront_service import normalize_category, products_page

router = APIRouter()


@router.get("", response_model=Page[ProductOut])
def list_products(
    db: Session = Depends(get_db),
    cache: QueryCache = Depends(get_query_cache),
    page: int = Query(1, ge=1, description="Номер страницы"),
    page_size: int = Query(settings.CATALOG_PAGE_SIZE, ge=1, le=100, description="Размер страницы"),
    category: Optional[str] = Query(None, description="Slug категории ('all' - без фильтра)"),
):
    """
    Получить страницу товаров, новые первыми.

    Номер страницы за пределами выборки прижимается к последней странице.
    Для несуществующей категории возвращается пустая страница.

    Example:
        GET /api/v1/products?category=ceramics&page=2
    """
    return products_page(db, cache, normalize_category(category), page, page_size)


@router.get("/{product_id}", response_model=ProductOut)
def get_product(
    product_id: int,
    db: Session = Depends(get_db),
    cache: QueryCache = Depends(get_query_cache),
):
    """
    Получить товар по ID.

    Raises:
        HTTPException: Если товар не найден
    """
    product = cache.fetch(
        ("product_detail", product_id), lambda: catalog_service.get_product(db, product_id)
    )
    if product is None:
        raise HTTPException(404, detail="Product not found")
    return product
