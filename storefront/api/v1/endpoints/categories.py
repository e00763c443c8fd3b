"""
API endpoints для работы с категориями товаров.
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from storefront.db.database import get_db
from storefront.db.models import Category
from storefront.schemas.catalog import CategoryOut, CategoryWithPresence
from storefront.services.query_cache import QueryCache, get_query_cache
from storefront.services.storefront_service import visible_categories

router = APIRouter()


@router.get("", response_model=List[CategoryWithPresence])
def list_categories(
    db: Session = Depends(get_db),
    cache: QueryCache = Depends(get_query_cache),
    only_with_products: bool = Query(False, description="Скрыть категории без товаров"),
):
    """
    Получить список категорий по алфавиту.

    has_products показывает, есть ли в категории товары; если подсчет не
    удался, категория считается непустой.

    Example:
        [
            {"id": 1, "name": "Керамика", "slug": "keramika", "has_products": true}
        ]
    """
    categories = visible_categories(db, cache)
    if only_with_products:
        categories = [category for category in categories if category.has_products]
    return categories


@router.get("/{category_id}", response_model=CategoryOut)
def get_category(category_id: int, db: Session = Depends(get_db)):
    """
    Получить категорию по ID.

    Raises:
        HTTPException: Если категория не найдена
    """
    category = db.get(Category, category_id)
    if not category:
        raise HTTPException(404, detail="Category not found")
    return CategoryOut(id=category.id, name=category.name, slug=category.slug)
