"""
API endpoint витрины: блок на главной и каталог для одного фильтра.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.db.database import get_db
from storefront.schemas.catalog import StorefrontView
from storefront.services.query_cache import QueryCache, get_query_cache
from storefront.services.storefront_service import build_storefront_view

router = APIRouter()


@router.get("", response_model=StorefrontView)
def get_storefront(
    db: Session = Depends(get_db),
    cache: QueryCache = Depends(get_query_cache),
    category: Optional[str] = Query(None, description="Slug категории ('all' - без фильтра)"),
    page: int = Query(1, ge=1, description="Страница каталога"),
):
    """
    Витрина для фильтра категории.

    preview - первая страница блока на главной, catalog - текущая страница
    каталога. При смене категории клиент запрашивает page=1.
    """
    return build_storefront_view(db, cache, category_slug=category, catalog_page=page)
