"""
Старое API каталога (только чтение, без пагинации).

Сохранено для совместимости: товары отдаются в формате с categoryId.
"""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from storefront.db.database import get_db
from storefront.db.models import Category, Product
from storefront.schemas.catalog import LegacyCategoryOut, legacy_products

router = APIRouter()


@router.get("/products")
def legacy_list_products(db: Session = Depends(get_db)) -> List[dict]:
    products = db.scalars(select(Product).order_by(Product.id)).all()
    return legacy_products(products)


@router.get("/products/category/{slug}")
def legacy_products_by_category(slug: str, db: Session = Depends(get_db)) -> List[dict]:
    """Товары категории; для несуществующего slug - пустой список."""
    category_id = db.scalar(select(Category.id).where(Category.slug == slug))
    if category_id is None:
        return []
    products = db.scalars(
        select(Product).where(Product.category_id == category_id).order_by(Product.id)
    ).all()
    return legacy_products(products)


@router.get("/categories", response_model=List[LegacyCategoryOut])
def legacy_list_categories(db: Session = Depends(get_db)):
    rows = db.execute(select(Category.id, Category.name, Category.slug).order_by(Category.id)).all()
    return [LegacyCategoryOut(id=row.id, name=row.name, slug=row.slug) for row in rows]
