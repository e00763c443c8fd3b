"""
Инициализация базы данных и начальные данные.

Запуск:
    python -m storefront.db.seed            # создать таблицы
    python -m storefront.db.seed --demo     # + демо-каталог, если БД пустая
    python -m storefront.db.seed --test     # + тестовая категория и товар
"""

import argparse
import logging
import sys
from typing import Tuple

from sqlalchemy import inspect, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from storefront.core.logging_config import setup_logging
from storefront.db.models import Base, Category, Product
from storefront.schemas.catalog import CategoryOut, ProductOut

logger = logging.getLogger(__name__)

DEMO_CATEGORIES = [
    {"name": "Ceramics", "slug": "ceramics"},
    {"name": "Glassware", "slug": "glassware"},
    {"name": "Linens", "slug": "linens"},
    {"name": "Decor", "slug": "decor"},
]

DEMO_PRODUCTS = [
    {
        "name": "Artisan Clay Plate",
        "description": "Hand-thrown ceramic plate with a raw edge finish.",
        "price": 45.0,
        "image": "/images/ceramics.jpg",
        "category": "ceramics",
    },
    {
        "name": "Stoneware Bowl",
        "description": "Deep bowl for soups and stews, matte glaze.",
        "price": 38.0,
        "image": "/images/ceramics.jpg",
        "category": "ceramics",
    },
    {
        "name": "Crystal Wine Glass",
        "description": "Lead-free crystal glass with a delicate stem.",
        "price": 60.0,
        "image": "/images/glassware.jpg",
        "category": "glassware",
    },
    {
        "name": "Linen Table Runner",
        "description": "100% organic linen in natural oatmeal color.",
        "price": 85.0,
        "image": "/images/ceramics.jpg",
        "category": "linens",
    },
    {
        "name": "Minimalist Vase",
        "description": "Hand-blown glass vase for dry arrangements.",
        "price": 120.0,
        "image": "/images/decor.jpg",
        "category": "decor",
    },
]

TEST_CATEGORY = {"name": "Тестовая категория", "slug": "test-category"}
TEST_PRODUCT = {
    "name": "Тестовый товар",
    "in_stock": True,
    "price": 99.99,
    "image": "/images/ceramics.jpg",
}


def init_db(engine: Engine) -> list:
    """Создает все таблицы в базе данных. Возвращает список таблиц."""
    Base.metadata.create_all(bind=engine)
    tables = inspect(engine).get_table_names()
    logger.info("Database initialized, tables: %s", ", ".join(tables))
    return tables


def seed_database(db: Session) -> bool:
    """
    Заполнить пустую БД демо-каталогом.

    Returns:
        bool: True, если данные были добавлены; False, если категории уже есть
    """
    if db.scalar(select(Category.id).limit(1)) is not None:
        logger.info("Categories already present, demo seed skipped")
        return False

    categories = {item["slug"]: Category(**item) for item in DEMO_CATEGORIES}
    db.add_all(categories.values())
    db.flush()

    for item in DEMO_PRODUCTS:
        data = dict(item)
        category = categories[data.pop("category")]
        db.add(Product(category_id=category.id, in_stock=True, **data))
    db.commit()

    logger.info("Seeded %d categories and %d products", len(DEMO_CATEGORIES), len(DEMO_PRODUCTS))
    return True


def seed_test_category_and_product(db: Session) -> Tuple[CategoryOut, ProductOut]:
    """
    Тестовая категория (upsert по slug) и товар в ней.

    Повторный запуск ничего не дублирует: товар с тем же названием в этой
    категории переиспользуется.
    """
    category = db.scalar(select(Category).where(Category.slug == TEST_CATEGORY["slug"]))
    if category is None:
        category = Category(**TEST_CATEGORY)
        db.add(category)
    else:
        category.name = TEST_CATEGORY["name"]
    db.flush()

    product = db.scalar(
        select(Product)
        .where(Product.category_id == category.id, Product.name == TEST_PRODUCT["name"])
        .limit(1)
    )
    if product is None:
        product = Product(category_id=category.id, **TEST_PRODUCT)
        db.add(product)
    db.commit()
    db.refresh(category)
    db.refresh(product)

    return (
        CategoryOut(id=category.id, name=category.name, slug=category.slug),
        ProductOut(
            id=product.id,
            name=product.name,
            category_id=product.category_id,
            in_stock=bool(product.in_stock),
            price=product.price,
            image=product.image,
        ),
    )


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Инициализация базы данных")
    parser.add_argument("--demo", action="store_true", help="Демо-каталог для пустой БД")
    parser.add_argument("--test", action="store_true", help="Тестовая категория и товар")
    args = parser.parse_args(argv)

    setup_logging()

    from storefront.db.database import SessionLocal, engine

    init_db(engine)
    db = SessionLocal()
    try:
        if args.demo:
            seed_database(db)
        if args.test:
            category, product = seed_test_category_and_product(db)
            logger.info("Test category %s, product %s", category.id, product.id)
    finally:
        db.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
