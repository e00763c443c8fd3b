"""
Постраничные запросы к каталогу.

Каждая функция выполняет два запроса с одним и тем же условием: подсчет
(COUNT) и окно строк [offset, offset + page_size) в порядке убывания даты
создания. Запросы не атомарны относительно параллельных записей: строка,
вставленная между ними, может дать total на единицу больше, чем видно в
items. Это расхождение исчезает при следующей загрузке.
"""

import logging
import math
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy import and_, asc, desc, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.db.models import Category, Product, Request
from storefront.schemas.catalog import CategoryOut, ProductOut, RequestOut, RequestPage
from storefront.schemas.pagination import Page
from storefront.services.mapping import map_category_row, map_product_row, map_request_row

logger = logging.getLogger(__name__)

PRODUCT_COLUMNS = (
    Product.id,
    Product.name,
    Product.category_id,
    Product.in_stock,
    Product.price,
    Product.image,
)

REQUEST_COLUMNS = (
    Request.id,
    Request.client_name,
    Request.client_phone,
    Request.client_message,
    Request.product_id,
    Request.status,
    Request.created_at,
)


def clamp_paging(page: float, page_size: float) -> Tuple[int, int]:
    """Номер и размер страницы не меньше 1, дробная часть отбрасывается."""
    return max(1, math.floor(page)), max(1, math.floor(page_size))


def resolve_category_id(db: Session, slug: str) -> Optional[int]:
    """ID категории по slug или None, если такой категории нет."""
    return db.scalar(select(Category.id).where(Category.slug == slug).limit(1))


def list_categories(db: Session) -> List[CategoryOut]:
    """Все категории по алфавиту."""
    rows = db.execute(
        select(Category.id, Category.name, Category.slug).order_by(asc(Category.name))
    ).mappings().all()
    return [map_category_row(row) for row in rows]


def categories_with_products(db: Session, categories: List[CategoryOut]) -> Dict[int, bool]:
    """
    Есть ли у категории товары.

    На витрине пустые категории скрываются. Если подсчет не удался,
    категории остаются видимыми.
    """
    try:
        rows = db.execute(
            select(Product.category_id, func.count(Product.id))
            .where(Product.category_id.isnot(None))
            .group_by(Product.category_id)
        ).all()
    except SQLAlchemyError as e:
        logger.error("Failed to count products per category: %s", e)
        db.rollback()
        return {category.id: True for category in categories}

    counts = {row[0]: row[1] for row in rows}
    return {category.id: counts.get(category.id, 0) > 0 for category in categories}


def fetch_products_page(
    db: Session,
    page: float = 1,
    page_size: float = 20,
    category_slug: Optional[str] = None,
    category_id: Optional[int] = None,
) -> Page[ProductOut]:
    """
    Получить страницу товаров.

    Args:
        db: Сессия базы данных
        page: Номер страницы (прижимается к >= 1)
        page_size: Размер страницы (прижимается к >= 1)
        category_slug: Фильтр по slug категории
        category_id: Фильтр по ID категории (используется админкой)

    Returns:
        Page[ProductOut]: Страница товаров; для несуществующего slug -
        пустая страница с total=0 и total_pages=1

    Raises:
        SQLAlchemyError: Ошибка запроса пробрасывается вызывающему
    """
    page, page_size = clamp_paging(page, page_size)

    if category_slug:
        category_id = resolve_category_id(db, category_slug)
        if category_id is None:
            return Page[ProductOut].empty(page, page_size)

    conditions = []
    if category_id is not None:
        conditions.append(Product.category_id == category_id)
    where_clause = and_(*conditions) if conditions else None

    # Подсчет общего количества (отдельно, без ORDER/LIMIT)
    count_stmt = select(func.count()).select_from(Product)
    if where_clause is not None:
        count_stmt = count_stmt.where(where_clause)
    total = db.scalar(count_stmt) or 0

    stmt = select(*PRODUCT_COLUMNS)
    if where_clause is not None:
        stmt = stmt.where(where_clause)
    stmt = (
        stmt.order_by(desc(Product.created_at), desc(Product.id))
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    rows = db.execute(stmt).mappings().all()

    items = [map_product_row(row) for row in rows]
    return Page[ProductOut].create(items=items, page=page, page_size=page_size, total=total)


def get_product(db: Session, product_id: int) -> Optional[ProductOut]:
    """Товар по ID; отсутствие строки - не ошибка."""
    row = db.execute(select(*PRODUCT_COLUMNS).where(Product.id == product_id)).mappings().first()
    return map_product_row(row) if row is not None else None


def fetch_products_by_ids(db: Session, ids: List[int]) -> Dict[int, ProductOut]:
    if not ids:
        return {}
    rows = db.execute(select(*PRODUCT_COLUMNS).where(Product.id.in_(ids))).mappings().all()
    products = [map_product_row(row) for row in rows]
    return {product.id: product for product in products}


def fetch_requests_page(
    db: Session,
    page: float = 1,
    page_size: float = 20,
    sort: str = "desc",
) -> RequestPage:
    """
    Получить страницу заявок вместе с товарами, на которые они ссылаются.

    Args:
        sort: "desc" - сначала новые, "asc" - сначала старые
    """
    page, page_size = clamp_paging(page, page_size)
    direction = asc if sort == "asc" else desc

    total = db.scalar(select(func.count()).select_from(Request)) or 0
    stmt = (
        select(*REQUEST_COLUMNS)
        .order_by(direction(Request.created_at), direction(Request.id))
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    items = [map_request_row(row) for row in db.execute(stmt).mappings().all()]

    product_ids = sorted({item.product_id for item in items if item.product_id})
    products_map = fetch_products_by_ids(db, product_ids)

    return RequestPage.create(
        items=items, page=page, page_size=page_size, total=total
    ).model_copy(update={"products_map": products_map})


def fetch_clamped(fetch: Callable[..., Page], page: int, **kwargs) -> Page:
    """
    Загрузить страницу и, если номер вышел за total_pages, загрузить последнюю.

    Пример: 25 товаров по 20 на странице, запрошена 3-я - вернется 2-я.
    """
    result = fetch(page=page, **kwargs)
    if result.page > result.total_pages:
        result = fetch(page=result.total_pages, **kwargs)
    return result
