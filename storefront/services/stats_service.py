"""
Статистика для админки: товары по категориям и заявки по статусам.

Границы месяца считаются в UTC, дневные счетчики группируются по дате UTC.
"""

import calendar
import logging
import re
from collections import Counter
from datetime import datetime, timezone
from typing import Optional, Tuple

from sqlalchemy import and_, case, func, select
from sqlalchemy.orm import Session

from storefront.core.errors import ValidationFailed
from storefront.db.models import REQUEST_STATUSES, Category, Product, Request
from storefront.schemas.admin import (
    CategoryStats,
    DailyCount,
    ProductStats,
    RequestStatsAll,
    RequestStatsMonth,
)

logger = logging.getLogger(__name__)

MONTH_NAMES = (
    "январь", "февраль", "март", "апрель", "май", "июнь",
    "июль", "август", "сентябрь", "октябрь", "ноябрь", "декабрь",
)

_MONTH_RE = re.compile(r"^(\d{4})-(\d{1,2})$")

# Границы месяца и прошлого месяца должны помещаться в datetime
MIN_YEAR = 1970
MAX_YEAR = 9998


def parse_month(month: str) -> Tuple[int, int]:
    """
    Разобрать месяц в формате YYYY-MM.

    Raises:
        ValidationFailed: Неверный формат или номер месяца
    """
    match = _MONTH_RE.match((month or "").strip())
    if not match:
        raise ValidationFailed("Месяц должен быть в формате ГГГГ-ММ")
    year, number = int(match.group(1)), int(match.group(2))
    if not 1 <= number <= 12 or not MIN_YEAR <= year <= MAX_YEAR:
        raise ValidationFailed("Месяц должен быть в формате ГГГГ-ММ")
    return year, number


def month_bounds(year: int, month: int) -> Tuple[datetime, datetime]:
    """Начало месяца и начало следующего, UTC."""
    start = datetime(year, month, 1, tzinfo=timezone.utc)
    if month == 12:
        end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        end = datetime(year, month + 1, 1, tzinfo=timezone.utc)
    return start, end


def previous_month(year: int, month: int) -> Tuple[int, int]:
    return (year - 1, 12) if month == 1 else (year, month - 1)


def month_label(year: int, month: int) -> str:
    return f"{MONTH_NAMES[month - 1]} {year} г."


def percent_change(current: int, previous: int) -> Optional[float]:
    """Изменение в процентах; None, если в прошлом месяце заявок не было."""
    if previous <= 0:
        return None
    return (current - previous) / previous * 100


def _as_utc(value: datetime) -> datetime:
    # SQLite возвращает наивные datetime, в БД хранится UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def product_stats(db: Session) -> ProductStats:
    """Всего товаров и разбивка по категориям (в наличии / нет)."""
    total = db.scalar(select(func.count()).select_from(Product)) or 0

    rows = db.execute(
        select(
            Category.id,
            Category.name,
            func.count(Product.id).label("total"),
            func.coalesce(
                func.sum(case((Product.in_stock.is_(True), 1), else_=0)), 0
            ).label("in_stock"),
        )
        .outerjoin(Product, Product.category_id == Category.id)
        .group_by(Category.id, Category.name)
        .order_by(Category.name)
    ).all()

    per_category = []
    for row in rows:
        category_total = int(row.total or 0)
        in_stock = int(row.in_stock or 0)
        per_category.append(
            CategoryStats(
                id=row.id,
                name=row.name,
                total=category_total,
                in_stock=in_stock,
                out_of_stock=max(0, category_total - in_stock),
            )
        )
    return ProductStats(total=total, per_category=per_category)


def _count_by_status(db: Session, *conditions) -> dict:
    stmt = select(Request.status, func.count(Request.id)).group_by(Request.status)
    if conditions:
        stmt = stmt.where(and_(*conditions))
    counts = {status: count for status, count in db.execute(stmt).all()}
    return {status: int(counts.get(status, 0)) for status in REQUEST_STATUSES}


def request_stats_all(db: Session) -> RequestStatsAll:
    total = db.scalar(select(func.count()).select_from(Request)) or 0
    return RequestStatsAll(total_all=total, by_status_all=_count_by_status(db))


def request_stats_month(db: Session, month: str) -> RequestStatsMonth:
    """
    Статистика заявок за месяц.

    Args:
        db: Сессия базы данных
        month: Месяц в формате YYYY-MM

    Returns:
        RequestStatsMonth: Счетчики по дням (все дни месяца, включая нулевые),
        по статусам, итог прошлого месяца и изменение в процентах
    """
    year, number = parse_month(month)
    start, end = month_bounds(year, number)
    in_month = (Request.created_at >= start, Request.created_at < end)

    created = db.scalars(
        select(Request.created_at).where(*in_month).order_by(Request.created_at)
    ).all()
    per_day = Counter(_as_utc(value).date().isoformat() for value in created)

    days_in_month = calendar.monthrange(year, number)[1]
    daily = []
    for day in range(1, days_in_month + 1):
        key = datetime(year, number, day).date().isoformat()
        daily.append(DailyCount(date=key, count=per_day.get(key, 0)))

    prev_start, prev_end = month_bounds(*previous_month(year, number))
    prev_total = db.scalar(
        select(func.count())
        .select_from(Request)
        .where(Request.created_at >= prev_start, Request.created_at < prev_end)
    ) or 0

    total_month = len(created)
    logger.debug("Request stats for %s: %d (prev %d)", month, total_month, prev_total)
    return RequestStatsMonth(
        month=f"{year:04d}-{number:02d}",
        month_label=month_label(year, number),
        total_month=total_month,
        by_status_month=_count_by_status(db, *in_month),
        daily=daily,
        prev_month_total=prev_total,
        percent_change=percent_change(total_month, prev_total),
    )
