"""
Pydantic схемы для административной панели.
"""

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from storefront.schemas.catalog import CategoryOut, ProductOut, RequestOut

NO_CATEGORY_VALUE = "__none__"
EMPTY_SELECT_VALUE = "__empty__"


# ==================== ФОРМЫ ====================


class CategoryForm(BaseModel):
    """Форма категории. Slug необязателен, выводится из названия."""

    name: str = ""
    slug: str = ""


class ProductForm(BaseModel):
    """
    Форма товара в том виде, в котором ее заполняет администратор.

    price и category_id - сырой текст, разбирается при сохранении.
    """

    name: str = ""
    category_id: Optional[str] = Field(
        default=NO_CATEGORY_VALUE, description="ID категории или __none__"
    )
    in_stock: bool = True
    price: str = Field(default="", description="Цена, допускается запятая")
    image_url: str = Field(default="", description="Ссылка на фото, если файл не выбран")


class RequestStatusUpdate(BaseModel):
    status: Optional[str] = Field(
        default=None, description="new/processing/done, __empty__ или null - без статуса"
    )


# ==================== УВЕДОМЛЕНИЯ ====================


class Notification(BaseModel):
    """Уведомление для пользователя (аналог всплывающего сообщения)."""

    variant: Literal["default", "destructive"] = "default"
    title: str
    description: Optional[str] = None
    cause: Optional[str] = None


class MutationResult(BaseModel):
    """Результат изменения данных в админке."""

    ok: bool = True
    message: str
    category: Optional[CategoryOut] = None
    product: Optional[ProductOut] = None
    request: Optional[RequestOut] = None
    warnings: List[str] = Field(default_factory=list)
    notifications: List[Notification] = Field(default_factory=list)


class DeleteConfirmationState(BaseModel):
    entity: str
    row_id: Optional[int] = None
    deleting_id: Optional[int] = None


# ==================== ЧЕРНОВИКИ ТОВАРОВ ====================


class ImageState(BaseModel):
    """Состояние подготовки фотографии в черновике."""

    state: Literal["idle", "compressing", "ready", "fallback_ready"] = "idle"
    job_id: int = 0
    filename: Optional[str] = None
    original_bytes: Optional[int] = None
    prepared_bytes: Optional[int] = None
    original_size_label: Optional[str] = None
    prepared_size_label: Optional[str] = None
    has_preview: bool = False


class ProductDraftOut(BaseModel):
    draft_id: str
    product_id: Optional[int] = None
    form: ProductForm
    image: ImageState


class ProductDraftCreate(BaseModel):
    product_id: Optional[int] = Field(default=None, description="Редактируемый товар")


# ==================== СТАТИСТИКА ====================


class CategoryStats(BaseModel):
    id: int
    name: str
    total: int
    in_stock: int
    out_of_stock: int


class ProductStats(BaseModel):
    """Статистика по товарам."""

    total: int
    per_category: List[CategoryStats]


class DailyCount(BaseModel):
    date: str
    count: int


class RequestStatsAll(BaseModel):
    total_all: int
    by_status_all: Dict[str, int]


class RequestStatsMonth(BaseModel):
    """Статистика заявок за месяц."""

    month: str
    month_label: str
    total_month: int
    by_status_month: Dict[str, int]
    daily: List[DailyCount]
    prev_month_total: int
    percent_change: Optional[float] = None


class AdminOverview(BaseModel):
    """Сводка для главного экрана админки после обновления данных."""

    categories_total: int
    products_total: int
    requests_total: int
    notifications: List[Notification] = Field(default_factory=list)
