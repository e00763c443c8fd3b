"""
API эндпоинты для административной панели.

Админка не требует аутентификации: доступ к ней ограничивается на уровне
развертывания.
"""

from datetime import datetime, timezone
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from storefront.core.errors import ValidationFailed
from storefront.db.database import get_db
from storefront.schemas.admin import (
    NO_CATEGORY_VALUE,
    AdminOverview,
    CategoryForm,
    DeleteConfirmationState,
    MutationResult,
    Notification,
    ProductDraftCreate,
    ProductDraftOut,
    ProductForm,
    ProductStats,
    RequestStatsAll,
    RequestStatsMonth,
    RequestStatusUpdate,
)
from storefront.schemas.catalog import CategoryOut, ProductOut, RequestPage
from storefront.schemas.pagination import Page
from storefront.services import stats_service
from storefront.services.admin_service import AdminService, get_admin_service
from storefront.services.image_pipeline import ImagePreparer
from storefront.services.image_service import ImageFile, image_service

router = APIRouter()

DeleteEntity = Literal["category", "product"]


async def read_image_upload(file: UploadFile) -> ImageFile:
    """Прочитать и проверить загруженный файл изображения."""
    content = await file.read()
    is_valid, error_message = image_service.validate_file(file.filename or "", len(content))
    if not is_valid:
        raise ValidationFailed(error_message)
    return ImageFile(filename=file.filename, data=content, content_type=file.content_type)


async def prepare_upload(file: Optional[UploadFile]) -> Optional[ImageFile]:
    """Сжать фотографию из multipart формы так же, как в черновике."""
    if file is None or not file.filename:
        return None
    image = await read_image_upload(file)
    preparer = ImagePreparer()
    try:
        await preparer.select(image)
        return preparer.prepared
    finally:
        preparer.close()


# ==================== КАТЕГОРИИ ====================


@router.get("/categories", response_model=List[CategoryOut])
def admin_list_categories(
    db: Session = Depends(get_db),
    service: AdminService = Depends(get_admin_service),
):
    """Все категории по алфавиту."""
    return service.list_categories(db)


@router.post("/categories", response_model=MutationResult, status_code=status.HTTP_201_CREATED)
def admin_create_category(
    form: CategoryForm,
    db: Session = Depends(get_db),
    service: AdminService = Depends(get_admin_service),
):
    """
    Создать категорию.

    Slug необязателен: если не задан, выводится из названия
    ("Керамика" -> "keramika").
    """
    return service.save_category(db, form)


@router.put("/categories/{category_id}", response_model=MutationResult)
def admin_update_category(
    category_id: int,
    form: CategoryForm,
    db: Session = Depends(get_db),
    service: AdminService = Depends(get_admin_service),
):
    return service.save_category(db, form, category_id=category_id)


@router.delete("/categories/{category_id}", response_model=MutationResult)
def admin_delete_category(
    category_id: int,
    db: Session = Depends(get_db),
    service: AdminService = Depends(get_admin_service),
):
    """
    Удалить категорию.

    Товары категории не удаляются, а остаются без категории.
    """
    return service.delete_category(db, category_id)


# ==================== ПОДТВЕРЖДЕНИЕ УДАЛЕНИЯ ====================


@router.get("/delete-confirmation/{entity}", response_model=DeleteConfirmationState)
def get_delete_confirmation(entity: DeleteEntity, service: AdminService = Depends(get_admin_service)):
    return service.delete_guard.state(entity)


@router.post("/delete-confirmation/{entity}/{row_id}", response_model=DeleteConfirmationState)
def open_delete_confirmation(
    entity: DeleteEntity,
    row_id: int,
    service: AdminService = Depends(get_admin_service),
):
    """Открыть подтверждение удаления строки (одно на таблицу)."""
    return service.delete_guard.open(entity, row_id)


@router.delete("/delete-confirmation/{entity}", response_model=DeleteConfirmationState)
def dismiss_delete_confirmation(entity: DeleteEntity, service: AdminService = Depends(get_admin_service)):
    """Закрыть подтверждение. Во время удаления возвращает 409."""
    return service.delete_guard.dismiss(entity)


# ==================== ТОВАРЫ ====================


@router.get("/products", response_model=Page[ProductOut])
def admin_list_products(
    page: int = Query(1, ge=1, description="Номер страницы"),
    page_size: Optional[int] = Query(None, ge=1, le=100, description="Размер страницы"),
    category_id: Optional[int] = Query(None, description="Фильтр по категории"),
    db: Session = Depends(get_db),
    service: AdminService = Depends(get_admin_service),
):
    """Страница товаров для админки, новые первыми."""
    return service.list_products(db, page=page, page_size=page_size, category_id=category_id)


@router.post("/products", response_model=MutationResult, status_code=status.HTTP_201_CREATED)
async def admin_create_product(
    name: str = Form(""),
    category_id: str = Form(NO_CATEGORY_VALUE),
    in_stock: bool = Form(True),
    price: str = Form(""),
    image_url: str = Form(""),
    image: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    service: AdminService = Depends(get_admin_service),
):
    """
    Создать товар из multipart формы.

    Если передан файл image, он сжимается и загружается в хранилище,
    а image_url игнорируется.
    """
    form = ProductForm(
        name=name, category_id=category_id, in_stock=in_stock, price=price, image_url=image_url
    )
    prepared = await prepare_upload(image)
    return service.save_product(db, form, image=prepared)


@router.put("/products/{product_id}", response_model=MutationResult)
async def admin_update_product(
    product_id: int,
    name: str = Form(""),
    category_id: str = Form(NO_CATEGORY_VALUE),
    in_stock: bool = Form(True),
    price: str = Form(""),
    image_url: str = Form(""),
    image: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    service: AdminService = Depends(get_admin_service),
):
    form = ProductForm(
        name=name, category_id=category_id, in_stock=in_stock, price=price, image_url=image_url
    )
    prepared = await prepare_upload(image)
    return service.save_product(db, form, product_id=product_id, image=prepared)


@router.delete("/products/{product_id}", response_model=MutationResult)
def admin_delete_product(
    product_id: int,
    db: Session = Depends(get_db),
    service: AdminService = Depends(get_admin_service),
):
    """
    Удалить товар и его фото из хранилища.

    Если фото удалить не удалось, товар все равно удален, а в ответе
    есть предупреждение.
    """
    return service.delete_product(db, product_id)


# ==================== ЧЕРНОВИКИ ТОВАРОВ ====================


@router.post("/drafts", response_model=ProductDraftOut, status_code=status.HTTP_201_CREATED)
def create_draft(
    payload: ProductDraftCreate,
    db: Session = Depends(get_db),
    service: AdminService = Depends(get_admin_service),
):
    """Открыть черновик нового товара или редактирования существующего."""
    return service.open_draft(db, payload.product_id).to_out()


@router.get("/drafts/{draft_id}", response_model=ProductDraftOut)
def get_draft(draft_id: str, service: AdminService = Depends(get_admin_service)):
    return service.drafts.get(draft_id).to_out()


@router.put("/drafts/{draft_id}/form", response_model=ProductDraftOut)
def update_draft_form(
    draft_id: str,
    form: ProductForm,
    service: AdminService = Depends(get_admin_service),
):
    return service.update_draft_form(draft_id, form).to_out()


@router.post("/drafts/{draft_id}/image", response_model=ProductDraftOut)
async def upload_draft_image(
    draft_id: str,
    file: UploadFile = File(...),
    service: AdminService = Depends(get_admin_service),
):
    """
    Выбрать фотографию для черновика.

    Фото сжимается в фоне; если за это время выбрано другое фото,
    результат первого отбрасывается.
    """
    service.drafts.get(draft_id)
    image = await read_image_upload(file)
    draft = await service.select_draft_image(draft_id, image)
    return draft.to_out()


@router.delete("/drafts/{draft_id}/image", response_model=ProductDraftOut)
def clear_draft_image(draft_id: str, service: AdminService = Depends(get_admin_service)):
    return service.clear_draft_image(draft_id).to_out()


@router.get("/drafts/{draft_id}/preview")
def get_draft_preview(draft_id: str, service: AdminService = Depends(get_admin_service)):
    """Превью подготовленной фотографии."""
    draft = service.drafts.get(draft_id)
    path = draft.preparer.preview_path
    prepared = draft.preparer.prepared
    if path is None or prepared is None:
        raise HTTPException(404, detail="Preview not found")
    return FileResponse(path, media_type=prepared.content_type or "application/octet-stream")


@router.post("/drafts/{draft_id}/save", response_model=MutationResult)
def save_draft(
    draft_id: str,
    db: Session = Depends(get_db),
    service: AdminService = Depends(get_admin_service),
):
    """Сохранить черновик. Пока фото сжимается, возвращает 400."""
    return service.save_draft(db, draft_id)


@router.delete("/drafts/{draft_id}", status_code=status.HTTP_204_NO_CONTENT)
def close_draft(draft_id: str, service: AdminService = Depends(get_admin_service)):
    """Закрыть черновик без сохранения."""
    service.close_draft(draft_id)


# ==================== ЗАЯВКИ ====================


@router.get("/requests", response_model=RequestPage)
def admin_list_requests(
    page: int = Query(1, ge=1, description="Номер страницы"),
    page_size: Optional[int] = Query(None, ge=1, le=100, description="Размер страницы"),
    sort: Literal["asc", "desc"] = Query("desc", description="Порядок по дате"),
    db: Session = Depends(get_db),
    service: AdminService = Depends(get_admin_service),
):
    """Страница заявок вместе с товарами, на которые они ссылаются."""
    return service.list_requests(db, page=page, page_size=page_size, sort=sort)


@router.put("/requests/{request_id}/status", response_model=MutationResult)
def admin_update_request_status(
    request_id: int,
    payload: RequestStatusUpdate,
    db: Session = Depends(get_db),
    service: AdminService = Depends(get_admin_service),
):
    return service.update_request_status(db, request_id, payload.status)


# ==================== СТАТИСТИКА ====================


@router.get("/stats/products", response_model=ProductStats)
def admin_product_stats(
    db: Session = Depends(get_db),
    service: AdminService = Depends(get_admin_service),
):
    return service.load(
        db,
        ("stats", "products"),
        lambda: stats_service.product_stats(db),
        "Не удалось загрузить статистику",
    )


@router.get("/stats/requests", response_model=RequestStatsAll)
def admin_request_stats(
    db: Session = Depends(get_db),
    service: AdminService = Depends(get_admin_service),
):
    return service.load(
        db,
        ("stats", "requests_all"),
        lambda: stats_service.request_stats_all(db),
        "Не удалось загрузить статистику",
    )


@router.get("/stats/requests/month", response_model=RequestStatsMonth)
def admin_request_month_stats(
    month: Optional[str] = Query(None, description="Месяц YYYY-MM, по умолчанию текущий"),
    db: Session = Depends(get_db),
    service: AdminService = Depends(get_admin_service),
):
    """Заявки за месяц по дням и статусам, сравнение с прошлым месяцем."""
    if month is None:
        month = datetime.now(timezone.utc).strftime("%Y-%m")
    year, number = stats_service.parse_month(month)
    key = f"{year:04d}-{number:02d}"
    return service.load(
        db,
        ("stats", "requests_month", key),
        lambda: stats_service.request_stats_month(db, key),
        "Не удалось загрузить статистику",
    )


# ==================== ОБНОВЛЕНИЕ И УВЕДОМЛЕНИЯ ====================


@router.post("/refresh", response_model=AdminOverview)
def admin_refresh(
    products_page: int = Query(1, ge=1),
    requests_page: int = Query(1, ge=1),
    db: Session = Depends(get_db),
    service: AdminService = Depends(get_admin_service),
):
    """Перезагрузить категории, товары и заявки в обход кэша."""
    return service.refresh(db, products_page=products_page, requests_page=requests_page)


@router.get("/notifications", response_model=List[Notification])
def admin_notifications(service: AdminService = Depends(get_admin_service)):
    """Забрать накопленные уведомления."""
    return service.notifier.drain()
