"""
Операции административной панели.

Каждая операция:
    1. проверяет форму локально (ValidationFailed, запрос к БД не выполняется);
    2. выполняет запись в БД (и в хранилище для фотографий);
    3. после успеха инвалидирует зависимые представления в кэше запросов;
    4. сообщает результат через Notifier.

Ошибки БД и хранилища ловятся на границе операции, переводятся в
сообщение для пользователя и пробрасываются как OperationFailed.
"""

import logging
import math
import threading
import uuid
from contextlib import contextmanager
from decimal import Decimal, InvalidOperation
from io import BytesIO
from typing import Dict, List, Optional

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.core.config import settings
from storefront.core.errors import (
    DeleteInProgress,
    NotFound,
    OperationFailed,
    StorageError,
    StorefrontError,
    ValidationFailed,
    get_db_error_message,
    status_code_for,
)
from storefront.db.models import REQUEST_STATUSES, Category, Product, Request
from storefront.schemas.admin import (
    EMPTY_SELECT_VALUE,
    NO_CATEGORY_VALUE,
    AdminOverview,
    CategoryForm,
    DeleteConfirmationState,
    MutationResult,
    ProductDraftOut,
    ProductForm,
)
from storefront.schemas.catalog import CategoryOut, ProductOut, RequestOut
from storefront.services import catalog_service
from storefront.services.image_pipeline import ImagePreparer
from storefront.services.image_service import ImageFile
from storefront.services.notifier import Notifier
from storefront.services.query_cache import QueryCache, query_cache
from storefront.services.storage_service import (
    StorageProvider,
    generate_storage_key,
    get_storage,
)
from storefront.utils.slugify import slugify

logger = logging.getLogger(__name__)


def parse_price(raw: Optional[str]) -> Optional[float]:
    """
    Цена из текста формы. Запятая допускается как десятичный разделитель.

    Raises:
        ValidationFailed: Текст не пустой, но не число
    """
    text = (raw or "").strip()
    if not text:
        return None
    try:
        value = float(Decimal(text.replace(",", ".")))
    except (InvalidOperation, ValueError):
        raise ValidationFailed("Цена должна быть числом")
    if not math.isfinite(value):
        raise ValidationFailed("Цена должна быть числом")
    return value


def parse_category_ref(raw: Optional[str]) -> Optional[int]:
    """ID категории из формы; пусто или __none__ - без категории."""
    text = (raw or "").strip()
    if not text or text == NO_CATEGORY_VALUE:
        return None
    try:
        return int(text)
    except ValueError:
        raise ValidationFailed("Категория выбрана некорректно")


def parse_request_status(raw: Optional[str]) -> Optional[str]:
    if raw is None or raw == "" or raw == EMPTY_SELECT_VALUE:
        return None
    if raw not in REQUEST_STATUSES:
        raise ValidationFailed("Некорректный статус заявки")
    return raw


def price_to_text(price: Optional[float]) -> str:
    if price is None:
        return ""
    return str(int(price)) if float(price).is_integer() else str(price)


class DeleteGuard:
    """
    Подтверждение удаления: одна открытая строка на таблицу.

    Пока удаление выполняется, подтверждение нельзя закрыть, а удаление
    нельзя запустить повторно.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._pending: Dict[str, Optional[int]] = {}
        self._deleting: Dict[str, Optional[int]] = {}

    def _ensure_idle(self, entity: str) -> None:
        if self._deleting.get(entity) is not None:
            raise DeleteInProgress("Удаление уже выполняется")

    def open(self, entity: str, row_id: int) -> DeleteConfirmationState:
        with self._lock:
            self._ensure_idle(entity)
            self._pending[entity] = row_id
            return self._state(entity)

    def dismiss(self, entity: str) -> DeleteConfirmationState:
        with self._lock:
            self._ensure_idle(entity)
            self._pending[entity] = None
            return self._state(entity)

    def begin(self, entity: str, row_id: int) -> None:
        with self._lock:
            self._ensure_idle(entity)
            self._pending[entity] = row_id
            self._deleting[entity] = row_id

    def finish(self, entity: str) -> None:
        with self._lock:
            self._deleting[entity] = None
            self._pending[entity] = None

    def state(self, entity: str) -> DeleteConfirmationState:
        with self._lock:
            return self._state(entity)

    def _state(self, entity: str) -> DeleteConfirmationState:
        return DeleteConfirmationState(
            entity=entity,
            row_id=self._pending.get(entity),
            deleting_id=self._deleting.get(entity),
        )


class ProductDraft:
    """Сеанс редактирования товара (нового или существующего)."""

    def __init__(self, draft_id: str, form: ProductForm, product_id: Optional[int] = None, preparer: ImagePreparer = None):
        self.draft_id = draft_id
        self.product_id = product_id
        self.form = form
        self.preparer = preparer or ImagePreparer()

    def to_out(self) -> ProductDraftOut:
        return ProductDraftOut(
            draft_id=self.draft_id,
            product_id=self.product_id,
            form=self.form,
            image=self.preparer.state(),
        )

    def close(self) -> None:
        self.preparer.close()


class DraftRegistry:
    def __init__(self):
        self._lock = threading.Lock()
        self._drafts: Dict[str, ProductDraft] = {}

    def open(self, form: ProductForm, product_id: Optional[int] = None) -> ProductDraft:
        draft = ProductDraft(uuid.uuid4().hex, form, product_id)
        with self._lock:
            self._drafts[draft.draft_id] = draft
        return draft

    def get(self, draft_id: str) -> ProductDraft:
        with self._lock:
            draft = self._drafts.get(draft_id)
        if draft is None:
            raise NotFound("Draft not found")
        return draft

    def close(self, draft_id: str) -> None:
        with self._lock:
            draft = self._drafts.pop(draft_id, None)
        if draft is None:
            raise NotFound("Draft not found")
        draft.close()

    def close_all(self) -> None:
        with self._lock:
            drafts, self._drafts = list(self._drafts.values()), {}
        for draft in drafts:
            draft.close()


class AdminService:
    """Оркестрация CRUD операций админки."""

    def __init__(
        self,
        storage: StorageProvider = None,
        cache: QueryCache = None,
        notifier: Notifier = None,
    ):
        self._storage = storage
        self.cache = cache if cache is not None else query_cache
        self.notifier = notifier or Notifier()
        self.delete_guard = DeleteGuard()
        self.drafts = DraftRegistry()

    @property
    def storage(self) -> StorageProvider:
        return self._storage or get_storage()

    @contextmanager
    def _operation(self, db: Session, fallback: str, cause: str):
        """Граница операции: откат транзакции и перевод ошибки в уведомление."""
        try:
            yield
        except (ValidationFailed, NotFound, DeleteInProgress):
            db.rollback()
            raise
        except (SQLAlchemyError, StorefrontError) as e:
            db.rollback()
            logger.error("Admin operation %s failed: %s", cause, e)
            notification = self.notifier.report(e, fallback, cause)
            raise OperationFailed(
                notification.description, status_code=status_code_for(e), cause=e
            ) from e

    def load(self, db: Session, key: tuple, loader, fallback: str):
        """Загрузить представление через кэш; ошибка сообщается один раз."""
        try:
            return self.cache.fetch(key, loader)
        except SQLAlchemyError as e:
            db.rollback()
            state = self.cache.state(key)
            self.notifier.report(
                e, fallback, cause=key[0], occurred_at=state.error_updated_at if state else None
            )
            raise OperationFailed(
                get_db_error_message(e, fallback), status_code=status_code_for(e), cause=e
            ) from e

    # ==================== ЧТЕНИЕ ====================

    def list_categories(self, db: Session) -> List[CategoryOut]:
        return self.load(
            db,
            ("admin_categories",),
            lambda: catalog_service.list_categories(db),
            "Не удалось загрузить категории",
        )

    def list_products(self, db: Session, page: int = 1, page_size: int = None, category_id: int = None):
        page_size = page_size or settings.ADMIN_PAGE_SIZE

        def fetch(page):
            return self.load(
                db,
                ("admin_products", page, page_size, category_id),
                lambda: catalog_service.fetch_products_page(
                    db, page=page, page_size=page_size, category_id=category_id
                ),
                "Не удалось загрузить товары",
            )

        return catalog_service.fetch_clamped(fetch, page)

    def list_requests(self, db: Session, page: int = 1, page_size: int = None, sort: str = "desc"):
        page_size = page_size or settings.ADMIN_PAGE_SIZE

        def fetch(page):
            return self.load(
                db,
                ("admin_requests", page, page_size, sort),
                lambda: catalog_service.fetch_requests_page(db, page=page, page_size=page_size, sort=sort),
                "Не удалось загрузить заявки",
            )

        return catalog_service.fetch_clamped(fetch, page)

    def refresh(self, db: Session, products_page: int = 1, requests_page: int = 1) -> AdminOverview:
        """
        Перезагрузить категории, товары и заявки.

        Если несколько загрузок упали, сообщается только первая ошибка.
        """
        page_size = settings.ADMIN_PAGE_SIZE
        loaders = (
            (("admin_categories",), lambda: catalog_service.list_categories(db)),
            (
                ("admin_products", products_page, page_size, None),
                lambda: catalog_service.fetch_products_page(db, page=products_page, page_size=page_size),
            ),
            (
                ("admin_requests", requests_page, page_size, "desc"),
                lambda: catalog_service.fetch_requests_page(db, page=requests_page, page_size=page_size),
            ),
        )

        results = []
        errors = []
        for key, loader in loaders:
            try:
                results.append(self.cache.refetch(key, loader))
            except SQLAlchemyError as e:
                db.rollback()
                results.append(None)
                errors.append((key, e))

        notifications = []
        if errors:
            key, error = errors[0]
            state = self.cache.state(key)
            notification = self.notifier.report(
                error,
                "Не удалось обновить данные",
                cause="refresh",
                occurred_at=state.error_updated_at if state else None,
            )
            if notification is not None:
                notifications.append(notification)

        categories, products, requests = results
        return AdminOverview(
            categories_total=len(categories) if categories is not None else 0,
            products_total=products.total if products is not None else 0,
            requests_total=requests.total if requests is not None else 0,
            notifications=notifications,
        )

    # ==================== КАТЕГОРИИ ====================

    def save_category(self, db: Session, form: CategoryForm, category_id: int = None) -> MutationResult:
        """
        Создать или обновить категорию.

        Slug берется из формы, если задан, иначе выводится из названия.
        """
        name = (form.name or "").strip()
        if not name:
            raise ValidationFailed("Введите название категории")

        requested = (form.slug or "").strip()
        slug = slugify(requested) if requested else slugify(name)
        if not slug.strip():
            raise ValidationFailed("Slug не может быть пустым")

        with self._operation(db, "Не удалось сохранить", "category_save"):
            if category_id is None:
                category = Category(name=name, slug=slug)
                db.add(category)
            else:
                category = db.get(Category, category_id)
                if category is None:
                    raise NotFound("Category not found")
                category.name = name
                category.slug = slug
            db.commit()
            db.refresh(category)

        self.cache.invalidate_entity("category")
        message = "Категория обновлена" if category_id is not None else "Категория создана"
        logger.info("%s: id=%s slug=%s", message, category.id, category.slug)
        return MutationResult(
            message=message,
            category=CategoryOut(id=category.id, name=category.name, slug=category.slug),
            notifications=[self.notifier.success(message)],
        )

    def delete_category(self, db: Session, category_id: int) -> MutationResult:
        """Удалить категорию. Товары остаются без категории (ON DELETE SET NULL)."""
        self.delete_guard.begin("category", category_id)
        try:
            with self._operation(db, "Не удалось удалить", "category_delete"):
                db.execute(delete(Category).where(Category.id == category_id))
                db.commit()
        finally:
            self.delete_guard.finish("category")

        self.cache.invalidate_entity("category")
        logger.info("Category %s deleted", category_id)
        return MutationResult(
            message="Категория удалена",
            notifications=[self.notifier.success("Категория удалена")],
        )

    # ==================== ТОВАРЫ ====================

    def upload_image(self, image: ImageFile) -> str:
        """Загрузить фотографию под новым ключом и вернуть ее публичный URL."""
        key = generate_storage_key(image.filename)
        self.storage.save_file(key, BytesIO(image.data), image.content_type)
        return self.storage.get_file_url(key)

    def save_product(
        self,
        db: Session,
        form: ProductForm,
        product_id: int = None,
        image: Optional[ImageFile] = None,
    ) -> MutationResult:
        """
        Создать или обновить товар.

        Args:
            db: Сессия базы данных
            form: Форма товара (цена и категория - текст)
            product_id: ID редактируемого товара или None для нового
            image: Подготовленная фотография; загружается до записи в БД
                и заменяет ссылку из формы

        Raises:
            ValidationFailed: Пустое название, цена не число, некорректная категория
            NotFound: Редактируемый товар не существует
            OperationFailed: Ошибка БД или хранилища
        """
        name = (form.name or "").strip()
        if not name:
            raise ValidationFailed("Введите название товара")
        price = parse_price(form.price)
        category_id = parse_category_ref(form.category_id)

        with self._operation(db, "Не удалось сохранить", "product_save"):
            product = None
            if product_id is not None:
                product = db.get(Product, product_id)
                if product is None:
                    raise NotFound("Product not found")

            uploaded_key = None
            if image is not None:
                image_url = self.upload_image(image)
                uploaded_key = self.storage.key_from_url(image_url)
            else:
                image_url = (form.image_url or "").strip() or None

            try:
                if product is None:
                    product = Product()
                    db.add(product)
                product.name = name
                product.category_id = category_id
                product.in_stock = form.in_stock
                product.price = price
                product.image = image_url
                db.commit()
                db.refresh(product)
            except SQLAlchemyError:
                self._discard_upload(uploaded_key)
                raise

        self.cache.invalidate_entity("product")
        message = "Товар обновлён" if product_id is not None else "Товар создан"
        logger.info("%s: id=%s", message, product.id)
        return MutationResult(
            message=message,
            product=ProductOut(
                id=product.id,
                name=product.name,
                category_id=product.category_id,
                in_stock=bool(product.in_stock),
                price=product.price,
                image=product.image,
            ),
            notifications=[self.notifier.success(message)],
        )

    def _discard_upload(self, key: Optional[str]) -> None:
        """Удалить загруженную фотографию, если товар так и не записан."""
        if not key:
            return
        try:
            self.storage.delete_file(key)
        except StorageError as e:
            logger.warning("Failed to remove orphaned upload %s: %s", key, e)

    def _cached_product_image(self, product_id: int) -> Optional[str]:
        for _, page in self.cache.cached("admin_products"):
            for item in page.items:
                if item.id == product_id:
                    return item.image
        return None

    def delete_product(self, db: Session, product_id: int) -> MutationResult:
        """
        Удалить товар и его фотографию.

        Ссылка на фото берется из загруженных страниц админки, иначе
        отдельным запросом. Фото удаляется после строки; ошибка хранилища
        не отменяет удаление и возвращается как предупреждение.
        """
        self.delete_guard.begin("product", product_id)
        try:
            with self._operation(db, "Не удалось удалить", "product_delete"):
                image_url = self._cached_product_image(product_id)
                if not image_url:
                    product = catalog_service.get_product(db, product_id)
                    image_url = product.image if product is not None else None
                db.execute(delete(Product).where(Product.id == product_id))
                db.commit()

            warnings = []
            notifications = []
            storage_key = self.storage.key_from_url(image_url) if image_url else None
            if storage_key:
                try:
                    self.storage.delete_file(storage_key)
                except StorageError as e:
                    notification = self.notifier.report(
                        e,
                        "Товар удалён, но не удалось удалить фото из хранилища",
                        cause="product_image_delete",
                    )
                    warnings.append(notification.description)
                    notifications.append(notification)
        finally:
            self.delete_guard.finish("product")

        self.cache.invalidate_entity("product")
        logger.info("Product %s deleted", product_id)
        notifications.append(self.notifier.success("Товар удалён"))
        return MutationResult(message="Товар удалён", warnings=warnings, notifications=notifications)

    # ==================== ЧЕРНОВИКИ ====================

    def open_draft(self, db: Session, product_id: int = None) -> ProductDraft:
        """Открыть черновик: пустая форма или данные существующего товара."""
        if product_id is None:
            return self.drafts.open(ProductForm())

        product = catalog_service.get_product(db, product_id)
        if product is None:
            raise NotFound("Product not found")
        form = ProductForm(
            name=product.name,
            category_id=str(product.category_id) if product.category_id is not None else NO_CATEGORY_VALUE,
            in_stock=product.in_stock,
            price=price_to_text(product.price),
            image_url=product.image or "",
        )
        return self.drafts.open(form, product_id=product_id)

    def update_draft_form(self, draft_id: str, form: ProductForm) -> ProductDraft:
        draft = self.drafts.get(draft_id)
        draft.form = form
        return draft

    async def select_draft_image(self, draft_id: str, image: ImageFile) -> ProductDraft:
        """
        Выбрать фотографию для черновика и дождаться ее подготовки.

        Если сжатие не удалось, в черновике остается оригинал и создается
        уведомление об ошибке.
        """
        draft = self.drafts.get(draft_id)
        state = await draft.preparer.select(image)
        if state.state == "fallback_ready" and state.job_id == draft.preparer.job_id:
            self.notifier.error("Не удалось сжать изображение", cause="image_compress")
        return draft

    def clear_draft_image(self, draft_id: str) -> ProductDraft:
        draft = self.drafts.get(draft_id)
        draft.preparer.clear()
        return draft

    def save_draft(self, db: Session, draft_id: str) -> MutationResult:
        """Сохранить черновик и закрыть его."""
        draft = self.drafts.get(draft_id)
        if draft.preparer.is_compressing:
            raise ValidationFailed("Дождитесь окончания сжатия изображения")
        result = self.save_product(db, draft.form, draft.product_id, draft.preparer.prepared)
        self.drafts.close(draft_id)
        return result

    def close_draft(self, draft_id: str) -> None:
        self.drafts.close(draft_id)

    # ==================== ЗАЯВКИ ====================

    def update_request_status(self, db: Session, request_id: int, status: Optional[str]) -> MutationResult:
        """Сменить статус заявки (new/processing/done или без статуса)."""
        status = parse_request_status(status)
        with self._operation(db, "Не удалось обновить статус", "request_status"):
            request = db.get(Request, request_id)
            if request is None:
                raise NotFound("Request not found")
            request.status = status
            db.commit()
            db.refresh(request)

        self.cache.invalidate_entity("request")
        return MutationResult(
            message="Статус обновлён",
            request=RequestOut(
                id=request.id,
                client_name=request.client_name,
                client_phone=request.client_phone,
                client_message=request.client_message,
                product_id=request.product_id,
                status=request.status,
                created_at=request.created_at.isoformat() if request.created_at else None,
            ),
            notifications=[self.notifier.success("Статус обновлён")],
        )


# Глобальный экземпляр сервиса
admin_service = AdminService()


def get_admin_service() -> AdminService:
    """Dependency для эндпоинтов админки."""
    return admin_service
