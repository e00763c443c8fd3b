"""
Главный модуль FastAPI приложения Atelier Storefront API.

Содержит конфигурацию приложения, middleware, обработчики ошибок и роутеры.
"""

import logging
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import SQLAlchemyError

from storefront.api.legacy import router as legacy_router
from storefront.api.v1.routers import api_router
from storefront.core.config import settings
from storefront.core.errors import (
    OperationFailed,
    StorefrontError,
    ValidationFailed,
    get_db_error_message,
    status_code_for,
)
from storefront.core.logging_config import setup_logging
from storefront.schemas.admin import Notification
from storefront.services.image_pipeline import start_image_workers, stop_image_workers

logger = logging.getLogger(__name__)

# Создание экземпляра FastAPI приложения
app = FastAPI(
    title="Atelier Storefront API",
    description="API витрины и админки каталога товаров для дома",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# Статические файлы локального хранилища: /static/{bucket}/{key}
if settings.STORAGE_TYPE == "local":
    app.mount(
        "/static",
        StaticFiles(directory=settings.STORAGE_PATH, check_dir=False),
        name="static",
    )

# Настройка CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_response(status_code: int, message: str, notification: Notification) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": message, "notification": notification.model_dump()},
    )


@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError):
    """Ошибки приложения -> {"detail", "notification"}."""
    if isinstance(exc, ValidationFailed):
        notification = Notification(title=exc.message)
    elif isinstance(exc, OperationFailed):
        notification = Notification(variant="destructive", title=exc.title, description=exc.message)
    else:
        notification = Notification(variant="destructive", title="Ошибка", description=exc.message)
    return _error_response(exc.status_code, exc.message, notification)


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("Database error on %s %s: %s", request.method, request.url.path, exc)
    message = get_db_error_message(exc, "Не удалось загрузить данные")
    notification = Notification(variant="destructive", title="Ошибка", description=message)
    return _error_response(status_code_for(exc), message, notification)


@app.get("/healthz")
def healthz():
    """
    Health check endpoint для мониторинга состояния приложения.

    Returns:
        dict: Статус приложения
    """
    return {"status": "ok", "service": "Atelier Storefront API", "version": "1.0.0"}


# Подключение API роутеров
app.include_router(api_router, prefix="/api/v1")
app.include_router(legacy_router, prefix="/api", tags=["legacy"])


@app.on_event("startup")
async def startup_event():
    """
    Событие запуска приложения.

    Настраивает логирование, создает таблицы, при необходимости заполняет
    демо-каталог и запускает пул сжатия изображений.
    """
    from storefront.db.database import SessionLocal, engine
    from storefront.db.seed import init_db, seed_database

    setup_logging()
    if settings.STORAGE_TYPE == "local":
        Path(settings.STORAGE_PATH).mkdir(parents=True, exist_ok=True)

    init_db(engine)
    if settings.SEED_DEMO_DATA:
        db = SessionLocal()
        try:
            seed_database(db)
        finally:
            db.close()

    await start_image_workers()
    logger.info("Application started (storage=%s)", settings.STORAGE_TYPE)


@app.on_event("shutdown")
async def shutdown_event():
    """
    Событие завершения приложения.

    Закрывает черновики и останавливает пул сжатия изображений.
    """
    from storefront.services.admin_service import admin_service

    admin_service.drafts.close_all()
    await stop_image_workers()
