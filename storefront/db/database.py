"""
Конфигурация базы данных.

Содержит настройки подключения к PostgreSQL и фабрику сессий.
"""

from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from storefront.core.config import settings


def create_db_engine(url: str, **kwargs) -> Engine:
    """
    Создать движок SQLAlchemy.

    Для SQLite включается проверка внешних ключей, иначе ON DELETE SET NULL
    у товаров не сработает.
    """
    engine = create_engine(
        url,
        pool_pre_ping=True,  # Проверка соединения перед использованием
        echo=bool(settings.DEBUG),  # Логирование SQL запросов в режиме отладки
        **kwargs,
    )

    if engine.dialect.name == "sqlite":

        @event.listens_for(engine, "connect")
        def _enable_sqlite_fk(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


# Создание движка SQLAlchemy
engine = create_db_engine(settings.DATABASE_URL)


# Фабрика сессий базы данных
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def get_db() -> Generator:
    """
    Dependency для получения сессии базы данных.

    Yields:
        Session: Сессия SQLAlchemy

    Note:
        Автоматически закрывает сессию после использования
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
