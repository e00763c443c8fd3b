"""
Pytest configuration and fixtures for the storefront tests.
"""

import os

# Тестовое окружение задается до импорта приложения
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["STORAGE_TYPE"] = "local"
os.environ["SEED_DEMO_DATA"] = "false"

from io import BytesIO

import pytest
from fastapi.testclient import TestClient
from PIL import Image
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from storefront.db.database import create_db_engine, get_db
from storefront.db.models import Base, Category, Product
from storefront.main import app
from storefront.services.admin_service import AdminService, get_admin_service
from storefront.services.notifier import Notifier
from storefront.services.query_cache import QueryCache, get_query_cache
from storefront.services.storage_service import LocalStorageProvider

PUBLIC_BASE_URL = "http://testserver/static"
BUCKET = "product-images"


@pytest.fixture
def engine():
    """In-memory SQLite, одно соединение на тест."""
    engine = create_db_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def cache():
    return QueryCache(ttl=300)


@pytest.fixture
def storage(tmp_path):
    return LocalStorageProvider(
        base_path=str(tmp_path / "uploads"), bucket_name=BUCKET, public_base_url=PUBLIC_BASE_URL
    )


@pytest.fixture
def notifier():
    return Notifier()


@pytest.fixture
def admin(storage, cache, notifier):
    service = AdminService(storage=storage, cache=cache, notifier=notifier)
    yield service
    service.drafts.close_all()


@pytest.fixture
def client(session_factory, cache, admin):
    """FastAPI test client с тестовой БД, кэшем и сервисом админки."""

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_query_cache] = lambda: cache
    app.dependency_overrides[get_admin_service] = lambda: admin
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_category(db):
    def factory(name="Керамика", slug="keramika"):
        category = Category(name=name, slug=slug)
        db.add(category)
        db.commit()
        db.refresh(category)
        return category

    return factory


@pytest.fixture
def make_product(db):
    def factory(name="Тарелка", category_id=None, price=None, in_stock=True, image=None, description=None):
        product = Product(
            name=name,
            category_id=category_id,
            price=price,
            in_stock=in_stock,
            image=image,
            description=description,
        )
        db.add(product)
        db.commit()
        db.refresh(product)
        return product

    return factory


def make_image_bytes(size=(64, 48), mode="RGB", fmt="PNG", color=(200, 120, 40)) -> bytes:
    """Небольшое изображение в памяти."""
    if mode == "RGBA":
        color = color + (128,)
    buffer = BytesIO()
    Image.new(mode, size, color).save(buffer, fmt)
    return buffer.getvalue()


@pytest.fixture
def png_bytes():
    return make_image_bytes()


@pytest.fixture
def image_factory():
    return make_image_bytes
