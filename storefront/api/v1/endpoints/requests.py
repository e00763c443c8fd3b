"""
API endpoints для заявок с витрины.

Заявка по товару (имя, телефон, сообщение) и подписка (только телефон).
"""

import logging
import re

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.core.errors import OperationFailed, ValidationFailed, get_db_error_message, status_code_for
from storefront.db.database import get_db
from storefront.db.models import Request as RequestModel
from storefront.schemas.requests import ContactPrefillOut, RequestCreate
from storefront.services.contact_prefill import ContactPrefill, CookieKeyValueStore
from storefront.services.query_cache import QueryCache, get_query_cache

logger = logging.getLogger(__name__)

router = APIRouter()

MIN_PHONE_LENGTH = 5


def clean_phone(phone: str) -> str:
    """Оставить в телефоне только цифры и +."""
    return re.sub(r"[^0-9+]", "", phone or "")


def _optional(value):
    value = (value or "").strip()
    return value or None


@router.post("", status_code=status.HTTP_201_CREATED)
def create_request(
    payload: RequestCreate,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    cache: QueryCache = Depends(get_query_cache),
):
    """
    Создать заявку.

    Raises:
        ValidationFailed: Телефон короче 5 символов после очистки
        OperationFailed: Ошибка записи в БД
    """
    phone = clean_phone(payload.client_phone)
    if len(phone) < MIN_PHONE_LENGTH:
        raise ValidationFailed("Введите корректный номер телефона.")

    client_name = _optional(payload.client_name)
    entry = RequestModel(
        client_name=client_name,
        client_phone=phone,
        client_message=_optional(payload.client_message),
        product_id=payload.product_id,
        status="new",
    )
    try:
        db.add(entry)
        db.commit()
        db.refresh(entry)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Failed to create request: %s", e)
        raise OperationFailed(
            get_db_error_message(e, "Не удалось отправить заявку. Попробуйте позже."),
            status_code=status_code_for(e),
            cause=e,
        ) from e

    cache.invalidate_entity("request")
    ContactPrefill(CookieKeyValueStore(request, response)).save(client_name, phone)
    logger.info("Request %s created (product=%s)", entry.id, entry.product_id)

    return {
        "id": entry.id,
        "message": "Заявка отправлена",
        "description": "Мы свяжемся с вами в ближайшее время.",
    }


@router.get("/prefill", response_model=ContactPrefillOut)
def get_prefill(request: Request, response: Response):
    """Последние имя и телефон клиента для автозаполнения формы."""
    return ContactPrefill(CookieKeyValueStore(request, response)).load()
