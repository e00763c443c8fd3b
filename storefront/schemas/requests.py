"""
Схемы заявок с витрины.
"""

from typing import Optional

from pydantic import BaseModel, Field


class RequestCreate(BaseModel):
    """
    Заявка с витрины.

    Форма товара заполняет имя, телефон и сообщение; форма подписки -
    только телефон.
    """

    client_name: Optional[str] = Field(default=None, max_length=255)
    client_phone: str = Field(..., description="Телефон, допускаются цифры и +")
    client_message: Optional[str] = Field(default=None, max_length=4000)
    product_id: Optional[int] = None


class ContactPrefillOut(BaseModel):
    client_name: Optional[str] = None
    client_phone: Optional[str] = None
