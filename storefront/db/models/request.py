"""
Модель заявки клиента.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base

REQUEST_STATUSES = ("new", "processing", "done")


class Request(Base):
    """
    Модель заявки с витрины (форма товара или подписка по телефону).

    Attributes:
        id: Уникальный идентификатор заявки
        client_name: Имя клиента
        client_phone: Телефон клиента
        client_message: Сообщение
        product_id: Товар, по которому оставлена заявка
        status: Статус обработки (new/processing/done или NULL)
        created_at: Дата создания
    """

    __tablename__ = "requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    client_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    client_phone: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    client_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    product_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True
    )
    status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True, default="new")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )

    __table_args__ = (
        CheckConstraint(
            "status is null or status in ('new','processing','done')",
            name="ck_requests_status",
        ),
    )

    def __repr__(self) -> str:
        return f"<Request(id={self.id}, status='{self.status}')>"
