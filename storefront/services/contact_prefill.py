"""
Запоминание контактов клиента для автозаполнения формы заявки.

Хранилище может быть недоступно; ошибки чтения и записи логируются и не
мешают отправке заявки.
"""

import base64
import binascii
import json
import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, Optional

from fastapi import Request, Response

from storefront.core.config import settings
from storefront.schemas.requests import ContactPrefillOut

logger = logging.getLogger(__name__)

PREFILL_KEY = "contact_prefill"


class KeyValueStore(ABC):
    """Простое строковое хранилище ключ-значение."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        pass


class MemoryKeyValueStore(KeyValueStore):
    def __init__(self):
        self._lock = threading.Lock()
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value


class CookieKeyValueStore(KeyValueStore):
    """Хранилище в cookie: чтение из запроса, запись в ответ."""

    def __init__(self, request: Request, response: Response, max_age: int = None):
        self.request = request
        self.response = response
        self.max_age = max_age or settings.PREFILL_COOKIE_MAX_AGE

    def get(self, key: str) -> Optional[str]:
        raw = self.request.cookies.get(key)
        if not raw:
            return None
        try:
            return base64.urlsafe_b64decode(raw.encode("ascii")).decode("utf-8")
        except (binascii.Error, UnicodeError):
            logger.warning("Malformed cookie %s ignored", key)
            return None

    def set(self, key: str, value: str) -> None:
        encoded = base64.urlsafe_b64encode(value.encode("utf-8")).decode("ascii")
        self.response.set_cookie(key, encoded, max_age=self.max_age, httponly=True, samesite="lax")


class ContactPrefill:
    """Последние имя и телефон, введенные клиентом."""

    def __init__(self, store: KeyValueStore, key: str = PREFILL_KEY):
        self.store = store
        self.key = key

    def load(self) -> ContactPrefillOut:
        try:
            raw = self.store.get(self.key)
            if not raw:
                return ContactPrefillOut()
            return ContactPrefillOut.model_validate(json.loads(raw))
        except Exception as e:
            logger.warning("Failed to read contact prefill: %s", e)
            return ContactPrefillOut()

    def save(self, client_name: Optional[str], client_phone: Optional[str]) -> None:
        """Сохранить контакты; пустое имя не затирает сохраненное."""
        try:
            current = self.load()
            value = ContactPrefillOut(
                client_name=client_name or current.client_name,
                client_phone=client_phone or current.client_phone,
            )
            self.store.set(self.key, json.dumps(value.model_dump(), ensure_ascii=True))
        except Exception as e:
            logger.warning("Failed to save contact prefill: %s", e)
