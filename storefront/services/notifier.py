"""
Очередь уведомлений для администратора.

Ошибки загрузки данных дедуплицируются по причине: одна и та же ошибка
(тот же cause и тот же момент возникновения) сообщается один раз.
"""

import logging
import threading
from typing import Dict, List, Optional

from storefront.core.errors import get_db_error_message
from storefront.schemas.admin import Notification

logger = logging.getLogger(__name__)


class Notifier:
    def __init__(self):
        self._lock = threading.Lock()
        self._pending: List[Notification] = []
        self._last_error_at: Dict[str, float] = {}

    def _push(self, notification: Notification) -> Notification:
        with self._lock:
            self._pending.append(notification)
        return notification

    def success(self, title: str, description: str = None) -> Notification:
        return self._push(Notification(title=title, description=description))

    def warning(self, title: str, description: str = None, cause: str = None) -> Notification:
        logger.warning("%s: %s", title, description)
        return self._push(Notification(title=title, description=description, cause=cause))

    def error(
        self,
        description: str,
        cause: str,
        occurred_at: Optional[float] = None,
        title: str = "Ошибка",
    ) -> Optional[Notification]:
        """
        Сообщить об ошибке.

        Если occurred_at задан и совпадает с уже сообщенным для этой причины,
        уведомление не создается.
        """
        with self._lock:
            if occurred_at is not None:
                if self._last_error_at.get(cause) == occurred_at:
                    return None
                self._last_error_at[cause] = occurred_at
        logger.error("%s (%s): %s", title, cause, description)
        return self._push(
            Notification(variant="destructive", title=title, description=description, cause=cause)
        )

    def report(
        self,
        error: object,
        fallback: str,
        cause: str,
        occurred_at: Optional[float] = None,
    ) -> Optional[Notification]:
        return self.error(get_db_error_message(error, fallback), cause, occurred_at)

    def drain(self) -> List[Notification]:
        """Забрать накопленные уведомления."""
        with self._lock:
            pending, self._pending = self._pending, []
        return pending
