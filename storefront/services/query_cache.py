"""
Кэш результатов запросов на чтение.

Ключ запроса - кортеж (представление, *параметры), например
("products_by_category", "keramika", 2, 20). Смена фильтра или страницы дает
новый ключ, уже загруженные страницы остаются в кэше до истечения TTL или
до инвалидации. Число ключей ограничено, при переполнении вытесняются
давно не читавшиеся.

Инвалидация увеличивает поколение представления. Результат загрузки,
начатой до инвалидации, возвращается вызывающему, но в кэш не попадает.

Какие представления устаревают после изменения сущности, задано явно в
VIEW_DEPENDENCIES: новое представление достаточно добавить в эту таблицу.
"""

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Iterator, Optional, Tuple

from storefront.core.config import settings

logger = logging.getLogger(__name__)

QueryKey = Tuple[Hashable, ...]

# Сущность -> представления, которые нужно обновить после ее изменения
VIEW_DEPENDENCIES: Dict[str, Tuple[str, ...]] = {
    "category": (
        "admin_categories",
        "admin_products",
        "categories",
        "category_presence",
        "products",
        "products_by_category",
        "product_detail",
        "storefront",
        "stats",
    ),
    "product": (
        "admin_products",
        "admin_requests",
        "category_presence",
        "products",
        "products_by_category",
        "product_detail",
        "storefront",
        "stats",
    ),
    "request": (
        "admin_requests",
        "stats",
    ),
}


@dataclass
class QueryState:
    """
    Состояние одного ключа.

    Attributes:
        data: Последний успешный результат
        updated_at: Время успешной загрузки
        error: Последняя ошибка загрузки
        error_updated_at: Время последней ошибки (для дедупликации уведомлений)
    """

    data: Any = None
    has_data: bool = False
    updated_at: float = 0.0
    error: Optional[BaseException] = None
    error_updated_at: float = 0.0


class QueryCache:
    """Потокобезопасный кэш запросов с TTL и инвалидацией по представлениям."""

    def __init__(
        self,
        ttl: float = None,
        max_entries: int = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = settings.QUERY_CACHE_TTL if ttl is None else ttl
        self.max_entries = settings.QUERY_CACHE_MAX_ENTRIES if max_entries is None else max_entries
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: "OrderedDict[QueryKey, QueryState]" = OrderedDict()
        self._generations: Dict[Hashable, int] = {}
        self._epoch = 0

    def _generation(self, key: QueryKey) -> Tuple[int, int]:
        view = key[0] if key else None
        return self._epoch, self._generations.get(view, 0)

    def _is_expired(self, state: QueryState, now: float) -> bool:
        return now - max(state.updated_at, state.error_updated_at) >= self.ttl

    def _state_for_write(self, key: QueryKey) -> QueryState:
        """Состояние ключа для записи; чистит устаревшие и лишние ключи."""
        now = self._clock()
        for stale in [k for k, s in self._entries.items() if k != key and self._is_expired(s, now)]:
            del self._entries[stale]

        state = self._entries.get(key)
        if state is None:
            state = self._entries[key] = QueryState()
        self._entries.move_to_end(key)

        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Query %s evicted from cache", evicted)
        return state

    def fetch(self, key: QueryKey, loader: Callable[[], Any]) -> Any:
        """
        Вернуть закэшированный результат или загрузить его.

        Ошибка загрузки не кэшируется: она запоминается в состоянии ключа
        и пробрасывается вызывающему.
        """
        now = self._clock()
        with self._lock:
            state = self._entries.get(key)
            if state is not None and state.has_data and now - state.updated_at < self.ttl:
                self._entries.move_to_end(key)
                return state.data
            generation = self._generation(key)

        try:
            data = loader()
        except Exception as exc:
            with self._lock:
                state = self._state_for_write(key)
                state.error = exc
                state.error_updated_at = self._clock()
            logger.warning("Query %s failed: %s", key, exc)
            raise

        with self._lock:
            if self._generation(key) != generation:
                logger.debug("Query %s invalidated while loading, result not cached", key)
                return data
            state = self._state_for_write(key)
            state.data = data
            state.has_data = True
            state.updated_at = self._clock()
            state.error = None
        return data

    def refetch(self, key: QueryKey, loader: Callable[[], Any]) -> Any:
        """Загрузить заново, не глядя на кэш."""
        with self._lock:
            state = self._entries.get(key)
            if state is not None:
                state.has_data = False
        return self.fetch(key, loader)

    def state(self, key: QueryKey) -> Optional[QueryState]:
        with self._lock:
            return self._entries.get(key)

    def peek(self, key: QueryKey) -> Any:
        with self._lock:
            state = self._entries.get(key)
            return state.data if state is not None and state.has_data else None

    def cached(self, view: str) -> Iterator[Tuple[QueryKey, Any]]:
        """Все загруженные результаты одного представления."""
        with self._lock:
            snapshot = [
                (key, state.data)
                for key, state in self._entries.items()
                if key and key[0] == view and state.has_data
            ]
        return iter(snapshot)

    def invalidate(self, *views: str) -> int:
        """Удалить все ключи указанных представлений. Возвращает число удаленных."""
        targets = set(views)
        with self._lock:
            for view in targets:
                self._generations[view] = self._generations.get(view, 0) + 1
            stale = [key for key in self._entries if key and key[0] in targets]
            for key in stale:
                del self._entries[key]
        return len(stale)

    def invalidate_entity(self, entity: str) -> Tuple[str, ...]:
        """Инвалидировать все представления, зависящие от сущности."""
        views = VIEW_DEPENDENCIES[entity]
        removed = self.invalidate(*views)
        logger.debug("Invalidated %d cached queries after %s change", removed, entity)
        return views

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._epoch += 1
            self._entries.clear()


# Глобальный экземпляр кэша
query_cache = QueryCache()


def get_query_cache() -> QueryCache:
    """Dependency: общий кэш запросов."""
    return query_cache
