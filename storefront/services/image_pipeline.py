"""
Подготовка фотографии товара перед сохранением.

Сжатие выполняется в пуле потоков. Каждый выбор файла получает новый
номер задачи; результат применяется, только если его номер все еще
последний. Результат устаревшей задачи отбрасывается, превью для него не
создается. Если сжатие не удалось, подготовленным файлом становится
оригинал (состояние fallback_ready).
"""

import asyncio
import logging
import os
import tempfile
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Optional

from storefront.core.config import settings
from storefront.schemas.admin import ImageState
from storefront.services.image_service import ImageFile, compress_product_image
from storefront.utils.formatting import format_bytes

logger = logging.getLogger(__name__)

Compressor = Callable[[bytes, str], ImageFile]

_executor: Optional[ThreadPoolExecutor] = None


def get_executor() -> ThreadPoolExecutor:
    global _executor
    if _executor is None:
        _executor = ThreadPoolExecutor(
            max_workers=settings.IMAGE_WORKERS, thread_name_prefix="image-compress"
        )
    return _executor


async def start_image_workers():
    """Создать пул сжатия при старте приложения."""
    get_executor()
    logger.info("Image workers started (%d threads)", settings.IMAGE_WORKERS)


async def stop_image_workers():
    """Остановить пул сжатия при завершении приложения."""
    global _executor
    if _executor is not None:
        _executor.shutdown(wait=True)
        _executor = None
        logger.info("Image workers stopped")


class ImagePreparer:
    """
    Состояние выбранной фотографии одного черновика.

    idle -> compressing -> ready | fallback_ready
    """

    def __init__(
        self,
        compressor: Compressor = compress_product_image,
        executor: ThreadPoolExecutor = None,
    ):
        self._compressor = compressor
        self._executor = executor
        self._lock = threading.RLock()
        self._job_id = 0
        self._state = "idle"
        self._original: Optional[ImageFile] = None
        self._prepared: Optional[ImageFile] = None
        self._preview_path: Optional[str] = None

    @property
    def job_id(self) -> int:
        return self._job_id

    @property
    def is_compressing(self) -> bool:
        return self._state == "compressing"

    @property
    def prepared(self) -> Optional[ImageFile]:
        """Файл для загрузки или None, если подготовка не завершена."""
        with self._lock:
            return self._prepared if self._state in ("ready", "fallback_ready") else None

    @property
    def preview_path(self) -> Optional[str]:
        return self._preview_path

    async def select(self, image: ImageFile) -> ImageState:
        """
        Выбрать новый файл.

        Предыдущее превью освобождается сразу, до начала сжатия.
        """
        with self._lock:
            self._job_id += 1
            job_id = self._job_id
            self._release_preview()
            self._original = image
            self._prepared = None
            self._state = "compressing"

        loop = asyncio.get_running_loop()
        executor = self._executor or get_executor()
        try:
            prepared = await loop.run_in_executor(
                executor, self._compressor, image.data, image.filename
            )
            state = "ready"
        except Exception as e:
            logger.warning("Image compression failed for %s, using original: %s", image.filename, e)
            prepared = image
            state = "fallback_ready"

        with self._lock:
            if job_id != self._job_id:
                logger.debug("Discarding stale compression result (job %d < %d)", job_id, self._job_id)
                return self.state()
            self._prepared = prepared
            self._state = state
            self._preview_path = self._write_preview(prepared)
            return self.state()

    def clear(self) -> None:
        """Сбросить выбор; незавершенное сжатие станет устаревшим."""
        with self._lock:
            self._job_id += 1
            self._release_preview()
            self._original = None
            self._prepared = None
            self._state = "idle"

    def close(self) -> None:
        self.clear()

    def state(self) -> ImageState:
        with self._lock:
            original_bytes = self._original.size if self._original else None
            prepared_bytes = self._prepared.size if self._prepared else None
            return ImageState(
                state=self._state,
                job_id=self._job_id,
                filename=(self._prepared or self._original).filename
                if (self._prepared or self._original) else None,
                original_bytes=original_bytes,
                prepared_bytes=prepared_bytes,
                original_size_label=format_bytes(original_bytes) if original_bytes is not None else None,
                prepared_size_label=format_bytes(prepared_bytes) if prepared_bytes is not None else None,
                has_preview=self._preview_path is not None,
            )

    def _write_preview(self, image: ImageFile) -> str:
        suffix = Path(image.filename).suffix or ".bin"
        with tempfile.NamedTemporaryFile(delete=False, prefix="preview-", suffix=suffix) as f:
            f.write(image.data)
            return f.name

    def _release_preview(self) -> None:
        if self._preview_path is None:
            return
        try:
            os.unlink(self._preview_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Failed to remove preview %s: %s", self._preview_path, e)
        self._preview_path = None
