"""
Сервис для работы с изображениями товаров.

Обеспечивает валидацию загружаемых файлов и сжатие фотографий перед
загрузкой в хранилище.
"""

import logging
import mimetypes
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Optional, Tuple

from PIL import Image

from storefront.core.config import settings

logger = logging.getLogger(__name__)

# Нижние границы подбора качества и размера
MIN_QUALITY = 40
QUALITY_STEP = 8
MIN_EDGE = 320
EDGE_STEP = 0.85


@dataclass
class ImageFile:
    """Файл изображения в памяти."""

    filename: str
    data: bytes
    content_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.data)


class ImageService:
    """
    Сервис для работы с изображениями товаров.

    Обеспечивает:
    - Валидацию загружаемых файлов
    - Сжатие в JPEG с ограничением длинной стороны и размера файла
    """

    SUPPORTED_MIME_TYPES = {
        "image/jpeg", "image/jpg", "image/png",
        "image/webp", "image/gif",
    }

    def __init__(
        self,
        max_edge: int = None,
        max_bytes: int = None,
        quality: int = None,
        max_file_size: int = None,
    ):
        self.max_edge = max_edge or settings.IMAGE_MAX_EDGE
        self.max_bytes = max_bytes or settings.IMAGE_MAX_BYTES
        self.quality = quality or settings.IMAGE_QUALITY
        self.max_file_size = max_file_size or settings.MAX_IMAGE_SIZE
        self.supported_formats = {
            f".{ext.strip().lower()}" for ext in settings.ALLOWED_IMAGE_TYPES.split(",") if ext.strip()
        }

    def validate_file(self, filename: str, file_size: int) -> Tuple[bool, Optional[str]]:
        """
        Валидация загруженного файла.

        Args:
            filename: Имя файла
            file_size: Размер файла в байтах

        Returns:
            Tuple[bool, Optional[str]]: (валиден, сообщение об ошибке)
        """
        if file_size <= 0:
            return False, "Файл пустой"

        if file_size > self.max_file_size:
            return False, f"Размер файла превышает {self.max_file_size} байт"

        file_ext = Path(filename).suffix.lower()
        if file_ext not in self.supported_formats:
            return False, (
                f"Неподдерживаемый формат: {file_ext or 'без расширения'}. "
                f"Допустимые: {', '.join(sorted(self.supported_formats))}"
            )

        mime_type, _ = mimetypes.guess_type(filename)
        if mime_type not in self.SUPPORTED_MIME_TYPES:
            return False, f"Неподдерживаемый MIME тип: {mime_type}"

        return True, None

    @staticmethod
    def _to_rgb(img: Image.Image) -> Image.Image:
        if img.mode in ("RGBA", "LA", "P"):
            # Белый фон для прозрачных изображений
            if img.mode == "P":
                img = img.convert("RGBA")
            background = Image.new("RGB", img.size, (255, 255, 255))
            background.paste(img, mask=img.split()[-1])
            return background
        if img.mode != "RGB":
            return img.convert("RGB")
        return img

    @staticmethod
    def _encode(img: Image.Image, quality: int) -> bytes:
        buffer = BytesIO()
        img.save(buffer, "JPEG", quality=quality, optimize=True)
        return buffer.getvalue()

    def compress(self, image: ImageFile) -> ImageFile:
        """
        Сжать изображение в JPEG.

        Длинная сторона ограничивается max_edge, затем качество снижается
        шагами от начального, пока файл не уложится в max_bytes. Если и при
        минимальном качестве файл больше бюджета, уменьшаются размеры.

        Args:
            image: Исходный файл

        Returns:
            ImageFile: Сжатый файл с именем {stem}.jpg

        Raises:
            OSError: Файл не является изображением или поврежден
        """
        with Image.open(BytesIO(image.data)) as src:
            src.load()
            img = self._to_rgb(src)

        img.thumbnail((self.max_edge, self.max_edge), Image.Resampling.LANCZOS)

        quality = self.quality
        data = self._encode(img, quality)
        while len(data) > self.max_bytes:
            if quality - QUALITY_STEP >= MIN_QUALITY:
                quality -= QUALITY_STEP
            else:
                edge = int(max(img.size) * EDGE_STEP)
                if edge < MIN_EDGE:
                    break
                img.thumbnail((edge, edge), Image.Resampling.LANCZOS)
            data = self._encode(img, quality)

        logger.debug(
            "Compressed %s: %d -> %d bytes (quality=%d, size=%s)",
            image.filename, image.size, len(data), quality, img.size,
        )
        stem = Path(image.filename).stem or "image"
        return ImageFile(filename=f"{stem}.jpg", data=data, content_type="image/jpeg")


def compress_product_image(data: bytes, filename: str) -> ImageFile:
    """Сжать фотографию товара с настройками по умолчанию."""
    return image_service.compress(ImageFile(filename=filename, data=data))


# Глобальный экземпляр сервиса
image_service = ImageService()
