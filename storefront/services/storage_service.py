"""
Сервис для работы с хранилищами файлов.

Поддерживает локальное хранилище и S3-совместимые сервисы (Amazon S3, MinIO).
Обеспечивает единый интерфейс: загрузка без перезаписи, публичный URL по
ключу, удаление по ключу и обратное получение ключа из публичного URL.
"""

import logging
import re
import time
import uuid
from abc import ABC, abstractmethod
from io import BytesIO
from pathlib import Path
from typing import BinaryIO, Optional
from urllib.parse import quote, unquote, urlparse

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from storefront.core.config import settings
from storefront.core.errors import StorageError

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = "bin"
_EXTENSION_RE = re.compile(r"^[a-z0-9]+$")


def generate_storage_key(filename: str, now_ms: int = None) -> str:
    """
    Уникальный ключ объекта: {время в мс}-{uuid}.{расширение}.

    Расширение берется из имени файла в нижнем регистре; если оно пустое
    или содержит что-то кроме [a-z0-9], используется "bin".
    """
    ext = filename.rsplit(".", 1)[-1].lower() if filename and "." in filename else ""
    if not _EXTENSION_RE.match(ext):
        ext = DEFAULT_EXTENSION
    timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{timestamp}-{uuid.uuid4().hex}.{ext}"


def storage_key_from_public_url(public_url: str, bucket_name: str) -> Optional[str]:
    """
    Восстановить ключ объекта из публичного URL.

    Ищется сегмент "/{bucket}/" в пути URL (или в самой строке, если URL
    относительный); все после него - ключ.

    Returns:
        Optional[str]: Ключ или None, если URL не из этого bucket
    """
    if not public_url:
        return None
    marker = f"/{bucket_name}/"

    parsed = urlparse(public_url)
    path = parsed.path if parsed.scheme and parsed.netloc else public_url

    idx = path.find(marker)
    if idx == -1:
        return None
    key = path[idx + len(marker):]
    return unquote(key) if key else None


class StorageProvider(ABC):
    """
    Абстрактный базовый класс для провайдеров хранилища.
    """

    def __init__(self, bucket_name: str, public_base_url: str):
        self.bucket_name = bucket_name
        self.public_base_url = public_base_url.rstrip("/")

    @abstractmethod
    def save_file(self, file_path: str, file_data: BinaryIO, content_type: str = None) -> None:
        """Сохранить файл. Существующий объект не перезаписывается (StorageError)."""

    @abstractmethod
    def delete_file(self, file_path: str) -> None:
        pass

    @abstractmethod
    def file_exists(self, file_path: str) -> bool:
        pass

    def get_file_url(self, file_path: str) -> str:
        """Публичный URL объекта."""
        return f"{self.public_base_url}/{self.bucket_name}/{quote(file_path.lstrip('/'))}"

    def key_from_url(self, public_url: str) -> Optional[str]:
        return storage_key_from_public_url(public_url, self.bucket_name)


class LocalStorageProvider(StorageProvider):
    """
    Локальное хранилище файлов: {base_path}/{bucket}/{key}.
    """

    def __init__(self, base_path: str = None, bucket_name: str = None, public_base_url: str = None):
        super().__init__(
            bucket_name or settings.PRODUCT_IMAGES_BUCKET,
            public_base_url or settings.STORAGE_PUBLIC_BASE_URL,
        )
        self.base_path = Path(base_path or settings.STORAGE_PATH)

    def _full_path(self, file_path: str) -> Path:
        bucket_root = (self.base_path / self.bucket_name).resolve()
        full_path = (bucket_root / file_path).resolve()
        if bucket_root not in full_path.parents:
            raise StorageError(f"Invalid storage key: {file_path}")
        return full_path

    def save_file(self, file_path: str, file_data: BinaryIO, content_type: str = None) -> None:
        full_path = self._full_path(file_path)
        full_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            # "xb" - только создание, существующий файл не трогаем
            with open(full_path, "xb") as f:
                f.write(file_data.read())
        except FileExistsError:
            raise StorageError("The resource already exists", code="Duplicate")
        except OSError as e:
            logger.error("LOCAL STORAGE: error saving %s: %s", file_path, e)
            raise StorageError(f"Error saving file: {e}")
        logger.info("LOCAL STORAGE: file saved to %s", full_path)

    def delete_file(self, file_path: str) -> None:
        full_path = self._full_path(file_path)
        try:
            full_path.unlink(missing_ok=True)
        except OSError as e:
            logger.error("LOCAL STORAGE: error deleting %s: %s", file_path, e)
            raise StorageError(f"Error deleting file: {e}")
        logger.info("LOCAL STORAGE: file deleted %s", full_path)

    def file_exists(self, file_path: str) -> bool:
        return self._full_path(file_path).exists()


class S3StorageProvider(StorageProvider):
    """
    Amazon S3 хранилище (или совместимые сервисы).

    Публичные URL строятся в path-style: {endpoint}/{bucket}/{key}.
    """

    def __init__(
        self,
        bucket_name: str,
        region: str = None,
        endpoint_url: str = None,
        public_base_url: str = None,
        client=None,
    ):
        super().__init__(bucket_name, public_base_url or endpoint_url or "")
        self.region = region or "us-east-1"

        if client is None:
            config = Config(
                retries={"max_attempts": 3, "mode": "adaptive"},
                connect_timeout=10,
                read_timeout=30,
                signature_version="s3v4",
                s3={"addressing_style": "path"},
            )
            client = boto3.client(
                "s3",
                region_name=self.region,
                endpoint_url=endpoint_url,
                aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
                aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
                config=config,
            )
        self.s3_client = client

    def file_exists(self, file_path: str) -> bool:
        try:
            self.s3_client.head_object(Bucket=self.bucket_name, Key=file_path)
            return True
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("404", "NoSuchKey", "NotFound"):
                return False
            raise StorageError(f"Error checking object: {e}", code=code)
        except BotoCoreError as e:
            raise StorageError(f"Error checking object: {e}")

    def save_file(self, file_path: str, file_data: BinaryIO, content_type: str = None) -> None:
        if self.file_exists(file_path):
            raise StorageError("The resource already exists", code="Duplicate")

        extra_args = {}
        if content_type:
            extra_args["ContentType"] = content_type

        # Читаем содержимое, чтобы указать ContentLength (важно для MinIO)
        file_content = file_data.read()
        extra_args["ContentLength"] = len(file_content)

        try:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=file_path,
                Body=BytesIO(file_content),
                **extra_args,
            )
        except ClientError as e:
            logger.error("S3 STORAGE: error saving %s: %s", file_path, e)
            raise StorageError(
                f"Error saving file to S3: {e}",
                code=e.response.get("Error", {}).get("Code"),
            )
        except BotoCoreError as e:
            logger.error("S3 STORAGE: error saving %s: %s", file_path, e)
            raise StorageError(f"Error saving file to S3: {e}")
        logger.info("S3 STORAGE: uploaded %s to bucket %s", file_path, self.bucket_name)

    def delete_file(self, file_path: str) -> None:
        try:
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=file_path)
        except ClientError as e:
            logger.error("S3 STORAGE: error deleting %s: %s", file_path, e)
            raise StorageError(
                f"Error deleting file from S3: {e}",
                code=e.response.get("Error", {}).get("Code"),
            )
        except BotoCoreError as e:
            raise StorageError(f"Error deleting file from S3: {e}")
        logger.info("S3 STORAGE: deleted %s", file_path)


def create_storage_provider() -> StorageProvider:
    """Создать провайдер по настройкам STORAGE_TYPE."""
    if settings.STORAGE_TYPE == "s3":
        logger.info(
            "Creating S3StorageProvider (bucket=%s, endpoint=%s)",
            settings.PRODUCT_IMAGES_BUCKET,
            settings.S3_ENDPOINT_URL,
        )
        return S3StorageProvider(
            bucket_name=settings.PRODUCT_IMAGES_BUCKET,
            region=settings.AWS_REGION,
            endpoint_url=settings.S3_ENDPOINT_URL,
        )
    logger.info("Creating LocalStorageProvider (path=%s)", settings.STORAGE_PATH)
    return LocalStorageProvider()


_storage: Optional[StorageProvider] = None


def get_storage() -> StorageProvider:
    """Dependency: общий экземпляр провайдера хранилища."""
    global _storage
    if _storage is None:
        _storage = create_storage_provider()
    return _storage
