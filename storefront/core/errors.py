"""
Исключения приложения и перевод ошибок хранилища в сообщения для пользователя.

Таксономия:
    1. Ошибки валидации (ValidationFailed) - локальные, до обращения к БД.
    2. Ошибки ограничений БД (unique / foreign key / not null) - по коду SQLSTATE.
    3. Прочие ошибки транспорта - общее сообщение (fallback).
"""

from typing import Optional

from sqlalchemy.exc import DBAPIError, SQLAlchemyError

UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"
NOT_NULL_VIOLATION = "23502"

DB_ERROR_MESSAGES = {
    UNIQUE_VIOLATION: "Значение уже существует (нарушено уникальное ограничение)",
    FOREIGN_KEY_VIOLATION: "Некорректная ссылка (возможно, выбрана удалённая категория)",
    NOT_NULL_VIOLATION: "Не заполнены обязательные поля",
}

# SQLite не отдает SQLSTATE, только текст
_SQLITE_MARKERS = (
    ("UNIQUE constraint failed", UNIQUE_VIOLATION),
    ("FOREIGN KEY constraint failed", FOREIGN_KEY_VIOLATION),
    ("NOT NULL constraint failed", NOT_NULL_VIOLATION),
)


class StorefrontError(Exception):
    """Базовое исключение приложения."""

    status_code = 500

    def __init__(self, message: str = "", details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class InvalidValue(StorefrontError):
    """Значение из строки БД нельзя привести к конечному числу."""


class ValidationFailed(StorefrontError):
    """Локальная проверка формы не пройдена, запрос к БД не выполнялся."""

    status_code = 400


class NotFound(StorefrontError):
    status_code = 404


class DeleteInProgress(StorefrontError):
    """Удаление этой строки уже выполняется."""

    status_code = 409


class StorageError(StorefrontError):
    """Ошибка объектного хранилища (загрузка/удаление файла)."""

    status_code = 502

    def __init__(self, message: str = "", details: Optional[str] = None, code: Optional[str] = None):
        super().__init__(message, details)
        self.code = code


class OperationFailed(StorefrontError):
    """
    Ошибка, пойманная на границе операции и уже переведенная в уведомление.

    Attributes:
        title: Заголовок уведомления
        message: Текст уведомления для пользователя
        status_code: HTTP статус ответа
        cause: Исходное исключение
    """

    def __init__(self, message: str, status_code: int = 500, title: str = "Ошибка", cause: Exception = None):
        super().__init__(message)
        self.title = title
        self.status_code = status_code
        self.cause = cause


def get_db_error_code(error: object) -> Optional[str]:
    """
    Получить код ошибки хранилища (SQLSTATE или код сервиса).

    Args:
        error: Исключение SQLAlchemy, DBAPI или объект с атрибутом code

    Returns:
        Optional[str]: Код ошибки или None
    """
    if isinstance(error, DBAPIError):
        orig = error.orig
        for attr in ("pgcode", "sqlstate"):
            code = getattr(orig, attr, None)
            if isinstance(code, str) and code:
                return code
        text = str(orig)
        for marker, code in _SQLITE_MARKERS:
            if marker in text:
                return code
        return None

    # У исключений SQLAlchemy свой .code (ссылка на документацию), это не SQLSTATE
    if isinstance(error, SQLAlchemyError):
        return None

    code = getattr(error, "code", None)
    return code if isinstance(code, str) and code else None


def get_db_error_message(error: object, fallback: str) -> str:
    """
    Перевести ошибку в сообщение для пользователя.

    Известные коды ограничений дают фиксированный текст, иначе берется
    сообщение самой ошибки, затем details, затем fallback.
    """
    if error is None:
        return fallback

    code = get_db_error_code(error)
    if code in DB_ERROR_MESSAGES:
        return DB_ERROR_MESSAGES[code]

    if isinstance(error, StorefrontError):
        message = error.message
    elif isinstance(error, DBAPIError):
        message = str(error.orig)
    elif isinstance(error, BaseException):
        message = str(error)
    else:
        message = getattr(error, "message", None)

    if isinstance(message, str) and message.strip():
        return message

    details = getattr(error, "details", None)
    if isinstance(details, str) and details.strip():
        return details

    return fallback


def status_code_for(error: object) -> int:
    """HTTP статус для ошибки, пойманной на границе операции."""
    if isinstance(error, StorefrontError):
        return error.status_code
    if get_db_error_code(error) in DB_ERROR_MESSAGES:
        return 409
    return 500
