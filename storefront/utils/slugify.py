"""
Генерация slug из отображаемого названия.
"""

import re
import time
import unicodedata

from transliterate import translit


def slugify(value: str, fallback_prefix: str = "category") -> str:
    """
    Построить URL-безопасный slug.

    Кириллица транслитерируется, диакритика снимается, пробелы
    схлопываются в одиночные дефисы, дефисы по краям удаляются.
    Для пустого результата возвращается уникальная заглушка по времени.

    Example:
        slugify("Керамика") -> "keramika"
        slugify("  Café  Déjà vu ") -> "cafe-deja-vu"
    """
    text = (value or "").strip().lower()
    if text:
        text = translit(text, "ru", reversed=True)

    # Диакритику снимаем после транслитерации, иначе "й" распадется на "и" + бреве
    text = unicodedata.normalize("NFKD", text)
    text = "".join(ch for ch in text if not unicodedata.combining(ch))

    text = re.sub(r"['\"]", "", text)
    text = re.sub(r"[^a-z0-9\s-]", "", text)
    text = re.sub(r"\s+", "-", text)
    text = re.sub(r"-+", "-", text).strip("-")

    return text or f"{fallback_prefix}-{int(time.time() * 1000)}"
