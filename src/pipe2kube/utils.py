import functools
import asyncio
import re
from pathlib import Path

_SLUG_INVALID = re.compile(r"[^a-z0-9]")
_SLUG_MAX_LEN = 63


def async_click(func):
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        return asyncio.run(func(*args, **kwargs))
    return wrapper


def slugify_ref(ref: str) -> str:
    """
    Слаг ветки/тега по правилам GitLab (CI_COMMIT_REF_SLUG):
    нижний регистр, всё кроме [a-z0-9] заменяется на '-',
    не длиннее 63 символов, без '-' по краям.
    """
    slug = _SLUG_INVALID.sub("-", ref.lower())[:_SLUG_MAX_LEN]
    return slug.strip("-")


def mask(text: str, secrets) -> str:
    """
    Заменяет все секреты в строке на '*****' (для логов и вывода команд).
    """
    for secret in secrets:
        if secret:
            text = text.replace(secret, "*****")
    return text


def ensure_dir(path) -> Path:
    """
    Гарантирует, что каталог существует, и возвращает его как Path.
    """
    base = Path(path)
    base.mkdir(parents=True, exist_ok=True)
    return base
