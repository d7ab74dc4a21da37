from pathlib import Path
from typing import List

from .exceptions import ConfigError

IMAGE_NAME_PLACEHOLDER = "__IMAGE_NAME_PLACEHOLDER__"
IMAGE_TAG_PLACEHOLDER = "__IMAGE_TAG_PLACEHOLDER__"

# Порядок применения важен: сначала Deployment, затем Service, затем Ingress
MANIFEST_KINDS = ("deployment", "service", "ingress")


def manifest_paths(manifest_dir) -> List[Path]:
    """
    Пути до deployment.yaml / service.yaml / ingress.yaml окружения.

    :raises ConfigError: если какого-то файла нет.
    """
    base = Path(manifest_dir)
    paths = [base / f"{kind}.yaml" for kind in MANIFEST_KINDS]
    missing = [str(p) for p in paths if not p.is_file()]
    if missing:
        raise ConfigError(
            description=f"Manifest files not found: {', '.join(missing)}",
            logs=[f"Ожидаются файлы {', '.join(k + '.yaml' for k in MANIFEST_KINDS)} в {base}"],
        )
    return paths


def substitute_image(text: str, image_name: str, image_tag: str) -> str:
    """
    Подставляет имя и тег образа вместо плейсхолдеров.
    Оба плейсхолдера обязаны присутствовать в шаблоне.

    :raises ConfigError: если плейсхолдера нет.
    """
    missing = [p for p in (IMAGE_NAME_PLACEHOLDER, IMAGE_TAG_PLACEHOLDER) if p not in text]
    if missing:
        raise ConfigError(
            description=f"Manifest placeholder(s) missing: {', '.join(missing)}",
        )
    return text.replace(IMAGE_NAME_PLACEHOLDER, image_name).replace(
        IMAGE_TAG_PLACEHOLDER, image_tag
    )


def render_deployment(template: Path, image_name: str, image_tag: str, target_dir: Path) -> Path:
    """
    Рендерит шаблон deployment.yaml в target_dir (её удаляет вызывающий).
    Сам шаблон не меняется, поэтому повторный деплой работает с тем же файлом.
    """
    try:
        text = template.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(description=f"Cannot read manifest {template}: {e}")

    try:
        rendered = substitute_image(text, image_name, image_tag)
    except ConfigError as e:
        e.logs.append(f"Шаблон: {template}")
        raise

    target = Path(target_dir) / template.name
    target.write_text(rendered, encoding="utf-8")
    return target
