# core/templates.py
from __future__ import annotations

import yaml

from pathlib import Path
from typing import Dict, List
from urllib.parse import urlparse

from pipe2kube import settings
from pipe2kube.model import Environment

from .services.deployer.manifests import IMAGE_NAME_PLACEHOLDER, IMAGE_TAG_PLACEHOLDER

APP_PORT = 3000
SERVICE_PORT = 80
PULL_SECRET = "gitlab-registry-secret"


# ==========
# Dockerfile
# ==========

def make_dockerfile(base_image: str = "node:lts-alpine", port: int = APP_PORT) -> str:
    """
    Dockerfile для Node.js-сервиса: зависимости ставятся отдельным слоем
    до копирования исходников, чтобы кэш npm install переживал правки кода.
    """
    lines: List[str] = [
        f"FROM {base_image}",
        "",
        "WORKDIR /app",
        "",
        "COPY package*.json ./",
        "RUN npm install --production",
        "",
        "COPY . .",
        "",
        f"EXPOSE {port}",
        "",
        'CMD ["npm", "start"]',
        "",
    ]
    return "\n".join(lines)


# ==========
# Kubernetes
# ==========

def _labels(app: str) -> Dict[str, str]:
    return {"app": app}


def make_deployment(env: Environment, replicas: int = 2) -> dict:
    app = env.deployment
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": app, "labels": _labels(app), "namespace": env.namespace},
        "spec": {
            "replicas": replicas,
            "selector": {"matchLabels": _labels(app)},
            "template": {
                "metadata": {"labels": _labels(app)},
                "spec": {
                    "imagePullSecrets": [{"name": PULL_SECRET}],
                    "containers": [
                        {
                            "name": f"{app}-container",
                            "image": f"{IMAGE_NAME_PLACEHOLDER}:{IMAGE_TAG_PLACEHOLDER}",
                            "ports": [{"containerPort": APP_PORT}],
                            "resources": {
                                "requests": {"memory": "64Mi", "cpu": "250m"},
                                "limits": {"memory": "128Mi", "cpu": "500m"},
                            },
                            "env": [{"name": "NODE_ENV", "value": env.name}],
                        }
                    ],
                },
            },
        },
    }


def make_service(env: Environment) -> dict:
    app = env.deployment
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {"name": app, "labels": _labels(app), "namespace": env.namespace},
        "spec": {
            "type": "ClusterIP",
            "selector": _labels(app),
            "ports": [{"port": SERVICE_PORT, "targetPort": APP_PORT, "protocol": "TCP"}],
        },
    }


def make_ingress(env: Environment) -> dict:
    app = env.deployment
    host = urlparse(env.url).hostname if env.url else None
    rule: dict = {
        "http": {
            "paths": [
                {
                    "path": "/",
                    "pathType": "Prefix",
                    "backend": {"service": {"name": app, "port": {"number": SERVICE_PORT}}},
                }
            ]
        }
    }
    if host:
        rule = {"host": host, **rule}
    return {
        "apiVersion": "networking.k8s.io/v1",
        "kind": "Ingress",
        "metadata": {"name": app, "labels": _labels(app), "namespace": env.namespace},
        "spec": {"rules": [rule]},
    }


def make_manifests(env: Environment) -> Dict[str, str]:
    """
    deployment.yaml / service.yaml / ingress.yaml для окружения.
    В deployment.yaml образ задан плейсхолдерами — их подставляет деплоер.
    """
    documents = {
        "deployment.yaml": make_deployment(env),
        "service.yaml": make_service(env),
        "ingress.yaml": make_ingress(env),
    }
    return {
        name: yaml.safe_dump(doc, sort_keys=False) for name, doc in documents.items()
    }


# ==========
# pipe2kube.yml
# ==========

def make_config(environments: Dict[str, Environment]) -> str:
    """
    pipe2kube.yml с окружениями проекта. Стадии и задачи не пишутся:
    без них загрузчик берёт пайплайн по умолчанию.
    """
    document = {
        "environments": {
            name: env.model_dump(by_alias=True, exclude={"name"})
            for name, env in environments.items()
        }
    }
    return yaml.safe_dump(document, sort_keys=False, allow_unicode=True)


def scaffold(root: Path, environments: Dict[str, Environment]) -> Dict[Path, bool]:
    """
    Раскладывает Dockerfile, pipe2kube.yml и манифесты по root.
    Существующие файлы не трогает.

    Возвращает {путь: создан ли файл}.
    """
    files: Dict[Path, str] = {
        root / "Dockerfile": make_dockerfile(),
        root / settings.DEFAULT_CONFIG_NAME: make_config(environments),
    }
    for env in environments.values():
        for name, text in make_manifests(env).items():
            files[root / env.manifest_dir / name] = text

    written: Dict[Path, bool] = {}
    for path, text in files.items():
        if path.exists():
            written[path] = False
            continue
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        written[path] = True
    return written
