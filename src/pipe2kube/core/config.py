from pathlib import Path
import os
from tempfile import gettempdir

"""
Базовые настройки оркестратора.

Всё читается один раз из переменных окружения PIPE2KUBE_* при импорте.
Рабочий каталог для отрендеренных манифестов по умолчанию — <tmp>/pipe2kube,
переопределяется переменной PIPE2KUBE_WORKDIR.
"""

BASE_TEMP_DIR = Path(
    os.getenv("PIPE2KUBE_WORKDIR", gettempdir())
) / "pipe2kube"

DOCKER_BIN = os.getenv("PIPE2KUBE_DOCKER_BIN", "docker")
KUBECTL_BIN = os.getenv("PIPE2KUBE_KUBECTL_BIN", "kubectl")

# Ожидание раскатки ограничено: без таймаута kubectl rollout status может висеть вечно
ROLLOUT_TIMEOUT = float(os.getenv("PIPE2KUBE_ROLLOUT_TIMEOUT", "300"))
ROLLOUT_POLL_INTERVAL = float(os.getenv("PIPE2KUBE_ROLLOUT_POLL_INTERVAL", "5"))

PUSH_ATTEMPTS = int(os.getenv("PIPE2KUBE_PUSH_ATTEMPTS", "3"))
PUSH_BACKOFF = float(os.getenv("PIPE2KUBE_PUSH_BACKOFF", "2"))

COMMAND_TIMEOUT = float(os.getenv("PIPE2KUBE_COMMAND_TIMEOUT", "600"))
