from typing import List, Optional

from pipe2kube.core.exceptions import Pipe2KubeError


class GitContextError(Pipe2KubeError):
    """
    Не удалось определить контекст коммита: нет CI-переменных
    и локальный путь не является git-репозиторием.
    """

    def __init__(
        self,
        path: str,
        logs: Optional[List[str]] = None,
        *args,
    ) -> None:
        description = f"Error to resolve commit context from {path}"
        super().__init__(*args, description=description, logs=logs)
        self.path = path
