from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional


@dataclass
class LocalCheckout:
    """
    Что удалось прочитать из локального git-репозитория.

    repo_path — корень рабочего дерева;
    sha       — полный хеш HEAD;
    branch    — активная ветка (None при detached HEAD);
    tag       — тег, указывающий на HEAD, если есть;
    logs      — текстовые логи шагов.
    """

    repo_path: Path
    sha: str
    branch: Optional[str]
    tag: Optional[str]
    logs: List[str]
