from git import (
    Repo as GitRepo,
    InvalidGitRepositoryError,
    NoSuchPathError,
)

from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional

from pipe2kube.core.models import PipelineContext

from .models import LocalCheckout
from .exceptions import GitContextError

# CI_* переменная -> поле PipelineContext
CI_VARIABLES: Dict[str, str] = {
    "CI_COMMIT_SHA": "commit_sha",
    "CI_COMMIT_BRANCH": "branch",
    "CI_COMMIT_TAG": "tag",
    "CI_PIPELINE_SOURCE": "source",
    "CI_MERGE_REQUEST_SOURCE_BRANCH_NAME": "mr_source_branch",
    "CI_DEFAULT_BRANCH": "default_branch",
    "CI_REGISTRY": "registry",
    "CI_PROJECT_PATH": "project_path",
    "CI_REGISTRY_USER": "registry_user",
    "CI_REGISTRY_PASSWORD": "registry_password",
    "CI_JOB_TOKEN": "job_token",
}

_SECRET_FIELDS = ("registry_password", "job_token")


def read_checkout(path) -> LocalCheckout:
    """
    Читает HEAD локального репозитория через GitPython.

    :raises GitContextError: если путь не существует или это не git-репозиторий.
    """
    logs: List[str] = []
    repo_path = Path(path)
    logs.append(f"Читаем коммит из локального репозитория: {repo_path}")

    try:
        repo_obj = GitRepo(repo_path, search_parent_directories=True)
    except (InvalidGitRepositoryError, NoSuchPathError) as e:
        logs.append(f"GitPython: {e!r}")
        raise GitContextError(path=str(repo_path), logs=logs)

    try:
        if not repo_obj.head.is_valid():
            logs.append("В репозитории нет ни одного коммита.")
            raise GitContextError(path=str(repo_path), logs=logs)

        head = repo_obj.head.commit
        sha = head.hexsha

        branch: Optional[str] = None
        if repo_obj.head.is_detached:
            logs.append("HEAD в состоянии detached — ветку не определить.")
        else:
            branch = repo_obj.active_branch.name

        tag: Optional[str] = None
        for ref in repo_obj.tags:
            if ref.commit == head:
                tag = ref.name
                break

        logs.append(f"HEAD: {sha[:8]}, ветка {branch!r}, тег {tag!r}")
        return LocalCheckout(
            repo_path=Path(repo_obj.working_tree_dir or repo_path),
            sha=sha,
            branch=branch,
            tag=tag,
            logs=logs,
        )
    finally:
        # Явно закрываем repo_obj, чтобы на Windows не оставались залоченные файлы
        repo_obj.close()


class ContextResolver:
    """
    Собирает PipelineContext из трёх источников, по убыванию приоритета:

    - явные значения (опции CLI);
    - предопределённые переменные GitLab CI (CI_COMMIT_SHA и т.д.);
    - локальный git-репозиторий (GitPython) — для запуска вне CI.

    Окружение читается здесь один раз; дальше компоненты работают только
    с неизменяемым контекстом.
    """

    def __init__(self, environ: Mapping[str, str], repo_path=".") -> None:
        self.environ = environ
        self.repo_path = repo_path
        self.logs: List[str] = []

    def from_environ(self) -> Dict[str, str]:
        values: Dict[str, str] = {}
        for variable, field in CI_VARIABLES.items():
            value = self.environ.get(variable)
            if value:
                values[field] = value
        if values:
            self.logs.append(
                "Из CI-переменных: " + ", ".join(sorted(k for k in values if k not in _SECRET_FIELDS))
            )
        return values

    def resolve(
        self,
        overrides: Optional[Mapping[str, Optional[str]]] = None,
        approved_jobs: Iterable[str] = (),
    ) -> PipelineContext:
        values = self.from_environ()
        for key, value in (overrides or {}).items():
            if value is not None:
                values[key] = value

        if "commit_sha" not in values:
            checkout = read_checkout(self.repo_path)
            self.logs.extend(checkout.logs)
            values["commit_sha"] = checkout.sha
            # ветку/тег из git берём, только если их не задали явно
            if "branch" not in values and "tag" not in values:
                if checkout.branch:
                    values["branch"] = checkout.branch
                elif checkout.tag:
                    values["tag"] = checkout.tag

        return PipelineContext(approved_jobs=tuple(approved_jobs), **values)
