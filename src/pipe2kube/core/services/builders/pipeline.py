import yaml

from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from pipe2kube.core.exceptions import ConfigError
from pipe2kube.core.models import MERGE_REQUEST_EVENT, PlannedJob
from pipe2kube.model import DEFAULT_BRANCH_MARKER, Environment, Job, Pipeline, Rule

DEFAULT_STAGES = ["lint", "test", "build", "deploy_dev", "deploy_prod"]
TARGET_BRANCHES = [DEFAULT_BRANCH_MARKER, "development", "production"]

AGENT_PROXY_URL = "https://your-gitlab-domain.com/-/kubernetes-agent/k8s-proxy/"


def _branch_or_mr_rules() -> List[Rule]:
    # ветка по умолчанию / development / production или merge request
    return [
        Rule(branches=TARGET_BRANCHES),
        Rule(sources=[MERGE_REQUEST_EVENT]),
    ]


def default_environments(app: str = "your-app") -> dict:
    return {
        "development": Environment(
            name="development",
            namespace="development",
            agent_context=f"your-project/{app}:development-agent",
            agent_id=1,
            proxy_url=AGENT_PROXY_URL,
            manifest_dir="kubernetes/development",
            deployment=app,
            url="https://dev.your-app-domain.com",
        ),
        "production": Environment(
            name="production",
            namespace="production",
            agent_context=f"your-project/{app}:production-agent",
            agent_id=1,
            proxy_url=AGENT_PROXY_URL,
            manifest_dir="kubernetes/production",
            deployment=app,
            url="https://your-app-domain.com",
            requires_approval=True,
        ),
    }


def default_pipeline(app: str = "your-app") -> Pipeline:
    """
    Пайплайн по умолчанию для Node.js-сервиса:
    lint → test → build → deploy_dev → deploy_prod.

    Прод раскатывается только вручную, даже с ветки по умолчанию.
    """
    jobs = [
        Job(
            name="lint_code",
            stage="lint",
            script=["npm install eslint", "npm run lint"],
            rules=_branch_or_mr_rules(),
            allow_failure=True,
        ),
        Job(
            name="run_tests",
            stage="test",
            script=["npm install", "npm test"],
            rules=_branch_or_mr_rules(),
        ),
        Job(
            name="build_docker_image",
            stage="build",
            kind="build",
            rules=[Rule(branches=TARGET_BRANCHES), Rule(tags=True)],
        ),
        Job(
            name="deploy_to_dev",
            stage="deploy_dev",
            kind="deploy",
            environment="development",
            rules=[Rule(branches=["development"])],
        ),
        Job(
            name="deploy_to_prod",
            stage="deploy_prod",
            kind="deploy",
            environment="production",
            rules=[Rule(branches=[DEFAULT_BRANCH_MARKER, "production"], when="manual")],
        ),
    ]
    return Pipeline(stages=list(DEFAULT_STAGES), jobs=jobs, environments=default_environments(app))


def load_pipeline(path: Optional[Path] = None) -> Pipeline:
    """
    Загружает описание пайплайна из YAML.

    Без пути возвращает пайплайн по умолчанию.
    Ключ environments — словарь name -> параметры окружения; name можно не дублировать.

    :raises ConfigError: если файла нет, YAML битый или не проходит валидацию.
    """
    if path is None:
        return default_pipeline()
    if not Path(path).is_file():
        raise ConfigError(description=f"Pipeline file {path} not found")

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(description=f"Cannot read pipeline file {path}", logs=[str(e)])

    if not isinstance(raw, dict):
        raise ConfigError(description=f"Pipeline file {path} must contain a mapping")

    base = default_pipeline()
    environments = raw.get("environments")
    if isinstance(environments, dict):
        for name, env in environments.items():
            if isinstance(env, dict):
                env.setdefault("name", name)

    data = {
        "stages": raw.get("stages", base.stages),
        "jobs": raw.get("jobs", [job.model_dump() for job in base.jobs]),
        "environments": environments if environments is not None else base.environments,
        "build": raw.get("build", base.build.model_dump()),
    }

    try:
        return Pipeline.model_validate(data)
    except ValidationError as e:
        raise ConfigError(
            description=f"Invalid pipeline file {path}",
            logs=[str(err["loc"]) + ": " + err["msg"] for err in e.errors()],
        )


def resolve_paths(pipeline: Pipeline, root) -> Pipeline:
    """
    Делает относительные пути (манифесты, Dockerfile, контекст сборки)
    относительными корню репозитория, а не текущей директории.
    """
    root = Path(root)

    def _resolve(value: str) -> str:
        path = Path(value)
        return str(path if path.is_absolute() else root / path)

    environments = {
        name: env.model_copy(update={"manifest_dir": _resolve(env.manifest_dir)})
        for name, env in pipeline.environments.items()
    }
    build = pipeline.build.model_copy(
        update={
            "dockerfile": _resolve(pipeline.build.dockerfile),
            "context": _resolve(pipeline.build.context),
        }
    )
    return pipeline.model_copy(update={"environments": environments, "build": build})


def summarize_pipeline(pipeline: Pipeline, planned: List[PlannedJob]) -> str:
    """
    Краткое текстовое описание того, что запустится, по стадиям.
    """
    lines: List[str] = []
    by_name = {p.name: p for p in planned}
    for stage in pipeline.stages:
        names = []
        for job in pipeline.jobs_in(stage):
            p = by_name.get(job.name)
            if p is None or p.decision == "never":
                continue
            mark = "" if p.runnable else " (manual)"
            names.append(job.name + mark)
        lines.append(f"{stage}: {', '.join(names) if names else '—'}")

    runnable = sum(1 for p in planned if p.runnable)
    lines.append(f"Задач к запуску: {runnable} из {len(pipeline.jobs)}.")
    return "\n".join(lines)


__all__ = [
    "default_pipeline",
    "default_environments",
    "load_pipeline",
    "resolve_paths",
    "summarize_pipeline",
]
