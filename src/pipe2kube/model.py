import shlex

from pydantic import BaseModel, Field, model_validator
from typing import Dict, List, Literal, Optional

DEFAULT_BRANCH_MARKER = "$default"

JobKind = Literal["script", "build", "deploy"]
When = Literal["on_success", "manual"]


class Rule(BaseModel):
    """
    Условие запуска задачи. Внутри правила условия объединяются через ИЛИ:
    ветка из branches, источник из sources или (tags=True и пайплайн по тегу).
    "$default" в branches означает ветку по умолчанию репозитория.
    """

    branches: List[str] = Field(default_factory=list)
    sources: List[str] = Field(default_factory=list)
    tags: bool = False
    when: When = "on_success"

    @model_validator(mode="after")
    def _check_not_empty(self):
        if not self.branches and not self.sources and not self.tags:
            raise ValueError("rule must set branches, sources or tags")
        return self


class Job(BaseModel):
    """
    Задача пайплайна.

    script      — для kind="script": команды без shell, по одной на строку;
    environment — для kind="deploy": имя окружения из Pipeline.environments.
    """

    name: str
    stage: str
    kind: JobKind = "script"
    rules: List[Rule] = Field(default_factory=list)
    script: List[str] = Field(default_factory=list)
    environment: Optional[str] = None
    allow_failure: bool = False

    @model_validator(mode="after")
    def _check_kind(self):
        if self.kind == "deploy" and not self.environment:
            raise ValueError(f"deploy job '{self.name}' must set environment")
        if self.kind == "script" and not self.script:
            raise ValueError(f"script job '{self.name}' has empty script")
        for line in self.script:
            try:
                parts = shlex.split(line)
            except ValueError as e:
                raise ValueError(f"script job '{self.name}': cannot parse line {line!r}: {e}")
            if not parts:
                raise ValueError(f"script job '{self.name}' has an empty script line")
        return self


class Environment(BaseModel):
    """
    Целевое окружение деплоя и всё, что нужно, чтобы достучаться до кластера
    через GitLab Agent.
    """

    name: str
    namespace: str
    agent_context: str
    agent_id: int = 1
    proxy_url: str
    manifest_dir: str
    deployment: str
    url: Optional[str] = None
    requires_approval: bool = False
    insecure_skip_tls_verify: bool = True
    validate_manifests: bool = Field(default=False, alias="validate")

    model_config = {"populate_by_name": True}


class BuildSettings(BaseModel):
    dockerfile: str = "Dockerfile"
    context: str = "."


class Pipeline(BaseModel):
    """
    Пайплайн: порядок стадий, задачи и окружения деплоя.
    """

    stages: List[str]
    jobs: List[Job]
    environments: Dict[str, Environment] = Field(default_factory=dict)
    build: BuildSettings = Field(default_factory=BuildSettings)

    @model_validator(mode="after")
    def _check_refs(self):
        names = set()
        for job in self.jobs:
            if job.name in names:
                raise ValueError(f"duplicate job name '{job.name}'")
            names.add(job.name)
            if job.stage not in self.stages:
                raise ValueError(f"job '{job.name}' refers to unknown stage '{job.stage}'")
            if job.kind == "deploy" and job.environment not in self.environments:
                raise ValueError(
                    f"job '{job.name}' refers to unknown environment '{job.environment}'"
                )
        return self

    def jobs_in(self, stage: str) -> List[Job]:
        return [job for job in self.jobs if job.stage == stage]

    def get_job(self, name: str) -> Optional[Job]:
        for job in self.jobs:
            if job.name == name:
                return job
        return None
