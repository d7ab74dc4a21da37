from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest

from pipe2kube.core import config
from pipe2kube.core.models import ImageReference, PipelineContext
from pipe2kube.core.services.builders.pipeline import default_pipeline
from pipe2kube.core.services.git_module import CI_VARIABLES
from pipe2kube.core.services.process import Command, ProcessResult
from pipe2kube.core.templates import scaffold

ROLLED_OUT = 'deployment "your-app" successfully rolled out'


class FakeRunner:
    """
    Записывает команды и отвечает заранее заданными результатами.
    Правило — префикс аргументов (без имени утилиты); более поздние правила
    важнее ранних. times ограничивает число срабатываний правила.

    Содержимое файлов из "apply -f" запоминается в момент вызова:
    отрендеренные манифесты удаляются сразу после apply.
    """

    def __init__(self) -> None:
        self.commands: List[Command] = []
        self.applied_files: Dict[str, str] = {}
        self._rules: List[list] = []

    def on(self, *prefix: str, exit_code: int = 0, stdout: str = "", stderr: str = "",
           times: Optional[int] = None) -> "FakeRunner":
        self._rules.insert(0, [prefix, exit_code, stdout, stderr, times])
        return self

    async def run(self, command: Command) -> ProcessResult:
        self.commands.append(command)
        if command.args[:2] == ("apply", "-f") and Path(command.args[2]).is_file():
            self.applied_files[command.args[2]] = Path(command.args[2]).read_text(encoding="utf-8")
        for rule in self._rules:
            prefix, exit_code, stdout, stderr, times = rule
            if command.args[: len(prefix)] != prefix:
                continue
            if times is not None:
                if times <= 0:
                    continue
                rule[4] = times - 1
            return ProcessResult(command=command, exit_code=exit_code, stdout=stdout, stderr=stderr)
        return ProcessResult(command=command, exit_code=0)

    def calls(self, *prefix: str) -> List[Tuple[str, ...]]:
        return [c.args for c in self.commands if c.args[: len(prefix)] == prefix]


@pytest.fixture
def runner():
    return FakeRunner().on("rollout", "status", stdout=ROLLED_OUT)


@pytest.fixture(autouse=True)
def workdir(tmp_path, monkeypatch):
    work = tmp_path / "work"
    monkeypatch.setattr(config, "BASE_TEMP_DIR", work)
    return work


@pytest.fixture
def clean_ci_env(monkeypatch):
    for variable in CI_VARIABLES:
        monkeypatch.delenv(variable, raising=False)


def make_ctx(**kwargs) -> PipelineContext:
    values = dict(
        commit_sha="abc123def4567890abc123def4567890abc123de",
        branch="main",
        source="push",
        default_branch="main",
        registry="registry.example.com",
        project_path="group/app",
        registry_user="gitlab-ci-token",
        registry_password="s3cret-registry",
        job_token="s3cret-job-token",
    )
    values.update(kwargs)
    return PipelineContext(**values)


@pytest.fixture
def ctx():
    return make_ctx()


@pytest.fixture
def image():
    return ImageReference(
        registry="registry.example.com",
        repository="group/app",
        sha_tag="abc123",
        tags=("abc123",),
    )


@pytest.fixture
def project(tmp_path):
    """
    Каталог проекта с Dockerfile и манифестами обоих окружений.
    """
    root = tmp_path / "project"
    pipeline = default_pipeline()
    scaffold(root, pipeline.environments)
    return root


@pytest.fixture
def pipeline(project):
    pipeline = default_pipeline()
    for name, env in list(pipeline.environments.items()):
        pipeline.environments[name] = env.model_copy(
            update={"manifest_dir": str(project / env.manifest_dir)}
        )
    return pipeline
