import functools
import os
from pathlib import Path

import click

from pipe2kube import settings
from pipe2kube.utils import async_click
from pipe2kube.core.core import Pipe2KubeCore
from pipe2kube.core.exceptions import Pipe2KubeError
from pipe2kube.core.models import PipelineReport
from pipe2kube.core.renders import gitlab as gitlab_render
from pipe2kube.core.services.builders import pipeline as builder
from pipe2kube.core.services.git_module import ContextResolver
from pipe2kube.core.templates import scaffold


def context_options(func):
    """
    Опции, из которых собирается контекст коммита. Всё, что не задано,
    берётся из CI-переменных, а затем из локального git-репозитория.
    """
    options = [
        click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None,
                     help=f"Pipeline definition (default: <repo>/{settings.DEFAULT_CONFIG_NAME} if present)"),
        click.option("--repo", default=".", type=click.Path(file_okay=False), help="Local git checkout"),
        click.option("--sha", default=None, help="Commit SHA (CI_COMMIT_SHA)"),
        click.option("--branch", default=None, help="Branch name (CI_COMMIT_BRANCH)"),
        click.option("--tag", default=None, help="Tag name (CI_COMMIT_TAG)"),
        click.option("--source", default=None, help="Pipeline source (CI_PIPELINE_SOURCE)"),
        click.option("--default-branch", default=None, help="Default branch (CI_DEFAULT_BRANCH)"),
        click.option("--registry", default=None, help="Registry host (CI_REGISTRY)"),
        click.option("--project-path", default=None, help="group/project (CI_PROJECT_PATH)"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _load(config_path, repo, sha, branch, tag, source, default_branch, registry, project_path, approved=()):
    if config_path is None:
        candidate = Path(repo) / settings.DEFAULT_CONFIG_NAME
        config_path = candidate if candidate.is_file() else None
    # пути из описания пайплайна считаются от корня репозитория
    pipeline = builder.resolve_paths(builder.load_pipeline(config_path), repo)

    resolver = ContextResolver(os.environ, repo_path=repo)
    ctx = resolver.resolve(
        overrides={
            "commit_sha": sha,
            "branch": branch,
            "tag": tag,
            "source": source,
            "default_branch": default_branch,
            "registry": registry,
            "project_path": project_path,
        },
        approved_jobs=approved,
    )
    return pipeline, ctx


def handle_errors(func):
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            code = func(*args, **kwargs)
        except Pipe2KubeError as e:
            click.echo(f"Ошибка: {e.description}", err=True)
            for line in e.logs:
                click.echo(f"  {line}", err=True)
            raise SystemExit(1)
        if code:
            raise SystemExit(code)
    return wrapper


def _print_report(report: PipelineReport) -> None:
    click.echo("")
    for job in report.jobs:
        line = f"{job.stage:<12} {job.name:<24} {job.status}"
        if job.error:
            line += f"  ({job.error})"
        click.echo(line)
    if report.image is not None:
        click.echo(f"Образ: {report.image.name} [{', '.join(report.image.tags)}]")
    for deployed in report.deployments:
        click.echo(f"Окружение {deployed.environment}: {deployed.state.value}" + (f" {deployed.url}" if deployed.url else ""))
    for warning in report.warnings:
        click.echo(f"! {warning}", err=True)


@click.group()
@click.version_option(package_name="pipe2kube")
def main():
    """Deploy orchestrator: lint, test, build and roll out to Kubernetes."""


@main.command("plan")
@context_options
@handle_errors
def plan_cmd(config_path, repo, **ctx_kwargs):
    """Показать, какие задачи запустятся для коммита."""
    pipeline, ctx = _load(config_path, repo, **ctx_kwargs)
    core = Pipe2KubeCore(pipeline)
    _, summary = core.plan(ctx)
    click.echo(f"{ctx.ref_name or '?'} @ {ctx.short_sha} ({ctx.source})")
    click.echo(summary)


@main.command("run")
@context_options
@click.option("--approve", "approved", multiple=True, help="Manual job allowed to run (repeatable)")
@click.option("--dry-run", is_flag=True, help="Print commands instead of running them")
@handle_errors
@async_click
async def run_cmd(config_path, repo, approved, dry_run, **ctx_kwargs):
    """Выполнить весь пайплайн."""
    click.echo(settings.LOGO + "\n")
    pipeline, ctx = _load(config_path, repo, approved=approved, **ctx_kwargs)
    core = Pipe2KubeCore(pipeline, dry_run=dry_run)
    report = await core.run_pipeline(ctx)
    _print_report(report)
    return report.exit_code


@main.command("job")
@click.argument("name")
@context_options
@click.option("--approve", is_flag=True, help="Confirm a manual job")
@click.option("--dry-run", is_flag=True, help="Print commands instead of running them")
@handle_errors
@async_click
async def job_cmd(name, config_path, repo, approve, dry_run, **ctx_kwargs):
    """Выполнить одну задачу (так её вызывает .gitlab-ci.yml)."""
    approved = (name,) if approve else ()
    pipeline, ctx = _load(config_path, repo, approved=approved, **ctx_kwargs)
    core = Pipe2KubeCore(pipeline, dry_run=dry_run)
    report = await core.run_job(name, ctx, approve=approve)
    _print_report(report)
    return report.exit_code


@main.command("render")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None)
@click.option("-o", "--output", default=".", help="Путь к директории, куда сохранить результат")
@handle_errors
def render_cmd(config_path, output):
    """Сгенерировать .gitlab-ci.yml из описания пайплайна."""
    pipeline = builder.load_pipeline(config_path)
    template = gitlab_render.render(pipeline)

    target = Path(output) / settings.GITLAB_CI_NAME
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(template, encoding="utf-8")
    except OSError as e:
        raise click.ClickException(f"Не удалось сохранить YAML в файл '{target}': {e}")
    click.echo(f"YAML сохранён в файл: {target}", err=True)


@main.command("init")
@click.option("-o", "--output", default=".", help="Корень проекта")
@click.option("--app", default="your-app", help="Deployment name")
def init_cmd(output, app):
    """Создать Dockerfile, pipe2kube.yml и манифесты kubernetes/<env>/ (существующие файлы не трогаются)."""
    root = Path(output)
    environments = builder.default_environments(app)
    for path, created in scaffold(root, environments).items():
        click.echo(("создан    " if created else "пропущен  ") + str(path))


if __name__ == "__main__":
    main()
