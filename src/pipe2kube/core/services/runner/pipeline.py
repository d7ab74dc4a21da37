import asyncio
import click

from typing import Dict, List, Optional

from pipe2kube.core.exceptions import ConfigError, Pipe2KubeError
from pipe2kube.core.models import (
    DeployResult,
    ImageReference,
    JobResult,
    PipelineContext,
    PipelineReport,
    PlannedJob,
)
from pipe2kube.core.services.process import Command
from pipe2kube.model import Job, Pipeline

from .rules import plan


class StageRunner:
    """
    Выполняет пайплайн по стадиям.

    Стадия — барьер: все её задачи стартуют параллельно, следующая стадия
    начинается только когда закончились все. Упавшая обязательная задача
    останавливает продвижение, allow_failure-задача — нет (но в отчёт попадает).
    Ручные задачи без подтверждения не запускаются.
    """

    def __init__(self, runner, publisher=None, deployer=None) -> None:
        self.runner = runner
        self.publisher = publisher
        self.deployer = deployer
        self.image: Optional[ImageReference] = None
        self.deployments: List[DeployResult] = []

    async def run(self, pipeline: Pipeline, ctx: PipelineContext) -> PipelineReport:
        logs: List[str] = []
        warnings: List[str] = []
        results: List[JobResult] = []

        planned = plan(pipeline, ctx)
        by_stage: Dict[str, List[PlannedJob]] = {}
        for p in planned:
            if p.decision != "never":
                by_stage.setdefault(p.stage, []).append(p)

        logs.append(
            f"Пайплайн для {ctx.ref_name or '?'} ({ctx.short_sha}), источник {ctx.source}: "
            f"{sum(len(v) for v in by_stage.values())} задач из {len(pipeline.jobs)} проходят по правилам."
        )

        halted = False
        for stage in pipeline.stages:
            stage_jobs = by_stage.get(stage, [])
            if not stage_jobs:
                continue

            if halted:
                for p in stage_jobs:
                    results.append(JobResult(name=p.name, stage=stage, status="skipped"))
                continue

            runnable = [p for p in stage_jobs if p.runnable]
            for p in stage_jobs:
                if not p.runnable:
                    logs.append(f"{p.name}: ручная задача, ждёт запуска оператором.")
                    results.append(JobResult(name=p.name, stage=stage, status="manual"))

            if not runnable:
                continue

            click.echo(f"Стадия {stage}: {', '.join(p.name for p in runnable)}")
            stage_results = await asyncio.gather(
                *(
                    self.run_job(pipeline.get_job(p.name), pipeline, ctx, approved=p.approved)
                    for p in runnable
                )
            )
            results.extend(stage_results)

            for r in stage_results:
                if r.status == "allowed_failure":
                    warnings.append(f"{r.name} упала, но allow_failure — пайплайн продолжается.")
                if r.status == "failed":
                    halted = True
                    logs.append(f"{r.name} упала — стадии после {stage} не запускаются.")

        status = "failed" if halted else "success"
        logs.append(f"Пайплайн завершён со статусом {status}.")
        return PipelineReport(
            status=status,
            context_ref=ctx.ref_name,
            commit=ctx.short_sha,
            stages=list(pipeline.stages),
            jobs=results,
            image=self.image,
            deployments=self.deployments,
            logs=logs,
            warnings=warnings,
        )

    async def run_job(
        self,
        job: Job,
        pipeline: Pipeline,
        ctx: PipelineContext,
        approved: bool = False,
    ) -> JobResult:
        logs: List[str] = []
        try:
            if job.kind == "script":
                await self._run_script(job, logs)
            elif job.kind == "build":
                published = await self.publisher.publish(
                    ctx,
                    dockerfile=pipeline.build.dockerfile,
                    context_dir=pipeline.build.context,
                )
                logs.extend(published.logs)
                self.image = published.image
            elif job.kind == "deploy":
                env = pipeline.environments[job.environment]
                image = self.image or image_from_context(ctx)
                deployed = await self.deployer.deploy(env, image, ctx, approved=approved)
                logs.extend(deployed.logs)
                self.deployments.append(deployed)
        except Pipe2KubeError as e:
            logs.extend(e.logs)
            if isinstance(e.result, DeployResult):
                self.deployments.append(e.result)
            status = "allowed_failure" if job.allow_failure else "failed"
            click.echo(f"{job.name}: {e.description}", err=True)
            return JobResult(name=job.name, stage=job.stage, status=status, error=e.description, logs=logs)

        click.echo(f"{job.name}: ok")
        return JobResult(name=job.name, stage=job.stage, status="success", logs=logs)

    async def _run_script(self, job: Job, logs: List[str]) -> None:
        for line in job.script:
            try:
                command = Command.parse(line)
            except ValueError as e:
                raise ConfigError(description=f"Cannot parse script line {line!r} of {job.name}: {e}")
            result = await self.runner.run(command)
            if result.output:
                logs.append(result.output)
            if not result.ok:
                raise Pipe2KubeError(
                    description=f"Command '{command.display()}' exited with code {result.exit_code}",
                )


def image_from_context(ctx: PipelineContext) -> ImageReference:
    """
    Образ текущего коммита, если в этом запуске сборки не было
    (деплой отдельной задачей CI после build).
    """
    return ImageReference(
        registry=ctx.registry,
        repository=ctx.project_path,
        sha_tag=ctx.short_sha,
        tags=(ctx.short_sha,),
    )
