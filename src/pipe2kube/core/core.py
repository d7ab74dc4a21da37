from typing import List, Tuple

from .animation import run as run_animation
from .exceptions import ConfigError
from .models import JobResult, PipelineContext, PipelineReport, PlannedJob
from .services.builders import pipeline as builder
from .services.deployer import ClusterDeployer
from .services.process import DryRunRunner, ProcessRunner
from .services.publisher import ImagePublisher
from .services.runner import StageRunner, evaluate, plan

from pipe2kube.model import Pipeline

DRY_RUN_ROLLOUT_OUTPUT = "deployment successfully rolled out (dry-run)"


class Pipe2KubeCore:
    """
    Фасад для CLI: собирает runner, publisher и deployer и запускает
    либо весь пайплайн, либо одну задачу.
    """

    def __init__(self, pipeline: Pipeline, runner=None, dry_run: bool = False, **deployer_kwargs):
        self.pipeline = pipeline
        self.dry_run = dry_run
        if runner is None:
            runner = DryRunRunner(stdout=DRY_RUN_ROLLOUT_OUTPUT) if dry_run else ProcessRunner()
        self.runner = runner
        self.deployer_kwargs = deployer_kwargs
        self.logs: List[str] = []
        self.warnings: List[str] = []

    def _stage_runner(self) -> StageRunner:
        return StageRunner(
            self.runner,
            publisher=ImagePublisher(self.runner),
            deployer=ClusterDeployer(self.runner, **self.deployer_kwargs),
        )

    def plan(self, ctx: PipelineContext) -> Tuple[List[PlannedJob], str]:
        planned = plan(self.pipeline, ctx)
        return planned, builder.summarize_pipeline(self.pipeline, planned)

    async def run_pipeline(self, ctx: PipelineContext) -> PipelineReport:
        report = await run_animation(
            self._stage_runner().run,
            self.pipeline,
            ctx,
            text=f"Пайплайн {ctx.ref_name or ctx.short_sha}",
        )
        return self._finish(report)

    async def run_job(self, name: str, ctx: PipelineContext, approve: bool = False) -> PipelineReport:
        """
        Одна задача — так её вызывает отрендеренный .gitlab-ci.yml.
        Правила проверяются и здесь: задача, не подходящая под контекст, не запускается.
        """
        job = self.pipeline.get_job(name)
        if job is None:
            raise ConfigError(
                description=f"Unknown job '{name}'",
                logs=[f"Доступные задачи: {', '.join(j.name for j in self.pipeline.jobs)}"],
            )

        decision = evaluate(job, ctx)
        warnings: List[str] = []
        if decision == "never":
            warnings.append(f"{name}: правила не выполняются для {ctx.ref_name or ctx.short_sha}, пропуск.")
            result = JobResult(name=name, stage=job.stage, status="skipped")
            stage_runner = None
        elif decision == "manual" and not approve:
            warnings.append(f"{name}: ручная задача, запустите с --approve.")
            result = JobResult(name=name, stage=job.stage, status="manual")
            stage_runner = None
        else:
            stage_runner = self._stage_runner()
            result = await run_animation(
                stage_runner.run_job,
                job,
                self.pipeline,
                ctx,
                approved=approve,
                text=f"Задача {name}",
            )

        report = PipelineReport(
            status="failed" if result.status == "failed" else "success",
            context_ref=ctx.ref_name,
            commit=ctx.short_sha,
            stages=[job.stage],
            jobs=[result],
            image=stage_runner.image if stage_runner else None,
            deployments=stage_runner.deployments if stage_runner else [],
            logs=list(result.logs),
            warnings=warnings,
        )
        return self._finish(report)

    def _finish(self, report: PipelineReport) -> PipelineReport:
        if self.dry_run:
            report.warnings.append("Dry-run: команды не выполнялись.")
        self.logs.extend(report.logs)
        self.warnings.extend(report.warnings)
        return report
