from typing import List

from pipe2kube.core.models import Decision, PipelineContext, PlannedJob
from pipe2kube.model import DEFAULT_BRANCH_MARKER, Job, Pipeline, Rule


def _resolve_branch(name: str, ctx: PipelineContext) -> str:
    return ctx.default_branch if name == DEFAULT_BRANCH_MARKER else name


def rule_matches(rule: Rule, ctx: PipelineContext) -> bool:
    """
    Условия одного правила объединяются через ИЛИ.
    Ветка сравнивается только для пайплайнов по ветке (как CI_COMMIT_BRANCH в GitLab):
    у merge request и тегов её нет.
    """
    if ctx.branch and any(_resolve_branch(b, ctx) == ctx.branch for b in rule.branches):
        return True
    if ctx.source in rule.sources:
        return True
    if rule.tags and ctx.tag:
        return True
    return False


def evaluate(job: Job, ctx: PipelineContext) -> Decision:
    """
    Решение по задаче: первое подходящее правило определяет when.
    Нет правил — задача запускается всегда (как в GitLab без rules).
    """
    if not job.rules:
        return "run"
    for rule in job.rules:
        if rule_matches(rule, ctx):
            return "manual" if rule.when == "manual" else "run"
    return "never"


def plan(pipeline: Pipeline, ctx: PipelineContext) -> List[PlannedJob]:
    """
    Вычисляет решения по всем задачам заранее, до запуска чего-либо,
    в порядке стадий.
    """
    planned: List[PlannedJob] = []
    for stage in pipeline.stages:
        for job in pipeline.jobs_in(stage):
            decision = evaluate(job, ctx)
            planned.append(
                PlannedJob(
                    name=job.name,
                    stage=stage,
                    decision=decision,
                    approved=decision == "manual" and job.name in ctx.approved_jobs,
                )
            )
    return planned
