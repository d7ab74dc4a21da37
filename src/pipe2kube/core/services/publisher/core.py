import click

from typing import List, Optional

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from pipe2kube.core import config
from pipe2kube.core.models import ImageReference, PipelineContext, PublishResult
from pipe2kube.core.services.process import Command

from .exceptions import AuthError, BuildError, ConfigError, PushError, _PushAttemptFailed

LATEST_TAG = "latest"
LATEST_BRANCHES = ("main", "master")


class ImagePublisher:
    """
    Сборка одного образа и публикация его в registry под несколькими тегами:

    - короткий sha коммита (есть всегда — по нему образ связан с исходниками);
    - слаг ветки/тега;
    - latest — только для ветки по умолчанию или веток main/master.

    Каждый docker push повторяется с экспоненциальной паузой (tenacity),
    после исчерпания попыток — PushError.
    """

    def __init__(
        self,
        runner,
        docker_bin: Optional[str] = None,
        push_attempts: Optional[int] = None,
        push_backoff: Optional[float] = None,
    ) -> None:
        self.runner = runner
        self.docker_bin = docker_bin or config.DOCKER_BIN
        self.push_attempts = push_attempts or config.PUSH_ATTEMPTS
        self.push_backoff = config.PUSH_BACKOFF if push_backoff is None else push_backoff

    def tags_for(self, ctx: PipelineContext) -> List[str]:
        tags = [ctx.short_sha]
        if ctx.ref_slug and ctx.ref_slug not in tags:
            tags.append(ctx.ref_slug)
        if self.wants_latest(ctx):
            tags.append(LATEST_TAG)
        return tags

    @staticmethod
    def wants_latest(ctx: PipelineContext) -> bool:
        ref = ctx.ref_name
        return bool(ref) and (ref == ctx.default_branch or ref in LATEST_BRANCHES)

    async def publish(
        self,
        ctx: PipelineContext,
        dockerfile: str = "Dockerfile",
        context_dir: str = ".",
    ) -> PublishResult:
        logs: List[str] = []
        warnings: List[str] = []

        if not ctx.registry or not ctx.project_path:
            raise ConfigError(
                description="Registry or project path is not set (CI_REGISTRY / CI_PROJECT_PATH)",
                logs=logs,
            )

        image_name = ctx.image_name
        await self._login(ctx, logs)

        # 1) build с тегами sha и слага ветки
        build_tags = [tag for tag in self.tags_for(ctx) if tag != LATEST_TAG]
        args: List[str] = ["build"]
        for tag in build_tags:
            args += ["-t", f"{image_name}:{tag}"]
        args += ["-f", dockerfile, context_dir]

        click.echo(f"Сборка образа {image_name} ({', '.join(build_tags)})")
        logs.append(f"Сборка образа {image_name} из {dockerfile}, контекст {context_dir}")
        result = await self.runner.run(Command(tool=self.docker_bin, args=tuple(args)))
        if not result.ok:
            logs.append(result.output)
            raise BuildError(dockerfile=dockerfile, logs=logs)

        # 2) push: сначала sha, затем слаг
        pushed: List[str] = []
        for tag in build_tags:
            await self._push(f"{image_name}:{tag}", logs)
            pushed.append(tag)

        # 3) latest для основной ветки
        if self.wants_latest(ctx):
            source = f"{image_name}:{ctx.short_sha}"
            target = f"{image_name}:{LATEST_TAG}"
            logs.append(f"Ветка {ctx.ref_name} — дополнительно публикуем тег latest")
            result = await self.runner.run(
                Command(tool=self.docker_bin, args=("tag", source, target))
            )
            if not result.ok:
                logs.append(result.output)
                raise PushError(image=target, logs=logs)
            await self._push(target, logs)
            pushed.append(LATEST_TAG)

        if not ctx.ref_slug:
            warnings.append(
                "Не удалось определить ветку или тег — образ опубликован только с тегом коммита."
            )

        image = ImageReference(
            registry=ctx.registry,
            repository=ctx.project_path,
            sha_tag=ctx.short_sha,
            tags=tuple(pushed),
        )
        logs.append(f"Опубликованы теги: {', '.join(pushed)}")
        return PublishResult(image=image, pushed=pushed, logs=logs, warnings=warnings)

    async def _login(self, ctx: PipelineContext, logs: List[str]) -> None:
        if not ctx.registry_user or not ctx.registry_password:
            logs.append("Логин в registry: не заданы CI_REGISTRY_USER / CI_REGISTRY_PASSWORD.")
            raise AuthError(
                description=f"No credentials for registry {ctx.registry}",
                logs=logs,
            )

        logs.append(f"Логин в registry {ctx.registry} как {ctx.registry_user}")
        result = await self.runner.run(
            Command(
                tool=self.docker_bin,
                args=("login", "-u", ctx.registry_user, "--password-stdin", ctx.registry),
                stdin=ctx.registry_password,
                secrets=(ctx.registry_password,),
            )
        )
        if not result.ok:
            logs.append(result.output)
            raise AuthError(description=f"Registry {ctx.registry} rejected credentials", logs=logs)

    async def _push(self, ref: str, logs: List[str]) -> None:
        command = Command(tool=self.docker_bin, args=("push", ref))
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.push_attempts),
            wait=wait_exponential(multiplier=self.push_backoff, max=self.push_backoff * 8),
            retry=retry_if_exception_type(_PushAttemptFailed),
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    number = attempt.retry_state.attempt_number
                    click.echo(f"Публикация {ref} (попытка {number}/{self.push_attempts})")
                    result = await self.runner.run(command)
                    if not result.ok:
                        logs.append(f"docker push {ref}, попытка {number}: {result.output}")
                        raise _PushAttemptFailed(ref)
        except _PushAttemptFailed:
            raise PushError(image=ref, logs=logs)

        logs.append(f"Образ {ref} опубликован")
