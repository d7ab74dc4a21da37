import asyncio
import click
import tempfile

from pathlib import Path
from typing import List, Optional

from pipe2kube.core import config
from pipe2kube.core.exceptions import Pipe2KubeError
from pipe2kube.core.models import (
    DeployResult,
    DeployState,
    ImageReference,
    PipelineContext,
)
from pipe2kube.core.services.process import Command
from pipe2kube.model import Environment
from pipe2kube.utils import ensure_dir

from .exceptions import (
    ApplyError,
    ApprovalRequiredError,
    AuthError,
    RolloutFailedError,
    RolloutTimeoutError,
)
from .manifests import manifest_paths, render_deployment

CLUSTER_NAME = "gitlab"
ROLLOUT_DONE = "successfully rolled out"
ROLLOUT_FAILED_MARKERS = ("exceeded its progress deadline", "rollout failed")
ALREADY_EXISTS = "AlreadyExists"


class ClusterDeployer:
    """
    Деплой образа в одно окружение Kubernetes через GitLab Agent.

    Состояния: Pending → Authenticating → NamespaceEnsured → ManifestsApplied →
    RolloutInProgress → RolloutComplete | RolloutFailed.

    Отката нет: при ошибке деплой остаётся в RolloutFailed, дальше — руками.
    """

    def __init__(
        self,
        runner,
        kubectl_bin: Optional[str] = None,
        rollout_timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
        workdir: Optional[Path] = None,
    ) -> None:
        self.runner = runner
        self.kubectl_bin = kubectl_bin or config.KUBECTL_BIN
        self.rollout_timeout = config.ROLLOUT_TIMEOUT if rollout_timeout is None else rollout_timeout
        self.poll_interval = config.ROLLOUT_POLL_INTERVAL if poll_interval is None else poll_interval
        self.workdir = Path(workdir) if workdir is not None else config.BASE_TEMP_DIR

    def _kubectl(self, *args: str, **kwargs) -> Command:
        return Command(tool=self.kubectl_bin, args=args, **kwargs)

    async def deploy(
        self,
        env: Environment,
        image: ImageReference,
        ctx: PipelineContext,
        approved: bool = False,
    ) -> DeployResult:
        result = DeployResult(
            environment=env.name,
            namespace=env.namespace,
            image=image.ref(),
            url=env.url,
        )

        # ручное подтверждение проверяется до любых обращений к кластеру
        if env.requires_approval and not approved:
            result.logs.append(f"Окружение {env.name} требует ручного запуска.")
            raise ApprovalRequiredError(environment=env.name, logs=result.logs)

        try:
            result.move(DeployState.AUTHENTICATING)
            await self.authenticate(env, ctx, result)

            await self.ensure_namespace(env, result)
            result.move(DeployState.NAMESPACE_ENSURED)

            await self.apply_manifests(env, image, result)
            result.move(DeployState.MANIFESTS_APPLIED)

            result.move(DeployState.ROLLOUT_IN_PROGRESS)
            await self.wait_rollout(env, result)
            result.move(DeployState.ROLLOUT_COMPLETE)
        except Pipe2KubeError as e:
            result.move(DeployState.ROLLOUT_FAILED)
            e.result = result
            raise

        click.echo(
            f"Деплой deployment/{env.deployment} в namespace {env.namespace} завершён"
            + (f": {env.url}" if env.url else "")
        )
        return result

    async def authenticate(self, env: Environment, ctx: PipelineContext, result: DeployResult) -> None:
        """
        Настраивает kubectl на работу через прокси GitLab Agent
        с токеном ci:<agent_id>:<CI_JOB_TOKEN>.
        """
        if not ctx.job_token:
            result.logs.append("CI_JOB_TOKEN не задан — авторизоваться в кластере нечем.")
            raise AuthError(description="CI job token is not set", logs=result.logs)

        user = f"agent:{env.agent_id}"
        token = f"ci:{env.agent_id}:{ctx.job_token}"
        cluster_args = ["config", "set-cluster", CLUSTER_NAME, f"--server={env.proxy_url}"]
        if env.insecure_skip_tls_verify:
            cluster_args.append("--insecure-skip-tls-verify=true")

        commands = [
            self._kubectl("config", "set-credentials", user, f"--token={token}", secrets=(token,)),
            self._kubectl(*cluster_args),
            self._kubectl(
                "config", "set-context", env.agent_context,
                f"--cluster={CLUSTER_NAME}", f"--user={user}",
            ),
            self._kubectl("config", "use-context", env.agent_context),
        ]

        result.logs.append(f"Авторизация через агент {env.agent_id}, контекст {env.agent_context}")
        for command in commands:
            proc = await self.runner.run(command)
            if not proc.ok:
                result.logs.append(proc.output)
                raise AuthError(
                    description=f"Cannot configure cluster credentials for {env.agent_context}",
                    logs=result.logs,
                )

    async def ensure_namespace(self, env: Environment, result: DeployResult) -> None:
        """
        Создаёт namespace; "уже существует" — тоже успех.
        """
        proc = await self.runner.run(self._kubectl("create", "namespace", env.namespace))
        if proc.ok:
            result.logs.append(f"Namespace {env.namespace} создан")
            return
        if ALREADY_EXISTS in proc.output or "already exists" in proc.output:
            result.logs.append(f"Namespace {env.namespace} уже существует, пропускаем создание.")
            return

        result.logs.append(proc.output)
        raise ApplyError(description=f"Cannot create namespace {env.namespace}", logs=result.logs)

    async def apply_manifests(self, env: Environment, image: ImageReference, result: DeployResult) -> None:
        deployment, service, ingress = manifest_paths(env.manifest_dir)
        with tempfile.TemporaryDirectory(prefix="manifests_", dir=ensure_dir(self.workdir)) as tmp:
            rendered = render_deployment(deployment, image.name, image.sha_tag, Path(tmp))
            result.logs.append(f"Образ в манифесте: {image.ref()}")
            await self._apply(env, (rendered, service, ingress), result)

    async def _apply(self, env: Environment, paths, result: DeployResult) -> None:
        extra: List[str] = ["-n", env.namespace]
        if not env.validate_manifests:
            extra.append("--validate=false")
        if env.insecure_skip_tls_verify:
            extra.append("--insecure-skip-tls-verify=true")

        for path in paths:
            proc = await self.runner.run(self._kubectl("apply", "-f", str(path), *extra))
            if not proc.ok:
                result.logs.append(proc.output)
                raise ApplyError(description=f"Cluster rejected manifest {path.name}", logs=result.logs)
            result.applied.append(path.name)
            result.logs.append(f"Применён {path.name}")

    async def wait_rollout(self, env: Environment, result: DeployResult) -> None:
        """
        Опрашивает kubectl rollout status --watch=false, пока deployment не
        раскатится, явно не упадёт или не выйдет ROLLOUT_TIMEOUT.
        Ошибки связи с API не фатальны: опрос продолжается до дедлайна.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.rollout_timeout
        target = f"deployment/{env.deployment}"
        result.logs.append(f"Ожидаем раскатку {target} (не дольше {self.rollout_timeout:g}s)")

        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                break

            proc = await self.runner.run(
                self._kubectl(
                    "rollout", "status", target, "-n", env.namespace, "--watch=false",
                    timeout=min(remaining, config.COMMAND_TIMEOUT),
                )
            )
            output = proc.output
            if proc.ok and ROLLOUT_DONE in output:
                result.logs.append(output)
                return
            if any(marker in output for marker in ROLLOUT_FAILED_MARKERS):
                result.logs.append(output)
                raise RolloutFailedError(env.deployment, env.namespace, logs=result.logs)
            if not proc.ok:
                result.warnings.append(f"rollout status: {output or proc.exit_code}")

            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            await asyncio.sleep(min(self.poll_interval, remaining))

        result.logs.append(f"{target} не раскатился за {self.rollout_timeout:g}s")
        raise RolloutTimeoutError(env.deployment, env.namespace, self.rollout_timeout, logs=result.logs)
