from typing import List, Optional

from pipe2kube.exception import CLIException


class Pipe2KubeError(CLIException):
    """
    Базовое исключение оркестратора.

    Дополнительно хранит логи (steps), накопленные во время операции,
    и частичный результат операции (result), если он успел появиться.
    """

    def __init__(
        self,
        *args,
        description: str = "Something happend when running the pipeline",
        logs: Optional[List[str]] = None,
    ) -> None:
        super().__init__(*args, description=description)
        self.logs: List[str] = logs or []
        self.result = None


class ConfigError(Pipe2KubeError):
    """
    Некорректная конфигурация: нет манифеста, нет плейсхолдера, битый YAML и т.п.
    """


class AuthError(Pipe2KubeError):
    """
    Registry или кластер отклонили учётные данные.
    """


class BuildError(Pipe2KubeError):
    """
    Ошибка docker build.
    """

    def __init__(
        self,
        dockerfile: str,
        logs: Optional[List[str]] = None,
        *args,
    ) -> None:
        description = f"Error to build image from {dockerfile}"
        super().__init__(*args, description=description, logs=logs)
        self.dockerfile = dockerfile


class PushError(Pipe2KubeError):
    """
    Ошибка docker push (после всех повторов).
    """

    def __init__(
        self,
        image: str,
        logs: Optional[List[str]] = None,
        *args,
    ) -> None:
        description = f"Error to push image {image}"
        super().__init__(*args, description=description, logs=logs)
        self.image = image


class ApplyError(Pipe2KubeError):
    """
    Кластер отклонил манифест или создание namespace.
    """


class RolloutFailedError(Pipe2KubeError):
    """
    Раскатка явно завершилась неудачей (например, progress deadline exceeded).
    """

    def __init__(
        self,
        deployment: str,
        namespace: str,
        logs: Optional[List[str]] = None,
        *args,
    ) -> None:
        description = f"Rollout of deployment/{deployment} failed in namespace {namespace}"
        super().__init__(*args, description=description, logs=logs)
        self.deployment = deployment
        self.namespace = namespace


class RolloutTimeoutError(RolloutFailedError):
    """
    Deployment не дошёл до готового состояния за отведённое время.
    """

    def __init__(
        self,
        deployment: str,
        namespace: str,
        timeout: float,
        logs: Optional[List[str]] = None,
        *args,
    ) -> None:
        super().__init__(deployment, namespace, logs, *args)
        self.description = (
            f"Rollout of deployment/{deployment} in namespace {namespace} "
            f"did not complete within {timeout:g}s"
        )
        self.timeout = timeout


class ApprovalRequiredError(Pipe2KubeError):
    """
    Окружение требует ручного подтверждения, а его не дали.
    """

    def __init__(
        self,
        environment: str,
        logs: Optional[List[str]] = None,
        *args,
    ) -> None:
        description = f"Deploy to {environment} requires manual approval"
        super().__init__(*args, description=description, logs=logs)
        self.environment = environment
