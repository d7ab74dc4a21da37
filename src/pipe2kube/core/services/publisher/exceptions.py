from pipe2kube.core.exceptions import AuthError, BuildError, ConfigError, PushError


class _PushAttemptFailed(Exception):
    """
    Одна неудачная попытка docker push; наружу не выходит —
    после всех повторов превращается в PushError.
    """


__all__ = [
    "AuthError",
    "BuildError",
    "ConfigError",
    "PushError",
]
