from pipe2kube.core.exceptions import (
    ApplyError,
    ApprovalRequiredError,
    AuthError,
    ConfigError,
    RolloutFailedError,
    RolloutTimeoutError,
)

__all__ = [
    "ApplyError",
    "ApprovalRequiredError",
    "AuthError",
    "ConfigError",
    "RolloutFailedError",
    "RolloutTimeoutError",
]
