from .core import ClusterDeployer

from .manifests import (
    IMAGE_NAME_PLACEHOLDER,
    IMAGE_TAG_PLACEHOLDER,
    MANIFEST_KINDS,
    substitute_image,
)
from .exceptions import (
    ApplyError,
    ApprovalRequiredError,
    AuthError,
    ConfigError,
    RolloutFailedError,
    RolloutTimeoutError,
)

__all__ = [
    "ClusterDeployer",
    "IMAGE_NAME_PLACEHOLDER",
    "IMAGE_TAG_PLACEHOLDER",
    "MANIFEST_KINDS",
    "substitute_image",
    "ApplyError",
    "ApprovalRequiredError",
    "AuthError",
    "ConfigError",
    "RolloutFailedError",
    "RolloutTimeoutError",
]
