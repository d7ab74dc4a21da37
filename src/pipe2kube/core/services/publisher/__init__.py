from .core import ImagePublisher, LATEST_TAG

from .exceptions import AuthError, BuildError, PushError

__all__ = [
    "ImagePublisher",
    "LATEST_TAG",
    "AuthError",
    "BuildError",
    "PushError",
]
