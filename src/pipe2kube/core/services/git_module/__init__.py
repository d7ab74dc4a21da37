from .core import ContextResolver, read_checkout, CI_VARIABLES

from .exceptions import GitContextError
from .models import LocalCheckout

__all__ = [
    "ContextResolver",
    "read_checkout",
    "CI_VARIABLES",
    "LocalCheckout",
    "GitContextError",
]
