from .models import Command, ProcessResult
from .runner import ProcessRunner, DryRunRunner

__all__ = [
    "Command",
    "ProcessResult",
    "ProcessRunner",
    "DryRunRunner",
]
