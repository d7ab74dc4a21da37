from .pipeline import StageRunner, image_from_context
from .rules import evaluate, plan, rule_matches

__all__ = [
    "StageRunner",
    "image_from_context",
    "evaluate",
    "plan",
    "rule_matches",
]
