"""Oracle adapters: scratch workspaces, command invocation and score parsing."""

from .cv_output import CvScore, parse_cv_output
from .evaluator import CallableEvaluator, CommandEvaluator, Evaluator
from .workspace import scratch_workspace, stage_files

__all__ = [
    "CallableEvaluator",
    "CommandEvaluator",
    "CvScore",
    "Evaluator",
    "parse_cv_output",
    "scratch_workspace",
    "stage_files",
]
