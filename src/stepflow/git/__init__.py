"""
Stepflow Git - a git-delivery workflow built on the orchestration engine.

Architecture::

    manager.py     GitWorkflowManager (branch → steps → PR → review → merge)
    strategies.py  BranchStrategy / MergeStrategy (closed variant sets)
    context.py     GitTask, AutomationLevel, GitWorkflowContext
    result.py      GitWorkflowResult assembled phase by phase
    validator.py   GitWorkflowValidator pre-flight checks
    errors.py      GitWorkflowError with stable error codes
    protocols.py   GitService / PullRequestManager / ReviewService
"""

from stepflow.git.context import AutomationLevel, GitTask, GitWorkflowContext
from stepflow.git.errors import GitWorkflowError
from stepflow.git.manager import (
    GitWorkflowManager,
    commit_message,
    pull_request_labels,
    pull_request_title,
)
from stepflow.git.protocols import GitService, PullRequestManager, ReviewService
from stepflow.git.result import PHASES, GitWorkflowResult, PhaseResult
from stepflow.git.strategies import (
    BranchStrategy,
    BranchStrategyKind,
    MergeMethod,
    MergeStrategy,
)
from stepflow.git.validator import GitWorkflowValidator

__all__ = [
    # Manager
    "GitWorkflowManager",
    "commit_message",
    "pull_request_title",
    "pull_request_labels",
    # Model
    "GitTask",
    "AutomationLevel",
    "GitWorkflowContext",
    "GitWorkflowResult",
    "PhaseResult",
    "PHASES",
    # Strategies
    "BranchStrategy",
    "BranchStrategyKind",
    "MergeMethod",
    "MergeStrategy",
    # Validation / errors
    "GitWorkflowValidator",
    "GitWorkflowError",
    # Collaborators
    "GitService",
    "PullRequestManager",
    "ReviewService",
]
