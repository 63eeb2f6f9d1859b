"""Stepflow Core -- shared primitives for the orchestration engine.

Architecture::

    errors.py     Structured error hierarchy rooted at StepflowError
    logging.py    Structured logging (structlog)
    settings.py   StepflowSettings (pydantic-settings, STEPFLOW_ env prefix)
    registry.py   Registry[T] keyed catalog + category index
    hashing.py    Deterministic hashes for cache keys
"""

from stepflow.core.errors import (
    ConfigurationError,
    CycleDetectedError,
    DependencyError,
    ErrorCategory,
    ErrorContext,
    ExecutionError,
    InactiveError,
    NotFoundError,
    RollbackError,
    StateError,
    StepflowError,
    TimeoutError,
    ValidationError,
    categorize_error,
    describe_error,
    is_retryable,
)
from stepflow.core.hashing import compute_hash, stable_options_hash
from stepflow.core.logging import (
    LogContext,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    unbind_context,
)
from stepflow.core.registry import DEFAULT_CATEGORY, Registry
from stepflow.core.settings import StepflowSettings, get_settings, reset_settings

__all__ = [
    # errors
    "ErrorCategory",
    "ErrorContext",
    "StepflowError",
    "ConfigurationError",
    "CycleDetectedError",
    "DependencyError",
    "NotFoundError",
    "StateError",
    "InactiveError",
    "ValidationError",
    "TimeoutError",
    "ExecutionError",
    "RollbackError",
    "is_retryable",
    "categorize_error",
    "describe_error",
    # hashing
    "compute_hash",
    "stable_options_hash",
    # logging
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "LogContext",
    # registry
    "Registry",
    "DEFAULT_CATEGORY",
    # settings
    "StepflowSettings",
    "get_settings",
    "reset_settings",
]
