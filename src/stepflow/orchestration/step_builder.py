"""Step Builder: runnable step instances from registered definitions.

A ``StepInstance`` binds a registered step to one run's options and
settings.  Instances are cheap, immutable and cached by
``(name, stable_options_hash(options, settings))`` in a bounded LRU.

Settings merge::

    merged = {**definition.config.settings, **overrides}

Overrides replace values but never remove a configured key.

Example::

    builder = StepBuilder(registry, cache_size=128)
    lint = builder.build("lint", options={"fix": True}, settings={"strict": True})
    lint = lint.with_rules(ValidationRule("path", "project_path", "required"))
    result = lint.validate(context)
    if result.is_valid:
        record = await lint.execute(context)

Tags:
    stepflow, orchestration, step-builder, cache
"""

from __future__ import annotations

from collections import OrderedDict
from collections.abc import Mapping
from datetime import datetime
from types import MappingProxyType
from typing import Any

from stepflow.core.errors import ConfigurationError
from stepflow.core.hashing import stable_options_hash
from stepflow.core.logging import get_logger
from stepflow.orchestration.step_registry import StepRegistry
from stepflow.orchestration.steps import ExecutionRecord, StepConfig, StepDefinition
from stepflow.validation.result import ValidationResult
from stepflow.validation.rules import RuleSet, ValidationRule
from stepflow.validation.validator import Codes

logger = get_logger(__name__)


def completed_steps_of(context: Any) -> list[str]:
    """Completed step names from a context-like object or a plain mapping."""
    steps = getattr(context, "completed_steps", None)
    if steps is not None:
        return list(steps)
    if isinstance(context, Mapping):
        return list(context.get("completed_steps", []))
    return []


def data_of(context: Any) -> Any:
    if isinstance(context, Mapping):
        return context
    return getattr(context, "data", context)


class StepInstance:
    """A registered step bound to per-run options and merged settings.

    ``options`` and ``settings`` are read-only views; instances are shared
    through the builder cache.
    """

    def __init__(
        self,
        registry: StepRegistry,
        name: str,
        config: StepConfig,
        options: Mapping[str, Any] | None = None,
        settings: Mapping[str, Any] | None = None,
        rules: tuple[ValidationRule, ...] = (),
    ) -> None:
        self._registry = registry
        self.name = name
        self.config = config
        self.options: Mapping[str, Any] = MappingProxyType(dict(options or {}))
        self.settings: Mapping[str, Any] = MappingProxyType(
            {**config.settings, **dict(settings or {})}
        )
        self.rules = tuple(rules)

    @property
    def dependencies(self) -> list[str]:
        return list(self.config.dependencies)

    def with_rules(self, *rules: ValidationRule) -> StepInstance:
        """Return a copy with *rules* appended; the cached instance is untouched."""
        return StepInstance(
            self._registry, self.name, self.config, self.options, self.settings, self.rules + rules
        )

    def validate(self, context: Any) -> ValidationResult:
        """Check config integrity, declared dependencies and attached rules."""
        result = ValidationResult(metadata={"step": self.name})

        try:
            StepConfig.from_mapping(self.config.to_dict())
        except ConfigurationError as exc:
            result.add_error(f"config.{exc.key or 'config'}", exc.message, code="INVALID_CONFIG")

        if not self._registry.has_step(self.name):
            result.add_error("step", f"Step '{self.name}' is no longer registered", code=Codes.INVALID_REFERENCE)
        elif not self._registry.get_step(self.name).is_active:
            result.add_error("step", f"Step '{self.name}' is not active", code="INACTIVE")

        done = set(completed_steps_of(context))
        missing = [dep for dep in self.config.dependencies if dep not in done]
        if missing:
            result.add_error(
                "dependencies",
                f"Step '{self.name}' requires completed steps: {', '.join(missing)}",
                code=Codes.MISSING_DEPENDENCY,
                missing=missing,
            )

        if self.rules:
            result.merge(RuleSet(self.rules).validate(data_of(context)))
        return result

    async def execute(self, context: Any) -> ExecutionRecord:
        """Dispatch through the registry with options plus ``settings``."""
        options = {**self.options, "settings": dict(self.settings)}
        return await self._registry.execute_step(self.name, context, options)

    def __repr__(self) -> str:
        return f"StepInstance({self.name!r}, settings={sorted(self.settings)})"


class StepBuilder:
    """Builds and caches ``StepInstance`` objects.

    Cached entries are dropped when the underlying definition was
    re-registered or updated since they were built.

    Args:
        registry: Source of step definitions.
        cache_size: Maximum cached instances; 0 disables caching.
    """

    def __init__(self, registry: StepRegistry, cache_size: int = 256) -> None:
        if cache_size < 0:
            raise ConfigurationError("cache_size must be >= 0", key="cache_size")
        self._registry = registry
        self._max_size = cache_size
        self._cache: OrderedDict[tuple[str, str], tuple[StepInstance, StepDefinition, datetime]] = OrderedDict()
        self._hits = 0
        self._misses = 0

    @property
    def registry(self) -> StepRegistry:
        return self._registry

    def build(
        self,
        name: str,
        options: Mapping[str, Any] | None = None,
        settings: Mapping[str, Any] | None = None,
    ) -> StepInstance:
        """Return an instance of *name* bound to *options* and *settings*.

        Raises:
            NotFoundError: Unknown step.
        """
        definition = self._registry.get_step(name)
        key = (definition.name, stable_options_hash(options, settings))

        cached = self._cache.get(key)
        if cached is not None:
            instance, cached_def, updated_at = cached
            if cached_def is definition and updated_at == definition.updated_at:
                self._cache.move_to_end(key)
                self._hits += 1
                return instance
            del self._cache[key]

        self._misses += 1
        instance = StepInstance(
            self._registry,
            definition.name,
            StepConfig.from_mapping(definition.config),
            options,
            settings,
        )
        if self._max_size:
            self._cache[key] = (instance, definition, definition.updated_at)
            while len(self._cache) > self._max_size:
                self._cache.popitem(last=False)
        logger.debug("step_builder.build", step=definition.name, cached=bool(self._max_size))
        return instance

    def invalidate(self, name: str | None = None) -> int:
        """Drop cached instances of *name* (or all); returns how many."""
        if name is None:
            count = len(self._cache)
            self._cache.clear()
            return count
        keys = [key for key in self._cache if key[0] == name]
        for key in keys:
            del self._cache[key]
        return len(keys)

    def cache_info(self) -> dict[str, int]:
        return {
            "size": len(self._cache),
            "max_size": self._max_size,
            "hits": self._hits,
            "misses": self._misses,
        }


__all__ = ["StepBuilder", "StepInstance", "completed_steps_of", "data_of"]
