"""
Capability Registry

Maps capability names to their descriptors and implementations. The
registry validates every invocation against the declared parameter schema
before the implementation runs, and normalizes implementation failures into
``ExecutionResult(success=False)`` so one failing capability never crashes
the execution loop.

Lookups return a tagged result (``Found`` / ``NotFound``); there is no
dynamic dispatch on names coming from model output.
"""

import asyncio
import copy
import inspect
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import structlog

from taskpilot.core.domain.errors import (
    CapabilityNotFound,
    DuplicateCapability,
    InvalidParameters,
)
from taskpilot.core.domain.models import ExecutionResult
from taskpilot.core.domain.schema import check_schema, normalize_schema, validate_parameters

logger = structlog.get_logger()


class Capability(ABC):
    """Base class for everything the execution loop may invoke."""

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        pass

    @property
    def parameters_schema(self) -> dict[str, Any]:
        """Override to declare accepted parameters. Defaults to no parameters."""
        return {}

    @property
    def category(self) -> str:
        return "general"

    @abstractmethod
    async def invoke(self, params: dict[str, Any]) -> ExecutionResult | dict[str, Any]:
        """
        Run the capability with already-validated parameters.

        Implementations should catch their own errors and return
        ``{"success": False, "error": ...}``; anything that escapes is still
        caught by the registry.
        """


class FunctionCapability(Capability):
    """Wrap a plain (async or sync) callable taking a params dict."""

    def __init__(
        self,
        name: str,
        description: str,
        func: Callable[[dict[str, Any]], Any],
        parameters_schema: dict[str, Any] | None = None,
        category: str = "general",
    ):
        self._name = name
        self._description = description
        self._func = func
        self._schema = parameters_schema or {}
        self._category = category

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return self._schema

    @property
    def category(self) -> str:
        return self._category

    async def invoke(self, params: dict[str, Any]) -> ExecutionResult | dict[str, Any]:
        result = self._func(params)
        if inspect.isawaitable(result):
            result = await result
        return result


def capability(
    name: str,
    description: str,
    parameters_schema: dict[str, Any] | None = None,
    category: str = "general",
) -> Callable[[Callable[[dict[str, Any]], Awaitable[Any]]], FunctionCapability]:
    """Decorator turning a function into a FunctionCapability."""

    def wrap(func):
        return FunctionCapability(name, description, func, parameters_schema, category)

    return wrap


@dataclass(frozen=True)
class CapabilityDescriptor:
    """Metadata advertised to the planner. Never carries the implementation."""

    name: str
    description: str
    parameters_schema: dict[str, Any] = field(default_factory=dict)
    category: str = "general"

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": copy.deepcopy(self.parameters_schema),
            "category": self.category,
        }


@dataclass(frozen=True)
class Found:
    capability: Capability
    descriptor: CapabilityDescriptor


@dataclass(frozen=True)
class NotFound:
    name: str


LookupResult = Found | NotFound


class CapabilityRegistry:
    """
    Registry of capabilities, populated at startup and read-only afterwards.

    ``seal()`` marks the end of startup registration; concurrent reads from
    any number of sessions are safe because nothing mutates after that.
    """

    def __init__(self, capabilities: list[Capability] | None = None):
        self._entries: dict[str, Found] = {}
        self._sealed = False
        self.logger = logger.bind(component="capability_registry")
        for cap in capabilities or []:
            self.register(cap)

    def register(self, capability: Capability) -> CapabilityDescriptor:
        """
        Register a capability.

        Raises:
            DuplicateCapability: If the name is already registered
            InvalidParameters: If the declared parameter schema is malformed
            RuntimeError: If the registry has been sealed
        """
        if self._sealed:
            raise RuntimeError("Capability registry is sealed; register capabilities at startup")

        name = capability.name
        if name in self._entries:
            self.logger.warning("capability_duplicate", capability=name)
            raise DuplicateCapability(name)

        schema = normalize_schema(capability.parameters_schema)
        problems = check_schema(schema)
        if problems:
            raise InvalidParameters(name, problems)

        descriptor = CapabilityDescriptor(
            name=name,
            description=capability.description,
            parameters_schema=schema,
            category=capability.category,
        )
        self._entries[name] = Found(capability=capability, descriptor=descriptor)
        self.logger.debug("capability_registered", capability=name, category=descriptor.category)
        return descriptor

    def seal(self) -> None:
        self._sealed = True

    @property
    def sealed(self) -> bool:
        return self._sealed

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def names(self) -> list[str]:
        return list(self._entries)

    def lookup(self, name: str) -> LookupResult:
        entry = self._entries.get(name)
        if entry is None:
            return NotFound(name)
        return entry

    def get(self, name: str) -> Capability:
        """
        Raises:
            CapabilityNotFound: If no capability has this name
        """
        result = self.lookup(name)
        if isinstance(result, NotFound):
            raise CapabilityNotFound(name)
        return result.capability

    def describe(self, name: str) -> CapabilityDescriptor:
        result = self.lookup(name)
        if isinstance(result, NotFound):
            raise CapabilityNotFound(name)
        return result.descriptor

    def by_category(self) -> dict[str, list[str]]:
        categories: dict[str, list[str]] = {}
        for descriptor in self.list():
            categories.setdefault(descriptor.category, []).append(descriptor.name)
        return categories

    def search(self, query: str) -> list[CapabilityDescriptor]:
        """Descriptors whose name or description contains ``query`` (case-insensitive)."""
        needle = query.lower()
        return [
            d for d in self.list() if needle in d.name.lower() or needle in d.description.lower()
        ]

    async def invoke(
        self,
        name: str,
        params: dict[str, Any] | None,
        timeout: float | None = None,
    ) -> ExecutionResult:
        """
        Validate and invoke a capability.

        Args:
            name: Capability name
            params: Parameters object; validated against the declared schema
            timeout: Optional deadline in seconds for the implementation

        Returns:
            Normalized ExecutionResult. Implementation errors, timeouts and
            contract violations come back as failures, never as exceptions.

        Raises:
            CapabilityNotFound: If the name is unknown
            InvalidParameters: If params fail validation (implementation not called)
        """
        result = self.lookup(name)
        if isinstance(result, NotFound):
            raise CapabilityNotFound(name)

        params = {} if params is None else params
        violations = validate_parameters(result.descriptor.parameters_schema, params)
        if violations:
            self.logger.warning(
                "capability_parameters_invalid", capability=name, violations=violations
            )
            raise InvalidParameters(name, violations)

        start_time = time.time()
        try:
            call = result.capability.invoke(copy.deepcopy(params))
            if timeout:
                raw = await asyncio.wait_for(call, timeout=timeout)
            else:
                raw = await call
        except asyncio.TimeoutError:
            self.logger.warning("capability_invocation_timeout", capability=name, timeout=timeout)
            return ExecutionResult.failure(
                f"Capability '{name}' timed out after {timeout}s",
                error_type="TimeoutError",
            )
        except Exception as e:
            self.logger.error(
                "capability_invocation_failed",
                capability=name,
                error=str(e),
                error_type=type(e).__name__,
            )
            return ExecutionResult.failure(str(e), error_type=type(e).__name__)

        normalized = ExecutionResult.from_raw(raw)
        self.logger.info(
            "capability_invoked",
            capability=name,
            success=normalized.success,
            latency_ms=int((time.time() - start_time) * 1000),
        )
        return normalized

    # Defined last: the method name shadows the builtin inside the class body.
    def list(self) -> list[CapabilityDescriptor]:
        """All descriptors, in registration order."""
        return [entry.descriptor for entry in self._entries.values()]
