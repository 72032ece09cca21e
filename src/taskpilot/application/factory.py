"""
Application Layer - Engine Factory

Wires a complete engine from a YAML configuration profile:

- completion service (LiteLLM) and planner
- capability registry populated from the profile's ``capabilities`` list,
  then sealed
- execution loop, session registry (with retention policy and optional
  session archive) and goal templates

Profile layout (``configs/{profile}.yaml``)::

    llm:
      config_path: configs/llm_config.yaml
    loop:
      max_iterations: 10
      max_consecutive_planner_failures: 3
    retention:
      max_terminal_sessions: 1000
      terminal_ttl_seconds: 3600
    persistence:
      type: file            # or "none"
      work_dir: .taskpilot
    capabilities:
      - type: FileReadCapability
        module: taskpilot.infrastructure.capabilities.file_capabilities
        params: {root_dir: ./workspace}
    templates:
      monthly-close: "Execute the monthly close process for {scope}"
"""

import importlib
from pathlib import Path
from typing import Any, Optional

import structlog
import yaml

from taskpilot.application.executor import GoalExecutor
from taskpilot.application.session_registry import RetentionPolicy, SessionRegistry
from taskpilot.application.templates import TemplateCatalog
from taskpilot.core.domain.capabilities import Capability, CapabilityRegistry
from taskpilot.core.domain.execution_loop import ExecutionLoop
from taskpilot.core.domain.models import LoopSettings
from taskpilot.core.domain.planner import CompletionPlanner
from taskpilot.core.interfaces.llm import LLMProviderProtocol
from taskpilot.core.interfaces.sessions import SessionStoreProtocol

DEFAULT_CAPABILITIES = [
    {
        "type": "FileReadCapability",
        "module": "taskpilot.infrastructure.capabilities.file_capabilities",
    },
    {
        "type": "FileWriteCapability",
        "module": "taskpilot.infrastructure.capabilities.file_capabilities",
    },
    {
        "type": "WebFetchCapability",
        "module": "taskpilot.infrastructure.capabilities.web_capabilities",
    },
]


class EngineFactory:
    """
    Factory for creating a wired GoalExecutor from a configuration profile.

    Every collaborator can be overridden (``llm_provider``, ``capabilities``)
    so tests and embedders can swap infrastructure without touching YAML.
    """

    def __init__(self, config_dir: str = "configs"):
        self.config_dir = Path(config_dir)
        self.logger = structlog.get_logger().bind(component="engine_factory")

    def create_executor(
        self,
        profile: str = "dev",
        llm_provider: Optional[LLMProviderProtocol] = None,
        capabilities: Optional[list[Capability]] = None,
        work_dir: Optional[str] = None,
    ) -> GoalExecutor:
        """
        Create a fully wired executor.

        Args:
            profile: Configuration profile name (``configs/{profile}.yaml``)
            llm_provider: Completion service override
            capabilities: Capability list override (skips the profile's list)
            work_dir: Override for the session archive directory

        Raises:
            FileNotFoundError: If the profile YAML is not found
            ValueError: If the configuration is invalid
        """
        config = self._load_profile(profile)
        if work_dir:
            config.setdefault("persistence", {})["work_dir"] = work_dir

        settings = LoopSettings.from_config(config.get("loop"))
        llm_provider = llm_provider or self._create_llm_provider(config)
        registry = self._create_registry(config, capabilities)

        planner = CompletionPlanner(llm_provider, settings=settings)
        loop = ExecutionLoop(planner, registry)
        sessions = SessionRegistry(
            loop,
            default_settings=settings,
            retention=RetentionPolicy.from_config(config.get("retention")),
            session_store=self.create_session_store(config),
        )
        templates = TemplateCatalog.from_config(config.get("templates"))

        self.logger.info(
            "engine_created",
            profile=profile,
            capabilities=registry.names(),
            templates=templates.names(),
            max_iterations=settings.max_iterations,
        )
        return GoalExecutor(registry, sessions, templates)

    def load_profile(self, profile: str) -> dict[str, Any]:
        return self._load_profile(profile)

    def _load_profile(self, profile: str) -> dict[str, Any]:
        """
        Raises:
            FileNotFoundError: If profile YAML not found
        """
        profile_path = self.config_dir / f"{profile}.yaml"

        if not profile_path.exists():
            self.logger.error(
                "profile_not_found",
                profile=profile,
                path=str(profile_path),
                hint="Ensure profile YAML exists in configs directory",
            )
            raise FileNotFoundError(f"Profile not found: {profile_path}")

        with open(profile_path, encoding="utf-8") as f:
            config = yaml.safe_load(f) or {}

        self.logger.debug("profile_loaded", profile=profile, config_keys=list(config.keys()))
        return config

    def _create_llm_provider(self, config: dict[str, Any]) -> LLMProviderProtocol:
        from taskpilot.infrastructure.llm.litellm_service import LiteLLMService

        llm_config = config.get("llm", {})
        config_path = llm_config.get("config_path", str(self.config_dir / "llm_config.yaml"))
        return LiteLLMService(config_path=config_path)

    def create_session_store(self, config: dict[str, Any]) -> Optional[SessionStoreProtocol]:
        """
        Raises:
            ValueError: If the persistence type is unknown
        """
        persistence_config = config.get("persistence", {})
        persistence_type = persistence_config.get("type", "file")

        if persistence_type == "none":
            return None
        if persistence_type == "file":
            from taskpilot.infrastructure.persistence.file_session_store import FileSessionStore

            return FileSessionStore(work_dir=persistence_config.get("work_dir", ".taskpilot"))
        raise ValueError(f"Unknown persistence type: {persistence_type}")

    def create_registry(self, config: dict[str, Any]) -> CapabilityRegistry:
        return self._create_registry(config, None)

    def _create_registry(
        self,
        config: dict[str, Any],
        capabilities: Optional[list[Capability]],
    ) -> CapabilityRegistry:
        """Populate and seal the capability registry. Registration errors propagate."""
        if capabilities is None:
            specs = config.get("capabilities") or DEFAULT_CAPABILITIES
            capabilities = [self._instantiate_capability(spec) for spec in specs]

        registry = CapabilityRegistry()
        for cap in capabilities:
            registry.register(cap)
        registry.seal()
        return registry

    def _instantiate_capability(self, spec: dict[str, Any]) -> Capability:
        """
        Instantiate a capability from a ``type``/``module``/``params`` spec.

        Raises:
            ValueError: If the entry is incomplete or cannot be instantiated
        """
        cap_type = spec.get("type")
        cap_module = spec.get("module")
        cap_params = dict(spec.get("params") or {})

        if not cap_type or not cap_module:
            raise ValueError(f"Capability spec must include 'type' and 'module': {spec}")

        try:
            module = importlib.import_module(cap_module)
            cap_class = getattr(module, cap_type)
            instance = cap_class(**cap_params)
        except (ImportError, AttributeError, TypeError) as e:
            self.logger.error(
                "capability_instantiation_failed",
                capability_type=cap_type,
                capability_module=cap_module,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise ValueError(f"Cannot instantiate capability {cap_module}.{cap_type}: {e}") from e

        if not isinstance(instance, Capability):
            raise ValueError(f"{cap_module}.{cap_type} is not a Capability")

        self.logger.debug("capability_instantiated", capability_type=cap_type, name=instance.name)
        return instance
