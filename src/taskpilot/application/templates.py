"""
Goal templates.

Named, parameterized goals configured per profile, e.g.::

    templates:
      monthly-close:
        description: Month-end close
        goal: "Execute the monthly close process for {scope}"
        defaults:
          scope: all accounts

Placeholders use ``str.format`` syntax. Caller parameters override defaults.
"""

import string
from dataclasses import dataclass, field
from typing import Any

from taskpilot.core.domain.errors import InvalidParameters, TemplateNotFound


@dataclass(frozen=True)
class GoalTemplate:
    name: str
    goal: str
    description: str = ""
    defaults: dict[str, Any] = field(default_factory=dict)

    @property
    def placeholders(self) -> list[str]:
        return [
            name
            for _, name, _, _ in string.Formatter().parse(self.goal)
            if name
        ]

    def render(self, parameters: dict[str, Any] | None = None) -> str:
        """
        Raises:
            InvalidParameters: If a placeholder has neither a parameter nor a default
        """
        values = {**self.defaults, **(parameters or {})}
        missing = [p for p in self.placeholders if p not in values]
        if missing:
            raise InvalidParameters(
                f"template:{self.name}",
                [f"missing template parameter '{p}'" for p in missing],
            )
        return self.goal.format(**values)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "goal": self.goal,
            "parameters": self.placeholders,
            "defaults": dict(self.defaults),
        }


class TemplateCatalog:
    def __init__(self, templates: list[GoalTemplate] | None = None):
        self._templates = {t.name: t for t in templates or []}

    @classmethod
    def from_config(cls, config: dict[str, Any] | None) -> "TemplateCatalog":
        templates = []
        for name, spec in (config or {}).items():
            if isinstance(spec, str):
                spec = {"goal": spec}
            templates.append(
                GoalTemplate(
                    name=name,
                    goal=spec["goal"],
                    description=spec.get("description", ""),
                    defaults=spec.get("defaults") or {},
                )
            )
        return cls(templates)

    def get(self, name: str) -> GoalTemplate:
        template = self._templates.get(name)
        if template is None:
            raise TemplateNotFound(name, available=sorted(self._templates))
        return template

    def names(self) -> list[str]:
        return sorted(self._templates)

    def all(self) -> list[GoalTemplate]:
        return [self._templates[name] for name in self.names()]
