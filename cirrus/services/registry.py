"""Kind registry — maps a resource-kind name to its descriptor.

Adding a resource kind means adding a row here, not a new class.
"""

from __future__ import annotations

from typing import Any, Optional

from ..providers.base import DeclaredModel, DeclaredResource, ResourceKind


class ResourceRegistry:
    """Central registry mapping kind name → ``ResourceKind``."""

    def __init__(self) -> None:
        self._kinds: dict[str, ResourceKind] = {}

    # -- Registration --------------------------------------------------------

    def register(self, kind: ResourceKind) -> None:
        if kind.name in self._kinds:
            raise ValueError(f"Kind '{kind.name}' is already registered")
        self._kinds[kind.name] = kind

    @property
    def kinds(self) -> list[str]:
        return sorted(self._kinds)

    def __contains__(self, name: str) -> bool:
        return name in self._kinds

    # -- Lookup --------------------------------------------------------------

    def get(self, name: str) -> ResourceKind:
        kind = self._kinds.get(name)
        if kind is None:
            raise KeyError(f"No kind registered as '{name}'. Supported: {self.kinds}")
        return kind

    def model_for(self, name: str) -> type[DeclaredModel]:
        return self.get(name).model

    def declare(self, name: str, fields: dict[str, Any], location: Optional[str] = None) -> DeclaredResource:
        """Build a validated ``DeclaredResource`` from configuration values."""
        model = self.model_for(name).model_validate(fields)
        return DeclaredResource(kind=name, model=model, location=location or "")


def default_registry() -> ResourceRegistry:
    """A registry holding every built-in compute kind."""
    from ..providers.gcp.kinds import register_compute_kinds

    reg = ResourceRegistry()
    register_compute_kinds(reg)
    return reg
