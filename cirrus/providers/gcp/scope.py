"""Scope strategies and Compute client call conventions.

A kind's scope decides where its requests are addressed (global, one region
or one zone) and which location field of the model carries that choice.
``ComputeApi`` captures the naming convention shared by the ``compute_v1``
clients: ``get(project, [zone|region], <field>)``,
``insert_unary(..., <field>_resource)`` and so on.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Iterable, Optional

from ...errors import FieldError
from ...services.references import GLOBAL, REGIONAL, ZONAL

if TYPE_CHECKING:
    from ..base import DeclaredModel
    from .context import ComputeContext


class Scope(ABC):
    key: str = GLOBAL
    attribute: Optional[str] = None
    operations_client: str = "GlobalOperationsClient"

    @abstractmethod
    def location(self, ctx: "ComputeContext", model: "DeclaredModel") -> str:
        """Location name the model's requests are addressed to."""

    def request(self, ctx: "ComputeContext", model: "DeclaredModel") -> dict[str, Any]:
        """Project and location keyword arguments shared by every call."""
        return {"project": ctx.project_id}

    def check(self, ctx: "ComputeContext", model: "DeclaredModel") -> list[FieldError]:
        errors = []
        if not ctx.project_id:
            errors.append(FieldError(None, "No project is configured for this context"))
        return errors

    def bind(self, ctx: "ComputeContext", model: "DeclaredModel") -> str:
        """Record the effective location on the model and return it."""
        return self.location(ctx, model)


class GlobalScope(Scope):
    def location(self, ctx: "ComputeContext", model: "DeclaredModel") -> str:
        return "global"


class _LocatedScope(Scope):
    context_attribute: str = ""

    def __init__(self, attribute: Optional[str] = None):
        if attribute is not None:
            self.attribute = attribute

    def location(self, ctx: "ComputeContext", model: "DeclaredModel") -> str:
        declared = getattr(model, self.attribute, None) if self.attribute else None
        return declared or getattr(ctx, self.context_attribute)

    def request(self, ctx: "ComputeContext", model: "DeclaredModel") -> dict[str, Any]:
        request = super().request(ctx, model)
        request[self.context_attribute] = self.location(ctx, model)
        return request

    def check(self, ctx: "ComputeContext", model: "DeclaredModel") -> list[FieldError]:
        errors = super().check(ctx, model)
        if not self.location(ctx, model):
            errors.append(FieldError(
                self.attribute,
                f"'{self.attribute}' is required when no default {self.context_attribute} is configured",
            ))
        return errors

    def bind(self, ctx: "ComputeContext", model: "DeclaredModel") -> str:
        location = self.location(ctx, model)
        if self.attribute and location and getattr(model, self.attribute, None) != location:
            setattr(model, self.attribute, location)
        return location


class ZonalScope(_LocatedScope):
    key = ZONAL
    attribute = "zone"
    context_attribute = "zone"
    operations_client = "ZoneOperationsClient"


class RegionalScope(_LocatedScope):
    key = REGIONAL
    attribute = "region"
    context_attribute = "region"
    operations_client = "RegionOperationsClient"


@dataclass(frozen=True)
class ComputeApi:
    """Standard calls of one ``compute_v1`` client.

    ``field`` is the request keyword naming the resource (``disk``,
    ``backend_service``); the body keyword is ``<field>_resource``.
    """

    client: str
    field: str
    patch_method: Optional[str] = "patch_unary"

    def identity(self, name: str) -> dict[str, Any]:
        return {self.field: name}

    def get(self, client: Any, request: dict[str, Any], name: str) -> Any:
        return client.get(**request, **self.identity(name))

    def insert(self, client: Any, request: dict[str, Any], wire: Any) -> Any:
        return client.insert_unary(**request, **{f"{self.field}_resource": wire})

    def patch(self, client: Any, request: dict[str, Any], name: str, wire: Any) -> Any:
        method = getattr(client, self.patch_method)
        return method(**request, **self.identity(name), **{f"{self.field}_resource": wire})

    def delete(self, client: Any, request: dict[str, Any], name: str) -> Any:
        return client.delete_unary(**request, **self.identity(name))

    def list(self, client: Any, request: dict[str, Any], filter: str = "") -> Iterable[Any]:
        body = dict(request)
        if filter:
            body["filter"] = filter
        return client.list(request=body)
