"""Declarative model base, wire adapter interface and the resource-kind descriptor.

A resource kind is a table row, not a class hierarchy: ``ResourceKind``
bundles the declarative model, the wire adapter, the scope strategy, the API
call conventions, the validation rules and any extra lifecycle steps.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Annotated, Any, Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, PlainValidator

from ..services.references import RefKind, ResourceRef, coerce_reference

if TYPE_CHECKING:
    from ..services.changeset import ChangeSetCalculator
    from ..services.lifecycle import LifecycleStep
    from ..services.resilience import NotReadyPolicy
    from .gcp.context import ComputeContext
    from .gcp.scope import ComputeApi, Scope

NAME_PATTERN = r"^[a-z](?:[-a-z0-9]{0,61}[a-z0-9])?$"


def to_kebab(name: str) -> str:
    return name.replace("_", "-")


def updatable(*args: Any, **kwargs: Any) -> Any:
    """A field that can change in place on an existing resource."""
    return Field(*args, json_schema_extra={"updatable": True}, **kwargs)


def output(**kwargs: Any) -> Any:
    """A field populated only from the remote object."""
    return Field(None, json_schema_extra={"output": True}, **kwargs)


def Ref(kind: RefKind) -> Any:
    """Annotated type for a field holding a reference to another resource."""
    return Annotated[
        ResourceRef,
        PlainValidator(lambda value: coerce_reference(value, kind)),
        PlainSerializer(str, return_type=str),
    ]


def is_set(value: Any) -> bool:
    """True unless the value is None or an empty string, list or mapping."""
    if value is None:
        return False
    if isinstance(value, (str, list, tuple, dict, set, frozenset)):
        return len(value) > 0
    return True


def _field_flag(info: Any, flag: str) -> bool:
    extra = info.json_schema_extra
    return isinstance(extra, dict) and bool(extra.get(flag))


class DeclaredModel(BaseModel):
    """Base for declarative models and their sub-resources.

    Python attributes are snake_case; configuration keys are kebab-case.
    ``model_fields_set`` records which fields were explicitly configured, so
    defaults live here and are applied on read.
    """

    model_config = ConfigDict(
        alias_generator=to_kebab,
        populate_by_name=True,
        validate_assignment=True,
        extra="forbid",
    )

    @classmethod
    def attribute_for(cls, declared: str) -> Optional[str]:
        for attr, info in cls.model_fields.items():
            if (info.alias or attr) == declared or attr == declared:
                return attr
        return None

    @classmethod
    def declared_names(cls) -> list[str]:
        return [info.alias or attr for attr, info in cls.model_fields.items()]

    @classmethod
    def updatable_fields(cls) -> frozenset[str]:
        return frozenset(
            info.alias or attr
            for attr, info in cls.model_fields.items()
            if _field_flag(info, "updatable")
        )

    @classmethod
    def output_fields(cls) -> frozenset[str]:
        return frozenset(
            info.alias or attr
            for attr, info in cls.model_fields.items()
            if _field_flag(info, "output")
        )

    def value_of(self, declared: str) -> Any:
        attr = self.attribute_for(declared)
        if attr is None:
            raise KeyError(f"{type(self).__name__} has no field '{declared}'")
        return getattr(self, attr)

    def configured(self) -> dict[str, Any]:
        """Declared (non-output) values in configuration form."""
        outputs = {self.attribute_for(name) for name in self.output_fields()}
        return self.model_dump(by_alias=True, mode="json", exclude_none=True, exclude=outputs)

    def carry_outputs(self, other: "DeclaredModel") -> None:
        """Copy output-only values from ``other``, which describes the same resource."""
        for name in self.output_fields():
            attr = self.attribute_for(name)
            setattr(self, attr, getattr(other, attr))


class NamedModel(DeclaredModel):
    """Models identified by a compute resource name."""

    name: str = Field(..., pattern=NAME_PATTERN)
    description: Optional[str] = None


# ---------------------------------------------------------------------------
# Wire access
# ---------------------------------------------------------------------------


def has_field(wire: Any, name: str) -> bool:
    """Presence test for a wire field.

    Unset and explicitly-zero are different states: optional scalars and
    messages report presence, repeated and map fields report non-emptiness.
    """
    return name in wire


def wire_value(wire: Any, name: str, default: Any = None) -> Any:
    return getattr(wire, name) if has_field(wire, name) else default


def wanted(declared: str, changed: Optional[Iterable[str]]) -> bool:
    """Whether ``to_wire`` should emit a field: always on create, else when changed."""
    return changed is None or declared in changed


class WireAdapter(ABC):
    """Bidirectional converter between a wire object and a declarative model.

    Adapters do no I/O and never raise for missing optional wire fields.
    """

    @abstractmethod
    def copy_from(self, model: DeclaredModel, wire: Any) -> None:
        """Populate ``model`` from ``wire``; unset wire fields clear the model field."""

    @abstractmethod
    def to_wire(
        self,
        model: DeclaredModel,
        ctx: "ComputeContext",
        changed: Optional[frozenset[str]] = None,
    ) -> Any:
        """Full object when ``changed`` is None, otherwise only the named fields."""


# ---------------------------------------------------------------------------
# Declared resources and kind descriptors
# ---------------------------------------------------------------------------


class LifecycleState(str, Enum):
    ABSENT = "absent"
    CREATING = "creating"
    PRESENT = "present"
    UPDATING = "updating"
    DELETING = "deleting"
    REFRESHING = "refreshing"
    # a mutation failed after the remote object may have been created
    TAINTED = "tainted"


@dataclass
class DeclaredResource:
    kind: str
    model: DeclaredModel
    state: LifecycleState = LifecycleState.ABSENT
    location: str = ""

    @property
    def name(self) -> str:
        return self.model.name

    def __str__(self) -> str:
        return f"{self.kind} '{self.name}'"


@dataclass(frozen=True)
class ResourceKind:
    name: str
    model: type[DeclaredModel]
    adapter: WireAdapter
    scope: "Scope"
    api: "ComputeApi"
    rules: tuple = ()
    change_rules: tuple = ()
    post_create: tuple["LifecycleStep", ...] = ()
    update_steps: tuple["LifecycleStep", ...] = ()
    refresh_steps: tuple["LifecycleStep", ...] = ()
    pre_delete: tuple["LifecycleStep", ...] = ()
    create_retry: Optional["NotReadyPolicy"] = None
    read_retry: Optional["NotReadyPolicy"] = None
    timeout: Optional[float] = None
    patchable: Optional[frozenset[str]] = None
    description: str = field(default="", compare=False)

    @property
    def patchable_fields(self) -> frozenset[str]:
        """Fields sent through the generic patch call.

        Defaults to the updatable fields not claimed by a dedicated update step.
        """
        if self.patchable is not None:
            return self.patchable
        if self.api.patch_method is None:
            return frozenset()
        claimed = set()
        for step in self.update_steps:
            if step.exclusive:
                claimed |= step.fields
        return self.model.updatable_fields() - claimed

    @property
    def calculator(self) -> "ChangeSetCalculator":
        from ..services.changeset import ChangeSetCalculator

        return ChangeSetCalculator(self.patchable_fields, self.change_rules)

    def blank(self) -> DeclaredModel:
        """An unvalidated model for filling from a wire object."""
        return self.model.model_construct()
