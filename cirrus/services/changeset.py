"""Change set calculator — from a changed-field set to the minimal mutations.

``build_patch`` turns the engine's changed field names into a partial wire
object holding only patchable fields, or None when nothing patchable
changed (callers then skip the network call). Constraints that compare
against the current state (sizes only grow, sub-resources cannot be unset)
are checked first, over every changed field, before any call is made.

List fields with dedicated add/remove endpoints go through
``member_changes`` / ``apply_member_changes`` instead of being re-sent.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Iterable, Optional, Sequence

from ..errors import FieldError, ValidationError
from ..providers.base import DeclaredModel, WireAdapter, is_set
from .references import COMPUTE_BASE_URL, extract_name
from .validation import Rule, run_rules

if TYPE_CHECKING:
    from ..providers.gcp.context import ComputeContext

logger = logging.getLogger(__name__)


class NonDecreasing(Rule):
    """A numeric field may only grow once the resource exists."""

    def __init__(self, name: str, label: str = ""):
        self.name = name
        self.label = label or f"'{name}'"
        self.fields = frozenset((name,))

    def __call__(self, model, current=None):
        if current is None:
            return []
        new, old = model.value_of(self.name), current.value_of(self.name)
        if new is not None and old is not None and new < old:
            return [FieldError(
                self.name,
                f"{self.label} cannot be decreased once set. Current {self.name}: {old}, requested: {new}.",
            )]
        return []


class CannotUnset(Rule):
    """Once set on the resource, a field cannot be removed again."""

    def __init__(self, name: str):
        self.name = name
        self.fields = frozenset((name,))

    def __call__(self, model, current=None):
        if current is None:
            return []
        if is_set(current.value_of(self.name)) and not is_set(model.value_of(self.name)):
            return [FieldError(self.name, f"'{self.name}' cannot be unset once set.")]
        return []


@dataclass(frozen=True)
class ChangeSetCalculator:
    patchable: frozenset[str]
    rules: tuple = ()

    def check(
        self,
        model: DeclaredModel,
        changed: Iterable[str],
        current: Optional[DeclaredModel] = None,
    ) -> list[FieldError]:
        changed = set(changed)
        relevant = [rule for rule in self.rules if rule.fields & changed]
        return run_rules(relevant, model, current)

    def patch_fields(self, changed: Iterable[str]) -> frozenset[str]:
        """Changed fields sent in the patch body; unknown names are ignored."""
        return frozenset(changed) & self.patchable

    def build_patch(
        self,
        adapter: WireAdapter,
        model: DeclaredModel,
        ctx: "ComputeContext",
        changed: Iterable[str],
        current: Optional[DeclaredModel] = None,
        kind: str = "",
    ) -> Any:
        changed = frozenset(changed)
        errors = self.check(model, changed, current)
        if errors:
            raise ValidationError(errors, kind=kind, name=getattr(model, "name", ""))
        fields = self.patch_fields(changed)
        if not fields:
            return None
        logger.debug("Patching %s on %s '%s'", sorted(fields), kind, getattr(model, "name", ""))
        return adapter.to_wire(model, ctx, fields)


# ---------------------------------------------------------------------------
# Element-level list sync
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MemberChanges:
    add: list = field(default_factory=list)
    remove: list = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.add or self.remove)


def member_changes(old: Optional[Sequence[Any]], new: Optional[Sequence[Any]]) -> MemberChanges:
    """Symmetric difference of two declared lists, keeping declaration order.

    An element whose value changed shows up in both lists: removed as the
    old value, added as the new one.
    """
    old, new = list(old or ()), list(new or ())
    return MemberChanges(
        add=[item for item in new if item not in old],
        remove=[item for item in old if item not in new],
    )


def apply_member_changes(
    changes: MemberChanges,
    add: Callable[[list], None],
    remove: Callable[[list], None],
    add_first: bool = False,
) -> None:
    """Invoke the remove and add endpoints for ``changes``.

    Removal runs first unless ``add_first`` is set, which is for lists where
    an intermediate state without the element would cut availability.
    """
    steps = [(remove, changes.remove), (add, changes.add)]
    if add_first:
        steps.reverse()
    for call, items in steps:
        if items:
            call(items)


# ---------------------------------------------------------------------------
# Top-level diff
# ---------------------------------------------------------------------------


def _same(old: Any, new: Any) -> bool:
    if isinstance(old, dict) and isinstance(new, dict):
        return old.keys() == new.keys() and all(_same(old[k], new[k]) for k in old)
    if isinstance(old, list) and isinstance(new, list):
        return len(old) == len(new) and all(_same(a, b) for a, b in zip(old, new))
    if isinstance(old, str) and isinstance(new, str) and old != new:
        # a bare name matches the self-link it resolves to
        if old.startswith(COMPUTE_BASE_URL) and "/" not in new:
            return extract_name(old) == new
        if new.startswith(COMPUTE_BASE_URL) and "/" not in old:
            return extract_name(new) == old
    return old == new


def diff_fields(current: DeclaredModel, desired: DeclaredModel) -> set[str]:
    """Declared (non-output) field names whose configured values differ.

    References declared by bare name compare equal to the stored self-link.
    """
    old, new = current.configured(), desired.configured()
    return {name for name in set(old) | set(new) if not _same(old.get(name), new.get(name))}
