"""Declarative validation rules.

Rules run before any mutating call. Each rule is a callable
``rule(model, current=None) -> list[FieldError]`` and exposes the declared
field names it looks at in ``fields``. The change set calculator reuses the
same protocol for rules that compare against the current state.
"""

from __future__ import annotations

from typing import Any, Callable, Iterable, Optional, Sequence

from ..errors import FieldError
from ..providers.base import DeclaredModel, is_set


def _quote(names: Sequence[str]) -> str:
    quoted = [f"'{n}'" for n in names]
    if len(quoted) <= 2:
        return " or ".join(quoted)
    return ", ".join(quoted[:-1]) + f", or {quoted[-1]}"


class Rule:
    fields: frozenset[str] = frozenset()

    def __call__(self, model: DeclaredModel, current: Optional[DeclaredModel] = None) -> list[FieldError]:
        raise NotImplementedError


class ExactlyOneOf(Rule):
    """Exactly one of several mutually exclusive fields must be set."""

    def __init__(self, *names: str, message: str = ""):
        self.names = names
        self.fields = frozenset(names)
        self.message = message

    def __call__(self, model, current=None):
        present = [n for n in self.names if is_set(model.value_of(n))]
        if len(present) == 1:
            return []
        if not present:
            return [FieldError(None, self.message or f"Either {_quote(self.names)} is required!")]
        return [FieldError(
            None,
            f"Only one of {_quote(self.names)} can be set, "
            f"but {' and '.join(repr(n) for n in present)} are set.",
        )]


class ConflictsWith(Rule):
    """``name`` cannot be set together with any of ``others``."""

    def __init__(self, name: str, *others: str):
        self.name = name
        self.others = others
        self.fields = frozenset((name, *others))

    def __call__(self, model, current=None):
        if not is_set(model.value_of(self.name)):
            return []
        return [
            FieldError(self.name, f"'{self.name}' cannot be set together with '{other}'.")
            for other in self.others
            if is_set(model.value_of(other))
        ]


class RequiredWhen(Rule):
    """``name`` must be set when ``when`` has the value ``value``."""

    def __init__(self, name: str, when: str, value: Any):
        self.name = name
        self.when = when
        self.value = value
        self.fields = frozenset((name, when))

    def __call__(self, model, current=None):
        if model.value_of(self.when) == self.value and not is_set(model.value_of(self.name)):
            return [FieldError(
                self.name,
                f"'{self.name}' needs to be set when '{self.when}' set to '{self.value}'.",
            )]
        return []


class ForbiddenWhen(Rule):
    """``name`` cannot be set when ``when`` has the value ``value``."""

    def __init__(self, name: str, when: str, value: Any):
        self.name = name
        self.when = when
        self.value = value
        self.fields = frozenset((name, when))

    def __call__(self, model, current=None):
        if model.value_of(self.when) == self.value and is_set(model.value_of(self.name)):
            return [FieldError(
                self.name,
                f"'{self.name}' cannot be set when '{self.when}' set to '{self.value}'",
            )]
        return []


class AnyRequiredWhen(Rule):
    """At least one of ``names`` is required when ``when`` has the value ``value``."""

    def __init__(self, names: Sequence[str], when: str, value: Any):
        self.names = tuple(names)
        self.when = when
        self.value = value
        self.fields = frozenset((*names, when))

    def __call__(self, model, current=None):
        if model.value_of(self.when) != self.value:
            return []
        if any(is_set(model.value_of(n)) for n in self.names):
            return []
        return [FieldError(
            None,
            f"At least one of {_quote(self.names)} is required when '{self.when}' set to '{self.value}'",
        )]


class ItemCount(Rule):
    """A list field must hold exactly ``exactly`` items, or at most ``at_most``."""

    def __init__(self, name: str, exactly: Optional[int] = None, at_most: Optional[int] = None,
                 message: str = ""):
        self.name = name
        self.exactly = exactly
        self.at_most = at_most
        self.message = message
        self.fields = frozenset((name,))

    def __call__(self, model, current=None):
        count = len(model.value_of(self.name) or ())
        if self.exactly is not None and count != self.exactly:
            return [FieldError(
                self.name,
                self.message or f"'{self.name}' must contain exactly {self.exactly} items, got {count}.",
            )]
        if self.at_most is not None and count > self.at_most:
            return [FieldError(
                self.name,
                self.message or f"'{self.name}' cannot contain more than {self.at_most} items.",
            )]
        return []


class NotLessThan(Rule):
    """``name`` cannot be smaller than ``other`` when both are set."""

    def __init__(self, name: str, other: str):
        self.name = name
        self.other = other
        self.fields = frozenset((name, other))

    def __call__(self, model, current=None):
        value, floor = model.value_of(self.name), model.value_of(self.other)
        if value is not None and floor is not None and value < floor:
            return [FieldError(self.name, f"'{self.name}' cannot be smaller than '{self.other}'")]
        return []


class Nested(Rule):
    """Apply rules to a sub-resource (or each item of a list of them).

    Field names in the errors are prefixed with the parent field.
    """

    def __init__(self, name: str, *rules: Any):
        self.name = name
        self.rules = rules
        self.fields = frozenset((name,))

    def __call__(self, model, current=None):
        value = model.value_of(self.name)
        items = value if isinstance(value, list) else [value]
        errors = []
        for item in items:
            if item is None:
                continue
            for error in run_rules(self.rules, item):
                field = f"{self.name}.{error.field}" if error.field else self.name
                errors.append(FieldError(field, error.message))
        return errors


class Check(Rule):
    """Wrap a plain function ``fn(model) -> list[FieldError]``."""

    def __init__(self, fn: Callable[[Any], list[FieldError]], *names: str):
        self.fn = fn
        self.fields = frozenset(names)

    def __call__(self, model, current=None):
        return list(self.fn(model))


def run_rules(
    rules: Iterable[Any],
    model: DeclaredModel,
    current: Optional[DeclaredModel] = None,
) -> list[FieldError]:
    errors: list[FieldError] = []
    for rule in rules:
        errors.extend(rule(model, current))
    return errors
