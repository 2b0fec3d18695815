"""Find existing remote resources of a kind.

Filters use configuration names; ``convert_filters`` turns them into the
Compute list filter expression, one parenthesised term per entry::

    {"name": "web", "enable-cdn": "true"}  ->  (name = "web") (enableCdn = "true")

A ``zone`` or ``region`` filter on a located kind picks the location to
list instead of filtering on it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from ..errors import attempt
from ..providers.base import DeclaredModel, ResourceKind

if TYPE_CHECKING:
    from ..providers.gcp.context import ComputeContext

logger = logging.getLogger(__name__)


def camel_case(name: str) -> str:
    head, *rest = name.replace("_", "-").split("-")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def convert_filters(filters: Optional[dict[str, str]]) -> str:
    if not filters:
        return ""
    terms = []
    for key, value in filters.items():
        path = ".".join(camel_case(part) for part in key.split("."))
        terms.append(f'({path} = "{value}")')
    return " ".join(terms)


def find(
    kind: ResourceKind,
    ctx: "ComputeContext",
    filters: Optional[dict[str, str]] = None,
) -> list[DeclaredModel]:
    """List remote objects of ``kind`` as fresh declarative models."""
    filters = dict(filters or {})
    scoped = kind.blank()
    attribute = kind.scope.attribute
    if attribute and attribute in filters:
        setattr(scoped, attribute, filters.pop(attribute))

    request = kind.scope.request(ctx, scoped)
    expression = convert_filters(filters)
    logger.debug("Listing %s with %r", kind.name, expression)

    with ctx.client(kind.api.client) as client:
        # the pager fetches further pages while it is iterated
        wires = attempt(lambda: list(kind.api.list(client, request, expression))).unwrap()
        found = []
        for wire in wires:
            model = kind.blank()
            kind.adapter.copy_from(model, wire)
            found.append(model)
    return found
