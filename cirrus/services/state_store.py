"""State checkpoints — where ``state.save()`` lands.

The lifecycle controller checkpoints a resource before and after every
mutating step, so an interrupted run still knows which remote objects it
may have created.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models.action_log import ActionLog
from ..models.state import ResourceState
from ..providers.base import DeclaredResource, LifecycleState
from .registry import ResourceRegistry

logger = logging.getLogger(__name__)


class StateStore(ABC):
    """Checkpoint interface used by ``ResourceController``."""

    @abstractmethod
    def save(self, resource: DeclaredResource) -> None:
        ...

    @abstractmethod
    def load(self, kind: str, name: str) -> Optional[DeclaredResource]:
        ...

    @abstractmethod
    def remove(self, kind: str, name: str) -> None:
        ...

    @abstractmethod
    def list(self, kind: Optional[str] = None) -> list[DeclaredResource]:
        ...

    def record(self, kind: str, name: str, action: str, status: str,
               details: Optional[dict[str, Any]] = None) -> None:
        """Audit one lifecycle action. Stores without an audit trail ignore it."""


class SqlStateStore(StateStore):
    """``ResourceState`` rows in a SQLAlchemy session; every save commits."""

    def __init__(self, session: Session, registry: ResourceRegistry):
        self.session = session
        self.registry = registry

    def _row(self, kind: str, name: str) -> Optional[ResourceState]:
        return self.session.scalars(
            select(ResourceState).where(ResourceState.kind == kind, ResourceState.name == name)
        ).first()

    def save(self, resource: DeclaredResource) -> None:
        row = self._row(resource.kind, resource.name)
        if row is None:
            row = ResourceState(kind=resource.kind, name=resource.name)
            self.session.add(row)
        row.location = resource.location or "global"
        row.lifecycle_state = resource.state.value
        row.declared = resource.model.model_dump(by_alias=True, mode="json", exclude_none=True)
        row.self_link = getattr(resource.model, "self_link", None) or ""
        self.session.commit()
        logger.debug("Checkpointed %s as %s", resource, resource.state.value)

    def load(self, kind: str, name: str) -> Optional[DeclaredResource]:
        row = self._row(kind, name)
        if row is None:
            return None
        return self._to_resource(row)

    def remove(self, kind: str, name: str) -> None:
        row = self._row(kind, name)
        if row is not None:
            self.session.delete(row)
            self.session.commit()

    def list(self, kind: Optional[str] = None) -> list[DeclaredResource]:
        q = select(ResourceState).order_by(ResourceState.kind, ResourceState.name)
        if kind:
            q = q.where(ResourceState.kind == kind)
        return [self._to_resource(row) for row in self.session.scalars(q)]

    def record(self, kind: str, name: str, action: str, status: str,
               details: Optional[dict[str, Any]] = None) -> None:
        self.session.add(ActionLog(
            kind=kind,
            resource_name=name,
            action_type=action,
            status=status,
            details=details or {},
        ))
        self.session.commit()

    def actions(self, kind: Optional[str] = None, name: Optional[str] = None) -> list[ActionLog]:
        q = select(ActionLog).order_by(ActionLog.created_at)
        if kind:
            q = q.where(ActionLog.kind == kind)
        if name:
            q = q.where(ActionLog.resource_name == name)
        return list(self.session.scalars(q))

    def _to_resource(self, row: ResourceState) -> DeclaredResource:
        model = self.registry.model_for(row.kind).model_validate(row.declared)
        location = "" if row.location == "global" else row.location
        return DeclaredResource(
            kind=row.kind,
            model=model,
            state=LifecycleState(row.lifecycle_state),
            location=location,
        )
