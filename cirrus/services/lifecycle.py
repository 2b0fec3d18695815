"""Resource lifecycle controller — refresh, create, update, delete, validate.

Per resource instance::

    absent -> creating -> present -> updating -> present ... -> deleting -> absent
    present -> refreshing -> present | absent

One controller serves every kind: the ``ResourceKind`` descriptor supplies
the adapter, scope, API conventions, rules and extra steps. Validation runs
before any mutating call. Failed mutations refresh the model before the
error propagates, so it reflects the best-known remote state.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Iterable, Optional

from ..common import TransactionLog
from ..errors import (
    CirrusError,
    FieldError,
    OperationFailure,
    ValidationError,
    attempt,
)
from ..providers.base import DeclaredModel, DeclaredResource, LifecycleState, ResourceKind
from .operations import OperationHandle, OperationPoller
from .resilience import NotReadyPolicy, resubmit_while_not_ready
from .validation import run_rules

if TYPE_CHECKING:
    from ..providers.gcp.context import ComputeContext
    from .state_store import StateStore

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = frozenset({"RESOURCE_NOT_FOUND", "NOT_FOUND"})


@dataclass(frozen=True)
class LifecycleStep:
    """An extra submit+await step of a kind.

    ``fields`` are the changed fields that trigger the step on update; post
    create, pre delete and refresh steps leave it empty. ``before_patch``
    steps run ahead of the generic patch call. Fields of an ``exclusive``
    step are left out of the patch body.
    """

    name: str
    run: Callable[["StepContext"], None]
    fields: frozenset[str] = frozenset()
    before_patch: bool = False
    exclusive: bool = True

    def triggered_by(self, changed: Iterable[str]) -> bool:
        return bool(self.fields & frozenset(changed))


@dataclass
class StepContext:
    """What a lifecycle step sees: the model, the acquired client and the poller."""

    ctx: "ComputeContext"
    kind: ResourceKind
    model: DeclaredModel
    client: Any
    request: dict[str, Any]
    poller: OperationPoller
    timeout: float
    current: Optional[DeclaredModel] = None
    changed: frozenset[str] = frozenset()
    wire: Any = None
    cancel: Optional[threading.Event] = None
    sleep: Callable[[float], None] = time.sleep

    @property
    def name(self) -> str:
        return self.model.name

    @property
    def project(self) -> str:
        return self.ctx.project_id

    @property
    def location(self) -> str:
        return self.kind.scope.location(self.ctx, self.model)

    def call(self, method: str, retry_not_ready: bool = False, dependency: str = "",
             **kwargs: Any) -> Optional[OperationHandle]:
        """Invoke ``client.<method>(**request, **kwargs)`` and wait for its operation."""
        fn = getattr(self.client, method)

        def once():
            return self.poller.run(
                lambda: fn(**self.request, **kwargs),
                timeout=self.timeout,
                dependency=dependency,
                cancel=self.cancel,
            )

        if retry_not_ready:
            return resubmit_while_not_ready(
                once, self.ctx.not_ready_attempts, self.ctx.not_ready_delay,
                dependency=dependency, sleep=self.sleep,
            )
        return once()

    def read(self, method: str, **kwargs: Any) -> Any:
        """Invoke a read-only ``client.<method>``; errors raise, nothing is awaited."""
        fn = getattr(self.client, method)
        return attempt(lambda: fn(**self.request, **kwargs), reading=True).unwrap()


class _NoJournal:
    def step(self, step_id: str, description: str) -> None:
        pass

    def finalize(self, status: str = "success", message: str = "") -> None:
        pass


class ResourceController:
    """Runs lifecycle operations for one resource kind within one context.

    Controllers keep no state between calls; every refresh is a fresh fetch.
    """

    def __init__(
        self,
        kind: ResourceKind,
        ctx: "ComputeContext",
        store: Optional["StateStore"] = None,
        poller: Optional[OperationPoller] = None,
        cancel: Optional[threading.Event] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.kind = kind
        self.ctx = ctx
        self.store = store
        self.poller = poller or OperationPoller(ctx, sleep=sleep)
        self.cancel = cancel
        self._sleep = sleep
        self.timeout = ctx.timeout_for(kind.name, kind.timeout)

    # -- Validation ----------------------------------------------------------

    def validate(self, model: DeclaredModel) -> list[FieldError]:
        return self.kind.scope.check(self.ctx, model) + run_rules(self.kind.rules, model)

    def _ensure_valid(self, resource: DeclaredResource) -> None:
        errors = self.validate(resource.model)
        if errors:
            raise ValidationError(errors, kind=self.kind.name, name=resource.name)

    # -- Refresh -------------------------------------------------------------

    def refresh(self, resource: DeclaredResource) -> bool:
        """Re-read the remote object into the model. Returns False when it is gone."""
        resource.state = LifecycleState.REFRESHING
        resource.location = self.kind.scope.location(self.ctx, resource.model)
        with self.ctx.client(self.kind.api.client) as client:
            found = self._fetch_into(resource.model, client)
        resource.state = LifecycleState.PRESENT if found else LifecycleState.ABSENT
        if found:
            self._checkpoint(resource)
        else:
            logger.info("%s no longer exists remotely", resource)
            self._forget(resource)
        return found

    def _fetch_into(self, model: DeclaredModel, client: Any) -> bool:
        policy = self.kind.read_retry
        if policy is not None and policy.applies(model):
            return self._with_policy(policy, model, lambda: self._fetch_once(model, client))
        return self._fetch_once(model, client)

    def _fetch_once(self, model: DeclaredModel, client: Any) -> bool:
        request = self.kind.scope.request(self.ctx, model)
        outcome = attempt(lambda: self.kind.api.get(client, request, model.name), reading=True)
        if outcome.not_found:
            return False
        wire = outcome.unwrap()
        self.kind.adapter.copy_from(model, wire)
        for step in self.kind.refresh_steps:
            step.run(self._step_context(model, client, wire=wire))
        return True

    # -- Create --------------------------------------------------------------

    def create(self, resource: DeclaredResource) -> None:
        model = resource.model
        self._ensure_valid(resource)
        resource.location = self.kind.scope.bind(self.ctx, model)
        resource.state = LifecycleState.CREATING
        self._checkpoint(resource)
        journal = self._journal("create", resource)

        with self.ctx.client(self.kind.api.client) as client:
            try:
                journal.step("insert", f"Insert {resource}")
                request = self.kind.scope.request(self.ctx, model)
                wire = self.kind.adapter.to_wire(model, self.ctx)
                self._submit_insert(client, request, wire, model)

                for step in self.kind.post_create:
                    # a crash past this point must leave the created object on record
                    self._checkpoint(resource)
                    journal.step(step.name, f"Post-create step {step.name}")
                    step.run(self._step_context(model, client))

                journal.step("refresh", f"Refresh {resource}")
                found = self._fetch_into(model, client)
            except CirrusError as exc:
                self._after_failure(resource, client, exc, creating=True)
                journal.finalize("failed", str(exc))
                self._record(resource, "create", "failed", {"error": str(exc)})
                raise

        resource.state = LifecycleState.PRESENT if found else LifecycleState.ABSENT
        self._checkpoint(resource)
        journal.finalize("success")
        self._record(resource, "create", "success")
        logger.info("Created %s", resource)

    def _submit_insert(self, client: Any, request: dict[str, Any], wire: Any, model: DeclaredModel) -> None:
        policy = self.kind.create_retry
        dependency = policy.dependency(model) if policy else ""

        def once():
            return self.poller.run(
                lambda: self.kind.api.insert(client, request, wire),
                timeout=self.timeout,
                dependency=dependency,
                cancel=self.cancel,
            )

        if policy is not None and policy.applies(model):
            self._with_policy(policy, model, once)
        else:
            once()

    def _with_policy(self, policy: NotReadyPolicy, model: DeclaredModel, fn: Callable[[], Any]) -> Any:
        return resubmit_while_not_ready(
            fn,
            self.ctx.not_ready_attempts if policy.attempts is None else policy.attempts,
            self.ctx.not_ready_delay if policy.delay is None else policy.delay,
            dependency=policy.dependency(model),
            sleep=self._sleep,
        )

    # -- Update --------------------------------------------------------------

    def update(
        self,
        resource: DeclaredResource,
        current: Optional[DeclaredModel],
        changed: Iterable[str],
    ) -> bool:
        """Apply in place the changes named in ``changed``.

        ``current`` is the last known state. Returns False, without any
        network call, when no patchable field or update step is affected.
        """
        model = resource.model
        changed = frozenset(changed)
        self._ensure_valid(resource)
        resource.location = self.kind.scope.bind(self.ctx, model)
        if current is not None:
            model.carry_outputs(current)

        patch = self.kind.calculator.build_patch(
            self.kind.adapter, model, self.ctx, changed, current, kind=self.kind.name,
        )
        steps = [s for s in self.kind.update_steps if s.triggered_by(changed)]
        if patch is None and not steps:
            logger.debug("No in-place changes for %s in %s", resource, sorted(changed))
            return False

        resource.state = LifecycleState.UPDATING
        self._checkpoint(resource)
        journal = self._journal("update", resource)

        with self.ctx.client(self.kind.api.client) as client:
            try:
                step_ctx = self._step_context(model, client, current=current, changed=changed)
                for step in (s for s in steps if s.before_patch):
                    journal.step(step.name, f"Update step {step.name}")
                    step.run(step_ctx)

                if patch is not None:
                    journal.step("patch", f"Patch {resource}")
                    request = self.kind.scope.request(self.ctx, model)
                    self.poller.run(
                        lambda: self.kind.api.patch(client, request, model.name, patch),
                        timeout=self.timeout,
                        cancel=self.cancel,
                    )

                for step in (s for s in steps if not s.before_patch):
                    journal.step(step.name, f"Update step {step.name}")
                    step.run(step_ctx)

                journal.step("refresh", f"Refresh {resource}")
                found = self._fetch_into(model, client)
            except CirrusError as exc:
                self._after_failure(resource, client, exc, creating=False)
                journal.finalize("failed", str(exc))
                self._record(resource, "update", "failed", {"error": str(exc), "changed": sorted(changed)})
                raise

        resource.state = LifecycleState.PRESENT if found else LifecycleState.ABSENT
        self._checkpoint(resource)
        journal.finalize("success")
        self._record(resource, "update", "success", {"changed": sorted(changed)})
        logger.info("Updated %s (%s)", resource, ", ".join(sorted(changed)))
        return True

    # -- Delete --------------------------------------------------------------

    def delete(self, resource: DeclaredResource) -> None:
        """Delete the remote object; an object that is already gone counts as deleted."""
        model = resource.model
        resource.state = LifecycleState.DELETING
        self._checkpoint(resource)

        with self.ctx.client(self.kind.api.client) as client:
            try:
                for step in self.kind.pre_delete:
                    step.run(self._step_context(model, client))
                self._submit_delete(client, model)
            except CirrusError as exc:
                self._after_failure(resource, client, exc, creating=False)
                self._record(resource, "delete", "failed", {"error": str(exc)})
                raise

        resource.state = LifecycleState.ABSENT
        self._forget(resource)
        self._record(resource, "delete", "success")
        logger.info("Deleted %s", resource)

    def _submit_delete(self, client: Any, model: DeclaredModel) -> None:
        request = self.kind.scope.request(self.ctx, model)
        outcome = attempt(lambda: self.kind.api.delete(client, request, model.name))
        if outcome.not_found:
            logger.info("%s '%s' was already gone", self.kind.name, model.name)
            return
        op = outcome.unwrap()
        if op is None:
            return
        handle = self.poller.track(op)
        errors = self.poller.await_completion(handle, timeout=self.timeout, cancel=self.cancel)
        if errors and all(e.code in NOT_FOUND_CODES for e in errors):
            logger.info("%s '%s' was already gone", self.kind.name, model.name)
        elif errors:
            raise OperationFailure(errors, operation=handle.name)

    # -- Helpers -------------------------------------------------------------

    def _step_context(self, model: DeclaredModel, client: Any, **kwargs: Any) -> StepContext:
        return StepContext(
            ctx=self.ctx,
            kind=self.kind,
            model=model,
            client=client,
            request=self.kind.scope.request(self.ctx, model),
            poller=self.poller,
            timeout=self.timeout,
            cancel=self.cancel,
            sleep=self._sleep,
            **kwargs,
        )

    def _after_failure(self, resource: DeclaredResource, client: Any, exc: Exception, creating: bool) -> None:
        """Refresh after a failed mutation; the original error is re-raised by the caller."""
        logger.error("%s failed: %s", resource, exc)
        try:
            found: Optional[bool] = self._fetch_into(resource.model, client)
        except CirrusError as refresh_exc:
            logger.warning("Refresh of %s after failure also failed: %s", resource, refresh_exc)
            found = None

        if found is None or (creating and found):
            resource.state = LifecycleState.TAINTED
        elif found:
            resource.state = LifecycleState.PRESENT
        else:
            resource.state = LifecycleState.ABSENT
        self._checkpoint(resource)

    def _journal(self, action: str, resource: DeclaredResource):
        if self.ctx.log_dir is None:
            return _NoJournal()
        return TransactionLog(f"{self.kind.name}-{resource.name}-{action}", self.ctx.log_dir)

    def _checkpoint(self, resource: DeclaredResource) -> None:
        if self.store is not None:
            self.store.save(resource)

    def _forget(self, resource: DeclaredResource) -> None:
        if self.store is not None:
            self.store.remove(resource.kind, resource.name)

    def _record(self, resource: DeclaredResource, action: str, status: str,
                details: Optional[dict[str, Any]] = None) -> None:
        if self.store is not None:
            self.store.record(resource.kind, resource.name, action, status, details or {})
