"""Operation poller — waits for Compute long-running operations.

Mutating calls return an ``Operation``. The poller re-fetches it through the
zone, region or global operations client (picked from the handle itself)
until it is DONE, the timeout elapses, or the caller abandons the wait::

    PENDING -> RUNNING -> DONE      error list returned (empty = success)
                       -> TIMEOUT   OperationTimeout (a TransientNotReady)
                       -> abandoned OperationAbandoned, remote op keeps going

DONE is not success: the embedded error list must be inspected. ``run``
raises ``OperationFailure`` for a non-empty list.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Optional

from ..errors import (
    OperationAbandoned,
    OperationErrorDetail,
    OperationFailure,
    OperationTimeout,
    attempt,
)
from .references import extract_name

if TYPE_CHECKING:
    from ..providers.gcp.context import ComputeContext

logger = logging.getLogger(__name__)


class OperationStatus(Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    DONE = "DONE"


class PollOutcome(Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    ABANDONED = "abandoned"


def _status_of(op: Any) -> OperationStatus:
    # proto enum; unset reads as UNDEFINED_STATUS
    try:
        return OperationStatus(getattr(op.status, "name", op.status))
    except ValueError:
        return OperationStatus.PENDING



@dataclass
class OperationHandle:
    name: str
    status: OperationStatus = OperationStatus.PENDING
    target_link: str = ""
    zone: str = ""
    region: str = ""
    errors: list[OperationErrorDetail] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @classmethod
    def from_wire(cls, op: Any) -> "OperationHandle":
        errors = []
        if "error" in op:
            errors = [
                OperationErrorDetail(code=e.code, message=e.message, location=e.location)
                for e in op.error.errors
            ]
        warnings = [f"{w.code}: {w.message}" for w in op.warnings]
        return cls(
            name=op.name,
            status=_status_of(op),
            target_link=op.target_link,
            zone=extract_name(op.zone) or "",
            region=extract_name(op.region) or "",
            errors=errors,
            warnings=warnings,
        )

    def absorb(self, fresh: "OperationHandle") -> None:
        self.status = fresh.status
        self.target_link = fresh.target_link or self.target_link
        self.zone = fresh.zone or self.zone
        self.region = fresh.region or self.region
        self.errors = fresh.errors
        self.warnings = fresh.warnings

    @property
    def done(self) -> bool:
        return self.status is OperationStatus.DONE

    @property
    def scope_client(self) -> str:
        if self.zone:
            return "ZoneOperationsClient"
        if self.region:
            return "RegionOperationsClient"
        return "GlobalOperationsClient"


class OperationPoller:
    """Submits mutating calls and blocks until their operations finish.

    ``sleep`` and ``clock`` are injectable so tests never wait.
    """

    def __init__(
        self,
        ctx: "ComputeContext",
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ctx = ctx
        self._sleep = sleep
        self._clock = clock

    def submit(self, call: Callable[[], Any], dependency: str = "") -> Optional[OperationHandle]:
        """Issue a mutating call and return its operation handle.

        Calls that finish synchronously return no operation, and no handle.
        """
        op = attempt(call).unwrap(dependency)
        if op is None:
            return None
        return self.track(op)

    def track(self, op: Any) -> OperationHandle:
        handle = OperationHandle.from_wire(op)
        logger.debug("Tracking operation %s (%s)", handle.name, handle.target_link)
        return handle

    def fetch(self, handle: OperationHandle, client: Any) -> OperationHandle:
        request = {"project": self.ctx.project_id, "operation": handle.name}
        if handle.zone:
            request["zone"] = handle.zone
        elif handle.region:
            request["region"] = handle.region
        fresh = OperationHandle.from_wire(attempt(lambda: client.get(**request)).unwrap())
        # location is not always echoed back
        fresh.zone = fresh.zone or handle.zone
        fresh.region = fresh.region or handle.region
        return fresh

    def await_completion(
        self,
        handle: OperationHandle,
        timeout: Optional[float] = None,
        interval: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> list[OperationErrorDetail]:
        """Poll until DONE and return the operation's error list.

        ``handle`` is updated in place with the last fetched state.
        """
        timeout = self.ctx.operation_timeout if timeout is None else timeout
        interval = self.ctx.poll_interval if interval is None else interval
        deadline = self._clock() + timeout

        current = handle
        if not current.done:
            with self.ctx.client(handle.scope_client) as client:
                while not current.done:
                    if cancel is not None and cancel.is_set():
                        self._log_outcome(PollOutcome.ABANDONED, current)
                        raise OperationAbandoned(current.name)
                    remaining = deadline - self._clock()
                    if remaining <= 0:
                        self._log_outcome(PollOutcome.TIMED_OUT, current, timeout=timeout)
                        raise OperationTimeout(current.name, timeout)
                    self._sleep(min(interval, remaining))
                    if cancel is not None and cancel.is_set():
                        self._log_outcome(PollOutcome.ABANDONED, current)
                        raise OperationAbandoned(current.name)
                    current = self.fetch(current, client)
                    handle.absorb(current)

        for warning in current.warnings:
            logger.warning("Operation %s: %s", current.name, warning)
        outcome = PollOutcome.FAILED if current.errors else PollOutcome.SUCCEEDED
        self._log_outcome(outcome, current)
        return current.errors

    def run(
        self,
        call: Callable[[], Any],
        timeout: Optional[float] = None,
        dependency: str = "",
        cancel: Optional[threading.Event] = None,
    ) -> Optional[OperationHandle]:
        """Submit, wait, and raise ``OperationFailure`` on a non-empty error list."""
        handle = self.submit(call, dependency=dependency)
        if handle is None:
            return None
        errors = self.await_completion(handle, timeout=timeout, cancel=cancel)
        if errors:
            raise OperationFailure(errors, operation=handle.name)
        return handle

    def _log_outcome(self, outcome: PollOutcome, handle: OperationHandle, timeout: float = 0.0) -> None:
        if outcome is PollOutcome.SUCCEEDED:
            logger.info("Operation %s completed", handle.name)
        elif outcome is PollOutcome.FAILED:
            logger.error(
                "Operation %s completed with errors: %s",
                handle.name, "; ".join(str(e) for e in handle.errors),
            )
        elif outcome is PollOutcome.TIMED_OUT:
            logger.warning("Operation %s not done after %.0fs", handle.name, timeout)
        else:
            logger.warning("Operation %s abandoned while %s", handle.name, handle.status.value)
