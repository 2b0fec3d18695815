"""Compute call context — project, location, credentials and client acquisition.

Every lifecycle call receives a ``ComputeContext``; nothing in the core reads
global settings or keeps a shared client. Clients are acquired per operation
and released when the operation finishes.

Docs: https://cloud.google.com/python/docs/reference/compute/latest
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterator, Optional

from google.cloud import compute_v1
from google.oauth2 import service_account

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/cloud-platform"]

ClientFactory = Callable[[str, Any], Any]


def default_client_factory(client_name: str, credentials: Any) -> Any:
    """Instantiate ``compute_v1.<client_name>``, e.g. ``DisksClient``."""
    client_cls = getattr(compute_v1, client_name)
    if credentials is None:
        return client_cls()
    return client_cls(credentials=credentials)


def load_credentials(credentials_path: Optional[str]) -> Any:
    """Service account credentials from a JSON key, or None for application defaults."""
    if not credentials_path:
        return None
    path = Path(credentials_path).expanduser()
    if not path.exists():
        raise FileNotFoundError(f"GCP service account key not found: {path}")
    return service_account.Credentials.from_service_account_file(str(path), scopes=SCOPES)


@dataclass
class ComputeContext:
    project_id: str
    region: str = ""
    zone: str = ""
    credentials: Any = None
    client_factory: ClientFactory = default_client_factory
    poll_interval: float = 5.0
    operation_timeout: float = 60.0
    # per-kind overrides of operation_timeout
    kind_timeouts: dict[str, float] = field(default_factory=dict)
    not_ready_attempts: int = 5
    not_ready_delay: float = 10.0
    log_dir: Optional[Path] = None

    @classmethod
    def from_settings(cls, settings: Any = None, **overrides: Any) -> "ComputeContext":
        if settings is None:
            from ...config import settings
        credentials = load_credentials(settings.credentials_path)
        project_id = settings.project_id or getattr(credentials, "project_id", "") or ""
        values = dict(
            project_id=project_id,
            region=settings.region,
            zone=settings.zone,
            credentials=credentials,
            poll_interval=settings.poll_interval,
            operation_timeout=settings.operation_timeout,
            kind_timeouts={"compute-image": settings.image_operation_timeout},
            not_ready_attempts=settings.not_ready_attempts,
            not_ready_delay=settings.not_ready_delay,
            log_dir=settings.log_dir,
        )
        values.update(overrides)
        return cls(**values)

    def timeout_for(self, kind: str, default: Optional[float] = None) -> float:
        if kind in self.kind_timeouts:
            return self.kind_timeouts[kind]
        return default if default is not None else self.operation_timeout

    @contextmanager
    def client(self, client_name: str) -> Iterator[Any]:
        """Acquire a client for the duration of one operation."""
        client = self.client_factory(client_name, self.credentials)
        try:
            yield client
        finally:
            transport = getattr(client, "transport", None)
            if transport is not None:
                transport.close()
