"""Sub-resources shared by several compute kinds."""

from __future__ import annotations

from typing import Any, Literal, Optional

from google.cloud import compute_v1
from pydantic import Field

from ...services.changeset import apply_member_changes, member_changes
from ...services.lifecycle import LifecycleStep
from ...services.references import NETWORK, ResourceRef
from ..base import DeclaredModel, has_field, output, wire_value

DEFAULT_NETWORK = ResourceRef(NETWORK, "default")


class EncryptionKey(DeclaredModel):
    """Customer-supplied or KMS encryption key."""

    raw_key: Optional[str] = None
    rsa_encrypted_key: Optional[str] = None
    kms_key_name: Optional[str] = None
    kms_key_service_account: Optional[str] = None
    sha256: Optional[str] = output()

    @classmethod
    def from_wire(cls, wire: Any) -> "EncryptionKey":
        # raw keys are never echoed back; only the hash is
        return cls(
            kms_key_name=wire_value(wire, "kms_key_name"),
            kms_key_service_account=wire_value(wire, "kms_key_service_account"),
            sha256=wire_value(wire, "sha256"),
        )

    def to_wire(self) -> compute_v1.CustomerEncryptionKey:
        key = compute_v1.CustomerEncryptionKey()
        if self.raw_key is not None:
            key.raw_key = self.raw_key
        if self.rsa_encrypted_key is not None:
            key.rsa_encrypted_key = self.rsa_encrypted_key
        if self.kms_key_name is not None:
            key.kms_key_name = self.kms_key_name
        if self.kms_key_service_account is not None:
            key.kms_key_service_account = self.kms_key_service_account
        return key


def copy_key(current: Optional[EncryptionKey], wire: Any, name: str) -> Optional[EncryptionKey]:
    """Refresh an encryption key field, keeping configured secrets the API hides."""
    if not has_field(wire, name):
        return None
    fresh = EncryptionKey.from_wire(getattr(wire, name))
    if current is not None:
        fresh.raw_key = current.raw_key
        fresh.rsa_encrypted_key = current.rsa_encrypted_key
    return fresh


HIDDEN_KEY_VALUE = "hidden"


class SignedUrlKey(DeclaredModel):
    key_name: str = Field(..., pattern=r"^[a-z](?:[-a-z0-9]{0,61}[a-z0-9])?$")
    key_value: str

    def to_wire(self) -> compute_v1.SignedUrlKey:
        return compute_v1.SignedUrlKey(key_name=self.key_name, key_value=self.key_value)


def copy_signed_url_keys(current: list[SignedUrlKey], policy: Any) -> list[SignedUrlKey]:
    """Reconcile declared keys with the key names the API returns.

    Key values are never returned. Keys added outside this tool show up with a
    placeholder value; declared keys that were removed remotely are dropped.
    """
    remote = list(policy.signed_url_key_names) if policy is not None else []
    kept = [key for key in current if key.key_name in remote]
    known = {key.key_name for key in kept}
    return kept + [SignedUrlKey(key_name=name, key_value=HIDDEN_KEY_VALUE)
                   for name in remote if name not in known]


class CdnPolicy(DeclaredModel):
    cache_mode: Optional[Literal["USE_ORIGIN_HEADERS", "FORCE_CACHE_ALL", "CACHE_ALL_STATIC"]] = None
    default_ttl: Optional[int] = Field(None, ge=0, le=31_622_400)
    max_ttl: Optional[int] = Field(None, ge=0, le=31_622_400)
    client_ttl: Optional[int] = Field(None, ge=0, le=31_622_400)
    signed_url_cache_max_age_sec: Optional[int] = Field(None, ge=0)
    negative_caching: Optional[bool] = None
    serve_while_stale: Optional[int] = Field(None, ge=0)

    @classmethod
    def from_wire(cls, wire: Any) -> "CdnPolicy":
        return cls(**{
            attr: wire_value(wire, attr)
            for attr in cls.model_fields
            if has_field(wire, attr)
        })

    def to_wire(self, wire_cls: Any) -> Any:
        """Build ``wire_cls`` (bucket or service CDN policy) from the set fields."""
        return wire_cls(**self.model_dump(exclude_none=True))


def labels_step(request_cls: Any, request_kwarg: str) -> LifecycleStep:
    """Update step replacing the labels through ``set_labels``.

    The call needs the current label fingerprint, so it is read fresh first.
    """

    def run(step: Any) -> None:
        remote = step.read("get", **step.kind.api.identity(step.name))
        step.call(
            "set_labels_unary",
            resource=step.name,
            **{request_kwarg: request_cls(
                labels=dict(step.model.labels or {}),
                label_fingerprint=remote.label_fingerprint,
            )},
        )

    return LifecycleStep("set-labels", run, fields=frozenset({"labels"}))


def _add_signed_url_key(step: Any, key: SignedUrlKey) -> None:
    step.call("add_signed_url_key_unary", **step.kind.api.identity(step.name),
              signed_url_key_resource=key.to_wire())


def add_signed_url_keys_step() -> LifecycleStep:
    """Post-create step adding every declared signed URL key."""

    def run(step: Any) -> None:
        for key in step.model.signed_url_keys:
            _add_signed_url_key(step, key)

    return LifecycleStep("add-signed-url-keys", run)


def sync_signed_url_keys_step() -> LifecycleStep:
    """Update step deleting dropped keys, then adding new ones.

    A key whose value changed is deleted and added again under the same name.
    """

    def run(step: Any) -> None:
        old = step.current.signed_url_keys if step.current is not None else []
        changes = member_changes(old, step.model.signed_url_keys)

        def remove(keys):
            for key in keys:
                step.call("delete_signed_url_key_unary", **step.kind.api.identity(step.name),
                          key_name=key.key_name)

        def add(keys):
            for key in keys:
                _add_signed_url_key(step, key)

        apply_member_changes(changes, add=add, remove=remove)

    return LifecycleStep("sync-signed-url-keys", run, fields=frozenset({"signed-url-keys"}))


def headers_to_wire(headers: dict[str, str]) -> list[str]:
    return [f"{name}: {value}" for name, value in headers.items()]


def headers_from_wire(entries: Any) -> dict[str, str]:
    headers = {}
    for entry in entries:
        name, _, value = entry.partition(":")
        headers[name.strip()] = value.strip()
    return headers
