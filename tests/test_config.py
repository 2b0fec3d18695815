"""Tests for cirrus.config."""

from __future__ import annotations

import pydantic
import pytest

from cirrus.config import Settings


def test_defaults():
    s = Settings(_env_file=None)
    assert s.not_ready_attempts == 5
    assert s.image_operation_timeout == 180.0


def test_not_ready_attempts_from_env(monkeypatch):
    monkeypatch.setenv("CIRRUS_NOT_READY_ATTEMPTS", "2")
    assert Settings(_env_file=None).not_ready_attempts == 2


@pytest.mark.parametrize("attempts", [0, -3])
def test_not_ready_attempts_must_be_positive(attempts):
    with pytest.raises(pydantic.ValidationError, match="not_ready_attempts"):
        Settings(_env_file=None, not_ready_attempts=attempts)
