"""Cirrus data models."""

from .action_log import ActionLog
from .state import ResourceState

__all__ = [
    "ActionLog",
    "ResourceState",
]
