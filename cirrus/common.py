"""Shared utilities — console output, file logging, JSON transaction log.

The reconciliation core only logs through ``logging``; the console helpers
here are for the CLI.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from rich.console import Console

# ---------------------------------------------------------------------------
# Console singleton
# ---------------------------------------------------------------------------
console = Console()

# ---------------------------------------------------------------------------
# Timestamp for log file naming
# ---------------------------------------------------------------------------
TIMESTAMP = datetime.now().strftime("%Y-%m-%d-%H%M%S")

# ---------------------------------------------------------------------------
# Display helpers
# ---------------------------------------------------------------------------


def print_step(msg: str) -> None:
    console.print(f"[bold cyan]▶ {msg}[/bold cyan]")


def print_info(msg: str) -> None:
    console.print(f"[blue]ℹ {msg}[/blue]")


def print_success(msg: str) -> None:
    console.print(f"[bold green]✔ {msg}[/bold green]")


def print_warning(msg: str) -> None:
    console.print(f"[bold yellow]⚠ {msg}[/bold yellow]")


def print_error(msg: str) -> None:
    console.print(f"[bold red]✖ {msg}[/bold red]")


def print_detail(msg: str) -> None:
    console.print(f"  {msg}")


# ---------------------------------------------------------------------------
# File-based logging
# ---------------------------------------------------------------------------


def init_logging(prefix: str = "cirrus", log_dir: Optional[Path] = None) -> Path:
    """Attach a timestamped file handler to the ``cirrus`` logger. Returns the log file path."""
    if log_dir is None:
        from .config import settings
        log_dir = settings.effective_log_dir

    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"{prefix}-{TIMESTAMP}.log"

    logger = logging.getLogger("cirrus")
    logger.setLevel(logging.DEBUG)
    fh = logging.FileHandler(log_file)
    fh.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    logger.addHandler(fh)
    return log_file


# ---------------------------------------------------------------------------
# JSON transaction log
# ---------------------------------------------------------------------------


class TransactionLog:
    """Structured JSON log for tracking multi-step lifecycle operations."""

    def __init__(self, operation: str, log_dir: Optional[Path] = None):
        self.operation = operation
        if log_dir is None:
            from .config import settings
            log_dir = settings.effective_log_dir
        log_dir.mkdir(parents=True, exist_ok=True)
        self.path = log_dir / f"{operation}-{TIMESTAMP}.json"
        self._data: dict[str, Any] = {
            "operation": operation,
            "started_at": datetime.now(timezone.utc).isoformat(),
            "status": "in_progress",
            "steps": [],
        }
        self._current_step: Optional[dict[str, Any]] = None
        self._flush()

    def step(self, step_id: str, description: str) -> None:
        self._close_current_step("done")
        self._current_step = {
            "id": step_id,
            "description": description,
            "status": "in_progress",
            "started_at": datetime.now(timezone.utc).isoformat(),
        }
        self._data["steps"].append(self._current_step)
        self._flush()

    def finalize(self, status: str = "success", message: str = "") -> None:
        self._close_current_step("done" if status == "success" else "failed")
        self._data["status"] = status
        self._data["ended_at"] = datetime.now(timezone.utc).isoformat()
        if message:
            self._data["message"] = message
        self._flush()

    def _close_current_step(self, default_status: str) -> None:
        if self._current_step and self._current_step["status"] == "in_progress":
            self._current_step["status"] = default_status
            self._current_step["ended_at"] = datetime.now(timezone.utc).isoformat()

    def _flush(self) -> None:
        self.path.write_text(json.dumps(self._data, indent=2) + "\n")
