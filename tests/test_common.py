"""Tests for cirrus.common: file logging and the JSON step log."""

from __future__ import annotations

import json
import logging

from cirrus.common import TransactionLog, init_logging


def test_transaction_log_records_steps(tmp_path):
    journal = TransactionLog("compute-disk-data-create", tmp_path)
    journal.step("insert", "Insert compute-disk 'data'")
    journal.step("refresh", "Refresh compute-disk 'data'")
    journal.finalize("failed", "QUOTA_EXCEEDED")

    data = json.loads(journal.path.read_text())
    assert data["status"] == "failed"
    assert data["message"] == "QUOTA_EXCEEDED"
    assert [(s["id"], s["status"]) for s in data["steps"]] == [("insert", "done"), ("refresh", "failed")]


def test_init_logging_writes_to_file(tmp_path):
    path = init_logging("test", tmp_path)
    logger = logging.getLogger("cirrus")
    handler = logger.handlers[-1]
    try:
        logging.getLogger("cirrus.services.lifecycle").info("Created compute-disk 'data'")
        handler.flush()
        assert path.parent == tmp_path
        assert "Created compute-disk 'data'" in path.read_text()
    finally:
        logger.removeHandler(handler)
        handler.close()
