"""JSON log formatting tests."""

from __future__ import annotations

import logging

import orjson

from chat_memory.core.logging import JsonFormatter, bind_logger


def test_bound_context_reaches_json_payload() -> None:
    records: list[logging.LogRecord] = []

    class Collect(logging.Handler):
        def emit(self, record: logging.LogRecord) -> None:
            records.append(record)

    logger = logging.getLogger("chat_memory.tests.logging")
    logger.addHandler(Collect())
    logger.setLevel(logging.INFO)
    logger.propagate = False

    log = bind_logger(logger, user_id="u1", conversation_id=None)
    log.info("stored %s fragments", 3, extra={"ctx_stage": "hybrid"})

    payload = orjson.loads(JsonFormatter().format(records[0]))
    assert payload["message"] == "stored 3 fragments"
    assert payload["user_id"] == "u1"
    assert payload["stage"] == "hybrid"
    assert "conversation_id" not in payload
