from __future__ import annotations

import json
import logging

from common.logger import JsonFormatter


def _record(**extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name="loyalty_service.app.services.point_code_service",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="earn code processed",
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_domain_fields() -> None:
    formatter = JsonFormatter(service_name="loyalty-service")

    line = formatter.format(
        _record(user_id="U1", business_id="biz-1", code_id="c-1", point_amount=50)
    )
    data = json.loads(line)

    assert data["message"] == "earn code processed"
    assert data["level"] == "INFO"
    assert data["service_name"] == "loyalty-service"
    assert data["user_id"] == "U1"
    assert data["point_amount"] == 50


def test_json_formatter_ignores_unknown_extra() -> None:
    formatter = JsonFormatter(service_name="loyalty-service")

    data = json.loads(formatter.format(_record(secret="x", request_id="req-1")))

    assert "secret" not in data
    assert data["request_id"] == "req-1"
