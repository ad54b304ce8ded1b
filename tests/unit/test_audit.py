"""
Unit tests for the JSON audit line and the access-log filter.
"""
import json
import logging

from terminal_bootstrap import main
from terminal_bootstrap.audit import audit


def _audit_lines(caplog):
    return [json.loads(r.getMessage()) for r in caplog.records if r.name == "terminal-bootstrap-audit"]


def test_failure_carries_step(caplog):
    with caplog.at_level("INFO"):
        audit("bootstrap.failed", "aws-eu1", step="exposure", error="403 Forbidden")

    (line,) = _audit_lines(caplog)
    assert line["component"] == "terminal-bootstrap"
    assert line["event"] == "bootstrap.failed"
    assert line["cluster"] == "aws-eu1"
    assert line["step"] == "exposure"
    assert line["error"] == "403 Forbidden"
    assert "ts" in line


def test_step_is_omitted_when_unknown(caplog):
    with caplog.at_level("INFO"):
        audit("garden.bootstrapped", "garden")

    (line,) = _audit_lines(caplog)
    assert "step" not in line


def test_liveness_checks_are_filtered_from_access_log():
    access_filter = main._LivenessCheckFilter()

    def record(message):
        return logging.LogRecord("aiohttp.access", logging.INFO, __file__, 0, message, None, None)

    assert not access_filter.filter(record('10.0.0.1 "GET /healthz HTTP/1.1" 200'))
    assert access_filter.filter(record('10.0.0.1 "GET /metrics HTTP/1.1" 404'))
