"""Tests for secret redaction in logs."""

import logging

import pytest

from cryptoconsole.logging import MASK, RedactingFilter, configure_logging, sanitize


class TestSanitize:
    def test_query_parameters(self):
        text = "GET https://api.test/x?coin=USDT&apiKey=abc123&signature=deadbeef&amount=5"
        assert sanitize(text) == (
            f"GET https://api.test/x?coin=USDT&apiKey={MASK}&signature={MASK}&amount=5"
        )

    def test_json_pairs(self):
        text = '{"currency": "USDT", "api_secret": "s3cr3t", "memo": "12345"}'
        result = sanitize(text)
        assert "s3cr3t" not in result
        assert "12345" not in result
        assert '"currency": "USDT"' in result

    def test_htx_access_key(self):
        assert "AK-1" not in sanitize("AccessKeyId=AK-1&SignatureMethod=HmacSHA256")

    def test_none(self):
        assert sanitize(None) == ""


def test_filter_rewrites_record():
    record = logging.LogRecord(
        "cryptoconsole", logging.INFO, __file__, 1, "request %s", ("passphrase=hunter2",), None
    )

    assert RedactingFilter().filter(record)
    assert record.getMessage() == f"request passphrase={MASK}"


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


def test_configure_logging_writes_redacted_file(tmp_path, monkeypatch, restore_root_logger):
    monkeypatch.setenv("CRYPTOCONSOLE_LOG_LEVEL", "DEBUG")

    configure_logging(tmp_path / "logs")
    logging.getLogger("cryptoconsole.test").info("withdraw apiSecret=topsecret amount=5")
    for handler in logging.getLogger().handlers:
        handler.flush()

    content = (tmp_path / "logs" / "cryptoconsole.log").read_text(encoding="utf-8")
    assert "topsecret" not in content
    assert f"apiSecret={MASK} amount=5" in content
    assert logging.getLogger().level == logging.DEBUG
