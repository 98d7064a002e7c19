"""Tests for logging setup and helpers."""

import asyncio
import errno
import json
import logging

import pytest

from cardcatalog.infrastructure.observability import (
    configure_logging,
    format_oserror_message,
    get_correlation_id,
    log_operation,
    log_summary,
    set_correlation_id,
)


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestCorrelationId:
    """Test correlation id context."""

    def test_generates_uuid_when_not_given(self):
        correlation_id = set_correlation_id()
        assert len(correlation_id) == 36
        assert get_correlation_id() == correlation_id

    async def test_tasks_inherit_correlation_id(self):
        set_correlation_id("run-1")

        async def child() -> str:
            return get_correlation_id()

        assert await asyncio.create_task(child()) == "run-1"


class TestConfigureLogging:
    """Test configure_logging."""

    def test_json_output_carries_correlation_id(self, capsys):
        configure_logging(log_level="INFO", json_format=True)
        set_correlation_id("abc")
        capsys.readouterr()

        logging.getLogger("cardcatalog.test").info("hello")

        line = capsys.readouterr().out.strip().splitlines()[-1]
        record = json.loads(line)
        assert record["message"] == "hello"
        assert record["level"] == "INFO"
        assert record["correlation_id"] == "abc"

    def test_repeated_calls_do_not_stack_handlers(self):
        configure_logging()
        configure_logging()
        assert len(logging.getLogger().handlers) == 1

    def test_level_applied(self):
        configure_logging(log_level="warning")
        assert logging.getLogger().level == logging.WARNING


class TestLogHelpers:
    """Test log_operation and log_summary."""

    async def test_log_operation_logs_failure_and_reraises(self, caplog):
        logger = logging.getLogger("cardcatalog.test")
        caplog.set_level(logging.INFO)

        with pytest.raises(ValueError):
            async with log_operation(logger, "catalog_scan", roots=1):
                raise ValueError("boom")

        messages = [r.getMessage() for r in caplog.records]
        assert "catalog_scan.started" in messages
        assert "catalog_scan.failed" in messages

    def test_log_summary_renders_tree(self, caplog):
        caplog.set_level(logging.INFO)

        log_summary(
            logging.getLogger("cardcatalog.test"),
            "Scan finished",
            {"processed": 3, "skip_reasons": {"no_metadata": 1}, "error_message": None},
        )

        assert caplog.records[-1].getMessage() == (
            "Scan finished\n├─ processed: 3\n└─ skip_reasons: no_metadata=1"
        )


class TestFormatOSError:
    def test_known_errno_gets_hint(self):
        error = OSError(errno.ENOTCONN, "Transport endpoint is not connected")

        message = format_oserror_message(error, "open library root", "/mnt/nas")

        assert message.startswith("Failed to open library root '/mnt/nas': ")
        assert "ENOTCONN" in message
        assert "HINT: The network/FUSE mount is gone" in message
