"""Tests for retry and logging utilities."""

import json
import logging

import pytest

from fill_backfill.config.settings import LoggingConfig
from fill_backfill.utils.logging import JSONFormatter, TextFormatter, setup_logging
from fill_backfill.utils.retry import exponential_backoff


@pytest.mark.unit
class TestExponentialBackoff:

    @pytest.mark.asyncio
    async def test_returns_first_success(self):
        calls = []

        async def func():
            calls.append(1)
            return "ok"

        assert await exponential_backoff(func, max_attempts=3) == "ok"
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        attempts = []

        async def func():
            attempts.append(1)
            if len(attempts) < 3:
                raise ConnectionError("flaky")
            return len(attempts)

        result = await exponential_backoff(
            func, max_attempts=3, initial_delay=0.0, jitter=False, exceptions=(ConnectionError,)
        )

        assert result == 3

    @pytest.mark.asyncio
    async def test_single_attempt_raises_immediately(self):
        attempts = []

        async def func():
            attempts.append(1)
            raise ConnectionError("down")

        with pytest.raises(ConnectionError):
            await exponential_backoff(func, max_attempts=1)

        assert len(attempts) == 1

    @pytest.mark.asyncio
    async def test_unlisted_exception_not_retried(self):
        attempts = []

        async def func():
            attempts.append(1)
            raise KeyError("bad")

        with pytest.raises(KeyError):
            await exponential_backoff(func, max_attempts=5, initial_delay=0.0, exceptions=(ConnectionError,))

        assert len(attempts) == 1


@pytest.mark.unit
class TestLogging:

    def _record(self, **extra):
        record = logging.LogRecord("fill_backfill.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_json_formatter(self):
        data = json.loads(JSONFormatter().format(self._record(service="fill-backfill")))

        assert data["message"] == "hello world"
        assert data["level"] == "INFO"
        assert data["logger"] == "fill_backfill.test"
        assert data["service"] == "fill-backfill"

    def test_text_formatter(self):
        line = TextFormatter(use_colors=False).format(self._record())

        assert "[INFO] fill_backfill.test: hello world" in line

    def test_setup_logging_to_file(self, tmp_path):
        log_file = tmp_path / "backfill.log"
        root = logging.getLogger()
        saved_handlers, saved_level = list(root.handlers), root.level
        try:
            setup_logging(LoggingConfig(level="INFO", format="json", output=str(log_file)))
            logging.getLogger("fill_backfill.test").info("written")
            for handler in root.handlers:
                handler.flush()
        finally:
            for handler in root.handlers:
                handler.close()
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)

        lines = [json.loads(line) for line in log_file.read_text().splitlines()]
        assert any(line["message"] == "written" for line in lines)
