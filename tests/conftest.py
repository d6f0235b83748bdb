"""Pytest configuration and shared fixtures."""

import json
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import pytest

from fill_backfill.config.settings import BackfillSettings, FtxConfig, LoggingConfig
from fill_backfill.models import Fill


class FakePageFetcher:
    """
    In-memory stand-in for the exchange: honours ``[start, end)`` and returns
    at most ``page_limit`` fills, newest first.
    """

    def __init__(self, fills: List[Fill], page_limit: int = 5000):
        self.fills = list(fills)
        self.page_limit = page_limit
        self.calls: List[Tuple[datetime, datetime]] = []

    async def fetch(self, start: datetime, end: datetime) -> List[Fill]:
        self.calls.append((start, end))
        matching = [f for f in self.fills if start <= f.time < end]
        matching.sort(key=lambda f: (f.time, f.id), reverse=True)
        return matching[:self.page_limit]


class ScriptedPageFetcher:
    """Returns pre-baked pages in order, then empty pages."""

    def __init__(self, pages: List[List[Fill]]):
        self.pages = list(pages)
        self.calls: List[Tuple[datetime, datetime]] = []

    async def fetch(self, start: datetime, end: datetime) -> List[Fill]:
        self.calls.append((start, end))
        if not self.pages:
            return []
        return self.pages.pop(0)


class RecordingSink:
    def __init__(self, day: date, append: bool):
        self.day = day
        self.append = append
        self.fills: List[Fill] = []
        self.closed = False

    def write(self, fill: Fill) -> None:
        assert not self.closed, "write after close"
        self.fills.append(fill)

    def close(self) -> None:
        self.closed = True


class RecordingSinkFactory:
    """Sink factory keeping every opened sink in memory."""

    def __init__(self):
        self.opened: List[Tuple[Optional[str], date, bool]] = []
        self.sinks: List[RecordingSink] = []

    def open(self, account_qualifier: Optional[str], day: date, append: bool = False) -> RecordingSink:
        self.opened.append((account_qualifier, day, append))
        sink = RecordingSink(day, append)
        self.sinks.append(sink)
        return sink

    def ids_by_date(self) -> Dict[date, List[int]]:
        result: Dict[date, List[int]] = {}
        for sink in self.sinks:
            result.setdefault(sink.day, []).extend(f.id for f in sink.fills)
        return result


def _parse_time(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return datetime.fromisoformat(value).replace(tzinfo=timezone.utc)


@pytest.fixture
def make_fill():
    """Factory for fills: ``make_fill(id, "2024-01-01T12:00:00", **overrides)``."""
    def _make(fill_id: int, time: Any, **overrides) -> Fill:
        data = {
            "id": fill_id,
            "time": _parse_time(time),
            "market": "BTC-PERP",
            "future": "BTC-PERP",
            "side": "buy",
            "price": 42000.5,
            "size": 0.01,
            "fee": 0.0042,
            "fee_currency": "USD",
            "fee_rate": 0.0002,
            "liquidity": "taker",
            "order_id": fill_id * 10,
            "trade_id": fill_id * 100,
            "type": "order",
        }
        data.update(overrides)
        return Fill(**data)
    return _make


@pytest.fixture
def fetcher_factory():
    return FakePageFetcher


@pytest.fixture
def scripted_fetcher_factory():
    return ScriptedPageFetcher


@pytest.fixture
def sink_factory() -> RecordingSinkFactory:
    return RecordingSinkFactory()


@pytest.fixture
def test_settings() -> BackfillSettings:
    """Create test configuration."""
    return BackfillSettings(
        ftx=FtxConfig(rest_base_url="https://ftx.test/api", page_limit=3),
        logging=LoggingConfig(level="DEBUG", format="text", output="stderr"),
    )


@pytest.fixture
def credential_file(tmp_path):
    path = tmp_path / "credential.json"
    path.write_text(json.dumps({"api_key": "test-key", "api_secret": "test-secret"}))
    return path


@pytest.fixture
def sample_fill_json() -> Dict[str, Any]:
    """A fill as returned by the /fills endpoint."""
    return {
        "fee": 20.1374935,
        "feeCurrency": "USD",
        "feeRate": 0.0005,
        "future": "EOS-0329",
        "id": 11215,
        "liquidity": "taker",
        "market": "EOS-0329",
        "baseCurrency": None,
        "quoteCurrency": None,
        "orderId": 8436981,
        "tradeId": 1013912,
        "price": 4.201,
        "side": "buy",
        "size": 9587,
        "time": "2019-03-27T19:15:10.204619+00:00",
        "type": "order"
    }
