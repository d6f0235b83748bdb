"""FTX REST API client for fill history backfill."""

import asyncio
import hashlib
import hmac
import logging
import time
from datetime import datetime
from typing import Dict, List, Optional
from urllib.parse import urlencode, urlsplit

import aiohttp
from pydantic import ValidationError

from ..config.credentials import FtxCredential
from ..config.settings import FtxConfig, RetryConfig
from ..errors import FetchError, ResponseFormatError
from ..models import Fill, FillsResponse
from ..utils.retry import exponential_backoff

logger = logging.getLogger(__name__)


def sign_request(
    credential: FtxCredential,
    method: str,
    path_with_query: str,
    ts: int,
    sub_account: Optional[str] = None
) -> Dict[str, str]:
    """
    Build the authentication headers for one request.

    The signature is a hex HMAC-SHA256, keyed by the API secret, of
    ``ts + METHOD + path[?query]`` where ``ts`` is epoch milliseconds.
    """
    payload = f"{ts}{method.upper()}{path_with_query}"
    signature = hmac.new(
        credential.api_secret.encode(),
        payload.encode(),
        hashlib.sha256
    ).hexdigest()

    headers = {
        'FTX-KEY': credential.api_key,
        'FTX-TS': str(ts),
        'FTX-SIGN': signature,
    }
    if sub_account:
        headers['FTX-SUBACCOUNT'] = sub_account
    return headers


def parse_fills(body: str) -> List[Fill]:
    """Parse a ``/fills`` response body, surfacing the raw body on mismatch."""
    try:
        return FillsResponse.model_validate_json(body).result
    except ValidationError as e:
        raise ResponseFormatError(f"unexpected response json format: {e}", body) from e


class FtxRESTClient:
    """Signed FTX REST client returning fill pages, newest first."""

    FILLS_ENDPOINT = '/fills'

    def __init__(
        self,
        config: FtxConfig,
        credential: FtxCredential,
        sub_account: Optional[str] = None,
        retry_config: Optional[RetryConfig] = None
    ):
        self.config = config
        self.credential = credential
        self.sub_account = sub_account
        self.retry_config = retry_config or RetryConfig()
        self.session: Optional[aiohttp.ClientSession] = None
        self.rate_limiter = RateLimiter(config.rate_limit_requests_per_minute)
        self.requests_made = 0

    async def __aenter__(self):
        self.session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.config.request_timeout_seconds)
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.session:
            await self.session.close()
            self.session = None

    def _build_url(self, endpoint: str, params: Dict[str, int]) -> str:
        url = f"{self.config.rest_base_url.rstrip('/')}{endpoint}"
        if params:
            url += '?' + urlencode(params)
        return url

    async def _make_request(self, endpoint: str, params: Dict[str, int]) -> str:
        """Make a rate-limited signed GET request and return the raw body text."""
        if not self.session:
            raise RuntimeError("Client not initialized. Use async context manager.")

        url = self._build_url(endpoint, params)
        split = urlsplit(url)
        path_with_query = split.path + (f"?{split.query}" if split.query else "")

        async def _request() -> str:
            await self.rate_limiter.acquire()
            headers = sign_request(
                self.credential,
                'GET',
                path_with_query,
                int(time.time() * 1000),
                self.sub_account
            )
            # Pass the pre-encoded URL so the signed path matches what is sent.
            async with self.session.get(url, headers=headers) as response:
                self.requests_made += 1
                # replace undecodable bytes so the raw body can still be reported
                body = (await response.read()).decode('utf-8', errors='replace')
                if response.status >= 400:
                    raise FetchError(
                        f"GET {path_with_query} failed with HTTP {response.status}: {body}",
                        status=response.status,
                        body=body
                    )
                return body

        try:
            return await exponential_backoff(
                _request,
                max_attempts=self.retry_config.max_attempts,
                initial_delay=self.retry_config.initial_backoff_seconds,
                max_delay=self.retry_config.max_backoff_seconds,
                backoff_factor=self.retry_config.backoff_multiplier,
                jitter=self.retry_config.jitter,
                exceptions=(aiohttp.ClientError, asyncio.TimeoutError)
            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise FetchError(f"GET {path_with_query} failed: {e!r}") from e

    async def get_fills(self, start_time: int, end_time: int) -> List[Fill]:
        """
        Get up to ``page_limit`` fills with ``start_time <= time < end_time``.

        Args:
            start_time: Inclusive lower bound, epoch seconds
            end_time: Exclusive upper bound, epoch seconds
        """
        params = {'start_time': start_time, 'end_time': end_time}
        logger.debug(f"Fetching fills: {params}")

        body = await self._make_request(self.FILLS_ENDPOINT, params)
        fills = parse_fills(body)
        logger.debug(f"Retrieved {len(fills)} fills for end_time={end_time}")
        return fills

    async def fetch(self, start: datetime, end: datetime) -> List[Fill]:
        """Page fetcher interface: datetimes are sent as whole epoch seconds."""
        return await self.get_fills(int(start.timestamp()), int(end.timestamp()))


class RateLimiter:
    """Token bucket rate limiter for API requests."""

    def __init__(self, requests_per_minute: int):
        self.requests_per_minute = requests_per_minute
        self.tokens = float(requests_per_minute)
        self.last_update = time.monotonic()
        self.lock = asyncio.Lock()

    async def acquire(self):
        """Acquire a token for making a request."""
        async with self.lock:
            now = time.monotonic()
            elapsed = now - self.last_update

            self.tokens = min(
                self.requests_per_minute,
                self.tokens + elapsed * (self.requests_per_minute / 60.0)
            )
            self.last_update = now

            if self.tokens >= 1:
                self.tokens -= 1
            else:
                wait_time = (1 - self.tokens) / (self.requests_per_minute / 60.0)
                await asyncio.sleep(wait_time)
                self.last_update = time.monotonic()
                self.tokens = 0
