"""Shared signed-REST plumbing: session ownership, pacing, retry, JSON decode."""
from __future__ import annotations

import asyncio
import json
import logging
import ssl
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Mapping

import aiohttp
import certifi
import yarl

from ..config import ExchangeConfig, RetryConfig
from ..errors import MalformedResponseError
from ..signing import mask_key
from ..transport import AttemptState, HttpReply, RateLimiter, RetryExecutor
from ..transport.retry import parse_retry_after

logger = logging.getLogger(__name__)


def decode_body(raw: bytes) -> str:
    """Decode a response body as UTF-8, replacing invalid bytes."""
    return raw.decode("utf-8", errors="replace")


def decode_json_object(body: str) -> dict[str, Any]:
    """Decode a response body that must be a JSON object."""
    try:
        payload = json.loads(body)
    except ValueError as e:
        raise MalformedResponseError(f"Invalid JSON: {e}", raw=body) from e
    if not isinstance(payload, dict):
        raise MalformedResponseError(
            f"Expected a JSON object, got {type(payload).__name__}", raw=body
        )
    return payload


class SignedRestClient(ABC):
    """Base for the exchange clients.

    One ``aiohttp.ClientSession`` per client, created on first use and
    released by ``close()`` or ``async with``. Every request goes through the
    client's own rate limiter and retry executor.
    """

    exchange_name = ""

    def __init__(
        self,
        config: ExchangeConfig,
        retry: RetryConfig | None = None,
        *,
        log: logging.Logger | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config
        self.retry_config = retry or RetryConfig()
        self.base_url = config.base_url.rstrip("/")
        self._log = log or logger
        self._session: aiohttp.ClientSession | None = None
        self.rate_limiter = RateLimiter(
            config.requests_per_second,
            name=self.exchange_name,
            sleep=sleep,
            log=self._log,
        )
        self.retry = RetryExecutor(
            self.retry_config.attempts,
            self.retry_config.delay_seconds,
            max_rate_limit_waits=self.retry_config.max_rate_limit_waits,
            sleep=sleep,
            log=self._log,
        )
        self._log.debug(
            "%s client created for key %s", self.exchange_name, mask_key(config.api_key)
        )

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            ssl_context = ssl.create_default_context(cafile=certifi.where())
            connector = aiohttp.TCPConnector(ssl=ssl_context)
            self._session = aiohttp.ClientSession(
                connector=connector,
                timeout=aiohttp.ClientTimeout(total=self.retry_config.request_timeout),
            )
        return self._session

    async def close(self) -> None:
        if self._session is not None:
            session, self._session = self._session, None
            await session.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Request pipeline
    # ------------------------------------------------------------------

    @abstractmethod
    def _sign_request(self, params: Mapping[str, Any]) -> tuple[str, dict[str, str]]:
        """Return the final query string and the auth headers for one attempt."""

    def _inspect(self, reply: HttpReply) -> AttemptState:
        """Re-classify a 2xx reply; the default accepts it."""
        return AttemptState.SUCCEEDED

    async def _send(self, path: str, query: str, headers: dict[str, str]) -> HttpReply:
        url = f"{self.base_url}{path}"
        if query:
            url = f"{url}?{query}"
        session = self._get_session()
        # The signature covers the query as built, so yarl must not requote it.
        async with session.get(yarl.URL(url, encoded=True), headers=headers) as response:
            body = decode_body(await response.read())
            return HttpReply(
                status=response.status,
                body=body,
                retry_after=parse_retry_after(response.headers.get("Retry-After")),
            )

    async def _request(
        self, path: str, params: Mapping[str, Any], label: str
    ) -> dict[str, Any] | None:
        """Send a signed GET and return the decoded JSON object, or ``None``.

        Each attempt is re-signed so the timestamp stays fresh.
        """

        async def send() -> HttpReply:
            await self.rate_limiter.acquire()
            query, headers = self._sign_request(params)
            return await self._send(path, query, headers)

        reply = await self.retry.run(send, f"{self.exchange_name} {label}", self._inspect)
        if reply is None:
            return None

        try:
            return decode_json_object(reply.body)
        except MalformedResponseError as e:
            self._log.error(
                "Malformed %s response for %s: %s. Raw content: %s",
                self.exchange_name, label, e, e.raw[:1000],
            )
            return None
