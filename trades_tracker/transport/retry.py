"""Bounded retry with linear backoff, modelled as an attempt state machine."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

import aiohttp

logger = logging.getLogger(__name__)


class AttemptState(Enum):
    PENDING = "pending"
    RATE_LIMITED = "rate_limited"
    RETRYABLE = "retryable"
    RESYNCED = "resynced"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class HttpReply:
    """Outcome of a single HTTP attempt."""

    status: int
    body: str
    retry_after: float | None = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


def classify(reply: HttpReply) -> AttemptState:
    if reply.status == 429:
        return AttemptState.RATE_LIMITED
    if reply.ok:
        return AttemptState.SUCCEEDED
    return AttemptState.RETRYABLE


def parse_retry_after(value: str | None) -> float | None:
    """Parse a ``Retry-After`` header given in seconds; dates are ignored."""
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


SendFn = Callable[[], Awaitable[HttpReply]]
InspectFn = Callable[[HttpReply], AttemptState]


class RetryExecutor:
    """Drive one logical request through its attempts.

    - ``RATE_LIMITED``: wait the server hint (or ``delay_seconds``) and repeat
      the same attempt; counted only against ``max_rate_limit_waits``.
    - ``RETRYABLE``: wait ``delay_seconds * attempt`` and move to the next
      attempt, up to ``attempts``.
    - ``RESYNCED``: repeat immediately; the inspect hook must only return it
      once per condition.
    - ``EXHAUSTED``: give up and return ``None``.
    """

    def __init__(
        self,
        attempts: int,
        delay_seconds: float,
        *,
        max_rate_limit_waits: int = 5,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        log: logging.Logger | None = None,
    ) -> None:
        if attempts < 1:
            raise ValueError("attempts must be at least 1")
        self.attempts = attempts
        self.delay_seconds = delay_seconds
        self.max_rate_limit_waits = max_rate_limit_waits
        self._sleep = sleep
        self._log = log or logger

    def backoff_delay(self, attempt: int) -> float:
        return self.delay_seconds * attempt

    async def run(
        self,
        send: SendFn,
        label: str,
        inspect: InspectFn | None = None,
    ) -> HttpReply | None:
        """Return the successful reply, or ``None`` once the request is exhausted."""
        state, reply = await self.execute(send, label, inspect)
        return reply if state is AttemptState.SUCCEEDED else None

    async def execute(
        self,
        send: SendFn,
        label: str,
        inspect: InspectFn | None = None,
    ) -> tuple[AttemptState, HttpReply | None]:
        """Run the state machine; the final state is SUCCEEDED or EXHAUSTED."""
        attempt = 1
        rate_limit_waits = 0
        state = AttemptState.PENDING

        while True:
            reply: HttpReply | None = None
            try:
                reply = await send()
                state = classify(reply)
                if state is AttemptState.SUCCEEDED and inspect is not None:
                    state = inspect(reply)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                self._log.error(
                    "HTTP request exception on attempt %d for %s: %s",
                    attempt, label, e,
                )
                state = AttemptState.RETRYABLE

            if state is AttemptState.SUCCEEDED:
                return state, reply

            if state is AttemptState.RESYNCED:
                continue

            if state is AttemptState.RATE_LIMITED:
                rate_limit_waits += 1
                if rate_limit_waits > self.max_rate_limit_waits:
                    self._log.error(
                        "%s still rate limited after %d waits, giving up",
                        label, self.max_rate_limit_waits,
                    )
                    return AttemptState.EXHAUSTED, reply
                wait = self.delay_seconds
                if reply is not None and reply.retry_after is not None:
                    wait = reply.retry_after
                self._log.warning("Rate limited on %s, waiting %.1f seconds", label, wait)
                await self._sleep(wait)
                continue

            if reply is not None:
                self._log.error(
                    "%s failed with status %d: %s", label, reply.status, reply.body[:500]
                )

            if attempt >= self.attempts:
                self._log.error("%s exhausted after %d attempts", label, self.attempts)
                return AttemptState.EXHAUSTED, reply

            delay = self.backoff_delay(attempt)
            self._log.warning(
                "Retrying %s, attempt %d/%d in %.1fs",
                label, attempt, self.attempts, delay,
            )
            await self._sleep(delay)
            attempt += 1
