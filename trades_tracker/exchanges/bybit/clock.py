"""Bybit clock-skew compensation."""
from __future__ import annotations

import json
import logging
import re

from ..decoding import get_field, get_str, parse_optional_decimal

logger = logging.getLogger(__name__)

# retCode Bybit returns when the request timestamp falls outside recv_window.
TIMESTAMP_ERROR_CODE = 10002

_REQ_TIMESTAMP_RE = re.compile(r"req_timestamp\[(\d+)\]")
_SERVER_TIMESTAMP_RE = re.compile(r"server_timestamp\[(\d+)\]")


class ClockSkewCompensator:
    """Learn the local/server clock offset from one Bybit timestamp error.

    Error messages look like
    ``req_timestamp[1752404596342],server_timestamp[1752404594907]``; the
    offset is ``server - req`` and is applied to every later request. Only
    the first qualifying error is used, and only when
    ``min_skew_ms < |skew| < max_skew_ms``.
    """

    def __init__(
        self,
        min_skew_ms: int = 100,
        max_skew_ms: int = 30000,
        log: logging.Logger | None = None,
    ) -> None:
        self.min_skew_ms = min_skew_ms
        self.max_skew_ms = max_skew_ms
        self.offset_ms = 0
        self.detected = False
        self._log = log or logger

    def adjust(self, timestamp_ms: int) -> int:
        return timestamp_ms + self.offset_ms

    @staticmethod
    def parse_skew(body: str) -> int | None:
        req = _REQ_TIMESTAMP_RE.search(body)
        server = _SERVER_TIMESTAMP_RE.search(body)
        if req is None or server is None:
            return None
        return int(server.group(1)) - int(req.group(1))

    @staticmethod
    def is_timestamp_error(body: str) -> bool:
        """True for a non-zero ``retCode`` envelope about timestamp / recv_window."""
        try:
            payload = json.loads(body)
        except ValueError:
            return False
        ret_code = parse_optional_decimal(get_field(payload, "retCode"))
        if ret_code is None or ret_code == 0:
            return False
        if int(ret_code) == TIMESTAMP_ERROR_CODE:
            return True
        message = get_str(payload, "retMsg").lower()
        return "timestamp" in message or "recv_window" in message

    def observe(self, body: str) -> bool:
        """Apply compensation from ``body``; True means retry now."""
        if self.detected or not self.is_timestamp_error(body):
            return False

        skew = self.parse_skew(body)
        if skew is None:
            self._log.debug("No timestamps found in Bybit timestamp error: %s", body[:500])
            return False

        self._log.info("Clock skew detected: %dms", skew)
        if not self.min_skew_ms < abs(skew) < self.max_skew_ms:
            self._log.warning(
                "Clock skew %dms is outside acceptable range (%dms to %dms)",
                skew, self.min_skew_ms, self.max_skew_ms,
            )
            return False

        self.offset_ms = skew
        self.detected = True
        self._log.info("Applied clock skew compensation: %dms", skew)
        return True
