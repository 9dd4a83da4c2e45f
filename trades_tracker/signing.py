"""Request signing helpers for BingX and Bybit: pure functions, no I/O."""
from __future__ import annotations

import hashlib
import hmac
import time
from typing import Any, Iterable, Mapping


def _hmac_sha256_hex(payload: str, secret_key: str) -> str:
    return hmac.new(
        secret_key.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256
    ).hexdigest()


def sign_bingx(query_string: str, secret_key: str) -> str:
    """HMAC-SHA256 of the raw query string, lower-case hex.

    The query string is signed exactly as it will be sent, parameters joined
    with ``&`` and not URL-encoded.
    """
    return _hmac_sha256_hex(query_string, secret_key)


def sign_bybit(
    timestamp: str,
    api_key: str,
    recv_window: str,
    query_string: str,
    secret_key: str,
) -> str:
    """HMAC-SHA256 of ``timestamp + api_key + recv_window + query_string``."""
    return _hmac_sha256_hex(
        f"{timestamp}{api_key}{recv_window}{query_string}", secret_key
    )


def now_unix_millis() -> int:
    return int(time.time() * 1000)


def build_query_string(
    params: Mapping[str, Any] | Iterable[tuple[str, Any]],
) -> str:
    """Join ``key=value`` pairs with ``&`` in order, skipping ``None`` values.

    Examples:
        {"symbol": "BTC-USDT", "limit": 100} → "symbol=BTC-USDT&limit=100"
    """
    items = params.items() if isinstance(params, Mapping) else params
    return "&".join(f"{key}={value}" for key, value in items if value is not None)


def mask_key(value: str) -> str:
    """Mask an API key for log output, e.g. 'abcd****wxyz'."""
    raw = (value or "").strip()
    if len(raw) <= 8:
        return "****"
    return f"{raw[:4]}****{raw[-4:]}"
