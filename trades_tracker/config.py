"""Configuration loader: YAML with ${VAR} interpolation, validated into dataclasses."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

SUPPORTED_EXCHANGES = ("bingx", "bybit")

_DEFAULT_BASE_URLS = {
    "bingx": "https://open-api.bingx.com",
    "bybit": "https://api.bybit.com",
}

_DEFAULT_REQUESTS_PER_SECOND = {
    "bingx": 5.0,
    "bybit": 10.0,
}

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExchangeConfig:
    name: str = ""
    api_key: str = ""
    secret_key: str = ""
    base_url: str = ""
    requests_per_second: float = 5.0
    recv_window: int = 10000
    max_pages: int = 10

    @property
    def placeholder_key(self) -> str:
        return f"your-{self.name}-api-key"

    @property
    def is_configured(self) -> bool:
        """False when the key or secret is missing or still the sample value."""
        if not self.api_key or not self.secret_key:
            return False
        return self.api_key != self.placeholder_key


@dataclass(frozen=True)
class RetryConfig:
    attempts: int = 3
    delay_seconds: float = 2.0
    max_rate_limit_waits: int = 5
    request_timeout: int = 30


@dataclass(frozen=True)
class HistoryConfig:
    lookback_days: int = 30
    chunk_days: int = 6
    chunk_pause_seconds: float = 1.0


@dataclass(frozen=True)
class RunConfig:
    concurrent: bool = False
    deadline_seconds: float = 0.0


@dataclass(frozen=True)
class ReportConfig:
    output_directory: str = "./reports"
    file_name_prefix: str = "CryptoPortfolio_"
    date_format: str = "%Y-%m-%d_%H-%M-%S"


@dataclass(frozen=True)
class AppConfig:
    exchanges: dict[str, ExchangeConfig] = field(default_factory=dict)
    retry: RetryConfig = field(default_factory=RetryConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    run: RunConfig = field(default_factory=RunConfig)
    report: ReportConfig = field(default_factory=ReportConfig)


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_exchanges(raw: dict[str, Any]) -> dict[str, ExchangeConfig]:
    exchanges: dict[str, ExchangeConfig] = {}
    for name, cfg in raw.items():
        key = str(name).lower()
        cfg = cfg or {}
        exchanges[key] = ExchangeConfig(
            name=key,
            api_key=str(cfg.get("api_key", "") or ""),
            secret_key=str(cfg.get("secret_key", "") or ""),
            base_url=str(cfg.get("base_url") or _DEFAULT_BASE_URLS.get(key, "")).rstrip("/"),
            requests_per_second=float(
                cfg.get("requests_per_second", _DEFAULT_REQUESTS_PER_SECOND.get(key, 5.0))
            ),
            recv_window=int(cfg.get("recv_window", 10000)),
            max_pages=int(cfg.get("max_pages", 10)),
        )
    return exchanges


def _build_retry(raw: dict[str, Any]) -> RetryConfig:
    return RetryConfig(
        attempts=int(raw.get("attempts", 3)),
        delay_seconds=float(raw.get("delay_seconds", 2.0)),
        max_rate_limit_waits=int(raw.get("max_rate_limit_waits", 5)),
        request_timeout=int(raw.get("request_timeout", 30)),
    )


def _build_history(raw: dict[str, Any]) -> HistoryConfig:
    return HistoryConfig(
        lookback_days=int(raw.get("lookback_days", 30)),
        chunk_days=int(raw.get("chunk_days", 6)),
        chunk_pause_seconds=float(raw.get("chunk_pause_seconds", 1.0)),
    )


def _build_run(raw: dict[str, Any]) -> RunConfig:
    return RunConfig(
        concurrent=bool(raw.get("concurrent", False)),
        deadline_seconds=float(raw.get("deadline_seconds") or 0.0),
    )


def _build_report(raw: dict[str, Any]) -> ReportConfig:
    return ReportConfig(
        output_directory=str(raw.get("output_directory", "./reports")),
        file_name_prefix=str(raw.get("file_name_prefix", "CryptoPortfolio_")),
        date_format=str(raw.get("date_format", "%Y-%m-%d_%H-%M-%S")),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (one level up from the package).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    cfg = AppConfig(
        exchanges=_build_exchanges(raw.get("exchanges") or {}),
        retry=_build_retry(raw.get("retry") or {}),
        history=_build_history(raw.get("history") or {}),
        run=_build_run(raw.get("run") or {}),
        report=_build_report(raw.get("report") or {}),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.exchanges:
        raise ValueError("At least one exchange must be configured")

    for name, exchange in cfg.exchanges.items():
        if name not in SUPPORTED_EXCHANGES:
            raise ValueError(f"Unsupported exchange '{name}'")
        if not exchange.base_url:
            raise ValueError(f"Exchange '{name}' has no base_url")
        if exchange.requests_per_second <= 0:
            raise ValueError(f"Exchange '{name}' requests_per_second must be positive")
        if exchange.max_pages < 1:
            raise ValueError(f"Exchange '{name}' max_pages must be at least 1")

    if cfg.retry.attempts < 1:
        raise ValueError("retry.attempts must be at least 1")
    if cfg.retry.delay_seconds < 0:
        raise ValueError("retry.delay_seconds must not be negative")
    if cfg.history.chunk_days <= 0 or cfg.history.lookback_days <= 0:
        raise ValueError("history.lookback_days and history.chunk_days must be positive")
    if cfg.run.deadline_seconds < 0:
        raise ValueError("run.deadline_seconds must not be negative")
