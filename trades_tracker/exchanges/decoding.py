"""Tolerant wire-value decoding shared by the exchange parsers: no I/O."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Mapping

from ..errors import UnknownPositionSideError
from ..models import PositionSide

_MISSING = object()


def get_field(row: Mapping[str, Any] | None, name: str, default: Any = None) -> Any:
    """Look up ``name`` in a JSON object, ignoring key case.

    Examples:
        get_field({"retCode": 0}, "retcode") → 0
        get_field({"RetCode": 0}, "retCode") → 0
    """
    if not isinstance(row, Mapping):
        return default
    value = row.get(name, _MISSING)
    if value is not _MISSING:
        return value
    wanted = name.lower()
    for key, candidate in row.items():
        if isinstance(key, str) and key.lower() == wanted:
            return candidate
    return default


def get_str(row: Mapping[str, Any] | None, name: str, default: str = "") -> str:
    value = get_field(row, name)
    if value is None:
        return default
    return str(value)


def parse_optional_decimal(value: Any) -> float | None:
    """Parse a numeric wire value; malformed or empty input gives ``None``."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip()
        if not text or text.lower() in ("null", "none", "nan"):
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def parse_decimal(value: Any, default: float = 0.0) -> float:
    """Parse a numeric wire value; malformed or empty input gives ``default``."""
    number = parse_optional_decimal(value)
    return default if number is None else number


def parse_millis(value: Any) -> int:
    """Parse an epoch-milliseconds wire value, ``0`` when malformed."""
    number = parse_optional_decimal(value)
    return 0 if number is None else int(number)


def parse_optional_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if value is None:
        return None
    text = str(value).strip().lower()
    if text in ("true", "1", "yes"):
        return True
    if text in ("false", "0", "no"):
        return False
    return None


def optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value)
    return text or None


# ---------------------------------------------------------------------------
# Position-side tables
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SideDecodeResult:
    """Either a decoded side or the error explaining why there is none."""

    value: PositionSide | None = None
    error: UnknownPositionSideError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class SideMapping:
    """Named wire-value → ``PositionSide`` table for one endpoint field."""

    def __init__(self, name: str, table: Mapping[str, PositionSide]) -> None:
        self.name = name
        self._table = {key.upper(): side for key, side in table.items()}

    def decode(self, raw: Any) -> PositionSide:
        key = "" if raw is None else str(raw).strip().upper()
        try:
            return self._table[key]
        except KeyError:
            raise UnknownPositionSideError(self.name, raw) from None

    def try_decode(self, raw: Any) -> SideDecodeResult:
        try:
            return SideDecodeResult(value=self.decode(raw))
        except UnknownPositionSideError as e:
            return SideDecodeResult(error=e)

    def __contains__(self, raw: object) -> bool:
        return str(raw).strip().upper() in self._table

    def __repr__(self) -> str:
        return f"SideMapping({self.name!r})"


BINGX_POSITION_SIDE = SideMapping(
    "bingx.positionSide",
    {"LONG": PositionSide.LONG, "SHORT": PositionSide.SHORT},
)

BYBIT_POSITION_LIST_SIDE = SideMapping(
    "bybit.position.list.side",
    {"Buy": PositionSide.LONG, "Sell": PositionSide.SHORT},
)

BYBIT_POSITION_INDEX = SideMapping(
    "bybit.order.history.positionIdx",
    {"0": PositionSide.LONG, "1": PositionSide.SHORT},
)

# Execution and closed-PnL rows carry the side of the order that closed the
# position, so the mapping is inverted.
BYBIT_EXECUTION_SIDE = SideMapping(
    "bybit.execution.list.side",
    {"Sell": PositionSide.LONG, "Buy": PositionSide.SHORT},
)

BYBIT_CLOSED_PNL_SIDE = SideMapping(
    "bybit.position.closed-pnl.side",
    {"Sell": PositionSide.LONG, "Buy": PositionSide.SHORT},
)
