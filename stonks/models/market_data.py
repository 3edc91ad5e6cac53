"""Canonical market data models shared by the provider adapters."""

import math
from dataclasses import asdict, dataclass, field, fields, replace
from typing import Any, Literal

AssetKind = Literal["crypto", "stock", "etf"]
OutcomeStatus = Literal["fresh", "cached", "stale", "failed"]


@dataclass
class Asset:
    """Canonical per-instrument record produced by the adapters."""

    symbol: str
    kind: AssetKind
    price: float = 0.0
    change: float = 0.0  # Percent over the lookback window
    change_24h: float = 0.0
    history: list[float] = field(default_factory=lambda: [0.0])
    timestamps: list[int] = field(default_factory=list)  # Epoch millis
    open: float = 0.0
    high: float = 0.0
    low: float = 0.0
    high_52w: float = 0.0
    low_52w: float = 0.0
    market_cap: float = 0.0
    volume: float = 0.0
    avg_volume: float = 0.0
    circulating_supply: float = 0.0
    total_supply: float = 0.0
    rank: int = 0
    pe: float = 0.0
    previous_close: float = 0.0
    currency: str | None = None
    from_cache: bool = False
    error: bool = False
    fetched_at: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Asset":
        """Rebuild an Asset from ``to_dict`` output, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        values["history"] = list(values.get("history") or [0.0])
        values["timestamps"] = list(values.get("timestamps") or [])
        return cls(**values)

    def flagged(self, **flags: bool) -> "Asset":
        """Return a copy with the given flags (``from_cache``, ``error``) set."""
        return replace(
            self, history=list(self.history), timestamps=list(self.timestamps), **flags
        )

    @classmethod
    def placeholder(cls, symbol: str, kind: AssetKind, fetched_at: int = 0) -> "Asset":
        """Zero-valued record for an asset with neither fresh nor cached data."""
        return cls(symbol=symbol, kind=kind, error=True, fetched_at=fetched_at)


@dataclass
class FetchOutcome:
    """
    Tagged result of one adapter fetch.

    ``fresh``: fetched from the provider now.
    ``cached``: served from a cache entry still inside its TTL.
    ``stale``: the provider failed and an expired cache entry was served.
    ``failed``: the provider failed with nothing cached; ``asset`` is a placeholder.
    """

    status: OutcomeStatus
    asset: Asset
    error: Exception | None = None

    @property
    def degraded(self) -> bool:
        return self.status in ("stale", "failed")


def percent_change(current: float, reference: float | None) -> float:
    """Percent change from ``reference`` to ``current``; 0 when reference <= 0."""
    if reference is None or reference <= 0:
        return 0.0
    change = (current - reference) / reference * 100
    return change if math.isfinite(change) else 0.0
