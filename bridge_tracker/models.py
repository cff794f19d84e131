"""
Bridge Tracker Data Models - Canonical transfers and derived aggregates.

All amounts are integers in the base unit (wei). Conversion to a display
unit happens only at the presentation boundary (see export.py).

Every model here is recomputed from scratch on each aggregation pass.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class Direction(Enum):
    """Direction of a transfer relative to the watched address."""
    IN = "IN"
    OUT = "OUT"


class FeedSource(Enum):
    """Upstream transaction feeds."""
    NORMAL = "normal"
    INTERNAL = "internal"


@dataclass(frozen=True)
class CanonicalTransfer:
    """
    Normalized transfer record - STRICT schema.

    Addresses are lower-cased (empty string when missing, never None).
    amount is an unsigned integer in wei.
    """
    id: str
    from_address: str
    to_address: str
    amount: int
    timestamp: int
    failed: bool = False
    source: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary (amount as string to keep precision)."""
        return {
            "id": self.id,
            "from": self.from_address,
            "to": self.to_address,
            "amount": str(self.amount),
            "timestamp": self.timestamp,
            "failed": self.failed,
            "source": self.source,
        }


@dataclass(frozen=True)
class WalletAggregate:
    """Per-counterparty rollup of inbound transfers."""
    address: str
    total_amount: int
    transfer_count: int
    last_seen: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "total_amount": str(self.total_amount),
            "transfer_count": self.transfer_count,
            "last_seen": self.last_seen,
        }


@dataclass(frozen=True)
class RecentTransfer:
    """A transfer annotated with its direction, for the activity feed."""
    transfer: CanonicalTransfer
    direction: Direction

    @property
    def counterparty(self) -> str:
        """The other side of the transfer."""
        if self.direction == Direction.IN:
            return self.transfer.from_address
        return self.transfer.to_address

    def to_dict(self) -> dict[str, Any]:
        data = self.transfer.to_dict()
        data["direction"] = self.direction.value
        data["counterparty"] = self.counterparty
        return data


@dataclass(frozen=True)
class TransferTotals:
    """Aggregator output for one pass."""
    total_inbound: int
    total_outbound: int
    window_volume: int
    window_seconds: int
    inbound_count: int
    outbound_count: int
    wallets: tuple[WalletAggregate, ...] = ()


@dataclass(frozen=True)
class LeaderboardRow:
    """Flat leaderboard record for tabular export. Field order is fixed."""
    rank: int
    address: str
    total_amount: int
    transfer_count: int
    last_seen: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "rank": self.rank,
            "address": self.address,
            "total_amount": str(self.total_amount),
            "transfer_count": self.transfer_count,
            "last_seen": self.last_seen,
        }


@dataclass(frozen=True)
class TrackerSnapshot:
    """
    Immutable result of one aggregation pass.

    The caller decides what to retain across refresh cycles; the engine
    never mutates a published snapshot.
    """
    watched_address: str
    generated_at: int
    total_inbound_amount: int
    total_outbound_amount: int
    window_volume: int
    window_seconds: int
    inbound_count: int
    outbound_count: int
    unique_counterparty_count: int
    leaderboard: tuple[WalletAggregate, ...] = ()
    recent: tuple[RecentTransfer, ...] = ()

    @property
    def is_empty(self) -> bool:
        """True when nothing survived direction filtering."""
        return self.inbound_count == 0 and self.outbound_count == 0

    def to_dict(self, leaderboard_limit: Optional[int] = None) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        wallets = self.leaderboard
        if leaderboard_limit is not None:
            wallets = wallets[:leaderboard_limit]
        return {
            "watched_address": self.watched_address,
            "generated_at": self.generated_at,
            "total_inbound_amount": str(self.total_inbound_amount),
            "total_outbound_amount": str(self.total_outbound_amount),
            "window_volume": str(self.window_volume),
            "window_seconds": self.window_seconds,
            "inbound_count": self.inbound_count,
            "outbound_count": self.outbound_count,
            "unique_counterparty_count": self.unique_counterparty_count,
            "leaderboard": [w.to_dict() for w in wallets],
            "recent": [r.to_dict() for r in self.recent],
        }


@dataclass
class RefreshResult:
    """Outcome of one refresh cycle, as seen by the presentation layer."""
    snapshot: Optional[TrackerSnapshot]
    error: Optional[str] = None
    stale: bool = False
    refreshed_at: Optional[datetime] = None
    last_success_at: Optional[datetime] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "error": self.error,
            "stale": self.stale,
            "refreshed_at": self.refreshed_at.isoformat() if self.refreshed_at else None,
            "last_success_at": self.last_success_at.isoformat() if self.last_success_at else None,
        }


@dataclass
class ServiceStats:
    """Refresh cycle counters."""
    cycles: int = 0
    successful: int = 0
    failed: int = 0
    last_error: Optional[str] = None
    last_error_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "cycles": self.cycles,
            "successful": self.successful,
            "failed": self.failed,
            "last_error": self.last_error,
            "last_error_at": self.last_error_at.isoformat() if self.last_error_at else None,
        }
