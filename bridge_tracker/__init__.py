"""
Bridge Tracker Package - Transfer aggregation and leaderboard engine.

Turns the raw transaction feeds of one watched contract into totals,
windowed volume, a ranked bridger leaderboard and a recency feed.

Features:
- Total (never-failing) normalization of raw rows
- Deduplication across normal and internal feeds (first seen wins)
- Exact integer accounting in wei
- Deterministic leaderboard ordering
- Last-good-snapshot retention across refresh cycles

Quick Start:
    from bridge_tracker import TrackerService, format_amount

    async def show():
        service = TrackerService()
        result = await service.refresh()

        if result.error:
            print(f"Refresh failed: {result.error}")
        if result.snapshot:
            print(f"Bridge in: {format_amount(result.snapshot.total_inbound_amount)} ETH")
            for wallet in result.snapshot.leaderboard[:20]:
                print(wallet.address, wallet.total_amount)

Pure engine (no network):
    from bridge_tracker import build_snapshot

    snapshot = build_snapshot(
        {"normal": normal_rows, "internal": internal_rows},
        watched="0x0ca3...",
        now=1700000000,
    )
"""

from bridge_tracker.aggregator import aggregate, sum_amounts, volume_window, wallet_rollup
from bridge_tracker.classifier import classify
from bridge_tracker.config import TrackerConfig, get_config, set_config
from bridge_tracker.engine import build_snapshot
from bridge_tracker.exceptions import (
    BridgeTrackerError,
    ConfigurationError,
    FetchError,
    RateLimitError,
    UpstreamError,
)
from bridge_tracker.export import (
    format_amount,
    leaderboard_csv,
    leaderboard_rows,
    short_address,
    to_display_units,
)
from bridge_tracker.merger import merge
from bridge_tracker.models import (
    CanonicalTransfer,
    Direction,
    FeedSource,
    LeaderboardRow,
    RecentTransfer,
    RefreshResult,
    TrackerSnapshot,
    TransferTotals,
    WalletAggregate,
)
from bridge_tracker.normalizer import normalize, normalize_batch
from bridge_tracker.providers import EtherscanClient
from bridge_tracker.ranker import rank, search
from bridge_tracker.recency import recent
from bridge_tracker.service import TrackerService


__version__ = "1.0.0"

__all__ = [
    # Engine
    "normalize",
    "normalize_batch",
    "merge",
    "classify",
    "aggregate",
    "sum_amounts",
    "volume_window",
    "wallet_rollup",
    "rank",
    "search",
    "recent",
    "build_snapshot",

    # Models
    "CanonicalTransfer",
    "WalletAggregate",
    "RecentTransfer",
    "TransferTotals",
    "TrackerSnapshot",
    "LeaderboardRow",
    "RefreshResult",
    "Direction",
    "FeedSource",

    # Export
    "format_amount",
    "leaderboard_csv",
    "leaderboard_rows",
    "short_address",
    "to_display_units",

    # Exceptions
    "BridgeTrackerError",
    "ConfigurationError",
    "FetchError",
    "RateLimitError",
    "UpstreamError",

    # Runtime
    "TrackerConfig",
    "get_config",
    "set_config",
    "EtherscanClient",
    "TrackerService",
]
