"""
Aggregation Engine - One full pass from raw feeds to a TrackerSnapshot.

Pipeline:
    raw feeds -> normalize -> merge -> classify -> {aggregate, recent} -> rank

The engine is stateless. Given the same feeds, watched address and now,
it returns an equal snapshot every time, and concurrent calls do not
interact.
"""

import logging
import time
from typing import Any, Iterable, Mapping, Optional, Union

from .aggregator import aggregate
from .classifier import classify
from .config import DEFAULT_WINDOW_SECONDS
from .merger import merge
from .models import CanonicalTransfer, TrackerSnapshot
from .normalizer import normalize_batch
from .ranker import rank
from .recency import DEFAULT_RECENT_LIMIT, recent


logger = logging.getLogger(__name__)


RawFeeds = Union[
    Mapping[str, Optional[Iterable[Any]]],
    Iterable[Optional[Iterable[Any]]],
]


def normalize_feeds(feeds: Optional[RawFeeds]) -> list[list[CanonicalTransfer]]:
    """Normalize each feed, tagging records with the feed name when known."""
    if feeds is None:
        return []
    if isinstance(feeds, Mapping):
        return [normalize_batch(raws, source) for source, raws in feeds.items()]
    return [normalize_batch(raws) for raws in feeds]


def build_snapshot(
    feeds: Optional[RawFeeds],
    watched: str,
    now: Optional[int] = None,
    window_seconds: int = DEFAULT_WINDOW_SECONDS,
    recent_limit: int = DEFAULT_RECENT_LIMIT,
) -> TrackerSnapshot:
    """
    Aggregate raw feeds into an immutable snapshot.

    Args:
        feeds: {"normal": [...], "internal": [...]} or a sequence of raw lists.
            Missing feeds count as zero transfers.
        watched: Watched contract address (any case)
        now: Reference time in unix seconds (defaults to current time)
        window_seconds: Trailing window for volume
        recent_limit: Size of the recency feed

    Returns:
        TrackerSnapshot with amounts in base unit
    """
    watched = (watched or "").strip().lower()
    if now is None:
        now = int(time.time())

    merged = merge(normalize_feeds(feeds))
    inbound, outbound = classify(merged, watched)
    totals = aggregate(inbound, outbound, now, window_seconds)
    leaderboard = rank(totals.wallets)

    logger.debug(
        f"Aggregated {len(merged)} unique transfers: "
        f"{totals.inbound_count} in, {totals.outbound_count} out, "
        f"{len(leaderboard)} counterparties"
    )

    return TrackerSnapshot(
        watched_address=watched,
        generated_at=now,
        total_inbound_amount=totals.total_inbound,
        total_outbound_amount=totals.total_outbound,
        window_volume=totals.window_volume,
        window_seconds=window_seconds,
        inbound_count=totals.inbound_count,
        outbound_count=totals.outbound_count,
        unique_counterparty_count=len(leaderboard),
        leaderboard=leaderboard,
        recent=recent(inbound, outbound, recent_limit),
    )
