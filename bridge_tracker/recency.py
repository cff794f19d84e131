"""Recency View - Latest transfers across both directions."""

from typing import Iterable

from .models import CanonicalTransfer, Direction, RecentTransfer


DEFAULT_RECENT_LIMIT = 12


def recent(
    inbound: Iterable[CanonicalTransfer],
    outbound: Iterable[CanonicalTransfer],
    limit: int = DEFAULT_RECENT_LIMIT,
) -> tuple[RecentTransfer, ...]:
    """Most recent transfers first; equal timestamps keep merge order."""
    if limit <= 0:
        return ()

    merged = [RecentTransfer(t, Direction.IN) for t in inbound]
    merged.extend(RecentTransfer(t, Direction.OUT) for t in outbound)
    merged.sort(key=lambda r: r.transfer.timestamp, reverse=True)
    return tuple(merged[:limit])
