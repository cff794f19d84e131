"""
Aggregator - Totals, trailing volume window and per-counterparty rollup.

All arithmetic is on Python ints (arbitrary precision, base unit).
Floating point never enters this module.
"""

from typing import Iterable

from .config import DEFAULT_WINDOW_SECONDS
from .models import CanonicalTransfer, TransferTotals, WalletAggregate


def sum_amounts(records: Iterable[CanonicalTransfer]) -> int:
    """Exact integer sum of amounts."""
    return sum((r.amount for r in records), 0)


def volume_window(
    inbound: Iterable[CanonicalTransfer],
    now: int,
    window_seconds: int = DEFAULT_WINDOW_SECONDS,
) -> int:
    """
    Sum inbound amounts with now - timestamp <= window_seconds.

    Timestamps ahead of now (clock skew) have a negative age and are
    included.
    """
    if window_seconds < 0:
        raise ValueError("window_seconds must be >= 0")
    return sum_amounts(r for r in inbound if now - r.timestamp <= window_seconds)


def wallet_rollup(inbound: Iterable[CanonicalTransfer]) -> tuple[WalletAggregate, ...]:
    """Group inbound transfers by sender, in first-seen order."""
    groups: dict[str, list[int]] = {}
    for record in inbound:
        entry = groups.get(record.from_address)
        if entry is None:
            # [total_amount, transfer_count, last_seen]
            groups[record.from_address] = [record.amount, 1, record.timestamp]
        else:
            entry[0] += record.amount
            entry[1] += 1
            entry[2] = max(entry[2], record.timestamp)

    return tuple(
        WalletAggregate(
            address=address,
            total_amount=total,
            transfer_count=count,
            last_seen=last_seen,
        )
        for address, (total, count, last_seen) in groups.items()
    )


def aggregate(
    inbound: Iterable[CanonicalTransfer],
    outbound: Iterable[CanonicalTransfer],
    now: int,
    window_seconds: int = DEFAULT_WINDOW_SECONDS,
) -> TransferTotals:
    """Compute totals, windowed inbound volume and the wallet rollup."""
    inbound = tuple(inbound)
    outbound = tuple(outbound)

    return TransferTotals(
        total_inbound=sum_amounts(inbound),
        total_outbound=sum_amounts(outbound),
        window_volume=volume_window(inbound, now, window_seconds),
        window_seconds=window_seconds,
        inbound_count=len(inbound),
        outbound_count=len(outbound),
        wallets=wallet_rollup(inbound),
    )
