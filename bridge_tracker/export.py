"""
Export - Presentation boundary helpers.

============================================================
RESPONSIBILITY
============================================================
- Convert base-unit integers to display units (one-way)
- Flatten the ranked leaderboard into fixed-order rows
- Serialize the leaderboard as CSV
- Render a plain-text snapshot summary

Nothing produced here is fed back into accounting.
============================================================
"""

import csv
import io
import logging
from datetime import datetime, timezone
from decimal import Context, Decimal
from typing import Iterable, Optional

from .models import Direction, LeaderboardRow, TrackerSnapshot, WalletAggregate


logger = logging.getLogger(__name__)


DISPLAY_DECIMALS = 18  # wei -> ETH
DISPLAY_SYMBOL = "ETH"

CSV_COLUMNS = ["rank", "wallet", "total_eth", "deposits", "last_bridge"]
CSV_COLUMNS_RAW = ["rank", "wallet", "total_wei", "deposits", "last_bridge"]

UNKNOWN_TIME = "-"


# ============================================================
# FORMATTING
# ============================================================

def _exact_context(digits: int) -> Context:
    return Context(prec=max(digits, 1))


def to_display_units(amount: int, decimals: int = DISPLAY_DECIMALS) -> Decimal:
    """Scale a base-unit integer down to display units, without rounding."""
    return Decimal(amount).scaleb(-decimals, context=_exact_context(len(str(abs(amount)))))


def plain_decimal(value: Decimal) -> str:
    """Decimal as plain text without trailing zeros or exponent."""
    normalized = value.normalize(context=_exact_context(len(value.as_tuple().digits)))
    return format(normalized, "f")


def format_amount(amount: int, places: int = 4) -> str:
    """Base-unit integer as a display string, e.g. 1234500000000000000000 -> '1,234.5000'."""
    return f"{to_display_units(amount):,.{places}f}"


def short_address(address: Optional[str]) -> str:
    """0x1234567890... -> 0x1234...7890"""
    if not address:
        return ""
    if len(address) <= 10:
        return address
    return f"{address[:6]}...{address[-4:]}"


def _utc_strftime(ts: int, fmt: str) -> str:
    try:
        return datetime.fromtimestamp(ts, tz=timezone.utc).strftime(fmt)
    except (ValueError, OverflowError, OSError):
        logger.debug(f"Unrepresentable timestamp: {ts}")
        return UNKNOWN_TIME


def format_timestamp(ts: int) -> str:
    return _utc_strftime(ts, "%Y-%m-%d %H:%M:%S")


def iso_timestamp(ts: int) -> str:
    return _utc_strftime(ts, "%Y-%m-%dT%H:%M:%SZ")


# ============================================================
# LEADERBOARD EXPORT
# ============================================================

def leaderboard_rows(ranked: Iterable[WalletAggregate]) -> list[LeaderboardRow]:
    """Flatten ranked wallets into rows with 1-based rank."""
    return [
        LeaderboardRow(
            rank=index,
            address=wallet.address,
            total_amount=wallet.total_amount,
            transfer_count=wallet.transfer_count,
            last_seen=wallet.last_seen,
        )
        for index, wallet in enumerate(ranked, start=1)
    ]


def leaderboard_csv(
    ranked: Iterable[WalletAggregate],
    delimiter: str = ",",
    display_units: bool = True,
) -> str:
    """
    Serialize the ranked leaderboard as CSV.

    Args:
        ranked: Wallets in leaderboard order
        delimiter: Field delimiter
        display_units: Emit ETH decimals (total_eth) instead of raw wei (total_wei)

    Returns:
        CSV text including the header row
    """
    fieldnames = CSV_COLUMNS if display_units else CSV_COLUMNS_RAW
    amount_field = fieldnames[2]

    output = io.StringIO()
    writer = csv.DictWriter(
        output,
        fieldnames=fieldnames,
        delimiter=delimiter,
        quoting=csv.QUOTE_MINIMAL,
        lineterminator="\n",
    )
    writer.writeheader()

    rows = leaderboard_rows(ranked)
    for row in rows:
        if display_units:
            amount = plain_decimal(to_display_units(row.total_amount))
        else:
            amount = str(row.total_amount)
        writer.writerow({
            "rank": row.rank,
            "wallet": row.address,
            amount_field: amount,
            "deposits": row.transfer_count,
            "last_bridge": iso_timestamp(row.last_seen),
        })

    logger.debug(f"Exported {len(rows)} leaderboard rows as CSV")
    return output.getvalue()


# ============================================================
# TEXT SUMMARY
# ============================================================

def format_snapshot_text(
    snapshot: TrackerSnapshot,
    top: int = 20,
    wallets: Optional[Iterable[WalletAggregate]] = None,
) -> str:
    """Render a snapshot as plain text for terminals."""
    hours = snapshot.window_seconds / 3600
    lines = [
        f"Contract:         {snapshot.watched_address}",
        f"Bridge in:        {format_amount(snapshot.total_inbound_amount)} {DISPLAY_SYMBOL} "
        f"({snapshot.inbound_count} txs)",
        f"Bridge out:       {format_amount(snapshot.total_outbound_amount)} {DISPLAY_SYMBOL} "
        f"({snapshot.outbound_count} txs)",
        f"Volume ({hours:g}h):    {format_amount(snapshot.window_volume)} {DISPLAY_SYMBOL}",
        f"Unique bridgers:  {snapshot.unique_counterparty_count}",
        "",
        "Top bridgers",
    ]

    board = tuple(snapshot.leaderboard if wallets is None else wallets)[:top]
    if not board:
        lines.append("  No bridge data available")
    for row in leaderboard_rows(board):
        lines.append(
            f"  {row.rank:>3}. {short_address(row.address):<14} "
            f"{format_amount(row.total_amount):>16} {DISPLAY_SYMBOL}  "
            f"{row.transfer_count:>4} deposits  last {format_timestamp(row.last_seen)}"
        )

    lines.append("")
    lines.append("Recent activity")
    if not snapshot.recent:
        lines.append("  No recent activity")
    for item in snapshot.recent:
        badge = "IN " if item.direction == Direction.IN else "OUT"
        lines.append(
            f"  {badge} {short_address(item.counterparty):<14} "
            f"{format_amount(item.transfer.amount):>16} {DISPLAY_SYMBOL}  "
            f"{format_timestamp(item.transfer.timestamp)}"
        )

    return "\n".join(lines)
