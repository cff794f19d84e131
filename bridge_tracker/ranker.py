"""
Ranker - Deterministic leaderboard ordering.

Order: total_amount desc, then transfer_count desc. Remaining ties keep
input order (sorted() is stable). No truncation here; callers apply display
limits.
"""

from typing import Iterable, Optional

from .models import WalletAggregate


def _rank_key(wallet: WalletAggregate) -> tuple[int, int]:
    return (-wallet.total_amount, -wallet.transfer_count)


def rank(wallets: Iterable[WalletAggregate]) -> tuple[WalletAggregate, ...]:
    """Sort wallets into leaderboard order."""
    return tuple(sorted(wallets, key=_rank_key))


def search(
    wallets: Iterable[WalletAggregate],
    query: Optional[str],
) -> tuple[WalletAggregate, ...]:
    """Case-insensitive address substring filter that preserves order."""
    wallets = tuple(wallets)
    q = (query or "").strip().lower()
    if not q:
        return wallets
    return tuple(w for w in wallets if q in w.address)
