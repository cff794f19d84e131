"""
Direction Classifier - Split merged transfers into inbound and outbound.

Each side re-tests full membership, so a self-transfer (from == to ==
watched) lands in both sets. Direction sets model cash flow, not a
partition of records.
"""

from typing import Iterable

from .models import CanonicalTransfer


def _counts(record: CanonicalTransfer) -> bool:
    return record.amount > 0 and not record.failed


def is_inbound(record: CanonicalTransfer, watched: str) -> bool:
    return record.to_address == watched and _counts(record)


def is_outbound(record: CanonicalTransfer, watched: str) -> bool:
    return record.from_address == watched and _counts(record)


def classify(
    records: Iterable[CanonicalTransfer],
    watched: str,
) -> tuple[tuple[CanonicalTransfer, ...], tuple[CanonicalTransfer, ...]]:
    """Return (inbound, outbound) relative to the watched address."""
    watched = (watched or "").strip().lower()
    records = tuple(records)

    inbound = tuple(r for r in records if is_inbound(r, watched))
    outbound = tuple(r for r in records if is_outbound(r, watched))
    return inbound, outbound
