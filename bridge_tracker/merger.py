"""
Deduplicating Merger - Combine transfer feeds keyed by transaction hash.

First occurrence wins. Output keeps first-seen order, which is the base
ordering the stable sorts downstream rely on.

Records without a hash cannot be matched against anything, so each one is
kept as a distinct transfer.
"""

from typing import Iterable, Optional

from .models import CanonicalTransfer


def merge(
    streams: Optional[Iterable[Optional[Iterable[CanonicalTransfer]]]],
) -> tuple[CanonicalTransfer, ...]:
    """Merge streams into one sequence with unique ids."""
    if streams is None:
        return ()

    merged: list[CanonicalTransfer] = []
    seen: set[str] = set()
    for stream in streams:
        if not stream:
            continue
        for record in stream:
            if not record.id:
                merged.append(record)
                continue
            if record.id not in seen:
                seen.add(record.id)
                merged.append(record)

    return tuple(merged)
