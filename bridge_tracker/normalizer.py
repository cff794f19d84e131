"""
Record Normalizer - Raw upstream rows to CanonicalTransfer.

Normalization is total: any dict produces a record. A malformed amount
becomes 0 and a malformed timestamp becomes 0, so one bad row never aborts
aggregation of the rest.
"""

import logging
import string
from typing import Any, Iterable, Optional

from .models import CanonicalTransfer


logger = logging.getLogger(__name__)


SUCCESS_FLAG = "0"

# 9999-12-31T23:59:59Z, the last second datetime can represent
MAX_TIMESTAMP = 253402300799


def _address(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip().lower()


def parse_amount(value: Any) -> int:
    """Parse an unsigned base-unit amount. Returns 0 when unusable."""
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value if value >= 0 else 0

    text = str(value).strip()
    if text[:2].lower() == "0x":
        digits = text[2:]
        if not digits or any(c not in string.hexdigits for c in digits):
            return 0
        return int(digits, 16)
    if not (text.isascii() and text.isdigit()):
        return 0
    return int(text, 10)


def parse_timestamp(value: Any) -> int:
    """
    Parse unix seconds from int, float or numeric string.

    Returns 0 when unusable, including values past MAX_TIMESTAMP.
    """
    if value is None or isinstance(value, bool):
        return 0
    try:
        if isinstance(value, (int, float)):
            ts = int(value)
        else:
            text = str(value).strip()
            if text[:2].lower() == "0x":
                ts = int(text, 16)
            else:
                ts = int(float(text))
    except (ValueError, OverflowError):
        return 0
    return ts if 0 <= ts <= MAX_TIMESTAMP else 0


def is_failed(flag: Any) -> bool:
    """Absent flag means success; anything but "0" means failure."""
    if flag is None:
        return False
    return str(flag).strip() != SUCCESS_FLAG


def normalize(raw: dict[str, Any], source: str = "") -> CanonicalTransfer:
    """Convert one raw transaction row into a CanonicalTransfer."""
    return CanonicalTransfer(
        id=str(raw.get("hash") or ""),
        from_address=_address(raw.get("from")),
        to_address=_address(raw.get("to")),
        amount=parse_amount(raw.get("value")),
        timestamp=parse_timestamp(raw.get("timeStamp")),
        failed=is_failed(raw.get("isError")),
        source=source,
    )


def normalize_batch(
    raws: Optional[Iterable[Any]],
    source: str = "",
) -> list[CanonicalTransfer]:
    """Normalize a whole feed; non-dict rows are skipped."""
    if raws is None:
        return []

    records = []
    skipped = 0
    for raw in raws:
        if not isinstance(raw, dict):
            skipped += 1
            continue
        records.append(normalize(raw, source))

    if skipped:
        logger.debug(f"Skipped {skipped} non-dict rows in {source or 'feed'}")
    return records
