"""
Tracker Service - Refresh cycles around the aggregation engine.

Coordinates:
- Etherscan client (fan-out of both feeds)
- Aggregation engine (pure)
- Last-good-result retention

A failed cycle never replaces the published snapshot. The caller sees the
previous snapshot flagged stale, with the error attached.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Callable, Optional

from .config import TrackerConfig, get_config
from .engine import build_snapshot
from .exceptions import BridgeTrackerError
from .models import RefreshResult, ServiceStats, TrackerSnapshot
from .providers import EtherscanClient


logger = logging.getLogger(__name__)


class TrackerService:
    """
    Runs refresh cycles and keeps the last good snapshot.

    Usage:
        service = TrackerService()
        result = await service.refresh()
        if result.error:
            print(f"Showing stale data: {result.error}")
        print(result.snapshot.total_inbound_amount)
    """

    def __init__(
        self,
        config: Optional[TrackerConfig] = None,
        client: Optional[EtherscanClient] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.config = config or get_config()
        self.client = client or EtherscanClient(self.config)
        self._clock = clock or time.time

        self._snapshot: Optional[TrackerSnapshot] = None
        self._last_success_at: Optional[datetime] = None
        self._current = RefreshResult(snapshot=None, error="No data loaded yet", stale=True)

        self._lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._auto_refresh = self.config.auto_refresh
        self.stats = ServiceStats()

    @property
    def snapshot(self) -> Optional[TrackerSnapshot]:
        """Last successfully published snapshot."""
        return self._snapshot

    @property
    def auto_refresh(self) -> bool:
        return self._auto_refresh

    def set_auto_refresh(self, enabled: bool) -> None:
        self._auto_refresh = enabled
        logger.info(f"Auto refresh {'enabled' if enabled else 'disabled'}")

    def current(self) -> RefreshResult:
        """Latest refresh outcome."""
        return self._current

    async def refresh(self) -> RefreshResult:
        """
        Run one refresh cycle.

        Cycles never overlap: a second caller waits for the running cycle
        to settle and then runs its own.
        """
        async with self._lock:
            return await self._run_cycle()

    async def _run_cycle(self) -> RefreshResult:
        self.stats.cycles += 1
        refreshed_at = datetime.utcnow()

        try:
            feeds = await self.client.fetch_streams()
            snapshot = build_snapshot(
                feeds,
                self.config.watched_address,
                now=int(self._clock()),
                window_seconds=self.config.window_seconds,
                recent_limit=self.config.recent_limit,
            )
        except BridgeTrackerError as e:
            self.stats.failed += 1
            self.stats.last_error = e.message
            self.stats.last_error_at = refreshed_at
            logger.error(f"Refresh failed, keeping previous snapshot: {e}")

            self._current = RefreshResult(
                snapshot=self._snapshot,
                error=e.message,
                stale=True,
                refreshed_at=refreshed_at,
                last_success_at=self._last_success_at,
            )
            return self._current

        self.stats.successful += 1
        self._snapshot = snapshot
        self._last_success_at = refreshed_at
        self._current = RefreshResult(
            snapshot=snapshot,
            refreshed_at=refreshed_at,
            last_success_at=refreshed_at,
        )

        if snapshot.is_empty:
            logger.info("Refresh OK: no bridge transfers")
        else:
            logger.info(
                f"Refresh OK: {snapshot.inbound_count} in, {snapshot.outbound_count} out, "
                f"{snapshot.unique_counterparty_count} bridgers"
            )
        return self._current

    async def fetch_raw(self) -> dict[str, Any]:
        """Raw upstream envelopes, without aggregation."""
        return await self.client.fetch_envelopes()

    async def run_forever(
        self,
        interval: Optional[float] = None,
        on_result: Optional[Callable[[RefreshResult], None]] = None,
    ) -> None:
        """
        Refresh on a fixed interval until stop() is called.

        The first cycle runs immediately. Cycles are skipped while auto
        refresh is disabled.
        """
        interval = interval or self.config.refresh_interval_seconds
        self._stop_event.clear()
        logger.info(f"Refresh loop started (every {interval:g}s)")

        while not self._stop_event.is_set():
            if self._auto_refresh:
                result = await self.refresh()
                if on_result is not None:
                    on_result(result)

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

        logger.info("Refresh loop stopped")

    def stop(self) -> None:
        """Stop run_forever() after the current cycle."""
        self._stop_event.set()

    def get_stats(self) -> dict[str, Any]:
        return {
            **self.stats.to_dict(),
            "auto_refresh": self._auto_refresh,
            "has_snapshot": self._snapshot is not None,
            "last_success_at": self._last_success_at.isoformat() if self._last_success_at else None,
        }

    async def close(self) -> None:
        """Cleanup resources."""
        await self.client.close()
