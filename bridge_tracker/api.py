"""
Bridge Tracker - API.

============================================================
RESPONSIBILITY
============================================================
Read-only REST API over the tracker service.

- Raw upstream passthrough (/api/bridge-txs)
- Aggregated snapshot, leaderboard, recent activity
- CSV export of the leaderboard
- Manual refresh trigger
============================================================
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, List, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import BaseModel

from .exceptions import ConfigurationError, FetchError
from .export import (
    format_amount,
    leaderboard_csv,
    leaderboard_rows,
    plain_decimal,
    to_display_units,
)
from .models import RefreshResult, TrackerSnapshot
from .ranker import search
from .service import TrackerService

logger = logging.getLogger(__name__)


API_VERSION = "1.0.0"
CSV_FILENAME = "bridge-tracker.csv"


# ============================================================
# Response Models
# ============================================================

class HealthResponse(BaseModel):
    status: str
    timestamp: str
    version: str = API_VERSION
    uptime_seconds: float = 0


class RefreshStatus(BaseModel):
    ok: bool
    error: Optional[str] = None
    stale: bool = False
    refreshed_at: Optional[str] = None
    last_success_at: Optional[str] = None


class LeaderboardEntry(BaseModel):
    rank: int
    address: str
    total_amount: str
    total_display: str
    transfer_count: int
    last_seen: int


class RecentEntry(BaseModel):
    id: str
    direction: str
    counterparty: str
    amount: str
    amount_display: str
    timestamp: int


class SnapshotResponse(BaseModel):
    status: RefreshStatus
    watched_address: str
    generated_at: int
    total_inbound_amount: str
    total_outbound_amount: str
    window_volume: str
    window_seconds: int
    inbound_count: int
    outbound_count: int
    unique_counterparty_count: int
    leaderboard: List[LeaderboardEntry]
    recent: List[RecentEntry]


# ============================================================
# Helpers
# ============================================================

def _status(result: RefreshResult) -> RefreshStatus:
    return RefreshStatus(**result.to_dict())


def _leaderboard_entries(wallets, limit: Optional[int]) -> List[LeaderboardEntry]:
    rows = leaderboard_rows(wallets)
    if limit is not None:
        rows = rows[:limit]
    return [
        LeaderboardEntry(
            rank=row.rank,
            address=row.address,
            total_amount=str(row.total_amount),
            total_display=plain_decimal(to_display_units(row.total_amount)),
            transfer_count=row.transfer_count,
            last_seen=row.last_seen,
        )
        for row in rows
    ]


def _recent_entries(snapshot: TrackerSnapshot, limit: Optional[int] = None) -> List[RecentEntry]:
    items = snapshot.recent if limit is None else snapshot.recent[:limit]
    return [
        RecentEntry(
            id=item.transfer.id,
            direction=item.direction.value,
            counterparty=item.counterparty,
            amount=str(item.transfer.amount),
            amount_display=format_amount(item.transfer.amount),
            timestamp=item.transfer.timestamp,
        )
        for item in items
    ]


def _require_snapshot(service: TrackerService) -> TrackerSnapshot:
    snapshot = service.current().snapshot
    if snapshot is None:
        raise HTTPException(
            status_code=503,
            detail=service.current().error or "No data loaded yet",
        )
    return snapshot


# ============================================================
# FastAPI Application
# ============================================================

def create_app(
    service: Optional[TrackerService] = None,
    background_refresh: bool = False,
) -> FastAPI:
    """
    Build the API around a tracker service.

    With background_refresh the service refresh loop runs for the lifetime
    of the application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        task = None
        if background_refresh:
            task = asyncio.create_task(app.state.service.run_forever())
        yield
        if task is not None:
            app.state.service.stop()
            await task
        await app.state.service.close()

    app = FastAPI(
        lifespan=lifespan,
        title="Bridge Tracker API",
        description="Aggregated transfer statistics for a watched contract",
        version=API_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.service = service or TrackerService()
    app.state.started_at = datetime.utcnow()

    def get_service(request: Request) -> TrackerService:
        return request.app.state.service

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check(request: Request):
        """Health check endpoint."""
        uptime = (datetime.utcnow() - request.app.state.started_at).total_seconds()
        return HealthResponse(
            status="healthy",
            timestamp=datetime.utcnow().isoformat(),
            uptime_seconds=uptime,
        )

    @app.get("/api/bridge-txs", tags=["Upstream"])
    async def bridge_txs(request: Request) -> dict[str, Any]:
        """Raw normal and internal transaction envelopes from Etherscan."""
        try:
            return await get_service(request).fetch_raw()
        except ConfigurationError as e:
            raise HTTPException(status_code=400, detail=e.message)
        except FetchError as e:
            logger.warning(f"Upstream fetch failed: {e}")
            raise HTTPException(status_code=502, detail=e.message)

    @app.get("/api/snapshot", response_model=SnapshotResponse, tags=["Tracker"])
    async def get_snapshot(request: Request):
        """Latest aggregated snapshot (possibly stale, see status)."""
        service = get_service(request)
        snapshot = _require_snapshot(service)
        return SnapshotResponse(
            status=_status(service.current()),
            watched_address=snapshot.watched_address,
            generated_at=snapshot.generated_at,
            total_inbound_amount=str(snapshot.total_inbound_amount),
            total_outbound_amount=str(snapshot.total_outbound_amount),
            window_volume=str(snapshot.window_volume),
            window_seconds=snapshot.window_seconds,
            inbound_count=snapshot.inbound_count,
            outbound_count=snapshot.outbound_count,
            unique_counterparty_count=snapshot.unique_counterparty_count,
            leaderboard=_leaderboard_entries(
                snapshot.leaderboard, service.config.leaderboard_limit
            ),
            recent=_recent_entries(snapshot),
        )

    @app.get("/api/leaderboard", response_model=List[LeaderboardEntry], tags=["Tracker"])
    async def get_leaderboard(
        request: Request,
        q: Optional[str] = Query(None, description="Address substring filter"),
        limit: int = Query(20, ge=1, le=1000),
    ):
        """Ranked bridgers. Rank is the position in the filtered list."""
        snapshot = _require_snapshot(get_service(request))
        return _leaderboard_entries(search(snapshot.leaderboard, q), limit)

    @app.get("/api/leaderboard.csv", tags=["Tracker"])
    async def export_leaderboard(request: Request, raw: bool = False):
        """Full leaderboard as a CSV attachment."""
        snapshot = _require_snapshot(get_service(request))
        content = leaderboard_csv(snapshot.leaderboard, display_units=not raw)
        return Response(
            content=content,
            media_type="text/csv; charset=utf-8",
            headers={"Content-Disposition": f'attachment; filename="{CSV_FILENAME}"'},
        )

    @app.get("/api/recent", response_model=List[RecentEntry], tags=["Tracker"])
    async def get_recent(
        request: Request,
        limit: int = Query(12, ge=1, le=100),
    ):
        """Most recent inbound and outbound transfers."""
        snapshot = _require_snapshot(get_service(request))
        return _recent_entries(snapshot, limit)

    @app.post("/api/refresh", response_model=RefreshStatus, tags=["Tracker"])
    async def refresh(request: Request):
        """Run a refresh cycle now."""
        result = await get_service(request).refresh()
        return _status(result)

    @app.get("/api/stats", tags=["Tracker"])
    async def stats(request: Request) -> dict[str, Any]:
        """Refresh cycle counters."""
        return get_service(request).get_stats()

    return app
