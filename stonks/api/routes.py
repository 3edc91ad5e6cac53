"""API routes exposing the latest market snapshot."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from stonks.api.dependencies import get_refresh_service
from stonks.services.scheduler_service import (
    RefreshFailedError,
    RefreshInProgressError,
    RefreshService,
)
from stonks.utils.config import SUPPORTED_LOOKBACK_DAYS

router = APIRouter()


@router.get("/assets")
async def get_assets(service: RefreshService = Depends(get_refresh_service)):
    """
    Get the assets from the last completed refresh cycle.

    Returns:
        Snapshot with assets in watchlist order

    Raises:
        HTTPException: 503 before the first cycle completes
    """
    if service.latest is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Market data not loaded yet",
        )
    return service.latest.to_dict()


@router.get("/status")
async def get_status(service: RefreshService = Depends(get_refresh_service)):
    """Refresh scheduler status."""
    latest = service.latest
    return {
        "scheduler_running": service.is_running,
        "cycle_in_progress": service.in_progress,
        "lookback_days": service.lookback_days,
        "interval_seconds": service.interval_seconds,
        "tickers": service.tickers,
        "last_completed_at": latest.completed_at.isoformat() if latest else None,
        "has_errors": latest.has_errors if latest else None,
    }


@router.post("/refresh")
def refresh(
    days: Optional[int] = Query(None, description="Lookback window: 1, 7, 30 or 90"),
    service: RefreshService = Depends(get_refresh_service),
):
    """
    Run a refresh cycle now, optionally switching the lookback window.

    Raises:
        HTTPException: 422 for an unsupported window, 409 while a cycle runs,
            500 when the cycle fails
    """
    if days is not None and days not in SUPPORTED_LOOKBACK_DAYS:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"days must be one of {list(SUPPORTED_LOOKBACK_DAYS)}",
        )

    try:
        snapshot = service.refresh_now(days)
    except RefreshInProgressError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except RefreshFailedError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    return snapshot.to_dict()
