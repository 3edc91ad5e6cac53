"""FastAPI dependencies for the market data API."""

from stonks.services.scheduler_service import RefreshService
from stonks.utils.config import config

_refresh_service: RefreshService | None = None


def get_refresh_service() -> RefreshService:
    """
    FastAPI dependency returning the process-wide refresh service.

    The service is built from the global config on first use.
    """
    global _refresh_service
    if _refresh_service is None:
        _refresh_service = RefreshService.from_config(config)
    return _refresh_service
