"""Main application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from stonks.api.dependencies import get_refresh_service
from stonks.api.routes import router
from stonks.utils.config import config


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan events."""
    # Startup
    try:
        config.validate()
    except ValueError as e:
        print(f"Configuration error: {e}")
        raise
    refresh_service = get_refresh_service()
    refresh_service.start()
    yield
    # Shutdown
    refresh_service.stop()


# Create FastAPI app
app = FastAPI(
    title="Stonks Market Data",
    description="Crypto and equity prices with a rate-limited, cached refresh loop",
    version="1.0.0",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(router, prefix="/api", tags=["market-data"])


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
