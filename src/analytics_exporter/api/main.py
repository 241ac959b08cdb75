"""FastAPI application factory."""
from fastapi import FastAPI

from analytics_exporter.api.routes import sync as sync_routes


def create_app() -> FastAPI:
    """Build and return the FastAPI app."""
    app = FastAPI(
        title="Analytics Exporter",
        description="Sync status and on-demand trigger for the analytics export",
        version="1.0.0",
    )

    app.include_router(sync_routes.router, prefix="/sync", tags=["sync"])

    return app


# Module-level app instance for uvicorn
app = create_app()
