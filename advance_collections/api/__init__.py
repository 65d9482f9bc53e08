"""
Collections API Application Factory
"""

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .collections import router as collections_router
from .advances import router as advances_router
from .webhooks import router as webhooks_router
from .reports import router as reports_router
from .. import __version__


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Advance Collections API",
        description="Collections and repayment reconciliation for agricultural cash advances",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(collections_router, prefix="/collections", tags=["Collections"])
    app.include_router(advances_router, prefix="/advances", tags=["Advances"])
    app.include_router(webhooks_router, prefix="/webhooks", tags=["Webhooks"])
    app.include_router(reports_router, prefix="/reports", tags=["Reports"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "advance_collections_api",
            "version": __version__
        }

    return app


app = create_app()


def run_server(host: str = "0.0.0.0", port: int = 8091, debug: bool = False):
    """Run the FastAPI server"""
    uvicorn.run(
        "advance_collections.api:app",
        host=host,
        port=port,
        reload=debug,
        log_level="info"
    )
