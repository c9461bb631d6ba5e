"""
Checkout Rules API - Main Application.

FastAPI application exposing the promotion and risk engines to the POS
frontend.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import __version__
from api.dependencies import get_settings

logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Create FastAPI application
app = FastAPI(
    title="Checkout Rules API",
    description="Promotion and transaction risk evaluation for point-of-sale checkout",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Configure CORS - Allow all origins for development
# TODO: Restrict origins to the POS frontend hosts in production
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", tags=["Health"])
def health_check():
    """
    Health check endpoint.

    Returns the API status, version and configured data backend.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "service": "checkout-rules-api",
        "data_backend": get_settings().data_backend,
    }


@app.get("/", tags=["Root"])
def root():
    """
    Root endpoint with API information.
    """
    return {
        "message": "Checkout Rules API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health"
    }


# Import and include routers
from api.routers import promotions, risk

app.include_router(promotions.router, prefix="/api/v1", tags=["Promotions"])
app.include_router(risk.router, prefix="/api/v1", tags=["Risk"])
