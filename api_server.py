"""
FastAPI backend server for claims exposure reporting.
This provides REST API endpoints for the dashboard frontend.
"""

from __future__ import annotations

import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import load_settings, validate_settings
from app.utils import setup_logging

# Setup logging
logger = setup_logging()

# Initialize FastAPI app
app = FastAPI(
    title="Claims Exposure API",
    description="REST API for open-exposure aggregation and BI risk classification",
    version="0.1.0",
)

# Configure CORS for frontend access
allowed_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

frontend_url = os.getenv("FRONTEND_URL")
if frontend_url:
    allowed_origins.append(frontend_url)

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include modular routers
from app.exposure.api import router as exposure_api_router

app.include_router(exposure_api_router)
logger.info("Exposure API router registered")


@app.get("/health")
async def health():
    """Liveness check."""
    return {"status": "ok"}


@app.get("/api/config/status")
async def config_status():
    """Check configuration status."""
    try:
        settings = load_settings()
        errors = validate_settings(settings)
        return {
            "valid": len(errors) == 0,
            "errors": errors,
        }
    except (OSError, ValueError) as e:
        return {
            "valid": False,
            "errors": [str(e)],
        }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
