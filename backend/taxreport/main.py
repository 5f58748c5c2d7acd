"""
Tax Report Backend API
FastAPI application that collects receipt emails from Microsoft Graph,
extracts amounts and dates, and bundles them into a downloadable report.
"""

import logging
import os
from typing import List

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from taxreport.routers import emails

# Configure logging to output to console
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Tax Report API",
    description="Receipt email search, amount/date extraction and report bundling",
    version="0.1.0",
)


def get_cors_origins() -> List[str]:
    """
    Build the list of allowed CORS origins.

    Always includes http://localhost:3000 (front-end dev server). Additional
    origins are read from the CORS_ORIGINS environment variable as a
    comma-separated list, e.g.:
        CORS_ORIGINS=https://taxreport.example.ch,https://preview.example.ch

    Duplicates are removed while preserving order.
    """
    always_included = ["http://localhost:3000"]

    extra_origins: List[str] = []
    cors_env = os.getenv("CORS_ORIGINS", "").strip()
    if cors_env:
        extra_origins = [o.strip() for o in cors_env.split(",") if o.strip()]

    # Deduplicate while preserving order
    seen: set = set()
    origins: List[str] = []
    for origin in always_included + extra_origins:
        if origin not in seen:
            seen.add(origin)
            origins.append(origin)

    return origins


app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "X-Skipped-Items"],
)

app.include_router(emails.router, prefix="/api/emails", tags=["emails"])


@app.on_event("startup")
async def log_startup_url() -> None:
    host_port = os.getenv("HOST_PORT", "8000")
    logger.info("Tax Report API running at http://localhost:%s", host_port)


@app.get("/")
async def root():
    return {"message": "Tax Report API", "version": "0.1.0"}


@app.get("/health")
async def health():
    return {"status": "ok"}
