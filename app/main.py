"""
Product Asset Jobs API
FastAPI Backend Entry Point
"""

import asyncio
import io
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from sqlalchemy import text

from app.core.config import settings
from app.core.database import SessionLocal, init_db
from app.api import jobs
from app.services.storage import StorageService

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
    ".gif": "image/gif",
    ".glb": "model/gltf-binary",
    ".stl": "model/stl",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info(f"Starting {settings.APP_NAME}...")
    init_db()

    stop_event = asyncio.Event()
    worker_task = None
    if settings.EMBEDDED_WORKER:
        from app.workers.dispatcher import Dispatcher
        worker_task = asyncio.create_task(Dispatcher().run(stop_event))
        logger.info("Embedded dispatcher started")

    yield

    logger.info(f"Shutting down {settings.APP_NAME}...")
    if worker_task is not None:
        stop_event.set()
        await worker_task


app = FastAPI(
    title=settings.APP_NAME,
    description="Background job orchestration for product artwork, mockups and 3D figurines",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(jobs.router, prefix="/api/v1/jobs", tags=["Jobs"])


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint for Cloud Run and monitoring.
    Returns detailed status of critical services.
    """
    status = {
        "status": "healthy",
        "version": "0.1.0",
        "environment": {
            "storage": "gcs" if settings.USE_GCS else "local",
            "database": "sqlite" if settings.DATABASE_URL.startswith("sqlite") else "postgresql",
            "embedded_worker": settings.EMBEDDED_WORKER,
        },
        "services": {}
    }

    try:
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()
        status["services"]["database"] = "ok"
    except Exception as e:
        status["services"]["database"] = f"error: {str(e)}"
        status["status"] = "degraded"

    try:
        if settings.USE_GCS:
            from google.cloud import storage
            client = storage.Client(project=settings.GCP_PROJECT_ID or None)
            client.bucket(settings.GCS_BUCKET).exists()
        elif not os.path.isdir(settings.LOCAL_STORAGE_PATH):
            raise FileNotFoundError(settings.LOCAL_STORAGE_PATH)
        status["services"]["storage"] = "ok"
    except Exception as e:
        status["services"]["storage"] = f"error: {str(e)}"
        status["status"] = "degraded"

    return status


@app.get("/files/{file_path:path}", tags=["Files"])
async def serve_file(file_path: str):
    """
    Serve persisted assets from storage.
    This proxies files from GCS/local storage to the frontend.
    """
    try:
        file_bytes = await StorageService().get_file(file_path)
    except Exception as e:
        raise HTTPException(status_code=404, detail=f"File not found: {str(e)}")

    content_type = CONTENT_TYPES.get(os.path.splitext(file_path)[1].lower(), "application/octet-stream")
    return StreamingResponse(
        io.BytesIO(file_bytes),
        media_type=content_type,
        headers={
            "Cache-Control": "public, max-age=3600",
            "Access-Control-Allow-Origin": "*"
        }
    )


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint."""
    return {
        "message": settings.APP_NAME,
        "docs": "/docs",
        "health": "/health",
    }
