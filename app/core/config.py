"""
Application Configuration
Loads settings from environment variables.
"""

from typing import List, Dict
from pydantic_settings import BaseSettings
from pydantic import field_validator
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    APP_NAME: str = "Product Asset Jobs API"
    DEBUG: bool = False

    # Database - SQLite for local dev, PostgreSQL for production
    DATABASE_URL: str = "sqlite:///./asset_jobs.db"

    # Replicate (image synthesis, mockups, upscaling, image-to-3D)
    REPLICATE_API_TOKEN: str = ""
    # Models fanned out by image_generate jobs
    IMAGE_MODELS: List[Dict] = [
        {
            "id": "black-forest-labs/flux-1.1-pro-ultra",
            "name": "Flux 1.1 Pro Ultra",
            "is_synchronous": True,
        },
    ]
    MOCKUP_MODEL: str = "google/nano-banana"
    GHOST_MANNEQUIN_MODEL: str = "google/nano-banana"
    UPSCALE_MODEL: str = "recraft-ai/recraft-crisp-upscale"
    CONCEPT_3D_MODEL: str = "google/nano-banana"
    TRELLIS_MODEL: str = "firtoz/trellis"
    TRELLIS_TEXTURE_SIZE: int = 1024

    # Remove.bg (synchronous background removal)
    REMOVEBG_API_KEY: str = ""
    REMOVEBG_API_URL: str = "https://api.remove.bg/v1.0/removebg"

    # Public site hosting the Mr. Imagine base mockups
    FRONTEND_URL: str = "https://imaginethisprinted.com"

    # Local storage fallback
    LOCAL_STORAGE_PATH: str = "./uploads"
    PUBLIC_FILES_URL: str = "/files"

    # Google Cloud Storage
    USE_GCS: bool = False
    GCS_BUCKET: str = "product-assets"
    GCP_PROJECT_ID: str = ""

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Worker settings
    WORKER_POLL_INTERVAL: float = 5.0  # Seconds between dispatcher ticks
    WORKER_QUEUED_BATCH_SIZE: int = 10
    DEPENDENCY_MAX_REQUEUES: int = 720  # 0 = wait forever
    EMBEDDED_WORKER: bool = False  # Run the dispatcher inside the API process
    DOWNLOAD_TIMEOUT: float = 60.0

    # Default output dimensions when a provider does not report them
    DEFAULT_IMAGE_WIDTH: int = 1024
    DEFAULT_IMAGE_HEIGHT: int = 1024

    # ITC costs for the 3D pipeline
    ITC_COST_3D_CONCEPT: int = 20
    ITC_COST_3D_ANGLES: int = 30
    ITC_COST_3D_CONVERT: int = 50

    @field_validator('REPLICATE_API_TOKEN', 'REMOVEBG_API_KEY', mode='before')
    @classmethod
    def strip_api_keys(cls, v):
        """Strip whitespace and newlines from API keys loaded from secrets."""
        if isinstance(v, str):
            return v.strip()
        return v

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
