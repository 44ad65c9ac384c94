# Pydantic schemas package
from app.schemas.job import (
    JobResponse,
    parse_job_input,
    InvalidJobInputError,
    ImageGenerateOutput,
    ModelResult,
    AssetOutput,
    SkippedOutput,
)

__all__ = [
    "JobResponse",
    "parse_job_input",
    "InvalidJobInputError",
    "ImageGenerateOutput",
    "ModelResult",
    "AssetOutput",
    "SkippedOutput",
]
