"""
Job Schemas
Pydantic models for job payloads and API responses.

Each job type has its own input variant; `JobInput` is the closed union of
them keyed by `type`, so handlers receive a typed payload instead of a raw dict.
"""

from datetime import datetime
from typing import Optional, Dict, Any, List, Literal, Union, Annotated

from pydantic import BaseModel, Field, TypeAdapter, ValidationError


# --- Inputs ---

class _JobInputBase(BaseModel):
    """Common config for job inputs (camelCase keys from the storefront are accepted)."""

    class Config:
        populate_by_name = True
        extra = "allow"
        protected_namespaces = ()


class ImageGenerateInput(_JobInputBase):
    type: Literal["image_generate"] = "image_generate"
    prompt: str
    shirt_color: Optional[str] = Field(None, alias="shirtColor")
    print_style: Optional[str] = Field(None, alias="printStyle")
    product_type: Optional[str] = Field(None, alias="productType")
    print_placement: Optional[str] = Field(None, alias="printPlacement")


class RemoveBackgroundInput(_JobInputBase):
    type: Literal["remove_background"] = "remove_background"
    selected_asset_id: Optional[str] = None


class CompositeMockupInput(_JobInputBase):
    type: Literal["composite_mockup"] = "composite_mockup"
    template: Literal["flat_lay", "mr_imagine"] = "flat_lay"
    selected_asset_id: Optional[str] = None
    product_type: Optional[str] = Field(None, alias="productType")
    shirt_color: Optional[str] = Field(None, alias="shirtColor")
    print_placement: Optional[str] = Field(None, alias="printPlacement")
    garment_image_url: Optional[str] = None  # Written back for audit


class UpscaleInput(_JobInputBase):
    type: Literal["upscale"] = "upscale"


class GhostMannequinInput(_JobInputBase):
    type: Literal["ghost_mannequin"] = "ghost_mannequin"
    product_type: str = Field("tshirt", alias="productType")
    shirt_color: str = Field("black", alias="shirtColor")
    selected_asset_id: Optional[str] = None


class Model3DConceptInput(_JobInputBase):
    type: Literal["model3d_concept"] = "model3d_concept"
    model_id: str
    user_id: str
    prompt: str
    style: str = "realistic"


class Model3DAnglesInput(_JobInputBase):
    type: Literal["model3d_angles"] = "model3d_angles"
    model_id: str
    user_id: str
    style: Optional[str] = None
    concept_image_url: Optional[str] = None


class Model3DReconstructInput(_JobInputBase):
    type: Literal["model3d_reconstruct"] = "model3d_reconstruct"
    model_id: str
    user_id: str
    angle_images: Optional[Dict[str, str]] = None


JobInput = Annotated[
    Union[
        ImageGenerateInput,
        RemoveBackgroundInput,
        CompositeMockupInput,
        UpscaleInput,
        GhostMannequinInput,
        Model3DConceptInput,
        Model3DAnglesInput,
        Model3DReconstructInput,
    ],
    Field(discriminator="type"),
]

_job_input_adapter = TypeAdapter(JobInput)


class InvalidJobInputError(ValueError):
    """Raised when a job's stored input does not match its type."""

    def __init__(self, job_type: str, error: ValidationError):
        super().__init__(f"Invalid input for {job_type} job: {error.errors()[0].get('msg', error)}")
        self.job_type = job_type


def parse_job_input(job_type: str, payload: Optional[Dict[str, Any]]):
    """Validate a job's stored input against the variant for its type."""
    data = dict(payload or {})
    data["type"] = job_type
    try:
        return _job_input_adapter.validate_python(data)
    except ValidationError as e:
        raise InvalidJobInputError(job_type, e)


# --- Outputs ---

class _JobOutputBase(BaseModel):

    class Config:
        populate_by_name = True
        protected_namespaces = ()

    def dump(self) -> Dict[str, Any]:
        """Serialize for the job's JSON output column."""
        return self.model_dump(by_alias=True, exclude_none=True)


class ModelResult(_JobOutputBase):
    """One model's sub-result inside a fan-out image_generate job."""
    model_id: str = Field(..., alias="modelId")
    model_name: str = Field(..., alias="modelName")
    status: str  # succeeded | failed | processing
    is_synchronous: bool = Field(..., alias="isSynchronous")
    url: Optional[str] = None
    prediction_id: Optional[str] = Field(None, alias="predictionId")
    error: Optional[str] = None
    asset_id: Optional[str] = Field(None, alias="assetId")
    dtf_asset_id: Optional[str] = Field(None, alias="dtfAssetId")

    @property
    def is_terminal(self) -> bool:
        return self.status in ("succeeded", "failed")


class ImageGenerateOutput(_JobOutputBase):
    is_multi_model: bool = Field(True, alias="isMultiModel")
    outputs: List[ModelResult] = []


class AssetOutput(_JobOutputBase):
    url: str
    storage_path: str
    asset_id: Optional[str] = None
    provider_url: Optional[str] = None


class SkippedOutput(_JobOutputBase):
    skipped: bool = True
    reason: str


class ConceptOutput(_JobOutputBase):
    concept_url: str


class AnglesOutput(_JobOutputBase):
    angle_images: Dict[str, str]


class ReconstructOutput(_JobOutputBase):
    glb_url: str
    stl_url: str
    triangle_count: int
    processing_time: float


class ProgressUpdate(_JobOutputBase):
    """Progress fragment merged into a job's output for pollers."""
    message: str
    step: int
    total_steps: int


# --- API ---

class JobResponse(BaseModel):
    """Schema for job response."""
    id: str
    product_id: Optional[str]
    type: str
    status: str
    input: Optional[Dict[str, Any]] = None
    output: Optional[Dict[str, Any]] = None
    external_prediction_id: Optional[str]
    error: Optional[str]
    requeue_count: Optional[int] = 0
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
