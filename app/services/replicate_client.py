"""
Replicate Service
Image synthesis, mockup compositing, upscaling and image-to-3D through Replicate.

Two calling modes:
    - run(): synchronous, returns the model output directly
    - create_prediction() / get_prediction(): asynchronous, polled by the dispatcher
"""

import logging
import random
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
import replicate
from replicate.exceptions import ReplicateException

from app.core.config import settings
from app.core.exceptions import ProviderError, RetryableError
from app.core.retry import with_retry

logger = logging.getLogger(__name__)

PROVIDER = "replicate"

TERMINAL_PREDICTION_STATUSES = ("succeeded", "failed", "canceled")


@dataclass
class PredictionState:
    """Snapshot of an external prediction."""
    id: str
    status: str
    output: Any = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_PREDICTION_STATUSES

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"


def _state(prediction) -> PredictionState:
    error = getattr(prediction, "error", None)
    return PredictionState(
        id=prediction.id,
        status=prediction.status,
        output=getattr(prediction, "output", None),
        error=str(error) if error else None,
    )


def image_model_input(model_id: str, prompt: str, is_synchronous: bool) -> Dict[str, Any]:
    """Per-model parameters for text-to-image generation."""
    params: Dict[str, Any] = {"prompt": prompt}

    if not is_synchronous:
        if "recraft-ai/recraft-v3" in model_id:
            params.update(size="1024x1024", style="realistic_image")
        else:
            params.update(aspect_ratio="1:1", output_format="png", output_quality=90)
        return params

    if "flux" in model_id or model_id.startswith("black-forest-labs/"):
        params.update(raw=False, aspect_ratio="1:1", output_format="png", safety_tolerance=2)
    elif "imagen" in model_id or model_id.startswith("google/"):
        params.update(aspect_ratio="1:1", safety_filter_level="block_only_high", output_format="png")
    elif model_id.startswith("leonardoai/"):
        params.update(
            width=settings.DEFAULT_IMAGE_WIDTH,
            height=settings.DEFAULT_IMAGE_HEIGHT,
            num_outputs=1,
            output_format="png",
        )
    else:
        params.update(aspect_ratio="1:1", output_format="png")
    return params


class ReplicateService:
    """Thin async wrapper over the Replicate client."""

    def __init__(self, api_token: Optional[str] = None, client: Any = None):
        self.client = client or replicate.Client(api_token=api_token or settings.REPLICATE_API_TOKEN)

    # --- Primitives ---

    @with_retry(max_retries=2, retry_delay=2.0)
    async def run(self, model: str, model_input: Dict[str, Any]) -> Any:
        """Run a model and wait for its output."""
        logger.info(f"[Replicate] run {model}")
        try:
            return await self.client.async_run(model, input=model_input, use_file_output=False)
        except httpx.TransportError as e:
            raise RetryableError(f"Replicate unreachable: {e}")
        except ReplicateException as e:
            raise ProviderError(PROVIDER, str(e))

    @with_retry(max_retries=2, retry_delay=2.0)
    async def create_prediction(self, model: str, model_input: Dict[str, Any]) -> PredictionState:
        """Start an asynchronous prediction."""
        params: Dict[str, Any] = {"input": model_input}
        # "owner/name:version" pins a version hash
        if ":" in model:
            params["version"] = model.split(":", 1)[1]
        else:
            params["model"] = model

        try:
            prediction = await self.client.predictions.async_create(**params)
        except httpx.TransportError as e:
            raise RetryableError(f"Replicate unreachable: {e}")
        except ReplicateException as e:
            raise ProviderError(PROVIDER, str(e))

        logger.info(f"[Replicate] Prediction created for {model}: {prediction.id}")
        return _state(prediction)

    @with_retry(max_retries=2, retry_delay=2.0)
    async def get_prediction(self, prediction_id: str) -> PredictionState:
        """Fetch the current state of a prediction."""
        try:
            prediction = await self.client.predictions.async_get(prediction_id)
        except httpx.TransportError as e:
            raise RetryableError(f"Replicate unreachable: {e}")
        except ReplicateException as e:
            raise ProviderError(PROVIDER, str(e))
        return _state(prediction)

    # --- Job-level operations ---

    async def generate_image(self, model: Dict[str, Any], prompt: str) -> Any:
        """
        Generate with one configured image model.

        Returns the raw output for synchronous models, a PredictionState otherwise.
        """
        model_id = model["id"]
        is_synchronous = model.get("is_synchronous", True)
        model_input = image_model_input(model_id, prompt, is_synchronous)
        if is_synchronous:
            return await self.run(model_id, model_input)
        return await self.create_prediction(model_id, model_input)

    async def create_mockup(self, prompt: str, base_mockup_url: str, design_url: str) -> PredictionState:
        """Composite a design onto a base mockup (two input images)."""
        return await self.create_prediction(
            settings.MOCKUP_MODEL,
            {
                "prompt": prompt,
                "image_input": [base_mockup_url, design_url],
                "aspect_ratio": "1:1",
                "output_format": "png",
            },
        )

    async def run_ghost_mannequin(self, prompt: str, design_url: str) -> Any:
        return await self.run(
            settings.GHOST_MANNEQUIN_MODEL,
            {
                "prompt": prompt,
                "image_input": [design_url],
                "aspect_ratio": "1:1",
                "output_format": "png",
            },
        )

    async def create_upscale(self, image_url: str) -> PredictionState:
        return await self.create_prediction(settings.UPSCALE_MODEL, {"image": image_url})

    async def run_text_to_image(self, prompt: str) -> Any:
        """3D concept art from text."""
        return await self.run(
            settings.CONCEPT_3D_MODEL,
            {"prompt": prompt, "aspect_ratio": "1:1", "output_format": "png"},
        )

    async def run_image_to_image(self, prompt: str, image_urls: List[str]) -> Any:
        """Consistent re-render of a reference image (3D angle views)."""
        return await self.run(
            settings.CONCEPT_3D_MODEL,
            {
                "prompt": prompt,
                "image_input": image_urls,
                "aspect_ratio": "1:1",
                "output_format": "png",
            },
        )

    async def create_trellis(self, image_url: str, seed: Optional[int] = None) -> PredictionState:
        """Image-to-3D reconstruction; output carries a GLB under `model_file`."""
        return await self.create_prediction(
            settings.TRELLIS_MODEL,
            {
                "image": image_url,
                "seed": seed if seed is not None else random.randint(0, 2147483647),
                "randomize_seed": seed is None,
                "texture_size": settings.TRELLIS_TEXTURE_SIZE,
                "mesh_simplify": 0.95,
                "generate_color": True,
                "generate_model": True,
                "generate_normal": True,
                "ss_sampling_steps": 12,
                "slat_sampling_steps": 12,
                "ss_guidance_strength": 7.5,
                "slat_guidance_strength": 3,
            },
        )
