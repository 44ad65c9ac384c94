"""
Image Generation Handler
Fans a prompt out to every configured image model and collects their results.

Synchronous models are persisted during start(); asynchronous ones stay
`processing` and are polled by check(). The job succeeds once every model
is terminal and at least one succeeded. Success does not enqueue any
downstream job; the user picks the design to continue with.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from app.core.config import settings
from app.core.exceptions import WorkerException
from app.models.asset import AssetKind
from app.models.job import JobType
from app.schemas.job import ImageGenerateInput, ImageGenerateOutput, ModelResult
from app.services.asset_persister import slugify
from app.services.dtf_optimizer import optimize_for_dtf
from app.services.prediction import extract_output_url, extract_output_urls
from app.services.prompts import build_dtf_prompt
from app.services.replicate_client import PredictionState
from app.workers.base import BaseJobHandler, JobContext

logger = logging.getLogger(__name__)


class ImageGenerateHandler(BaseJobHandler):
    """Multi-model text-to-image generation."""

    job_type = JobType.IMAGE_GENERATE.value

    def __init__(self, models: Optional[List[Dict[str, Any]]] = None):
        super().__init__()
        self._models = models

    @property
    def models(self) -> List[Dict[str, Any]]:
        return self._models or settings.IMAGE_MODELS

    @staticmethod
    def build_prompt(params: ImageGenerateInput) -> str:
        if params.shirt_color or params.print_style:
            return build_dtf_prompt(params.prompt, params.shirt_color or "black", params.print_style or "clean")
        return params.prompt

    async def start(self, ctx: JobContext) -> None:
        self.mark_running(ctx)
        params = ctx.input
        prompt = self.build_prompt(params)
        models = self.models
        self._log_start(ctx, product_id=ctx.job.product_id, models=[m["id"] for m in models])

        results = await asyncio.gather(
            *(ctx.services.replicate.generate_image(model, prompt) for model in models),
            return_exceptions=True,
        )

        outputs = []
        for model, result in zip(models, results):
            try:
                outputs.append(await self._record(ctx, params, model, result))
            except Exception as e:
                logger.error(f"[image_generate] recording {model['id']} failed: {e}")
                outputs.append(ModelResult(
                    model_id=model["id"],
                    model_name=model.get("name", model["id"]),
                    is_synchronous=model.get("is_synchronous", True),
                    status="failed",
                    error=str(e) or type(e).__name__,
                ))

        self._settle(ctx, outputs)

    async def _record(self, ctx: JobContext, params: ImageGenerateInput,
                      model: Dict[str, Any], result: Any) -> ModelResult:
        """Turn one model's raw result into a sub-result."""
        sub = ModelResult(
            model_id=model["id"],
            model_name=model.get("name", model["id"]),
            is_synchronous=model.get("is_synchronous", True),
            status="processing",
        )

        if isinstance(result, BaseException):
            logger.error(f"[image_generate] {sub.model_name} failed: {result}")
            sub.status = "failed"
            sub.error = str(result) or type(result).__name__
            return sub

        if isinstance(result, PredictionState):
            if result.is_terminal and not result.succeeded:
                sub.status = "failed"
                sub.error = self.prediction_error(result)
            else:
                sub.prediction_id = result.id
            return sub

        return await self._complete(ctx, params, sub, result)

    async def _complete(self, ctx: JobContext, params: ImageGenerateInput,
                        sub: ModelResult, output: Any) -> ModelResult:
        """Persist a finished model output as a source asset (plus its DTF variant)."""
        try:
            url = extract_output_url(output)
            variations = len(extract_output_urls(output))
            if variations > 1:
                logger.info(f"[image_generate] {sub.model_name} returned {variations} variations, keeping the first")

            data = await ctx.services.storage.download_bytes(url)
            asset = await ctx.persister.persist(
                ctx.job.product_id,
                AssetKind.SOURCE,
                data=data,
                discriminator=f"source-{slugify(sub.model_name)}",
                metadata={"provider_url": url, "model_id": sub.model_id, "model_name": sub.model_name},
            )
        except WorkerException as e:
            logger.error(f"[image_generate] {sub.model_name} output unusable: {e}")
            sub.status = "failed"
            sub.error = str(e)
            return sub

        sub.status = "succeeded"
        sub.url = asset.url
        sub.asset_id = asset.id

        if params.shirt_color or params.print_style:
            sub.dtf_asset_id = await self._persist_dtf(ctx, params, sub, data, asset.id)
        return sub

    async def _persist_dtf(self, ctx: JobContext, params: ImageGenerateInput,
                           sub: ModelResult, data: bytes, source_asset_id: str) -> Optional[str]:
        shirt_color = params.shirt_color or "black"
        print_style = params.print_style or "clean"
        try:
            optimized = optimize_for_dtf(data, shirt_color, print_style)
            dtf_asset = await ctx.persister.persist(
                ctx.job.product_id,
                AssetKind.DTF,
                data=optimized,
                discriminator=f"dtf-{slugify(sub.model_name)}",
                metadata={
                    "source_asset_id": source_asset_id,
                    "model_id": sub.model_id,
                    "shirt_color": shirt_color,
                    "print_style": print_style,
                },
            )
        except (WorkerException, OSError, ValueError) as e:
            # The source design is still usable without its print-optimized copy
            logger.warning(f"[image_generate] DTF optimization failed for {sub.model_name}: {e}")
            return None
        return dtf_asset.id

    def _settle(self, ctx: JobContext, outputs: List[ModelResult]) -> None:
        """Finish, fail, or keep waiting depending on sub-result states."""
        output = ImageGenerateOutput(outputs=outputs).dump()
        pending = [sub for sub in outputs if not sub.is_terminal]

        if pending:
            ctx.job.output = output
            self.await_prediction(ctx, pending[0].prediction_id)
            return

        succeeded = [sub for sub in outputs if sub.status == "succeeded"]
        if succeeded:
            self.succeed(ctx, output, replace=True)
            logger.info(f"[image_generate] {len(succeeded)}/{len(outputs)} models succeeded for job {ctx.job.id}")
            return

        ctx.job.output = output
        errors = "; ".join(f"{sub.model_name}: {sub.error}" for sub in outputs)
        self.fail(ctx, f"All image models failed ({errors})")

    async def check(self, ctx: JobContext) -> None:
        output = ctx.job.output or {}
        if "outputs" not in output and output.get("prediction_id"):
            await self._check_legacy(ctx)
            return

        params = ctx.input
        outputs = ImageGenerateOutput.model_validate(output).outputs
        for index, sub in enumerate(outputs):
            if sub.is_terminal:
                continue
            try:
                outputs[index] = await self._poll(ctx, params, sub)
            except Exception as e:
                logger.error(f"[image_generate] polling {sub.model_name} failed: {e}")
                sub.status = "failed"
                sub.error = str(e) or type(e).__name__
                outputs[index] = sub

        self._settle(ctx, outputs)

    async def _poll(self, ctx: JobContext, params: ImageGenerateInput, sub: ModelResult) -> ModelResult:
        prediction = await ctx.services.replicate.get_prediction(sub.prediction_id)
        if not prediction.is_terminal:
            return sub
        if prediction.succeeded:
            return await self._complete(ctx, params, sub, prediction.output)
        sub.status = "failed"
        sub.error = self.prediction_error(prediction)
        return sub

    async def _check_legacy(self, ctx: JobContext) -> None:
        """Jobs created before fan-out carry a single `prediction_id`."""
        prediction = await ctx.services.replicate.get_prediction(ctx.job.output["prediction_id"])
        if not prediction.is_terminal:
            return
        if not prediction.succeeded:
            self.fail(ctx, self.prediction_error(prediction))
            return

        url = self.prediction_url(prediction)
        asset = await ctx.persister.persist(ctx.job.product_id, AssetKind.SOURCE, url=url)
        self.succeed(ctx, {"url": asset.url, "storage_path": asset.path, "asset_id": asset.id})
