"""
Mockup Handlers
Composite a product design onto garment photos.

composite_mockup: asynchronous two-image composite (base mockup + design),
                  waits for image generation and any in-flight background removal.
ghost_mannequin:  synchronous invisible-mannequin render, garments only.
"""

from app.core.config import settings
from app.models.asset import AssetKind
from app.models.job import JobType, JobStatus
from app.schemas.job import AssetOutput
from app.services.prompts import (
    GHOST_MANNEQUIN_PRODUCT_TYPES,
    base_mockup_url,
    build_ghost_mannequin_prompt,
    build_mockup_prompt,
)
from app.services.prediction import extract_output_url
from app.services.replicate_client import PredictionState
from app.workers.base import BaseJobHandler, JobContext

IN_FLIGHT = (JobStatus.QUEUED.value, JobStatus.RUNNING.value)


class CompositeMockupHandler(BaseJobHandler):
    job_type = JobType.COMPOSITE_MOCKUP.value

    async def start(self, ctx: JobContext) -> None:
        self.mark_running(ctx)
        params = ctx.input
        product_id = ctx.job.product_id

        if ctx.find_succeeded_job(JobType.IMAGE_GENERATE.value) is None:
            self.soft_requeue(ctx, "waiting for image_generate to succeed")
            return

        # Optional: a failed background removal falls back to the next best asset
        removal = ctx.find_job(JobType.REMOVE_BACKGROUND.value)
        if removal is not None and removal.status in IN_FLIGHT:
            self.soft_requeue(ctx, f"waiting for remove_background {removal.id}")
            return

        self._log_start(ctx, product_id=product_id, template=params.template)
        garment = ctx.resolver.resolve(product_id, selected_asset_id=params.selected_asset_id)

        product_type = params.product_type or "tshirt"
        shirt_color = params.shirt_color or "black"
        placement = params.print_placement or "front-center"

        ctx.job.input = {**(ctx.job.input or {}), "garment_image_url": garment.url}
        ctx.db.commit()

        prediction = await ctx.services.replicate.create_mockup(
            build_mockup_prompt(params.template, product_type, shirt_color, placement),
            base_mockup_url(product_type, shirt_color, placement),
            garment.url,
        )
        self.await_prediction(ctx, prediction.id, {"garment_asset_id": garment.id})

    async def on_prediction_succeeded(self, ctx: JobContext, prediction: PredictionState) -> None:
        params = ctx.input
        url = self.prediction_url(prediction)
        asset = await ctx.persister.persist(
            ctx.job.product_id,
            AssetKind.MOCKUP,
            url=url,
            template=params.template,
            metadata={
                "model": settings.MOCKUP_MODEL,
                "prediction_id": prediction.id,
                "garment_asset_id": (ctx.job.output or {}).get("garment_asset_id"),
            },
        )
        self.succeed(
            ctx,
            AssetOutput(url=asset.url, storage_path=asset.path, asset_id=asset.id, provider_url=url).dump(),
        )


class GhostMannequinHandler(BaseJobHandler):
    job_type = JobType.GHOST_MANNEQUIN.value

    async def start(self, ctx: JobContext) -> None:
        self.mark_running(ctx)
        params = ctx.input

        if params.product_type not in GHOST_MANNEQUIN_PRODUCT_TYPES:
            self.skip(ctx, f"Ghost mannequin not supported for product type '{params.product_type}'")
            return

        if ctx.find_succeeded_job(JobType.IMAGE_GENERATE.value) is None:
            self.soft_requeue(ctx, "waiting for image_generate to succeed")
            return

        self._log_start(ctx, product_id=ctx.job.product_id, product_type=params.product_type)
        design = ctx.resolver.resolve(ctx.job.product_id, selected_asset_id=params.selected_asset_id)

        output = await ctx.services.replicate.run_ghost_mannequin(
            build_ghost_mannequin_prompt(params.product_type, params.shirt_color),
            design.url,
        )
        url = extract_output_url(output)

        asset = await ctx.persister.persist(
            ctx.job.product_id,
            AssetKind.MOCKUP,
            url=url,
            template="ghost_mannequin",
            metadata={
                "model": settings.GHOST_MANNEQUIN_MODEL,
                "design_asset_id": design.id,
                "product_type": params.product_type,
                "shirt_color": params.shirt_color,
            },
        )
        self.succeed(
            ctx,
            AssetOutput(url=asset.url, storage_path=asset.path, asset_id=asset.id, provider_url=url).dump(),
        )
