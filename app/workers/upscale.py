"""
Upscale Handler
Asynchronous upscaling of the product's transparent (or original) design.
"""

from app.core.config import settings
from app.models.asset import AssetKind
from app.models.job import JobType
from app.schemas.job import AssetOutput
from app.services.replicate_client import PredictionState
from app.workers.base import BaseJobHandler, JobContext

UPSCALE_KIND_PRIORITY = (AssetKind.NOBG, AssetKind.SOURCE)


class UpscaleHandler(BaseJobHandler):
    job_type = JobType.UPSCALE.value

    async def start(self, ctx: JobContext) -> None:
        self.mark_running(ctx)
        self._log_start(ctx, product_id=ctx.job.product_id)

        source = ctx.resolver.resolve(ctx.job.product_id, kinds=UPSCALE_KIND_PRIORITY)
        prediction = await ctx.services.replicate.create_upscale(source.url)
        self.await_prediction(ctx, prediction.id, {"source_asset_id": source.id})

    async def on_prediction_succeeded(self, ctx: JobContext, prediction: PredictionState) -> None:
        url = self.prediction_url(prediction)
        asset = await ctx.persister.persist(
            ctx.job.product_id,
            AssetKind.UPSCALED,
            url=url,
            metadata={
                "model": settings.UPSCALE_MODEL,
                "prediction_id": prediction.id,
                "source_asset_id": (ctx.job.output or {}).get("source_asset_id"),
            },
        )
        self.succeed(
            ctx,
            AssetOutput(url=asset.url, storage_path=asset.path, asset_id=asset.id, provider_url=url).dump(),
        )
