"""
Background Removal Handler
Synchronous remove.bg call on the product's source design.
"""

from app.models.asset import AssetKind
from app.models.job import JobType
from app.schemas.job import AssetOutput
from app.workers.base import BaseJobHandler, JobContext


class RemoveBackgroundHandler(BaseJobHandler):
    job_type = JobType.REMOVE_BACKGROUND.value

    async def start(self, ctx: JobContext) -> None:
        self.mark_running(ctx)
        params = ctx.input
        self._log_start(ctx, product_id=ctx.job.product_id, selected_asset_id=params.selected_asset_id)

        # Only the original design is a sensible input here
        source = ctx.resolver.resolve(
            ctx.job.product_id,
            selected_asset_id=params.selected_asset_id,
            kinds=(AssetKind.SOURCE,),
        )

        png = await ctx.services.removebg.remove_background(source.url)
        asset = await ctx.persister.persist(
            ctx.job.product_id,
            AssetKind.NOBG,
            data=png,
            metadata={"provider": "remove.bg", "source_asset_id": source.id},
        )

        self.succeed(ctx, AssetOutput(url=asset.url, storage_path=asset.path, asset_id=asset.id).dump())
