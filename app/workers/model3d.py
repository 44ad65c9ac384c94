"""
3D Figurine Handlers
concept -> angles -> reconstruct, each step paid for in ITC.

Every step debits its cost before any provider call. Any failure after the
debit refunds it (once) and marks the User3DModel failed with the error.
"""

import logging
from typing import Dict

from app.core.config import settings
from app.core.exceptions import NonRetryableError
from app.models.job import JobType
from app.models.model3d import User3DModel, Model3DStatus, ANGLE_ORDER
from app.schemas.job import AnglesOutput, ConceptOutput, ReconstructOutput
from app.services.mesh_converter import convert_glb_to_stl, find_glb_url
from app.services.prediction import extract_output_url
from app.services.prompts import build_angle_prompt, build_concept_prompt
from app.services.replicate_client import PredictionState
from app.workers.base import BaseJobHandler, JobContext

logger = logging.getLogger(__name__)


class Model3DHandler(BaseJobHandler):
    """Shared ledger and model-record plumbing for the 3D pipeline."""

    step = ""

    def load_model(self, ctx: JobContext, model_id: str) -> User3DModel:
        model = ctx.db.query(User3DModel).filter(User3DModel.id == model_id).first()
        if model is None:
            raise NonRetryableError(f"3D model {model_id} not found")
        return model

    def charge(self, ctx: JobContext, model: User3DModel, user_id: str, amount: int) -> None:
        """Debit the step cost; raises InsufficientBalanceError with nothing written."""
        transaction = ctx.ledger.debit(
            user_id,
            amount,
            reference=f"3d_{self.step}:{model.id}",
            job_id=ctx.job.id,
        )
        model.itc_charged = (model.itc_charged or 0) + amount
        self.merge_output(ctx, {"debit_transaction_id": transaction.id, "itc_charged": amount})
        ctx.db.commit()

    async def guarded(self, ctx: JobContext, operation, *args) -> None:
        """Run a paid operation; any error fails the job (refunding via on_failed)."""
        try:
            await operation(ctx, *args)
        except Exception as e:
            logger.error(f"[{self.job_type}] Job {ctx.job.id} failed: {e}")
            ctx.db.rollback()
            if not ctx.job.is_terminal:
                self.fail(ctx, str(e) or type(e).__name__)

    def on_failed(self, ctx: JobContext, message: str) -> None:
        # The failed status is committed before any refund runs
        ctx.db.commit()
        refunds = ctx.ledger.refund_job(ctx.job.id, message)
        refunded = sum(r.amount for r in refunds)
        if refunds:
            logger.info(f"[{self.job_type}] Refunded {refunded} ITC for job {ctx.job.id}")

        model_id = (ctx.job.input or {}).get("model_id")
        model = ctx.db.query(User3DModel).filter(User3DModel.id == model_id).first() if model_id else None
        if model is not None:
            model.status = Model3DStatus.FAILED
            model.error_message = message
            model.itc_charged = max((model.itc_charged or 0) - refunded, 0)

    async def start(self, ctx: JobContext) -> None:
        self.mark_running(ctx)
        await self.guarded(ctx, self.execute)

    async def execute(self, ctx: JobContext) -> None:
        raise NotImplementedError


class Model3DConceptHandler(Model3DHandler):
    job_type = JobType.MODEL3D_CONCEPT.value
    step = "concept"

    async def execute(self, ctx: JobContext) -> None:
        params = ctx.input
        model = self.load_model(ctx, params.model_id)
        self._log_start(ctx, model_id=model.id, style=params.style)

        self.charge(ctx, model, params.user_id, settings.ITC_COST_3D_CONCEPT)
        model.status = Model3DStatus.GENERATING_CONCEPT
        ctx.db.commit()

        output = await ctx.services.replicate.run_text_to_image(build_concept_prompt(params.prompt, params.style))
        concept_url, _ = await ctx.persister.persist_model_file(
            model.id, "concept", "concept", url=extract_output_url(output)
        )

        model.concept_image_url = concept_url
        model.status = Model3DStatus.AWAITING_APPROVAL
        model.error_message = None
        self.succeed(ctx, ConceptOutput(concept_url=concept_url).dump())


class Model3DAnglesHandler(Model3DHandler):
    job_type = JobType.MODEL3D_ANGLES.value
    step = "angles"

    async def execute(self, ctx: JobContext) -> None:
        params = ctx.input
        model = self.load_model(ctx, params.model_id)
        concept_url = params.concept_image_url or model.concept_image_url
        if not concept_url:
            raise NonRetryableError(f"3D model {model.id} has no concept image")
        style = params.style or model.style or "realistic"
        self._log_start(ctx, model_id=model.id, style=style)

        self.charge(ctx, model, params.user_id, settings.ITC_COST_3D_ANGLES)
        model.status = Model3DStatus.GENERATING_ANGLES
        ctx.db.commit()

        angles: Dict[str, str] = {}
        total = len(ANGLE_ORDER)
        for step, angle in enumerate(ANGLE_ORDER, start=1):
            self.update_progress(ctx, f"Generating {angle} view", step, total)
            output = await ctx.services.replicate.run_image_to_image(
                build_angle_prompt(style, angle), [concept_url]
            )
            angles[angle], _ = await ctx.persister.persist_model_file(
                model.id, "angles", angle, url=extract_output_url(output)
            )
            model.angle_images = dict(angles)
            ctx.db.commit()

        model.status = Model3DStatus.ANGLES_READY
        model.error_message = None
        self.succeed(ctx, {
            **AnglesOutput(angle_images=angles).dump(),
            "message": "All angle views generated",
            "step": total,
            "total_steps": total,
        })


class Model3DReconstructHandler(Model3DHandler):
    job_type = JobType.MODEL3D_RECONSTRUCT.value
    step = "convert"

    async def start(self, ctx: JobContext) -> None:
        self.mark_running(ctx)
        params = ctx.input
        model = self.load_model(ctx, params.model_id)

        angles = {**(model.angle_images or {}), **(params.angle_images or {})}
        missing = [angle for angle in ANGLE_ORDER if not angles.get(angle)]
        if missing:
            self.soft_requeue(ctx, f"waiting for angle views: {', '.join(missing)}")
            return

        await self.guarded(ctx, self.execute, model, angles)

    async def execute(self, ctx: JobContext, model: User3DModel, angles: Dict[str, str]) -> None:
        params = ctx.input
        self._log_start(ctx, model_id=model.id)

        self.charge(ctx, model, params.user_id, settings.ITC_COST_3D_CONVERT)
        model.status = Model3DStatus.GENERATING_3D
        ctx.db.commit()

        # The front view drives the reconstruction
        prediction = await ctx.services.replicate.create_trellis(angles["front"])
        self.await_prediction(ctx, prediction.id, {"started_at": ctx.services.clock()})

    async def check(self, ctx: JobContext) -> None:
        await self.guarded(ctx, super().check)

    async def on_prediction_succeeded(self, ctx: JobContext, prediction: PredictionState) -> None:
        params = ctx.input
        model = self.load_model(ctx, params.model_id)

        glb_url = find_glb_url(prediction.output)
        glb_bytes = await ctx.services.storage.download_bytes(glb_url)
        conversion = convert_glb_to_stl(glb_bytes)

        glb_public, _ = await ctx.persister.persist_model_file(
            model.id, "mesh", "model", data=glb_bytes, ext="glb", content_type="model/gltf-binary"
        )
        stl_public, _ = await ctx.persister.persist_model_file(
            model.id, "mesh", "model", data=conversion.stl_bytes, ext="stl", content_type="model/stl"
        )

        started_at = (ctx.job.output or {}).get("started_at")
        processing_time = round(ctx.services.clock() - started_at, 2) if started_at else conversion.processing_time

        model.glb_url = glb_public
        model.stl_url = stl_public
        model.status = Model3DStatus.READY
        model.error_message = None
        self.succeed(ctx, ReconstructOutput(
            glb_url=glb_public,
            stl_url=stl_public,
            triangle_count=conversion.triangle_count,
            processing_time=processing_time,
        ).dump())
