"""
Handler Registry
Maps job types to their handlers.
"""

from typing import Dict

from app.workers.base import BaseJobHandler
from app.workers.image_generate import ImageGenerateHandler
from app.workers.mockup import CompositeMockupHandler, GhostMannequinHandler
from app.workers.model3d import Model3DAnglesHandler, Model3DConceptHandler, Model3DReconstructHandler
from app.workers.remove_background import RemoveBackgroundHandler
from app.workers.upscale import UpscaleHandler


def default_handlers() -> Dict[str, BaseJobHandler]:
    """One handler instance per job type."""
    handlers = [
        ImageGenerateHandler(),
        RemoveBackgroundHandler(),
        CompositeMockupHandler(),
        UpscaleHandler(),
        GhostMannequinHandler(),
        Model3DConceptHandler(),
        Model3DAnglesHandler(),
        Model3DReconstructHandler(),
    ]
    return {handler.job_type: handler for handler in handlers}
