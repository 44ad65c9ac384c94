"""
3D Model Record
Tracks a user's figurine through the concept -> angles -> mesh pipeline.
Job failures for the 3D pipeline are mirrored onto this record so the UI
does not need to join against jobs.
"""

from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime, Integer, JSON

from app.core.database import Base


class Model3DStatus:
    """3D model status constants."""
    QUEUED = "queued"
    GENERATING_CONCEPT = "generating_concept"
    AWAITING_APPROVAL = "awaiting_approval"    # Concept ready, user must approve
    GENERATING_ANGLES = "generating_angles"
    ANGLES_READY = "angles_ready"
    GENERATING_3D = "generating_3d"
    READY = "ready"                            # GLB + STL available
    FAILED = "failed"


ANGLE_ORDER = ("front", "back", "left", "right")


class User3DModel(Base):
    """User figurine model."""

    __tablename__ = "user_3d_models"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)

    prompt = Column(Text, nullable=False)
    style = Column(String, default="realistic", nullable=False)
    status = Column(String, default=Model3DStatus.QUEUED, nullable=False, index=True)

    concept_image_url = Column(String, nullable=True)
    angle_images = Column(JSON, default=dict)
    glb_url = Column(String, nullable=True)
    stl_url = Column(String, nullable=True)

    itc_charged = Column(Integer, default=0, nullable=False)
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<User3DModel {self.id} ({self.status})>"

    @property
    def has_all_angles(self) -> bool:
        """Check if every angle view has been generated."""
        angles = self.angle_images or {}
        return all(angles.get(angle) for angle in ANGLE_ORDER)
