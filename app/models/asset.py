"""
Product Asset Model
Generated artifacts attached to a product, plus the product row used for
storage path naming.
"""

from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, Boolean, JSON, Index

from app.core.database import Base


class AssetKind:
    """Asset kind constants."""
    SOURCE = "source"
    NOBG = "nobg"
    DTF = "dtf"
    UPSCALED = "upscaled"
    MOCKUP = "mockup"


class AssetRole:
    """Asset role constants (gallery semantics)."""
    DESIGN = "design"
    AUXILIARY = "auxiliary"
    MOCKUP_FLAT_LAY = "mockup_flat_lay"
    MOCKUP_MR_IMAGINE = "mockup_mr_imagine"
    MOCKUP_GHOST_MANNEQUIN = "mockup_ghost_mannequin"


class Product(Base):
    """Product record (owned by the catalog; read here for slugs)."""

    __tablename__ = "products"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=True)
    slug = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class ProductAsset(Base):
    """
    Generated asset for a product.

    Created once when a job succeeds. The only mutation afterwards is
    `is_primary` demotion when a newer primary asset is recorded.
    """

    __tablename__ = "product_assets"

    id = Column(String, primary_key=True)
    product_id = Column(String, nullable=False, index=True)

    kind = Column(String, nullable=False)
    asset_role = Column(String, nullable=True)

    path = Column(String, nullable=False)
    url = Column(String, nullable=False)
    width = Column(Integer, nullable=True)
    height = Column(Integer, nullable=True)

    is_primary = Column(Boolean, default=False, nullable=False)
    display_order = Column(Integer, default=99, nullable=False)

    # Provider/model provenance ("metadata" is reserved on declarative classes)
    asset_metadata = Column("metadata", JSON, default=dict)

    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_product_assets_product_kind", "product_id", "kind"),
    )

    def __repr__(self):
        return f"<ProductAsset {self.id} {self.kind} primary={self.is_primary}>"
