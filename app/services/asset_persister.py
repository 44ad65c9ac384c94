"""
Asset Persister
Uploads generated files under a deterministic path and records the ProductAsset row.

Path convention:
    {category}/{product-slug}/{subcategory}/{product-slug}-{discriminator}-{unix-ms}.{ext}

3D pipeline files are not product assets; they live under
    3d-models/{model_id}/{stage}/{name}-{unix-ms}.{ext}
and their URLs are written onto the User3DModel by the handler.
"""

import io
import logging
import re
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from PIL import Image, UnidentifiedImageError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.asset import Product, ProductAsset, AssetKind, AssetRole
from app.services.storage import StorageService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssetLayout:
    """Where an asset kind is stored and how it shows in the gallery."""
    category: str
    subcategory: str
    asset_role: str
    display_order: int
    is_primary: bool = False


KIND_LAYOUTS = {
    AssetKind.SOURCE: AssetLayout("graphics", "original", AssetRole.DESIGN, 99),
    AssetKind.DTF: AssetLayout("graphics", "dtf", AssetRole.DESIGN, 99),
    AssetKind.NOBG: AssetLayout("graphics", "transparent", AssetRole.AUXILIARY, 99),
    AssetKind.UPSCALED: AssetLayout("graphics", "upscaled", AssetRole.AUXILIARY, 99),
}

MOCKUP_LAYOUTS = {
    "mr_imagine": AssetLayout("mockups", "mr_imagine", AssetRole.MOCKUP_MR_IMAGINE, 1, is_primary=True),
    "flat_lay": AssetLayout("mockups", "flat_lay", AssetRole.MOCKUP_FLAT_LAY, 2),
    "ghost_mannequin": AssetLayout("mockups", "ghost_mannequin", AssetRole.MOCKUP_GHOST_MANNEQUIN, 3),
}


def get_layout(kind: str, template: Optional[str] = None) -> AssetLayout:
    """Look up the layout row for a kind (and template, for mockups)."""
    if kind == AssetKind.MOCKUP:
        if template not in MOCKUP_LAYOUTS:
            raise ValueError(f"Unknown mockup template: {template}")
        return MOCKUP_LAYOUTS[template]
    if kind not in KIND_LAYOUTS:
        raise ValueError(f"Unknown asset kind: {kind}")
    return KIND_LAYOUTS[kind]


def slugify(text: str) -> str:
    """Lowercase, ASCII-ish, hyphen separated."""
    slug = re.sub(r"[^a-z0-9]+", "-", (text or "").lower())
    return slug.strip("-")


def image_size(data: bytes) -> Tuple[int, int]:
    """Read image dimensions, falling back to the configured defaults."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            return img.size
    except (UnidentifiedImageError, OSError) as e:
        logger.debug(f"[Persister] Could not read image size: {e}")
        return settings.DEFAULT_IMAGE_WIDTH, settings.DEFAULT_IMAGE_HEIGHT


class AssetPersister:
    """Uploads generated files and records assets."""

    def __init__(
        self,
        db: Session,
        storage: StorageService,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.db = db
        self.storage = storage
        self.clock = clock or time.time

    def _timestamp_ms(self) -> int:
        return int(self.clock() * 1000)

    def product_slug(self, product_id: str) -> str:
        """Product slug, else slugified name, else short id."""
        product = self.db.query(Product).filter(Product.id == product_id).first()
        if product:
            if product.slug:
                return product.slug
            name_slug = slugify(product.name)
            if name_slug:
                return name_slug
        return product_id[:8]

    def build_path(
        self,
        product_id: str,
        kind: str,
        template: Optional[str] = None,
        discriminator: Optional[str] = None,
        ext: str = "png",
    ) -> str:
        layout = get_layout(kind, template)
        slug = self.product_slug(product_id)
        discriminator = discriminator or (template if kind == AssetKind.MOCKUP else kind)
        filename = f"{slug}-{discriminator}-{self._timestamp_ms()}.{ext}"
        return f"{layout.category}/{slug}/{layout.subcategory}/{filename}"

    async def persist(
        self,
        product_id: str,
        kind: str,
        *,
        url: Optional[str] = None,
        data: Optional[bytes] = None,
        template: Optional[str] = None,
        discriminator: Optional[str] = None,
        metadata: Optional[dict] = None,
        ext: str = "png",
        content_type: str = "image/png",
    ) -> ProductAsset:
        """
        Upload a generated image and add its ProductAsset row (flushed, not committed).

        Args:
            product_id: Owning product
            kind: Asset kind (source, nobg, dtf, upscaled, mockup)
            url: Remote URL to download from (provider output)
            data: In-memory bytes (used instead of url when given)
            template: Mockup template (mr_imagine, flat_lay, ghost_mannequin)
            discriminator: Filename discriminator, defaults to kind or template
            metadata: Provider/model provenance

        Returns:
            The new ProductAsset
        """
        if data is None:
            if not url:
                raise ValueError("persist() needs either url or data")
            data = await self.storage.download_bytes(url)

        layout = get_layout(kind, template)
        path = self.build_path(product_id, kind, template, discriminator, ext)
        public_url = await self.storage.upload_bytes(data, path, content_type)
        width, height = image_size(data)

        if layout.is_primary:
            demoted = (
                self.db.query(ProductAsset)
                .filter(ProductAsset.product_id == product_id, ProductAsset.is_primary.is_(True))
                .update({ProductAsset.is_primary: False}, synchronize_session="fetch")
            )
            if demoted:
                logger.info(f"[Persister] Demoted {demoted} primary asset(s) for product {product_id}")

        provenance = dict(metadata or {})
        if url:
            provenance.setdefault("provider_url", url)
        if template:
            provenance.setdefault("template", template)

        asset = ProductAsset(
            id=str(uuid.uuid4()),
            product_id=product_id,
            kind=kind,
            asset_role=layout.asset_role,
            path=path,
            url=public_url,
            width=width,
            height=height,
            is_primary=layout.is_primary,
            display_order=layout.display_order,
            asset_metadata=provenance,
        )
        self.db.add(asset)
        self.db.flush()

        logger.info(f"[Persister] Stored {kind} asset {asset.id} at {path}")
        return asset

    async def persist_model_file(
        self,
        model_id: str,
        stage: str,
        name: str,
        *,
        url: Optional[str] = None,
        data: Optional[bytes] = None,
        ext: str = "png",
        content_type: str = "image/png",
    ) -> Tuple[str, str]:
        """
        Upload a 3D pipeline file.

        Returns:
            (public_url, storage_path)
        """
        if data is None:
            if not url:
                raise ValueError("persist_model_file() needs either url or data")
            data = await self.storage.download_bytes(url)

        path = f"3d-models/{model_id}/{stage}/{name}-{self._timestamp_ms()}.{ext}"
        public_url = await self.storage.upload_bytes(data, path, content_type)
        logger.info(f"[Persister] Stored 3D {stage} file at {path}")
        return public_url, path
