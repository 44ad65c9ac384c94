"""
Asset Resolver
Picks the best existing asset of a product to feed into a generation step.

Resolution order, first match wins:
    1. `selected_asset_id` from the job input (explicit user choice)
    2. most recent `dtf` asset (print optimized)
    3. most recent `nobg` asset (background removed)
    4. most recent `source` asset

The result is a pure function of the product's current assets: ties on
`created_at` are broken by id so repeated calls always agree.
"""

import logging
from typing import Optional, Sequence

from sqlalchemy.orm import Session

from app.models.asset import ProductAsset, AssetKind
from app.core.exceptions import NonRetryableError

logger = logging.getLogger(__name__)

DEFAULT_KIND_PRIORITY = (AssetKind.DTF, AssetKind.NOBG, AssetKind.SOURCE)


class SourceAssetNotFoundError(NonRetryableError):
    """No usable source asset exists for the product."""

    def __init__(self, product_id: str, kinds: Sequence[str]):
        super().__init__(
            f"Source asset not found for product {product_id} (looked for: {', '.join(kinds)})",
            details={"product_id": product_id, "kinds": list(kinds)},
        )
        self.product_id = product_id


class AssetResolver:
    """Selects a product's input asset by fixed priority."""

    def __init__(self, db: Session):
        self.db = db

    def _latest_of_kind(self, product_id: str, kind: str) -> Optional[ProductAsset]:
        return (
            self.db.query(ProductAsset)
            .filter(ProductAsset.product_id == product_id, ProductAsset.kind == kind)
            .order_by(ProductAsset.created_at.desc(), ProductAsset.id.desc())
            .first()
        )

    def find(
        self,
        product_id: str,
        selected_asset_id: Optional[str] = None,
        kinds: Sequence[str] = DEFAULT_KIND_PRIORITY,
    ) -> Optional[ProductAsset]:
        """Return the best asset or None."""
        if selected_asset_id:
            selected = (
                self.db.query(ProductAsset)
                .filter(ProductAsset.id == selected_asset_id, ProductAsset.product_id == product_id)
                .first()
            )
            if selected:
                return selected
            logger.warning(
                f"[Resolver] Selected asset {selected_asset_id} not found for product {product_id}, "
                f"falling back to priority order"
            )

        for kind in kinds:
            asset = self._latest_of_kind(product_id, kind)
            if asset:
                return asset
        return None

    def resolve(
        self,
        product_id: str,
        selected_asset_id: Optional[str] = None,
        kinds: Sequence[str] = DEFAULT_KIND_PRIORITY,
    ) -> ProductAsset:
        """
        Return the best asset for the product.

        Raises:
            SourceAssetNotFoundError: If nothing matches (terminal for the job)
        """
        asset = self.find(product_id, selected_asset_id=selected_asset_id, kinds=kinds)
        if asset is None:
            raise SourceAssetNotFoundError(product_id, kinds)
        logger.debug(f"[Resolver] Product {product_id} -> {asset.kind} asset {asset.id}")
        return asset
