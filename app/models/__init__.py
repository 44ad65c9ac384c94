# Database models package
from app.models.job import Job, JobType, JobStatus
from app.models.asset import Product, ProductAsset, AssetKind, AssetRole
from app.models.wallet import UserWallet, ItcTransaction, TransactionType
from app.models.model3d import User3DModel, Model3DStatus, ANGLE_ORDER

__all__ = [
    "Job",
    "JobType",
    "JobStatus",
    "Product",
    "ProductAsset",
    "AssetKind",
    "AssetRole",
    "UserWallet",
    "ItcTransaction",
    "TransactionType",
    "User3DModel",
    "Model3DStatus",
    "ANGLE_ORDER",
]
