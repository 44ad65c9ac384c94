# Services package - business logic and external integrations
from app.services.storage import StorageService
from app.services.replicate_client import ReplicateService
from app.services.removebg import RemoveBgService
from app.services.asset_resolver import AssetResolver
from app.services.asset_persister import AssetPersister
from app.services.ledger import Ledger

__all__ = [
    "StorageService",
    "ReplicateService",
    "RemoveBgService",
    "AssetResolver",
    "AssetPersister",
    "Ledger",
]
