"""Core sync engine for Gallerysync."""

from .resolver import IdentityResolver
from .sync import GallerySync, SyncOptions, run_sync
from .transfer import TransferMetadata, TransferPolicy

__all__ = [
    "GallerySync",
    "IdentityResolver",
    "SyncOptions",
    "TransferMetadata",
    "TransferPolicy",
    "run_sync",
]
