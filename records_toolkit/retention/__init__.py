"""
Retention Module - permanent erasure of expired soft-deleted records.
"""

from .blobs import BlobStore, BlobStoreError, LocalDirectoryBlobStore, NullBlobStore
from .policies import (
    DEFAULT_CATEGORIES,
    PURGE_ORDER,
    RetentionCategory,
    RetentionPolicy,
    build_policies,
)
from .purge import KindPurgeResult, PurgeReport, PurgeService
from .scheduler import PurgeScheduler

__all__ = [
    # Policies
    "RetentionCategory",
    "RetentionPolicy",
    "build_policies",
    "DEFAULT_CATEGORIES",
    "PURGE_ORDER",
    # Blob stores
    "BlobStore",
    "BlobStoreError",
    "LocalDirectoryBlobStore",
    "NullBlobStore",
    # Sweep
    "PurgeService",
    "PurgeReport",
    "KindPurgeResult",
    "PurgeScheduler",
]
