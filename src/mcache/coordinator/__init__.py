"""
Coordinator package: the cache-or-fetch load flow.
"""

from mcache.coordinator.orchestrator import CacheOrchestrator, build_blob_store
from mcache.coordinator.progress import ProgressTracker

__all__ = ["CacheOrchestrator", "ProgressTracker", "build_blob_store"]
