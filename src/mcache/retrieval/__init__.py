"""
Retrieval package for streaming remote content.

- base.py: StreamingFetcher and FetchStream abstractions
- http_fetcher.py: httpx-backed implementation
"""

from mcache.retrieval.base import ChunkStream, FetchStream, StreamingFetcher
from mcache.retrieval.http_fetcher import HttpFetchStream, HttpStreamingFetcher

__all__ = [
    "ChunkStream",
    "FetchStream",
    "HttpFetchStream",
    "HttpStreamingFetcher",
    "StreamingFetcher",
]
