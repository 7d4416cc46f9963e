"""
mcache - client-side media cache.

Streams a remote video once, persists it to a local blob store and serves
later loads straight from disk.
"""

__version__ = "0.1.0"
