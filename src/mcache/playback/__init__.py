"""
Playback package: caller-facing references to cached content.
"""

from mcache.playback.handles import LoadScope, PlaybackHandle, PlaybackHandleFactory

__all__ = ["LoadScope", "PlaybackHandle", "PlaybackHandleFactory"]
