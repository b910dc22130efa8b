"""Python client for BaseSpeak: API calls, job tracking and clip playback."""

from .api import ApiError, BasespeakClient, JobPayload, ReplyPayload
from .playback import PlaybackController, PlaybackView
from .session import ChatSession
from .tracker import JobTrackerRegistry, TrackerHandle

__all__ = [
    "ApiError",
    "BasespeakClient",
    "ChatSession",
    "JobPayload",
    "JobTrackerRegistry",
    "PlaybackController",
    "PlaybackView",
    "ReplyPayload",
    "TrackerHandle",
]
