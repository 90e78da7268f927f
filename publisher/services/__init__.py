"""Services for publisher module."""
from .api_client import CsrfTokenProvider, HTTPAPIClient
from .moderation import ModerationService
from .posts import PostRepository
from .probe import FFProbeService, ProbeError
from .thumbnails import Frame, ThumbnailService
from .validator import MediaValidator, detect_kind

__all__ = [
    "CsrfTokenProvider",
    "HTTPAPIClient",
    "ModerationService",
    "PostRepository",
    "FFProbeService",
    "ProbeError",
    "Frame",
    "ThumbnailService",
    "MediaValidator",
    "detect_kind",
]
