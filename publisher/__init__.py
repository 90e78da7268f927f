"""
Publisher - upload media and publish posts against the social backend.

Follows SOLID principles:
- Single Responsibility: each service handles one backend concern
- Open/Closed: new transfer protocols plug in as UploadTransport subclasses
- Dependency Injection: services injected into the orchestrator

Usage:
    from publisher import PostComposer, PublishConfig

    async with PostComposer(api_url, cookies={"connect.sid": sid}) as composer:
        composer.set_content("Morning run")
        await composer.attach_media(Path("photo.jpg"))
        result = await composer.submit()

    # Video: the first submit uploads, the second one publishes
    await composer.attach_media(Path("clip.mp4"))
    result = await composer.submit()          # status == AWAITING_THUMBNAIL
    await composer.thumbnail_workflow.generate_auto()
    composer.thumbnail_workflow.confirm()
    result = await composer.submit()          # status == PUBLISHED
"""
from .orchestrator import PostComposer, PublishOrchestrator, ThumbnailWorkflow, PublishState, ThumbnailState
from .models import (
    MediaAsset,
    MediaKind,
    ModerationAssessment,
    PostDraft,
    PublishConfig,
    PublishResult,
    PublishStatus,
    Severity,
    UploadSession,
    UploadStatus,
    UploadStrategy,
    Visibility,
)
from .errors import (
    ApiError,
    ModerationBlocked,
    PublishError,
    ServerRejection,
    TransportError,
    ValidationError,
)
from .services import (
    HTTPAPIClient,
    MediaValidator,
    ModerationService,
    PostRepository,
    ThumbnailService,
)

__version__ = "0.1.0"
__all__ = [
    # Main
    "PostComposer",
    "PublishOrchestrator",
    "ThumbnailWorkflow",
    "PublishState",
    "ThumbnailState",
    # Models
    "MediaAsset",
    "MediaKind",
    "ModerationAssessment",
    "PostDraft",
    "PublishConfig",
    "PublishResult",
    "PublishStatus",
    "Severity",
    "UploadSession",
    "UploadStatus",
    "UploadStrategy",
    "Visibility",
    # Errors
    "ApiError",
    "ModerationBlocked",
    "PublishError",
    "ServerRejection",
    "TransportError",
    "ValidationError",
    # Services
    "HTTPAPIClient",
    "MediaValidator",
    "ModerationService",
    "PostRepository",
    "ThumbnailService",
]
