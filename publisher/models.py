"""
Models for publisher module.

Value objects are immutable dataclasses; the upload session is the one
mutable record because it tracks a live transfer.
"""
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, Callable
from pathlib import Path
from enum import Enum

MIB = 1024 * 1024
GIB = 1024 * MIB


class MediaKind(Enum):
    """Kind of attached media."""
    IMAGE = "image"
    VIDEO = "video"


class UploadStrategy(Enum):
    """Transfer protocol used for one upload."""
    DIRECT = "direct"
    PROXY = "proxy"
    CHUNKED = "chunked"


class UploadStatus(Enum):
    """Upload session status."""
    IDLE = "idle"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ThumbnailSource(Enum):
    """Where a thumbnail candidate came from."""
    AUTO = "auto"
    FRAME = "frame"
    TIMESTAMP = "timestamp"
    UPLOAD = "upload"


class Severity(Enum):
    """Moderation severity, ordered none < low < medium < high < critical."""
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)

    @property
    def blocks(self) -> bool:
        return self in (Severity.HIGH, Severity.CRITICAL)

    @property
    def warns(self) -> bool:
        return self in (Severity.LOW, Severity.MEDIUM)

    @classmethod
    def parse(cls, value: Optional[str]) -> "Severity":
        if not value:
            return cls.NONE
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.NONE


_SEVERITY_ORDER = [Severity.NONE, Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL]


class Visibility(Enum):
    """Post audience."""
    PUBLIC = "public"
    FOLLOWERS = "followers"


@dataclass(frozen=True)
class MediaAsset:
    """A validated local media file ready for upload."""
    path: Path
    kind: MediaKind
    size_bytes: int
    content_type: str = "application/octet-stream"
    duration_seconds: Optional[float] = None

    @property
    def filename(self) -> str:
        return self.path.name

    @property
    def is_video(self) -> bool:
        return self.kind == MediaKind.VIDEO


ProgressCallback = Callable[[int], Any]


@dataclass
class UploadSession:
    """
    Live state of one transfer.

    Progress only moves forward and is clamped to [0, 100].
    """
    strategy: UploadStrategy
    progress_percent: int = 0
    status: UploadStatus = UploadStatus.IDLE
    object_path: Optional[str] = None
    error: Optional[str] = None
    on_progress: Optional[ProgressCallback] = field(default=None, repr=False, compare=False)

    def start(self) -> None:
        self.status = UploadStatus.RUNNING
        self.error = None

    def report(self, percent: int) -> None:
        percent = max(0, min(100, int(percent)))
        if percent <= self.progress_percent:
            return
        self.progress_percent = percent
        if self.on_progress:
            self.on_progress(percent)

    def finish(self, object_path: str) -> None:
        self.object_path = object_path
        self.status = UploadStatus.DONE

    def fail(self, error: str, cancelled: bool = False) -> None:
        self.error = error
        self.status = UploadStatus.CANCELLED if cancelled else UploadStatus.FAILED

    @property
    def done(self) -> bool:
        return self.status == UploadStatus.DONE


@dataclass(frozen=True)
class ThumbnailCandidate:
    """A single proposed thumbnail image path."""
    source: ThumbnailSource
    path: str
    timestamp: Optional[float] = None


@dataclass(frozen=True)
class ModerationAssessment:
    """Moderation verdict for a piece of content."""
    is_violation: bool = False
    severity: Severity = Severity.NONE
    explanation: str = ""

    @property
    def effective_severity(self) -> Severity:
        # the backend reports "low" even for clean content
        return self.severity if self.is_violation else Severity.NONE

    @property
    def label(self) -> str:
        return "Content blocked: " if self.effective_severity.blocks else "Warning: "

    @classmethod
    def from_payload(cls, data: Optional[Dict[str, Any]], default_severity: Severity = Severity.NONE):
        data = data or {}
        severity = Severity.parse(data.get("severity")) if data.get("severity") else default_severity
        return cls(
            is_violation=bool(data.get("isViolation", False)),
            severity=severity,
            explanation=data.get("explanation") or "",
        )

    @classmethod
    def blocked(cls, data: Optional[Dict[str, Any]]):
        """Verdict carried by a create-post rejection."""
        data = data or {}
        return cls(
            is_violation=True,
            severity=Severity.parse(data.get("severity")) if data.get("severity") else Severity.HIGH,
            explanation=data.get("explanation") or "Content blocked",
        )


def most_severe(*assessments: Optional[ModerationAssessment]) -> Optional[ModerationAssessment]:
    """Pick the assessment with the highest effective severity (first wins on ties)."""
    winner = None
    for assessment in assessments:
        if assessment is None:
            continue
        if winner is None or assessment.effective_severity.rank > winner.effective_severity.rank:
            winner = assessment
    return winner


@dataclass(frozen=True)
class PostDraft:
    """Create-post payload, built once every step has resolved."""
    content: str
    visibility: Visibility = Visibility.PUBLIC
    media_kind: Optional[MediaKind] = None
    media_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    skip_moderation: bool = False
    group_id: Optional[str] = None

    @property
    def post_type(self) -> str:
        return self.media_kind.value if self.media_kind else "text"

    def to_payload(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "postType": self.post_type,
            "mediaUrl": self.media_url,
            "thumbnailUrl": self.thumbnail_url,
            "visibility": self.visibility.value,
            "groupId": self.group_id,
            "skipModeration": self.skip_moderation,
        }


class PublishStatus(Enum):
    """Outcome of one submit press."""
    PUBLISHED = "published"
    AWAITING_THUMBNAIL = "awaiting_thumbnail"
    BLOCKED = "blocked"
    FAILED = "failed"


@dataclass(frozen=True)
class PublishResult:
    """Immutable result of a submit."""
    status: PublishStatus
    post: Optional[Dict[str, Any]] = None
    media_path: Optional[str] = None
    thumbnail_path: Optional[str] = None
    assessment: Optional[ModerationAssessment] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == PublishStatus.PUBLISHED

    @classmethod
    def published(cls, post: Dict[str, Any], media_path: str = None, thumbnail_path: str = None,
                  assessment: ModerationAssessment = None):
        return cls(
            status=PublishStatus.PUBLISHED,
            post=post,
            media_path=media_path,
            thumbnail_path=thumbnail_path,
            assessment=assessment,
        )

    @classmethod
    def awaiting_thumbnail(cls, media_path: str):
        return cls(status=PublishStatus.AWAITING_THUMBNAIL, media_path=media_path)

    @classmethod
    def blocked(cls, assessment: ModerationAssessment, error: str):
        return cls(status=PublishStatus.BLOCKED, assessment=assessment, error=error)

    @classmethod
    def fail(cls, error: str, media_path: str = None):
        return cls(status=PublishStatus.FAILED, error=error, media_path=media_path)


@dataclass(frozen=True)
class PublishConfig:
    """Immutable configuration for the composer."""
    max_image_bytes: int = 10 * MIB
    max_video_bytes: int = 2 * GIB
    max_video_duration: float = 600
    chunked_threshold: int = 50 * MIB
    chunk_size: int = 10 * MIB
    direct_put_timeout: float = 300
    proxy_timeout: float = 600
    chunk_timeout: float = 120
    api_timeout: float = 60
    max_retries: int = 2
    retry_backoff: float = 0.5
    frame_count: int = 6
    default_thumbnail_timestamp: float = 2.0
    max_thumbnail_bytes: int = 10 * MIB
    max_content_length: int = 500
    require_thumbnail: bool = False
    recheck_moderation_on_submit: bool = False
    post_list_stale_seconds: float = 60

    def total_chunks(self, size_bytes: int) -> int:
        """Number of chunks for a chunked upload (ceil division, at least one)."""
        return max(1, -(-size_bytes // self.chunk_size))
