"""
Validator Service - Single Responsibility: gate media before any upload.

Only local checks happen here: file size from the filesystem and
duration from the media probe. No network calls.
"""
import logging
import mimetypes
from pathlib import Path
from typing import Optional

from ..errors import ValidationError
from ..models import MediaAsset, MediaKind, PublishConfig, MIB, GIB
from ..protocols import IMediaProbe
from .probe import FFProbeService, ProbeError

logger = logging.getLogger(__name__)

VIDEO_EXTENSIONS = {
    '.mp4', '.avi', '.mkv', '.mov', '.wmv', '.flv', '.webm', '.m4v',
    '.3gp', '.ogv', '.mts', '.m2ts', '.ts', '.mpeg', '.mpg',
}
IMAGE_EXTENSIONS = {
    '.jpg', '.jpeg', '.png', '.webp', '.gif', '.bmp', '.tiff', '.tif',
    '.heic', '.heif',
}


def guess_content_type(path: Path) -> str:
    mimetype, _ = mimetypes.guess_type(str(path))
    return mimetype or "application/octet-stream"


def detect_kind(path: Path) -> Optional[MediaKind]:
    """Detect media kind from MIME type, falling back to the extension."""
    path = Path(path)
    mimetype, _ = mimetypes.guess_type(str(path))
    if mimetype:
        if mimetype.startswith("image/"):
            return MediaKind.IMAGE
        if mimetype.startswith("video/"):
            return MediaKind.VIDEO
    suffix = path.suffix.lower()
    if suffix in VIDEO_EXTENSIONS:
        return MediaKind.VIDEO
    if suffix in IMAGE_EXTENSIONS:
        return MediaKind.IMAGE
    return None


def _limit_label(limit: int) -> str:
    if limit >= GIB and limit % GIB == 0:
        return f"{limit // GIB}GB"
    return f"{limit // MIB}MB"


class MediaValidator:
    """
    Rejects oversized or over-long media.

    Images: size only. Videos: size, then probed duration.
    """

    def __init__(self, config: Optional[PublishConfig] = None, probe: Optional[IMediaProbe] = None):
        self._config = config or PublishConfig()
        self._probe = probe or FFProbeService()

    async def validate(self, path: Path, kind: Optional[MediaKind] = None) -> MediaAsset:
        """
        Validate a selected file.

        Args:
            path: Local file
            kind: Declared kind; detected from the file name when omitted

        Returns:
            MediaAsset with duration filled in for videos

        Raises:
            ValidationError: file rejected
        """
        path = Path(path)
        kind = kind or detect_kind(path)
        if kind is None:
            raise ValidationError(f"Unsupported file type: {path.suffix or path.name}", "unsupported_type")

        try:
            size = path.stat().st_size
        except OSError as exc:
            raise ValidationError(f"Could not read file: {path.name}", "unreadable") from exc

        content_type = guess_content_type(path)

        if kind == MediaKind.IMAGE:
            if size > self._config.max_image_bytes:
                raise ValidationError(
                    f"Images must be under {_limit_label(self._config.max_image_bytes)}",
                    "image_too_large",
                )
            return MediaAsset(path=path, kind=kind, size_bytes=size, content_type=content_type)

        if size > self._config.max_video_bytes:
            raise ValidationError(
                f"Videos must be under {_limit_label(self._config.max_video_bytes)}",
                "video_too_large",
            )

        try:
            duration = await self._probe.duration(path)
        except ProbeError as exc:
            logger.warning(f"[validator] probe failed for {path.name}: {exc}")
            raise ValidationError(
                "Could not process video. Please try a different file.", "video_unreadable"
            ) from exc

        if duration > self._config.max_video_duration:
            minutes = int(self._config.max_video_duration // 60)
            raise ValidationError(f"Videos must be {minutes} minutes or less", "video_too_long")

        logger.debug(f"[validator] accepted {path.name}: {size} bytes, {duration:.1f}s")
        return MediaAsset(
            path=path,
            kind=kind,
            size_bytes=size,
            content_type=content_type,
            duration_seconds=duration,
        )

    def validate_thumbnail(self, path: Path) -> MediaAsset:
        """Check a user-provided thumbnail image (MIME type and size)."""
        path = Path(path)
        content_type = guess_content_type(path)
        if not content_type.startswith("image/"):
            raise ValidationError("Please select an image file", "thumbnail_not_image")
        try:
            size = path.stat().st_size
        except OSError as exc:
            raise ValidationError(f"Could not read file: {path.name}", "unreadable") from exc
        if size > self._config.max_thumbnail_bytes:
            raise ValidationError(
                f"Thumbnail must be under {_limit_label(self._config.max_thumbnail_bytes)}",
                "thumbnail_too_large",
            )
        return MediaAsset(path=path, kind=MediaKind.IMAGE, size_bytes=size, content_type=content_type)
