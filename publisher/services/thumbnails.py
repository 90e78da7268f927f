"""
Thumbnail Service - Single Responsibility: call the video thumbnail endpoints.

Every failure is reported as ThumbnailGenerationError; the workflow
decides whether it is tolerated.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional

from ..errors import PublishError, ThumbnailGenerationError
from ..protocols import IAPIClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Frame:
    """One extracted frame."""
    thumbnail_path: str
    timestamp: float


class ThumbnailService:
    """Backend calls for auto thumbnails, frame extraction and timestamp previews."""

    def __init__(self, api: IAPIClient):
        self._api = api

    async def auto(self, video_path: str) -> str:
        data = await self._call("/api/video/auto-thumbnail", {"videoPath": video_path}, "generate thumbnail")
        return self._path(data, "generate thumbnail")

    async def extract_frames(self, video_path: str, frame_count: int = 6) -> List[Frame]:
        data = await self._call(
            "/api/video/extract-frames",
            {"videoPath": video_path, "frameCount": frame_count},
            "extract frames",
        )
        frames = []
        for item in data.get("frames") or []:
            path = item.get("thumbnailPath")
            if not path:
                continue
            frames.append(Frame(thumbnail_path=path, timestamp=float(item.get("timestamp") or 0)))
        return frames

    async def at_timestamp(self, video_path: str, timestamp: float) -> str:
        data = await self._call(
            "/api/video/thumbnail-at-timestamp",
            {"videoPath": video_path, "timestamp": timestamp},
            "generate preview",
        )
        return self._path(data, "generate preview")

    async def _call(self, endpoint: str, body: dict, action: str) -> dict:
        try:
            response = await self._api.post(endpoint, json=body)
            data = response.json()
        except PublishError as exc:
            logger.error(f"[thumbnail] failed to {action}: {exc}")
            raise ThumbnailGenerationError(f"Failed to {action}: {exc}") from exc
        except ValueError as exc:
            raise ThumbnailGenerationError(f"Failed to {action}: invalid response") from exc
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _path(data: dict, action: str) -> str:
        path: Optional[str] = data.get("thumbnailPath")
        if not path:
            raise ThumbnailGenerationError(f"Failed to {action}: no thumbnail returned")
        return path
