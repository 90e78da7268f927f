"""Moderation Service - advisory pre-check against the backend."""
import logging
from typing import Optional

from ..models import MediaKind, ModerationAssessment
from ..protocols import IAPIClient

logger = logging.getLogger(__name__)


class ModerationService:
    """Wraps ``POST /api/moderation/pre-check``."""

    def __init__(self, api: IAPIClient):
        self._api = api

    async def pre_check(self, content: str, media_kind: Optional[MediaKind] = None) -> ModerationAssessment:
        response = await self._api.post(
            "/api/moderation/pre-check",
            json={"content": content.strip(), "mediaType": media_kind.value if media_kind else None},
        )
        assessment = ModerationAssessment.from_payload(response.json())
        logger.debug(
            f"[moderation] pre-check: violation={assessment.is_violation} "
            f"severity={assessment.severity.value}"
        )
        return assessment
