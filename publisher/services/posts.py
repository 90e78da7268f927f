"""Post repository backed by the HTTP API, with a client-side list cache."""
from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

from ..errors import ApiError, ServerRejection
from ..models import PostDraft
from ..protocols import IAPIClient

logger = logging.getLogger(__name__)


class PostRepository:
    """
    Creates posts and serves the post list.

    The list is cached until it goes stale or a publish invalidates it.
    """

    def __init__(self, api_client: IAPIClient, stale_seconds: float = 60):
        self._api = api_client
        self._stale_seconds = stale_seconds
        self._list_cache: Optional[List[Dict[str, Any]]] = None
        self._cached_at = 0.0

    async def create(self, draft: PostDraft) -> Dict[str, Any]:
        """
        Send the draft once.

        Raises:
            ServerRejection: backend refused the content on moderation grounds
            ApiError: any other non-2xx response
        """
        try:
            # sent exactly once, even on 5xx or a dropped connection
            response = await self._api.post("/api/posts", json=draft.to_payload(), retry=False)
        except ApiError as exc:
            if exc.is_moderation_block:
                raise ServerRejection.from_api_error(exc) from exc
            raise
        data = response.json() if response.content else {}
        return data.get("post", data) if isinstance(data, dict) else {}

    async def list_posts(self, force: bool = False) -> List[Dict[str, Any]]:
        now = time.monotonic()
        if not force and self._list_cache is not None and now - self._cached_at < self._stale_seconds:
            return self._list_cache

        response = await self._api.get("/api/posts")
        data = response.json()
        posts = data.get("posts", []) if isinstance(data, dict) else data
        self._list_cache = list(posts or [])
        self._cached_at = now
        return self._list_cache

    def invalidate(self) -> None:
        if self._list_cache is not None:
            logger.debug("[posts] list cache invalidated")
        self._list_cache = None
        self._cached_at = 0.0
