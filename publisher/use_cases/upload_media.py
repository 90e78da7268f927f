"""Use case for uploading one validated media asset."""
from __future__ import annotations

import logging
from typing import Optional

from publisher.models import MediaAsset, ProgressCallback, UploadSession
from publisher.services.transports import CancellationToken, UploadStrategySelector

logger = logging.getLogger(__name__)


class UploadMediaUseCase:
    """Pick a transport for the asset and run it inside a fresh session."""

    def __init__(self, selector: UploadStrategySelector):
        self._selector = selector

    def new_session(self, asset: MediaAsset, on_progress: Optional[ProgressCallback] = None) -> UploadSession:
        return UploadSession(strategy=self._selector.strategy_for(asset), on_progress=on_progress)

    async def execute(
        self,
        asset: MediaAsset,
        session: UploadSession,
        cancel_token: Optional[CancellationToken] = None,
    ) -> str:
        transport = self._selector.transport(session.strategy)
        logger.debug(
            "Media upload started: file=%s kind=%s strategy=%s",
            asset.filename,
            asset.kind.value,
            session.strategy.value,
        )
        return await transport.upload(asset, session, cancel_token)
