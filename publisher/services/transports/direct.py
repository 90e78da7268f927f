"""Direct transport: signed-URL PUT straight to storage."""
import logging
from typing import AsyncIterator

from ...models import MediaAsset, UploadSession, UploadStrategy
from .base import (
    CancellationToken,
    FileSlice,
    UploadTransport,
    byte_progress,
    json_field,
    send_raw,
)

logger = logging.getLogger(__name__)


class DirectTransport(UploadTransport):
    """
    Three steps: request a signed URL, PUT the raw file, finalize the media path.

    Used for images. Each step is retried by the transport policy only, and
    the storage PUT goes out without backend cookies.
    """

    strategy = UploadStrategy.DIRECT

    async def _transfer(self, asset: MediaAsset, session: UploadSession, token: CancellationToken) -> str:
        upload_url = await self._retry.run(
            lambda: token.guard(self._request_signed_url()), "signed URL request", token
        )
        await self._retry.run(
            lambda: token.guard(self._put_file(upload_url, asset, session, token)), "storage PUT", token
        )
        session.report(100)
        return await self._retry.run(
            lambda: token.guard(self._finalize(upload_url)), "media finalize", token
        )

    async def _request_signed_url(self) -> str:
        response = await self._api.post("/api/objects/upload", json={}, retry=False)
        return json_field(response, "uploadURL")

    async def _put_file(self, upload_url: str, asset: MediaAsset, session: UploadSession,
                        token: CancellationToken) -> None:
        headers = {
            "Content-Type": asset.content_type,
            "Content-Length": str(asset.size_bytes),
        }
        await send_raw(
            self._api.storage.put(
                upload_url,
                content=self._body(asset, session, token),
                headers=headers,
                timeout=self._config.direct_put_timeout,
            )
        )

    async def _body(self, asset: MediaAsset, session: UploadSession,
                    token: CancellationToken) -> AsyncIterator[bytes]:
        sent = 0
        async for piece in FileSlice(asset.path, 0, asset.size_bytes).iter_pieces(token=token):
            sent += len(piece)
            session.report(byte_progress(sent, asset.size_bytes))
            yield piece

    async def _finalize(self, upload_url: str) -> str:
        media_url = upload_url.split("?", 1)[0]
        response = await self._api.put("/api/media", json={"mediaURL": media_url}, retry=False)
        return json_field(response, "objectPath")
