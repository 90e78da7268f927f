"""Proxy transport: one multipart POST through the backend."""
import logging

from ...models import MediaAsset, UploadSession, UploadStrategy
from .base import (
    CancellationToken,
    FileSlice,
    MultipartBody,
    UploadTransport,
    byte_progress,
    json_field,
    send_raw,
)

logger = logging.getLogger(__name__)

PROXY_ENDPOINT = "/api/objects/upload-proxy"


class ProxyTransport(UploadTransport):
    """
    Whole file in a single request, with the CSRF token attached by hand.

    Used for video up to the chunked threshold and for manual thumbnails.
    """

    strategy = UploadStrategy.PROXY

    async def _transfer(self, asset: MediaAsset, session: UploadSession, token: CancellationToken) -> str:
        return await self._retry.run(
            lambda: token.guard(self._post(asset, session, token)), "proxy upload", token
        )

    async def _post(self, asset: MediaAsset, session: UploadSession, token: CancellationToken) -> str:
        body = MultipartBody(
            "file",
            asset.filename,
            asset.content_type,
            FileSlice(asset.path, 0, asset.size_bytes),
        )
        headers = dict(body.headers)
        headers.update(await self._api.csrf_headers())

        def on_bytes(sent: int) -> None:
            session.report(byte_progress(sent, asset.size_bytes))

        response = await send_raw(
            self._api.raw.post(
                PROXY_ENDPOINT,
                content=body.stream(on_bytes, token),
                headers=headers,
                timeout=self._config.proxy_timeout,
            )
        )
        return json_field(response, "objectPath")
