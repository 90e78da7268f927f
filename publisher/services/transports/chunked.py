"""Chunked transport: init, sequential fixed-size chunks, complete."""
import logging
from typing import Iterator, Tuple

from ...models import MediaAsset, UploadSession, UploadStrategy
from .base import (
    CancellationToken,
    FileSlice,
    MultipartBody,
    UploadTransport,
    json_field,
    send_raw,
)

logger = logging.getLogger(__name__)

INIT_ENDPOINT = "/api/objects/chunked-upload/init"
CHUNK_ENDPOINT = "/api/objects/chunked-upload/chunk"
COMPLETE_ENDPOINT = "/api/objects/chunked-upload/complete"


def chunk_ranges(size_bytes: int, chunk_size: int) -> Iterator[Tuple[int, int, int]]:
    """Yield (index, offset, length); lengths sum to size_bytes."""
    total = max(1, -(-size_bytes // chunk_size))
    for index in range(total):
        offset = index * chunk_size
        yield index, offset, min(chunk_size, size_bytes - offset)


def chunk_progress(index: int, total_chunks: int) -> int:
    return (index + 1) * 100 // total_chunks


class ChunkedTransport(UploadTransport):
    """
    Large video path around the backend body-size ceiling.

    Chunk N+1 is never sent before chunk N is acknowledged, and a chunk
    that still fails after its retries aborts the whole session.
    """

    strategy = UploadStrategy.CHUNKED

    async def _transfer(self, asset: MediaAsset, session: UploadSession, token: CancellationToken) -> str:
        total_chunks = self._config.total_chunks(asset.size_bytes)
        upload_id, object_path = await self._retry.run(
            lambda: token.guard(self._init(asset, total_chunks)), "chunked init", token
        )
        logger.debug(f"[chunked] session {upload_id}: {total_chunks} chunks for {asset.filename}")

        for index, offset, length in chunk_ranges(asset.size_bytes, self._config.chunk_size):
            await self._retry.run(
                lambda: token.guard(
                    self._send_chunk(asset, upload_id, index, offset, length, total_chunks, token)
                ),
                f"chunk {index + 1}/{total_chunks}",
                token,
            )
            session.report(chunk_progress(index, total_chunks))

        completed_path = await self._retry.run(
            lambda: token.guard(self._complete(upload_id)), "chunked complete", token
        )
        if completed_path and completed_path != object_path:
            logger.warning(
                f"[chunked] complete returned {completed_path}, keeping init path {object_path}"
            )
        return object_path

    async def _init(self, asset: MediaAsset, total_chunks: int) -> Tuple[str, str]:
        headers = await self._api.csrf_headers()
        response = await send_raw(
            self._api.raw.post(
                INIT_ENDPOINT,
                json={
                    "contentType": asset.content_type,
                    "totalSize": asset.size_bytes,
                    "totalChunks": total_chunks,
                },
                headers=headers,
            )
        )
        return json_field(response, "uploadId"), json_field(response, "objectPath")

    async def _send_chunk(self, asset: MediaAsset, upload_id: str, index: int, offset: int,
                          length: int, total_chunks: int, token: CancellationToken) -> None:
        body = MultipartBody(
            "chunk",
            asset.filename,
            "application/octet-stream",
            FileSlice(asset.path, offset, length),
            fields={"uploadId": upload_id, "chunkIndex": index, "totalChunks": total_chunks},
        )
        headers = dict(body.headers)
        headers.update(await self._api.csrf_headers())
        await send_raw(
            self._api.raw.post(
                CHUNK_ENDPOINT,
                content=body.stream(token=token),
                headers=headers,
                timeout=self._config.chunk_timeout,
            )
        )

    async def _complete(self, upload_id: str) -> str:
        headers = await self._api.csrf_headers()
        response = await send_raw(
            self._api.raw.post(COMPLETE_ENDPOINT, json={"uploadId": upload_id}, headers=headers)
        )
        try:
            data = response.json()
        except ValueError:
            return ""
        return data.get("objectPath", "") if isinstance(data, dict) else ""
