"""Shared plumbing for upload transports: retry, cancellation, streaming bodies."""
from __future__ import annotations

import asyncio
import logging
import secrets
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional, TypeVar

import httpx

from ...errors import ApiError, MediaReadError, TransportError, UploadCancelled, describe_exception
from ...models import MediaAsset, PublishConfig, UploadSession
from ...protocols import IUploadTransport

logger = logging.getLogger(__name__)

T = TypeVar("T")

READ_PIECE_SIZE = 256 * 1024


class CancellationToken:
    """
    User-initiated abort signal shared by every step of one upload.

    ``guard`` races an awaitable against the signal so an in-flight
    request is torn down as soon as ``cancel`` is called.
    """

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise UploadCancelled()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        task = asyncio.ensure_future(awaitable)
        if self.cancelled:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise UploadCancelled()

        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for pending in (task, waiter):
                if not pending.done():
                    pending.cancel()
            await asyncio.gather(waiter, return_exceptions=True)

        if task in done and not task.cancelled():
            return task.result()
        await asyncio.gather(task, return_exceptions=True)
        raise UploadCancelled()


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry with linear backoff for one request or chunk."""
    max_retries: int = 2
    backoff: float = 0.5

    @classmethod
    def from_config(cls, config: PublishConfig) -> "RetryPolicy":
        return cls(max_retries=config.max_retries, backoff=config.retry_backoff)

    @staticmethod
    def should_retry(exc: Exception) -> bool:
        if isinstance(exc, (UploadCancelled, MediaReadError)):
            return False
        if isinstance(exc, TransportError):
            return exc.status is None or exc.status >= 500
        return False

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        describe: str,
        token: Optional[CancellationToken] = None,
    ) -> T:
        attempt = 0
        while True:
            if token:
                token.raise_if_cancelled()
            try:
                return await operation()
            except TransportError as exc:
                if attempt >= self.max_retries or not self.should_retry(exc):
                    raise
                attempt += 1
                logger.warning(
                    f"[transport] {describe} failed ({exc}); retry {attempt}/{self.max_retries}"
                )
                await asyncio.sleep(self.backoff * attempt)


class FileSlice:
    """A byte range of a local file, read off the event loop."""

    def __init__(self, path: Path, offset: int = 0, length: Optional[int] = None):
        self.path = Path(path)
        self.offset = offset
        self.length = length if length is not None else self.path.stat().st_size - offset

    async def iter_pieces(
        self,
        piece_size: int = READ_PIECE_SIZE,
        token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[bytes]:
        try:
            handle = await asyncio.to_thread(open, self.path, "rb")
        except OSError as exc:
            raise MediaReadError(f"cannot read {self.path.name}: {exc.strerror or exc}") from exc
        try:
            await asyncio.to_thread(handle.seek, self.offset)
            remaining = self.length
            while remaining > 0:
                if token:
                    token.raise_if_cancelled()
                try:
                    data = await asyncio.to_thread(handle.read, min(piece_size, remaining))
                except OSError as exc:
                    raise MediaReadError(f"cannot read {self.path.name}: {exc.strerror or exc}") from exc
                if not data:
                    raise MediaReadError(
                        f"{self.path.name} ended early at offset {self.offset + self.length - remaining}"
                    )
                remaining -= len(data)
                yield data
        finally:
            await asyncio.to_thread(handle.close)


def _quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', "%22").replace("\r", "%0D").replace("\n", "%0A")


class MultipartBody:
    """
    Streamed ``multipart/form-data`` body: text fields followed by one file part.

    Length is known up front so the request carries ``Content-Length``.
    """

    def __init__(
        self,
        file_field: str,
        filename: str,
        content_type: str,
        source: FileSlice,
        fields: Optional[Dict[str, Any]] = None,
    ):
        self.boundary = secrets.token_hex(16)
        self._source = source
        parts = []
        for name, value in (fields or {}).items():
            parts.append(
                f'--{self.boundary}\r\n'
                f'Content-Disposition: form-data; name="{_quote(name)}"\r\n\r\n'
                f'{value}\r\n'
            )
        parts.append(
            f'--{self.boundary}\r\n'
            f'Content-Disposition: form-data; name="{_quote(file_field)}"; filename="{_quote(filename)}"\r\n'
            f'Content-Type: {content_type}\r\n\r\n'
        )
        self._head = "".join(parts).encode("utf-8")
        self._tail = f'\r\n--{self.boundary}--\r\n'.encode("utf-8")

    @property
    def content_length(self) -> int:
        return len(self._head) + self._source.length + len(self._tail)

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Content-Type": f"multipart/form-data; boundary={self.boundary}",
            "Content-Length": str(self.content_length),
        }

    async def stream(
        self,
        on_bytes: Optional[Callable[[int], None]] = None,
        token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[bytes]:
        yield self._head
        sent = 0
        async for piece in self._source.iter_pieces(token=token):
            sent += len(piece)
            if on_bytes:
                on_bytes(sent)
            yield piece
        yield self._tail


def byte_progress(sent: int, total: int) -> int:
    """Percent for bytes on the wire; 100 is reserved for the acknowledgment."""
    if total <= 0:
        return 0
    return min(99, sent * 99 // total)


def json_field(response: httpx.Response, key: str) -> Any:
    try:
        data = response.json()
    except ValueError as exc:
        raise TransportError(f"invalid JSON response ({response.status_code})", response.status_code) from exc
    value = data.get(key) if isinstance(data, dict) else None
    if not value:
        raise TransportError(f"response missing '{key}'", response.status_code)
    return value


def raise_for_status(response: httpx.Response) -> httpx.Response:
    """Raise the typed envelope for non-2xx responses from raw requests."""
    if response.status_code >= 400:
        raise ApiError.from_response(response)
    return response


async def send_raw(send: Awaitable[httpx.Response]) -> httpx.Response:
    """Await a raw httpx request, mapping connection errors to TransportError."""
    try:
        response = await send
    except httpx.TimeoutException as exc:
        raise TransportError(f"timed out ({type(exc).__name__})") from exc
    except httpx.TransportError as exc:
        raise TransportError(str(exc) or type(exc).__name__) from exc
    return raise_for_status(response)


class UploadTransport(IUploadTransport):
    """
    Base transport: session bookkeeping and error wrapping.

    Subclasses implement ``_transfer``.
    """

    def __init__(self, api, config: Optional[PublishConfig] = None, retry: Optional[RetryPolicy] = None):
        self._api = api
        self._config = config or PublishConfig()
        self._retry = retry or RetryPolicy.from_config(self._config)

    async def upload(
        self,
        asset: MediaAsset,
        session: UploadSession,
        cancel_token: Optional[CancellationToken] = None,
    ) -> str:
        token = cancel_token or CancellationToken()
        session.start()
        logger.info(f"[{self.strategy.value}] uploading {asset.filename} ({asset.size_bytes} bytes)")
        try:
            object_path = await self._transfer(asset, session, token)
        except UploadCancelled as exc:
            session.fail(str(exc), cancelled=True)
            logger.info(f"[{self.strategy.value}] cancelled {asset.filename}")
            raise
        except TransportError as exc:
            message = f"Upload failed: {exc}"
            session.fail(message)
            logger.error(f"[{self.strategy.value}] {asset.filename}: {message}")
            raise TransportError(message, exc.status) from exc
        except Exception as exc:
            session.fail(f"Upload failed: {describe_exception(exc)}")
            logger.exception(f"[{self.strategy.value}] {asset.filename}: unexpected upload error")
            raise

        session.report(100)
        session.finish(object_path)
        logger.info(f"[{self.strategy.value}] uploaded {asset.filename} -> {object_path}")
        return object_path

    async def _transfer(self, asset: MediaAsset, session: UploadSession, token: CancellationToken) -> str:
        raise NotImplementedError
