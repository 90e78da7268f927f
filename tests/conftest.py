"""Shared fixtures: an in-memory backend behind httpx.MockTransport."""
import inspect
import json
from pathlib import Path
from typing import Callable, Dict, List, Tuple, Union
from unittest.mock import AsyncMock, Mock

import httpx
import pytest
import pytest_asyncio

from publisher.models import MIB, PublishConfig
from publisher.services.api_client import HTTPAPIClient

Handler = Union[Callable[[httpx.Request], object], dict, httpx.Response, list]


class FakeBackend:
    """
    Routes requests by (method, path) and records every request.

    A route may be a dict (JSON 200), an ``httpx.Response``, a callable
    taking the request, or a list consumed in order (last item repeats).
    """

    def __init__(self, csrf_token: str = "csrf-1"):
        self.csrf_token = csrf_token
        self.requests: List[httpx.Request] = []
        self.routes: Dict[Tuple[str, str], Handler] = {}

    def route(self, method: str, path: str, handler: Handler) -> "FakeBackend":
        self.routes[(method.upper(), path)] = handler
        return self

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method.upper() and r.url.path == path]

    def paths(self) -> List[str]:
        return [f"{r.method} {r.url.path}" for r in self.requests if r.url.path != "/api/csrf-token"]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        handler = self.routes.get(key)
        if handler is None and key == ("GET", "/api/csrf-token"):
            return httpx.Response(200, json={"csrfToken": self.csrf_token})
        if handler is None:
            return httpx.Response(404, json={"error": f"no route for {key[0]} {key[1]}"})

        if isinstance(handler, list):
            handler = handler.pop(0) if len(handler) > 1 else handler[0]
        result = handler(request) if callable(handler) else handler
        if inspect.isawaitable(result):
            return self._finish(result)
        return self._as_response(result)

    @staticmethod
    def _as_response(result) -> httpx.Response:
        if isinstance(result, httpx.Response):
            return result
        return httpx.Response(200, json=result)

    async def _finish(self, awaitable) -> httpx.Response:
        return self._as_response(await awaitable)


def request_json(request: httpx.Request) -> dict:
    return json.loads(request.content or b"{}")


def multipart_fields(request: httpx.Request) -> Dict[str, str]:
    """Text fields of a multipart request (file part excluded)."""
    boundary = request.headers["content-type"].split("boundary=")[1].encode()
    fields = {}
    for part in request.content.split(b"--" + boundary):
        head, _, body = part.partition(b"\r\n\r\n")
        if b"filename=" in head or b'name="' not in head:
            continue
        name = head.split(b'name="')[1].split(b'"')[0].decode()
        fields[name] = body[: -len(b"\r\n")].decode()
    return fields


def multipart_file_length(request: httpx.Request) -> int:
    boundary = request.headers["content-type"].split("boundary=")[1].encode()
    content = request.content
    head_end = content.index(b"filename=")
    start = content.index(b"\r\n\r\n", head_end) + 4
    end = content.rindex(b"\r\n--" + boundary + b"--")
    return end - start


def make_file(path: Path, size: int) -> Path:
    """Create a sparse file of the given size."""
    with open(path, "wb") as handle:
        handle.truncate(size)
    return path


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def config():
    return PublishConfig(retry_backoff=0)


@pytest.fixture
def fake_probe():
    probe = Mock()
    probe.duration = AsyncMock(return_value=30.0)
    return probe


@pytest_asyncio.fixture
async def api(backend):
    async with HTTPAPIClient(
        "http://testserver",
        backoff=0,
        transport=httpx.MockTransport(backend),
    ) as client:
        yield client


@pytest.fixture
def small_image(tmp_path):
    return make_file(tmp_path / "photo.jpg", 5 * MIB)


@pytest.fixture
def small_video(tmp_path):
    return make_file(tmp_path / "clip.mp4", 3 * MIB)
