"""
Protocols (Interfaces) for Dependency Inversion.

Small interfaces so services and workflows can be tested with fakes.
"""
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Dict, Any, Protocol, runtime_checkable

import httpx

from .models import MediaAsset, UploadSession, UploadStrategy


@runtime_checkable
class IAPIClient(Protocol):
    """Interface for backend API operations."""

    async def post(self, endpoint: str, json: Optional[Dict] = None, retry: bool = True) -> httpx.Response:
        """POST JSON to the backend; ``retry=False`` sends exactly once."""
        ...

    async def put(self, endpoint: str, json: Optional[Dict] = None, retry: bool = True) -> httpx.Response:
        """PUT JSON to the backend; ``retry=False`` sends exactly once."""
        ...

    async def get(self, endpoint: str) -> httpx.Response:
        """GET from the backend."""
        ...

    async def csrf_headers(self) -> Dict[str, str]:
        """Headers to attach to raw state-changing requests."""
        ...


@runtime_checkable
class IMediaProbe(Protocol):
    """Interface for reading container metadata."""

    async def duration(self, path: Path) -> float:
        """Return media duration in seconds."""
        ...


class IUploadTransport(ABC):
    """Interface for one transfer protocol."""

    strategy: UploadStrategy

    @abstractmethod
    async def upload(self, asset: MediaAsset, session: UploadSession, cancel_token=None) -> str:
        """Transfer the asset and return the backend object path."""
        pass
