"""
Error taxonomy for the publish flow.

Every error is scoped to a single submit attempt; none of them is fatal.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from .models import ModerationAssessment


class PublishError(Exception):
    """Base class for publish flow errors."""


class ValidationError(PublishError):
    """Local rejection of a file or draft, raised before any network call."""

    def __init__(self, message: str, code: str = "invalid"):
        super().__init__(message)
        self.code = code


class TransportError(PublishError):
    """Network failure, timeout or non-2xx response from a transport."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class UploadCancelled(TransportError):
    """The caller aborted an in-flight upload."""

    def __init__(self, message: str = "Upload cancelled"):
        super().__init__(message)


class MediaReadError(TransportError):
    """The attached file could not be read during the transfer; not retried."""


class ApiError(TransportError):
    """
    Typed error envelope for a non-2xx backend response.

    Parsed once from the response; callers inspect ``http_status``,
    ``code`` and ``payload`` instead of matching on message text.
    """

    def __init__(
        self,
        http_status: int,
        message: str,
        code: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, status=http_status)
        self.http_status = http_status
        self.code = code
        self.payload = payload or {}

    @property
    def is_moderation_block(self) -> bool:
        return bool(self.payload.get("blocked"))

    @property
    def is_csrf_failure(self) -> bool:
        return self.http_status == 403 and "csrf" in str(self).lower()

    @classmethod
    def from_response(cls, response: httpx.Response) -> "ApiError":
        payload: Dict[str, Any] = {}
        try:
            body = response.json()
            if isinstance(body, dict):
                payload = body
        except ValueError:
            pass

        message = payload.get("error") or payload.get("message")
        if not message:
            text = response.text.strip()
            message = text if text and len(text) < 300 else str(response.status_code)

        code = payload.get("code")
        if code is None and payload.get("blocked"):
            code = "moderation_blocked"
        return cls(response.status_code, str(message), code=code, payload=payload)


class ThumbnailGenerationError(PublishError):
    """A thumbnail endpoint or the manual thumbnail upload failed."""


class ThumbnailSelectionError(PublishError):
    """Confirm was requested while the active mode has no candidate."""


class ThumbnailRequired(PublishError):
    """Video publish attempted without a thumbnail while one is required."""


class ModerationBlocked(PublishError):
    """Content graded high/critical; the post is not created."""

    def __init__(self, assessment: ModerationAssessment, message: Optional[str] = None):
        super().__init__(
            message
            or "This content violates our community guidelines. Please modify and try again."
        )
        self.assessment = assessment


class ServerRejection(ModerationBlocked):
    """The create-post call itself returned a blocked verdict."""

    def __init__(self, assessment: ModerationAssessment, api_error: ApiError):
        super().__init__(assessment, "This content violates our community guidelines.")
        self.api_error = api_error

    @classmethod
    def from_api_error(cls, exc: ApiError) -> "ServerRejection":
        return cls(ModerationAssessment.blocked(exc.payload.get("moderationResult")), exc)


class ComposerBusyError(PublishError):
    """A submit is already running for this composer."""


class InvalidTransition(PublishError):
    """An action was requested in a state that does not allow it."""

    def __init__(self, state, event):
        super().__init__(f"Cannot {event.value} while {state.value}")
        self.state = state
        self.event = event


def describe_exception(exc: BaseException) -> str:
    message = str(exc).strip()
    if message:
        return message
    return f"{type(exc).__name__}: {repr(exc)}"
