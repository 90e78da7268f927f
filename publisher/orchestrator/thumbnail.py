"""Thumbnail selection workflow for an uploaded video."""
import asyncio
import logging
from pathlib import Path
from typing import List, Optional

from ..errors import (
    InvalidTransition,
    ThumbnailGenerationError,
    ThumbnailSelectionError,
    TransportError,
)
from ..models import (
    PublishConfig,
    ThumbnailCandidate,
    ThumbnailSource,
    UploadSession,
    UploadStrategy,
)
from ..services.thumbnails import Frame, ThumbnailService
from ..services.validator import MediaValidator
from .models import (
    CHOOSING_STATES,
    THUMBNAIL_TRANSITIONS,
    ThumbnailEvent,
    ThumbnailState,
)

logger = logging.getLogger(__name__)


class ThumbnailWorkflow:
    """
    Coordinates the four ways of getting a thumbnail into one selection.

    Modes keep their own candidate; confirm takes the active mode's
    candidate. Skip falls back to the auto endpoint and tolerates its
    failure, so the workflow always ends in SELECTED.
    """

    def __init__(
        self,
        thumbnails: ThumbnailService,
        proxy_transport,
        video_path: str,
        duration: Optional[float] = None,
        config: Optional[PublishConfig] = None,
        validator: Optional[MediaValidator] = None,
    ):
        self._thumbnails = thumbnails
        self._proxy = proxy_transport
        self._config = config or PublishConfig()
        self._validator = validator or MediaValidator(self._config)
        self.video_path = video_path
        self.duration = duration

        self._state = ThumbnailState.IDLE
        self._auto: Optional[ThumbnailCandidate] = None
        self._frames: List[Frame] = []
        self._frames_loaded = False
        self._picked_frame: Optional[ThumbnailCandidate] = None
        self._timestamp_preview: Optional[ThumbnailCandidate] = None
        self._uploaded: Optional[ThumbnailCandidate] = None
        self._selection: Optional[ThumbnailCandidate] = None
        self._resolved = asyncio.Event()
        self.custom_timestamp = self._config.default_thumbnail_timestamp

    # -- state -------------------------------------------------------------

    @property
    def state(self) -> ThumbnailState:
        return self._state

    @property
    def is_choosing(self) -> bool:
        return self._state in CHOOSING_STATES

    @property
    def is_resolved(self) -> bool:
        return self._state == ThumbnailState.SELECTED

    @property
    def frames(self) -> List[Frame]:
        return list(self._frames)

    @property
    def selection(self) -> Optional[ThumbnailCandidate]:
        return self._selection

    @property
    def thumbnail_path(self) -> Optional[str]:
        return self._selection.path if self._selection else None

    def _check(self, event: ThumbnailEvent) -> ThumbnailState:
        target = THUMBNAIL_TRANSITIONS.get((self._state, event))
        if target is None:
            raise InvalidTransition(self._state, event)
        return target

    def _fire(self, event: ThumbnailEvent) -> None:
        target = self._check(event)
        if target != self._state:
            logger.debug(f"[thumbnail] {self._state.value} -> {target.value}")
        self._state = target

    def start(self) -> "ThumbnailWorkflow":
        self._fire(ThumbnailEvent.START)
        return self

    @property
    def candidate(self) -> Optional[ThumbnailCandidate]:
        """Current candidate of the active mode."""
        if self._state == ThumbnailState.AUTO:
            return self._auto
        if self._state == ThumbnailState.TIMESTAMP_PREVIEW:
            return self._timestamp_preview or self._picked_frame
        if self._state == ThumbnailState.FRAME_SELECT:
            return self._picked_frame
        if self._state == ThumbnailState.MANUAL_UPLOAD:
            return self._uploaded
        if self._state == ThumbnailState.SELECTED:
            return self._selection
        return None

    # -- auto --------------------------------------------------------------

    def show_auto(self) -> None:
        self._fire(ThumbnailEvent.SHOW_AUTO)

    async def generate_auto(self) -> ThumbnailCandidate:
        """Generate (or regenerate) the auto thumbnail."""
        self._check(ThumbnailEvent.SHOW_AUTO)
        path = await self._thumbnails.auto(self.video_path)
        self._auto = ThumbnailCandidate(ThumbnailSource.AUTO, path)
        self._fire(ThumbnailEvent.SHOW_AUTO)
        return self._auto

    # -- frames ------------------------------------------------------------

    async def show_frames(self) -> List[Frame]:
        """Enter frame selection; frames are extracted on first entry only."""
        self._check(ThumbnailEvent.SHOW_FRAMES)
        if not self._frames_loaded:
            frames = await self._thumbnails.extract_frames(self.video_path, self._config.frame_count)
            self._frames = frames
            self._frames_loaded = True
            if frames and self._picked_frame is None:
                self._picked_frame = self._frame_candidate(frames[0])
        self._fire(ThumbnailEvent.SHOW_FRAMES)
        if self._timestamp_preview is not None:
            self._fire(ThumbnailEvent.PREVIEW)
        return list(self._frames)

    @staticmethod
    def _frame_candidate(frame: Frame) -> ThumbnailCandidate:
        return ThumbnailCandidate(ThumbnailSource.FRAME, frame.thumbnail_path, frame.timestamp)

    def pick_frame(self, thumbnail_path: str) -> ThumbnailCandidate:
        self._check(ThumbnailEvent.PICK_FRAME)
        for frame in self._frames:
            if frame.thumbnail_path == thumbnail_path:
                return self._pick(frame)
        raise ThumbnailSelectionError(f"Unknown frame: {thumbnail_path}")

    def pick_frame_at(self, timestamp: float) -> ThumbnailCandidate:
        self._check(ThumbnailEvent.PICK_FRAME)
        for frame in self._frames:
            if abs(frame.timestamp - timestamp) < 1e-6:
                return self._pick(frame)
        raise ThumbnailSelectionError(f"No extracted frame at {timestamp}s")

    def pick_frame_index(self, index: int) -> ThumbnailCandidate:
        self._check(ThumbnailEvent.PICK_FRAME)
        if not 0 <= index < len(self._frames):
            raise ThumbnailSelectionError(f"No extracted frame #{index}")
        return self._pick(self._frames[index])

    def _pick(self, frame: Frame) -> ThumbnailCandidate:
        self._picked_frame = self._frame_candidate(frame)
        self._timestamp_preview = None
        self._fire(ThumbnailEvent.PICK_FRAME)
        return self._picked_frame

    async def preview_at(self, timestamp: float) -> ThumbnailCandidate:
        """Custom preview at a slider position; supersedes the picked frame."""
        self._check(ThumbnailEvent.PREVIEW)
        if self.duration is None:
            if timestamp < 0:
                raise ThumbnailSelectionError("Timestamp must not be negative")
        elif timestamp < 0 or timestamp > self.duration:
            raise ThumbnailSelectionError(f"Timestamp must be between 0 and {self.duration:g} seconds")
        self.custom_timestamp = timestamp
        path = await self._thumbnails.at_timestamp(self.video_path, timestamp)
        self._timestamp_preview = ThumbnailCandidate(ThumbnailSource.TIMESTAMP, path, timestamp)
        if self._state in (ThumbnailState.FRAME_SELECT, ThumbnailState.TIMESTAMP_PREVIEW):
            self._fire(ThumbnailEvent.PREVIEW)
        return self._timestamp_preview

    # -- manual upload -----------------------------------------------------

    def show_upload(self) -> None:
        self._fire(ThumbnailEvent.SHOW_UPLOAD)

    async def upload_custom(self, path: Path) -> ThumbnailCandidate:
        """Upload a user image through the proxy transport."""
        if self._state != ThumbnailState.MANUAL_UPLOAD:
            self._fire(ThumbnailEvent.SHOW_UPLOAD)
        asset = self._validator.validate_thumbnail(path)
        session = UploadSession(strategy=UploadStrategy.PROXY)
        try:
            object_path = await self._proxy.upload(asset, session)
        except TransportError as exc:
            raise ThumbnailGenerationError(f"Failed to upload thumbnail: {exc}") from exc
        self._uploaded = ThumbnailCandidate(ThumbnailSource.UPLOAD, object_path)
        return self._uploaded

    # -- terminal ----------------------------------------------------------

    def confirm(self) -> ThumbnailCandidate:
        candidate = self.candidate if self.is_choosing else None
        if candidate is None:
            raise ThumbnailSelectionError("Please select or generate a thumbnail first")
        self._fire(ThumbnailEvent.CONFIRM)
        self._resolve(candidate)
        return candidate

    async def skip(self) -> Optional[ThumbnailCandidate]:
        """
        Resolve without a user choice.

        The auto endpoint is called on the caller's behalf; if it fails the
        workflow still resolves, with no thumbnail.
        """
        self._check(ThumbnailEvent.SKIP)
        candidate = None
        try:
            path = await self._thumbnails.auto(self.video_path)
            candidate = ThumbnailCandidate(ThumbnailSource.AUTO, path)
        except ThumbnailGenerationError as exc:
            logger.warning(f"[thumbnail] skip fallback failed, continuing without thumbnail: {exc}")
        if self._state == ThumbnailState.SELECTED:
            return self._selection
        self._fire(ThumbnailEvent.SKIP)
        self._resolve(candidate)
        return candidate

    def _resolve(self, candidate: Optional[ThumbnailCandidate]) -> None:
        self._selection = candidate
        self._resolved.set()
        logger.info(
            f"[thumbnail] selected {candidate.source.value}: {candidate.path}"
            if candidate else "[thumbnail] resolved without thumbnail"
        )

    async def wait_selected(self) -> Optional[ThumbnailCandidate]:
        """Block until confirm or skip resolves the workflow."""
        await self._resolved.wait()
        return self._selection
