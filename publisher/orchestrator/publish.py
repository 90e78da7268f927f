"""Publish orchestrator - drives one composer from draft to created post."""
import logging
from pathlib import Path
from typing import Optional

from ..errors import (
    ComposerBusyError,
    InvalidTransition,
    ModerationBlocked,
    PublishError,
    ServerRejection,
    ThumbnailRequired,
    ValidationError,
    describe_exception,
)
from ..models import (
    MediaAsset,
    ModerationAssessment,
    PostDraft,
    PublishConfig,
    PublishResult,
    UploadSession,
    Visibility,
)
from ..services.posts import PostRepository
from ..services.thumbnails import ThumbnailService
from ..services.transports import CancellationToken
from ..services.validator import MediaValidator
from ..use_cases.moderation_gate import GateVerdict, ModerationGate
from ..use_cases.upload_media import UploadMediaUseCase
from ..utils import events
from ..utils.events import EventEmitter
from .models import PUBLISH_TRANSITIONS, PublishEvent, PublishState
from .thumbnail import ThumbnailWorkflow

logger = logging.getLogger(__name__)


class PublishOrchestrator:
    """
    State machine for a single composer.

    A video that is not uploaded yet makes ``submit`` stop after the
    upload and open a thumbnail workflow; the next ``submit`` resumes from
    AWAITING_THUMBNAIL. Every other path runs upload, moderation and
    create-post in one call. Failures never raise out of ``submit``: they
    come back as a ``PublishResult`` with the draft left intact.
    """

    def __init__(
        self,
        validator: MediaValidator,
        uploader: UploadMediaUseCase,
        thumbnails: ThumbnailService,
        proxy_transport,
        gate: ModerationGate,
        posts: PostRepository,
        config: Optional[PublishConfig] = None,
        emitter: Optional[EventEmitter] = None,
    ):
        self._validator = validator
        self._uploader = uploader
        self._thumbnails = thumbnails
        self._proxy = proxy_transport
        self._gate = gate
        self._posts = posts
        self._config = config or PublishConfig()
        self.events = emitter or EventEmitter()

        self._state = PublishState.EDITING
        self.content = ""
        self.visibility = Visibility.PUBLIC
        self.group_id: Optional[str] = None
        self._asset: Optional[MediaAsset] = None
        self._session: Optional[UploadSession] = None
        self._media_path: Optional[str] = None
        self._workflow: Optional[ThumbnailWorkflow] = None
        self._cancel_token: Optional[CancellationToken] = None
        self._submitting = False
        self._prechecked = False
        self.last_result: Optional[PublishResult] = None

    # -- read-only state ---------------------------------------------------

    @property
    def state(self) -> PublishState:
        return self._state

    @property
    def asset(self) -> Optional[MediaAsset]:
        return self._asset

    @property
    def session(self) -> Optional[UploadSession]:
        return self._session

    @property
    def media_path(self) -> Optional[str]:
        """Object path of the completed upload, if any."""
        return self._media_path

    @property
    def thumbnail_workflow(self) -> Optional[ThumbnailWorkflow]:
        return self._workflow

    @property
    def warning(self) -> Optional[ModerationAssessment]:
        return self._gate.warning

    @property
    def submitting(self) -> bool:
        return self._submitting

    @property
    def is_over_limit(self) -> bool:
        return len(self.content) > self._config.max_content_length

    @property
    def submit_label(self) -> str:
        if self._asset is not None and self._asset.is_video and self._media_path is None:
            return "Upload Video"
        return "Post"

    @property
    def can_submit(self) -> bool:
        has_draft = bool(self.content.strip()) or self._asset is not None
        return has_draft and not self._submitting and not self.is_over_limit and not self._gate.blocks_submit

    def _fire(self, event: PublishEvent) -> None:
        target = PUBLISH_TRANSITIONS.get((self._state, event))
        if target is None:
            raise InvalidTransition(self._state, event)
        previous, self._state = self._state, target
        if previous != target:
            logger.debug(f"[publish] {previous.value} -> {target.value}")
            self.events.emit(events.STATE_CHANGED, previous, target)

    def _ensure_idle(self) -> None:
        if self._submitting:
            raise ComposerBusyError("A submit is already in progress")

    # -- draft editing -----------------------------------------------------

    def set_content(self, text: str) -> None:
        """Replace the post text; any moderation warning no longer applies."""
        self.content = text
        self._prechecked = False
        if self._gate.warning is not None:
            self._gate.clear()
            self.events.emit(events.WARNING_CHANGED, None)

    async def attach_media(self, path: Path) -> MediaAsset:
        """
        Validate and attach a file, replacing the current one.

        A rejected file leaves the previous selection in place.

        Raises:
            ValidationError: file type, size or duration out of bounds
            ComposerBusyError: a submit is running
        """
        self._ensure_idle()
        asset = await self._validator.validate(Path(path))
        self._drop_media()
        self._asset = asset
        logger.info(f"[publish] attached {asset.kind.value}: {asset.filename} ({asset.size_bytes} bytes)")
        return asset

    def clear_media(self) -> None:
        self._ensure_idle()
        self._drop_media()

    def _drop_media(self) -> None:
        self._asset = None
        self._session = None
        self._media_path = None
        self._workflow = None
        if self._state == PublishState.AWAITING_THUMBNAIL:
            self._fire(PublishEvent.RESET)

    async def pre_check(self) -> Optional[ModerationAssessment]:
        """Advisory moderation check of the current text."""
        kind = self._asset.kind if self._asset else None
        before = self._gate.warning
        assessment = await self._gate.pre_check(self.content, kind)
        self._prechecked = assessment is not None
        if self._gate.warning != before:
            self.events.emit(events.WARNING_CHANGED, self._gate.warning)
        return assessment

    def cancel(self) -> bool:
        """Abort the in-flight upload, if any."""
        if self._cancel_token is None:
            return False
        logger.info("[publish] cancelling upload")
        self._cancel_token.cancel()
        return True

    # -- submit ------------------------------------------------------------

    async def submit(self) -> PublishResult:
        """
        Run the publish pipeline as far as it can go in one press.

        Raises:
            ComposerBusyError: another submit is already running
        """
        self._ensure_idle()
        self._submitting = True
        try:
            result = await self._run()
        finally:
            self._submitting = False
        self.last_result = result
        return result

    async def _run(self) -> PublishResult:
        self._fire(PublishEvent.SUBMIT)
        try:
            self._validate_draft()
            # a pre-checked high/critical warning stops the submit before any upload
            self._gate.enforce()

            thumbnail_path = None
            if self._asset is not None and self._media_path is None:
                self._fire(PublishEvent.NEEDS_UPLOAD)
                await self._upload()
                if self._asset.is_video:
                    self._open_thumbnail_workflow()
                    self._fire(PublishEvent.NEEDS_THUMBNAIL)
                    return PublishResult.awaiting_thumbnail(self._media_path)
                self._fire(PublishEvent.UPLOADED)
            elif self._asset is not None and self._asset.is_video:
                self._fire(PublishEvent.NEEDS_THUMBNAIL)
                thumbnail_path = await self._resolve_thumbnail()
                self._fire(PublishEvent.THUMBNAIL_RESOLVED)
            else:
                self._fire(PublishEvent.READY)

            verdict = await self._moderate()
            self._fire(PublishEvent.CLEARED)
            post = await self._posts.create(self._build_draft(verdict, thumbnail_path))
            self._fire(PublishEvent.PUBLISHED)
        except ModerationBlocked as exc:
            if isinstance(exc, ServerRejection):
                self._gate.absorb_rejection(exc)
            self.events.emit(events.WARNING_CHANGED, self._gate.warning)
            return self._failed(PublishResult.blocked(self._gate.warning or exc.assessment, str(exc)))
        except PublishError as exc:
            return self._failed(PublishResult.fail(describe_exception(exc), self._media_path))
        except ValueError as exc:
            logger.error(f"[publish] invalid response from server: {exc}")
            return self._failed(PublishResult.fail("Invalid response from server", self._media_path))
        except Exception as exc:
            logger.exception(f"[publish] unexpected error: {describe_exception(exc)}")
            return self._failed(PublishResult.fail(describe_exception(exc), self._media_path))

        result = PublishResult.published(
            post,
            media_path=self._media_path,
            thumbnail_path=thumbnail_path,
            assessment=verdict.assessment,
        )
        self._succeeded(result)
        return result

    def _validate_draft(self) -> None:
        if not self.content.strip() and self._asset is None:
            raise ValidationError("Add some text or media before posting", code="empty")
        if self.is_over_limit:
            raise ValidationError(
                f"Posts must be {self._config.max_content_length} characters or less",
                code="too_long",
            )

    async def _upload(self) -> str:
        self._session = self._uploader.new_session(self._asset, on_progress=self._on_progress)
        self._cancel_token = CancellationToken()
        try:
            self._media_path = await self._uploader.execute(self._asset, self._session, self._cancel_token)
        finally:
            self._cancel_token = None
        logger.info(f"[publish] uploaded {self._asset.filename} -> {self._media_path}")
        return self._media_path

    def _on_progress(self, percent: int) -> None:
        self.events.emit(events.UPLOAD_PROGRESS, percent)

    def _open_thumbnail_workflow(self) -> ThumbnailWorkflow:
        self._workflow = ThumbnailWorkflow(
            self._thumbnails,
            self._proxy,
            self._media_path,
            duration=self._asset.duration_seconds,
            config=self._config,
            validator=self._validator,
        ).start()
        self.events.emit(events.THUMBNAIL_READY, self._workflow)
        return self._workflow

    async def _resolve_thumbnail(self) -> Optional[str]:
        workflow = self._workflow or self._open_thumbnail_workflow()
        if not workflow.is_resolved:
            logger.info("[publish] no thumbnail chosen, using the auto thumbnail")
            await workflow.skip()
        if workflow.thumbnail_path is None and self._config.require_thumbnail:
            # give the caller a fresh workflow to choose from
            self._open_thumbnail_workflow()
            raise ThumbnailRequired("Please generate or upload a thumbnail first")
        return workflow.thumbnail_path

    async def _moderate(self) -> GateVerdict:
        if self._config.recheck_moderation_on_submit and not self._prechecked and self.content.strip():
            await self.pre_check()
        return self._gate.enforce()

    def _build_draft(self, verdict: GateVerdict, thumbnail_path: Optional[str]) -> PostDraft:
        return PostDraft(
            content=self.content.strip(),
            visibility=self.visibility,
            media_kind=self._asset.kind if self._asset else None,
            media_url=self._media_path,
            thumbnail_url=thumbnail_path,
            skip_moderation=verdict.skip_moderation,
            group_id=self.group_id,
        )

    def _succeeded(self, result: PublishResult) -> None:
        self.content = ""
        self._prechecked = False
        self._asset = None
        self._session = None
        self._media_path = None
        self._workflow = None
        self._gate.clear()
        self._posts.invalidate()
        self._fire(PublishEvent.RESET)
        logger.info("[publish] post created")
        self.events.emit(events.PUBLISHED, result)

    def _failed(self, result: PublishResult) -> PublishResult:
        logger.warning(f"[publish] submit failed: {result.error}")
        if self._state != PublishState.FAILED:
            self._fire(PublishEvent.FAIL)
        # an uploaded video goes back to waiting on its thumbnail
        if self._media_path is not None and self._asset is not None and self._asset.is_video:
            self._fire(PublishEvent.NEEDS_THUMBNAIL)
        else:
            self._fire(PublishEvent.RESET)
        self.events.emit(events.FAILED, result)
        return result
