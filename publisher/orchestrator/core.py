"""Core composer - wires services and exposes the publish workflow."""
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from ..models import MediaAsset, ModerationAssessment, PublishConfig, PublishResult, UploadStrategy, Visibility
from ..protocols import IAPIClient, IMediaProbe
from ..services.api_client import HTTPAPIClient
from ..services.moderation import ModerationService
from ..services.posts import PostRepository
from ..services.thumbnails import ThumbnailService
from ..services.transports import UploadStrategySelector
from ..services.validator import MediaValidator
from ..use_cases.moderation_gate import ModerationGate
from ..use_cases.upload_media import UploadMediaUseCase
from ..utils.events import EventEmitter

from .models import PublishState
from .publish import PublishOrchestrator
from .thumbnail import ThumbnailWorkflow


class PostComposer:
    """
    Composes and publishes posts using injected services.

    Usage:
        async with PostComposer(api_url, cookies={"session": sid}) as composer:
            composer.set_content("hello")
            await composer.attach_media(Path("clip.mp4"))

            result = await composer.submit()          # uploads the video
            workflow = composer.thumbnail_workflow
            await workflow.show_frames()
            workflow.pick_frame_at(4.5)
            workflow.confirm()

            result = await composer.submit()          # creates the post
    """

    def __init__(
        self,
        api_url: str,
        config: Optional[PublishConfig] = None,
        cookies: Optional[Dict[str, str]] = None,
        api_client: Optional[IAPIClient] = None,
        probe: Optional[IMediaProbe] = None,
    ):
        """
        Initialize composer with dependencies.

        Args:
            api_url: Backend base URL
            config: Publish configuration
            cookies: Session cookies sent with every request
            api_client: Pre-built API client (skips creating an HTTPAPIClient)
            probe: Media probe used for video durations (ffprobe by default)
        """
        self._api_url = api_url
        self._config = config or PublishConfig()
        self._cookies = cookies
        self._external_client = api_client
        self._probe = probe

        # Services (initialized in __aenter__)
        self._api_client: Optional[HTTPAPIClient] = None
        self._posts: Optional[PostRepository] = None
        self._events = EventEmitter()
        self._orchestrator: Optional[PublishOrchestrator] = None

    async def __aenter__(self):
        """Initialize services and the orchestrator."""
        if self._external_client is not None:
            api = self._external_client
        else:
            self._api_client = HTTPAPIClient(
                self._api_url,
                timeout=self._config.api_timeout,
                max_retries=self._config.max_retries + 1,
                backoff=self._config.retry_backoff,
                cookies=self._cookies,
            )
            api = await self._api_client.__aenter__()

        validator = MediaValidator(self._config, self._probe)
        selector = UploadStrategySelector.build(api, self._config)
        self._posts = PostRepository(api, stale_seconds=self._config.post_list_stale_seconds)

        self._orchestrator = PublishOrchestrator(
            validator=validator,
            uploader=UploadMediaUseCase(selector),
            thumbnails=ThumbnailService(api),
            proxy_transport=selector.transport(UploadStrategy.PROXY),
            gate=ModerationGate(ModerationService(api)),
            posts=self._posts,
            config=self._config,
            emitter=self._events,
        )
        return self

    async def __aexit__(self, *args):
        """Cleanup resources."""
        if self._orchestrator is not None:
            self._orchestrator.cancel()
        await self._events.drain()
        if self._api_client:
            await self._api_client.__aexit__(*args)
            self._api_client = None

    @property
    def orchestrator(self) -> PublishOrchestrator:
        if self._orchestrator is None:
            raise RuntimeError("PostComposer not initialized. Use 'async with' context.")
        return self._orchestrator

    def on(self, event_name: str, callback: Callable) -> "PostComposer":
        """Subscribe to composer events (see ``publisher.utils.events``)."""
        self._events.on(event_name, callback)
        return self

    def off(self, event_name: str, callback: Callable) -> None:
        self._events.off(event_name, callback)

    # -- draft -------------------------------------------------------------

    @property
    def state(self) -> PublishState:
        return self.orchestrator.state

    @property
    def content(self) -> str:
        return self.orchestrator.content

    def set_content(self, text: str) -> None:
        self.orchestrator.set_content(text)

    def set_visibility(self, visibility: Visibility) -> None:
        self.orchestrator.visibility = Visibility(visibility)

    def set_group(self, group_id: Optional[str]) -> None:
        self.orchestrator.group_id = group_id

    async def attach_media(self, path: Path) -> MediaAsset:
        return await self.orchestrator.attach_media(Path(path))

    def clear_media(self) -> None:
        self.orchestrator.clear_media()

    @property
    def warning(self) -> Optional[ModerationAssessment]:
        return self.orchestrator.warning

    async def pre_check(self) -> Optional[ModerationAssessment]:
        """Advisory moderation check; failures are logged, never raised."""
        return await self.orchestrator.pre_check()

    # -- submit ------------------------------------------------------------

    @property
    def submit_label(self) -> str:
        return self.orchestrator.submit_label

    @property
    def can_submit(self) -> bool:
        return self.orchestrator.can_submit

    @property
    def thumbnail_workflow(self) -> Optional[ThumbnailWorkflow]:
        return self.orchestrator.thumbnail_workflow

    async def submit(self) -> PublishResult:
        return await self.orchestrator.submit()

    def cancel(self) -> bool:
        """Abort the running upload; the submit returns a failed result."""
        return self.orchestrator.cancel()

    # -- feed --------------------------------------------------------------

    async def list_posts(self, force: bool = False) -> List[Dict[str, Any]]:
        if self._posts is None:
            raise RuntimeError("PostComposer not initialized. Use 'async with' context.")
        return await self._posts.list_posts(force=force)
