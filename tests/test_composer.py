"""End-to-end tests for PostComposer against the in-memory backend."""
import asyncio

import httpx
import pytest
import pytest_asyncio

from publisher import PostComposer
from publisher.errors import ComposerBusyError, ValidationError
from publisher.models import MIB, PublishConfig, PublishStatus, Severity, UploadStatus
from publisher.orchestrator.models import PublishState
from publisher.utils import events

from conftest import make_file, request_json

SIGNED_URL = "https://storage.test/bucket/obj-1?X-Goog-Signature=abc"
FRAMES = {
    "frames": [
        {"thumbnailPath": f"/objects/frame-{i}.jpg", "timestamp": ts}
        for i, ts in enumerate([0, 1.5, 3, 4.5, 6, 7.5])
    ]
}


@pytest_asyncio.fixture
async def composer(api, config, fake_probe):
    async with PostComposer("http://testserver", config=config, api_client=api, probe=fake_probe) as composer:
        yield composer


def route_posts(backend, post=None):
    backend.route("POST", "/api/posts", {"post": post or {"id": 1}})


def route_pre_check(backend, severity, violation=True):
    backend.route(
        "POST",
        "/api/moderation/pre-check",
        {"isViolation": violation, "severity": severity, "explanation": f"{severity} content"},
    )


def route_direct(backend):
    backend.route("POST", "/api/objects/upload", {"uploadURL": SIGNED_URL})
    backend.route("PUT", "/bucket/obj-1", httpx.Response(200))
    backend.route("PUT", "/api/media", {"objectPath": "/objects/obj-1"})


def route_proxy(backend):
    backend.route("POST", "/api/objects/upload-proxy", {"objectPath": "/objects/clip"})


def created_payload(backend, index=0):
    return request_json(backend.calls("POST", "/api/posts")[index])


class TestTextPosts:
    @pytest.mark.asyncio
    async def test_text_post(self, composer, backend):
        route_posts(backend, {"id": 7, "content": "hello"})
        seen = []
        composer.on(events.STATE_CHANGED, lambda old, new: seen.append(new))

        composer.set_content("  hello  ")
        result = await composer.submit()

        assert result.status == PublishStatus.PUBLISHED
        assert result.post == {"id": 7, "content": "hello"}
        assert backend.paths() == ["POST /api/posts"]
        assert created_payload(backend) == {
            "content": "hello",
            "postType": "text",
            "mediaUrl": None,
            "thumbnailUrl": None,
            "visibility": "public",
            "groupId": None,
            "skipModeration": False,
        }
        assert composer.content == ""
        assert composer.state == PublishState.EDITING
        assert seen == [
            PublishState.VALIDATING,
            PublishState.MODERATION_CHECK,
            PublishState.PUBLISHING,
            PublishState.DONE,
            PublishState.EDITING,
        ]

    @pytest.mark.asyncio
    async def test_visibility_and_group(self, composer, backend):
        route_posts(backend)
        composer.set_content("members only")
        composer.set_visibility("followers")
        composer.set_group("g-42")

        await composer.submit()

        payload = created_payload(backend)
        assert payload["visibility"] == "followers"
        assert payload["groupId"] == "g-42"

    @pytest.mark.asyncio
    async def test_empty_draft(self, composer, backend):
        assert not composer.can_submit
        result = await composer.submit()

        assert result.status == PublishStatus.FAILED
        assert result.error == "Add some text or media before posting"
        assert backend.requests == []
        assert composer.state == PublishState.EDITING

    @pytest.mark.asyncio
    async def test_too_long(self, composer, backend):
        composer.set_content("x" * 501)
        assert not composer.can_submit

        result = await composer.submit()

        assert result.error == "Posts must be 500 characters or less"
        assert backend.requests == []
        assert composer.content == "x" * 501

    @pytest.mark.asyncio
    async def test_exactly_at_limit(self, composer, backend):
        route_posts(backend)
        composer.set_content("x" * 500)
        assert (await composer.submit()).success

    @pytest.mark.asyncio
    async def test_failure_keeps_draft(self, composer, backend):
        backend.route("POST", "/api/posts", httpx.Response(400, json={"error": "Group not found"}))
        failures = []
        composer.on(events.FAILED, failures.append)
        composer.set_content("hello")

        result = await composer.submit()

        assert result.status == PublishStatus.FAILED
        assert result.error == "Group not found"
        assert composer.content == "hello"
        assert composer.state == PublishState.EDITING
        assert failures == [result]

    @pytest.mark.asyncio
    async def test_create_post_not_resent_on_server_error(self, composer, backend):
        backend.route("POST", "/api/posts", lambda request: httpx.Response(502, text="bad gateway"))
        composer.set_content("hello")

        result = await composer.submit()

        assert result.status == PublishStatus.FAILED
        assert len(backend.calls("POST", "/api/posts")) == 1
        assert composer.content == "hello"
        assert composer.state == PublishState.EDITING

    @pytest.mark.asyncio
    async def test_unexpected_error_does_not_wedge_composer(self, composer, backend):
        def explode(request):
            raise RuntimeError("boom")

        backend.route("POST", "/api/posts", explode)
        composer.set_content("hello")

        result = await composer.submit()

        assert result.status == PublishStatus.FAILED
        assert result.error == "boom"
        assert composer.state == PublishState.EDITING

        route_posts(backend)
        assert (await composer.submit()).success


class TestModeration:
    @pytest.mark.asyncio
    async def test_high_pre_check_blocks_before_upload(self, composer, backend, small_image):
        route_pre_check(backend, "high")
        route_direct(backend)
        route_posts(backend)
        composer.set_content("bad words")
        await composer.attach_media(small_image)

        await composer.pre_check()
        assert not composer.can_submit
        result = await composer.submit()

        assert result.status == PublishStatus.BLOCKED
        assert result.assessment.severity == Severity.HIGH
        assert backend.paths() == ["POST /api/moderation/pre-check"]
        assert composer.state == PublishState.EDITING
        assert composer.content == "bad words"

    @pytest.mark.asyncio
    async def test_medium_flags_for_review(self, composer, backend):
        route_pre_check(backend, "medium")
        route_posts(backend)
        composer.set_content("mild words")

        await composer.pre_check()
        result = await composer.submit()

        assert result.success
        assert result.assessment.severity == Severity.MEDIUM
        assert len(backend.calls("POST", "/api/posts")) == 1
        assert created_payload(backend)["skipModeration"] is True

    @pytest.mark.asyncio
    async def test_clean_verdict_is_not_flagged(self, composer, backend):
        route_pre_check(backend, "low", violation=False)
        route_posts(backend)
        composer.set_content("nice day")

        await composer.pre_check()
        await composer.submit()

        assert composer.warning is None
        assert created_payload(backend)["skipModeration"] is False

    @pytest.mark.asyncio
    async def test_pre_check_failure_does_not_block(self, composer, backend):
        backend.route("POST", "/api/moderation/pre-check", httpx.Response(400, json={"error": "model offline"}))
        route_posts(backend)
        composer.set_content("hello")

        assert await composer.pre_check() is None
        assert (await composer.submit()).success

    @pytest.mark.asyncio
    async def test_server_rejection_becomes_warning(self, composer, backend):
        backend.route(
            "POST",
            "/api/posts",
            httpx.Response(
                400,
                json={
                    "error": "Content violates community guidelines",
                    "blocked": True,
                    "moderationResult": {"severity": "critical", "explanation": "Threat of violence"},
                },
            ),
        )
        warnings = []
        composer.on(events.WARNING_CHANGED, warnings.append)
        composer.set_content("borderline")

        result = await composer.submit()

        assert result.status == PublishStatus.BLOCKED
        assert composer.warning.severity == Severity.CRITICAL
        assert composer.warning.explanation == "Threat of violence"
        assert warnings[-1] is composer.warning
        assert composer.content == "borderline"
        assert len(backend.calls("POST", "/api/posts")) == 1

    @pytest.mark.asyncio
    async def test_editing_clears_warning(self, composer, backend):
        route_pre_check(backend, "high")
        warnings = []
        composer.on(events.WARNING_CHANGED, warnings.append)
        composer.set_content("bad words")
        await composer.pre_check()

        composer.set_content("kind words")

        assert composer.warning is None
        assert warnings[-1] is None
        assert composer.can_submit

    @pytest.mark.asyncio
    async def test_recheck_on_submit(self, api, backend, fake_probe):
        route_pre_check(backend, "critical")
        route_posts(backend)
        config = PublishConfig(retry_backoff=0, recheck_moderation_on_submit=True)
        async with PostComposer("http://testserver", config=config, api_client=api, probe=fake_probe) as composer:
            composer.set_content("unchecked text")
            result = await composer.submit()

        assert result.status == PublishStatus.BLOCKED
        assert backend.calls("POST", "/api/posts") == []


class TestMediaPosts:
    @pytest.mark.asyncio
    async def test_image_post_in_one_press(self, composer, backend, small_image):
        route_direct(backend)
        route_posts(backend)
        progress = []
        composer.on(events.UPLOAD_PROGRESS, progress.append)

        await composer.attach_media(small_image)
        assert composer.submit_label == "Post"
        result = await composer.submit()

        assert result.success
        assert result.media_path == "/objects/obj-1"
        payload = created_payload(backend)
        assert payload["postType"] == "image"
        assert payload["mediaUrl"] == "/objects/obj-1"
        assert payload["content"] == ""
        assert progress[-1] == 100

    @pytest.mark.asyncio
    async def test_two_press_video_flow(self, composer, backend, small_video):
        route_proxy(backend)
        backend.route("POST", "/api/video/extract-frames", FRAMES)
        route_posts(backend)
        ready = []
        composer.on(events.THUMBNAIL_READY, ready.append)

        composer.set_content("my clip")
        await composer.attach_media(small_video)
        assert composer.submit_label == "Upload Video"

        first = await composer.submit()

        assert first.status == PublishStatus.AWAITING_THUMBNAIL
        assert first.media_path == "/objects/clip"
        assert composer.state == PublishState.AWAITING_THUMBNAIL
        assert composer.submit_label == "Post"
        assert backend.calls("POST", "/api/posts") == []
        assert ready == [composer.thumbnail_workflow]

        workflow = composer.thumbnail_workflow
        await workflow.show_frames()
        workflow.pick_frame_at(4.5)
        workflow.confirm()

        second = await composer.submit()

        assert second.success
        assert second.thumbnail_path == "/objects/frame-3.jpg"
        payload = created_payload(backend)
        assert payload["postType"] == "video"
        assert payload["mediaUrl"] == "/objects/clip"
        assert payload["thumbnailUrl"] == "/objects/frame-3.jpg"
        assert len(backend.calls("POST", "/api/objects/upload-proxy")) == 1
        assert composer.state == PublishState.EDITING
        assert composer.thumbnail_workflow is None

    @pytest.mark.asyncio
    async def test_unchosen_thumbnail_falls_back_to_auto(self, composer, backend, small_video):
        route_proxy(backend)
        backend.route("POST", "/api/video/auto-thumbnail", {"thumbnailPath": "/objects/auto.jpg"})
        route_posts(backend)

        await composer.attach_media(small_video)
        await composer.submit()
        result = await composer.submit()

        assert result.success
        assert created_payload(backend)["thumbnailUrl"] == "/objects/auto.jpg"

    @pytest.mark.asyncio
    async def test_video_without_thumbnail_is_tolerated(self, composer, backend, small_video):
        route_proxy(backend)
        backend.route("POST", "/api/video/auto-thumbnail", httpx.Response(400, json={"error": "ffmpeg failed"}))
        route_posts(backend)

        await composer.attach_media(small_video)
        await composer.submit()
        result = await composer.submit()

        assert result.success
        assert created_payload(backend)["thumbnailUrl"] is None

    @pytest.mark.asyncio
    async def test_required_thumbnail(self, api, backend, fake_probe, small_video):
        route_proxy(backend)
        backend.route("POST", "/api/video/auto-thumbnail", httpx.Response(400, json={"error": "ffmpeg failed"}))
        route_posts(backend)
        config = PublishConfig(retry_backoff=0, require_thumbnail=True)
        async with PostComposer("http://testserver", config=config, api_client=api, probe=fake_probe) as composer:
            await composer.attach_media(small_video)
            await composer.submit()
            result = await composer.submit()

            assert result.status == PublishStatus.FAILED
            assert result.error == "Please generate or upload a thumbnail first"
            assert composer.state == PublishState.AWAITING_THUMBNAIL
            assert composer.thumbnail_workflow.is_choosing

        assert backend.calls("POST", "/api/posts") == []

    @pytest.mark.asyncio
    async def test_create_failure_keeps_uploaded_video(self, composer, backend, small_video):
        route_proxy(backend)
        backend.route("POST", "/api/video/auto-thumbnail", {"thumbnailPath": "/objects/auto.jpg"})
        backend.route(
            "POST",
            "/api/posts",
            [httpx.Response(400, json={"error": "Rate limited"}), {"post": {"id": 3}}],
        )
        composer.set_content("clip")

        await composer.attach_media(small_video)
        await composer.submit()
        failed = await composer.submit()

        assert failed.status == PublishStatus.FAILED
        assert failed.media_path == "/objects/clip"
        assert composer.state == PublishState.AWAITING_THUMBNAIL
        assert composer.content == "clip"

        retried = await composer.submit()

        assert retried.success
        assert len(backend.calls("POST", "/api/objects/upload-proxy")) == 1

    @pytest.mark.asyncio
    async def test_upload_failure_keeps_selection(self, composer, backend, small_image):
        backend.route("POST", "/api/objects/upload", {"uploadURL": SIGNED_URL})
        backend.route("PUT", "/bucket/obj-1", httpx.Response(403, text="AccessDenied"))
        composer.set_content("pic")
        await composer.attach_media(small_image)

        result = await composer.submit()

        assert result.status == PublishStatus.FAILED
        assert "AccessDenied" in result.error
        assert composer.orchestrator.asset.path == small_image
        assert composer.state == PublishState.EDITING
        assert backend.calls("POST", "/api/posts") == []

    @pytest.mark.asyncio
    async def test_unreadable_file_after_attach(self, composer, backend, small_image):
        route_direct(backend)
        composer.set_content("pic")
        await composer.attach_media(small_image)
        small_image.unlink()

        result = await composer.submit()

        assert result.status == PublishStatus.FAILED
        assert "cannot read photo.jpg" in result.error
        assert composer.state == PublishState.EDITING
        assert composer.orchestrator.session.status == UploadStatus.FAILED
        assert backend.calls("PUT", "/api/media") == []

        make_file(small_image, 5 * MIB)
        route_posts(backend)
        result = await composer.submit()

        assert result.success
        assert result.media_path == "/objects/obj-1"

    @pytest.mark.asyncio
    async def test_rejected_file_keeps_previous(self, composer, tmp_path, small_image):
        await composer.attach_media(small_image)
        with pytest.raises(ValidationError):
            await composer.attach_media(make_file(tmp_path / "huge.png", 11 * 1024 * 1024))
        assert composer.orchestrator.asset.path == small_image

    @pytest.mark.asyncio
    async def test_clearing_media_leaves_thumbnail_wait(self, composer, backend, small_video):
        route_proxy(backend)
        await composer.attach_media(small_video)
        await composer.submit()

        composer.clear_media()

        assert composer.state == PublishState.EDITING
        assert composer.thumbnail_workflow is None
        assert composer.submit_label == "Post"


class TestComposerLifecycle:
    @pytest.mark.asyncio
    async def test_busy_guard(self, composer, backend, small_image):
        release = asyncio.Event()

        async def slow_create(request):
            await release.wait()
            return {"post": {"id": 1}}

        backend.route("POST", "/api/posts", slow_create)
        composer.set_content("hello")
        task = asyncio.create_task(composer.submit())
        for _ in range(500):
            if backend.calls("POST", "/api/posts"):
                break
            await asyncio.sleep(0)

        assert composer.orchestrator.submitting
        assert not composer.can_submit
        with pytest.raises(ComposerBusyError):
            await composer.submit()
        with pytest.raises(ComposerBusyError):
            await composer.attach_media(small_image)

        release.set()
        assert (await task).success
        assert not composer.orchestrator.submitting

    @pytest.mark.asyncio
    async def test_post_list_cache(self, composer, backend):
        backend.route("GET", "/api/posts", {"posts": [{"id": 1}]})
        route_posts(backend)

        assert await composer.list_posts() == [{"id": 1}]
        await composer.list_posts()
        assert len(backend.calls("GET", "/api/posts")) == 1

        composer.set_content("new")
        await composer.submit()
        await composer.list_posts()
        assert len(backend.calls("GET", "/api/posts")) == 2

        await composer.list_posts(force=True)
        assert len(backend.calls("GET", "/api/posts")) == 3

    @pytest.mark.asyncio
    async def test_cancel_without_upload(self, composer):
        assert composer.cancel() is False

    def test_requires_context(self):
        composer = PostComposer("http://testserver")
        with pytest.raises(RuntimeError, match="async with"):
            composer.orchestrator
