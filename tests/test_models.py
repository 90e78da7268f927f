"""Tests for publisher models."""
from pathlib import Path

import pytest

from publisher.models import (
    MIB,
    MediaAsset,
    MediaKind,
    ModerationAssessment,
    PostDraft,
    PublishConfig,
    PublishResult,
    PublishStatus,
    Severity,
    UploadSession,
    UploadStatus,
    UploadStrategy,
    Visibility,
    most_severe,
)


class TestSeverity:
    def test_ordering(self):
        ranks = [s.rank for s in (Severity.NONE, Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL)]
        assert ranks == sorted(ranks)

    def test_blocks_and_warns(self):
        assert Severity.HIGH.blocks and Severity.CRITICAL.blocks
        assert Severity.LOW.warns and Severity.MEDIUM.warns
        assert not Severity.NONE.blocks and not Severity.NONE.warns

    def test_parse_unknown_is_none(self):
        assert Severity.parse("HIGH") == Severity.HIGH
        assert Severity.parse("bogus") == Severity.NONE
        assert Severity.parse(None) == Severity.NONE


class TestModerationAssessment:
    def test_from_payload(self):
        assessment = ModerationAssessment.from_payload(
            {"isViolation": True, "severity": "medium", "explanation": "Spammy"}
        )
        assert assessment.is_violation is True
        assert assessment.severity == Severity.MEDIUM
        assert assessment.explanation == "Spammy"
        assert assessment.label == "Warning: "

    def test_clean_content_has_no_effective_severity(self):
        assessment = ModerationAssessment.from_payload({"isViolation": False, "severity": "low"})
        assert assessment.effective_severity == Severity.NONE

    def test_blocked_defaults(self):
        assessment = ModerationAssessment.blocked(None)
        assert assessment.is_violation is True
        assert assessment.severity == Severity.HIGH
        assert assessment.explanation == "Content blocked"
        assert assessment.label == "Content blocked: "

    def test_most_severe(self):
        low = ModerationAssessment(True, Severity.LOW, "a")
        critical = ModerationAssessment(True, Severity.CRITICAL, "b")
        assert most_severe(None, low, critical) is critical
        assert most_severe(None, None) is None

    def test_most_severe_first_wins_ties(self):
        first = ModerationAssessment(True, Severity.LOW, "first")
        second = ModerationAssessment(True, Severity.LOW, "second")
        assert most_severe(first, second) is first


class TestUploadSession:
    def test_progress_is_monotonic_and_clamped(self):
        seen = []
        session = UploadSession(strategy=UploadStrategy.PROXY, on_progress=seen.append)
        for value in (10, 5, 40, 40, 250):
            session.report(value)
        assert session.progress_percent == 100
        assert seen == [10, 40, 100]

    def test_lifecycle(self):
        session = UploadSession(strategy=UploadStrategy.DIRECT)
        session.start()
        assert session.status == UploadStatus.RUNNING
        session.finish("/objects/abc")
        assert session.done
        assert session.object_path == "/objects/abc"

    def test_cancelled(self):
        session = UploadSession(strategy=UploadStrategy.CHUNKED)
        session.start()
        session.fail("Upload cancelled", cancelled=True)
        assert session.status == UploadStatus.CANCELLED
        assert session.error == "Upload cancelled"


class TestPostDraft:
    def test_payload_for_text_post(self):
        payload = PostDraft(content="hello").to_payload()
        assert payload == {
            "content": "hello",
            "postType": "text",
            "mediaUrl": None,
            "thumbnailUrl": None,
            "visibility": "public",
            "groupId": None,
            "skipModeration": False,
        }

    def test_payload_for_video_post(self):
        draft = PostDraft(
            content="clip",
            visibility=Visibility.FOLLOWERS,
            media_kind=MediaKind.VIDEO,
            media_url="/objects/v1",
            thumbnail_url="/objects/t1",
            skip_moderation=True,
            group_id="g-7",
        )
        payload = draft.to_payload()
        assert payload["postType"] == "video"
        assert payload["visibility"] == "followers"
        assert payload["thumbnailUrl"] == "/objects/t1"
        assert payload["skipModeration"] is True
        assert payload["groupId"] == "g-7"


class TestPublishResult:
    def test_published(self):
        result = PublishResult.published({"id": 1}, media_path="/objects/m")
        assert result.success is True
        assert result.status == PublishStatus.PUBLISHED

    def test_fail_keeps_media_path(self):
        result = PublishResult.fail("boom", media_path="/objects/m")
        assert result.success is False
        assert result.media_path == "/objects/m"

    def test_immutable(self):
        result = PublishResult.fail("boom")
        with pytest.raises(Exception):
            result.error = "other"


class TestPublishConfig:
    def test_defaults(self):
        config = PublishConfig()
        assert config.max_image_bytes == 10 * MIB
        assert config.chunked_threshold == 50 * MIB
        assert config.chunk_size == 10 * MIB
        assert config.max_video_duration == 600
        assert config.require_thumbnail is False

    def test_total_chunks(self):
        config = PublishConfig()
        assert config.total_chunks(80 * MIB) == 8
        assert config.total_chunks(80 * MIB + 1) == 9
        assert config.total_chunks(0) == 1


def test_media_asset_properties():
    asset = MediaAsset(path=Path("/tmp/clip.mp4"), kind=MediaKind.VIDEO, size_bytes=10)
    assert asset.filename == "clip.mp4"
    assert asset.is_video
