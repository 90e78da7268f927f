"""Orchestrator state machines: states, events and transition tables."""
from enum import Enum
from typing import Dict, Tuple


class ThumbnailState(Enum):
    IDLE = "idle"
    CHOOSING = "choosing"
    AUTO = "auto"
    FRAME_SELECT = "frame_select"
    TIMESTAMP_PREVIEW = "timestamp_preview"
    MANUAL_UPLOAD = "manual_upload"
    SELECTED = "selected"


class ThumbnailEvent(Enum):
    START = "start"
    SHOW_AUTO = "show auto thumbnail"
    SHOW_FRAMES = "show frames"
    PREVIEW = "preview timestamp"
    PICK_FRAME = "pick frame"
    SHOW_UPLOAD = "show upload"
    CONFIRM = "confirm thumbnail"
    SKIP = "skip thumbnail"


CHOOSING_STATES = (
    ThumbnailState.CHOOSING,
    ThumbnailState.AUTO,
    ThumbnailState.FRAME_SELECT,
    ThumbnailState.TIMESTAMP_PREVIEW,
    ThumbnailState.MANUAL_UPLOAD,
)
FRAME_STATES = (ThumbnailState.FRAME_SELECT, ThumbnailState.TIMESTAMP_PREVIEW)


def _thumbnail_transitions() -> Dict[Tuple[ThumbnailState, ThumbnailEvent], ThumbnailState]:
    table = {(ThumbnailState.IDLE, ThumbnailEvent.START): ThumbnailState.CHOOSING}
    for state in CHOOSING_STATES:
        table[(state, ThumbnailEvent.SHOW_AUTO)] = ThumbnailState.AUTO
        table[(state, ThumbnailEvent.SHOW_FRAMES)] = ThumbnailState.FRAME_SELECT
        table[(state, ThumbnailEvent.SHOW_UPLOAD)] = ThumbnailState.MANUAL_UPLOAD
        table[(state, ThumbnailEvent.SKIP)] = ThumbnailState.SELECTED
        if state != ThumbnailState.CHOOSING:
            table[(state, ThumbnailEvent.CONFIRM)] = ThumbnailState.SELECTED
    for state in FRAME_STATES:
        table[(state, ThumbnailEvent.PREVIEW)] = ThumbnailState.TIMESTAMP_PREVIEW
        table[(state, ThumbnailEvent.PICK_FRAME)] = ThumbnailState.FRAME_SELECT
    return table


THUMBNAIL_TRANSITIONS = _thumbnail_transitions()


class PublishState(Enum):
    EDITING = "editing"
    VALIDATING = "validating"
    UPLOADING = "uploading"
    AWAITING_THUMBNAIL = "awaiting_thumbnail"
    MODERATION_CHECK = "moderation_check"
    PUBLISHING = "publishing"
    DONE = "done"
    FAILED = "failed"


class PublishEvent(Enum):
    SUBMIT = "submit"
    NEEDS_UPLOAD = "start upload"
    NEEDS_THUMBNAIL = "wait for thumbnail"
    READY = "check moderation"
    UPLOADED = "finish upload"
    THUMBNAIL_RESOLVED = "resolve thumbnail"
    CLEARED = "publish"
    PUBLISHED = "finish publish"
    FAIL = "fail"
    RESET = "reset"


ASYNC_STATES = (
    PublishState.VALIDATING,
    PublishState.UPLOADING,
    PublishState.AWAITING_THUMBNAIL,
    PublishState.MODERATION_CHECK,
    PublishState.PUBLISHING,
)


def _publish_transitions() -> Dict[Tuple[PublishState, PublishEvent], PublishState]:
    table = {
        (PublishState.EDITING, PublishEvent.SUBMIT): PublishState.VALIDATING,
        (PublishState.AWAITING_THUMBNAIL, PublishEvent.SUBMIT): PublishState.VALIDATING,
        (PublishState.VALIDATING, PublishEvent.NEEDS_UPLOAD): PublishState.UPLOADING,
        (PublishState.VALIDATING, PublishEvent.NEEDS_THUMBNAIL): PublishState.AWAITING_THUMBNAIL,
        (PublishState.VALIDATING, PublishEvent.READY): PublishState.MODERATION_CHECK,
        (PublishState.UPLOADING, PublishEvent.NEEDS_THUMBNAIL): PublishState.AWAITING_THUMBNAIL,
        (PublishState.UPLOADING, PublishEvent.UPLOADED): PublishState.MODERATION_CHECK,
        (PublishState.AWAITING_THUMBNAIL, PublishEvent.THUMBNAIL_RESOLVED): PublishState.MODERATION_CHECK,
        (PublishState.MODERATION_CHECK, PublishEvent.CLEARED): PublishState.PUBLISHING,
        (PublishState.PUBLISHING, PublishEvent.PUBLISHED): PublishState.DONE,
        (PublishState.DONE, PublishEvent.RESET): PublishState.EDITING,
        (PublishState.FAILED, PublishEvent.RESET): PublishState.EDITING,
        (PublishState.FAILED, PublishEvent.NEEDS_THUMBNAIL): PublishState.AWAITING_THUMBNAIL,
        (PublishState.AWAITING_THUMBNAIL, PublishEvent.RESET): PublishState.EDITING,
        (PublishState.EDITING, PublishEvent.RESET): PublishState.EDITING,
    }
    for state in ASYNC_STATES:
        table[(state, PublishEvent.FAIL)] = PublishState.FAILED
    return table


PUBLISH_TRANSITIONS = _publish_transitions()
