"""Orchestrator package - coordinates the publish workflow."""
from .core import PostComposer
from .models import PublishState, ThumbnailState
from .publish import PublishOrchestrator
from .thumbnail import ThumbnailWorkflow

__all__ = ["PostComposer", "PublishOrchestrator", "ThumbnailWorkflow", "PublishState", "ThumbnailState"]
