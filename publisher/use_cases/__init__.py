"""Application use cases for publisher workflows."""

from .moderation_gate import GateDecision, GateVerdict, ModerationGate, decide
from .upload_media import UploadMediaUseCase

__all__ = [
    "GateDecision",
    "GateVerdict",
    "ModerationGate",
    "decide",
    "UploadMediaUseCase",
]
