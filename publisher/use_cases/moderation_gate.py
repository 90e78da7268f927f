"""Moderation gate: turns verdicts into block / warn / allow decisions."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from publisher.errors import ModerationBlocked, PublishError, ServerRejection
from publisher.models import MediaKind, ModerationAssessment, most_severe
from publisher.services.moderation import ModerationService

logger = logging.getLogger(__name__)


class GateDecision(Enum):
    ALLOW = "allow"
    WARN = "warn"
    BLOCK = "block"


@dataclass(frozen=True)
class GateVerdict:
    decision: GateDecision
    assessment: Optional[ModerationAssessment] = None

    @property
    def skip_moderation(self) -> bool:
        """Payload flag: content was pre-flagged for moderator review."""
        return self.decision == GateDecision.WARN


def decide(*assessments: Optional[ModerationAssessment]) -> GateVerdict:
    """The most severe assessment governs."""
    governing = most_severe(*assessments)
    if governing is None:
        return GateVerdict(GateDecision.ALLOW)
    severity = governing.effective_severity
    if severity.blocks:
        return GateVerdict(GateDecision.BLOCK, governing)
    if severity.warns:
        return GateVerdict(GateDecision.WARN, governing)
    return GateVerdict(GateDecision.ALLOW, governing)


class ModerationGate:
    """
    Holds the visible warning for one composer.

    The pre-check is advisory; ``enforce`` is the mandatory submit-time
    check; ``absorb_rejection`` re-renders a server-side block.
    """

    def __init__(self, service: ModerationService):
        self._service = service
        self._warning: Optional[ModerationAssessment] = None

    @property
    def warning(self) -> Optional[ModerationAssessment]:
        return self._warning

    @property
    def blocks_submit(self) -> bool:
        return bool(self._warning and self._warning.effective_severity.blocks)

    def clear(self) -> None:
        self._warning = None

    async def pre_check(self, content: str, media_kind: Optional[MediaKind] = None) -> Optional[ModerationAssessment]:
        if not content.strip():
            return None
        try:
            assessment = await self._service.pre_check(content, media_kind)
        except PublishError as exc:
            logger.error(f"[moderation] pre-check failed: {exc}")
            return None
        except ValueError as exc:
            logger.error(f"[moderation] pre-check returned invalid JSON: {exc}")
            return None

        self._warning = assessment if assessment.is_violation else None
        return assessment

    def enforce(self, fresh: Optional[ModerationAssessment] = None) -> GateVerdict:
        """
        Decide on the current warning and an optional fresh verdict.

        Raises:
            ModerationBlocked: severity high or critical
        """
        verdict = decide(self._warning, fresh)
        if verdict.assessment is not None and verdict.assessment.is_violation:
            self._warning = verdict.assessment
        if verdict.decision == GateDecision.BLOCK:
            logger.info(f"[moderation] blocked: {verdict.assessment.severity.value}")
            raise ModerationBlocked(verdict.assessment)
        if verdict.decision == GateDecision.WARN:
            logger.info(f"[moderation] flagged for review: {verdict.assessment.severity.value}")
        return verdict

    def absorb_rejection(self, rejection: ServerRejection) -> ModerationAssessment:
        governing = most_severe(rejection.assessment, self._warning) or rejection.assessment
        self._warning = governing
        return governing
