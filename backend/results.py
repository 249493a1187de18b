"""
Result types returned by ConversationalAssessment.handle()

These are the ONLY return types from the command handler.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from backend.contracts import ClarificationRequest, Gap, Phase, QuestionNode
from backend.core.conversation_state import ConversationState


@dataclass(frozen=True)
class TurnResult:
    """
    Successful turn processing result.

    Returned by: StartAssessment, UserMessage

    Attributes:
        response: Text to display to user (question, clarification or message)
        state: Updated conversation state (host persists and returns it next turn)
        question: Question issued this turn, if any
        clarification: Clarification issued this turn, if any
        debug: Debug information (validation outcome, decision reason, etc.)
        complete: Whether the assessment is finished
    """
    response: str
    state: ConversationState
    question: Optional[QuestionNode] = None
    clarification: Optional[ClarificationRequest] = None
    debug: Dict[str, Any] = field(default_factory=dict)
    complete: bool = False


@dataclass(frozen=True)
class AssessmentReport:
    """
    Final outputs after the conversation ends.

    Returned by: EndAssessment

    Attributes:
        session_id: Session identifier
        progress: Final progress (0-100)
        answered_count: Questions answered
        total_questions: Catalog size
        phase: Final phase
        gaps: Detected gaps
        skipped_questions: Questions set aside after repeated unclear replies
        ended_early: True if ended before the Flow Engine ran out of questions
        summary: Completion prose
    """
    session_id: str
    progress: int
    answered_count: int
    total_questions: int
    phase: Phase
    gaps: Tuple[Gap, ...]
    skipped_questions: Tuple[str, ...]
    ended_early: bool
    summary: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'session_id': self.session_id,
            'progress': self.progress,
            'answered_count': self.answered_count,
            'total_questions': self.total_questions,
            'phase': self.phase.value,
            'gaps': [g.to_dict() for g in self.gaps],
            'skipped_questions': list(self.skipped_questions),
            'ended_early': self.ended_early,
            'summary': self.summary,
        }


@dataclass(frozen=True)
class IllegalCommand:
    """
    Command rejected by the wrapper (invalid lifecycle transition).

    Examples:
    - UserMessage when no state exists
    - UserMessage after the assessment has completed
    - StartAssessment with an empty session id

    Attributes:
        reason: Human-readable explanation
        command_type: Name of rejected command type
    """
    reason: str
    command_type: str
