"""
Conversation State - Per-session wrapper around the AssessmentContext

Holds what the conversational wrapper needs between turns:
- the AssessmentContext (answers, gaps, progress)
- the message transcript
- the question currently awaiting an answer (by id)
- issued ClarificationRequests and the retry count for the pending question
- the conversation mode

Design principles:
- Treated as a value: ConversationalAssessment returns a new state per turn
- Lossless JSON snapshot for persistence and resume
- Fail fast on corrupted snapshots (unknown mode, inconsistent pending question)
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional

from backend.contracts import ClarificationRequest, ConversationMessage
from backend.core.assessment_context import AssessmentContext, utc_now
from backend.utils.conversation_modes import ANSWERING_MODES, VALID_MODES, ConversationMode


@dataclass
class ConversationState:
    """
    Conversation wrapper state for one session.

    Attributes:
        context: Assessment context (answers, gaps, progress)
        mode: Conversation mode
        messages: Transcript (system / assistant / user)
        pending_question_id: Question awaiting an answer, None when idle
        asked_at: When the pending question was issued
        clarifications: Every ClarificationRequest issued this session
        clarification_attempts: Clarifications issued for the pending question
        turn_count: Messages processed (used for persistence file numbering)
        ended_early: True when the user exited before completion
    """
    context: AssessmentContext
    mode: ConversationMode = ConversationMode.MODE_IDLE
    messages: List[ConversationMessage] = field(default_factory=list)
    pending_question_id: Optional[str] = None
    asked_at: Optional[datetime] = None
    clarifications: List[ClarificationRequest] = field(default_factory=list)
    clarification_attempts: int = 0
    turn_count: int = 0
    ended_early: bool = False

    @property
    def session_id(self) -> str:
        return self.context.session_id

    @property
    def awaiting_answer(self) -> bool:
        """True while a reply to the pending question is expected (incl. clarifying)."""
        return self.mode in ANSWERING_MODES

    @property
    def is_complete(self) -> bool:
        return self.mode is ConversationMode.MODE_COMPLETION

    def copy(self, **changes) -> "ConversationState":
        copied = replace(
            self,
            context=self.context.copy(),
            messages=list(self.messages),
            clarifications=list(self.clarifications),
        )
        if changes:
            copied = replace(copied, **changes)
        return copied

    def add_message(self, role: str, content: str, question_id: Optional[str] = None):
        self.messages.append(ConversationMessage(
            role=role,
            content=content,
            timestamp=utc_now(),
            question_id=question_id,
        ))

    # ========================
    # Serialization
    # ========================

    def snapshot(self) -> Dict[str, Any]:
        return {
            'context': self.context.snapshot(),
            'mode': self.mode.value,
            'messages': [m.to_dict() for m in self.messages],
            'pending_question_id': self.pending_question_id,
            'asked_at': self.asked_at.isoformat() if self.asked_at else None,
            'clarifications': [c.to_dict() for c in self.clarifications],
            'clarification_attempts': self.clarification_attempts,
            'turn_count': self.turn_count,
            'ended_early': self.ended_early,
        }

    @classmethod
    def from_snapshot(cls, snapshot: Dict[str, Any]) -> "ConversationState":
        """
        Rehydrate from snapshot().

        Raises:
            ValueError: If mode is unknown, or the pending question is
                inconsistent with the mode
        """
        mode_value = snapshot.get('mode', ConversationMode.MODE_IDLE.value)
        if mode_value not in VALID_MODES:
            raise ValueError(
                f"Invalid conversation mode '{mode_value}'. Must be one of: {sorted(VALID_MODES)}"
            )
        mode = ConversationMode(mode_value)

        pending = snapshot.get('pending_question_id')
        if mode in ANSWERING_MODES and pending is None:
            raise ValueError(f"Mode '{mode.value}' requires a pending question")
        if mode not in ANSWERING_MODES and pending is not None:
            raise ValueError(f"Mode '{mode.value}' cannot have pending question '{pending}'")

        asked_at = snapshot.get('asked_at')
        return cls(
            context=AssessmentContext.from_snapshot(snapshot['context']),
            mode=mode,
            messages=[ConversationMessage.from_dict(m) for m in snapshot.get('messages', [])],
            pending_question_id=pending,
            asked_at=datetime.fromisoformat(asked_at) if asked_at else None,
            clarifications=[
                ClarificationRequest.from_dict(c) for c in snapshot.get('clarifications', [])
            ],
            clarification_attempts=snapshot.get('clarification_attempts', 0),
            turn_count=snapshot.get('turn_count', 0),
            ended_early=snapshot.get('ended_early', False),
        )
