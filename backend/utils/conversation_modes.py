"""
Conversation mode enum for the conversational assessment state machine.

Invariants:
- Exactly one mode is active per turn
- Mode changes are explicit and owned by ConversationalAssessment
- MODE_CLARIFYING keeps the pending question (same question is re-asked)
- MODE_COMPLETION is terminal

Design:
- ConversationMode is a string-based enum for JSON serialization
- ConversationState validates mode strings against VALID_MODES
"""

from enum import Enum


class ConversationMode(str, Enum):
    """
    Explicit conversation mode tracking for one assessment session.

    MODE_IDLE:
        No question pending. Continuation phrases request the next question,
        anything else gets a canned conversational reply.

        Entry: Session start
        Exit: Continuation phrase -> MODE_AWAITING_ANSWER
              No next question -> MODE_COMPLETION

    MODE_AWAITING_ANSWER:
        A question has been issued and a reply is expected. Every message is
        routed to answer validation.

        Entry: Question issued
        Exit: Reply rejected -> MODE_CLARIFYING
              Reply accepted, next question issued -> MODE_AWAITING_ANSWER
              Reply accepted, no next question -> MODE_COMPLETION

    MODE_CLARIFYING:
        Last reply was rejected and a clarification was issued. Still awaiting
        an answer to the SAME question.

        Entry: Reply rejected
        Exit: Reply accepted -> MODE_AWAITING_ANSWER / MODE_COMPLETION
              Clarification cap exceeded -> question set aside, flow chains on

    MODE_COMPLETION:
        Terminal. Flow Engine reported no next question, or the user exited.
    """
    MODE_IDLE = "idle"
    MODE_AWAITING_ANSWER = "awaiting-answer"
    MODE_CLARIFYING = "clarifying"
    MODE_COMPLETION = "completion"


# Modes in which a reply is routed to answer validation
ANSWERING_MODES = {ConversationMode.MODE_AWAITING_ANSWER, ConversationMode.MODE_CLARIFYING}

# Single source of truth for valid mode strings
# Used by ConversationState.from_snapshot for validation (fail-fast on corruption)
VALID_MODES = {mode.value for mode in ConversationMode}
