"""
Command types for ConversationalAssessment control flow.

Commands are the public interface to ConversationalAssessment.handle().
The host builds a command, hands it over with the session's current state,
and persists the state carried back in the result.
"""

from dataclasses import dataclass
from typing import Optional

from backend.core.conversation_state import ConversationState


@dataclass(frozen=True)
class StartAssessment:
    """
    Initialize a new assessment conversation.

    No state parameter - the wrapper creates the initial state.
    Returns: TurnResult with the welcome message + initial (idle) state.
    """
    session_id: str
    user_id: str
    standard: str
    mode: str
    current_category: Optional[str] = None


@dataclass(frozen=True)
class UserMessage:
    """
    Process one user message.

    Requires existing state from the previous turn.
    Returns: TurnResult with response + updated state.
    """
    text: str
    state: Optional[ConversationState]


@dataclass(frozen=True)
class EndAssessment:
    """
    Close the conversation and produce the final report.

    Valid at any point; an unfinished assessment is reported as ended early.
    Returns: AssessmentReport.
    """
    state: ConversationState


# Command union type for type hints
Command = StartAssessment | UserMessage | EndAssessment
