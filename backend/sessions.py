"""
Session Registry - Host-side map of active assessment conversations

Responsibilities:
- Create, look up and end sessions by id
- Serialize operations per session id (one lock per session)
- Hand commands to ConversationalAssessment and store the returned state
- Optionally persist every turn and resume sessions from disk

Design principles:
- The engine and wrapper hold no session state; this registry is the only
  owner of per-session ConversationState in a running host
- Operations on different session ids share no lock and run in parallel
- Unknown / duplicate session ids are structural errors and raise
"""

import logging
import threading
from typing import Dict, Optional, Set, Union

from backend.commands import EndAssessment, StartAssessment, UserMessage
from backend.core.conversation_manager import ConversationalAssessment
from backend.core.conversation_state import ConversationState
from backend.core.progress_projection import ProgressReport, project_progress
from backend.persistence import SessionPersistence
from backend.results import AssessmentReport, IllegalCommand, TurnResult
from backend.utils.helpers import generate_session_id

logger = logging.getLogger(__name__)


class SessionNotFoundError(KeyError):
    """No active (or persisted) session with this id."""


class SessionExistsError(ValueError):
    """A session with this id is already active."""


class SessionRegistry:
    """Thread-safe registry of active conversation states."""

    def __init__(
        self,
        assessment: ConversationalAssessment,
        persistence: Optional[SessionPersistence] = None
    ):
        if not isinstance(assessment, ConversationalAssessment):
            raise TypeError(
                f"assessment must be ConversationalAssessment, got {type(assessment).__name__}"
            )

        self.assessment = assessment
        self.persistence = persistence

        self._states: Dict[str, ConversationState] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._starting: Set[str] = set()
        self._registry_lock = threading.Lock()

        logger.info(f"Session registry initialized (persistence={'on' if persistence else 'off'})")

    # =========================================================================
    # Public API
    # =========================================================================

    def start_session(
        self,
        user_id: str,
        standard: str,
        mode: str,
        session_id: Optional[str] = None,
        current_category: Optional[str] = None
    ) -> Union[TurnResult, IllegalCommand]:
        """
        Start a new conversation.

        Raises:
            SessionExistsError: If session_id is already active
        """
        session_id = session_id or generate_session_id(short=True)

        self._reserve(session_id)
        try:
            with self._registry_lock:
                lock = self._locks.setdefault(session_id, threading.Lock())

            with lock:
                result = self.assessment.handle(StartAssessment(
                    session_id=session_id,
                    user_id=user_id,
                    standard=standard,
                    mode=mode,
                    current_category=current_category
                ))
                if isinstance(result, IllegalCommand):
                    return result

                self._store(result.state)
        finally:
            self._release(session_id)

        logger.info(f"Session started: {session_id} (user={user_id})")
        return result

    def process_message(self, session_id: str, text: str) -> Union[TurnResult, IllegalCommand]:
        """
        Route one user message to the session's conversation.

        Raises:
            SessionNotFoundError: If no such session
        """
        with self._lock_for(session_id):
            state = self._get(session_id)
            result = self.assessment.handle(UserMessage(text=text, state=state))

            if isinstance(result, TurnResult):
                self._store(result.state)

            return result

    def get_state(self, session_id: str) -> ConversationState:
        with self._lock_for(session_id):
            return self._get(session_id)

    def progress(self, session_id: str) -> ProgressReport:
        """Progress projection for a session."""
        state = self.get_state(session_id)
        return project_progress(state.context, self.assessment.engine.catalog)

    def end_session(self, session_id: str) -> AssessmentReport:
        """
        End a session and drop it from the registry.

        Raises:
            SessionNotFoundError: If no such session
        """
        with self._lock_for(session_id):
            state = self._get(session_id)
            report = self.assessment.handle(EndAssessment(state=state))

            if self.persistence is not None:
                self.persistence.save_report(report)

            with self._registry_lock:
                del self._states[session_id]

        with self._registry_lock:
            self._locks.pop(session_id, None)

        logger.info(f"Session ended: {session_id}")
        return report

    def resume_session(self, session_id: str) -> ConversationState:
        """
        Load a persisted session back into the registry.

        Raises:
            SessionExistsError: If session_id is already active
            SessionNotFoundError: If nothing is persisted for session_id
        """
        if self.persistence is None:
            raise SessionNotFoundError(f"Persistence disabled, cannot resume {session_id}")

        self._reserve(session_id)
        try:
            state = self.persistence.load_latest_turn(session_id)
            if state is None:
                raise SessionNotFoundError(f"No persisted session: {session_id}")

            with self._registry_lock:
                self._states[session_id] = state
                self._locks.setdefault(session_id, threading.Lock())
        finally:
            self._release(session_id)

        logger.info(f"Session resumed: {session_id} at turn {state.turn_count}")
        return state

    def active_sessions(self):
        with self._registry_lock:
            return sorted(self._states)

    def __contains__(self, session_id: str) -> bool:
        with self._registry_lock:
            return session_id in self._states

    # =========================================================================
    # Internal
    # =========================================================================

    def _reserve(self, session_id: str):
        # Held from the duplicate check until the state is stored
        with self._registry_lock:
            if session_id in self._states or session_id in self._starting:
                raise SessionExistsError(f"Session already active: {session_id}")
            self._starting.add(session_id)

    def _release(self, session_id: str):
        with self._registry_lock:
            self._starting.discard(session_id)
            if session_id not in self._states:
                self._locks.pop(session_id, None)

    def _lock_for(self, session_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(session_id)
        if lock is None:
            raise SessionNotFoundError(f"Unknown session: {session_id}")
        return lock

    def _get(self, session_id: str) -> ConversationState:
        with self._registry_lock:
            state = self._states.get(session_id)
        if state is None:
            raise SessionNotFoundError(f"Unknown session: {session_id}")
        return state

    def _store(self, state: ConversationState):
        with self._registry_lock:
            self._states[state.session_id] = state

        if self.persistence is not None:
            self.persistence.save_turn(state)
