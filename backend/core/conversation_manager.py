"""
Conversational Assessment - Per-session state machine over the Flow Engine (Functional Core)

Responsibilities:
- Route each user message by conversation mode (idle / awaiting-answer /
  clarifying / completion)
- Validate replies to the pending question and issue clarifications
- Parse accepted replies, fold them into the context, chain the next question
- Render questions conversationally (progress preamble, format hints)
- Set a question aside when the clarification cap is exceeded
- Produce the final AssessmentReport

Design principles:
- Ephemeral per turn (no session state held between turns)
- Functional core: ConversationState in, new ConversationState out
- Thin orchestration layer (selection in the selector, rules in the engine,
  format checks in the validator)
- Input-quality problems never raise; they become ClarificationRequests
"""

import logging
from typing import Any, Dict, Optional, Union

from backend.commands import EndAssessment, StartAssessment, UserMessage
from backend.contracts import ClarificationReason, ClarificationRequest, QuestionNode
from backend.core.assessment_context import AssessmentContext, utc_now
from backend.core.conversation_state import ConversationState
from backend.core.flow_engine import UnknownQuestionError
from backend.results import AssessmentReport, IllegalCommand, TurnResult
from backend.utils.clarification_templates import (
    EXIT_TEXT,
    SET_ASIDE_TEXT,
    acknowledgment_for,
    clarification_suggestions,
    question_hint,
    render_clarification,
    render_completion,
    render_welcome,
)
from backend.utils.conversation_modes import ConversationMode
from backend.utils.intent_patterns import canned_reply, classify_intent, is_continuation, is_exit_command

logger = logging.getLogger(__name__)

ROLE_SYSTEM = "system"
ROLE_ASSISTANT = "assistant"
ROLE_USER = "user"


class ConversationalAssessment:
    """
    Orchestrates one conversational assessment per ConversationState.

    Functional core design:
    - Collaborators cached (engine, selector, validator, phraser), state external
    - process_message() transforms state deterministically
    - No implicit state accumulation
    """

    # Clarifications issued for one question before it is set aside
    DEFAULT_MAX_CLARIFICATION_ATTEMPTS = 3

    def __init__(
        self,
        engine,
        selector,
        validator,
        phraser=None,
        max_clarification_attempts: Optional[int] = DEFAULT_MAX_CLARIFICATION_ATTEMPTS
    ):
        """
        Initialize wrapper with stateless collaborators

        Args:
            engine: AssessmentFlowEngine (folds answers, sets questions aside)
            selector: ContextAwareSelector (chooses the next question)
            validator: AnswerValidator (validates and parses replies)
            phraser: Optional QuestionPhraser (rephrases question stems)
            max_clarification_attempts: Clarifications per question before it
                is set aside; None for no cap

        Raises:
            TypeError: If any collaborator is missing a required method
            ValueError: If max_clarification_attempts is not None or >= 1
        """
        self._validate_modules(engine, selector, validator, phraser)

        if max_clarification_attempts is not None and max_clarification_attempts < 1:
            raise ValueError(
                f"max_clarification_attempts must be None or >= 1, got {max_clarification_attempts}"
            )

        self.engine = engine
        self.selector = selector
        self.validator = validator
        self.phraser = phraser
        self.max_clarification_attempts = max_clarification_attempts

        logger.info(
            f"Conversational Assessment initialized "
            f"(phraser={'on' if phraser else 'off'}, "
            f"max_clarification_attempts={max_clarification_attempts})"
        )

    def _validate_modules(self, engine, selector, validator, phraser):
        """Validate collaborator interfaces"""
        for method in ('start_assessment', 'submit_answer', 'skip_question', 'get_assessment_summary'):
            if not callable(getattr(engine, method, None)):
                raise TypeError(f"engine must have callable {method}() method")

        if not callable(getattr(selector, 'get_context_aware_next_question', None)):
            raise TypeError("selector must have callable get_context_aware_next_question() method")

        for method in ('validate', 'parse'):
            if not callable(getattr(validator, method, None)):
                raise TypeError(f"validator must have callable {method}() method")

        if phraser is not None and not callable(getattr(phraser, 'phrase', None)):
            raise TypeError("phraser must have callable phrase() method")

    # =========================================================================
    # Command Handler
    # =========================================================================

    def handle(self, command) -> Union[TurnResult, AssessmentReport, IllegalCommand]:
        """
        Dispatch a command.

        Returns:
            TurnResult for StartAssessment / UserMessage, AssessmentReport for
            EndAssessment, IllegalCommand for invalid lifecycle transitions

        Raises:
            TypeError: If command is not a known command type
        """
        if isinstance(command, StartAssessment):
            if not command.session_id:
                return IllegalCommand(
                    reason="session_id must be non-empty",
                    command_type=type(command).__name__
                )
            state = self.start(
                session_id=command.session_id,
                user_id=command.user_id,
                standard=command.standard,
                mode=command.mode,
                current_category=command.current_category
            )
            return TurnResult(
                response=state.messages[-1].content,
                state=state,
                debug={'started': True}
            )

        if isinstance(command, UserMessage):
            if command.state is None:
                return IllegalCommand(
                    reason="No conversation state; start the assessment first",
                    command_type=type(command).__name__
                )
            if command.state.is_complete:
                return IllegalCommand(
                    reason=f"Assessment {command.state.session_id} is already complete",
                    command_type=type(command).__name__
                )
            return self.process_message(command.state, command.text)

        if isinstance(command, EndAssessment):
            return self.end(command.state)

        raise TypeError(f"Unknown command type: {type(command).__name__}")

    # =========================================================================
    # Public API
    # =========================================================================

    def start(
        self,
        session_id: str,
        user_id: str,
        standard: str,
        mode: str,
        current_category: Optional[str] = None
    ) -> ConversationState:
        """
        Create the conversation state for a new session (mode 'idle').

        The transcript opens with the welcome message. No question is issued
        until the user asks to continue.
        """
        context = self.engine.start_assessment(
            session_id, user_id, standard, mode, current_category=current_category
        )
        state = ConversationState(context=context)
        state.add_message(ROLE_SYSTEM, render_welcome(standard, mode))

        logger.info(f"Conversation started: session={session_id}")
        return state

    def process_message(self, state: ConversationState, text: str) -> TurnResult:
        """
        Process one user message.

        Routing:
        1. Completed conversation -> completion message repeated
        2. Awaiting an answer (incl. clarifying) -> answer validation; an
           exit command the pending question would reject ends the session
        3. Exit command -> completion (ended early), answers kept
        4. Continuation phrase -> next question
        5. Anything else -> canned reply, assessment state untouched

        Args:
            state: Current conversation state (not modified)
            text: User message

        Returns:
            TurnResult carrying the new state

        Raises:
            TypeError: If state or text has the wrong type
            UnknownQuestionError: If the pending question id is not in the catalog
        """
        if not isinstance(state, ConversationState):
            raise TypeError(f"state must be ConversationState, got {type(state).__name__}")
        if not isinstance(text, str):
            raise TypeError(f"text must be string, got {type(text).__name__}")

        state = state.copy(turn_count=state.turn_count + 1)
        state.add_message(ROLE_USER, text, question_id=state.pending_question_id)

        if state.is_complete:
            response = self._closing_message(state)
            state.add_message(ROLE_ASSISTANT, response)
            return TurnResult(
                response=response,
                state=state,
                debug={'already_complete': True},
                complete=True
            )

        if state.awaiting_answer:
            if is_exit_command(text) and not self._answers_pending(state, text):
                return self._exit(state)
            return self._process_answer(state, text)

        if is_exit_command(text):
            return self._exit(state)

        if is_continuation(text):
            return self._issue_next_question(state, preface=None, debug={'continuation': True})

        intent = classify_intent(text)
        response = canned_reply(intent)
        state.add_message(ROLE_ASSISTANT, response)
        logger.debug(f"[{state.session_id}] Conversational reply (intent={intent.value})")

        return TurnResult(response=response, state=state, debug={'intent': intent.value})

    def end(self, state: ConversationState) -> AssessmentReport:
        """Build the final report. An unfinished conversation is reported as ended early."""
        summary = self.engine.get_assessment_summary(state.context)
        ended_early = state.ended_early or not state.is_complete

        report = AssessmentReport(
            session_id=state.session_id,
            progress=summary['progress'],
            answered_count=summary['answered_count'],
            total_questions=summary['total_questions'],
            phase=summary['phase'],
            gaps=tuple(summary['gaps']),
            skipped_questions=tuple(sorted(state.context.skipped_questions)),
            ended_early=ended_early,
            summary=render_completion(len(summary['gaps'])),
        )

        logger.info(
            f"Assessment ended: session={state.session_id}, progress={report.progress}, "
            f"gaps={len(report.gaps)}, ended_early={ended_early}"
        )
        return report

    def render_question(self, question: QuestionNode, context: AssessmentContext) -> str:
        """
        Conversational rendering of a question.

        Stem (rephrased when a phraser is configured) gets a terminal '?'
        unless it already ends with '?' or '.', a progress preamble while
        0 < progress < 100, and the format hint appended verbatim.
        """
        stem = self.phraser.phrase(question) if self.phraser else question.prompt

        if not stem.endswith(('?', '.')):
            stem += '?'

        progress = context.progress
        if 0 < progress < 100:
            stem = f"Great progress! You're at {progress}%. Now, {stem.lower()}"

        return stem + question_hint(question)

    def request_clarification(
        self,
        question: QuestionNode,
        reason: ClarificationReason
    ) -> ClarificationRequest:
        return ClarificationRequest(
            question_id=question.id,
            reason=reason,
            clarifying_question=render_clarification(question, reason),
            suggestions=clarification_suggestions(question),
        )

    def pending_question(self, state: ConversationState) -> Optional[QuestionNode]:
        """
        Resolve the pending question id against the engine's catalog.

        Raises:
            UnknownQuestionError: If the id is not in the catalog
        """
        if state.pending_question_id is None:
            return None
        question = self.engine.catalog.get(state.pending_question_id)
        if question is None:
            raise UnknownQuestionError(
                f"Pending question '{state.pending_question_id}' not in catalog"
            )
        return question

    # =========================================================================
    # Turn Processing
    # =========================================================================

    def _answers_pending(self, state: ConversationState, text: str) -> bool:
        question = self.pending_question(state)
        return self.validator.validate(text, question).valid

    def _process_answer(self, state: ConversationState, text: str) -> TurnResult:
        """Validate a reply to the pending question; clarify, set aside, or accept."""
        question = self.pending_question(state)
        validation = self.validator.validate(text, question)

        if not validation.valid:
            if self._cap_reached(state):
                return self._set_aside(state, question, validation.reason)

            clarification = self.request_clarification(question, validation.reason)
            state.clarifications.append(clarification)
            state.clarification_attempts += 1
            state.mode = ConversationMode.MODE_CLARIFYING
            state.add_message(ROLE_ASSISTANT, clarification.clarifying_question, question.id)

            logger.info(
                f"[{state.session_id}] Clarification {state.clarification_attempts} for "
                f"{question.id}: reason={validation.reason.value}"
            )
            return TurnResult(
                response=clarification.clarifying_question,
                state=state,
                clarification=clarification,
                debug={
                    'validation': 'rejected',
                    'reason': validation.reason.value,
                    'question_id': question.id
                }
            )

        value = self.validator.parse(text, question)
        state.context = self.engine.submit_answer(state.context, question.id, value)

        acknowledgment = acknowledgment_for(state.context.answered_count - 1)
        state.add_message(ROLE_ASSISTANT, acknowledgment)
        self._clear_pending(state)

        logger.info(f"[{state.session_id}] Answer accepted: {question.id} = {value!r}")

        return self._issue_next_question(
            state,
            preface=acknowledgment,
            debug={'validation': 'accepted', 'question_id': question.id, 'parsed_value': value}
        )

    def _issue_next_question(
        self,
        state: ConversationState,
        preface: Optional[str],
        debug: Dict[str, Any]
    ) -> TurnResult:
        """Ask the selector for the next question; enter completion on exhaustion."""
        decision = self.selector.get_context_aware_next_question(state.context)
        debug = dict(debug)
        debug['phase'] = decision.phase.value if decision.phase else None

        if decision.next_question is None:
            state.mode = ConversationMode.MODE_COMPLETION
            self._clear_pending(state)

            completion = render_completion(len(state.context.gaps))
            state.add_message(ROLE_ASSISTANT, completion)
            debug['reason'] = decision.reason

            logger.info(f"[{state.session_id}] Assessment complete: {decision.reason}")
            return TurnResult(
                response=self._join(preface, completion),
                state=state,
                debug=debug,
                complete=True
            )

        question = decision.next_question
        rendered = self.render_question(question, state.context)

        state.mode = ConversationMode.MODE_AWAITING_ANSWER
        state.pending_question_id = question.id
        state.asked_at = utc_now()
        state.clarification_attempts = 0
        state.add_message(ROLE_ASSISTANT, rendered, question.id)

        if decision.branch_to:
            debug['branch_to'] = decision.branch_to

        logger.info(f"[{state.session_id}] Question issued: {question.id}")
        return TurnResult(
            response=self._join(preface, rendered),
            state=state,
            question=question,
            debug=debug
        )

    def _set_aside(
        self,
        state: ConversationState,
        question: QuestionNode,
        reason: ClarificationReason
    ) -> TurnResult:
        """Clarification cap exceeded: skip the question and chain to the next one."""
        logger.warning(
            f"[{state.session_id}] Clarification cap ({self.max_clarification_attempts}) "
            f"exceeded for {question.id}, setting it aside"
        )
        state.context = self.engine.skip_question(state.context, question.id)
        state.add_message(ROLE_ASSISTANT, SET_ASIDE_TEXT, question.id)
        self._clear_pending(state)

        return self._issue_next_question(
            state,
            preface=SET_ASIDE_TEXT,
            debug={'validation': 'rejected', 'reason': reason.value, 'set_aside': question.id}
        )

    def _exit(self, state: ConversationState) -> TurnResult:
        state.mode = ConversationMode.MODE_COMPLETION
        state.ended_early = True
        self._clear_pending(state)
        state.add_message(ROLE_ASSISTANT, EXIT_TEXT)

        logger.info(f"[{state.session_id}] Assessment ended by user")
        return TurnResult(
            response=EXIT_TEXT,
            state=state,
            debug={'exit_command': True},
            complete=True
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _cap_reached(self, state: ConversationState) -> bool:
        if self.max_clarification_attempts is None:
            return False
        return state.clarification_attempts >= self.max_clarification_attempts

    def _closing_message(self, state: ConversationState) -> str:
        if state.ended_early:
            return EXIT_TEXT
        return render_completion(len(state.context.gaps))

    @staticmethod
    def _clear_pending(state: ConversationState):
        state.pending_question_id = None
        state.asked_at = None
        state.clarification_attempts = 0

    @staticmethod
    def _join(preface: Optional[str], text: str) -> str:
        return f"{preface} {text}" if preface else text
