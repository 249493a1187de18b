"""
Test Suite for ConversationalAssessment

Tests the conversation state machine: routing by mode, validation and
clarification, answer chaining, the clarification cap, exit handling,
completion and the command handler lifecycle.
"""

import unittest
from unittest.mock import Mock

from backend.commands import EndAssessment, StartAssessment, UserMessage
from backend.contracts import (
    AnswerFormat,
    ClarificationReason,
    Phase,
    Priority,
    QuestionNode,
    ScaleRange,
)
from backend.core.answer_validator import AnswerValidator
from backend.core.context_selector import ContextAwareSelector
from backend.core.conversation_manager import ConversationalAssessment
from backend.core.conversation_state import ConversationState
from backend.core.flow_engine import AssessmentFlowEngine, UnknownQuestionError
from backend.core.question_catalog import QuestionCatalog
from backend.results import AssessmentReport, IllegalCommand, TurnResult
from backend.utils.clarification_templates import (
    ACKNOWLEDGMENTS,
    BACK_REPLY,
    DEFAULT_REPLY,
    EXIT_TEXT,
    HELP_REPLY,
    SET_ASIDE_TEXT,
)
from backend.utils.conversation_modes import ConversationMode


def build_catalog():
    return QuestionCatalog([
        QuestionNode(
            id="gov_1",
            prompt="Does your board oversee climate risk",
            category="governance",
            priority=Priority.HIGH,
            format=AnswerFormat.YES_NO,
        ),
        QuestionNode(
            id="risk_1",
            prompt="How mature is your risk process",
            category="risk-management",
            priority=Priority.MEDIUM,
            format=AnswerFormat.SCALE,
            scale_range=ScaleRange(min=1, max=5),
        ),
        QuestionNode(
            id="str_1",
            prompt="Describe your transition plan.",
            category="strategy",
            priority=Priority.LOW,
        ),
    ])


def build_assessment(**kwargs):
    engine = AssessmentFlowEngine(build_catalog())
    return ConversationalAssessment(
        engine=engine,
        selector=ContextAwareSelector(engine),
        validator=AnswerValidator(),
        **kwargs
    )


class ConversationTestCase(unittest.TestCase):

    def setUp(self):
        self.assessment = build_assessment()
        self.state = self.assessment.start("sess-1", "user-1", "S2", "standard")

    def say(self, *messages):
        """Send messages in order, returning the last TurnResult."""
        result = None
        for text in messages:
            result = self.assessment.process_message(self.state, text)
            self.state = result.state
        return result


class TestStartAndIdle(ConversationTestCase):

    def test_start_is_idle_with_welcome(self):
        self.assertEqual(self.state.mode, ConversationMode.MODE_IDLE)
        self.assertIsNone(self.state.pending_question_id)
        self.assertEqual(len(self.state.messages), 1)
        self.assertEqual(self.state.messages[0].role, "system")
        self.assertIn("IFRS S2", self.state.messages[0].content)
        self.assertIn("Standard Assessment", self.state.messages[0].content)

    def test_continuation_issues_first_question(self):
        result = self.say("ready")

        self.assertEqual(result.question.id, "gov_1")
        self.assertEqual(result.response, "Does your board oversee climate risk? (Yes or No)")
        self.assertEqual(self.state.mode, ConversationMode.MODE_AWAITING_ANSWER)
        self.assertEqual(self.state.pending_question_id, "gov_1")
        self.assertIsNotNone(self.state.asked_at)
        self.assertTrue(result.debug['continuation'])

    def test_canned_replies_leave_assessment_untouched(self):
        for text, reply, intent in (
            ("Can you help me?", HELP_REPLY, "help"),
            ("go back please", BACK_REPLY, "back"),
            ("hello there", DEFAULT_REPLY, "other"),
        ):
            result = self.say(text)
            self.assertEqual(result.response, reply)
            self.assertEqual(result.debug['intent'], intent)

        self.assertEqual(self.state.mode, ConversationMode.MODE_IDLE)
        self.assertEqual(self.state.context.answers, {})
        self.assertEqual(self.state.turn_count, 3)

    def test_input_state_not_mutated(self):
        before = len(self.state.messages)
        result = self.assessment.process_message(self.state, "ready")

        self.assertEqual(len(self.state.messages), before)
        self.assertEqual(self.state.mode, ConversationMode.MODE_IDLE)
        self.assertEqual(len(result.state.messages), before + 2)


class TestClarification(ConversationTestCase):

    def test_hedging_reply_keeps_same_question(self):
        self.say("ready")
        result = self.say("maybe")

        self.assertIsNotNone(result.clarification)
        self.assertEqual(result.clarification.reason, ClarificationReason.UNCLEAR)
        self.assertEqual(result.clarification.question_id, "gov_1")
        self.assertEqual(result.clarification.suggestions, ("Yes", "No"))
        self.assertIn("Does your board oversee climate risk", result.response)
        self.assertIn("Yes or No", result.response)

        self.assertTrue(self.state.awaiting_answer)
        self.assertEqual(self.state.mode, ConversationMode.MODE_CLARIFYING)
        self.assertEqual(self.state.pending_question_id, "gov_1")
        self.assertEqual(self.state.clarification_attempts, 1)
        self.assertEqual(self.state.context.answers, {})
        self.assertEqual(result.debug['validation'], 'rejected')
        self.assertEqual(result.debug['reason'], 'unclear')

    def test_short_reply_is_incomplete(self):
        self.say("ready", "yes", "3")
        result = self.say("ok")

        self.assertEqual(result.clarification.reason, ClarificationReason.INCOMPLETE)
        self.assertEqual(self.state.pending_question_id, "str_1")

    def test_accept_after_clarification_chains_next_question(self):
        self.say("ready", "maybe")
        result = self.say("yes")

        self.assertIs(self.state.context.get_answer("gov_1").value, True)
        self.assertEqual(result.question.id, "risk_1")
        self.assertTrue(result.response.startswith(ACKNOWLEDGMENTS[0]))
        self.assertIn("Great progress! You're at 33%. Now, how mature is your risk process?",
                      result.response)
        self.assertTrue(result.response.endswith("(Scale: 1-5)"))
        self.assertEqual(self.state.mode, ConversationMode.MODE_AWAITING_ANSWER)
        self.assertEqual(self.state.clarification_attempts, 0)
        self.assertEqual(result.debug['validation'], 'accepted')
        self.assertIs(result.debug['parsed_value'], True)

    def test_scale_bounds(self):
        self.say("ready", "yes")

        rejected = self.say("7")
        self.assertEqual(rejected.clarification.reason, ClarificationReason.UNCLEAR)
        self.assertIn("from 1 to 5", rejected.response)
        self.assertEqual(self.state.pending_question_id, "risk_1")

        accepted = self.say("3")
        self.assertEqual(self.state.context.get_answer("risk_1").value, 3)
        self.assertEqual(accepted.question.id, "str_1")
        self.assertTrue(accepted.response.startswith(ACKNOWLEDGMENTS[1]))

    def test_clarifications_recorded_on_state(self):
        self.say("ready", "maybe", "perhaps")
        self.assertEqual(len(self.state.clarifications), 2)
        self.assertEqual(self.state.clarification_attempts, 2)


class TestClarificationCap(unittest.TestCase):

    def test_question_set_aside_after_cap(self):
        assessment = build_assessment(max_clarification_attempts=3)
        state = assessment.start("sess-1", "user-1", "S2", "standard")
        state = assessment.process_message(state, "ready").state

        for attempt in range(1, 4):
            result = assessment.process_message(state, "maybe")
            state = result.state
            self.assertIsNotNone(result.clarification)
            self.assertEqual(state.clarification_attempts, attempt)

        result = assessment.process_message(state, "maybe")
        state = result.state

        self.assertIsNone(result.clarification)
        self.assertEqual(result.debug['set_aside'], "gov_1")
        self.assertTrue(result.response.startswith(SET_ASIDE_TEXT))
        self.assertIn("gov_1", state.context.skipped_questions)
        self.assertNotIn("gov_1", state.context.answers)
        self.assertEqual(result.question.id, "risk_1")
        self.assertEqual(state.pending_question_id, "risk_1")
        self.assertEqual(state.clarification_attempts, 0)

    def test_no_cap(self):
        assessment = build_assessment(max_clarification_attempts=None)
        state = assessment.start("sess-1", "user-1", "S2", "standard")
        state = assessment.process_message(state, "ready").state

        for _ in range(6):
            result = assessment.process_message(state, "maybe")
            state = result.state
            self.assertIsNotNone(result.clarification)

        self.assertEqual(state.pending_question_id, "gov_1")
        self.assertEqual(state.context.skipped_questions, set())

    def test_invalid_cap(self):
        with self.assertRaises(ValueError):
            build_assessment(max_clarification_attempts=0)


class TestExitAndCompletion(ConversationTestCase):

    def test_exit_while_awaiting_keeps_answers(self):
        self.say("ready", "no")
        result = self.say("quit")

        self.assertTrue(result.complete)
        self.assertEqual(result.response, EXIT_TEXT)
        self.assertTrue(self.state.is_complete)
        self.assertTrue(self.state.ended_early)
        self.assertIsNone(self.state.pending_question_id)
        self.assertIs(self.state.context.get_answer("gov_1").value, False)
        self.assertTrue(result.debug['exit_command'])

    def test_exit_word_accepted_as_open_ended_answer(self):
        self.say("ready", "no", "4")
        self.assertEqual(self.state.pending_question_id, "str_1")

        result = self.say("Stop")

        self.assertEqual(self.state.context.get_answer("str_1").value, "Stop")
        self.assertFalse(self.state.ended_early)
        self.assertEqual(result.debug["validation"], "accepted")

    def test_exit_from_idle(self):
        result = self.say(" STOP ")
        self.assertTrue(result.complete)
        self.assertTrue(self.state.ended_early)

    def test_messages_after_exit_repeat_closing(self):
        self.say("exit")
        result = self.say("ready")

        self.assertEqual(result.response, EXIT_TEXT)
        self.assertTrue(result.debug['already_complete'])

    def test_full_run_completes(self):
        self.say("ready", "no", "4")
        result = self.say("We plan to decarbonise by 2040")

        self.assertTrue(result.complete)
        self.assertIsNone(result.question)
        self.assertIn("You've completed the assessment", result.response)
        self.assertIn("1 area that may need attention", result.response)
        self.assertEqual(result.debug['reason'], "No more questions available")
        self.assertEqual(self.state.mode, ConversationMode.MODE_COMPLETION)
        self.assertFalse(self.state.ended_early)
        self.assertEqual(self.state.context.progress, 100)
        self.assertEqual(self.state.context.phase, Phase.COMPLETION)

    def test_end_report(self):
        self.say("ready", "yes", "4", "Net zero transition plan")
        report = self.assessment.end(self.state)

        self.assertIsInstance(report, AssessmentReport)
        self.assertFalse(report.ended_early)
        self.assertEqual(report.progress, 100)
        self.assertEqual(report.answered_count, 3)
        self.assertEqual(report.total_questions, 3)
        self.assertEqual(report.gaps, ())
        self.assertIn("0 areas", report.summary)

    def test_end_report_before_completion_is_early(self):
        self.say("ready", "yes")
        report = self.assessment.end(self.state)

        self.assertTrue(report.ended_early)
        self.assertEqual(report.to_dict()['phase'], "assessment")


class TestRendering(unittest.TestCase):

    def setUp(self):
        self.catalog = build_catalog()

    def test_phrased_stem_keeps_hint_verbatim(self):
        phraser = Mock()
        phraser.phrase.return_value = "Would you say your board keeps an eye on climate risk"
        assessment = build_assessment(phraser=phraser)
        context = assessment.engine.start_assessment("s", "u", "S2", "standard")

        rendered = assessment.render_question(self.catalog.get("gov_1"), context)

        self.assertEqual(
            rendered, "Would you say your board keeps an eye on climate risk? (Yes or No)"
        )
        phraser.phrase.assert_called_once()

    def test_terminal_period_kept(self):
        assessment = build_assessment()
        context = assessment.engine.start_assessment("s", "u", "S2", "standard")
        self.assertEqual(
            assessment.render_question(self.catalog.get("str_1"), context),
            "Describe your transition plan."
        )

    def test_invalid_phraser(self):
        with self.assertRaises(TypeError):
            build_assessment(phraser=object())

    def test_invalid_collaborators(self):
        engine = AssessmentFlowEngine(self.catalog)
        with self.assertRaises(TypeError):
            ConversationalAssessment(engine, object(), AnswerValidator())
        with self.assertRaises(TypeError):
            ConversationalAssessment(object(), ContextAwareSelector(engine), AnswerValidator())


class TestCommandHandler(unittest.TestCase):

    def setUp(self):
        self.assessment = build_assessment()

    def start(self):
        return self.assessment.handle(StartAssessment(
            session_id="sess-1", user_id="user-1", standard="both", mode="quick-scan"
        ))

    def test_start_command(self):
        result = self.start()

        self.assertIsInstance(result, TurnResult)
        self.assertTrue(result.debug['started'])
        self.assertIn("IFRS S1 & S2", result.response)
        self.assertIn("Quick Scan", result.response)

    def test_start_with_empty_session_id(self):
        result = self.assessment.handle(StartAssessment(
            session_id="", user_id="u", standard="S1", mode="standard"
        ))
        self.assertIsInstance(result, IllegalCommand)
        self.assertEqual(result.command_type, "StartAssessment")

    def test_message_without_state(self):
        result = self.assessment.handle(UserMessage(text="ready", state=None))
        self.assertIsInstance(result, IllegalCommand)

    def test_message_after_completion(self):
        state = self.start().state
        state = self.assessment.handle(UserMessage(text="quit", state=state)).state

        result = self.assessment.handle(UserMessage(text="ready", state=state))
        self.assertIsInstance(result, IllegalCommand)
        self.assertIn("already complete", result.reason)

    def test_end_command(self):
        state = self.start().state
        report = self.assessment.handle(EndAssessment(state=state))

        self.assertIsInstance(report, AssessmentReport)
        self.assertTrue(report.ended_early)
        self.assertEqual(report.answered_count, 0)

    def test_unknown_command(self):
        with self.assertRaises(TypeError):
            self.assessment.handle("ready")


class TestConversationStateSnapshot(ConversationTestCase):

    def test_round_trip_mid_clarification(self):
        self.say("ready", "yes", "7")

        restored = ConversationState.from_snapshot(self.state.snapshot())

        self.assertEqual(restored.mode, ConversationMode.MODE_CLARIFYING)
        self.assertEqual(restored.pending_question_id, "risk_1")
        self.assertEqual(restored.clarification_attempts, 1)
        self.assertEqual(restored.clarifications, self.state.clarifications)
        self.assertEqual(restored.messages, self.state.messages)
        self.assertEqual(restored.turn_count, self.state.turn_count)
        self.assertEqual(restored.context.answers, self.state.context.answers)

        # Resumed state continues where it left off
        result = self.assessment.process_message(restored, "2")
        self.assertEqual(result.state.context.get_answer("risk_1").value, 2)

    def test_invalid_mode_rejected(self):
        snapshot = self.state.snapshot()
        snapshot['mode'] = 'waiting'
        with self.assertRaises(ValueError):
            ConversationState.from_snapshot(snapshot)

    def test_awaiting_without_pending_rejected(self):
        self.say("ready")
        snapshot = self.state.snapshot()
        snapshot['pending_question_id'] = None
        with self.assertRaises(ValueError):
            ConversationState.from_snapshot(snapshot)

    def test_unknown_pending_question(self):
        self.say("ready")
        state = self.state.copy(pending_question_id="ghost")
        with self.assertRaises(UnknownQuestionError):
            self.assessment.process_message(state, "yes")


if __name__ == '__main__':
    unittest.main()
