"""
Test Suite for Context-Aware Selector

Tests answer analysis, gap/coverage ranking, early-stage progressive
disclosure and disclosure-tier queries.
"""

import unittest

from backend.contracts import (
    AnswerData,
    BranchCondition,
    DisclosureLevel,
    Operator,
    Priority,
    QuestionNode,
    SkipCondition,
)
from backend.core.context_selector import (
    CONFIDENCE_HIGH,
    CONFIDENCE_LOW,
    CONFIDENCE_MEDIUM,
    ContextAwareSelector,
    bucket_confidence,
)
from backend.core.flow_engine import REASON_NO_MORE_QUESTIONS, AssessmentFlowEngine
from backend.core.question_catalog import QuestionCatalog


def node(q_id, category="governance", priority=Priority.MEDIUM, **kwargs):
    return QuestionNode(
        id=q_id, prompt=f"Question {q_id}", category=category, priority=priority, **kwargs
    )


def build(questions):
    engine = AssessmentFlowEngine(QuestionCatalog(questions))
    selector = ContextAwareSelector(engine)
    context = engine.start_assessment("sess-1", "user-1", "S2", "standard")
    return engine, selector, context


class TestAnalyzeAnswers(unittest.TestCase):

    def setUp(self):
        self.engine, self.selector, self.context = build([
            node("gov_1", priority=Priority.HIGH),
            node("gov_2"),
            node("met_1", category="metrics"),
        ])

    def test_empty_history(self):
        analysis = self.selector.analyze_answers(self.context)

        self.assertEqual(analysis.answered_categories, set())
        self.assertEqual(analysis.coverage_by_category, {})
        self.assertEqual(analysis.confidence_level, CONFIDENCE_MEDIUM)
        self.assertIsNone(analysis.average_confidence)

    def test_coverage_and_gap_counts(self):
        context = self.engine.submit_answer(self.context, "gov_1", False)
        context = self.engine.submit_answer(context, "gov_2", "Board committee")
        context = self.engine.submit_answer(context, "met_1", "no")

        analysis = self.selector.analyze_answers(context)

        self.assertEqual(analysis.answered_categories, {"governance", "metrics"})
        self.assertEqual(analysis.coverage_by_category, {"governance": 2, "metrics": 1})
        self.assertEqual(analysis.gaps_by_category, {"governance": 1, "metrics": 1})
        self.assertEqual(
            sorted(r.question_id for r in analysis.negative_answers), ["gov_1", "met_1"]
        )
        self.assertEqual([r.question_id for r in analysis.positive_answers], ["gov_2"])

    def test_confidence_average_bucketed(self):
        context = self.engine.submit_answer(
            self.context, "gov_1", AnswerData("gov_1", True, confidence=0.9)
        )
        context = self.engine.submit_answer(
            context, "gov_2", AnswerData("gov_2", "Board", confidence=0.3)
        )
        context = self.engine.submit_answer(context, "met_1", "yes")

        analysis = self.selector.analyze_answers(context)

        self.assertAlmostEqual(analysis.average_confidence, 0.6)
        self.assertEqual(analysis.confidence_level, CONFIDENCE_MEDIUM)

    def test_bucket_boundaries(self):
        self.assertEqual(bucket_confidence(0.7), CONFIDENCE_HIGH)
        self.assertEqual(bucket_confidence(0.69), CONFIDENCE_MEDIUM)
        self.assertEqual(bucket_confidence(0.4), CONFIDENCE_MEDIUM)
        self.assertEqual(bucket_confidence(0.39), CONFIDENCE_LOW)


class TestContextAwareRanking(unittest.TestCase):

    def test_gap_category_first(self):
        engine, selector, context = build([
            node("gov_1", priority=Priority.HIGH),
            node("gov_2", depends_on=("gov_1",)),
            node("met_1", category="metrics", priority=Priority.HIGH),
        ])
        context = engine.submit_answer(context, "gov_1", False)

        # Base ranking would prefer the high-priority metrics question
        self.assertEqual(engine.get_next_question(context).next_question.id, "met_1")
        self.assertEqual(selector.get_context_aware_next_question(context).next_question.id, "gov_2")

    def test_lower_coverage_before_priority(self):
        engine, selector, context = build([
            node("a1", category="governance", priority=Priority.HIGH),
            node("a2", category="governance", priority=Priority.HIGH),
            node("b1", category="strategy", priority=Priority.LOW),
        ])
        context = engine.submit_answer(context, "a1", True)

        self.assertEqual(engine.get_next_question(context).next_question.id, "a2")
        self.assertEqual(selector.get_context_aware_next_question(context).next_question.id, "b1")

    def test_base_ranking_breaks_ties(self):
        engine, selector, context = build([
            node("low", priority=Priority.LOW),
            node("high", priority=Priority.HIGH),
        ])
        self.assertEqual(selector.get_context_aware_next_question(context).next_question.id, "high")

    def test_detail_questions_held_back_in_early_stage(self):
        questions = [node(f"a{i}") for i in range(1, 6)] + [
            node("detail", category="metrics-detail", priority=Priority.LOW),
            node("broad_low", category="metrics", priority=Priority.LOW),
        ]
        engine, selector, context = build(questions)
        for q_id in ("a1", "a2", "a3", "a4"):
            context = engine.submit_answer(context, q_id, "yes")

        self.assertTrue(selector.is_early_stage(context))
        decision = selector.get_context_aware_next_question(context)
        self.assertEqual(decision.next_question.id, "broad_low")

        context = engine.submit_answer(context, "broad_low", "yes")
        self.assertFalse(selector.is_early_stage(context))
        decision = selector.get_context_aware_next_question(context)
        self.assertEqual(decision.next_question.id, "detail")

    def test_hold_back_lifted_when_only_detail_remains(self):
        engine, selector, context = build([
            node("a1"),
            node("detail", category="metrics-detail", priority=Priority.LOW),
        ])
        context = engine.submit_answer(context, "a1", "yes")

        self.assertTrue(selector.is_early_stage(context))
        decision = selector.get_context_aware_next_question(context)
        self.assertEqual(decision.next_question.id, "detail")

    def test_detail_requires_low_priority(self):
        engine, selector, context = build([
            node("detail_med", category="metrics-detail", priority=Priority.MEDIUM),
        ])
        decision = selector.get_context_aware_next_question(context)
        self.assertEqual(decision.next_question.id, "detail_med")

    def test_skip_rules_still_apply(self):
        engine, selector, context = build([
            node("gate", priority=Priority.HIGH),
            node("guarded", category="strategy", skip_conditions=(
                SkipCondition("gate", Operator.EQUALS, "no"),
            )),
            node("fallback", category="metrics", priority=Priority.LOW),
        ])
        context = engine.submit_answer(context, "gate", "no")

        decision = selector.get_context_aware_next_question(context)
        self.assertEqual(decision.next_question.id, "fallback")

    def test_branch_rules_still_apply(self):
        engine, selector, context = build([
            node("gate", priority=Priority.HIGH),
            node("top", category="strategy", priority=Priority.HIGH, branch_conditions=(
                BranchCondition("gate", Operator.EQUALS, "no", "remedy"),
            )),
            node("remedy", category="strategy", priority=Priority.LOW),
        ])
        context = engine.submit_answer(context, "gate", "no")

        decision = selector.get_context_aware_next_question(context)
        self.assertEqual(decision.next_question.id, "remedy")
        self.assertEqual(decision.branch_to, "remedy")

    def test_exhaustion(self):
        engine, selector, context = build([node("only")])
        context = engine.submit_answer(context, "only", "yes")

        decision = selector.get_context_aware_next_question(context)
        self.assertIsNone(decision.next_question)
        self.assertEqual(decision.reason, REASON_NO_MORE_QUESTIONS)

    def test_rejects_non_engine(self):
        with self.assertRaises(TypeError):
            ContextAwareSelector(object())


class TestProgressiveQuestions(unittest.TestCase):

    def setUp(self):
        self.engine, self.selector, self.context = build([
            node("h", priority=Priority.HIGH),
            node("m", priority=Priority.MEDIUM),
            node("hd", priority=Priority.HIGH, depends_on=("h",)),
            node("l", priority=Priority.LOW),
        ])

    def ids(self, context, level):
        return [q.id for q in self.selector.get_progressive_questions(context, level)]

    def test_tiers_at_start(self):
        self.assertEqual(self.ids(self.context, DisclosureLevel.BROAD), ["h"])
        self.assertEqual(self.ids(self.context, DisclosureLevel.MEDIUM), ["m"])
        self.assertEqual(self.ids(self.context, DisclosureLevel.SPECIFIC), ["l"])

    def test_dependent_question_is_medium_tier(self):
        context = self.engine.submit_answer(self.context, "h", "yes")

        self.assertEqual(self.ids(context, DisclosureLevel.BROAD), [])
        self.assertEqual(self.ids(context, DisclosureLevel.MEDIUM), ["m", "hd"])

    def test_level_accepts_string(self):
        self.assertEqual(self.ids(self.context, "specific"), ["l"])

    def test_unknown_level(self):
        with self.assertRaises(ValueError):
            self.selector.get_progressive_questions(self.context, "wide")

    def test_query_does_not_change_context(self):
        before = self.context.snapshot()
        self.selector.get_progressive_questions(self.context, DisclosureLevel.BROAD)
        self.assertEqual(self.context.snapshot(), before)


if __name__ == '__main__':
    unittest.main()
