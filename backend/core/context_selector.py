"""
Context-Aware Selector - Answer-history driven ranking on top of the Flow Engine

Responsibilities:
- Analyze the answer history (categories touched, coverage, gaps, confidence)
- Re-rank candidates: gap categories first, then least-covered categories,
  then the Flow Engine's base ranking
- Progressive disclosure: hold back low-priority 'detail' questions during
  the early stage of an assessment
- Answer read-only queries for candidates at a given disclosure tier

Design principles:
- Same contract as AssessmentFlowEngine.get_next_question()
- Stateless: analysis is recomputed from the context on every call
- Skip/branch evaluation is delegated to the Flow Engine unchanged
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from backend.contracts import DisclosureLevel, FlowDecision, Priority, QuestionNode
from backend.core.assessment_context import AssessmentContext
from backend.core.flow_engine import (
    REASON_NO_MORE_QUESTIONS,
    AssessmentFlowEngine,
    is_negative_answer,
)

logger = logging.getLogger(__name__)

# Confidence buckets
CONFIDENCE_HIGH = "high"
CONFIDENCE_MEDIUM = "medium"
CONFIDENCE_LOW = "low"


@dataclass
class AnswerRecord:
    """Answer reference used in analysis lists."""
    question_id: str
    category: str
    answer: Any


@dataclass
class AnswerAnalysis:
    """
    Derived view of an answer history.

    Attributes:
        answered_categories: Categories with at least one answer
        coverage_by_category: category -> answered count
        gaps_by_category: category -> negative answer count
        confidence_level: Running confidence bucket (high | medium | low)
        average_confidence: Mean self-reported confidence, None if never reported
        negative_answers / positive_answers: Answer records split by polarity
    """
    answered_categories: Set[str] = field(default_factory=set)
    coverage_by_category: Dict[str, int] = field(default_factory=dict)
    gaps_by_category: Dict[str, int] = field(default_factory=dict)
    confidence_level: str = CONFIDENCE_MEDIUM
    average_confidence: Optional[float] = None
    negative_answers: List[AnswerRecord] = field(default_factory=list)
    positive_answers: List[AnswerRecord] = field(default_factory=list)


def bucket_confidence(value: float) -> str:
    if value >= 0.7:
        return CONFIDENCE_HIGH
    if value >= 0.4:
        return CONFIDENCE_MEDIUM
    return CONFIDENCE_LOW


class ContextAwareSelector:
    """
    Ranking strategy layered on the Flow Engine.

    Biases selection toward progressive disclosure (broad -> targeted)
    instead of a static priority order.
    """

    # Answered-count below which detail questions are held back
    EARLY_STAGE_THRESHOLD = 5

    def __init__(self, engine: AssessmentFlowEngine):
        if not isinstance(engine, AssessmentFlowEngine):
            raise TypeError(f"engine must be AssessmentFlowEngine, got {type(engine).__name__}")

        self.engine = engine
        self.catalog = engine.catalog

        logger.info("Context-Aware Selector initialized")

    # =========================================================================
    # Public API
    # =========================================================================

    def analyze_answers(self, context: AssessmentContext) -> AnswerAnalysis:
        """
        Derive coverage, gap counts and confidence from the answers map.

        Answers to ids missing from the catalog are ignored. The confidence
        bucket is the mean of reported confidences; answers without a
        confidence leave it untouched (default 'medium').
        """
        analysis = AnswerAnalysis()
        confidences = []

        for question_id, answer in context.answers.items():
            question = self.catalog.get(question_id)
            if question is None:
                continue

            category = question.category
            analysis.answered_categories.add(category)
            analysis.coverage_by_category[category] = (
                analysis.coverage_by_category.get(category, 0) + 1
            )

            record = AnswerRecord(question_id=question_id, category=category, answer=answer.value)
            if is_negative_answer(answer.value):
                analysis.negative_answers.append(record)
                analysis.gaps_by_category[category] = analysis.gaps_by_category.get(category, 0) + 1
            else:
                analysis.positive_answers.append(record)

            if answer.confidence is not None:
                confidences.append(answer.confidence)

        if confidences:
            analysis.average_confidence = sum(confidences) / len(confidences)
            analysis.confidence_level = bucket_confidence(analysis.average_confidence)

        return analysis

    def get_context_aware_next_question(self, context: AssessmentContext) -> FlowDecision:
        """
        Select the next question with context-aware ranking.

        Ranking (in order): categories with a detected gap, lower category
        coverage, then the base priority / category / dependency tiebreak.
        In the early stage, low-priority questions whose category contains
        'detail' are excluded.

        Returns:
            FlowDecision, same contract as AssessmentFlowEngine.get_next_question()
        """
        self.engine.check_context(context)
        phase = self.engine.compute_phase(context)
        analysis = self.analyze_answers(context)

        candidates = self._contextual_candidates(context)
        if not candidates:
            return FlowDecision(should_skip=False, reason=REASON_NO_MORE_QUESTIONS, phase=phase)

        ranked = self._rank_contextual(candidates, context, analysis)
        return self.engine.choose_from_ranked(ranked, context, phase)

    def get_progressive_questions(
        self,
        context: AssessmentContext,
        level: DisclosureLevel
    ) -> List[QuestionNode]:
        """
        Current candidates matching a disclosure tier (catalog order).

        broad: high priority and no dependencies
        medium: medium priority or has dependencies
        specific: low priority or more than two dependencies

        Raises:
            ValueError: If level is not a DisclosureLevel value
        """
        level = DisclosureLevel(level)
        candidates = self.engine.get_candidates(context)

        if level is DisclosureLevel.BROAD:
            return [
                q for q in candidates
                if q.priority is Priority.HIGH and not q.depends_on
            ]

        if level is DisclosureLevel.MEDIUM:
            return [
                q for q in candidates
                if q.priority is Priority.MEDIUM or len(q.depends_on) > 0
            ]

        return [
            q for q in candidates
            if q.priority is Priority.LOW or len(q.depends_on) > 2
        ]

    # =========================================================================
    # Ranking Helpers
    # =========================================================================

    def is_early_stage(self, context: AssessmentContext) -> bool:
        return context.answered_count < self.EARLY_STAGE_THRESHOLD

    def _contextual_candidates(self, context: AssessmentContext) -> List[QuestionNode]:
        candidates = self.engine.get_candidates(context)

        if not self.is_early_stage(context):
            return candidates

        kept = [q for q in candidates if not self._is_detail_question(q)]
        if not kept:
            logger.debug("Early stage: only detail questions remain, hold-back lifted")
            return candidates

        if len(kept) != len(candidates):
            held_back = [q.id for q in candidates if self._is_detail_question(q)]
            logger.debug(f"Early stage: holding back detail questions {held_back}")
        return kept

    @staticmethod
    def _is_detail_question(question: QuestionNode) -> bool:
        return question.priority is Priority.LOW and "detail" in question.category.lower()

    def _rank_contextual(
        self,
        candidates: List[QuestionNode],
        context: AssessmentContext,
        analysis: AnswerAnalysis
    ) -> List[QuestionNode]:
        # Base ranking first; the stable sort keeps it as the final tiebreak
        base = self.engine.rank_candidates(candidates, context)

        def sort_key(question: QuestionNode):
            has_gap = question.category in analysis.gaps_by_category
            coverage = analysis.coverage_by_category.get(question.category, 0)
            return (not has_gap, coverage)

        ranked = sorted(base, key=sort_key)
        logger.debug(f"Contextual ranking: {[q.id for q in ranked]}")
        return ranked
