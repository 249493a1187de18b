"""
Assessment Flow Engine - Adaptive next-question selection and answer folding

Responsibilities:
- Build the candidate set (unanswered, dependencies met, not set aside)
- Rank candidates by priority, category focus and dependency count
- Evaluate skip/require rules and branch rules against recorded answers
- Fold a submitted answer into a new context (progress, phase, gaps)

Design principles:
- Stateless: all session state comes from the AssessmentContext argument
- Deterministic: same context always produces the same decision
- Value semantics: the input context is never mutated; a new one is returned
- Fail fast on structural errors (unknown question ids, foreign catalog)
- Exhaustion is not an error: it is a FlowDecision carrying a reason

Provenance hooks:
- rank_candidates() is the seam the Context-Aware Selector re-ranks through
- choose_from_ranked() applies skip and branch rules for any ranking
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

from backend.contracts import (
    AnswerData,
    ConditionAction,
    FlowDecision,
    Gap,
    GapSeverity,
    Phase,
    Priority,
    QuestionNode,
)
from backend.core.assessment_context import AssessmentContext, utc_now
from backend.core.conditions import evaluate_condition
from backend.core.question_catalog import QuestionCatalog
from backend.utils.helpers import percent

logger = logging.getLogger(__name__)

REASON_NO_MORE_QUESTIONS = "No more questions available"
REASON_NO_SUITABLE_QUESTION = "No suitable question found"

# Case-insensitive string answers treated as negative
NEGATIVE_STRINGS = {"no", "false", "none", "not applicable"}


class UnknownQuestionError(KeyError):
    """Question id not present in the engine's catalog."""


class CatalogMismatchError(ValueError):
    """Context was started against a different catalog."""


def is_negative_answer(value: Any) -> bool:
    """
    Classify an answer value as negative (indicates a gap).

    Negative: boolean False; 'no' / 'false' / 'none' / 'not applicable'
    (case-insensitive); numbers <= 0; empty lists.
    """
    if isinstance(value, bool):
        return not value
    if isinstance(value, str):
        return value.strip().lower() in NEGATIVE_STRINGS
    if isinstance(value, (int, float)):
        return value <= 0
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


class AssessmentFlowEngine:
    """
    Stateless adaptive question selector over an immutable catalog.

    The catalog is injected once and shared read-only across sessions.
    Holds no session-keyed state; concurrent calls for different sessions
    share nothing mutable.
    """

    def __init__(self, catalog: QuestionCatalog):
        """
        Initialize engine with catalog.

        Args:
            catalog: Validated QuestionCatalog

        Raises:
            TypeError: If catalog is not a QuestionCatalog
        """
        if not isinstance(catalog, QuestionCatalog):
            raise TypeError(f"catalog must be QuestionCatalog, got {type(catalog).__name__}")

        self.catalog = catalog

        logger.info(f"Assessment Flow Engine initialized with {len(catalog)} questions")

    # =========================================================================
    # Public API
    # =========================================================================

    def start_assessment(
        self,
        session_id: str,
        user_id: str,
        standard: str,
        mode: str,
        current_category: Optional[str] = None
    ) -> AssessmentContext:
        """
        Create a fresh context in phase 'initiation' with no answers or gaps.

        The context records the catalog fingerprint (snapshot-at-start).
        """
        now = utc_now()
        context = AssessmentContext(
            session_id=session_id,
            user_id=user_id,
            standard=standard,
            mode=mode,
            phase=Phase.INITIATION,
            progress=0,
            started_at=now,
            last_updated=now,
            current_category=current_category,
            catalog_fingerprint=self.catalog.fingerprint,
        )

        logger.info(f"Assessment started: session={session_id}, standard={standard}, mode={mode}")
        return context

    def get_next_question(self, context: AssessmentContext) -> FlowDecision:
        """
        Select the next question using the base ranking.

        Algorithm:
        1. Recompute phase from progress / answered count
        2. Candidates: unanswered, not set aside, all depends_on answered
        3. Empty -> "No more questions available"
        4. Rank: priority desc, current category first, fewer dependencies,
           catalog order
        5. Walk the ranking, discarding candidates excluded by skip rules
        6. A firing branch rule on the chosen candidate redirects to its target

        Args:
            context: Current assessment context (not modified)

        Returns:
            FlowDecision (next_question None on exhaustion)

        Raises:
            CatalogMismatchError: If context belongs to another catalog
        """
        self.check_context(context)
        phase = self.compute_phase(context)

        candidates = self.get_candidates(context)
        if not candidates:
            return FlowDecision(should_skip=False, reason=REASON_NO_MORE_QUESTIONS, phase=phase)

        ranked = self.rank_candidates(candidates, context)
        return self.choose_from_ranked(ranked, context, phase)

    def submit_answer(
        self,
        context: AssessmentContext,
        question_id: str,
        answer: Any
    ) -> AssessmentContext:
        """
        Fold an answer into a new context.

        Marks the question answered (replacing any prior answer), stamps
        answered_at server-side, recomputes progress and phase, and runs gap
        detection.

        Args:
            context: Current context (not modified)
            question_id: Answered question id
            answer: AnswerData, or a raw value (bool | number | str | list)

        Returns:
            AssessmentContext: New context; callers must persist it

        Raises:
            UnknownQuestionError: If question_id is not in the catalog
            CatalogMismatchError: If context belongs to another catalog
        """
        self.check_context(context)

        question = self.catalog.get(question_id)
        if question is None:
            raise UnknownQuestionError(f"Unknown question id: '{question_id}'")

        now = utc_now()
        normalized = self._normalize_answer(question_id, answer, now)

        updated = context.copy(last_updated=now)
        previous = updated.answers.get(question_id)
        updated.answers[question_id] = normalized
        updated.skipped_questions.discard(question_id)

        updated.progress = self.compute_progress(updated)
        updated.phase = self.compute_phase(updated)

        self._update_gaps(updated, question, normalized, previous)

        logger.info(
            f"Answer recorded: session={context.session_id}, question={question_id}, "
            f"progress={updated.progress}"
        )
        return updated

    def skip_question(self, context: AssessmentContext, question_id: str) -> AssessmentContext:
        """
        Set a question aside without answering it.

        The question leaves the candidate set; it gets no answer entry and
        does not count toward progress.

        Raises:
            UnknownQuestionError: If question_id is not in the catalog
        """
        self.check_context(context)

        if question_id not in self.catalog:
            raise UnknownQuestionError(f"Unknown question id: '{question_id}'")

        updated = context.copy(last_updated=utc_now())
        updated.skipped_questions.add(question_id)

        logger.info(f"Question set aside: session={context.session_id}, question={question_id}")
        return updated

    def get_assessment_summary(self, context: AssessmentContext) -> Dict[str, Any]:
        """Progress, answered/total counts, gaps and phase."""
        return {
            'progress': context.progress,
            'answered_count': context.answered_count,
            'total_questions': len(self.catalog),
            'gaps': list(context.gaps),
            'phase': self.compute_phase(context),
        }

    # =========================================================================
    # Candidate Selection
    # =========================================================================

    def get_candidates(self, context: AssessmentContext) -> List[QuestionNode]:
        """Unanswered, not set aside, with every depends_on id answered (catalog order)."""
        answered = context.answered_questions
        candidates = []

        for question in self.catalog:
            if question.id in answered:
                continue
            if question.id in context.skipped_questions:
                continue
            if not self.dependencies_met(question, answered):
                continue
            candidates.append(question)

        return candidates

    def rank_candidates(
        self,
        candidates: Iterable[QuestionNode],
        context: AssessmentContext
    ) -> List[QuestionNode]:
        """
        Base ranking.

        Order: priority tier desc, current category first (when set), fewer
        dependencies, then catalog order.
        """
        current_category = context.current_category

        def sort_key(question: QuestionNode):
            outside_focus = (
                current_category is not None and question.category != current_category
            )
            return (
                -question.priority.rank,
                outside_focus,
                len(question.depends_on),
                self.catalog.position(question.id),
            )

        ranked = sorted(candidates, key=sort_key)
        logger.debug(f"Base ranking: {[q.id for q in ranked]}")
        return ranked

    def choose_from_ranked(
        self,
        ranked: Sequence[QuestionNode],
        context: AssessmentContext,
        phase: Optional[Phase] = None
    ) -> FlowDecision:
        """
        Pick the first ranked candidate that survives its skip rules.

        A branch rule firing on the chosen candidate returns the branch target
        instead. Bounded by the length of the ranking.
        """
        if phase is None:
            phase = self.compute_phase(context)

        for question in ranked:
            skip_reason = self.skip_reason(question, context)
            if skip_reason:
                logger.debug(f"Skipping {question.id}: {skip_reason}")
                continue

            target = self.branch_target(question, context)
            if target is not None:
                logger.info(f"Branching from {question.id} to {target.id}")
                return FlowDecision(
                    next_question=target,
                    should_skip=False,
                    branch_to=target.id,
                    phase=phase,
                )

            return FlowDecision(next_question=question, should_skip=False, phase=phase)

        return FlowDecision(should_skip=False, reason=REASON_NO_SUITABLE_QUESTION, phase=phase)

    # =========================================================================
    # Rule Evaluation
    # =========================================================================

    @staticmethod
    def dependencies_met(question: QuestionNode, answered: Iterable[str]) -> bool:
        answered = set(answered)
        return all(dep_id in answered for dep_id in question.depends_on)

    def skip_reason(self, question: QuestionNode, context: AssessmentContext) -> Optional[str]:
        """
        Evaluate skip rules in order.

        A rule referencing an unanswered question is inert.

        Returns:
            Explanation string if the question must be excluded, else None
        """
        for rule in question.skip_conditions:
            answer = context.answers.get(rule.question_id)
            if answer is None:
                continue

            holds = evaluate_condition(rule.operator, answer.value, rule.value)

            if rule.action is ConditionAction.SKIP and holds:
                return (
                    f"Skip condition met: {rule.question_id} "
                    f"{rule.operator.value} {rule.value!r}"
                )

            if rule.action is ConditionAction.REQUIRE and not holds:
                return (
                    f"Required condition not met: {rule.question_id} "
                    f"{rule.operator.value} {rule.value!r}"
                )

        return None

    def branch_target(
        self,
        question: QuestionNode,
        context: AssessmentContext
    ) -> Optional[QuestionNode]:
        """
        Evaluate branch rules in order; first firing rule with a usable target wins.

        A target is usable when it exists in the catalog, is not yet answered
        or set aside, and has its dependencies met. Unusable targets fall back
        to the ranked candidate.
        """
        answered = context.answered_questions

        for rule in question.branch_conditions:
            answer = context.answers.get(rule.question_id)
            if answer is None:
                continue

            if not evaluate_condition(rule.operator, answer.value, rule.value):
                continue

            target = self.catalog.get(rule.target_question_id)
            if target is None:
                logger.warning(
                    f"Branch target '{rule.target_question_id}' from '{question.id}' "
                    f"not in catalog, falling back to ranked candidate"
                )
                continue

            if target.id in answered or target.id in context.skipped_questions:
                continue

            if not self.dependencies_met(target, answered):
                logger.debug(f"Branch target {target.id} has unmet dependencies")
                continue

            return target

        return None

    # =========================================================================
    # Progress, Phase, Gaps
    # =========================================================================

    def compute_progress(self, context: AssessmentContext) -> int:
        total = len(self.catalog)
        if total == 0:
            return 0
        return min(100, percent(context.answered_count, total))

    @staticmethod
    def compute_phase(context: AssessmentContext) -> Phase:
        if context.progress >= 100:
            return Phase.COMPLETION
        if context.progress > 0:
            return Phase.ASSESSMENT
        if context.answered_count > 0:
            return Phase.EXPLORATION
        return Phase.INITIATION

    def _update_gaps(
        self,
        context: AssessmentContext,
        question: QuestionNode,
        answer: AnswerData,
        previous: Optional[AnswerData]
    ):
        """
        Append or extend the category gap for a negative answer.

        Gaps are never downgraded by answers to other questions. A positive
        re-answer of the same question withdraws only that question from its
        category gap; a gap with no related questions left is dropped.
        """
        index = self._gap_index(context.gaps, question.category)

        if is_negative_answer(answer.value):
            severity = self._severity_for(question)

            if index is None:
                context.gaps.append(Gap(
                    category=question.category,
                    severity=severity,
                    description=f"Gap identified in {question.category}",
                    related_questions=(question.id,),
                    recommendations=(f"Review {question.category} requirements",),
                ))
                logger.info(f"Gap detected: category={question.category}, question={question.id}")
                return

            gap = context.gaps[index]
            related = gap.related_questions
            if question.id not in related:
                related = related + (question.id,)
            if severity.rank > gap.severity.rank:
                gap_severity = severity
            else:
                gap_severity = gap.severity
            context.gaps[index] = Gap(
                category=gap.category,
                severity=gap_severity,
                description=gap.description,
                related_questions=related,
                recommendations=gap.recommendations,
            )
            logger.info(f"Gap extended: category={question.category}, question={question.id}")
            return

        if previous is None or index is None:
            return

        gap = context.gaps[index]
        if question.id not in gap.related_questions:
            return

        remaining = tuple(q_id for q_id in gap.related_questions if q_id != question.id)
        if not remaining:
            del context.gaps[index]
            logger.info(f"Gap withdrawn: category={question.category} (re-answered {question.id})")
            return

        remaining_nodes = [self.catalog.get(q_id) for q_id in remaining]
        severity = max(
            (self._severity_for(node) for node in remaining_nodes if node is not None),
            key=lambda s: s.rank,
            default=gap.severity,
        )
        context.gaps[index] = Gap(
            category=gap.category,
            severity=severity,
            description=gap.description,
            related_questions=remaining,
            recommendations=gap.recommendations,
        )

    @staticmethod
    def _severity_for(question: QuestionNode) -> GapSeverity:
        return GapSeverity.HIGH if question.priority is Priority.HIGH else GapSeverity.MEDIUM

    @staticmethod
    def _gap_index(gaps: List[Gap], category: str) -> Optional[int]:
        for i, gap in enumerate(gaps):
            if gap.category == category:
                return i
        return None

    # =========================================================================
    # Validation
    # =========================================================================

    def check_context(self, context: AssessmentContext):
        if not isinstance(context, AssessmentContext):
            raise TypeError(f"context must be AssessmentContext, got {type(context).__name__}")

        fingerprint = context.catalog_fingerprint
        if fingerprint is not None and fingerprint != self.catalog.fingerprint:
            raise CatalogMismatchError(
                f"Session {context.session_id} started on catalog {fingerprint}, "
                f"engine holds {self.catalog.fingerprint}"
            )

    @staticmethod
    def _normalize_answer(question_id: str, answer: Any, answered_at) -> AnswerData:
        if isinstance(answer, AnswerData):
            if answer.question_id != question_id:
                raise ValueError(
                    f"AnswerData for '{answer.question_id}' submitted as '{question_id}'"
                )
            value = answer.value
            confidence = answer.confidence
            notes = answer.notes
        else:
            value = answer
            confidence = None
            notes = None

        if isinstance(value, tuple):
            value = list(value)

        if confidence is not None:
            confidence = max(0.0, min(1.0, float(confidence)))

        return AnswerData(
            question_id=question_id,
            value=value,
            confidence=confidence,
            answered_at=answered_at,
            notes=notes,
        )
