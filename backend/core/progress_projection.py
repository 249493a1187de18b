"""
Gap/Progress Projection - Derived read-only view of an assessment

Computed from an AssessmentContext and its catalog; consumed by reporting
layers (host progress endpoint, final report). Never stored, never mutates.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Tuple

from backend.contracts import Gap
from backend.core.assessment_context import AssessmentContext
from backend.core.question_catalog import QuestionCatalog
from backend.utils.helpers import percent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CategoryCoverage:
    """Answered vs total questions in one category."""
    category: str
    answered: int
    total: int

    @property
    def percentage(self) -> int:
        if self.total == 0:
            return 0
        return percent(self.answered, self.total)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'category': self.category,
            'answered': self.answered,
            'total': self.total,
            'percentage': self.percentage,
        }


@dataclass(frozen=True)
class ProgressReport:
    """
    Projection of one assessment context.

    Attributes:
        session_id: Session identifier
        answered_count / total_questions: Raw counts
        percentage: Stored progress (0-100)
        phase: Stored phase value
        categories: Per-category coverage in catalog order
        gaps: Detected gaps, highest severity first
        skipped_questions: Questions set aside (sorted)
    """
    session_id: str
    answered_count: int
    total_questions: int
    percentage: int
    phase: str
    categories: Tuple[CategoryCoverage, ...]
    gaps: Tuple[Gap, ...]
    skipped_questions: Tuple[str, ...]

    @property
    def gap_count(self) -> int:
        return len(self.gaps)

    @property
    def remaining_count(self) -> int:
        return self.total_questions - self.answered_count - len(self.skipped_questions)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'session_id': self.session_id,
            'answered_count': self.answered_count,
            'total_questions': self.total_questions,
            'remaining_count': self.remaining_count,
            'percentage': self.percentage,
            'phase': self.phase,
            'categories': [c.to_dict() for c in self.categories],
            'gap_count': self.gap_count,
            'gaps': [g.to_dict() for g in self.gaps],
            'skipped_questions': list(self.skipped_questions),
        }


def project_progress(context: AssessmentContext, catalog: QuestionCatalog) -> ProgressReport:
    """
    Build the progress view for a context.

    Answers to question ids missing from the catalog are not counted in
    category coverage.
    """
    totals: Dict[str, int] = {category: 0 for category in catalog.categories()}
    answered: Dict[str, int] = {category: 0 for category in totals}

    for question in catalog:
        totals[question.category] += 1
        if question.id in context.answers:
            answered[question.category] += 1

    categories = tuple(
        CategoryCoverage(category=category, answered=answered[category], total=totals[category])
        for category in totals
    )

    gaps = tuple(sorted(context.gaps, key=lambda g: -g.severity.rank))

    report = ProgressReport(
        session_id=context.session_id,
        answered_count=context.answered_count,
        total_questions=len(catalog),
        percentage=context.progress,
        phase=context.phase.value,
        categories=categories,
        gaps=gaps,
        skipped_questions=tuple(sorted(context.skipped_questions)),
    )

    logger.debug(
        f"Progress projected: session={context.session_id}, "
        f"{report.answered_count}/{report.total_questions}, gaps={report.gap_count}"
    )
    return report
