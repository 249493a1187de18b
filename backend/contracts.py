"""
Semantic contracts for the adaptive assessment system.

This module defines immutable data structures that serve as contracts
between modules. Catalog entries, answers, gaps and flow decisions are
created here and passed between the Flow Engine, the Context-Aware
Selector and the Conversational Wrapper without modification.

Design principles:
- Frozen dataclasses (immutable after creation)
- String-based enums for JSON serialization
- No dependencies on other modules
- Parsing from catalog dicts fails fast on unknown enum strings

Contents:
- Enums: Priority, AnswerFormat, Operator, ConditionAction, Phase,
  GapSeverity, ClarificationReason, DisclosureLevel
- QuestionNode (+ SkipCondition, BranchCondition, ScaleRange)
- AnswerData, Gap, FlowDecision, ClarificationRequest, ConversationMessage

Usage:
    from backend.contracts import QuestionNode, AnswerData, FlowDecision
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

# Value stored for an answer: boolean | number | string | string-list
AnswerValue = Union[bool, int, float, str, List[str], Tuple[str, ...]]


class Priority(str, Enum):
    """Priority tier of a catalog question."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Numeric rank, higher sorts first."""
        return PRIORITY_RANK[self]


PRIORITY_RANK = {
    Priority.HIGH: 3,
    Priority.MEDIUM: 2,
    Priority.LOW: 1,
}


class AnswerFormat(str, Enum):
    """Expected answer format of a question."""
    YES_NO = "yes-no"
    MULTIPLE_CHOICE = "multiple-choice"
    SCALE = "scale"
    OPEN_ENDED = "open-ended"
    MULTI_SELECT = "multi-select"

    @property
    def uses_options(self) -> bool:
        return self in (AnswerFormat.MULTIPLE_CHOICE, AnswerFormat.MULTI_SELECT)


class Operator(str, Enum):
    """Comparison operators shared by skip and branch rules."""
    EQUALS = "equals"
    NOT_EQUALS = "not-equals"
    CONTAINS = "contains"
    GREATER_THAN = "greater-than"
    LESS_THAN = "less-than"


class ConditionAction(str, Enum):
    """
    Action of a skip rule.

    SKIP: exclude the guarded question when the condition holds.
    REQUIRE: exclude the guarded question when the condition does NOT hold.
    """
    SKIP = "skip"
    REQUIRE = "require"


class Phase(str, Enum):
    """Assessment phase, recomputed from progress and answered count."""
    INITIATION = "initiation"
    EXPLORATION = "exploration"
    ASSESSMENT = "assessment"
    COMPLETION = "completion"


class GapSeverity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return SEVERITY_RANK[self]


SEVERITY_RANK = {
    GapSeverity.CRITICAL: 4,
    GapSeverity.HIGH: 3,
    GapSeverity.MEDIUM: 2,
    GapSeverity.LOW: 1,
}


class ClarificationReason(str, Enum):
    """Why a free-text reply was rejected."""
    UNCLEAR = "unclear"
    INCOMPLETE = "incomplete"
    CONTRADICTORY = "contradictory"
    NEEDS_DETAIL = "needs-detail"


class DisclosureLevel(str, Enum):
    """Progressive disclosure tiers (broad -> specific)."""
    BROAD = "broad"
    MEDIUM = "medium"
    SPECIFIC = "specific"


@dataclass(frozen=True)
class SkipCondition:
    """
    Conditional exclusion of a question based on a prior answer.

    Inert while the referenced question is unanswered.
    """
    question_id: str
    operator: Operator
    value: Any
    action: ConditionAction = ConditionAction.SKIP

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "SkipCondition":
        return SkipCondition(
            question_id=data["question_id"],
            operator=Operator(data["operator"]),
            value=_freeze(data.get("value")),
            action=ConditionAction(data.get("action", ConditionAction.SKIP.value)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question_id": self.question_id,
            "operator": self.operator.value,
            "value": _thaw(self.value),
            "action": self.action.value,
        }


@dataclass(frozen=True)
class BranchCondition:
    """Redirect to target_question_id when the referenced answer matches."""
    question_id: str
    operator: Operator
    value: Any
    target_question_id: str

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "BranchCondition":
        return BranchCondition(
            question_id=data["question_id"],
            operator=Operator(data["operator"]),
            value=_freeze(data.get("value")),
            target_question_id=data["target_question_id"],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question_id": self.question_id,
            "operator": self.operator.value,
            "value": _thaw(self.value),
            "target_question_id": self.target_question_id,
        }


@dataclass(frozen=True)
class ScaleRange:
    """Inclusive numeric bounds for scale questions."""
    min: float
    max: float
    step: Optional[float] = None

    def contains(self, number: float) -> bool:
        return self.min <= number <= self.max

    def clamp(self, number: float) -> float:
        return max(self.min, min(self.max, number))

    def to_dict(self) -> Dict[str, Any]:
        data = {"min": self.min, "max": self.max}
        if self.step is not None:
            data["step"] = self.step
        return data


@dataclass(frozen=True)
class QuestionNode:
    """
    Immutable catalog entry.

    Created once per standard/version and never mutated during a session.

    Attributes:
        id: Unique question identifier (e.g. 'gov_1')
        prompt: Question text shown to the user
        category: Free-form label (e.g. 'governance', 'metrics-detail')
        priority: Priority tier
        format: Expected answer format
        options: Declared choices for multiple-choice / multi-select.
            Tuple (not list) to ensure immutability.
        scale_range: Numeric bounds for scale questions
        depends_on: Prerequisite question ids (all must be answered)
        skip_conditions: Ordered skip/require rules
        branch_conditions: Ordered branch rules
    """
    id: str
    prompt: str
    category: str
    priority: Priority = Priority.MEDIUM
    format: AnswerFormat = AnswerFormat.OPEN_ENDED
    options: Optional[Tuple[str, ...]] = None
    scale_range: Optional[ScaleRange] = None
    depends_on: Tuple[str, ...] = ()
    skip_conditions: Tuple[SkipCondition, ...] = ()
    branch_conditions: Tuple[BranchCondition, ...] = ()

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "QuestionNode":
        """
        Build a node from a catalog dict.

        Raises:
            KeyError: If 'id', 'prompt' or 'category' is missing
            ValueError: If an enum string is unknown
        """
        scale = data.get("scale_range")
        options = data.get("options")
        return QuestionNode(
            id=data["id"],
            prompt=data["prompt"],
            category=data["category"],
            priority=Priority(data.get("priority", Priority.MEDIUM.value)),
            format=AnswerFormat(data.get("format", AnswerFormat.OPEN_ENDED.value)),
            options=tuple(options) if options is not None else None,
            scale_range=(
                ScaleRange(min=scale["min"], max=scale["max"], step=scale.get("step"))
                if scale is not None else None
            ),
            depends_on=tuple(data.get("depends_on", ())),
            skip_conditions=tuple(
                SkipCondition.from_dict(c) for c in data.get("skip_conditions", ())
            ),
            branch_conditions=tuple(
                BranchCondition.from_dict(c) for c in data.get("branch_conditions", ())
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "prompt": self.prompt,
            "category": self.category,
            "priority": self.priority.value,
            "format": self.format.value,
        }
        if self.options is not None:
            data["options"] = list(self.options)
        if self.scale_range is not None:
            data["scale_range"] = self.scale_range.to_dict()
        if self.depends_on:
            data["depends_on"] = list(self.depends_on)
        if self.skip_conditions:
            data["skip_conditions"] = [c.to_dict() for c in self.skip_conditions]
        if self.branch_conditions:
            data["branch_conditions"] = [c.to_dict() for c in self.branch_conditions]
        return data


@dataclass(frozen=True)
class AnswerData:
    """
    A recorded answer.

    Immutable once recorded. A later answer to the same question id replaces
    the prior entry rather than appending. answered_at is always set by the
    Flow Engine at submit time.
    Multi-select values are stored as tuples and exported as lists.
    """
    question_id: str
    value: AnswerValue
    confidence: Optional[float] = None
    answered_at: Optional[datetime] = None
    notes: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "value", _freeze(self.value))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question_id": self.question_id,
            "value": list(self.value) if isinstance(self.value, (list, tuple)) else self.value,
            "confidence": self.confidence,
            "answered_at": self.answered_at.isoformat() if self.answered_at else None,
            "notes": self.notes,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "AnswerData":
        answered_at = data.get("answered_at")
        return AnswerData(
            question_id=data["question_id"],
            value=data["value"],
            confidence=data.get("confidence"),
            answered_at=datetime.fromisoformat(answered_at) if answered_at else None,
            notes=data.get("notes"),
        )


@dataclass(frozen=True)
class Gap:
    """Compliance shortfall inferred from negative answers in one category."""
    category: str
    severity: GapSeverity
    description: str
    related_questions: Tuple[str, ...] = ()
    recommendations: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "severity": self.severity.value,
            "description": self.description,
            "related_questions": list(self.related_questions),
            "recommendations": list(self.recommendations),
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Gap":
        return Gap(
            category=data["category"],
            severity=GapSeverity(data["severity"]),
            description=data["description"],
            related_questions=tuple(data.get("related_questions", ())),
            recommendations=tuple(data.get("recommendations", ())),
        )


@dataclass(frozen=True)
class FlowDecision:
    """
    Outcome of next-question selection.

    next_question is None on exhaustion; reason explains why. branch_to is
    set when a branch rule redirected the flow. phase is the phase
    recomputed from the context the decision was made against.
    """
    next_question: Optional[QuestionNode] = None
    should_skip: bool = False
    reason: Optional[str] = None
    branch_to: Optional[str] = None
    phase: Optional[Phase] = None

    @property
    def is_exhausted(self) -> bool:
        return self.next_question is None


@dataclass(frozen=True)
class ClarificationRequest:
    """Issued instead of advancing when a reply is rejected."""
    question_id: str
    reason: ClarificationReason
    clarifying_question: str
    suggestions: Optional[Tuple[str, ...]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question_id": self.question_id,
            "reason": self.reason.value,
            "clarifying_question": self.clarifying_question,
            "suggestions": list(self.suggestions) if self.suggestions else None,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "ClarificationRequest":
        suggestions = data.get("suggestions")
        return ClarificationRequest(
            question_id=data["question_id"],
            reason=ClarificationReason(data["reason"]),
            clarifying_question=data["clarifying_question"],
            suggestions=tuple(suggestions) if suggestions else None,
        )


@dataclass(frozen=True)
class ConversationMessage:
    """One transcript entry (role: user | assistant | system)."""
    role: str
    content: str
    timestamp: datetime
    question_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
            "question_id": self.question_id,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "ConversationMessage":
        return ConversationMessage(
            role=data["role"],
            content=data["content"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            question_id=data.get("question_id"),
        )


def _freeze(value: Any) -> Any:
    """Lists in rule values become tuples so nodes stay hashable."""
    if isinstance(value, list):
        return tuple(value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, tuple):
        return list(value)
    return value
