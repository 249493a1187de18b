"""
Answer Validator - Classify free-text replies against a question's format

Responsibilities:
- Reject replies that are too short or hedging ("maybe", "i'm not sure")
- Check format-specific well-formedness (yes-no, choice, scale)
- Parse accepted replies into typed answer values

Design principles:
- Pure functions of (reply, question); no session state
- Rejection is a value (ValidationResult), never an exception
- Short replies that are well-formed for their format (y / no / 3 / an exact
  option) are not penalised by the length check
"""

import logging
import math
import re
from dataclasses import dataclass
from typing import List, Optional, Union

from backend.contracts import AnswerFormat, ClarificationReason, QuestionNode

logger = logging.getLogger(__name__)

# Hedging replies (rejected as unclear before any format check)
UNCLEAR_PATTERNS = [
    re.compile(r"i don'?t know", re.IGNORECASE),
    re.compile(r"i'?m not sure", re.IGNORECASE),
    re.compile(r"maybe", re.IGNORECASE),
    re.compile(r"perhaps", re.IGNORECASE),
    re.compile(r"uncertain", re.IGNORECASE),
    re.compile(r"unclear", re.IGNORECASE),
]

YES_NO_PATTERN = re.compile(r"^(yes|no|y|n|true|false)$", re.IGNORECASE)
TRUE_PATTERN = re.compile(r"^(yes|y|true)$", re.IGNORECASE)

# Literal escape words accepted for choice formats
CHOICE_ESCAPE_WORDS = ("other", "none")

ParsedValue = Union[bool, int, float, str, List[str]]


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating one reply. reason is set only when rejected."""
    valid: bool
    reason: Optional[ClarificationReason] = None

    @classmethod
    def accept(cls) -> "ValidationResult":
        return cls(valid=True)

    @classmethod
    def reject(cls, reason: ClarificationReason) -> "ValidationResult":
        return cls(valid=False, reason=reason)


def parse_number(text: str) -> Optional[Union[int, float]]:
    """
    Parse a trimmed reply as a finite number.

    Integral values come back as int ("3" -> 3, "4.0" -> 4).

    Returns:
        Number, or None if the text is not a finite number
    """
    text = text.strip()
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    if number.is_integer():
        return int(number)
    return number


class AnswerValidator:
    """Validate and parse replies to a pending question."""

    # Replies shorter than this (after trimming) are incomplete
    MIN_ANSWER_LENGTH = 3

    def validate(self, reply: str, question: QuestionNode) -> ValidationResult:
        """
        Validate a reply against the question's expected format.

        Order of checks:
        1. Trimmed length below MIN_ANSWER_LENGTH -> incomplete
           (unless the reply is a well-formed short form for the format)
        2. Hedging pattern -> unclear
        3. Format check -> unclear on failure

        Args:
            reply: Raw user text
            question: Pending question

        Returns:
            ValidationResult
        """
        if not isinstance(reply, str):
            raise TypeError(f"reply must be string, got {type(reply).__name__}")

        normalized = reply.strip().lower()

        if len(normalized) < self.MIN_ANSWER_LENGTH and not self._is_short_form(normalized, question):
            logger.debug(f"[{question.id}] Reply too short: '{reply}'")
            return ValidationResult.reject(ClarificationReason.INCOMPLETE)

        for pattern in UNCLEAR_PATTERNS:
            if pattern.search(normalized):
                logger.info(f"[{question.id}] Hedging reply: '{reply}'")
                return ValidationResult.reject(ClarificationReason.UNCLEAR)

        if not self._matches_format(normalized, question):
            logger.info(f"[{question.id}] Reply does not fit {question.format.value}: '{reply}'")
            return ValidationResult.reject(ClarificationReason.UNCLEAR)

        return ValidationResult.accept()

    def parse(self, reply: str, question: QuestionNode) -> ParsedValue:
        """
        Convert an accepted reply into a typed answer value.

        yes-no: True for yes / y / true, else False
        multiple-choice: first declared option found in the reply, else raw text
        scale: number clamped to the declared bounds, else raw text
        multi-select: every declared option found in the reply, else [raw text]
        open-ended: raw text unchanged
        """
        normalized = reply.strip().lower()
        fmt = question.format

        if fmt is AnswerFormat.YES_NO:
            return bool(TRUE_PATTERN.match(normalized))

        if fmt is AnswerFormat.MULTIPLE_CHOICE:
            for option in question.options or ():
                if option.lower() in normalized:
                    return option
            return reply

        if fmt is AnswerFormat.SCALE:
            number = parse_number(normalized)
            if number is None or question.scale_range is None:
                return reply
            return question.scale_range.clamp(number)

        if fmt is AnswerFormat.MULTI_SELECT:
            selected = [
                option for option in question.options or ()
                if option.lower() in normalized
            ]
            return selected if selected else [reply]

        return reply

    # =========================================================================
    # Format Checks
    # =========================================================================

    def _matches_format(self, normalized: str, question: QuestionNode) -> bool:
        fmt = question.format

        if fmt is AnswerFormat.YES_NO:
            return bool(YES_NO_PATTERN.match(normalized))

        if fmt.uses_options:
            if any(option.lower() in normalized for option in question.options or ()):
                return True
            return any(word in normalized for word in CHOICE_ESCAPE_WORDS)

        if fmt is AnswerFormat.SCALE:
            number = parse_number(normalized)
            if number is None:
                return False
            if question.scale_range is None:
                return True
            return question.scale_range.contains(number)

        return True

    def _is_short_form(self, normalized: str, question: QuestionNode) -> bool:
        """Short replies that fully express an answer in the question's format."""
        if not normalized:
            return False

        fmt = question.format

        if fmt is AnswerFormat.YES_NO:
            return bool(YES_NO_PATTERN.match(normalized))

        if fmt is AnswerFormat.SCALE:
            return parse_number(normalized) is not None

        if fmt.uses_options:
            return any(option.lower() == normalized for option in question.options or ())

        return False
