"""
Clarification and conversational prose registry

Defines the fixed prose the conversational wrapper emits: clarification
requests per reason, format hints, acknowledgments, welcome, completion and
canned replies for help/skip/back intents.

Format hints:
- Question hints are appended to a rendered question ("(Yes or No)")
- Clarification hints restate the allowed values or numeric bounds
- Hints are appended AFTER any rephrasing and must be kept verbatim, since
  answer parsing relies on the user seeing the allowed values
"""

from typing import Dict, Optional, Tuple

from backend.contracts import AnswerFormat, ClarificationReason, QuestionNode

# Clarification prose per reason; {question} is the original prompt
CLARIFICATION_TEXT: Dict[ClarificationReason, str] = {
    ClarificationReason.UNCLEAR: "I'm not sure I understood that. Could you clarify: {question}",
    ClarificationReason.INCOMPLETE: "Could you provide a bit more detail about: {question}",
    ClarificationReason.NEEDS_DETAIL: (
        "To help me better understand, could you elaborate on: {question}"
    ),
}

# Used for reasons without dedicated prose (e.g. contradictory)
DEFAULT_CLARIFICATION_TEXT = "Let me ask that again: {question}"

# Set-aside notice when the clarification cap is exceeded
SET_ASIDE_TEXT = "Let's set that question aside for now and move on."

ACKNOWLEDGMENTS: Tuple[str, ...] = (
    "Got it, thanks!",
    "Thank you for that information.",
    "I understand, thank you.",
    "Perfect, I have that.",
    "Great, noted!",
)

STANDARD_LABELS: Dict[str, str] = {
    "S1": "IFRS S1",
    "S2": "IFRS S2",
    "both": "IFRS S1 & S2",
}

MODE_LABELS: Dict[str, str] = {
    "quick-scan": "Quick Scan",
    "standard": "Standard Assessment",
    "deep-dive": "Deep Dive",
    "continuous-monitoring": "Continuous Monitoring",
}

WELCOME_TEXT = (
    "Welcome to your {standard} assessment! We'll be conducting a {mode} to help "
    "evaluate your organization's compliance readiness. I'll ask you questions in a "
    "conversational way, and you can answer naturally. Let's begin!"
)

COMPLETION_TEXT = (
    "Excellent work! You've completed the assessment. I've identified {count} "
    "{areas} that may need attention. Would you like me to provide a detailed "
    "summary and recommendations?"
)

EXIT_TEXT = "Assessment ended by user. Your answers so far have been kept."

HELP_REPLY = (
    "I'm here to help you complete your assessment. Feel free to ask me any "
    "questions about IFRS compliance, or just answer the questions I ask. "
    "Would you like to continue with the assessment?"
)
SKIP_REPLY = (
    "I understand you'd like to skip. Let me know if you'd like to continue with "
    "the next question, or we can discuss this further."
)
BACK_REPLY = (
    "I can help you review previous answers. Would you like to go back and "
    "revise a specific answer?"
)
DEFAULT_REPLY = (
    "I understand. Let's continue with the assessment. Would you like to answer "
    "the next question, or do you have any questions about what we've covered so far?"
)

# Maximum options listed in a question hint
MAX_HINT_OPTIONS = 3


def render_welcome(standard: str, mode: str) -> str:
    """Unknown standards fall back to 'IFRS <standard>', unknown modes to Continuous Monitoring."""
    standard_text = STANDARD_LABELS.get(standard, f"IFRS {standard}")
    mode_text = MODE_LABELS.get(mode, MODE_LABELS["continuous-monitoring"])
    return WELCOME_TEXT.format(standard=standard_text, mode=mode_text)


def render_completion(gap_count: int) -> str:
    areas = "area" if gap_count == 1 else "areas"
    return COMPLETION_TEXT.format(count=gap_count, areas=areas)


def acknowledgment_for(answered_count: int) -> str:
    """Deterministic rotation through ACKNOWLEDGMENTS."""
    return ACKNOWLEDGMENTS[answered_count % len(ACKNOWLEDGMENTS)]


def _format_number(value: float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def question_hint(question: QuestionNode) -> str:
    """
    Format hint appended to a rendered question.

    Examples:
        ' (Yes or No)'
        ' (Options: Board, Committee, Management...)'
        ' (Scale: 1-5)'
    """
    fmt = question.format

    if fmt is AnswerFormat.YES_NO:
        return " (Yes or No)"

    if fmt.uses_options and question.options:
        shown = ", ".join(question.options[:MAX_HINT_OPTIONS])
        more = "..." if len(question.options) > MAX_HINT_OPTIONS else ""
        return f" (Options: {shown}{more})"

    if fmt is AnswerFormat.SCALE and question.scale_range is not None:
        low = _format_number(question.scale_range.min)
        high = _format_number(question.scale_range.max)
        return f" (Scale: {low}-{high})"

    return ""


def clarification_hint(question: QuestionNode) -> str:
    """Format hint appended to clarification prose (full option list)."""
    fmt = question.format

    if fmt is AnswerFormat.YES_NO:
        return " (Please answer Yes or No)"

    if fmt.uses_options and question.options:
        return f" (Please choose from: {', '.join(question.options)})"

    if fmt is AnswerFormat.SCALE and question.scale_range is not None:
        low = _format_number(question.scale_range.min)
        high = _format_number(question.scale_range.max)
        return f" (Please answer with a number from {low} to {high})"

    return ""


def clarification_suggestions(question: QuestionNode) -> Optional[Tuple[str, ...]]:
    """Suggested replies: Yes/No for yes-no, first options for choice formats."""
    if question.format is AnswerFormat.YES_NO:
        return ("Yes", "No")

    if question.format.uses_options and question.options:
        return tuple(question.options[:MAX_HINT_OPTIONS])

    return None


def render_clarification(question: QuestionNode, reason: ClarificationReason) -> str:
    """
    Clarification prose: names the reason, restates the question, adds hints.

    Raises:
        ValueError: If reason is not a ClarificationReason value
    """
    reason = ClarificationReason(reason)
    template = CLARIFICATION_TEXT.get(reason, DEFAULT_CLARIFICATION_TEXT)
    return template.format(question=question.prompt) + clarification_hint(question)
