"""
Intent matching for messages received outside an answer.

Intents:
- exit: exact 'quit' / 'exit' / 'stop' (checked before anything else)
- continuation: message starts with next / continue / ready / what's next /
  let's continue
- help / skip / back: substring match, used only for canned replies
"""

import re
from enum import Enum

from backend.utils.clarification_templates import (
    BACK_REPLY,
    DEFAULT_REPLY,
    HELP_REPLY,
    SKIP_REPLY,
)

# Commands that end the assessment early
EXIT_COMMANDS = {"quit", "exit", "stop"}

CONTINUATION_PATTERNS = [
    re.compile(r"^next", re.IGNORECASE),
    re.compile(r"^continue", re.IGNORECASE),
    re.compile(r"^what'?s next", re.IGNORECASE),
    re.compile(r"^let'?s continue", re.IGNORECASE),
    re.compile(r"^ready", re.IGNORECASE),
]


class Intent(str, Enum):
    EXIT = "exit"
    CONTINUE = "continue"
    HELP = "help"
    SKIP = "skip"
    BACK = "back"
    OTHER = "other"


def is_exit_command(text: str) -> bool:
    return text.strip().lower() in EXIT_COMMANDS


def is_continuation(text: str) -> bool:
    stripped = text.strip()
    return any(pattern.match(stripped) for pattern in CONTINUATION_PATTERNS)


def classify_intent(text: str) -> Intent:
    """Classify a message that is not an answer to a pending question."""
    if is_exit_command(text):
        return Intent.EXIT
    if is_continuation(text):
        return Intent.CONTINUE

    lowered = text.lower()
    if "help" in lowered or "explain" in lowered:
        return Intent.HELP
    if "skip" in lowered:
        return Intent.SKIP
    if "back" in lowered or "previous" in lowered:
        return Intent.BACK
    return Intent.OTHER


CANNED_REPLIES = {
    Intent.HELP: HELP_REPLY,
    Intent.SKIP: SKIP_REPLY,
    Intent.BACK: BACK_REPLY,
    Intent.OTHER: DEFAULT_REPLY,
}


def canned_reply(intent: Intent) -> str:
    return CANNED_REPLIES.get(intent, DEFAULT_REPLY)
