"""
Console Test Harness for ConversationalAssessment (Functional Core)

Simple console loop driving handle() with commands, state held in this loop.

Usage:
    python main.py [catalog_path] [standard] [mode]
"""

import logging
import sys

from backend.commands import EndAssessment, StartAssessment, UserMessage
from backend.core.answer_validator import AnswerValidator
from backend.core.context_selector import ContextAwareSelector
from backend.core.conversation_manager import ConversationalAssessment
from backend.core.flow_engine import AssessmentFlowEngine
from backend.core.progress_projection import project_progress
from backend.core.question_catalog import QuestionCatalog
from backend.results import IllegalCommand
from backend.utils.helpers import generate_session_id

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def print_separator(char="=", length=60):
    """Print a separator line"""
    print(char * length)


def print_debug_info(turn_result):
    """Print debug information from TurnResult"""
    print("-" * 60)
    for key, value in turn_result.debug.items():
        print(f"{key}: {value}")
    if turn_result.clarification and turn_result.clarification.suggestions:
        print(f"suggestions: {', '.join(turn_result.clarification.suggestions)}")
    print("-" * 60)


def main(argv=None):
    """Run console assessment"""
    argv = sys.argv[1:] if argv is None else argv
    catalog_path = argv[0] if len(argv) > 0 else "data/sample_catalog.json"
    standard = argv[1] if len(argv) > 1 else "both"
    mode = argv[2] if len(argv) > 2 else "standard"

    print_separator()
    print("CONVERSATIONAL ASSESSMENT - CONSOLE TEST")
    print_separator()

    try:
        catalog = QuestionCatalog.from_json(catalog_path)
        engine = AssessmentFlowEngine(catalog)
        assessment = ConversationalAssessment(
            engine=engine,
            selector=ContextAwareSelector(engine),
            validator=AnswerValidator()
        )
    except (FileNotFoundError, ValueError) as e:
        print(f"\nFailed to initialize: {e}")
        return 1

    result = assessment.handle(StartAssessment(
        session_id=generate_session_id(short=True),
        user_id="console",
        standard=standard,
        mode=mode
    ))
    state = result.state

    print(f"\nSystem: {result.response}\n")
    print("Type 'ready' to begin, 'quit', 'exit', or 'stop' to end early\n")

    while True:
        try:
            user_input = input("> ").strip()
        except (KeyboardInterrupt, EOFError):
            print("\n\nAssessment interrupted by user")
            break

        if not user_input:
            print("Please enter a response.\n")
            continue

        result = assessment.handle(UserMessage(text=user_input, state=state))
        if isinstance(result, IllegalCommand):
            print(f"\nRejected: {result.reason}\n")
            break

        state = result.state
        print(f"\nSystem: {result.response}\n")

        progress = project_progress(state.context, catalog)
        print(f"[Turn {state.turn_count}, {progress.answered_count}/{progress.total_questions} "
              f"answered, mode={state.mode.value}]")

        if result.debug:
            print_debug_info(result)

        if result.complete:
            break

    report = assessment.handle(EndAssessment(state=state))

    print_separator()
    print("ASSESSMENT COMPLETE" if not report.ended_early else "ASSESSMENT ENDED EARLY")
    print_separator()
    print(f"  - Session ID: {report.session_id}")
    print(f"  - Progress: {report.progress}%")
    print(f"  - Answered: {report.answered_count}/{report.total_questions}")
    print(f"  - Gaps: {len(report.gaps)}")
    for gap in report.gaps:
        print(f"      {gap.category} ({gap.severity.value}): {', '.join(gap.related_questions)}")
    if report.skipped_questions:
        print(f"  - Set aside: {', '.join(report.skipped_questions)}")
    print_separator()
    return 0


if __name__ == '__main__':
    sys.exit(main())
