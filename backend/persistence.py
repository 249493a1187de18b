"""
Turn-based assessment session persistence.

Append-only JSON files for audit trail and restart resilience.
"""

import json
import logging
from pathlib import Path
from typing import Optional

from backend.core.conversation_state import ConversationState
from backend.results import AssessmentReport
from backend.utils.helpers import generate_report_filename, turn_filename

logger = logging.getLogger(__name__)


class SessionPersistence:
    """
    Manages turn-by-turn JSON persistence.

    Layout:
        outputs/sessions/SESSION-abc123/
            SESSION-abc123_TURN-000.json
            SESSION-abc123_TURN-001.json
            ...
            assessment_20251126_153045_a3f7e2b9.json   (final report)

    Design:
    - Append-only (never overwrite)
    - One file per turn
    - Enables time-travel debugging
    - Restart-resilient
    """

    def __init__(self, base_dir: str = "outputs/sessions"):
        """
        Initialize persistence layer.

        Args:
            base_dir: Base directory for all sessions
        """
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"SessionPersistence initialized: {self.base_dir}")

    def _session_dir(self, session_id: str) -> Path:
        return self.base_dir / f"SESSION-{session_id}"

    def save_turn(self, state: ConversationState) -> str:
        """
        Save turn to append-only file.

        Args:
            state: Conversation state after the turn

        Returns:
            str: Absolute path to saved file

        Raises:
            FileExistsError: If turn file already exists (double-submit)
        """
        session_dir = self._session_dir(state.session_id)
        session_dir.mkdir(exist_ok=True)

        filename = turn_filename(state.session_id, state.turn_count)
        filepath = session_dir / filename

        if filepath.exists():
            raise FileExistsError(
                f"Turn file already exists: {filepath}. "
                f"This indicates a double-submit or turn-count error."
            )

        with open(filepath, 'w') as f:
            json.dump(state.snapshot(), f, indent=2, ensure_ascii=False)

        abs_path = str(filepath.absolute())
        logger.info(f"Saved turn {state.turn_count} for {state.session_id}: {filename}")

        return abs_path

    def load_latest_turn(self, session_id: str) -> Optional[ConversationState]:
        """
        Load latest turn for a session.

        Returns:
            ConversationState if the session exists, None otherwise
        """
        session_dir = self._session_dir(session_id)

        if not session_dir.exists():
            logger.warning(f"Session directory not found: {session_id}")
            return None

        turn_files = list(session_dir.glob(f"SESSION-{session_id}_TURN-*.json"))

        if not turn_files:
            logger.warning(f"No turn files found for {session_id}")
            return None

        # Zero-padded turn numbers sort lexically
        latest_file = max(turn_files, key=lambda p: p.name)

        logger.info(f"Loading latest turn for {session_id}: {latest_file.name}")

        with open(latest_file, 'r') as f:
            data = json.load(f)

        return ConversationState.from_snapshot(data)

    def save_report(self, report: AssessmentReport) -> str:
        """
        Save the final report next to the session's turn files.

        Returns:
            str: Absolute path to saved file
        """
        session_dir = self._session_dir(report.session_id)
        session_dir.mkdir(exist_ok=True)

        filepath = session_dir / generate_report_filename(prefix="assessment", extension="json")
        with open(filepath, 'w') as f:
            json.dump(report.to_dict(), f, indent=2, ensure_ascii=False)

        logger.info(f"Saved final report for {report.session_id}: {filepath.name}")
        return str(filepath.absolute())

    def session_exists(self, session_id: str) -> bool:
        session_dir = self._session_dir(session_id)
        return session_dir.exists() and any(session_dir.glob("SESSION-*_TURN-*.json"))

    def get_turn_count(self, session_id: str) -> int:
        """Number of saved turn files (0 if the session doesn't exist)."""
        session_dir = self._session_dir(session_id)

        if not session_dir.exists():
            return 0

        return len(list(session_dir.glob(f"SESSION-{session_id}_TURN-*.json")))
