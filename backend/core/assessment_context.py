"""
Assessment Context - The session's only mutable unit of state

Responsibilities:
- Hold per-session assessment state (answers, gaps, progress, phase)
- Serialize to a JSON-safe snapshot and back (lossless)
- Provide cheap copies so the Flow Engine can return new values

Design principles:
- Treated as a value: engine operations take a context and return a new one
- answered_questions is derived from the answers map, so a question id is
  answered if and only if it has an answer entry
- No business logic (Flow Engine owns progress, phase and gap rules)
- Sets serialized as sorted lists, timestamps as ISO 8601 UTC
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, List, Optional, Set

from backend.contracts import AnswerData, Gap, Phase


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AssessmentContext:
    """
    Per-session assessment state.

    Exactly one context exists per active session. Callers persist the
    value returned by each engine call and supply it back on the next call.

    Attributes:
        session_id: Session identifier
        user_id: Owner of the session
        standard: Standard selector (e.g. 'S1', 'S2', 'both')
        mode: Assessment mode (e.g. 'quick-scan', 'standard')
        phase: Current phase
        answers: question id -> AnswerData
        gaps: Detected gaps (one per category)
        progress: 0-100, derived from answered / catalog size
        started_at / last_updated: UTC timestamps
        current_category: Optional category focus used by ranking
        skipped_questions: Questions set aside after repeated unclear replies
        catalog_fingerprint: Fingerprint of the catalog the session started on
    """
    session_id: str
    user_id: str
    standard: str
    mode: str
    phase: Phase = Phase.INITIATION
    answers: Dict[str, AnswerData] = field(default_factory=dict)
    gaps: List[Gap] = field(default_factory=list)
    progress: int = 0
    started_at: datetime = field(default_factory=utc_now)
    last_updated: datetime = field(default_factory=utc_now)
    current_category: Optional[str] = None
    skipped_questions: Set[str] = field(default_factory=set)
    catalog_fingerprint: Optional[str] = None

    @property
    def answered_questions(self) -> FrozenSet[str]:
        return frozenset(self.answers)

    @property
    def answered_count(self) -> int:
        return len(self.answers)

    def get_answer(self, question_id: str) -> Optional[AnswerData]:
        return self.answers.get(question_id)

    def copy(self, **changes) -> "AssessmentContext":
        """
        Return a new context with fresh containers.

        AnswerData and Gap are frozen, so copying the containers is enough
        to keep the original value untouched.
        """
        copied = replace(
            self,
            answers=dict(self.answers),
            gaps=list(self.gaps),
            skipped_questions=set(self.skipped_questions),
        )
        if changes:
            copied = replace(copied, **changes)
        return copied

    # ========================
    # Serialization
    # ========================

    def snapshot(self) -> Dict[str, Any]:
        """
        Export canonical, JSON-safe state (lossless).

        Returns:
            dict: Snapshot suitable for json.dump and from_snapshot()
        """
        return {
            'session_id': self.session_id,
            'user_id': self.user_id,
            'standard': self.standard,
            'mode': self.mode,
            'phase': self.phase.value,
            'answered_questions': sorted(self.answers),
            'answers': {q_id: a.to_dict() for q_id, a in self.answers.items()},
            'gaps': [g.to_dict() for g in self.gaps],
            'progress': self.progress,
            'started_at': self.started_at.isoformat(),
            'last_updated': self.last_updated.isoformat(),
            'current_category': self.current_category,
            'skipped_questions': sorted(self.skipped_questions),
            'catalog_fingerprint': self.catalog_fingerprint,
        }

    @classmethod
    def from_snapshot(cls, snapshot: Dict[str, Any]) -> "AssessmentContext":
        """
        Rehydrate context from snapshot().

        Raises:
            KeyError: If a required key is missing
            ValueError: If answered_questions disagrees with answers
        """
        answers = {
            q_id: AnswerData.from_dict(data)
            for q_id, data in snapshot.get('answers', {}).items()
        }

        listed = set(snapshot.get('answered_questions', answers.keys()))
        if listed != set(answers):
            raise ValueError(
                f"Snapshot answered_questions {sorted(listed)} does not match "
                f"answers {sorted(answers)}"
            )

        return cls(
            session_id=snapshot['session_id'],
            user_id=snapshot['user_id'],
            standard=snapshot['standard'],
            mode=snapshot['mode'],
            phase=Phase(snapshot.get('phase', Phase.INITIATION.value)),
            answers=answers,
            gaps=[Gap.from_dict(g) for g in snapshot.get('gaps', [])],
            progress=snapshot.get('progress', 0),
            started_at=datetime.fromisoformat(snapshot['started_at']),
            last_updated=datetime.fromisoformat(snapshot['last_updated']),
            current_category=snapshot.get('current_category'),
            skipped_questions=set(snapshot.get('skipped_questions', [])),
            catalog_fingerprint=snapshot.get('catalog_fingerprint'),
        )
