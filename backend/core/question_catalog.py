"""
Question Catalog - Immutable question graph for one standard/version

Responsibilities:
- Load question definitions from a catalog JSON file or a list of nodes
- Preserve catalog order (used as the final ranking tiebreak)
- Validate graph integrity on construction (fail fast)
- Expose read-only lookup by id and a content fingerprint

Design principles:
- Immutable: nodes are frozen, the index is a read-only mapping
- Snapshot-at-start: sessions record the fingerprint of the catalog they
  started against; a different catalog is a different fingerprint
- Fail fast: authoring bugs (unknown references, cycles) raise ValueError

Catalog file layout:
{
    "standard": "S1",
    "version": "2024.1",
    "questions": [ {question dict}, ... ]
}
"""

import hashlib
import json
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from backend.contracts import AnswerFormat, QuestionNode

logger = logging.getLogger(__name__)


class QuestionCatalog:
    """
    Ordered, immutable set of QuestionNode definitions.

    Shared read-only across sessions. Never a module-level global; the host
    constructs one and injects it into the Flow Engine.
    """

    def __init__(
        self,
        questions: Iterable[QuestionNode],
        standard: Optional[str] = None,
        version: Optional[str] = None
    ):
        """
        Build catalog from question nodes.

        Args:
            questions: Question nodes in catalog order
            standard: Standard selector this catalog covers (e.g. 'S1')
            version: Catalog version label

        Raises:
            ValueError: If validation fails
        """
        self._questions: Tuple[QuestionNode, ...] = tuple(questions)
        self.standard = standard
        self.version = version

        self._validate()

        self._index: Mapping[str, QuestionNode] = MappingProxyType(
            {q.id: q for q in self._questions}
        )
        self._order: Mapping[str, int] = MappingProxyType(
            {q.id: position for position, q in enumerate(self._questions)}
        )
        self.fingerprint = self._compute_fingerprint()

        logger.info(
            f"Question catalog loaded: {len(self._questions)} questions "
            f"(standard={standard}, version={version}, fingerprint={self.fingerprint})"
        )

    @classmethod
    def from_json(cls, catalog_path: str) -> "QuestionCatalog":
        """
        Load catalog from JSON file.

        Raises:
            FileNotFoundError: If catalog doesn't exist
            ValueError: If catalog is malformed or fails validation
        """
        path = Path(catalog_path)
        if not path.exists():
            raise FileNotFoundError(f"Catalog not found: {catalog_path}")

        with open(path, 'r') as f:
            data = json.load(f)

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict) -> "QuestionCatalog":
        if "questions" not in data:
            raise ValueError("Catalog validation failed:\n  - Missing 'questions' in catalog")

        nodes = []
        errors = []
        for i, raw in enumerate(data["questions"]):
            try:
                nodes.append(QuestionNode.from_dict(raw))
            except KeyError as e:
                errors.append(f"Question at index {i} missing required key {e}")
            except ValueError as e:
                errors.append(f"Question at index {i}: {e}")

        if errors:
            raise ValueError("Catalog validation failed:\n  - " + "\n  - ".join(errors))

        return cls(nodes, standard=data.get("standard"), version=data.get("version"))

    # =========================================================================
    # Read-only access
    # =========================================================================

    def __len__(self) -> int:
        return len(self._questions)

    def __iter__(self) -> Iterator[QuestionNode]:
        return iter(self._questions)

    def __contains__(self, question_id: str) -> bool:
        return question_id in self._index

    @property
    def questions(self) -> Tuple[QuestionNode, ...]:
        return self._questions

    def get(self, question_id: str) -> Optional[QuestionNode]:
        return self._index.get(question_id)

    def position(self, question_id: str) -> int:
        """Catalog position, used as a stable tiebreak."""
        return self._order[question_id]

    def categories(self) -> List[str]:
        """Distinct categories in first-seen catalog order."""
        seen: Dict[str, None] = {}
        for q in self._questions:
            seen.setdefault(q.category, None)
        return list(seen)

    def to_dict(self) -> dict:
        return {
            "standard": self.standard,
            "version": self.version,
            "questions": [q.to_dict() for q in self._questions],
        }

    # =========================================================================
    # Validation
    # =========================================================================

    def _validate(self):
        """
        Validate catalog structure.

        Checks:
        - Unique question ids
        - depends_on, skip and branch rules reference known ids
        - Branch targets exist
        - Choice formats declare options, scale formats declare valid bounds
        - No dependency cycles

        Raises:
            ValueError: If validation fails
        """
        errors = []
        known_ids = set()

        for i, question in enumerate(self._questions):
            if not question.id:
                errors.append(f"Question at index {i} has empty 'id'")
                continue
            if question.id in known_ids:
                errors.append(f"Duplicate question id '{question.id}'")
            known_ids.add(question.id)

        for question in self._questions:
            q_id = question.id

            for dep_id in question.depends_on:
                if dep_id == q_id:
                    errors.append(f"Question '{q_id}' depends on itself")
                elif dep_id not in known_ids:
                    errors.append(f"Question '{q_id}' depends on undefined question '{dep_id}'")

            for rule in question.skip_conditions:
                if rule.question_id not in known_ids:
                    errors.append(
                        f"Question '{q_id}' skip rule references undefined question "
                        f"'{rule.question_id}'"
                    )

            for rule in question.branch_conditions:
                if rule.question_id not in known_ids:
                    errors.append(
                        f"Question '{q_id}' branch rule references undefined question "
                        f"'{rule.question_id}'"
                    )
                if rule.target_question_id not in known_ids:
                    errors.append(
                        f"Question '{q_id}' branches to undefined question "
                        f"'{rule.target_question_id}'"
                    )

            if question.format.uses_options and not question.options:
                errors.append(f"Question '{q_id}' ({question.format.value}) has no options")

            if question.format is AnswerFormat.SCALE:
                if question.scale_range is None:
                    errors.append(f"Question '{q_id}' (scale) has no scale_range")
                elif question.scale_range.min > question.scale_range.max:
                    errors.append(
                        f"Question '{q_id}' scale_range min {question.scale_range.min} "
                        f"exceeds max {question.scale_range.max}"
                    )

        if not errors:
            cycle = self._find_dependency_cycle()
            if cycle:
                errors.append("Dependency cycle: " + " -> ".join(cycle))

        if errors:
            error_msg = "Catalog validation failed:\n  - " + "\n  - ".join(errors)
            raise ValueError(error_msg)

    def _find_dependency_cycle(self) -> Optional[List[str]]:
        """Depth-first search over depends_on edges; returns one cycle if any."""
        graph = {q.id: q.depends_on for q in self._questions}
        visiting = set()
        done = set()

        for q in self._questions:
            if q.id in done:
                continue

            # Explicit stack of (node, remaining dependencies)
            path: List[str] = [q.id]
            stack = [(q.id, iter(graph.get(q.id, ())))]
            visiting.add(q.id)

            while stack:
                node_id, deps = stack[-1]
                dep_id = next(deps, None)

                if dep_id is None:
                    stack.pop()
                    path.pop()
                    visiting.discard(node_id)
                    done.add(node_id)
                    continue

                if dep_id in done:
                    continue
                if dep_id in visiting:
                    start = path.index(dep_id)
                    return path[start:] + [dep_id]

                visiting.add(dep_id)
                path.append(dep_id)
                stack.append((dep_id, iter(graph.get(dep_id, ()))))

        return None

    def _compute_fingerprint(self) -> str:
        payload = json.dumps(self.to_dict(), sort_keys=True, default=str)
        return hashlib.sha256(payload.encode('utf-8')).hexdigest()[:16]
