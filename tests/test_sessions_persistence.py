"""
Tests for turn persistence and the session registry.
"""

import json
import threading

import pytest

from backend.contracts import AnswerFormat, Priority, QuestionNode
from backend.core.answer_validator import AnswerValidator
from backend.core.context_selector import ContextAwareSelector
from backend.core.conversation_manager import ConversationalAssessment
from backend.core.flow_engine import AssessmentFlowEngine
from backend.core.question_catalog import QuestionCatalog
from backend.persistence import SessionPersistence
from backend.results import IllegalCommand
from backend.sessions import SessionExistsError, SessionNotFoundError, SessionRegistry
from backend.utils.conversation_modes import ConversationMode
from backend.utils.helpers import generate_session_id, turn_filename


@pytest.fixture
def assessment():
    catalog = QuestionCatalog([
        QuestionNode(id="q1", prompt="Do you report emissions", category="metrics",
                     priority=Priority.HIGH, format=AnswerFormat.YES_NO),
        QuestionNode(id="q2", prompt="Describe your targets.", category="metrics",
                     depends_on=("q1",)),
    ])
    engine = AssessmentFlowEngine(catalog)
    return ConversationalAssessment(engine, ContextAwareSelector(engine), AnswerValidator())


@pytest.fixture
def persistence(tmp_path):
    return SessionPersistence(str(tmp_path / "sessions"))


@pytest.fixture
def registry(assessment, persistence):
    return SessionRegistry(assessment, persistence=persistence)


# ========================
# Helpers
# ========================

def test_turn_filename_zero_padded():
    assert turn_filename("abc", 4) == "SESSION-abc_TURN-004.json"


def test_session_id_lengths():
    assert len(generate_session_id()) == 8
    assert len(generate_session_id(short=False)) == 32


# ========================
# SessionPersistence
# ========================

def test_save_and_load_latest_turn(assessment, persistence):
    state = assessment.start("s1", "u1", "S1", "standard")
    persistence.save_turn(state)
    state = assessment.process_message(state, "ready").state
    path = persistence.save_turn(state)

    with open(path) as f:
        assert json.load(f)['pending_question_id'] == "q1"

    loaded = persistence.load_latest_turn("s1")
    assert loaded.turn_count == 1
    assert loaded.mode == ConversationMode.MODE_AWAITING_ANSWER
    assert persistence.get_turn_count("s1") == 2
    assert persistence.session_exists("s1")


def test_double_submit_rejected(assessment, persistence):
    state = assessment.start("s1", "u1", "S1", "standard")
    persistence.save_turn(state)
    with pytest.raises(FileExistsError):
        persistence.save_turn(state)


def test_missing_session(persistence):
    assert persistence.load_latest_turn("nope") is None
    assert persistence.get_turn_count("nope") == 0
    assert not persistence.session_exists("nope")


def test_save_report(assessment, persistence):
    state = assessment.start("s1", "u1", "S1", "standard")
    path = persistence.save_report(assessment.end(state))

    with open(path) as f:
        data = json.load(f)
    assert data['session_id'] == "s1"
    assert data['ended_early'] is True


# ========================
# SessionRegistry
# ========================

def test_full_session_lifecycle(registry, persistence):
    started = registry.start_session("u1", "S1", "standard", session_id="s1")
    assert "Welcome" in started.response
    assert "s1" in registry

    registry.process_message("s1", "ready")
    registry.process_message("s1", "yes")
    result = registry.process_message("s1", "Halve emissions by 2030")

    assert result.complete
    assert registry.progress("s1").percentage == 100
    assert persistence.get_turn_count("s1") == 4

    report = registry.end_session("s1")
    assert not report.ended_early
    assert "s1" not in registry
    assert registry.active_sessions() == []


def test_generated_session_id(registry):
    result = registry.start_session("u1", "S1", "standard")
    assert registry.active_sessions() == [result.state.session_id]


def test_duplicate_session_rejected(registry):
    registry.start_session("u1", "S1", "standard", session_id="s1")
    with pytest.raises(SessionExistsError):
        registry.start_session("u2", "S1", "standard", session_id="s1")


def test_unknown_session(registry):
    with pytest.raises(SessionNotFoundError):
        registry.process_message("ghost", "ready")
    with pytest.raises(SessionNotFoundError):
        registry.end_session("ghost")
    with pytest.raises(SessionNotFoundError):
        registry.progress("ghost")


def test_message_after_exit_is_illegal(registry):
    registry.start_session("u1", "S1", "standard", session_id="s1")
    registry.process_message("s1", "quit")

    result = registry.process_message("s1", "ready")
    assert isinstance(result, IllegalCommand)


def test_resume_from_disk(assessment, persistence, registry):
    registry.start_session("u1", "S1", "standard", session_id="s1")
    registry.process_message("s1", "ready")

    restarted = SessionRegistry(assessment, persistence=persistence)
    state = restarted.resume_session("s1")

    assert state.pending_question_id == "q1"
    result = restarted.process_message("s1", "no")
    assert result.state.context.get_answer("q1").value is False
    assert result.question.id == "q2"


def test_resume_requires_persistence(assessment):
    with pytest.raises(SessionNotFoundError):
        SessionRegistry(assessment).resume_session("s1")


def test_resume_active_session_rejected(registry):
    registry.start_session("u1", "S1", "standard", session_id="s1")
    with pytest.raises(SessionExistsError):
        registry.resume_session("s1")


def test_parallel_sessions_are_isolated(assessment):
    registry = SessionRegistry(assessment)
    ids = [f"s{i}" for i in range(8)]
    for session_id in ids:
        registry.start_session("u", "S1", "standard", session_id=session_id)

    def run(session_id):
        registry.process_message(session_id, "ready")
        registry.process_message(session_id, "yes")

    threads = [threading.Thread(target=run, args=(session_id,)) for session_id in ids]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    for session_id in ids:
        state = registry.get_state(session_id)
        assert state.context.answered_count == 1
        assert state.pending_question_id == "q2"
        assert state.turn_count == 2


def test_concurrent_duplicate_start_rejected(assessment, monkeypatch):
    registry = SessionRegistry(assessment)
    entered = threading.Event()
    release = threading.Event()
    handle = assessment.handle

    def slow_handle(command):
        entered.set()
        release.wait(timeout=2)
        return handle(command)

    monkeypatch.setattr(assessment, "handle", slow_handle)

    first = threading.Thread(
        target=registry.start_session, args=("u1", "S1", "standard"), kwargs={"session_id": "dup"}
    )
    first.start()
    assert entered.wait(timeout=2)

    try:
        with pytest.raises(SessionExistsError):
            registry.start_session("u2", "S1", "standard", session_id="dup")
    finally:
        release.set()
        first.join()

    assert registry.get_state("dup").context.user_id == "u1"
    assert registry.active_sessions() == ["dup"]


def test_failed_start_releases_id(assessment, monkeypatch):
    registry = SessionRegistry(assessment)
    handle = assessment.handle

    def failing_handle(command):
        raise RuntimeError("boom")

    monkeypatch.setattr(assessment, "handle", failing_handle)
    with pytest.raises(RuntimeError):
        registry.start_session("u1", "S1", "standard", session_id="s1")

    monkeypatch.setattr(assessment, "handle", handle)
    result = registry.start_session("u1", "S1", "standard", session_id="s1")
    assert result.state.session_id == "s1"


def test_registry_requires_assessment():
    with pytest.raises(TypeError):
        SessionRegistry(object())
