"""
Flask Web Application for the Conversational Assessment System

Thin HTTP layer over SessionRegistry. All assessment logic lives in backend/.

Environment:
    ASSESSMENT_CATALOG_PATH   catalog JSON (default data/sample_catalog.json)
    ASSESSMENT_PERSIST_DIR    when set, every turn is persisted there
    ASSESSMENT_USE_LLM        '1' to rephrase questions with a HuggingFace model
    ASSESSMENT_LLM_MODEL      model id for the phraser
"""

import logging
import os

from flask import Flask, jsonify, request

from backend.core.answer_validator import AnswerValidator
from backend.core.context_selector import ContextAwareSelector
from backend.core.conversation_manager import ConversationalAssessment
from backend.core.flow_engine import AssessmentFlowEngine
from backend.core.question_catalog import QuestionCatalog
from backend.persistence import SessionPersistence
from backend.results import IllegalCommand
from backend.sessions import SessionExistsError, SessionNotFoundError, SessionRegistry

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

DEFAULT_CATALOG_PATH = "data/sample_catalog.json"

# Initialize Flask app
app = Flask(__name__)

# Built once at startup (or injected by tests via init_registry)
registry = None


def build_registry_from_env() -> SessionRegistry:
    """Construct catalog, engine, selector, wrapper and registry from environment."""
    catalog_path = os.environ.get("ASSESSMENT_CATALOG_PATH", DEFAULT_CATALOG_PATH)
    catalog = QuestionCatalog.from_json(catalog_path)

    engine = AssessmentFlowEngine(catalog)
    selector = ContextAwareSelector(engine)

    phraser = None
    if os.environ.get("ASSESSMENT_USE_LLM") == "1":
        # Heavy import; only hosts that opt in need torch/transformers
        from backend.utils.hf_client import DEFAULT_MODEL, HuggingFaceClient
        from backend.utils.question_phraser import QuestionPhraser

        model_name = os.environ.get("ASSESSMENT_LLM_MODEL", DEFAULT_MODEL)
        logger.info(f"Initializing HuggingFace phraser ({model_name})...")
        phraser = QuestionPhraser(HuggingFaceClient(model_name=model_name))

    assessment = ConversationalAssessment(engine, selector, AnswerValidator(), phraser=phraser)

    persistence = None
    persist_dir = os.environ.get("ASSESSMENT_PERSIST_DIR")
    if persist_dir:
        persistence = SessionPersistence(persist_dir)

    return SessionRegistry(assessment, persistence=persistence)


def init_registry(session_registry: SessionRegistry = None) -> SessionRegistry:
    """Install the registry used by the routes (built from environment if omitted)."""
    global registry
    registry = session_registry if session_registry is not None else build_registry_from_env()
    return registry


def get_registry() -> SessionRegistry:
    if registry is None:
        return init_registry()
    return registry


def _turn_payload(result) -> dict:
    state = result.state
    return {
        'success': True,
        'session_id': state.session_id,
        'response': result.response,
        'mode': state.mode.value,
        'question': result.question.to_dict() if result.question else None,
        'clarification': result.clarification.to_dict() if result.clarification else None,
        'progress': state.context.progress,
        'complete': result.complete,
    }


def _illegal(result: IllegalCommand):
    return jsonify({
        'success': False,
        'error': result.reason,
        'command': result.command_type
    }), 409


def _not_found(error: KeyError):
    return jsonify({'success': False, 'error': str(error.args[0]) if error.args else 'Not found'}), 404


@app.route('/api/sessions', methods=['POST'])
def start_session():
    """Start new assessment conversation"""
    data = request.get_json(silent=True) or {}

    missing = [key for key in ('user_id', 'standard', 'mode') if not data.get(key)]
    if missing:
        return jsonify({
            'success': False,
            'error': f"Missing required fields: {', '.join(missing)}"
        }), 400

    try:
        result = get_registry().start_session(
            user_id=data['user_id'],
            standard=data['standard'],
            mode=data['mode'],
            session_id=data.get('session_id'),
            current_category=data.get('current_category')
        )
    except SessionExistsError as e:
        return jsonify({'success': False, 'error': str(e)}), 409
    except Exception as e:
        logger.error(f"Error starting session: {e}")
        return jsonify({'success': False, 'error': str(e)}), 500

    if isinstance(result, IllegalCommand):
        return _illegal(result)

    return jsonify(_turn_payload(result)), 201


@app.route('/api/sessions/<session_id>/messages', methods=['POST'])
def post_message(session_id):
    """Process one user message"""
    data = request.get_json(silent=True) or {}
    message = data.get('message')

    if not isinstance(message, str):
        return jsonify({'success': False, 'error': "Field 'message' must be a string"}), 400

    try:
        result = get_registry().process_message(session_id, message)
    except SessionNotFoundError as e:
        return _not_found(e)
    except Exception as e:
        logger.error(f"Error processing message for {session_id}: {e}")
        return jsonify({'success': False, 'error': str(e)}), 500

    if isinstance(result, IllegalCommand):
        return _illegal(result)

    return jsonify(_turn_payload(result))


@app.route('/api/sessions/<session_id>/progress', methods=['GET'])
def get_progress(session_id):
    """Progress projection for a session"""
    try:
        report = get_registry().progress(session_id)
    except SessionNotFoundError as e:
        return _not_found(e)

    return jsonify({'success': True, **report.to_dict()})


@app.route('/api/sessions/<session_id>', methods=['DELETE'])
def end_session(session_id):
    """End session and return the final report"""
    try:
        report = get_registry().end_session(session_id)
    except SessionNotFoundError as e:
        return _not_found(e)
    except Exception as e:
        logger.error(f"Error ending session {session_id}: {e}")
        return jsonify({'success': False, 'error': str(e)}), 500

    return jsonify({'success': True, **report.to_dict()})


if __name__ == '__main__':
    init_registry()

    print("\n" + "=" * 60)
    print("CONVERSATIONAL ASSESSMENT - WEB API")
    print("=" * 60)
    print("\nServer starting on http://localhost:5000")
    print("\nPress Ctrl+C to stop the server")
    print("=" * 60 + "\n")

    app.run(debug=False, host='0.0.0.0', port=5000)
