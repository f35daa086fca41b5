"""
Integration tests for POST /api/evaluate-writing.

Tests:
- Input validation (400)
- Rate limiting per client IP (429 + Retry-After)
- Tier results through the HTTP layer
- Superuser metadata gating (database flag and override)
"""

import sys
import os
import pytest
from unittest.mock import MagicMock

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app import create_app
from models import db
from models.study_code import StudyCode
from services.answer_evaluation_service import AnswerEvaluationService
from services.llm_models.evaluation_models import Corrections, EvaluationResult
from services.rate_limiter import RateLimiter
from services.semantic_evaluation_service import (
    SAFE_DEFAULT_FEEDBACK,
    SemanticEvaluationClient,
    SemanticJudgment
)

URL = '/api/evaluate-writing'


@pytest.fixture(scope='function')
def app():
    """Create an app with a fake LLM judge and a fresh database"""
    app = create_app('testing')
    app.config['EVALUATE_RATE_LIMIT_MAX_REQUESTS'] = 15

    semantic_client = MagicMock(spec=SemanticEvaluationClient)
    semantic_client.evaluate.return_value = SemanticJudgment(
        result=EvaluationResult(
            is_correct=True,
            score=90,
            has_correct_accents=True,
            feedback='Excellent answer!',
            corrections=Corrections(),
        ),
        confidence=95,
        model_used='mistral-small-latest',
    )
    app.extensions['answer_evaluation_service'] = AnswerEvaluationService.from_config(
        app.config, semantic_client=semantic_client
    )
    app.extensions['test_semantic_client'] = semantic_client

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def superuser_code(app):
    code = StudyCode(code='happy-panda-42', is_superuser=True)
    student = StudyCode(code='quiet-otter-7', is_superuser=False)
    db.session.add_all([code, student])
    db.session.commit()
    return {'superuser': code.id, 'student': student.id}


def _payload(**overrides):
    payload = {
        'question': 'Translate: Hello',
        'userAnswer': 'bonjour',
        'correctAnswer': 'Bonjour',
        'questionType': 'translation',
        'difficulty': 'beginner',
    }
    payload.update(overrides)
    return payload


# ============================================================================
# VALIDATION
# ============================================================================

def test_missing_user_answer_returns_400(client):
    payload = _payload()
    del payload['userAnswer']

    response = client.post(URL, json=payload)

    assert response.status_code == 400
    assert 'Missing required fields' in response.get_json()['error']


def test_missing_question_returns_400(client):
    response = client.post(URL, json=_payload(question=''))

    assert response.status_code == 400


def test_non_json_body_returns_400(client):
    response = client.post(URL, data='not json', content_type='text/plain')

    assert response.status_code == 400
    assert response.get_json()['error'] == 'No JSON data provided'


def test_invalid_variations_type_returns_400(client):
    response = client.post(URL, json=_payload(acceptableVariations='Salut'))

    assert response.status_code == 400
    assert 'acceptableVariations' in response.get_json()['error']


# ============================================================================
# EVALUATION
# ============================================================================

def test_exact_match_response(client):
    response = client.post(URL, json=_payload())

    assert response.status_code == 200
    data = response.get_json()
    assert data['isCorrect'] is True
    assert data['score'] == 98
    assert data['hasCorrectAccents'] is True
    assert data['corrections']['accents'] == ['La réponse correcte est: "Bonjour"']
    assert 'metadata' not in data
    assert response.headers['X-RateLimit-Remaining'] == '14'


def test_empty_answer_after_trim(client):
    response = client.post(URL, json=_payload(userAnswer=' x '))

    assert response.status_code == 200
    assert response.get_json()['score'] == 0


def test_open_ended_uses_semantic(client, app):
    response = client.post(URL, json=_payload(
        question='Describe your weekend',
        userAnswer="Je suis allé au parc avec mes amis.",
        correctAnswer=None,
        questionType='open_ended',
    ))

    assert response.status_code == 200
    assert response.get_json()['score'] == 90
    app.extensions['test_semantic_client'].evaluate.assert_called_once()


def test_semantic_failure_returns_safe_default(client, app):
    failing_provider = MagicMock()
    failing_provider.create_chat_completion.side_effect = ConnectionError("network down")
    app.extensions['answer_evaluation_service'] = AnswerEvaluationService.from_config(
        app.config,
        semantic_client=SemanticEvaluationClient(provider_factory=lambda name: failing_provider),
    )

    response = client.post(URL, json=_payload(userAnswer='je ne sais pas', correctAnswer="j'ai faim"))

    assert response.status_code == 200
    data = response.get_json()
    assert data['isCorrect'] is False
    assert data['score'] == 50
    assert data['feedback'] == SAFE_DEFAULT_FEEDBACK


def test_unexpected_error_returns_500(client, app):
    broken = MagicMock()
    broken.evaluate.side_effect = RuntimeError("boom")
    app.extensions['answer_evaluation_service'] = broken

    response = client.post(URL, json=_payload())

    assert response.status_code == 500
    assert response.get_json()['error'] == 'Failed to evaluate answer'


# ============================================================================
# METADATA GATING
# ============================================================================

def test_superuser_study_code_gets_metadata(client, superuser_code):
    response = client.post(URL, json=_payload(studyCodeId=superuser_code['superuser']))

    metadata = response.get_json()['metadata']
    assert metadata['evaluationTier'] == 'exact_match'
    assert metadata['difficulty'] == 'beginner'
    assert metadata['usedSemanticApi'] is False


def test_regular_study_code_gets_no_metadata(client, superuser_code):
    response = client.post(URL, json=_payload(studyCodeId=superuser_code['student']))

    assert 'metadata' not in response.get_json()


def test_unknown_study_code_gets_no_metadata(client):
    response = client.post(URL, json=_payload(studyCodeId='does-not-exist'))

    assert response.status_code == 200
    assert 'metadata' not in response.get_json()


def test_override_false_hides_metadata_for_superuser(client, superuser_code):
    response = client.post(URL, json=_payload(
        studyCodeId=superuser_code['superuser'], superuserOverride=False
    ))

    assert 'metadata' not in response.get_json()


def test_override_true_ignored_unless_allowed(client, app):
    app.config['ALLOW_SUPERUSER_OVERRIDE'] = False
    response = client.post(URL, json=_payload(superuserOverride=True))
    assert 'metadata' not in response.get_json()

    app.config['ALLOW_SUPERUSER_OVERRIDE'] = True
    response = client.post(URL, json=_payload(superuserOverride=True))
    assert response.get_json()['metadata']['evaluationTier'] == 'exact_match'


# ============================================================================
# RATE LIMITING
# ============================================================================

def test_rate_limit_returns_429_with_retry_after(client, app):
    app.config['EVALUATE_RATE_LIMIT_MAX_REQUESTS'] = 2
    app.extensions['rate_limiter'] = RateLimiter()

    assert client.post(URL, json=_payload()).status_code == 200
    assert client.post(URL, json=_payload()).status_code == 200
    response = client.post(URL, json=_payload())

    assert response.status_code == 429
    assert 1 <= int(response.headers['Retry-After']) <= 60
    assert response.headers['X-RateLimit-Remaining'] == '0'


def test_rate_limit_applies_before_validation(client, app):
    app.config['EVALUATE_RATE_LIMIT_MAX_REQUESTS'] = 1
    app.extensions['rate_limiter'] = RateLimiter()

    assert client.post(URL, json={}).status_code == 400
    assert client.post(URL, json={}).status_code == 429


def test_rate_limit_is_per_forwarded_ip(client, app):
    app.config['EVALUATE_RATE_LIMIT_MAX_REQUESTS'] = 1
    app.extensions['rate_limiter'] = RateLimiter()

    first = client.post(URL, json=_payload(), headers={'X-Forwarded-For': '203.0.113.1'})
    second = client.post(URL, json=_payload(), headers={'X-Forwarded-For': '203.0.113.2'})
    repeat = client.post(URL, json=_payload(), headers={'X-Forwarded-For': '203.0.113.1'})

    assert first.status_code == 200
    assert second.status_code == 200
    assert repeat.status_code == 429


# ============================================================================
# APP ROUTES
# ============================================================================

def test_health_check(client):
    response = client.get('/health')

    assert response.status_code == 200
    assert response.get_json()['status'] == 'healthy'


def test_null_optional_fields_are_accepted(client, app):
    app.config['ALLOW_SUPERUSER_OVERRIDE'] = True

    response = client.post(URL, json=_payload(questionType=None, difficulty=None, superuserOverride=True))

    assert response.status_code == 200
    data = response.get_json()
    assert data['score'] == 98
    assert data['metadata']['difficulty'] == 'intermediate'
