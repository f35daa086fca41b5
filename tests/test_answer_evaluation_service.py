"""
Unit tests for AnswerEvaluationService.

Tests the tier cascade including:
- Empty check (answers shorter than 2 characters)
- Exact match after normalization (case, accents, whitespace)
- Fuzzy matching bands per difficulty and acceptable variations
- Semantic fallback and the safe default when the LLM fails
- Diagnostic metadata gating
- Dispatcher robustness when a tier raises
"""

import sys
import os
import pytest
from unittest.mock import MagicMock

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import TestingConfig
from services.answer_evaluation_service import (
    EMPTY_CHECK,
    EXACT_MATCH,
    FUZZY_LOGIC,
    SAFE_DEFAULT,
    SEMANTIC_API,
    AnswerEvaluationService,
    EmptyCheckTier,
    EvaluationTier,
    TierDispatcher
)
from services.llm_models.evaluation_models import Corrections, EvaluationRequest, EvaluationResult
from services.semantic_evaluation_service import (
    SAFE_DEFAULT_FEEDBACK,
    SemanticEvaluationClient,
    SemanticJudgment
)


def _config(**overrides):
    settings = {key: getattr(TestingConfig, key) for key in dir(TestingConfig) if key.isupper()}
    settings.update(overrides)
    return settings


@pytest.fixture
def semantic_client():
    """Fake LLM judge returning a confident 'good' verdict"""
    client = MagicMock(spec=SemanticEvaluationClient)
    client.evaluate.return_value = SemanticJudgment(
        result=EvaluationResult(
            is_correct=True,
            score=82,
            has_correct_accents=True,
            feedback='Good answer with a small grammar slip.',
            corrections=Corrections(grammar=['Use "suis" with "je".']),
        ),
        confidence=88,
        model_used='mistral-small-latest',
    )
    return client


@pytest.fixture
def service(semantic_client):
    return AnswerEvaluationService.from_config(_config(), semantic_client=semantic_client)


def _request(user_answer, correct_answer='Bonjour', **kwargs):
    return EvaluationRequest(
        question=kwargs.pop('question', 'Translate: Hello'),
        user_answer=user_answer,
        correct_answer=correct_answer,
        **kwargs
    )


# ============================================================================
# TIER 1: EMPTY CHECK
# ============================================================================

@pytest.mark.parametrize("answer", ["x", " ", "   a   "])
def test_short_answer_scores_zero(service, semantic_client, answer):
    result = service.evaluate(_request(answer), include_metadata=True)

    assert result.is_correct is False
    assert result.score == 0
    assert result.metadata['evaluationTier'] == EMPTY_CHECK
    assert result.metadata['usedSemanticApi'] is False
    semantic_client.evaluate.assert_not_called()


# ============================================================================
# TIER 2: EXACT MATCH
# ============================================================================

def test_verbatim_answer_scores_100(service):
    result = service.evaluate(_request("Bonjour"), include_metadata=True)

    assert result.is_correct is True
    assert result.score == 100
    assert result.has_correct_accents is True
    assert result.metadata['evaluationTier'] == EXACT_MATCH


def test_case_difference_scores_98_with_hint(service, semantic_client):
    result = service.evaluate(_request("bonjour"), include_metadata=True)

    assert result.is_correct is True
    assert result.score == 98
    assert result.has_correct_accents is True
    assert result.corrections.accents == ['La réponse correcte est: "Bonjour"']
    assert result.metadata['evaluationTier'] == EXACT_MATCH
    assert result.metadata['matchedAgainst'] == 'primary_answer'
    semantic_client.evaluate.assert_not_called()


def test_missing_accents_scores_98(service):
    result = service.evaluate(_request("  cafe  ", correct_answer="café"))

    assert result.score == 98
    assert result.is_correct is True
    assert result.has_correct_accents is False
    assert 'accents' in result.feedback


# ============================================================================
# TIER 3: FUZZY LOGIC
# ============================================================================

def test_typo_beginner_committed_by_fuzzy(service, semantic_client):
    result = service.evaluate(
        _request("boujour", correct_answer="bonjour", difficulty="beginner"),
        include_metadata=True
    )

    assert result.is_correct is True
    assert result.score == 85
    assert result.metadata['evaluationTier'] == FUZZY_LOGIC
    assert result.metadata['correctnessBand'] == 'minor typo'
    assert result.metadata['levenshteinSimilarity'] == 86
    assert result.metadata['levenshteinThreshold'] == 70
    semantic_client.evaluate.assert_not_called()


def test_variation_match_metadata(service):
    result = service.evaluate(
        _request("salut", acceptable_variations=["coucou", "Salut"]),
        include_metadata=True
    )

    assert result.score == 100
    assert result.metadata['evaluationTier'] == FUZZY_LOGIC
    assert result.metadata['matchedAgainst'] == 'acceptable_variation'
    assert result.metadata['matchedVariationIndex'] == 1
    assert result.metadata['levenshteinSimilarity'] == 100


def test_skip_fuzzy_logic_sends_typos_to_semantic(semantic_client):
    service = AnswerEvaluationService.from_config(
        _config(SKIP_FUZZY_LOGIC=True), semantic_client=semantic_client
    )

    result = service.evaluate(
        _request("boujour", correct_answer="bonjour", difficulty="beginner"),
        include_metadata=True
    )

    assert result.metadata['evaluationTier'] == SEMANTIC_API
    assert 'disabled' in result.metadata['evaluationReason']
    semantic_client.evaluate.assert_called_once()


# ============================================================================
# TIER 4: SEMANTIC API
# ============================================================================

def test_low_similarity_uses_semantic(service, semantic_client):
    result = service.evaluate(
        _request("Je suis un étudiant", correct_answer="Je m'appelle Paul"),
        include_metadata=True
    )

    assert result.score == 82
    assert result.metadata['evaluationTier'] == SEMANTIC_API
    assert result.metadata['usedSemanticApi'] is True
    assert result.metadata['semanticConfidence'] == 88
    assert result.metadata['modelUsed'] == 'mistral-small-latest'
    assert 'below threshold' in result.metadata['evaluationReason']


def test_open_ended_question_goes_straight_to_semantic(service, semantic_client):
    result = service.evaluate(
        _request("J'aime le cinéma et la musique.", correct_answer=None, question_type='open_ended'),
        include_metadata=True
    )

    assert result.metadata['evaluationTier'] == SEMANTIC_API
    assert 'open-ended' in result.metadata['evaluationReason']
    assert 'levenshteinSimilarity' not in result.metadata
    kwargs = semantic_client.evaluate.call_args.kwargs
    assert kwargs['correct_answer'] is None
    assert kwargs['question_type'] == 'open_ended'


def test_provider_failure_returns_safe_default():
    failing_provider = MagicMock()
    failing_provider.create_chat_completion.side_effect = TimeoutError("request timed out")
    client = SemanticEvaluationClient(
        provider_factory=lambda name: failing_provider,
        provider_name='mistral',
    )
    service = AnswerEvaluationService.from_config(_config(), semantic_client=client)

    result = service.evaluate(
        _request("je ne sais pas", correct_answer="j'ai faim", difficulty="beginner"),
        include_metadata=True
    )

    assert result.is_correct is False
    assert result.score == 50
    assert result.feedback == SAFE_DEFAULT_FEEDBACK
    assert result.metadata['evaluationTier'] == SEMANTIC_API
    assert 'semanticConfidence' not in result.metadata
    assert 'safe default' in result.metadata['evaluationReason']


def test_very_long_answer_still_returns_result(service):
    result = service.evaluate(_request("a" * 10000))

    assert 0 <= result.score <= 100


# ============================================================================
# METADATA
# ============================================================================

def test_metadata_omitted_by_default(service):
    result = service.evaluate(_request("bonjour"))

    assert result.metadata is None
    assert 'metadata' not in result.to_response()


def test_response_uses_camel_case_and_drops_empty_fields(service):
    response = service.evaluate(_request("Bonjour")).to_response()

    assert response['isCorrect'] is True
    assert response['hasCorrectAccents'] is True
    assert 'correctedAnswer' not in response
    assert response['corrections'] == {}


def test_evaluate_does_not_mutate_shared_results(service, semantic_client):
    request = _request("Je suis un étudiant", correct_answer="Je m'appelle Paul")

    with_metadata = service.evaluate(request, include_metadata=True)
    without_metadata = service.evaluate(request)

    assert with_metadata.metadata is not None
    assert without_metadata.metadata is None
    assert semantic_client.evaluate.return_value.result.metadata is None


# ============================================================================
# DISPATCHER
# ============================================================================

class BrokenTier(EvaluationTier):
    name = 'broken'

    def evaluate(self, request):
        raise RuntimeError("tier exploded")


def test_dispatcher_falls_through_failing_tier():
    outcome = TierDispatcher([BrokenTier(), EmptyCheckTier()]).dispatch(_request("x"))

    assert outcome.tier == EMPTY_CHECK
    assert outcome.result.score == 0


def test_dispatcher_without_committed_tier_returns_safe_default():
    outcome = TierDispatcher([EmptyCheckTier()]).dispatch(_request("bonjour"))

    assert outcome.tier == SAFE_DEFAULT
    assert outcome.result.score == 50
    assert outcome.result.is_correct is False


# ============================================================================
# REQUEST PARSING
# ============================================================================

def test_non_string_variations_keep_their_index(service):
    request = EvaluationRequest.model_validate({
        'question': 'Translate: Hi',
        'userAnswer': 'salut',
        'correctAnswer': 'bonjour',
        'acceptableVariations': [None, 'salut', 3],
    })

    result = service.evaluate(request, include_metadata=True)

    assert request.acceptable_variations == ['', 'salut', '']
    assert result.metadata['matchedAgainst'] == 'acceptable_variation'
    assert result.metadata['matchedVariationIndex'] == 1


def test_null_question_type_and_difficulty_use_defaults():
    request = EvaluationRequest.model_validate({
        'question': 'Translate: Hello',
        'userAnswer': 'bonjour',
        'questionType': None,
        'difficulty': None,
    })

    assert request.question_type == 'translation'
    assert request.difficulty == 'intermediate'
