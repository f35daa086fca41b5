"""
Answer Evaluation Service - tiered evaluation of free-text French answers.

Evaluation tiers (in order, cheapest and most deterministic first):
1. Empty check     - answers shorter than 2 characters score 0
2. Exact match     - accent/case/whitespace-insensitive equality with the reference
3. Fuzzy logic     - Levenshtein similarity against the reference and variations
4. Semantic API    - LLM judge, always terminal (safe default on failure)

Each tier is a strategy object returning a TierOutcome or None. The
TierDispatcher walks the list once and stops at the first committed outcome,
so every request ends with a well-formed EvaluationResult.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from services.fuzzy_matching_service import (
    BandClassifier,
    NO_MATCH,
    PRIMARY_ANSWER,
    calculate_similarity,
    fuzzy_evaluate_answer
)
from services.llm_models.evaluation_models import Corrections, EvaluationRequest, EvaluationResult
from services.semantic_evaluation_service import SemanticEvaluationClient, safe_default_result
from services.text_normalizer import fold_case, normalize_text

# Configure logging
logger = logging.getLogger(__name__)

EMPTY_CHECK = 'empty_check'
EXACT_MATCH = 'exact_match'
FUZZY_LOGIC = 'fuzzy_logic'
SEMANTIC_API = 'semantic_api'
SAFE_DEFAULT = 'safe_default'

MIN_ANSWER_LENGTH = 2


@dataclass
class TierOutcome:
    """A committed result plus the diagnostics describing how it was produced"""
    tier: str
    result: EvaluationResult
    diagnostics: Dict[str, Any] = field(default_factory=dict)

    def metadata(self, difficulty: str) -> Dict[str, Any]:
        metadata = {
            'difficulty': difficulty,
            'evaluationTier': self.tier,
            'usedSemanticApi': self.tier == SEMANTIC_API,
            'matchedAgainst': NO_MATCH,
        }
        metadata.update(self.diagnostics)
        return {key: value for key, value in metadata.items() if value is not None}


class EvaluationTier(ABC):
    """One stage of the evaluation cascade"""

    name: str = ''

    @abstractmethod
    def evaluate(self, request: EvaluationRequest) -> Optional[TierOutcome]:
        """Return a committed outcome, or None to fall through to the next tier"""


class EmptyCheckTier(EvaluationTier):
    name = EMPTY_CHECK

    def evaluate(self, request: EvaluationRequest) -> Optional[TierOutcome]:
        if len(request.user_answer.strip()) >= MIN_ANSWER_LENGTH:
            return None

        logger.info("Tier 1: answer too short")
        result = EvaluationResult(
            is_correct=False,
            score=0,
            has_correct_accents=False,
            feedback='Réponse trop courte. Veuillez fournir une réponse complète.',
            corrections=Corrections(
                suggestions=["Essayez d'écrire une réponse complète en français."]
            ),
        )
        return TierOutcome(
            tier=self.name,
            result=result,
            diagnostics={'evaluationReason': f'Answer too short (less than {MIN_ANSWER_LENGTH} characters)'},
        )


class ExactMatchTier(EvaluationTier):
    name = EXACT_MATCH

    def evaluate(self, request: EvaluationRequest) -> Optional[TierOutcome]:
        reference = request.correct_answer
        if not reference or normalize_text(request.user_answer) != normalize_text(reference):
            return None

        # Same letters; accents compared case-insensitively
        has_correct_accents = fold_case(request.user_answer) == fold_case(reference)
        verbatim = ' '.join(request.user_answer.split()) == ' '.join(reference.split())

        if verbatim:
            result = EvaluationResult(
                is_correct=True,
                score=100,
                has_correct_accents=True,
                feedback='Parfait ! Réponse correcte avec les accents appropriés.',
            )
        else:
            feedback = (
                "Correct ! Attention à l'écriture exacte (majuscules) pour être parfait."
                if has_correct_accents
                else 'Correct ! Attention aux accents pour être parfait.'
            )
            result = EvaluationResult(
                is_correct=True,
                score=98,
                has_correct_accents=has_correct_accents,
                feedback=feedback,
                corrections=Corrections(accents=[f'La réponse correcte est: "{reference.strip()}"']),
            )

        logger.info(f"Tier 2: exact match (score={result.score}, accents_ok={has_correct_accents})")
        return TierOutcome(
            tier=self.name,
            result=result,
            diagnostics={
                'levenshteinSimilarity': calculate_similarity(
                    fold_case(request.user_answer), fold_case(reference)
                ),
                'matchedAgainst': PRIMARY_ANSWER,
                'evaluationReason': 'Exact match against primary answer (after normalization)',
            },
        )


class FuzzyLogicTier(EvaluationTier):
    name = FUZZY_LOGIC

    def __init__(self, band_classifier: Optional[BandClassifier] = None, pass_threshold: int = 70):
        self.band_classifier = band_classifier or BandClassifier()
        self.pass_threshold = pass_threshold

    def evaluate(self, request: EvaluationRequest) -> Optional[TierOutcome]:
        if not request.correct_answer:
            return None

        result, match_info = fuzzy_evaluate_answer(
            user_answer=request.user_answer,
            correct_answer=request.correct_answer,
            acceptable_variations=request.acceptable_variations,
            difficulty=request.difficulty,
            band_classifier=self.band_classifier,
            pass_threshold=self.pass_threshold,
        )
        if result is None:
            logger.info(f"Tier 3: fuzzy confidence too low ({match_info.evaluation_reason})")
            return None

        logger.info(f"Tier 3: fuzzy verdict committed ({match_info.correctness_band})")
        diagnostics = match_info.to_metadata()
        # Similarity to whichever string actually won, never the unrelated primary
        diagnostics['levenshteinSimilarity'] = match_info.matched_similarity
        diagnostics['levenshteinThreshold'] = self.band_classifier.minimum_threshold(request.difficulty)
        return TierOutcome(tier=self.name, result=result, diagnostics=diagnostics)


class SemanticFallbackTier(EvaluationTier):
    name = SEMANTIC_API

    def __init__(self, client: SemanticEvaluationClient, fuzzy_enabled: bool = True):
        self.client = client
        self.fuzzy_enabled = fuzzy_enabled

    def _reason(self, request: EvaluationRequest) -> str:
        if not request.correct_answer:
            return 'No reference answer (open-ended); used Semantic API for semantic evaluation'
        if not self.fuzzy_enabled:
            return 'Fuzzy logic disabled; used Semantic API for semantic evaluation'
        return 'Fuzzy logic confidence below threshold; used Semantic API for semantic evaluation'

    def evaluate(self, request: EvaluationRequest) -> Optional[TierOutcome]:
        logger.info("Tier 4: using Semantic API evaluation")
        judgment = self.client.evaluate(
            question=request.question,
            user_answer=request.user_answer,
            correct_answer=request.correct_answer,
            question_type=request.question_type,
            difficulty=request.difficulty,
        )

        reason = self._reason(request)
        if not judgment.succeeded:
            reason += ' (semantic evaluation failed; safe default returned)'

        similarity = None
        if request.correct_answer:
            similarity = calculate_similarity(
                normalize_text(request.user_answer), normalize_text(request.correct_answer)
            )

        return TierOutcome(
            tier=self.name,
            result=judgment.result,
            diagnostics={
                'levenshteinSimilarity': similarity,
                'semanticConfidence': judgment.confidence,
                'modelUsed': judgment.model_used,
                'evaluationReason': reason,
            },
        )


class TierDispatcher:
    """Runs the tiers in order and returns the first committed outcome"""

    def __init__(self, tiers: List[EvaluationTier]):
        self.tiers = list(tiers)

    def dispatch(self, request: EvaluationRequest) -> TierOutcome:
        for tier in self.tiers:
            try:
                outcome = tier.evaluate(request)
            except Exception as e:
                logger.error(f"Tier {tier.name} failed, falling through: {e}", exc_info=True)
                continue
            if outcome is not None:
                return outcome

        logger.warning("No tier committed a result; returning safe default")
        return TierOutcome(
            tier=SAFE_DEFAULT,
            result=safe_default_result(),
            diagnostics={'evaluationReason': 'No evaluation tier produced a result'},
        )


class AnswerEvaluationService:
    """Service to evaluate free-text answers through the tier cascade"""

    def __init__(self, dispatcher: TierDispatcher):
        self.dispatcher = dispatcher

    @classmethod
    def from_config(
        cls,
        config: Dict[str, Any],
        semantic_client: Optional[SemanticEvaluationClient] = None
    ) -> 'AnswerEvaluationService':
        """
        Build the standard four-tier pipeline from a Flask config mapping.

        Args:
            config: app.config (or any mapping with the same keys)
            semantic_client: Override for the LLM judge (tests inject fakes)
        """
        fuzzy_enabled = not config.get('SKIP_FUZZY_LOGIC', False)

        if semantic_client is None:
            semantic_client = SemanticEvaluationClient(
                provider_name=config.get('LLM_PROVIDER'),
                model=config.get('EVALUATION_MODEL'),
                timeout=config.get('LLM_TIMEOUT_SECONDS', 30.0),
                pass_threshold=config.get('SEMANTIC_PASS_THRESHOLD', 70),
            )

        tiers: List[EvaluationTier] = [EmptyCheckTier(), ExactMatchTier()]
        if fuzzy_enabled:
            tiers.append(FuzzyLogicTier(
                band_classifier=BandClassifier(config.get('FUZZY_BAND_THRESHOLDS')),
                pass_threshold=config.get('FUZZY_PASS_THRESHOLD', 70),
            ))
        tiers.append(SemanticFallbackTier(semantic_client, fuzzy_enabled=fuzzy_enabled))

        return cls(TierDispatcher(tiers))

    def evaluate(self, request: EvaluationRequest, include_metadata: bool = False) -> EvaluationResult:
        """
        Evaluate a learner's answer.

        Args:
            request: The evaluation request
            include_metadata: Attach diagnostic metadata naming the tier that
                              produced the result (superusers only)

        Returns:
            EvaluationResult; never raises for well-formed requests
        """
        outcome = self.dispatcher.dispatch(request)
        result = outcome.result.model_copy(deep=True)
        result.metadata = outcome.metadata(request.difficulty) if include_metadata else None

        logger.info(
            f"Evaluated {request.question_type} answer: tier={outcome.tier}, "
            f"score={result.score}, is_correct={result.is_correct}"
        )
        return result
