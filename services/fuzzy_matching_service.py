"""
Fuzzy Matching Service - deterministic scoring of free-text answers.

Compares a learner's answer against the primary reference and any acceptable
variations using normalized Levenshtein similarity, then maps the best
similarity into a difficulty-specific correctness band.

Band lookup (similarity is 0-100 on normalized text):
- exact:           zero edit distance to a reference, score 100 (98 with accent errors)
- near_exact:      committed as correct, score 95
- minor_typo:      committed as correct, score 85
- partial:         committed as incorrect, score 60
- below_threshold: no verdict, the caller falls through to the semantic tier

Thresholds are configuration (see Config.FUZZY_BAND_THRESHOLDS); only their
ordering matters: easier difficulties accept lower similarities.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import Levenshtein

from services.llm_models.evaluation_models import Corrections, EvaluationResult
from services.text_normalizer import fold_case, normalize_text, strip_accents

logger = logging.getLogger(__name__)

PRIMARY_ANSWER = 'primary_answer'
ACCEPTABLE_VARIATION = 'acceptable_variation'
NO_MATCH = 'none'

DEFAULT_DIFFICULTY = 'intermediate'

DEFAULT_BAND_THRESHOLDS = {
    'beginner': {'near_exact': 95, 'minor_typo': 80, 'partial': 70},
    'intermediate': {'near_exact': 97, 'minor_typo': 85, 'partial': 75},
    'advanced': {'near_exact': 98, 'minor_typo': 90, 'partial': 80},
}


@dataclass(frozen=True)
class CorrectnessBand:
    """A named bucket of similarity scores mapped to a fixed score"""
    name: str
    label: str
    score: int
    commits: bool = True


# Normalized text identical to a reference (only reachable through variations,
# the exact-match tier already handles the primary answer)
EXACT = CorrectnessBand('exact', 'exact match', 100)
NEAR_EXACT = CorrectnessBand('near_exact', 'near-exact (minor typo)', 95)
MINOR_TYPO = CorrectnessBand('minor_typo', 'minor typo', 85)
PARTIAL = CorrectnessBand('partial', 'partial match (significant errors)', 60)
BELOW_THRESHOLD = CorrectnessBand('below_threshold', 'below threshold', 0, commits=False)

# Highest band first
BAND_ORDER = (NEAR_EXACT, MINOR_TYPO, PARTIAL)


@dataclass
class BestMatch:
    """Which reference string won and how similar the answer was to it"""
    matched_against: str
    text: str
    similarity: int
    variation_index: Optional[int] = None
    # Raw edit distance on normalized text; similarity is rounded
    distance: int = 0


@dataclass
class MatchInfo:
    """Provenance of a fuzzy verdict; merged into diagnostic metadata"""
    matched_against: str
    evaluation_reason: str
    matched_similarity: Optional[int] = None
    matched_variation_index: Optional[int] = None
    correctness_band: Optional[str] = None

    def to_metadata(self) -> Dict:
        metadata = {
            'matchedAgainst': self.matched_against,
            'evaluationReason': self.evaluation_reason,
        }
        if self.matched_similarity is not None:
            metadata['matchedSimilarity'] = self.matched_similarity
        if self.matched_variation_index is not None:
            metadata['matchedVariationIndex'] = self.matched_variation_index
        if self.correctness_band is not None:
            metadata['correctnessBand'] = self.correctness_band
        return metadata


def calculate_similarity(first: str, second: str) -> int:
    """
    Symmetric 0-100 similarity based on normalized edit distance.

    similarity = 1 - levenshtein(first, second) / max(len(first), len(second))

    Inputs are compared as given; callers normalize them first.

    Examples:
        >>> calculate_similarity("bonjour", "bonjour")
        100
        >>> calculate_similarity("boujour", "bonjour")
        86
        >>> calculate_similarity("", "")
        100
    """
    return _similarity_from_distance(Levenshtein.distance(first, second), first, second)


def _similarity_from_distance(distance: int, first: str, second: str) -> int:
    longest = max(len(first), len(second))
    if longest == 0:
        return 100
    return max(0, min(100, round((1 - distance / longest) * 100)))


def _compare(normalized_candidate: str, reference: str) -> Tuple[int, int]:
    """(similarity, distance) of a normalized candidate against a raw reference"""
    normalized_reference = normalize_text(reference)
    distance = Levenshtein.distance(normalized_candidate, normalized_reference)
    return _similarity_from_distance(distance, normalized_candidate, normalized_reference), distance


def has_correct_accents(answer: str, reference: str) -> bool:
    """
    True when accents cause no extra differences between answer and reference.

    The edit distance is measured twice, with and without diacritics. Equal
    distances mean every remaining difference is a spelling error, not an
    accent error. Case is ignored.
    """
    folded_answer, folded_reference = fold_case(answer), fold_case(reference)
    with_accents = Levenshtein.distance(folded_answer, folded_reference)
    without_accents = Levenshtein.distance(strip_accents(folded_answer), strip_accents(folded_reference))
    return with_accents == without_accents


class VariationMatcher:
    """Scores a candidate against the primary reference and its variations"""

    def find_best_match(
        self,
        candidate: str,
        primary: str,
        variations: Optional[Sequence[str]] = None
    ) -> BestMatch:
        """
        Return the reference string with the highest similarity.

        Ties prefer the primary answer, then the lowest variation index.
        Blank or non-string variations are skipped but keep their index so
        that metadata points at the stored position.
        """
        normalized_candidate = normalize_text(candidate)
        similarity, distance = _compare(normalized_candidate, primary)
        best = BestMatch(
            matched_against=PRIMARY_ANSWER,
            text=primary,
            similarity=similarity,
            distance=distance,
        )

        for index, variation in enumerate(variations or []):
            if not isinstance(variation, str) or not variation.strip():
                logger.warning(f"Skipping empty acceptable variation at index {index}")
                continue
            similarity, distance = _compare(normalized_candidate, variation)
            # Strictly better: the primary (and earlier variations) win ties.
            # Equal rounded similarities are split by the raw distance.
            if (similarity, -distance) > (best.similarity, -best.distance):
                best = BestMatch(
                    matched_against=ACCEPTABLE_VARIATION,
                    text=variation,
                    similarity=similarity,
                    variation_index=index,
                    distance=distance,
                )

        return best


class BandClassifier:
    """Maps a similarity score and a difficulty level to a correctness band"""

    def __init__(self, thresholds: Optional[Dict[str, Dict[str, int]]] = None):
        self.thresholds = thresholds or DEFAULT_BAND_THRESHOLDS

    def thresholds_for(self, difficulty: str) -> Dict[str, int]:
        if difficulty not in self.thresholds:
            logger.warning(f"Unknown difficulty '{difficulty}', using {DEFAULT_DIFFICULTY} thresholds")
            difficulty = DEFAULT_DIFFICULTY
        return self.thresholds[difficulty]

    def minimum_threshold(self, difficulty: str) -> int:
        """Lowest similarity that still produces a committed verdict"""
        return min(self.thresholds_for(difficulty).values())

    def classify(self, similarity: int, difficulty: str, distance: Optional[int] = None) -> CorrectnessBand:
        """
        Pick the band for a similarity score.

        When the raw edit distance is known it decides the exact band; long
        answers with one typo round up to a similarity of 100.
        """
        exact = similarity >= 100 if distance is None else distance == 0
        if exact:
            return EXACT
        thresholds = self.thresholds_for(difficulty)
        for band in BAND_ORDER:
            if similarity >= thresholds[band.name]:
                return band
        return BELOW_THRESHOLD


def _band_feedback(band: CorrectnessBand, best: BestMatch, accents_ok: bool) -> Tuple[str, Corrections]:
    corrections = Corrections()

    if band is PARTIAL:
        feedback = 'Pas tout à fait. Votre réponse contient des erreurs importantes.'
        corrections.spelling = [f'La réponse attendue est : "{best.text}"']
        corrections.suggestions = ['Relisez attentivement la question et vérifiez chaque mot.']
        return feedback, corrections

    if band is EXACT and accents_ok:
        feedback = 'Parfait ! Réponse correcte.'
    elif band is EXACT:
        feedback = 'Correct ! Attention aux accents pour être parfait.'
    elif band is NEAR_EXACT:
        feedback = 'Presque parfait ! Une petite faute de frappe.'
    else:
        feedback = 'Bien ! Quelques fautes d\'orthographe à corriger.'

    if best.distance > 0:
        corrections.spelling = [f'Orthographe correcte : "{best.text}"']
    if not accents_ok:
        corrections.accents = [f'La réponse correcte est : "{best.text}"']
    return feedback, corrections


def fuzzy_evaluate_answer(
    user_answer: str,
    correct_answer: str,
    acceptable_variations: Optional[List[str]] = None,
    difficulty: str = DEFAULT_DIFFICULTY,
    band_classifier: Optional[BandClassifier] = None,
    pass_threshold: int = 70
) -> Tuple[Optional[EvaluationResult], MatchInfo]:
    """
    Evaluate an answer with deterministic fuzzy matching.

    Args:
        user_answer: The learner's raw answer
        correct_answer: Primary reference answer
        acceptable_variations: Alternate answers treated as equally correct
        difficulty: beginner, intermediate or advanced
        band_classifier: Classifier holding the configured thresholds
        pass_threshold: Minimum score counted as correct

    Returns:
        Tuple of (result, match_info). result is None when the similarity is
        below every threshold, meaning the caller should ask the semantic tier.
    """
    band_classifier = band_classifier or BandClassifier()
    best = VariationMatcher().find_best_match(user_answer, correct_answer, acceptable_variations)
    band = band_classifier.classify(best.similarity, difficulty, distance=best.distance)

    logger.info(
        f"Fuzzy match: similarity={best.similarity}, matched_against={best.matched_against}, "
        f"variation_index={best.variation_index}, band={band.name}, difficulty={difficulty}"
    )

    if not band.commits:
        match_info = MatchInfo(
            matched_against=NO_MATCH,
            matched_similarity=best.similarity,
            evaluation_reason=(
                f"Best similarity {best.similarity}% is below the "
                f"{band_classifier.minimum_threshold(difficulty)}% threshold for {difficulty}"
            ),
            correctness_band=band.label,
        )
        return None, match_info

    source = 'primary answer' if best.matched_against == PRIMARY_ANSWER else (
        f'acceptable variation #{best.variation_index}'
    )
    match_info = MatchInfo(
        matched_against=best.matched_against,
        matched_similarity=best.similarity,
        matched_variation_index=best.variation_index,
        evaluation_reason=f"Fuzzy match against {source} ({best.similarity}% similar): {band.label}",
        correctness_band=band.label,
    )

    accents_ok = has_correct_accents(user_answer, best.text)
    feedback, corrections = _band_feedback(band, best, accents_ok)

    score = band.score
    if band is EXACT and not accents_ok:
        score = 98

    result = EvaluationResult(
        is_correct=score >= pass_threshold,
        score=score,
        has_correct_accents=accents_ok,
        feedback=feedback,
        corrections=corrections,
        corrected_answer=best.text if best.distance > 0 or not accents_ok else None,
    )
    return result, match_info
