"""
Semantic Evaluation Service - LLM judge for answers fuzzy matching cannot settle.

Builds a French-teacher rubric prompt, asks the configured LLM provider for a
structured JSON judgment and validates it with SemanticEvaluation. Every
failure (provider not configured, timeout, network error, malformed reply)
degrades to a safe default result; nothing is raised to the caller.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from pydantic import ValidationError

from services.llm_models.evaluation_models import Corrections, EvaluationResult, SemanticEvaluation
from services.llm_provider_factory import (
    JSON_RESPONSE_FORMAT,
    LLMProvider,
    LLMProviderFactory,
    get_llm_client
)

logger = logging.getLogger(__name__)

SAFE_DEFAULT_SCORE = 50
SAFE_DEFAULT_FEEDBACK = (
    'Unable to evaluate automatically. Please try again or ask your teacher for feedback.'
)

SYSTEM_MESSAGE = (
    'You are a fair, encouraging French teacher grading short written answers. '
    'Return only valid JSON.'
)


@dataclass
class SemanticJudgment:
    """
    Outcome of the semantic tier.

    confidence is the judge's self-reported certainty (0-100). It is kept out
    of EvaluationResult and only surfaces in diagnostic metadata.
    """
    result: EvaluationResult
    confidence: Optional[int] = None
    model_used: Optional[str] = None
    succeeded: bool = True


def safe_default_result() -> EvaluationResult:
    return EvaluationResult(
        is_correct=False,
        score=SAFE_DEFAULT_SCORE,
        has_correct_accents=False,
        feedback=SAFE_DEFAULT_FEEDBACK,
        corrections=Corrections(),
    )


def build_evaluation_prompt(
    question: str,
    user_answer: str,
    correct_answer: Optional[str],
    question_type: str,
    difficulty: str,
    pass_threshold: int = 70
) -> str:
    """Assemble the rubric prompt sent to the LLM judge"""
    if correct_answer:
        reference_line = f'Expected Answer: "{correct_answer}"'
    else:
        reference_line = 'This is an open-ended question with multiple acceptable answers.'

    if question_type == 'open_ended':
        completeness = 'Is it a complete, coherent sentence/response?'
    else:
        completeness = 'Does it answer the question fully?'

    return f"""You are evaluating a French language student's written answer. Be thorough and pedagogical.

Question Type: {question_type}
Difficulty Level: {difficulty}
Question (English): "{question}"
{reference_line}
Student's Answer: "{user_answer}"

Evaluate the student's answer considering:

1. **Correctness**: Is the meaning/content correct?
2. **Grammar**: Are grammar rules followed correctly?
3. **Spelling**: Are words spelled correctly (ignoring accents for now)?
4. **Accents**: Are diacritic accents used correctly? (café, été, où, etc.)
5. **Completeness**: {completeness}

For open-ended questions:
- Accept any grammatically correct and contextually appropriate answer
- The student's creativity should be valued
- Focus on whether they expressed their idea correctly in French

Scoring Guidelines:
- 90-100: Excellent, nearly perfect or perfect
- 80-89: Very good, minor errors
- 70-79: Good, some errors but meaning is clear
- 60-69: Acceptable, multiple errors but partially correct
- 50-59: Poor, significant errors but some correct elements
- 0-49: Incorrect or unintelligible

Confidence Assessment:
Also provide a confidence score (0-100) indicating how certain you are about this evaluation:
- 95-100: Very confident - clear-cut correct/incorrect, no ambiguity
- 85-94: Confident - standard case with clear grammar rules
- 75-84: Moderately confident - some interpretation needed
- 60-74: Uncertain - multiple valid interpretations possible
- Below 60: Low confidence - highly ambiguous or creative answer

Return ONLY a valid JSON object with this exact structure (no markdown, no code blocks):
{{
  "isCorrect": boolean (true if score >= {pass_threshold}),
  "score": number (0-100),
  "hasCorrectAccents": boolean,
  "feedback": "Brief, encouraging feedback in English (2-3 sentences)",
  "corrections": {{
    "grammar": ["list of grammar corrections if needed"],
    "spelling": ["list of spelling corrections if needed"],
    "accents": ["list of words needing correct accents"],
    "suggestions": ["suggestions for improvement"]
  }},
  "correctedAnswer": "The fully corrected version of their answer, or null if already perfect",
  "confidenceScore": number (0-100, your confidence in this evaluation)
}}"""


def parse_semantic_reply(content: str) -> SemanticEvaluation:
    """
    Validate the raw reply text against SemanticEvaluation.

    Tolerates a surrounding markdown code fence; anything else that is not
    the expected JSON object raises ValueError.
    """
    if not isinstance(content, str) or not content.strip():
        raise ValueError('Empty reply from LLM')

    text = content.strip()
    if text.startswith('```'):
        text = text.strip('`')
        if text.lower().startswith('json'):
            text = text[4:]
        text = text.strip()

    try:
        return SemanticEvaluation.model_validate_json(text)
    except ValidationError as e:
        raise ValueError(f'LLM reply failed validation: {e.error_count()} error(s): {e}') from e


class SemanticEvaluationClient:
    """Calls the LLM judge and converts its reply into an EvaluationResult"""

    def __init__(
        self,
        provider_factory: Callable[[Optional[str]], LLMProvider] = get_llm_client,
        provider_name: Optional[str] = None,
        model: Optional[str] = None,
        timeout: float = 30.0,
        pass_threshold: int = 70
    ):
        self.provider_factory = provider_factory
        self.provider_name = provider_name
        self.model = model or LLMProviderFactory.get_default_model(provider_name)
        self.timeout = timeout
        self.pass_threshold = pass_threshold

    def evaluate(
        self,
        question: str,
        user_answer: str,
        correct_answer: Optional[str],
        question_type: str,
        difficulty: str
    ) -> SemanticJudgment:
        """
        Judge an answer semantically.

        Returns:
            SemanticJudgment. On any failure the result is the safe default
            (isCorrect=False, score=50) with confidence None and
            succeeded=False.
        """
        prompt = build_evaluation_prompt(
            question=question,
            user_answer=user_answer,
            correct_answer=correct_answer,
            question_type=question_type,
            difficulty=difficulty,
            pass_threshold=self.pass_threshold,
        )

        try:
            provider = self.provider_factory(self.provider_name)
            response = provider.create_chat_completion(
                messages=[
                    {"role": "system", "content": SYSTEM_MESSAGE},
                    {"role": "user", "content": prompt}
                ],
                model=self.model,
                temperature=0.3,  # Lower temperature for consistent grading
                max_tokens=1024,
                response_format=JSON_RESPONSE_FORMAT,
                timeout=self.timeout
            )
            judgment = parse_semantic_reply(response.get("content"))

        except Exception as e:
            logger.error(f"Semantic evaluation failed, using safe default: {type(e).__name__}: {e}")
            return SemanticJudgment(result=safe_default_result(), succeeded=False)

        # The pass/fail verdict follows the score, not the judge's own boolean
        is_correct = judgment.score >= self.pass_threshold
        if is_correct != judgment.is_correct:
            logger.warning(
                f"LLM verdict isCorrect={judgment.is_correct} disagrees with score={judgment.score}; "
                f"using score-derived verdict {is_correct}"
            )

        result = EvaluationResult(
            is_correct=is_correct,
            score=judgment.score,
            has_correct_accents=judgment.has_correct_accents,
            feedback=judgment.feedback,
            corrections=judgment.corrections,
            corrected_answer=judgment.corrected_answer or None,
        )

        logger.info(
            f"Semantic evaluation: score={judgment.score}, is_correct={is_correct}, "
            f"confidence={judgment.confidence_score}, model={response.get('model')}"
        )

        return SemanticJudgment(
            result=result,
            confidence=judgment.confidence_score,
            model_used=response.get("model") or self.model,
        )
