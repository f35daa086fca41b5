"""
Evaluation Pydantic Models

Shapes shared by every evaluation tier:
- EvaluationRequest: what the evaluate endpoint receives
- EvaluationResult: what the learner gets back (camelCase on the wire)
- SemanticEvaluation: the structured judgment expected from the LLM
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class EvaluationRequest(BaseModel):
    """A learner's typed answer plus the context needed to judge it"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    question: str
    user_answer: str
    correct_answer: Optional[str] = None
    question_type: str = 'translation'
    difficulty: str = 'intermediate'
    acceptable_variations: List[str] = Field(default_factory=list)
    study_code_id: Optional[str] = None
    superuser_override: Optional[bool] = None

    @field_validator('question_type', 'difficulty', mode='before')
    @classmethod
    def null_means_default(cls, value, info):
        if value is None:
            return cls.model_fields[info.field_name].default
        return value

    @field_validator('acceptable_variations', mode='before')
    @classmethod
    def blank_non_string_variations(cls, value):
        if value is None:
            return []
        if not isinstance(value, list):
            raise ValueError('acceptableVariations must be a list of strings')
        # Blanked rather than dropped so indices match the stored list
        return [v if isinstance(v, str) else '' for v in value]


class Corrections(BaseModel):
    """Categorized mistakes; categories without entries are omitted"""
    grammar: Optional[List[str]] = None
    spelling: Optional[List[str]] = None
    accents: Optional[List[str]] = None
    suggestions: Optional[List[str]] = None

    @field_validator('grammar', 'spelling', 'accents', 'suggestions', mode='before')
    @classmethod
    def keep_non_empty_strings(cls, value):
        if value is None:
            return None
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, list):
            raise ValueError('corrections entries must be lists of strings')
        cleaned = [item.strip() for item in value if isinstance(item, str) and item.strip()]
        return cleaned or None


class EvaluationResult(BaseModel):
    """
    Public evaluation result.

    is_correct is true iff score meets the pass threshold of the tier that
    produced it. metadata is diagnostic-only and set by the endpoint when the
    caller is allowed to see evaluation internals.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    is_correct: bool
    score: int = Field(ge=0, le=100)
    has_correct_accents: bool
    feedback: str
    corrections: Corrections = Field(default_factory=Corrections)
    corrected_answer: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    def to_response(self) -> Dict[str, Any]:
        """Serialize with camelCase keys, dropping unset optional fields"""
        return self.model_dump(by_alias=True, exclude_none=True)


class SemanticEvaluation(BaseModel):
    """
    Structured judgment returned by the LLM for the semantic tier.

    The reply is untrusted: every field is required except correctedAnswer and
    confidenceScore, and numeric fields must lie in 0-100.

    Example:
    {
        "isCorrect": true,
        "score": 88,
        "hasCorrectAccents": false,
        "feedback": "Very good! Watch the accent on 'été'.",
        "corrections": {"accents": ["ete -> été"]},
        "correctedAnswer": "J'ai été au cinéma.",
        "confidenceScore": 90
    }
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    is_correct: bool
    score: int = Field(ge=0, le=100)
    has_correct_accents: bool
    feedback: str = Field(min_length=1)
    corrections: Corrections = Field(default_factory=Corrections)
    corrected_answer: Optional[str] = None
    confidence_score: Optional[int] = Field(default=None, ge=0, le=100)

    @field_validator('score', 'confidence_score', mode='before')
    @classmethod
    def round_numeric(cls, value):
        # Models sometimes answer 87.5; booleans are not scores
        if isinstance(value, bool):
            raise ValueError('expected a number, got a boolean')
        if isinstance(value, float):
            return round(value)
        return value

    @field_validator('corrections', mode='before')
    @classmethod
    def default_corrections(cls, value):
        return {} if value is None else value
