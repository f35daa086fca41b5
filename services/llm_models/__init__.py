"""
LLM Pydantic Models

Structured shapes for answer evaluation:
- EvaluationRequest, EvaluationResult, Corrections (public evaluation contract)
- SemanticEvaluation (structured reply expected from the LLM judge)
"""

from .evaluation_models import (
    Corrections,
    EvaluationRequest,
    EvaluationResult,
    SemanticEvaluation
)

__all__ = [
    'Corrections',
    'EvaluationRequest',
    'EvaluationResult',
    'SemanticEvaluation'
]
