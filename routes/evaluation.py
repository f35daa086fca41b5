"""
Evaluation Routes - Endpoint for free-text answer evaluation.

This module provides:
- POST /api/evaluate-writing - Evaluate a learner's written French answer
"""

import logging

from flask import Blueprint, current_app, jsonify, request
from pydantic import ValidationError

from services.answer_evaluation_service import AnswerEvaluationService
from services.llm_models.evaluation_models import EvaluationRequest
from services.rate_limiter import get_client_ip
from services.superuser_service import should_include_metadata

logger = logging.getLogger(__name__)

bp = Blueprint('evaluation', __name__, url_prefix='/api')


def _rate_limited_response(result, now):
    response = jsonify({'error': 'Too many requests. Please wait before submitting again.'})
    response.status_code = 429
    response.headers['Retry-After'] = str(result.retry_after_seconds(now))
    response.headers['X-RateLimit-Remaining'] = '0'
    return response


@bp.route('/evaluate-writing', methods=['POST'])
def evaluate_writing():
    """
    Evaluate a written answer.

    Request Body:
        {
            "question": "Translate: Hello",
            "userAnswer": "bonjour",
            "correctAnswer": "Bonjour",          (optional)
            "questionType": "translation",
            "difficulty": "beginner",
            "acceptableVariations": ["Salut"],    (optional)
            "studyCodeId": "uuid",                (optional)
            "superuserOverride": true             (optional)
        }

    Returns:
        200: EvaluationResult
            {
                "isCorrect": true,
                "score": 98,
                "hasCorrectAccents": true,
                "feedback": "...",
                "corrections": {"accents": ["..."]},
                "metadata": {...}                 (superusers only)
            }
        400: Missing or invalid fields
        429: Rate limited (Retry-After header, seconds)
        500: Unexpected server error
    """
    limiter = current_app.extensions['rate_limiter']
    client_ip = get_client_ip(request.headers, request.remote_addr)
    rate_limit = limiter.check(
        f'evaluate:{client_ip}',
        window_ms=current_app.config['EVALUATE_RATE_LIMIT_WINDOW_MS'],
        max_requests=current_app.config['EVALUATE_RATE_LIMIT_MAX_REQUESTS'],
    )
    if not rate_limit.allowed:
        logger.info(f"Rate limit reached for {client_ip}")
        return _rate_limited_response(rate_limit, limiter.clock())

    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({'error': 'No JSON data provided'}), 400

    if not data.get('question') or not data.get('userAnswer'):
        return jsonify({'error': 'Missing required fields: question and userAnswer'}), 400

    try:
        evaluation_request = EvaluationRequest.model_validate(data)
    except ValidationError as e:
        fields = ', '.join('.'.join(str(part) for part in err['loc']) for err in e.errors())
        return jsonify({'error': f'Invalid fields: {fields}'}), 400

    try:
        logger.info(
            f"Evaluating {evaluation_request.question_type} question: "
            f"question='{evaluation_request.question[:50]}', "
            f"answer='{evaluation_request.user_answer[:50]}', "
            f"difficulty={evaluation_request.difficulty}"
        )

        include_metadata = should_include_metadata(
            evaluation_request.study_code_id,
            evaluation_request.superuser_override,
            allow_override=current_app.config.get('ALLOW_SUPERUSER_OVERRIDE', False),
        )

        service = current_app.extensions.get('answer_evaluation_service')
        if service is None:
            service = AnswerEvaluationService.from_config(current_app.config)

        result = service.evaluate(evaluation_request, include_metadata=include_metadata)

        response = jsonify(result.to_response())
        response.headers['X-RateLimit-Remaining'] = str(rate_limit.remaining)
        return response

    except Exception as e:
        logger.error(f"Error evaluating answer: {e}", exc_info=True)
        return jsonify({'error': 'Failed to evaluate answer'}), 500
