"""
Tests for the difficulty validation command-line entry point.
"""

import sys
import os
from unittest.mock import MagicMock, patch

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from scripts import validate_difficulty
from services.difficulty_classifier import QuestionRecord


def _store(records):
    store = MagicMock()
    store.fetch_page.side_effect = lambda offset, limit: records[offset:offset + limit]
    return store


def test_parse_args_defaults():
    args = validate_difficulty.parse_args([])

    assert args.dry_run is False
    assert args.batch_size == 10
    assert args.page_size == 1000


@patch('scripts.validate_difficulty.DifficultyClassifier')
@patch('scripts.validate_difficulty.SqlQuestionStore')
def test_dry_run_prints_report(mock_store_class, mock_classifier_class, capsys):
    records = [
        QuestionRecord(id='q1', question='Conjugate aller', correct_answer='vais',
                       type='fill-in-blank', difficulty='advanced'),
    ]
    store = _store(records)
    mock_store_class.return_value = store
    mock_classifier_class.return_value.classify.return_value = 'beginner'

    exit_code = validate_difficulty.main(['--dry-run', '--config', 'testing', '--batch-size', '2'])

    assert exit_code == 0
    store.update_difficulty.assert_not_called()
    output = capsys.readouterr().out
    assert 'DIFFICULTY VALIDATION COMPLETE (DRY RUN)' in output
    assert 'Changed:   1 (100.0%)' in output


@patch('scripts.validate_difficulty.SqlQuestionStore')
def test_fetch_failure_returns_error_code(mock_store_class, capsys):
    mock_store_class.return_value.fetch_page.side_effect = RuntimeError("no such table: questions")

    exit_code = validate_difficulty.main(['--config', 'testing'])

    assert exit_code == 1
    assert 'no such table' in capsys.readouterr().out
