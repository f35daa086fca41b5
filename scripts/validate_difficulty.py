#!/usr/bin/env python3
"""
Difficulty Validation Script

Post-generation pass that re-checks every stored question's difficulty with
the LLM rubric and relabels questions where the model disagrees.

Usage:
    python scripts/validate_difficulty.py [--dry-run] [--batch-size 10] [--page-size 1000]

Output goes to stdout; redirect to a log file for long runs.
"""

import argparse
import sys
from pathlib import Path

# Add parent directory to path to import app modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from app import create_app
from services.difficulty_classifier import (
    BATCH_SIZE,
    PAGE_SIZE,
    BatchDifficultyValidator,
    DifficultyClassifier,
    SqlQuestionStore,
    format_report
)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Re-validate stored question difficulty labels")
    parser.add_argument("--dry-run", action="store_true", help="Classify and report without updating the database")
    parser.add_argument("--batch-size", type=int, default=BATCH_SIZE, help="Concurrent LLM calls per batch")
    parser.add_argument("--page-size", type=int, default=PAGE_SIZE, help="Rows fetched per database query")
    parser.add_argument("--config", default=None, help="Flask config name (development, production)")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    app = create_app(args.config)

    with app.app_context():
        classifier = DifficultyClassifier(
            provider_name=app.config.get("LLM_PROVIDER"),
            model=app.config.get("CLASSIFIER_MODEL"),
            timeout=app.config.get("LLM_TIMEOUT_SECONDS", 30.0),
        )
        validator = BatchDifficultyValidator(
            store=SqlQuestionStore(),
            classifier=classifier,
            batch_size=args.batch_size,
            page_size=args.page_size,
            dry_run=args.dry_run,
        )

        try:
            summary = validator.run()
        except Exception as e:
            print(f"\n❌ Difficulty validation failed: {e}")
            return 1

    print()
    print(format_report(summary, dry_run=args.dry_run))
    return 0


if __name__ == '__main__':
    sys.exit(main())
