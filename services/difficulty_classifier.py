"""
Difficulty Classifier - batch re-labelling of stored question difficulty.

Every stored question is shown to the LLM together with a concrete rubric and
relabelled when the model disagrees with the label it was generated with.

Workflow:
1. Page through the question store (PAGE_SIZE rows per query) into memory
2. Classify in batches of BATCH_SIZE concurrent LLM calls; a batch fully
   settles before the next one starts
3. Update the store only when the assigned label differs
4. Accumulate a confusion matrix (original -> assigned) and running counts,
   printing progress after each batch

Per-record failures are isolated: each record yields a ClassificationOutcome
and one failing record never aborts the run.
"""

import logging
import threading
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, TextIO

from models import db
from models.question import DIFFICULTY_LEVELS, Question
from services.llm_provider_factory import LLMProvider, LLMProviderFactory, get_llm_client

logger = logging.getLogger(__name__)

PAGE_SIZE = 1000
BATCH_SIZE = 10

CHANGED = 'changed'
UNCHANGED = 'unchanged'
ERROR = 'error'

RUBRIC = """You are a French 1 difficulty classifier. Classify each question as exactly one of: beginner, intermediate, advanced.

RUBRIC:
- **Beginner**: Tests ONE isolated fact or form. Single-word or single-form answer. Vocabulary recall, simple translation of 1-3 words, single verb conjugation with no context, basic true/false about a single fact.
  Examples: "What does 'bonjour' mean?", "Conjugate 'danser' for 'je'", "True or false: 'chat' means 'cat'"

- **Intermediate**: Tests ONE grammar rule applied in a sentence-level context. Answer is a short phrase or sentence. Fill-in-blank requiring correct form in context, translation of a complete sentence with one grammar point, MCQ requiring grammatical reasoning.
  Examples: "Nous _____ une comédie avec nos amis." (voyons), "Translate: 'We don't like swimming.'", choosing between "Je suis faim" vs "J'ai faim"

- **Advanced**: Tests TWO or more concepts combined, OR requires multi-sentence production, OR has multiple blanks. Answer requires integrating multiple grammar rules or producing extended output.
  Examples: "Write three sentences using different pronouns with 'aimer'", "Fill in TWO blanks: Après le sport, nous _____ et nous _____", questions requiring partitive + negation together

KEY RULES:
- If a question tests only ONE concept with a short answer, it is NOT advanced, even if the vocabulary is uncommon.
- A single verb conjugation (even irregular) with no sentence context = beginner.
- A single sentence with one grammar rule applied = intermediate.
- Multiple blanks, multiple sentences, or two grammar concepts combined = advanced.

Respond with ONLY the difficulty level: beginner, intermediate, or advanced."""


@dataclass
class QuestionRecord:
    """The fields of a stored question the classifier needs"""
    id: str
    question: str
    correct_answer: str
    type: str
    difficulty: str
    topic: str = ''
    options: Optional[List[str]] = None


class QuestionStore(ABC):
    """Paginated access to stored questions"""

    @abstractmethod
    def fetch_page(self, offset: int, limit: int) -> List[QuestionRecord]:
        """Return up to limit records starting at offset; empty when exhausted"""

    @abstractmethod
    def update_difficulty(self, question_id: str, difficulty: str) -> None:
        """Persist a new label; raise on failure"""


class SqlQuestionStore(QuestionStore):
    """QuestionStore backed by the Question table"""

    def fetch_page(self, offset: int, limit: int) -> List[QuestionRecord]:
        rows = Question.query.order_by(Question.id).offset(offset).limit(limit).all()
        return [
            QuestionRecord(
                id=row.id,
                question=row.question,
                correct_answer=row.correct_answer,
                type=row.type,
                difficulty=row.difficulty,
                topic=row.topic or '',
                options=row.options,
            )
            for row in rows
        ]

    def update_difficulty(self, question_id: str, difficulty: str) -> None:
        try:
            question = db.session.get(Question, question_id)
            if question is None:
                raise ValueError(f"Question not found: {question_id}")
            question.difficulty = difficulty
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise


def normalize_difficulty_label(text: Optional[str]) -> Optional[str]:
    """
    Extract a canonical label from a free-text reply.

    Substring matching in the order beginner, intermediate, advanced; None
    when no known label appears.
    """
    if not text:
        return None
    lowered = text.strip().lower()
    for label in DIFFICULTY_LEVELS:
        if label in lowered:
            return label
    return None


class DifficultyClassifier:
    """Single-record difficulty judgment with one LLM call"""

    def __init__(
        self,
        provider: Optional[LLMProvider] = None,
        provider_factory: Callable[[Optional[str]], LLMProvider] = get_llm_client,
        provider_name: Optional[str] = None,
        model: Optional[str] = None,
        timeout: float = 30.0
    ):
        self._provider = provider
        self._provider_lock = threading.Lock()
        self.provider_factory = provider_factory
        self.provider_name = provider_name
        self.model = model or LLMProviderFactory.get_default_model(provider_name)
        self.timeout = timeout

    @property
    def provider(self) -> LLMProvider:
        # Worker threads of the first batch race here; build one client only
        with self._provider_lock:
            if self._provider is None:
                self._provider = self.provider_factory(self.provider_name)
        return self._provider

    @staticmethod
    def describe(record: QuestionRecord) -> str:
        if record.type == 'multiple-choice' and record.options:
            return (
                f"{record.question}\nOptions: {' / '.join(record.options)}\n"
                f"Answer: {record.correct_answer}"
            )
        return f"{record.question}\nAnswer: {record.correct_answer}"

    def classify(self, record: QuestionRecord) -> str:
        """
        Ask the LLM for the record's difficulty.

        Returns:
            One of beginner, intermediate, advanced

        Raises:
            ValueError: If the reply contains no known label
            Exception: Provider errors propagate to the caller
        """
        prompt = (
            f"{RUBRIC}\n\nQuestion ({record.type}, topic: {record.topic}):\n"
            f"{self.describe(record)}"
        )
        response = self.provider.create_chat_completion(
            messages=[{"role": "user", "content": prompt}],
            model=self.model,
            temperature=0.0,
            max_tokens=20,
            timeout=self.timeout
        )
        reply = response.get("content") or ""
        label = normalize_difficulty_label(reply)
        if label is None:
            raise ValueError(f'Unexpected response: "{reply.strip()[:50]}"')
        return label


@dataclass
class ClassificationOutcome:
    """Tagged per-record result: changed, unchanged or error"""
    record_id: str
    status: str
    original: str
    assigned: Optional[str] = None
    error: Optional[str] = None


class ConfusionMatrix:
    """3x3 counts of original label -> assigned label"""

    def __init__(self):
        self.counts: Dict[str, Dict[str, int]] = {
            original: {assigned: 0 for assigned in DIFFICULTY_LEVELS}
            for original in DIFFICULTY_LEVELS
        }

    def record(self, original: str, assigned: str):
        self.counts[original][assigned] += 1

    def row_total(self, original: str) -> int:
        return sum(self.counts[original].values())

    def column_total(self, assigned: str) -> int:
        return sum(self.counts[original][assigned] for original in DIFFICULTY_LEVELS)

    def total(self) -> int:
        return sum(self.row_total(original) for original in DIFFICULTY_LEVELS)


@dataclass
class ValidationSummary:
    """Running tallies for a validation run"""
    total: int = 0
    processed: int = 0
    changed: int = 0
    unchanged: int = 0
    errors: int = 0
    matrix: ConfusionMatrix = field(default_factory=ConfusionMatrix)
    outcomes: List[ClassificationOutcome] = field(default_factory=list)

    def add(self, outcome: ClassificationOutcome):
        self.processed += 1
        self.outcomes.append(outcome)
        if outcome.status == CHANGED:
            self.changed += 1
        elif outcome.status == UNCHANGED:
            self.unchanged += 1
        else:
            self.errors += 1

    def progress_line(self) -> str:
        pct = round(self.processed / self.total * 100) if self.total else 100
        return (
            f"  Progress: {self.processed}/{self.total} ({pct}%) - "
            f"{self.changed} changed, {self.unchanged} unchanged, {self.errors} errors"
        )


class BatchDifficultyValidator:
    """Re-labels every stored question with bounded concurrency"""

    def __init__(
        self,
        store: QuestionStore,
        classifier: DifficultyClassifier,
        batch_size: int = BATCH_SIZE,
        page_size: int = PAGE_SIZE,
        dry_run: bool = False,
        output: Optional[TextIO] = None
    ):
        if batch_size <= 0 or page_size <= 0:
            raise ValueError(f"batch_size and page_size must be positive, got {batch_size}, {page_size}")
        self.store = store
        self.classifier = classifier
        self.batch_size = batch_size
        self.page_size = page_size
        self.dry_run = dry_run
        self.output = output

    def _print(self, message: str = '', end: str = '\n'):
        print(message, end=end, file=self.output, flush=True)

    def fetch_all_questions(self) -> List[QuestionRecord]:
        records: List[QuestionRecord] = []
        offset = 0
        while True:
            page = self.store.fetch_page(offset, self.page_size)
            if not page:
                break
            records.extend(page)
            offset += len(page)
        return records

    def _classify_safely(self, record: QuestionRecord):
        """Runs in a worker thread; returns a label or the exception raised"""
        try:
            return self.classifier.classify(record)
        except Exception as e:
            return e

    def _settle(self, record: QuestionRecord, label_or_error, summary: ValidationSummary) -> ClassificationOutcome:
        if isinstance(label_or_error, Exception):
            logger.error(f"Classification failed for {record.id}: {label_or_error}")
            return ClassificationOutcome(record.id, ERROR, record.difficulty, error=str(label_or_error))

        assigned = label_or_error
        summary.matrix.record(record.difficulty, assigned)

        if assigned == record.difficulty:
            return ClassificationOutcome(record.id, UNCHANGED, record.difficulty, assigned)

        if not self.dry_run:
            try:
                self.store.update_difficulty(record.id, assigned)
            except Exception as e:
                # The classification itself still counts in the matrix
                logger.error(f"Update error for {record.id}: {e}")
                return ClassificationOutcome(record.id, ERROR, record.difficulty, assigned, error=str(e))

        return ClassificationOutcome(record.id, CHANGED, record.difficulty, assigned)

    def process_batch(self, batch: List[QuestionRecord], executor: ThreadPoolExecutor, summary: ValidationSummary):
        futures = {}
        for record in batch:
            if record.difficulty not in DIFFICULTY_LEVELS:
                logger.error(f"Stored difficulty for {record.id} is not a known label: {record.difficulty!r}")
                summary.add(ClassificationOutcome(
                    record.id, ERROR, record.difficulty, error='unknown stored difficulty'
                ))
                continue
            futures[executor.submit(self._classify_safely, record)] = record

        # Wait for every call in the batch before touching the store
        wait(futures)
        for future, record in futures.items():
            summary.add(self._settle(record, future.result(), summary))

    def run(self) -> ValidationSummary:
        self._print('Fetching all questions...')
        records = self.fetch_all_questions()
        self._print(f'Found {len(records)} questions.\n')

        summary = ValidationSummary(total=len(records))
        with ThreadPoolExecutor(max_workers=self.batch_size) as executor:
            for start in range(0, len(records), self.batch_size):
                self.process_batch(records[start:start + self.batch_size], executor, summary)
                self._print('\r' + summary.progress_line(), end='')

        self._print()
        logger.info(
            f"Difficulty validation finished: total={summary.total}, changed={summary.changed}, "
            f"unchanged={summary.unchanged}, errors={summary.errors}"
        )
        return summary


def _pct(part: int, whole: int) -> str:
    return f"{(part / whole * 100) if whole else 0.0:.1f}%"


def format_report(summary: ValidationSummary, dry_run: bool = False) -> str:
    """Final report: totals, confusion matrix and final label distribution"""
    matrix = summary.matrix
    title = 'DIFFICULTY VALIDATION COMPLETE' + (' (DRY RUN)' if dry_run else '')
    lines = [
        '=' * 60,
        title,
        '=' * 60,
        f"  Total:     {summary.total}",
        f"  Changed:   {summary.changed} ({_pct(summary.changed, summary.total)})",
        f"  Unchanged: {summary.unchanged}",
        f"  Errors:    {summary.errors}",
        '',
        'Confusion matrix (rows=original, cols=validated):',
        '                 ' + '  '.join(f"{label:>12}" for label in DIFFICULTY_LEVELS),
    ]
    for original in DIFFICULTY_LEVELS:
        row = '  '.join(f"{matrix.counts[original][assigned]:>12}" for assigned in DIFFICULTY_LEVELS)
        lines.append(f"  {original:<14} {row}")

    lines.append('')
    lines.append('Final distribution:')
    for label in DIFFICULTY_LEVELS:
        count = matrix.column_total(label)
        lines.append(f"  {label}: {count} ({_pct(count, summary.total)})")
    return '\n'.join(lines)
