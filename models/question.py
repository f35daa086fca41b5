from models import db
from datetime import datetime, timezone
from sqlalchemy.orm import validates
import uuid

DIFFICULTY_LEVELS = ('beginner', 'intermediate', 'advanced')


class Question(db.Model):
    """Question model - all quiz questions (MCQ, true/false, fill-in-blank, writing)"""
    __tablename__ = 'questions'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    question = db.Column(db.String, nullable=False)
    correct_answer = db.Column(db.String, nullable=False)
    explanation = db.Column(db.String)

    # e.g. 'unit-2', 'Days of the Week'
    unit_id = db.Column(db.String, nullable=False, index=True)
    topic = db.Column(db.String, nullable=False, index=True)

    # beginner, intermediate, advanced
    difficulty = db.Column(db.String(20), nullable=False, index=True)

    # multiple-choice, true-false, fill-in-blank, writing
    type = db.Column(db.String(20), nullable=False, index=True)

    # MCQ/TF choices e.g. ["le chat", "le chien", ...]
    options = db.Column(db.JSON)

    # Alternate correct answers for writing and fill-in-blank questions
    acceptable_variations = db.Column(db.JSON, default=list)

    # translation, conjugation, open_ended, question_formation, sentence_building
    writing_type = db.Column(db.String(30))

    hints = db.Column(db.JSON, default=list)
    requires_complete_sentence = db.Column(db.Boolean, default=False)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    @validates('difficulty')
    def validate_difficulty(self, key, difficulty):
        if difficulty not in DIFFICULTY_LEVELS:
            raise ValueError(f'Invalid difficulty: {difficulty}. Must be one of {DIFFICULTY_LEVELS}')
        return difficulty

    def __repr__(self):
        return f'<Question {self.id} ({self.difficulty})>'
