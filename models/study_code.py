from models import db
from datetime import datetime, timezone
import uuid


class StudyCode(db.Model):
    """StudyCode model - anonymous student identity, optionally flagged as superuser"""
    __tablename__ = 'study_codes'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Human-friendly code e.g. "happy-panda-42"
    code = db.Column(db.String(50), unique=True, nullable=False)

    # Enables detailed evaluation metadata in API responses
    is_superuser = db.Column(db.Boolean, default=False, nullable=False)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    def __repr__(self):
        return f'<StudyCode {self.code} superuser={self.is_superuser}>'
