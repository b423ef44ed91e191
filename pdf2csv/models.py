"""
Data Models

Key Models:
- Job: one PDF -> CSV conversion, held in memory by the JobRegistry
- StoredFile: CSV artifact row for the database blob store backend
"""
import enum
import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional, Union

from pdf2csv import db


class JobState(enum.Enum):
    PENDING = "pending"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class Pending:
    state = JobState.PENDING


@dataclass(frozen=True)
class Done:
    artifact_ref: str
    state = JobState.DONE


@dataclass(frozen=True)
class Failed:
    reason: str
    state = JobState.FAILED


Outcome = Union[Pending, Done, Failed]


@dataclass(frozen=True)
class Job:
    """
    Snapshot of a conversion job.

    The outcome is a tagged variant, so a done job always carries its
    artifact reference and a failed job always carries a reason. Records are
    immutable; the registry swaps in a new snapshot on every transition.
    """
    id: str
    source_filename: str
    created_at: datetime
    updated_at: datetime
    outcome: Outcome = field(default_factory=Pending)

    @property
    def state(self) -> JobState:
        return self.outcome.state

    @property
    def is_terminal(self) -> bool:
        return self.state is not JobState.PENDING

    @property
    def artifact_ref(self) -> Optional[str]:
        return self.outcome.artifact_ref if isinstance(self.outcome, Done) else None

    @property
    def error_detail(self) -> Optional[str]:
        return self.outcome.reason if isinstance(self.outcome, Failed) else None

    @property
    def output_filename(self) -> str:
        base = re.sub(r"\.pdf$", "", self.source_filename or "", flags=re.IGNORECASE)
        return f"{base or 'converted'}.csv"

    def transition(self, outcome: Outcome, at: datetime) -> "Job":
        return replace(self, outcome=outcome, updated_at=at)

    def to_dict(self):
        """Status read model for API responses"""
        result = {
            'jobId': self.id,
            'state': self.state.value,
            'ready': self.state is JobState.DONE,
            'filename': self.source_filename,
            'createdAt': self.created_at.isoformat(),
            'updatedAt': self.updated_at.isoformat(),
        }
        if self.error_detail:
            result['errorDetail'] = self.error_detail
        return result


class StoredFile(db.Model):
    """CSV artifact persisted by DatabaseBlobStore."""
    __tablename__ = 'stored_files'

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(500), unique=True, nullable=False, index=True)
    filename = db.Column(db.String(255), nullable=False)
    content_type = db.Column(db.String(100), default='text/csv')
    data = db.Column(db.LargeBinary, nullable=False)
    size = db.Column(db.Integer, default=0)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        result = {
            'key': self.key,
            'filename': self.filename,
            'content_type': self.content_type,
            'size': self.size,
        }
        if self.created_at:
            result['created_at'] = self.created_at.isoformat()
        return result
