"""Issues download locators for finished jobs."""
from __future__ import annotations

from typing import NamedTuple, Optional

from pdf2csv.errors import InvalidInput, NotFound, NotReady
from pdf2csv.ids import is_valid_job_id
from pdf2csv.models import JobState
from pdf2csv.services.blob_store import BlobStore
from pdf2csv.services.job_registry import JobRegistry


class Locator(NamedTuple):
    url: str
    filename: str
    expires_in_seconds: Optional[int]

    def to_dict(self):
        return {
            "url": self.url,
            "filename": self.filename,
            "expiresInSeconds": self.expires_in_seconds,
        }


class DownloadResolver:

    def __init__(self, registry: JobRegistry, blob_store: BlobStore):
        self.registry = registry
        self.blob_store = blob_store

    def resolve(self, job_id) -> Locator:
        """Locator for a done job's CSV; a fresh one on every call."""
        if not is_valid_job_id(job_id):
            raise InvalidInput("Invalid job ID format", code="INVALID_JOB_ID")

        job = self.registry.get(job_id)
        if job is None or job.state is JobState.FAILED:
            raise NotFound("Job not found", code="JOB_NOT_FOUND")
        if job.state is JobState.PENDING:
            raise NotReady()

        location = self.blob_store.locate(job.artifact_ref)
        return Locator(location.url, job.output_filename, location.expires_in_seconds)
