"""
Upload orchestration: create the job, hand the PDF to the workflow, and
record a dispatch failure on the job itself.
"""
from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Union

from pdf2csv.errors import InvalidInput, NotFound, sanitize_error
from pdf2csv.ids import is_valid_job_id
from pdf2csv.models import Job
from pdf2csv.services.dispatcher import Dispatcher
from pdf2csv.services.job_registry import JobRegistry
from pdf2csv.uploads import discard

logger = logging.getLogger(__name__)


class JobService:

    def __init__(self, registry: JobRegistry, dispatcher: Dispatcher, run_async: bool = True):
        self.registry = registry
        self.dispatcher = dispatcher
        self.run_async = run_async

    def submit(self, pdf: Union[bytes, str], filename: str) -> Job:
        """Create a pending job for ``pdf`` (bytes or spooled path) and dispatch it."""
        try:
            job = self.registry.create(filename)
        except Exception:
            if isinstance(pdf, str):
                discard(pdf)
            raise

        if self.run_async:
            t = threading.Thread(target=self._dispatch, args=(job.id, pdf, filename), daemon=True)
            t.start()
        else:
            self._dispatch(job.id, pdf, filename)
        return job

    def _dispatch(self, job_id: str, pdf: Union[bytes, str], filename: str) -> None:
        try:
            result = self.dispatcher.dispatch(pdf, filename, job_id)
        except Exception as e:
            logger.exception("Dispatch crashed for job %s", job_id)
            self.registry.fail(job_id, sanitize_error(f"Conversion dispatch failed: {e}"))
            return
        finally:
            if isinstance(pdf, str):
                discard(pdf)

        if not result.ok:
            self.registry.fail(job_id, sanitize_error(result.error))

    def status(self, job_id) -> Dict[str, Any]:
        if not is_valid_job_id(job_id):
            raise InvalidInput("Invalid job ID format", code="INVALID_JOB_ID")
        job = self.registry.get(job_id)
        if job is None:
            raise NotFound("Job not found", code="JOB_NOT_FOUND")
        return job.to_dict()

    def listing(self) -> Dict[str, Any]:
        jobs = sorted(self.registry.list_jobs(), key=lambda j: j.created_at, reverse=True)
        return {
            "stats": self.registry.stats(),
            "jobs": [
                dict(job.to_dict(), artifactRef=job.artifact_ref) if job.artifact_ref else job.to_dict()
                for job in jobs
            ],
        }
