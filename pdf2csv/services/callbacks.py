"""
Inbound callbacks from the conversion workflow.

Every callback is checked in the same order before anything else happens:
shared secret, job id format, job existence. A failure callback for an
unknown job is acknowledged so the workflow does not retry it forever; a
success callback for an unknown job is an orphaned artifact and is rejected.
"""
from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, Optional, Union

from pdf2csv.errors import InvalidInput, NotFound, UpstreamUnavailable, Unauthorized, sanitize_error
from pdf2csv.ids import is_valid_job_id
from pdf2csv.models import JobState
from pdf2csv.services.blob_store import BlobStore, artifact_key
from pdf2csv.services.job_registry import JobRegistry
from pdf2csv.uploads import discard

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_REASON = "Conversion workflow failed"
NO_ARTIFACT_REASON = "No CSV file received from conversion workflow"


class CallbackHandler:

    def __init__(self, registry: JobRegistry, blob_store: BlobStore, secret: Optional[str]):
        self.registry = registry
        self.blob_store = blob_store
        self.secret = secret or ""

    def _authenticate(self, secret, job_id) -> None:
        if not self.secret or not isinstance(secret, str) or secret != self.secret:
            logger.warning("Invalid callback secret for job: %s", job_id)
            raise Unauthorized()

    @staticmethod
    def _check_job_id(job_id) -> None:
        if not is_valid_job_id(job_id):
            raise InvalidInput("Invalid or missing job ID", code="INVALID_JOB_ID")

    @staticmethod
    def _read_artifact(artifact: Union[bytes, str, None]) -> bytes:
        if artifact is None:
            return b""
        if isinstance(artifact, (bytes, bytearray)):
            return bytes(artifact)
        if not os.path.isfile(artifact):
            return b""
        with open(artifact, "rb") as f:
            return f.read()

    def on_success(self, job_id, secret, artifact: Union[bytes, str, None],
                   name: Optional[str] = None) -> Dict[str, Any]:
        """Store the converted CSV and complete the job.

        ``artifact`` is either the CSV bytes or the path of a spooled temp
        file; a spooled file is removed whatever the outcome.
        """
        try:
            return self._on_success(job_id, secret, artifact, name)
        finally:
            if isinstance(artifact, (str, os.PathLike)):
                discard(artifact)

    def _on_success(self, job_id, secret, artifact, name) -> Dict[str, Any]:
        self._authenticate(secret, job_id)
        self._check_job_id(job_id)
        logger.info("Conversion callback received for job: %s", job_id)

        job = self.registry.get(job_id)
        if job is None:
            logger.warning("Success callback for unknown job: %s", job_id)
            raise NotFound("Job not found", code="JOB_NOT_FOUND")

        if job.is_terminal:
            logger.info("Duplicate success callback for %s job %s ignored", job.state.value, job_id)
            return {"ok": True, "jobId": job_id, "message": f"Job already {job.state.value}"}

        data = self._read_artifact(artifact)
        if not data:
            logger.error("No CSV file in callback for job: %s", job_id)
            self.registry.fail(job_id, NO_ARTIFACT_REASON)
            raise InvalidInput("No CSV file uploaded", code="NO_CSV_FILE")

        key = artifact_key(job_id, name or job.output_filename)
        try:
            ref = self.blob_store.put(key, data, content_type="text/csv")
        except UpstreamUnavailable as e:
            self.registry.fail(job_id, sanitize_error(f"CSV processing failed: {e.message}"))
            raise

        job = self.registry.complete(job_id, ref)
        if job is None or job.artifact_ref != ref:
            # Lost the race to another terminal callback, or the job expired meanwhile.
            if not self.blob_store.delete(ref):
                logger.warning("Could not remove orphaned artifact %s", ref)
            state = job.state.value if job is not None else "expired"
            return {"ok": True, "jobId": job_id, "message": f"Job already {state}"}

        logger.info("Job completed: %s - CSV stored: %s (%.2fKB)", job_id, ref, len(data) / 1024)
        return {
            "ok": True,
            "jobId": job_id,
            "message": "CSV processed and stored successfully",
            "fileId": ref,
        }

    def on_failure(self, job_id, secret, reason: Optional[str] = None,
                   details: Any = None) -> Dict[str, Any]:
        """Record a failure reported by the workflow."""
        self._authenticate(secret, job_id)
        self._check_job_id(job_id)
        logger.info("Conversion error callback for job: %s", job_id)

        job = self.registry.get(job_id)
        if job is None:
            logger.warning("Error callback for unknown job: %s", job_id)
            return {"ok": True, "message": "Job not found, but error acknowledged"}

        message = (reason or "").strip() if isinstance(reason, str) else ""
        message = message or DEFAULT_FAILURE_REASON
        if details:
            message = f"{message}: {json.dumps(details, default=str)}"

        job = self.registry.fail(job_id, sanitize_error(message))
        if job is not None and job.state is JobState.DONE:
            return {"ok": True, "jobId": job_id, "message": "Job already done, error ignored"}

        return {
            "ok": True,
            "jobId": job_id,
            "message": "Error acknowledged and job marked as failed",
        }
