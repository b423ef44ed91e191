"""Forwards uploaded PDFs to the external conversion workflow.

One attempt per job, bounded in size and time. Success only means the
workflow accepted the file; the CSV arrives later through the callback.
"""
from __future__ import annotations

import io
import logging
import os
from typing import NamedTuple, Optional, Union

import requests

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30
DEFAULT_MAX_BYTES = 50 * 1024 * 1024


class DispatchResult(NamedTuple):
    ok: bool
    status_code: Optional[int] = None
    error: str = ""


class Dispatcher:

    def __init__(self, webhook_url: Optional[str], timeout: float = DEFAULT_TIMEOUT_SECONDS,
                 max_bytes: int = DEFAULT_MAX_BYTES, user_agent: str = "pdf2csv-backend/1.0.0"):
        self.webhook_url = (webhook_url or "").strip()
        self.timeout = timeout
        self.max_bytes = max_bytes
        self.user_agent = user_agent
        if not self.webhook_url:
            logger.warning("CONVERSION_WEBHOOK_URL not configured - PDF forwarding will fail")

    @property
    def configured(self) -> bool:
        return bool(self.webhook_url)

    def _size(self, pdf: Union[bytes, str]) -> int:
        if isinstance(pdf, (bytes, bytearray)):
            return len(pdf)
        return os.path.getsize(pdf)

    def dispatch(self, pdf: Union[bytes, str], filename: str, job_id: str) -> DispatchResult:
        """Send ``pdf`` (bytes or a path) with its job id to the webhook."""
        if not self.webhook_url:
            return DispatchResult(False, error="Conversion webhook URL not configured")

        try:
            size = self._size(pdf)
        except OSError as e:
            return DispatchResult(False, error=f"Could not read upload: {e.strerror or e}")
        if size > self.max_bytes:
            return DispatchResult(
                False, error=f"PDF exceeds dispatch limit ({size} > {self.max_bytes} bytes)"
            )

        logger.info("Forwarding PDF to conversion workflow: %s (Job: %s)", filename, job_id)
        stream = io.BytesIO(pdf) if isinstance(pdf, (bytes, bytearray)) else open(pdf, "rb")
        try:
            resp = requests.post(
                self.webhook_url,
                files={"file": (filename, stream, "application/pdf")},
                data={"jobId": job_id},
                headers={"User-Agent": self.user_agent},
                # Per connect and per read; a trickling reply is not cut off in total
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except requests.Timeout:
            msg = f"Conversion service timed out after {self.timeout:g}s"
            logger.error("Failed to forward PDF for job %s: %s", job_id, msg)
            return DispatchResult(False, error=msg)
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            msg = f"Conversion service rejected the upload (HTTP {status})"
            logger.error("Failed to forward PDF for job %s: %s", job_id, msg)
            return DispatchResult(False, status_code=status, error=msg)
        except requests.RequestException as e:
            msg = f"Conversion service unavailable: {e.__class__.__name__}"
            logger.error("Failed to forward PDF for job %s: %s", job_id, e)
            return DispatchResult(False, error=msg)
        finally:
            stream.close()

        logger.info("Conversion workflow accepted PDF: %s (Status: %s)", filename, resp.status_code)
        return DispatchResult(True, status_code=resp.status_code)

    def health_check(self) -> bool:
        if not self.webhook_url:
            return False
        try:
            resp = requests.head(self.webhook_url, timeout=5)
            return resp.status_code < 400
        except requests.RequestException as e:
            logger.warning("Conversion webhook health check failed: %s", e)
            return False
