"""
In-memory job registry with TTL expiry.

Holds every Job for the lifetime of the process (bounded by the TTL) and owns
all state transitions. A single lock serialises create/complete/fail/sweep so
that racing callbacks for the same job resolve to whichever reaches the
pending record first; the loser is a logged no-op.
"""
from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from pdf2csv.errors import InternalError
from pdf2csv.ids import generate_job_id
from pdf2csv.models import Done, Failed, Job, JobState

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 24 * 60 * 60
DEFAULT_SWEEP_INTERVAL_SECONDS = 60 * 60
MAX_ID_ATTEMPTS = 5


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class JobRegistry:

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        sweep_interval_seconds: int = DEFAULT_SWEEP_INTERVAL_SECONDS,
        clock: Optional[Callable[[], datetime]] = None,
        id_factory: Callable[[], str] = generate_job_id,
    ):
        self.ttl = timedelta(seconds=ttl_seconds)
        self.sweep_interval_seconds = sweep_interval_seconds
        self._clock = clock or utc_now
        self._id_factory = id_factory
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()
        self._sweep_lock = threading.Lock()
        self._stop = threading.Event()
        self._sweeper: Optional[threading.Thread] = None

    # ============ Lookups ============

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def __contains__(self, job_id) -> bool:
        return self.get(job_id) is not None

    def _expired(self, job: Job, now: datetime) -> bool:
        return now - job.created_at > self.ttl

    def _live(self, job_id: str, now: datetime) -> Optional[Job]:
        # Caller holds the lock. Expired records vanish even between sweeps.
        job = self._jobs.get(job_id)
        if job is not None and self._expired(job, now):
            del self._jobs[job_id]
            return None
        return job

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._live(job_id, self._clock())

    def list_jobs(self) -> List[Job]:
        now = self._clock()
        with self._lock:
            return [job for job in self._jobs.values() if not self._expired(job, now)]

    def stats(self) -> Dict[str, int]:
        counts = {"total": 0, "pending": 0, "done": 0, "failed": 0}
        for job in self.list_jobs():
            counts["total"] += 1
            counts[job.state.value] += 1
        return counts

    # ============ Transitions ============

    def create(self, filename: str) -> Job:
        with self._lock:
            now = self._clock()
            for _ in range(MAX_ID_ATTEMPTS):
                job_id = self._id_factory()
                if self._live(job_id, now) is None:
                    break
                logger.warning("Job id collision on %s, regenerating", job_id)
            else:
                raise InternalError("Could not allocate a unique job id")

            job = Job(id=job_id, source_filename=filename, created_at=now, updated_at=now)
            self._jobs[job_id] = job
        logger.info("Job created: %s for %s", job_id, filename)
        return job

    def _finish(self, job_id: str, outcome) -> Optional[Job]:
        with self._lock:
            now = self._clock()
            job = self._live(job_id, now)
            if job is None:
                return None
            if job.is_terminal:
                logger.info(
                    "Ignoring %s update for job %s: already %s",
                    outcome.state.value, job_id, job.state.value,
                )
                return job
            job = job.transition(outcome, now)
            self._jobs[job_id] = job
        return job

    def complete(self, job_id: str, artifact_ref: str) -> Optional[Job]:
        """Mark a pending job done. Terminal jobs are returned unchanged."""
        job = self._finish(job_id, Done(artifact_ref=artifact_ref))
        if job is not None and job.artifact_ref == artifact_ref:
            logger.info("Job completed: %s -> %s", job_id, artifact_ref)
        return job

    def fail(self, job_id: str, reason: str) -> Optional[Job]:
        """Mark a pending job failed. Terminal jobs are returned unchanged."""
        job = self._finish(job_id, Failed(reason=reason))
        if job is not None and job.state is JobState.FAILED and job.error_detail == reason:
            logger.warning("Job failed: %s - %s", job_id, reason)
        return job

    # ============ Expiry ============

    def sweep(self, now: Optional[datetime] = None) -> int:
        """Drop every record older than the TTL, whatever its state."""
        if not self._sweep_lock.acquire(blocking=False):
            return 0
        try:
            with self._lock:
                now = now or self._clock()
                expired = [job_id for job_id, job in self._jobs.items() if self._expired(job, now)]
                for job_id in expired:
                    del self._jobs[job_id]
        finally:
            self._sweep_lock.release()

        if expired:
            hours = self.ttl.total_seconds() / 3600
            logger.info("Cleaned up %d old jobs (older than %gh)", len(expired), hours)
        return len(expired)

    def _run_sweeper(self) -> None:
        while not self._stop.wait(self.sweep_interval_seconds):
            try:
                self.sweep()
            except Exception:
                logger.exception("Job sweep failed")

    def start(self) -> None:
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop.clear()
        self._sweeper = threading.Thread(target=self._run_sweeper, name="job-sweeper", daemon=True)
        self._sweeper.start()
        logger.info("Job sweeper started (every %ss)", self.sweep_interval_seconds)

    def stop(self) -> None:
        self._stop.set()
        sweeper, self._sweeper = self._sweeper, None
        if sweeper is not None and sweeper.is_alive():
            sweeper.join(timeout=5)
            logger.info("Job sweeper stopped")

    @property
    def running(self) -> bool:
        return self._sweeper is not None and self._sweeper.is_alive()
