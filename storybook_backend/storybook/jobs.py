"""
In-memory registry of story sessions.

The pipeline publishes snapshots here; the API only reads them. Discarding a
job makes later snapshots from in-flight requests land nowhere. Finished jobs
expire after ``ttl_s`` seconds without updates, and the oldest finished jobs
are evicted once more than ``max_jobs`` are held; running jobs are never
evicted.
"""
import asyncio
import logging
import time
import uuid
from typing import Callable, Dict, Optional

from .models import StoryRequest, StoryState

logger = logging.getLogger(__name__)


class JobRecord:
    def __init__(self, job_id: str, request: StoryRequest, retains_pcm: bool, now: float):
        self.job_id = job_id
        self.state = StoryState(request=request)
        self.retains_pcm = retains_pcm
        self.pipeline = None
        self.task: Optional[asyncio.Task] = None
        self.updated_at = now

    @property
    def running(self) -> bool:
        return self.task is not None and not self.task.done()


class JobStore:
    def __init__(self, ttl_s: float = 3600.0, max_jobs: int = 100,
                 clock: Callable[[], float] = time.monotonic):
        self._jobs: Dict[str, JobRecord] = {}
        self.ttl_s = ttl_s
        self.max_jobs = max_jobs
        self._clock = clock

    def create_job(self, request: StoryRequest, retains_pcm: bool) -> JobRecord:
        self.evict()
        job = JobRecord(str(uuid.uuid4()), request, retains_pcm, self._clock())
        self._jobs[job.job_id] = job
        logger.info(f"Created job {job.job_id}")
        return job

    def get_job(self, job_id: str) -> Optional[JobRecord]:
        return self._jobs.get(job_id)

    def publish(self, job_id: str, state: StoryState) -> bool:
        job = self._jobs.get(job_id)
        if job is None:
            logger.info(f"Ignoring update for discarded job {job_id}")
            return False
        job.state = state
        job.updated_at = self._clock()
        return True

    def discard(self, job_id: str) -> bool:
        job = self._jobs.pop(job_id, None)
        if job is None:
            return False
        logger.info(f"Discarded job {job_id}")
        return True

    def evict(self) -> int:
        """Drop expired finished jobs, then the oldest finished ones while over ``max_jobs``."""
        now = self._clock()
        finished = sorted((j for j in self._jobs.values() if not j.running), key=lambda j: j.updated_at)
        expired = [j for j in finished if now - j.updated_at >= self.ttl_s]
        overflow = len(self._jobs) - len(expired) - (self.max_jobs - 1)
        if overflow > 0:
            remaining = [j for j in finished if j not in expired]
            expired += remaining[:overflow]
        for job in expired:
            del self._jobs[job.job_id]
        if expired:
            logger.info(f"Evicted {len(expired)} finished jobs, {len(self._jobs)} left")
        return len(expired)

    def __len__(self) -> int:
        return len(self._jobs)
