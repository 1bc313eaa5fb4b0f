"""
Batch recommendation generation.

A submission is split into fixed-size chunks up front. Each chunk is an
independent job persisted in the job store; it can run inline or on the
worker pool and can be retried wholesale, since generation simply overwrites
the previous list for each user.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set
from uuid import uuid4

from tqdm import tqdm

from ..config import RecommendationConfig
from ..errors import InvalidRequestError, JobNotFoundError
from ..models import JobStatus, RecommendationBatchJob, utc_now
from ..storage import InteractionLog, JobStore
from .service import RecommendationService

_LOG = logging.getLogger(__name__)


def partition(user_ids: Sequence[str], batch_size: int) -> List[List[str]]:
    """Split users into consecutive chunks of at most ``batch_size``."""
    if batch_size < 1:
        raise InvalidRequestError("batch_size must be positive")
    return [list(user_ids[i:i + batch_size]) for i in range(0, len(user_ids), batch_size)]


class BatchRecommendationRunner:
    """Submits, executes and retries chunked recommendation jobs."""

    def __init__(
        self,
        config: RecommendationConfig,
        service: RecommendationService,
        job_store: JobStore,
        interaction_log: InteractionLog,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config
        self.service = service
        self.job_store = job_store
        self.interaction_log = interaction_log
        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()
        self._futures: Dict[str, Future] = {}
        self._running: Set[str] = set()
        self._running_lock = threading.Lock()
        self.clock = clock

    # Submission ---------------------------------------------------------------

    def resolve_users(
        self,
        user_ids: Optional[Iterable[str]] = None,
        all_active: bool = False,
        limit: Optional[int] = None,
        active_days: Optional[int] = None,
    ) -> List[str]:
        """Explicit users in submission order, or every user active within the window."""
        if user_ids is not None:
            ordered = list(dict.fromkeys(uid.strip() for uid in user_ids if uid and uid.strip()))
        elif all_active:
            days = active_days or self.config.popularity_window_days
            since = self.clock() - timedelta(days=days)
            ordered = self.interaction_log.user_ids(active_since=since)
        else:
            raise InvalidRequestError("Provide user_ids or request all active users")
        if limit is not None:
            if limit < 1:
                raise InvalidRequestError("limit must be positive")
            ordered = ordered[:limit]
        return ordered

    def submit(
        self,
        user_ids: Optional[Iterable[str]] = None,
        k: Optional[int] = None,
        all_active: bool = False,
        limit: Optional[int] = None,
        inline: bool = True,
        wait: bool = True,
        show_progress: bool = False,
    ) -> List[RecommendationBatchJob]:
        """Create one job per chunk and run them.

        Args:
            user_ids: Explicit users; otherwise ``all_active`` must be set
            k: List length, defaults to the configured K
            limit: Cap on the number of users
            inline: Run chunks sequentially in the calling thread instead of the pool
            wait: With the pool, block until every chunk is terminal
            show_progress: Display a tqdm progress bar

        Returns:
            Job handles, one per chunk, in chunk order
        """
        k = self.service.engine.validate_k(k)
        users = self.resolve_users(user_ids, all_active=all_active, limit=limit)
        if not users:
            _LOG.info("Batch submission matched no users")
            return []

        batch_id = uuid4().hex
        jobs = [
            RecommendationBatchJob(batch_id=batch_id, chunk_index=index, user_ids=chunk, k=k)
            for index, chunk in enumerate(partition(users, self.config.batch_size))
        ]
        for job in jobs:
            self.job_store.put(job)
        _LOG.info(
            "Batch %s: %d users in %d chunks of up to %d (k=%d)",
            batch_id, len(users), len(jobs), self.config.batch_size, k,
        )

        if inline:
            for job in tqdm(jobs, desc="Recommendation chunks", disable=not show_progress):
                self.run_job(job)
        else:
            futures = {self._dispatch(job): job.job_id for job in jobs}
            if wait:
                for future in tqdm(
                    as_completed(futures), total=len(futures), desc="Recommendation chunks",
                    disable=not show_progress,
                ):
                    future.result()

        return [self.get_job(job.job_id) for job in jobs]

    # Execution ----------------------------------------------------------------

    def run_job(self, job: RecommendationBatchJob) -> RecommendationBatchJob:
        """Execute one chunk; per-user failures are isolated and tallied."""
        with self._running_lock:
            self._running.add(job.job_id)
        try:
            return self._execute(job)
        finally:
            with self._running_lock:
                self._running.discard(job.job_id)

    def _execute(self, job: RecommendationBatchJob) -> RecommendationBatchJob:
        job.status = JobStatus.RUNNING
        job.attempts += 1
        job.started_at = self.clock()
        job.finished_at = None
        job.failures = {}
        job.failure_count = 0
        job.completed_users = 0
        job.error = None
        self.job_store.put(job)

        try:
            candidates = self.service.load_candidates()
            popularity = self.service.popularity()
            for user_id in job.user_ids:
                try:
                    self.service.get_recommendations(
                        user_id, job.k, candidates=candidates, popularity=popularity
                    )
                except Exception as exc:
                    _LOG.warning("Batch %s chunk %d: user %s failed: %s", job.batch_id, job.chunk_index, user_id, exc)
                    job.failures[user_id] = str(exc)
                    continue
                job.completed_users += 1
            job.failure_count = len(job.failures)
            job.status = JobStatus.FAILED if job.failure_count else JobStatus.COMPLETED
        except Exception as exc:
            _LOG.exception("Batch %s chunk %d failed", job.batch_id, job.chunk_index)
            job.error = str(exc)
            job.failure_count = len(job.user_ids) - job.completed_users
            job.status = JobStatus.FAILED

        job.finished_at = self.clock()
        self.job_store.put(job)
        _LOG.info(
            "Batch %s chunk %d %s: %d ok, %d failed",
            job.batch_id, job.chunk_index, job.status.value, job.completed_users, job.failure_count,
        )
        return job

    def retry(self, job_id: str, inline: bool = True) -> RecommendationBatchJob:
        """Re-run a chunk wholesale.

        A chunk persisted as running with no live worker behind it was
        abandoned by a crashed process and is re-run like any other.
        """
        job = self.get_job(job_id)
        if self.is_in_flight(job_id):
            raise InvalidRequestError(f"Job {job_id} is still running")
        if job.status is JobStatus.RUNNING:
            _LOG.warning("Job %s was left running by a dead worker; re-running it", job_id)
        if inline:
            return self.run_job(job)
        job.status = JobStatus.QUEUED
        self.job_store.put(job)
        self._dispatch(job)
        return job

    def is_in_flight(self, job_id: str) -> bool:
        """Whether this process is executing or has queued the job."""
        with self._running_lock:
            if job_id in self._running:
                return True
        future = self._futures.get(job_id)
        return future is not None and not future.done()

    def get_job(self, job_id: str) -> RecommendationBatchJob:
        job = self.job_store.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Unknown job: {job_id}")
        return job

    def batch_jobs(self, batch_id: str) -> List[RecommendationBatchJob]:
        return self.job_store.for_batch(batch_id)

    def shutdown(self, wait: bool = True) -> None:
        with self._executor_lock:
            if self._executor is not None:
                self._executor.shutdown(wait=wait)
                self._executor = None

    def _dispatch(self, job: RecommendationBatchJob) -> Future:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.config.max_workers, thread_name_prefix="rec-batch"
                )
            future = self._executor.submit(self.run_job, job)
        self._futures[job.job_id] = future
        future.add_done_callback(lambda _f, job_id=job.job_id: self._futures.pop(job_id, None))
        return future
