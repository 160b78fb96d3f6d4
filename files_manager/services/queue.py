import json
import logging
import os
import time
import uuid
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

import redis
from fastapi import Request
from redis.exceptions import RedisError

from ..core.config import Settings, get_settings
from ..core.exceptions import InfrastructureError

logger = logging.getLogger(__name__)

FILE_QUEUE = "fileQueue"
USER_QUEUE = "userQueue"

# Raised by Job.from_json on payloads that can never become a job
CORRUPT_JOB_ERRORS = (ValueError, TypeError, KeyError)


class JobState(str, Enum):
    ENQUEUED = "enqueued"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class Job:
    id: str
    queue: str
    data: Dict[str, Any]
    attempts: int
    attempts_made: int = 0
    state: JobState = JobState.ENQUEUED
    not_before: float = 0.0
    claimed_at: float = 0.0
    error: Optional[str] = None
    # Backend specific reference to the stored copy
    handle: Any = field(default=None, repr=False, compare=False)

    def to_json(self) -> str:
        payload = asdict(self)
        payload.pop("handle")
        payload["state"] = self.state.value
        return json.dumps(payload)

    @classmethod
    def from_json(cls, raw: str, handle: Any = None) -> "Job":
        payload = json.loads(raw)
        payload["state"] = JobState(payload.get("state", JobState.ENQUEUED.value))
        return cls(handle=handle, **payload)


class BaseQueue:
    """Durable job queue with at-least-once delivery and bounded retries.

    A claimed job that is neither completed nor failed within
    ``visibility_timeout`` seconds is handed out again.
    """

    def __init__(self, name: str, attempts: int = 3, backoff_seconds: float = 2.0,
                 visibility_timeout: float = 300.0):
        self.name = name
        self.attempts = attempts
        self.backoff_seconds = backoff_seconds
        self.visibility_timeout = visibility_timeout

    def add(self, data: Dict[str, Any], attempts: Optional[int] = None) -> str:
        job = Job(
            id=uuid.uuid4().hex,
            queue=self.name,
            data=dict(data),
            attempts=attempts or self.attempts,
        )
        self._push(job)
        logger.info("Job %s enqueued on %s: %s", job.id, self.name, job.data)
        return job.id

    def get(self, timeout: float = 1.0) -> Optional[Job]:
        raise NotImplementedError

    def complete(self, job: Job) -> None:
        job.state = JobState.DONE
        self._remove_active(job)
        logger.info("Job %s on %s done", job.id, self.name)

    def fail(self, job: Job, error: Exception) -> None:
        job.attempts_made += 1
        job.error = str(error)
        if job.attempts_made < job.attempts:
            delay = self.retry_delay(job.attempts_made)
            job.state = JobState.ENQUEUED
            job.not_before = time.time() + delay
            self._schedule_retry(job)
            logger.warning(
                "Job %s on %s failed (attempt %d/%d), retrying in %.1fs: %s",
                job.id, self.name, job.attempts_made, job.attempts, delay, error,
            )
        else:
            job.state = JobState.FAILED
            self._park_failed(job)
            logger.error(
                "Job %s on %s failed permanently after %d attempts: %s",
                job.id, self.name, job.attempts_made, error,
            )

    def retry_delay(self, attempts_made: int) -> float:
        return self.backoff_seconds * (2 ** (attempts_made - 1))

    def count(self, state: JobState) -> int:
        raise NotImplementedError

    def is_alive(self) -> bool:
        return True

    def close(self) -> None:
        pass

    def _push(self, job: Job) -> None:
        raise NotImplementedError

    def _remove_active(self, job: Job) -> None:
        raise NotImplementedError

    def _schedule_retry(self, job: Job) -> None:
        raise NotImplementedError

    def _park_failed(self, job: Job) -> None:
        raise NotImplementedError


class LocalQueue(BaseQueue):
    """Handles a local queue using the file system for IPC"""

    def __init__(self, name: str, root: str, attempts: int = 3, backoff_seconds: float = 2.0,
                 poll_interval: float = 0.1, visibility_timeout: float = 300.0):
        super().__init__(name, attempts, backoff_seconds, visibility_timeout)
        self.queue_dir = Path(root) / name
        self.active_dir = self.queue_dir / "active"
        self.failed_dir = self.queue_dir / "failed"
        for directory in (self.queue_dir, self.active_dir, self.failed_dir):
            directory.mkdir(parents=True, exist_ok=True)
        self.poll_interval = poll_interval
        logger.info("LocalQueue initialized at: %s", self.queue_dir)

    def _write(self, path: Path, job: Job) -> None:
        tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
        with open(tmp_path, "w") as f:
            f.write(job.to_json())
        os.replace(tmp_path, path)

    def _push(self, job: Job) -> None:
        job.handle = f"{time.time_ns()}_{job.id}.json"
        self._write(self.queue_dir / job.handle, job)

    def _read(self, task_file: Path) -> Optional[Job]:
        """Load a job file; unreadable payloads are moved to ``failed``."""
        with open(task_file) as f:
            raw = f.read()
        try:
            return Job.from_json(raw, handle=task_file.name)
        except CORRUPT_JOB_ERRORS as e:
            logger.error("Corrupt job file %s on %s: %s", task_file.name, self.name, e)
            try:
                os.replace(task_file, self.failed_dir / task_file.name)
            except FileNotFoundError:
                pass
            return None

    def _requeue_stalled(self) -> None:
        expired = time.time() - self.visibility_timeout
        for active_path in sorted(self.active_dir.glob("*.json")):
            try:
                job = self._read(active_path)
            except FileNotFoundError:
                continue
            if job is None or job.claimed_at > expired:
                continue
            try:
                os.rename(active_path, self.queue_dir / active_path.name)
            except FileNotFoundError:
                # Finished or requeued meanwhile
                continue
            logger.warning("Job %s on %s stalled, requeued", job.id, self.name)

    def _claim_next(self) -> Optional[Job]:
        now = time.time()
        for task_file in sorted(self.queue_dir.glob("*.json")):
            try:
                job = self._read(task_file)
            except FileNotFoundError:
                # Claimed by another consumer
                continue
            if job is None or job.not_before > now:
                continue
            active_path = self.active_dir / task_file.name
            try:
                os.rename(task_file, active_path)
            except FileNotFoundError:
                continue
            job.state = JobState.PROCESSING
            job.claimed_at = now
            self._write(active_path, job)
            return job
        return None

    def get(self, timeout: float = 1.0) -> Optional[Job]:
        deadline = time.monotonic() + max(timeout, 0)
        while True:
            self._requeue_stalled()
            job = self._claim_next()
            if job is not None:
                logger.info("Retrieved job %s from %s", job.id, self.name)
                return job
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            time.sleep(min(self.poll_interval, remaining))

    def _remove_active(self, job: Job) -> None:
        (self.active_dir / job.handle).unlink(missing_ok=True)

    def _schedule_retry(self, job: Job) -> None:
        self._write(self.queue_dir / job.handle, job)
        self._remove_active(job)

    def _park_failed(self, job: Job) -> None:
        self._write(self.failed_dir / job.handle, job)
        self._remove_active(job)

    def count(self, state: JobState) -> int:
        directories = {
            JobState.ENQUEUED: self.queue_dir,
            JobState.PROCESSING: self.active_dir,
            JobState.FAILED: self.failed_dir,
        }
        # Completed jobs are dropped
        if state not in directories:
            return 0
        return len(list(directories[state].glob("*.json")))


class RedisQueue(BaseQueue):
    """Redis lists for waiting/active/failed jobs, sorted sets for scheduled retries and claim times."""

    def __init__(self, name: str, client: redis.Redis, prefix: str = "files_manager",
                 attempts: int = 3, backoff_seconds: float = 2.0, visibility_timeout: float = 300.0):
        super().__init__(name, attempts, backoff_seconds, visibility_timeout)
        self.client = client
        self.prefix = prefix

    def _key(self, suffix: str) -> str:
        return f"{self.prefix}:{self.name}:{suffix}"

    def _push(self, job: Job) -> None:
        try:
            self.client.rpush(self._key("wait"), job.to_json())
        except RedisError as e:
            raise InfrastructureError(f"Failed to enqueue job on {self.name}: {e}") from e

    def _promote_delayed(self) -> None:
        delayed_key = self._key("delayed")
        for raw in self.client.zrangebyscore(delayed_key, "-inf", time.time()):
            # zrem decides which consumer moves it
            if self.client.zrem(delayed_key, raw):
                self.client.rpush(self._key("wait"), raw)

    def _requeue_stalled(self) -> None:
        active_key = self._key("active")
        claimed_key = self._key("claimed")
        now = time.time()
        for raw in self.client.lrange(active_key, 0, -1):
            claimed_at = self.client.zscore(claimed_key, raw)
            if claimed_at is None:
                # Claimer died before recording the claim; start the clock now
                self.client.zadd(claimed_key, {raw: now}, nx=True)
                continue
            if claimed_at > now - self.visibility_timeout:
                continue
            # lrem decides which consumer moves it
            if self.client.lrem(active_key, 1, raw):
                pipe = self.client.pipeline()
                pipe.zrem(claimed_key, raw)
                pipe.rpush(self._key("wait"), raw)
                pipe.execute()
                logger.warning("Stalled job on %s requeued", self.name)

    def get(self, timeout: float = 1.0) -> Optional[Job]:
        try:
            self._promote_delayed()
            self._requeue_stalled()
            if timeout > 0:
                raw = self.client.blmove(self._key("wait"), self._key("active"), timeout, "LEFT", "RIGHT")
            else:
                raw = self.client.lmove(self._key("wait"), self._key("active"), "LEFT", "RIGHT")
            if raw is None:
                return None
            self.client.zadd(self._key("claimed"), {raw: time.time()})
            try:
                job = Job.from_json(raw, handle=raw)
            except CORRUPT_JOB_ERRORS as e:
                logger.error("Corrupt job on %s moved to failed: %s", self.name, e)
                self._move_active(raw, "failed")
                return None
        except RedisError as e:
            raise InfrastructureError(f"Failed to dequeue from {self.name}: {e}") from e
        job.state = JobState.PROCESSING
        job.claimed_at = time.time()
        logger.info("Retrieved job %s from %s", job.id, self.name)
        return job

    def _move_active(self, raw: str, target: Optional[str] = None, payload: Optional[str] = None,
                     score: Optional[float] = None) -> None:
        pipe = self.client.pipeline()
        pipe.lrem(self._key("active"), 1, raw)
        pipe.zrem(self._key("claimed"), raw)
        if target == "failed":
            pipe.rpush(self._key("failed"), payload or raw)
        elif target == "delayed":
            pipe.zadd(self._key("delayed"), {payload: score})
        pipe.execute()

    def _remove_active(self, job: Job) -> None:
        try:
            self._move_active(job.handle)
        except RedisError as e:
            raise InfrastructureError(f"Failed to complete job {job.id} on {self.name}: {e}") from e

    def _schedule_retry(self, job: Job) -> None:
        try:
            self._move_active(job.handle, "delayed", job.to_json(), job.not_before)
        except RedisError as e:
            raise InfrastructureError(f"Failed to schedule retry of job {job.id} on {self.name}: {e}") from e

    def _park_failed(self, job: Job) -> None:
        try:
            self._move_active(job.handle, "failed", job.to_json())
        except RedisError as e:
            raise InfrastructureError(f"Failed to park job {job.id} on {self.name}: {e}") from e

    def count(self, state: JobState) -> int:
        try:
            if state == JobState.ENQUEUED:
                return self.client.llen(self._key("wait")) + self.client.zcard(self._key("delayed"))
            if state == JobState.PROCESSING:
                return self.client.llen(self._key("active"))
            if state == JobState.FAILED:
                return self.client.llen(self._key("failed"))
        except RedisError as e:
            raise InfrastructureError(f"Failed to count jobs on {self.name}: {e}") from e
        return 0

    def is_alive(self) -> bool:
        try:
            return bool(self.client.ping())
        except RedisError:
            return False

    def close(self) -> None:
        self.client.close()


class QueueFactory:
    """Factory to initialize the correct queue handler based on the configured backend"""

    @staticmethod
    def get_queue(name: str, settings: Optional[Settings] = None) -> BaseQueue:
        settings = settings or get_settings()
        backend = settings.QUEUE_BACKEND
        if backend == "local":
            return LocalQueue(
                name,
                settings.QUEUE_DIR,
                attempts=settings.JOB_ATTEMPTS,
                backoff_seconds=settings.JOB_BACKOFF_SECONDS,
                visibility_timeout=settings.JOB_VISIBILITY_TIMEOUT,
            )
        if backend == "redis":
            client = redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)
            return RedisQueue(
                name,
                client,
                prefix=settings.QUEUE_PREFIX,
                attempts=settings.JOB_ATTEMPTS,
                backoff_seconds=settings.JOB_BACKOFF_SECONDS,
                visibility_timeout=settings.JOB_VISIBILITY_TIMEOUT,
            )
        raise ValueError(f"Invalid QUEUE_BACKEND: {backend}. Choose from ['local', 'redis']")


def get_file_queue(request: Request) -> BaseQueue:
    return request.app.state.file_queue


def get_user_queue(request: Request) -> BaseQueue:
    return request.app.state.user_queue
