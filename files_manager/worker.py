"""Background worker for the thumbnail pipeline and welcome messages.

Each job moves enqueued -> processing -> done | failed. Failed jobs go back to
their queue, which retries them with backoff until the attempts run out.
"""
import argparse
import logging
import signal
import threading
from typing import Any, Dict, List, Optional

from .core.config import get_settings
from .core.exceptions import InfrastructureError, JobError
from .db import models
from .db.database import Database
from .services import thumbnails
from .services.queue import FILE_QUEUE, USER_QUEUE, BaseQueue, Job, QueueFactory

logger = logging.getLogger(__name__)


def process_file_job(database: Database, data: Dict[str, Any], timeout: Optional[float] = None) -> List[str]:
    file_id = data.get("fileId")
    user_id = data.get("userId")
    if not file_id:
        raise JobError("Missing fileId")
    if not user_id:
        raise JobError("Missing userId")

    db = database.session()
    try:
        item = db.query(models.FileEntry).filter_by(id=file_id, user_id=user_id).first()
        if item is None:
            raise JobError("File not found")
        local_path = item.local_path
    finally:
        db.close()

    if not local_path:
        raise JobError("File has no content")
    logger.info("Generating thumbnails for %s", file_id)
    return thumbnails.generate_thumbnails(local_path, timeout=timeout)


def process_user_job(database: Database, data: Dict[str, Any]) -> None:
    user_id = data.get("userId")
    if not user_id:
        raise JobError("Missing userId")

    db = database.session()
    try:
        user = db.query(models.User).filter_by(id=user_id).first()
        if user is None:
            raise JobError("User not found")
        logger.info("Welcome %s!", user.email)
    finally:
        db.close()


class Worker:
    """Pool of consumer threads; every queue gets ``concurrency`` of them."""

    def __init__(
        self,
        database: Database,
        queues: Dict[str, BaseQueue],
        concurrency: int = 2,
        job_timeout: Optional[float] = None,
        poll_timeout: float = 1.0,
    ):
        self.database = database
        self.queues = queues
        self.concurrency = concurrency
        self.job_timeout = job_timeout
        self.poll_timeout = poll_timeout
        self._stop = threading.Event()
        self._threads: List[threading.Thread] = []

    def dispatch(self, queue_name: str, data: Dict[str, Any]) -> Any:
        if queue_name == FILE_QUEUE:
            return process_file_job(self.database, data, self.job_timeout)
        if queue_name == USER_QUEUE:
            return process_user_job(self.database, data)
        raise JobError(f"No handler for queue {queue_name}")

    def handle(self, queue: BaseQueue, job: Job) -> bool:
        logger.info("Processing job %s on %s (attempt %d)", job.id, queue.name, job.attempts_made + 1)
        try:
            self.dispatch(queue.name, job.data)
        except Exception as e:
            # Retry policy belongs to the queue
            queue.fail(job, e)
            return False
        queue.complete(job)
        return True

    def run_once(self, queue: BaseQueue, timeout: float = 0) -> bool:
        job = queue.get(timeout=timeout)
        if job is None:
            return False
        self.handle(queue, job)
        return True

    def drain(self) -> int:
        """Process whatever is ready on every queue, then return."""
        processed = 0
        for queue in self.queues.values():
            while self.run_once(queue):
                processed += 1
        return processed

    def _consume(self, queue: BaseQueue) -> None:
        while not self._stop.is_set():
            try:
                self.run_once(queue, timeout=self.poll_timeout)
            except InfrastructureError as e:
                logger.error("Queue %s unavailable: %s", queue.name, e)
                self._stop.wait(self.poll_timeout)
            except Exception:
                # A consumer thread only ends through stop()
                logger.exception("Unexpected error while consuming %s", queue.name)
                self._stop.wait(self.poll_timeout)

    def start(self) -> None:
        self._stop.clear()
        for queue in self.queues.values():
            for index in range(self.concurrency):
                thread = threading.Thread(
                    target=self._consume,
                    args=(queue,),
                    name=f"{queue.name}-{index}",
                    daemon=True,
                )
                thread.start()
                self._threads.append(thread)
        logger.info("Worker started with %d threads", len(self._threads))

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        for thread in self._threads:
            thread.join(timeout)
        self._threads = []

    def wait(self) -> None:
        while not self._stop.is_set():
            self._stop.wait(1.0)


def main(argv=None) -> None:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Run the files manager background worker")
    parser.add_argument("--concurrency", type=int, default=settings.WORKER_CONCURRENCY)
    parser.add_argument("--burst", action="store_true", help="process ready jobs and exit")
    args = parser.parse_args(argv)

    logging.basicConfig(level=settings.LOG_LEVEL)

    database = Database(settings.DATABASE_URL)
    database.connect()
    queues = {name: QueueFactory.get_queue(name, settings) for name in (FILE_QUEUE, USER_QUEUE)}
    worker = Worker(
        database,
        queues,
        concurrency=args.concurrency,
        job_timeout=settings.THUMBNAIL_JOB_TIMEOUT,
    )

    try:
        if args.burst:
            logger.info("Processed %d jobs", worker.drain())
        else:
            signal.signal(signal.SIGTERM, lambda *_: worker.stop())
            worker.start()
            worker.wait()
    except KeyboardInterrupt:
        logger.info("Worker interrupted")
    finally:
        worker.stop()
        for queue in queues.values():
            queue.close()
        database.close()


if __name__ == "__main__":
    main()
