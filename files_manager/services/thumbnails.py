import io
import logging
import os
import threading
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Iterable, List, Optional

from PIL import Image

from ..core.exceptions import JobError
from . import storage

logger = logging.getLogger(__name__)

THUMBNAIL_WIDTHS = (500, 250, 100)


class ThumbnailBatch:
    """Tracks the variants one generation attempt has put in place.

    Once aborted, no further variant is published, and ``abort`` hands back
    every path that already landed so the caller can remove them.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._aborted = False
        self._written: List[str] = []

    @property
    def aborted(self) -> bool:
        return self._aborted

    def publish(self, tmp_path: str, path: str) -> bool:
        with self._lock:
            if self._aborted:
                return False
            os.replace(tmp_path, path)
            self._written.append(path)
            return True

    def abort(self) -> List[str]:
        with self._lock:
            self._aborted = True
            return list(self._written)


def render_thumbnail(original: bytes, width: int) -> bytes:
    """Resize to ``width`` keeping the aspect ratio and the original format."""
    with Image.open(io.BytesIO(original)) as image:
        image_format = image.format or "PNG"
        height = max(1, round(image.height * width / image.width))
        resized = image.resize((width, height), Image.LANCZOS)
        if image_format == "JPEG" and resized.mode not in ("RGB", "L"):
            resized = resized.convert("RGB")
        buffer = io.BytesIO()
        resized.save(buffer, format=image_format)
        return buffer.getvalue()


def generate_thumbnail(local_path: str, original: bytes, width: int,
                       batch: Optional[ThumbnailBatch] = None) -> str:
    path = storage.variant_path(local_path, width)
    if batch is not None and batch.aborted:
        raise JobError(f"Thumbnail {width} aborted")
    contents = render_thumbnail(original, width)
    publish = batch.publish if batch is not None else None
    if not storage.write_file_atomic(path, contents, publish=publish):
        raise JobError(f"Thumbnail {width} aborted")
    logger.info("Generated thumbnail %s", path)
    return path


def generate_thumbnails(
    local_path: str,
    widths: Iterable[int] = THUMBNAIL_WIDTHS,
    timeout: float = None,
) -> List[str]:
    """Write every width in parallel; the set only counts once all writes succeed.

    If any write fails or the set does not finish within ``timeout`` seconds, the
    attempt is aborted: widths still rendering never publish, and the variants
    this call already wrote are removed before the error is raised.
    """
    widths = list(widths)
    original = storage.read_file(local_path)
    batch = ThumbnailBatch()

    executor = ThreadPoolExecutor(max_workers=len(widths), thread_name_prefix="thumbnail")
    try:
        futures = [executor.submit(generate_thumbnail, local_path, original, width, batch) for width in widths]
        done, pending = wait(futures, timeout=timeout, return_when=FIRST_EXCEPTION)
        failed = [future for future in done if future.exception() is not None]
        if failed or pending:
            for path in batch.abort():
                storage.delete_file(path)
            for future in pending:
                future.cancel()
            if failed:
                raise failed[0].exception()
            raise JobError(f"Thumbnail generation timed out after {timeout}s")
        return [future.result() for future in futures]
    finally:
        executor.shutdown(wait=False)
