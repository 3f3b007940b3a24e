from __future__ import annotations

import logging
import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError, as_completed
from dataclasses import dataclass
from typing import Callable, Sequence

from rich.console import Console

from .config import Config, default_resize_workers
from .image_processing import ImageTranscoder
from .logging_utils import get_logger
from .models import Album, MediaCandidate, UploadedMedia
from .photo_service import PermissionDenied, PhotoService, PhotoServiceError
from .progress import EventKind, ProgressAggregator, ProgressEvent


class PipelineError(RuntimeError):
    pass


@dataclass
class SyncResult:
    requested: int
    already_present: int = 0
    uploaded: int = 0
    failed: int = 0
    saved: int = 0
    not_writable: bool = False


class _Countdown:
    """
    Shared gate on how many hand-off takes remain across all upload workers.
    """

    def __init__(self, n: int):
        self._n = n
        self._lock = threading.Lock()

    def take(self) -> bool:
        with self._lock:
            if self._n <= 0:
                return False
            self._n -= 1
            return True


class SyncPipeline:
    """
    Moves one album's worth of files into the album: resize -> upload -> save.

    Resize workers drain a shared pool and feed a bounded hand-off queue,
    upload workers turn hand-off items into upload tokens, and the save stage
    attaches tokens to the album in name order once every upload has finished.
    State lives only for the duration of a single `run` call.
    """

    def __init__(
        self,
        service: PhotoService,
        transcoder: ImageTranscoder,
        *,
        resize_workers: int | None = None,
        upload_workers: int = 1,
        max_dimension: int = 4608,
        save_batch_size: int = 10,
        save_retry_seconds: float = 30.0,
        save_attempts: int = 3,
        poll_seconds: float = 0.1,
        join_timeout_seconds: float = 24 * 60 * 60,
        skip_album_load: bool = False,
        logger: logging.Logger | None = None,
        console: Console | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.service = service
        self.transcoder = transcoder
        self.resize_workers = max(1, resize_workers if resize_workers is not None else default_resize_workers())
        self.upload_workers = max(1, upload_workers)
        self.max_dimension = max_dimension
        self.save_batch_size = max(1, save_batch_size)
        self.save_retry_seconds = save_retry_seconds
        self.save_attempts = max(1, save_attempts)
        self.poll_seconds = poll_seconds
        self.join_timeout_seconds = join_timeout_seconds
        self.skip_album_load = skip_album_load
        self.logger = get_logger(logger)
        self.console = console
        self._sleep = sleep

    @classmethod
    def from_config(
        cls,
        cfg: Config,
        service: PhotoService,
        transcoder: ImageTranscoder,
        **kwargs,
    ) -> "SyncPipeline":
        return cls(
            service,
            transcoder,
            resize_workers=cfg.resize_workers,
            upload_workers=cfg.upload_workers,
            max_dimension=cfg.max_dimension,
            save_batch_size=cfg.save_batch_size,
            save_retry_seconds=cfg.save_retry_seconds,
            save_attempts=cfg.save_attempts,
            poll_seconds=cfg.poll_seconds,
            join_timeout_seconds=cfg.join_timeout_seconds,
            **kwargs,
        )

    def _resize_worker(
        self,
        idx: int,
        pool: "queue.Queue[MediaCandidate]",
        handoff: "queue.Queue[tuple[MediaCandidate, MediaCandidate]]",
        events: "queue.Queue[ProgressEvent]",
        abort: threading.Event,
    ) -> None:
        while not abort.is_set():
            try:
                cand = pool.get_nowait()
            except queue.Empty:
                break
            events.put(ProgressEvent(EventKind.RESIZE_STARTED, idx, cand))
            staged = cand
            if self.transcoder.is_resize_eligible(cand.source_file):
                out = self.transcoder.resize(cand.source_file, self.max_dimension)
                staged = MediaCandidate(display_name=cand.display_name, source_file=out)
                events.put(ProgressEvent(EventKind.RESIZE_DONE, idx, cand))
            else:
                events.put(ProgressEvent(EventKind.RESIZE_SKIPPED, idx, cand))
            handoff.put((cand, staged))
        events.put(ProgressEvent(EventKind.RESIZE_STAGE_DONE, idx))

    def _upload_worker(
        self,
        idx: int,
        remaining: _Countdown,
        handoff: "queue.Queue[tuple[MediaCandidate, MediaCandidate]]",
        events: "queue.Queue[ProgressEvent]",
        abort: threading.Event,
        uploaded: list[UploadedMedia],
        uploaded_lock: threading.Lock,
    ) -> None:
        while remaining.take():
            item = None
            while item is None:
                if abort.is_set():
                    return
                try:
                    item = handoff.get(timeout=self.poll_seconds)
                except queue.Empty:
                    continue
            cand, staged = item
            events.put(ProgressEvent(EventKind.UPLOAD_STARTED, idx, cand))
            try:
                token = self.service.upload_single_file(cand.display_name, staged.source_file)
            except PermissionDenied:
                raise
            except PhotoServiceError as e:
                self.logger.error(f"Can't upload {staged.source_file}: {e}")
                token = None
            finally:
                if staged.source_file != cand.source_file:
                    staged.source_file.unlink(missing_ok=True)

            if token is None:
                self.logger.warning(f"Upload failed, skipping {cand.display_name}")
                events.put(ProgressEvent(EventKind.UPLOAD_FAILED, idx, cand))
                continue
            with uploaded_lock:
                uploaded.append(
                    UploadedMedia(display_name=cand.display_name, upload_token=token, source_file=cand.source_file)
                )
            events.put(ProgressEvent(EventKind.UPLOAD_DONE, idx, cand))
        events.put(ProgressEvent(EventKind.UPLOAD_STAGE_DONE, idx))

    def _discard_staged(self, handoff: "queue.Queue[tuple[MediaCandidate, MediaCandidate]]") -> None:
        while True:
            try:
                cand, staged = handoff.get_nowait()
            except queue.Empty:
                return
            if staged.source_file != cand.source_file:
                staged.source_file.unlink(missing_ok=True)

    def _save_batch(self, album: Album, batch: list[UploadedMedia]) -> bool:
        tokens = [m.upload_token for m in batch]
        for attempt in range(1, self.save_attempts + 1):
            try:
                self.service.save_to_album(album, tokens)
                return True
            except PermissionDenied:
                raise
            except PhotoServiceError as e:
                if attempt >= self.save_attempts:
                    names = ", ".join(m.display_name for m in batch)
                    self.logger.error(
                        f"Giving up on saving {len(batch)} items to album {album.title} "
                        f"after {attempt} attempts: {e} ({names})"
                    )
                    return False
                self.logger.warning(
                    f"Saving to album {album.title} failed (attempt {attempt}/{self.save_attempts}): {e}; "
                    f"retrying in {self.save_retry_seconds:.0f}s"
                )
                self._sleep(self.save_retry_seconds)
        return False

    def _save(self, album: Album, uploaded: list[UploadedMedia], events: "queue.Queue[ProgressEvent]") -> int:
        ordered = sorted(uploaded)
        if not ordered:
            events.put(ProgressEvent(EventKind.SAVE_DONE, count=0))
            return 0
        events.put(ProgressEvent(EventKind.SAVE_STARTED, count=len(ordered)))
        self.logger.debug(f"Adding {len(ordered)} medias to album {album.title}")
        saved = 0
        for start in range(0, len(ordered), self.save_batch_size):
            batch = ordered[start : start + self.save_batch_size]
            if self._save_batch(album, batch):
                saved += len(batch)
        events.put(ProgressEvent(EventKind.SAVE_DONE, count=saved))
        return saved

    def run(self, album: Album, candidates: Sequence[MediaCandidate]) -> SyncResult:
        self.logger.info(f"Album: {album.title}")
        result = SyncResult(requested=len(candidates))

        if self.skip_album_load:
            existing: set[str] = set()
        else:
            existing = {m.filename for m in self.service.retrieve_files_from_album(album)}

        pending = [c for c in candidates if c.display_name not in existing]
        result.already_present = len(candidates) - len(pending)
        if not pending:
            self.logger.debug(f"Nothing to upload for album {album.title}")
            return result

        if not album.writable:
            self.logger.error(f"Album {album.title} is not writable; skipping {len(pending)} files")
            result.not_writable = True
            return result

        total = len(pending)
        self.logger.info(f"Uploading {total} medias")

        pool: queue.Queue[MediaCandidate] = queue.Queue()
        for c in pending:
            pool.put(c)
        handoff: queue.Queue[tuple[MediaCandidate, MediaCandidate]] = queue.Queue(maxsize=total)
        events: queue.Queue[ProgressEvent] = queue.Queue()
        abort = threading.Event()
        remaining = _Countdown(total)
        uploaded: list[UploadedMedia] = []
        uploaded_lock = threading.Lock()

        aggregator = ProgressAggregator(
            album.title,
            total,
            events,
            abort=abort,
            console=self.console,
            poll_seconds=self.poll_seconds,
        )

        try:
            with ThreadPoolExecutor(max_workers=self.resize_workers + self.upload_workers + 1) as ex:
                agg_fut = ex.submit(aggregator.run)
                worker_futs = [
                    ex.submit(self._resize_worker, i, pool, handoff, events, abort)
                    for i in range(self.resize_workers)
                ]
                worker_futs += [
                    ex.submit(self._upload_worker, i, remaining, handoff, events, abort, uploaded, uploaded_lock)
                    for i in range(self.upload_workers)
                ]
                try:
                    for fut in as_completed(worker_futs, timeout=self.join_timeout_seconds):
                        fut.result()
                    result.saved = self._save(album, uploaded, events)
                    agg_fut.result(timeout=self.join_timeout_seconds)
                except FuturesTimeoutError as e:
                    abort.set()
                    raise PipelineError(
                        f"Timed out after {self.join_timeout_seconds:.0f}s syncing album {album.title}"
                    ) from e
                except BaseException:
                    abort.set()
                    raise
        finally:
            # Every worker has exited here; whatever is left was resized but never uploaded.
            self._discard_staged(handoff)

        result.uploaded = len(uploaded)
        result.failed = total - len(uploaded)
        return result
