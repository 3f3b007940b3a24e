from __future__ import annotations

import enum
import queue
import threading
import time
from dataclasses import dataclass, field

from rich.console import Console, Group
from rich.live import Live
from rich.text import Text

from .models import MediaCandidate


BAR_WIDTH = 40


class EventKind(enum.Enum):
    RESIZE_STARTED = "resize_started"
    RESIZE_DONE = "resize_done"
    RESIZE_SKIPPED = "resize_skipped"
    RESIZE_STAGE_DONE = "resize_stage_done"
    UPLOAD_STARTED = "upload_started"
    UPLOAD_DONE = "upload_done"
    UPLOAD_FAILED = "upload_failed"
    UPLOAD_STAGE_DONE = "upload_stage_done"
    SAVE_STARTED = "save_started"
    SAVE_DONE = "save_done"


@dataclass(frozen=True)
class ProgressEvent:
    kind: EventKind
    worker: int = 0
    media: MediaCandidate | None = None
    count: int = 0


def format_elapsed(seconds: float) -> str:
    s = int(seconds)
    return f"{s // 60:02d}:{s % 60:02d}"


def build_progress_line(album_title: str, completed: int, total: int, elapsed_s: float) -> str:
    pct = (completed * 100 // total) if total > 0 else 0
    filled = (BAR_WIDTH * completed // total) if total > 0 else 0
    bar = "=" * filled + " " * (BAR_WIDTH - filled)
    eta = format_elapsed(elapsed_s * total / completed) if completed > 0 else "??:??"
    return (
        f"Syncing {pct:3d}% | {bar} | {completed}/{total} "
        f"({format_elapsed(elapsed_s)} / {eta}) - Album {album_title}"
    )


def build_final_line(album_title: str, total: int, elapsed_s: float) -> str:
    t = format_elapsed(elapsed_s)
    return f"Syncing 100% | {'=' * BAR_WIDTH} | {total}/{total} ({t} / {t}) - Album {album_title} completed."


@dataclass
class SyncProgress:
    """
    Aggregated view of the event stream for one album.
    """

    album_title: str
    total: int
    completed: int = 0
    resizing: dict[int, str] = field(default_factory=dict)
    uploading: dict[int, str] = field(default_factory=dict)
    save_started: bool = False
    save_done: bool = False
    save_count: int = 0
    started_at: float = field(default_factory=time.monotonic)

    def apply(self, ev: ProgressEvent) -> None:
        name = ev.media.display_name if ev.media is not None else ""
        k = ev.kind
        if k is EventKind.RESIZE_STARTED:
            self.resizing[ev.worker] = name
        elif k in (EventKind.RESIZE_DONE, EventKind.RESIZE_SKIPPED):
            self.resizing.pop(ev.worker, None)
        elif k is EventKind.UPLOAD_STARTED:
            self.uploading[ev.worker] = name
        elif k in (EventKind.UPLOAD_DONE, EventKind.UPLOAD_FAILED):
            # Failed uploads still count as processed.
            self.uploading.pop(ev.worker, None)
            self.completed += 1
        elif k is EventKind.SAVE_STARTED:
            self.save_started = True
            self.save_count = ev.count
        elif k is EventKind.SAVE_DONE:
            self.save_done = True

    def elapsed(self) -> float:
        return time.monotonic() - self.started_at

    def lines(self) -> list[str]:
        out = [build_progress_line(self.album_title, self.completed, self.total, self.elapsed())]
        if self.save_started:
            out.append(f"Saving {self.save_count} photos to album {self.album_title}...")
            return out
        out.extend(f"Resizing: {n}" for n in self.resizing.values())
        out.extend(f"Uploading: {n}" for n in self.uploading.values())
        return out


class ProgressAggregator:
    """
    Single consumer of a pipeline's event queue; renders a live status block.

    Runs until SAVE_DONE arrives or `abort` is set.
    """

    def __init__(
        self,
        album_title: str,
        total: int,
        events: "queue.Queue[ProgressEvent]",
        *,
        abort: threading.Event | None = None,
        console: Console | None = None,
        poll_seconds: float = 0.1,
    ):
        self.state = SyncProgress(album_title=album_title, total=total)
        self.events = events
        self.abort = abort if abort is not None else threading.Event()
        self.console = console if console is not None else Console()
        self.poll_seconds = poll_seconds

    def _drain(self) -> None:
        try:
            ev = self.events.get(timeout=self.poll_seconds)
        except queue.Empty:
            return
        self.state.apply(ev)
        while True:
            try:
                ev = self.events.get_nowait()
            except queue.Empty:
                return
            self.state.apply(ev)

    def _renderable(self) -> Group:
        return Group(*(Text(line) for line in self.state.lines()))

    def run(self) -> SyncProgress:
        with Live(self._renderable(), console=self.console, auto_refresh=False, transient=True) as live:
            while not self.state.save_done and not self.abort.is_set():
                self._drain()
                live.update(self._renderable(), refresh=True)
        if self.state.save_done:
            self.console.print(
                Text(build_final_line(self.state.album_title, self.state.total, self.state.elapsed()))
            )
        return self.state
