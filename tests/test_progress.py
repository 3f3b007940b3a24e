from __future__ import annotations

import queue
import threading
from pathlib import Path

from photobatch.models import MediaCandidate
from photobatch.progress import (
    BAR_WIDTH,
    EventKind,
    ProgressAggregator,
    ProgressEvent,
    SyncProgress,
    build_final_line,
    build_progress_line,
    format_elapsed,
)


def _cand(name: str) -> MediaCandidate:
    return MediaCandidate(display_name=name, source_file=Path(f"/x/{name}.jpg"))


def test_format_elapsed():
    assert format_elapsed(0) == "00:00"
    assert format_elapsed(75.9) == "01:15"
    assert format_elapsed(3600) == "60:00"


def test_progress_line_before_anything_completes():
    line = build_progress_line("Trip", 0, 4, 5.0)
    assert line == f"Syncing   0% | {' ' * BAR_WIDTH} | 0/4 (00:05 / ??:??) - Album Trip"


def test_progress_line_estimates_total_time():
    line = build_progress_line("Trip", 1, 4, 10.0)
    assert line.startswith("Syncing  25% | " + "=" * 10 + " " * 30 + " |")
    assert "1/4 (00:10 / 00:40)" in line


def test_final_line():
    assert build_final_line("Trip", 3, 61) == f"Syncing 100% | {'=' * BAR_WIDTH} | 3/3 (01:01 / 01:01) - Album Trip completed."


def test_sync_progress_tracks_active_workers():
    p = SyncProgress(album_title="Trip", total=2)
    p.apply(ProgressEvent(EventKind.RESIZE_STARTED, 0, _cand("a")))
    p.apply(ProgressEvent(EventKind.UPLOAD_STARTED, 0, _cand("b")))

    lines = p.lines()
    assert lines[1:] == ["Resizing: a", "Uploading: b"]

    p.apply(ProgressEvent(EventKind.RESIZE_DONE, 0, _cand("a")))
    p.apply(ProgressEvent(EventKind.UPLOAD_FAILED, 0, _cand("b")))
    assert p.completed == 1
    assert p.lines()[1:] == []


def test_sync_progress_save_line_replaces_workers():
    p = SyncProgress(album_title="Trip", total=2)
    p.apply(ProgressEvent(EventKind.UPLOAD_STARTED, 0, _cand("b")))
    p.apply(ProgressEvent(EventKind.SAVE_STARTED, count=2))
    assert p.lines()[1:] == ["Saving 2 photos to album Trip..."]


def test_aggregator_stops_on_save_done(console):
    events: queue.Queue[ProgressEvent] = queue.Queue()
    for kind in (EventKind.UPLOAD_STARTED, EventKind.UPLOAD_DONE):
        events.put(ProgressEvent(kind, 0, _cand("a")))
    events.put(ProgressEvent(EventKind.SAVE_STARTED, count=1))
    events.put(ProgressEvent(EventKind.SAVE_DONE, count=1))

    state = ProgressAggregator("Trip", 1, events, console=console, poll_seconds=0.01).run()

    assert state.save_done
    assert state.completed == 1
    assert "Album Trip completed." in console.file.getvalue()


def test_aggregator_stops_on_abort(console):
    abort = threading.Event()
    abort.set()

    state = ProgressAggregator("Trip", 3, queue.Queue(), abort=abort, console=console, poll_seconds=0.01).run()

    assert not state.save_done
    assert "completed." not in console.file.getvalue()
