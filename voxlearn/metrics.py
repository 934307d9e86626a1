"""
Thread-safe metrics logging with batched writes.

Usage:
    metrics = MetricsWriter(config.metrics_file)
    metrics.log("transcription", session_id=sid, latency_ms=234)
"""

import json
import time
import threading
from queue import Queue, Empty
from pathlib import Path
from typing import Any


class MetricsWriter:
    """
    Thread-safe metrics writer with atomic appends.
    Uses a queue to batch writes from multiple threads.
    """

    def __init__(self, metrics_file: Path):
        self.metrics_file = metrics_file
        self._queue: Queue[dict] = Queue()
        self._shutdown = threading.Event()
        self._writer_thread = threading.Thread(target=self._writer_loop, daemon=True)
        self._writer_thread.start()

    def log(self, event: str, **kwargs: Any) -> None:
        """
        Queue a metric for writing. Non-blocking.

        Args:
            event: Event name (e.g., "recording_started", "learning")
            **kwargs: Additional fields to log
        """
        entry = {
            "ts": time.time(),
            "event": event,
            **kwargs
        }
        self._queue.put(entry)

    def _writer_loop(self) -> None:
        """Background thread that batches and writes metrics."""
        while not self._shutdown.is_set():
            try:
                entries = [self._queue.get(timeout=1.0)]

                while True:
                    try:
                        entries.append(self._queue.get_nowait())
                    except Empty:
                        break

                self._write_entries(entries)

            except Empty:
                continue
            except Exception as e:
                print(f"[Metrics] Writer error: {e}")

    def _write_entries(self, entries: list[dict]) -> None:
        try:
            self.metrics_file.parent.mkdir(parents=True, exist_ok=True)

            with open(self.metrics_file, "a", encoding="utf-8") as f:
                for entry in entries:
                    f.write(json.dumps(entry, ensure_ascii=False) + "\n")
        except OSError as e:
            print(f"[Metrics] Failed to write metrics: {e}")

    def flush(self) -> None:
        """Flush any pending metrics to disk."""
        entries = []
        while True:
            try:
                entries.append(self._queue.get_nowait())
            except Empty:
                break

        if entries:
            self._write_entries(entries)

    def shutdown(self) -> None:
        """Shutdown the writer thread gracefully."""
        self._shutdown.set()
        self.flush()
        self._writer_thread.join(timeout=2.0)


# Typed helpers for consistent event logging

def log_recording_stopped(
    metrics: MetricsWriter,
    session_id: str,
    decision: str,
    duration_s: float,
    double_tap_locked: bool,
) -> None:
    """Log recording_stopped event."""
    metrics.log(
        "recording_stopped",
        session_id=session_id,
        decision=decision,
        duration_s=round(duration_s, 3),
        double_tap_locked=double_tap_locked,
    )


def log_transcription(
    metrics: MetricsWriter,
    session_id: str,
    latency_ms: float,
    text: str,
    hotword_count: int,
) -> None:
    """Log transcription event."""
    metrics.log(
        "transcription",
        session_id=session_id,
        latency_ms=latency_ms,
        text=text[:200],  # Truncate for metrics
        hotword_count=hotword_count,
    )


def log_learning(
    metrics: MetricsWriter,
    session_id: str,
    mode: str,
    source: str,
    corrections: int,
    hotwords: int,
) -> None:
    """Log learning event. source differs from mode when the LLM path fell back."""
    metrics.log(
        "learning",
        session_id=session_id,
        mode=mode,
        source=source,
        corrections=corrections,
        hotwords=hotwords,
    )


def log_session_complete(
    metrics: MetricsWriter,
    session_id: str,
    total_duration_ms: float,
    final_text: str,
    edited: bool,
) -> None:
    """Log session_complete event."""
    metrics.log(
        "session_complete",
        session_id=session_id,
        total_duration_ms=total_duration_ms,
        final_text=final_text[:500],
        edited=edited,
    )
