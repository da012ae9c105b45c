"""
Progress reporting for running jobs.

The pipeline publishes ``ProgressEvent``s to a ``ProgressListener``. Listeners:
- LoggingProgressListener: writes each event to the log
- ProgressBroker: keeps the latest event per job for polling and fans events
  out to server-sent-event subscribers through per-subscriber queues
- CompositeListener: forwards one event to several listeners

A job's broker channels are dropped as soon as it reaches a terminal stage.
"""

import logging
import queue
import threading
from typing import Dict, Iterator, List, Optional

from .models import ProgressEvent

logger = logging.getLogger(__name__)

# Sentinel placed on subscriber queues when a job's channel closes
CLOSED = None

# How long a finished job's last event stays available for polling
RETAINED_FINISHED_JOBS = 200

# How long a stream waits for the first event of a job before giving up
STREAM_IDLE_TIMEOUT = 300.0


class ProgressListener:
    """Observer interface for job progress."""

    def on_event(self, event: ProgressEvent) -> None:
        raise NotImplementedError


class LoggingProgressListener(ProgressListener):
    def on_event(self, event: ProgressEvent) -> None:
        logger.info(f"[job {event.job_id}] {event.stage.value} {event.progress:.0f}% {event.message}")


class CompositeListener(ProgressListener):
    """Forward every event to each wrapped listener in order."""

    def __init__(self, *listeners: Optional[ProgressListener]):
        self.listeners = [listener for listener in listeners if listener is not None]

    def on_event(self, event: ProgressEvent) -> None:
        for listener in self.listeners:
            try:
                listener.on_event(event)
            except Exception as e:
                logger.error(f"Progress listener {listener.__class__.__name__} failed: {e}")


class ProgressBroker(ProgressListener):
    """In-memory progress channels keyed by job id."""

    def __init__(self, retained: int = RETAINED_FINISHED_JOBS):
        self._latest: Dict[str, ProgressEvent] = {}
        self._subscribers: Dict[str, List[queue.Queue]] = {}
        self._finished: List[str] = []
        self._retained = retained
        self._lock = threading.Lock()

    def on_event(self, event: ProgressEvent) -> None:
        self.publish(event)

    def publish(self, event: ProgressEvent) -> None:
        """Record the event and push it to every subscriber of its job."""
        with self._lock:
            self._latest[event.job_id] = event
            if not event.stage.is_terminal and event.job_id in self._finished:
                # A reused job id is running again; keep it out of the eviction order
                self._finished.remove(event.job_id)
            subscribers = list(self._subscribers.get(event.job_id, []))

        for subscriber in subscribers:
            subscriber.put(event)

        if event.stage.is_terminal:
            self.close(event.job_id)

    def latest(self, job_id: str) -> Optional[ProgressEvent]:
        with self._lock:
            return self._latest.get(job_id)

    def subscribe(self, job_id: str) -> queue.Queue:
        """
        Open a channel for a job.

        If the job already finished, the queue holds its final event followed
        by the close sentinel.
        """
        channel: queue.Queue = queue.Queue()
        with self._lock:
            last = self._latest.get(job_id)
            if last is not None and last.stage.is_terminal:
                channel.put(last)
                channel.put(CLOSED)
                return channel
            if last is not None:
                channel.put(last)
            self._subscribers.setdefault(job_id, []).append(channel)
        return channel

    def unsubscribe(self, job_id: str, channel: queue.Queue) -> None:
        with self._lock:
            subscribers = self._subscribers.get(job_id, [])
            if channel in subscribers:
                subscribers.remove(channel)
            if not subscribers:
                self._subscribers.pop(job_id, None)

    def close(self, job_id: str) -> None:
        """Send the close sentinel to all subscribers of a job and drop them."""
        with self._lock:
            subscribers = self._subscribers.pop(job_id, [])
            if job_id in self._finished:
                self._finished.remove(job_id)
            self._finished.append(job_id)
            while len(self._finished) > self._retained:
                self._latest.pop(self._finished.pop(0), None)

        for subscriber in subscribers:
            subscriber.put(CLOSED)

    def subscriber_count(self, job_id: str) -> int:
        with self._lock:
            return len(self._subscribers.get(job_id, []))

    def stream(
        self, job_id: str, heartbeat: float = 15.0, idle_timeout: Optional[float] = STREAM_IDLE_TIMEOUT
    ) -> Iterator[Optional[ProgressEvent]]:
        """
        Yield events for a job until it finishes.

        Yields ``None`` every ``heartbeat`` seconds without news so callers can
        keep the connection alive. A job that has published nothing within
        ``idle_timeout`` seconds is treated as unknown and the stream ends.
        """
        channel = self.subscribe(job_id)
        seen = False
        idle = 0.0
        try:
            while True:
                try:
                    event = channel.get(timeout=heartbeat)
                except queue.Empty:
                    idle += heartbeat
                    if not seen and idle_timeout is not None and idle >= idle_timeout:
                        logger.info(f"Closing progress stream for job {job_id}: no events after {idle:.0f}s")
                        return
                    yield None
                    continue
                if event is CLOSED:
                    return
                seen = True
                yield event
        finally:
            self.unsubscribe(job_id, channel)
