"""
Base class for queue-fed workers with lock-free snapshot publication.

Producers (location callbacks, serial readers) hand items to submit(),
which never blocks. A single worker thread processes them in order and
publishes immutable snapshots that readers (UI, voice) poll without locks.
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Generic, Optional, TypeVar

import config

logger = logging.getLogger('georacing.worker')

T = TypeVar('T')


@dataclass(frozen=True)
class Snapshot(Generic[T]):
    """
    Immutable published result.

    Attributes:
        timestamp: Wall clock time the snapshot was published (seconds).
        data: Worker result.
        sequence: Monotonic publication counter.
    """
    timestamp: float
    data: T
    sequence: int


class BoundedQueueWorker(Generic[T]):
    """
    Worker thread fed by a bounded input queue.

    Key features:
    - submit() never blocks; when the queue is full the oldest item is
      dropped so the worker always sees the freshest input
    - Items are processed serially on one thread
    - get_snapshot() is lock-free for readers

    Queue depth 2 (1 current + 1 buffer) suits 1 Hz location updates.
    """

    def __init__(self, queue_depth: int = config.NAV_WORKER_QUEUE_DEPTH):
        """
        Initialise the worker.

        Args:
            queue_depth: Maximum number of queued input items
        """
        self.queue_depth = queue_depth
        self.input_queue: queue.Queue = queue.Queue(maxsize=queue_depth)
        self.current_snapshot: Optional[Snapshot[T]] = None
        self.running = False
        self.thread: Optional[threading.Thread] = None

        self._sequence = 0
        self._items_dropped = 0
        self._items_processed = 0

    def start(self):
        """Start the worker thread."""
        if self.running:
            return

        self.running = True
        self.thread = threading.Thread(target=self._worker_loop, daemon=True)
        self.thread.start()
        logger.info("%s worker thread started", self.__class__.__name__)

    def stop(self):
        """Stop the worker thread."""
        self.running = False
        if self.thread:
            self.thread.join(timeout=config.THREAD_JOIN_TIMEOUT_S)
            self.thread = None
        logger.info("%s worker thread stopped", self.__class__.__name__)

    def submit(self, item: Any) -> bool:
        """
        Queue an item for processing without blocking.

        Returns:
            False if an older item had to be dropped to make room
        """
        try:
            self.input_queue.put_nowait(item)
            return True
        except queue.Full:
            try:
                self.input_queue.get_nowait()
            except queue.Empty:
                pass
            try:
                self.input_queue.put_nowait(item)
            except queue.Full:
                pass  # Another producer refilled the queue; this item is the one dropped
            self._items_dropped += 1
            logger.debug("%s: input queue full, dropped oldest item", self.__class__.__name__)
            return False

    def _worker_loop(self):
        """Take items off the queue and process them until stopped."""
        while self.running:
            try:
                item = self.input_queue.get(timeout=config.NAV_WORKER_POLL_TIMEOUT_S)
            except queue.Empty:
                self._on_idle()
                continue

            try:
                result = self._process_item(item)
            except Exception as e:
                logger.error("%s: error processing item: %s", self.__class__.__name__, e)
                continue

            self._items_processed += 1
            if result is not None:
                self._publish_snapshot(result)

    def _process_item(self, item: Any) -> Optional[T]:
        """
        Process one input item on the worker thread.
        Override this method in subclasses.
        """
        raise NotImplementedError("Subclasses must implement _process_item")

    def _on_idle(self):
        """Called when no item arrived within the poll timeout."""

    def _publish_snapshot(self, data: T):
        """Publish a new result for readers (single reference assignment)."""
        self._sequence += 1
        self.current_snapshot = Snapshot(timestamp=time.time(), data=data, sequence=self._sequence)

    def get_snapshot(self) -> Optional[Snapshot[T]]:
        """Latest published snapshot (lock-free), or None before the first result."""
        return self.current_snapshot

    def get_stats(self) -> Dict[str, int]:
        return {
            "processed": self._items_processed,
            "dropped": self._items_dropped,
            "queued": self.input_queue.qsize(),
        }
