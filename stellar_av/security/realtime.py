"""Realtime protection: react to filesystem changes under the watched roots.

A watchdog ``Observer`` delivers notifications on its own thread into a
queue; a single consumer thread drains that queue, so per-path processing is
strictly sequential and the suppression map needs no lock.
"""

import logging
import os
import queue
import threading
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .errors import QuarantineError, ThreatIntelError
from .hasher import fingerprint
from .models import (
    NOTIFICATION,
    REALTIME_FILE_EVENT,
    REALTIME_THREAT_DETECTED,
    DetectionSource,
    EventKind,
    NotificationEvent,
    RealtimeFileEvent,
    RealtimeThreatEvent,
    ThreatApiResult,
    WatchEvent,
)
from .pipeline import EventEmitter, discard_event
from .quarantine import QuarantineStore
from .signature_cache import SignatureCache
from .verdict_source import VerdictSource

logger = logging.getLogger(__name__)

TEST_FILENAMES = frozenset({"stellar-test.bin", "stellar_test.bin"})
TEST_RULE_NAME = "Stellar.Test.FileNameRule"

SETTLE_DELAY_SECONDS = 0.02
SUPPRESS_WINDOW_SECONDS = 2.0
RECENT_HITS_CAPACITY = 256

# watchdog event_type -> our kind; unlisted types (opened, closed_no_write)
# are dropped at the source since hashing a file produces them.
_KIND_BY_EVENT_TYPE = {
    "created": EventKind.CREATE,
    "modified": EventKind.MODIFY,
    "moved": EventKind.MODIFY,
    "deleted": EventKind.REMOVE,
    "closed": EventKind.OTHER,
}

_STOP = object()


def is_test_filename(path: Path) -> bool:
    return path.name.lower() in TEST_FILENAMES


class _QueueingHandler(FileSystemEventHandler):
    """Translates watchdog callbacks into WatchEvents on a queue."""

    def __init__(self, sink: Callable[[WatchEvent], None]):
        super().__init__()
        self._sink = sink

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        kind = _KIND_BY_EVENT_TYPE.get(event.event_type)
        if kind is None:
            return
        # Renames are reported on their destination.
        path = event.dest_path if event.event_type == "moved" else event.src_path
        if isinstance(path, bytes):
            path = os.fsdecode(path)
        self._sink(WatchEvent(kind=kind, path=path))


class RealtimeMonitor:
    """Watches the scan roots and runs single-file detection on changes.

    Args:
        verdict_source: Remote client or signature cache used for lookups.
        watch_roots: Directories to watch recursively (missing ones are skipped).
        quarantine_root: Events under this directory are ignored.
        enabled: Shared flag toggled by the user; cleared means drop events.
        emit: Outbound event callback.
        signature_cache: Optional audit trail for detections.
        quarantine_store: Needed only when ``auto_quarantine`` is on.
        auto_quarantine: Move detected files into quarantine immediately.
        settle_delay: Pause before handling a relevant event.
        suppress_window: Minimum seconds between detections on one path.
        clock / sleep: Injectable for tests.
    """

    def __init__(
        self,
        verdict_source: VerdictSource,
        watch_roots: List[str],
        quarantine_root: str,
        enabled: Optional[threading.Event] = None,
        emit: Optional[EventEmitter] = None,
        signature_cache: Optional[SignatureCache] = None,
        quarantine_store: Optional[QuarantineStore] = None,
        auto_quarantine: bool = False,
        settle_delay: float = SETTLE_DELAY_SECONDS,
        suppress_window: float = SUPPRESS_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.verdict_source = verdict_source
        self.watch_roots = [str(r) for r in watch_roots]
        self.quarantine_root = os.path.abspath(quarantine_root)
        if enabled is None:
            enabled = threading.Event()
            enabled.set()
        self.enabled = enabled
        self.emit = emit or discard_event
        self.signature_cache = signature_cache
        self.quarantine_store = quarantine_store
        self.auto_quarantine = auto_quarantine
        self.settle_delay = settle_delay
        self.suppress_window = suppress_window
        self._clock = clock
        self._sleep = sleep

        self._queue: "queue.Queue" = queue.Queue()
        self._recent_hits: Dict[str, float] = {}
        self._observer: Optional[Observer] = None
        self._worker: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    def start(self) -> None:
        """Start the observer and the consumer thread."""
        if self.is_running:
            return

        observer = Observer()
        handler = _QueueingHandler(self.submit)
        watched = []
        for root in self.watch_roots:
            if not os.path.isdir(root):
                continue
            try:
                observer.schedule(handler, root, recursive=True)
                watched.append(root)
            except OSError as e:
                logger.error(f"Failed to watch {root}: {e}")
        observer.start()
        self._observer = observer

        self._worker = threading.Thread(
            target=self._run, name="stellar-realtime", daemon=True
        )
        self._worker.start()
        logger.info(f"Realtime watcher started on {watched}")

    def stop(self, timeout: float = 5.0) -> None:
        """Stop watching and wait for the consumer to drain."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout)
            self._observer = None
        if self._worker is not None:
            self._queue.put(_STOP)
            self._worker.join(timeout)
            self._worker = None
        logger.info("Realtime watcher stopped")

    def submit(self, event: WatchEvent) -> None:
        """Queue an event for the consumer thread."""
        self._queue.put(event)

    def _run(self) -> None:
        while True:
            event = self._queue.get()
            if event is _STOP:
                break
            try:
                self.handle_event(event)
            except Exception as e:
                logger.error(f"Error handling {event.kind.value} on {event.path}: {e}",
                             exc_info=True)

    def handle_event(self, event: WatchEvent) -> Optional[str]:
        """Process one event; returns the detection name, if any."""
        if not self.enabled.is_set():
            return None
        if self._in_quarantine(event.path):
            return None

        self.emit(REALTIME_FILE_EVENT, RealtimeFileEvent(file=event.path, event=event.kind))

        if not event.kind.is_detection_relevant:
            return None

        if self.settle_delay > 0:
            self._sleep(self.settle_delay)

        if self._is_suppressed(event.path):
            logger.debug(f"Suppressed repeat event for {event.path}")
            return None

        name, digest, result = self._detect(Path(event.path))
        if name is None:
            return None

        self._report(event.path, name, digest, result)
        return name

    def _in_quarantine(self, path: str) -> bool:
        absolute = os.path.abspath(path)
        return absolute == self.quarantine_root or absolute.startswith(
            self.quarantine_root + os.sep
        )

    def _is_suppressed(self, path: str) -> bool:
        now = self._clock()
        last = self._recent_hits.get(path)
        if last is not None and now - last < self.suppress_window:
            return True
        self._recent_hits[path] = now

        if len(self._recent_hits) > RECENT_HITS_CAPACITY:
            cutoff = now - self.suppress_window
            self._recent_hits = {
                p: t for p, t in self._recent_hits.items() if t >= cutoff
            }
        return False

    def _detect(
        self, path: Path
    ) -> Tuple[Optional[str], Optional[str], Optional[ThreatApiResult]]:
        if is_test_filename(path):
            return TEST_RULE_NAME, None, None

        digest = fingerprint(path)
        if digest is None:
            return None, None, None

        try:
            result = self.verdict_source.single_lookup(digest)
        except ThreatIntelError as e:
            logger.warning(f"Lookup error for {path}: {e}")
            return None, digest, None

        if result is None or not result.is_threat:
            return None, digest, result
        return result.display_name, digest, result

    def _report(
        self,
        path: str,
        name: str,
        digest: Optional[str],
        result: Optional[ThreatApiResult],
    ) -> None:
        action = "reported"
        if self.auto_quarantine and self.quarantine_store is not None:
            try:
                if self.quarantine_store.quarantine([path]):
                    action = "quarantined"
            except QuarantineError as e:
                logger.error(f"Auto-quarantine failed for {path}: {e}")

        logger.warning(f"Realtime detection: {name} at {path} ({action})")
        self.emit(REALTIME_THREAT_DETECTED, RealtimeThreatEvent(threats=[(name, path)]))

        if action == "quarantined":
            body = f"Real-time protection quarantined: {path}"
        else:
            body = f"Real-time protection blocked: {path}"
        self.emit(NOTIFICATION, NotificationEvent(body=body))

        if self.signature_cache is not None:
            signature = result.to_signature() if result is not None else None
            self.signature_cache.record_detection(
                path, digest, signature, DetectionSource.REALTIME, action
            )
