"""Scan pipeline orchestration: collect, hash, look up and correlate verdicts."""

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel

from .collector import collect
from .errors import ThreatIntelError
from .hasher import fingerprint
from .models import (
    NOTIFICATION,
    SCAN_FINISHED,
    SCAN_PROGRESS,
    DetectionSource,
    FileRecord,
    NotificationEvent,
    ScanFinishedEvent,
    ScanProfile,
    ScanProgressEvent,
    ScanReport,
    ScanStatus,
    ThreatApiFile,
    ThreatPair,
)
from .signature_cache import SignatureCache
from .verdict_source import VerdictSource

logger = logging.getLogger(__name__)

EventEmitter = Callable[[str, BaseModel], None]

QUICK_MAX_DEPTH = 2
QUICK_MAX_FILES = 150
QUICK_MAX_FILE_BYTES = 25 * 1024 * 1024

FULL_MAX_DEPTH = 3
FULL_MAX_FILES = 500
FULL_MAX_FILE_BYTES = 200 * 1024 * 1024


def discard_event(name: str, payload: BaseModel) -> None:
    pass


class ScanPipeline:
    """Runs one on-demand scan pass and reports progress through *emit*."""

    def __init__(
        self,
        verdict_source: VerdictSource,
        emit: Optional[EventEmitter] = None,
        signature_cache: Optional[SignatureCache] = None,
        history_size: int = 20,
    ):
        self.verdict_source = verdict_source
        self.emit = emit or discard_event
        self.signature_cache = signature_cache
        self.history_size = history_size
        self._reports: List[ScanReport] = []

    def run_scan(self, profile: ScanProfile) -> ScanReport:
        """Execute a scan pass for *profile*.

        Always emits exactly one ``scan_finished`` event. If the verdict
        lookup fails, the event reports no threats with ``failed=True`` and
        the lookup error is re-raised to the caller.
        """
        report = ScanReport(
            profile=profile.name,
            status=ScanStatus.RUNNING,
            started_at=datetime.now(),
        )

        paths, report.skipped_too_large = collect(
            profile.roots,
            profile.max_depth,
            profile.max_files,
            profile.max_file_bytes,
        )
        report.files_collected = total = len(paths)
        logger.info(f"{profile.label} starting. paths_to_scan={total}")

        if total == 0:
            return self._finish(report, profile, [])

        records = self._hash_all(paths)
        report.files_hashed = len(records)
        logger.info(f"{profile.label} hashing done. hashed_ok={len(records)}/{total}")

        requests = [
            ThreatApiFile(sha256=r.fingerprint, size=r.size, extension=r.extension)
            for r in records
        ]
        try:
            results = self.verdict_source.batch_lookup(requests)
        except Exception as e:
            if isinstance(e, ThreatIntelError):
                logger.error(f"{profile.label} lookup error: {e}")
            else:
                logger.error(f"{profile.label} unexpected lookup failure: {e}", exc_info=True)
            report.status = ScanStatus.FAILED
            report.error_message = str(e)
            report.completed_at = datetime.now()
            self._remember(report)
            self.emit(SCAN_FINISHED, ScanFinishedEvent(failed=True, error=str(e)))
            self.emit(
                NOTIFICATION,
                NotificationEvent(body=f"{profile.label} failed – could not verify results."),
            )
            raise

        paths_by_hash: Dict[str, List[str]] = {}
        for r in records:
            paths_by_hash.setdefault(r.fingerprint.lower(), []).append(r.path)

        threats: List[ThreatPair] = []
        reported = set()
        for result in results:
            key = result.sha256.lower()
            if not result.is_threat or key in reported:
                continue
            reported.add(key)
            for path in paths_by_hash.get(key, []):
                threats.append((result.display_name, path))
                if self.signature_cache is not None:
                    self.signature_cache.record_detection(
                        path, key, result.to_signature(), DetectionSource.SCAN, "reported"
                    )

        return self._finish(report, profile, threats)

    def _hash_all(self, paths: List[Path]) -> List[FileRecord]:
        total = len(paths)
        records: List[FileRecord] = []
        for i, path in enumerate(paths, 1):
            self.emit(SCAN_PROGRESS, ScanProgressEvent(file=str(path), current=i, total=total))

            digest = fingerprint(path)
            if digest is None:
                continue
            try:
                size = path.stat().st_size
            except OSError:
                size = None
            records.append(
                FileRecord(
                    path=str(path),
                    size=size,
                    extension=path.suffix[1:].lower() or None,
                    fingerprint=digest,
                )
            )
        return records

    def _finish(
        self,
        report: ScanReport,
        profile: ScanProfile,
        threats: List[ThreatPair],
    ) -> ScanReport:
        report.threats = threats
        report.status = ScanStatus.COMPLETED
        report.completed_at = datetime.now()
        self._remember(report)

        self.emit(SCAN_FINISHED, ScanFinishedEvent(threats=threats))
        if threats:
            body = f"{profile.label} completed – {len(threats)} threat(s) found."
        else:
            body = f"{profile.label} completed – no threats found."
        self.emit(NOTIFICATION, NotificationEvent(body=body))

        logger.info(
            f"{profile.label} completed: {len(threats)} threats "
            f"({report.files_hashed}/{report.files_collected} hashed)"
        )
        return report

    def _remember(self, report: ScanReport) -> None:
        self._reports.append(report)
        if len(self._reports) > self.history_size:
            self._reports = self._reports[-self.history_size:]

    def get_recent_reports(self, limit: int = 10) -> List[ScanReport]:
        """Get the most recent scan reports."""
        return self._reports[-limit:]

    @staticmethod
    def create_quick_profile(
        roots: List[str],
        max_file_bytes: Optional[int] = None,
    ) -> ScanProfile:
        """Shallow scan of the download and desktop folders."""
        return ScanProfile(
            name="quick",
            label="Quick scan",
            roots=roots,
            max_depth=QUICK_MAX_DEPTH,
            max_files=QUICK_MAX_FILES,
            max_file_bytes=max_file_bytes or QUICK_MAX_FILE_BYTES,
        )

    @staticmethod
    def create_full_profile(roots: List[str]) -> ScanProfile:
        """Deeper scan of downloads, documents and desktop."""
        return ScanProfile(
            name="full",
            label="Full scan",
            roots=roots,
            max_depth=FULL_MAX_DEPTH,
            max_files=FULL_MAX_FILES,
            max_file_bytes=FULL_MAX_FILE_BYTES,
        )
