"""Local SQLite store of known signatures and the detection audit trail.

The cache doubles as an offline verdict source: when remote lookups are
disabled, the scan pipeline and realtime monitor query it through the same
``batch_lookup`` interface as the network client.
"""

import json
import logging
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Iterator, List, Optional, Sequence, Union

from .errors import SignatureCacheError, ThreatIntelCacheError
from .models import (
    DetectionRecord,
    DetectionSource,
    ThreatApiFile,
    ThreatApiResult,
    ThreatApiSignature,
    ThreatSignature,
)
from .verdict_source import VerdictSource

logger = logging.getLogger(__name__)

CACHE_HIT_VERDICT = "malicious"
CACHE_MISS_VERDICT = "unknown"


class SignatureCache(VerdictSource):
    """SQLite-backed signature store with an append-only detections log."""

    def __init__(self, db_path: Union[str, Path] = "signatures.db"):
        super().__init__()
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_database()

    @property
    def source_name(self) -> str:
        return "cache"

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def _init_database(self):
        """Create tables and indexes if they don't exist yet"""
        with self._connect() as conn:
            conn.execute('''
                CREATE TABLE IF NOT EXISTS signatures (
                    id TEXT PRIMARY KEY,
                    fingerprint TEXT UNIQUE NOT NULL,
                    name TEXT NOT NULL,
                    family TEXT NOT NULL DEFAULT '',
                    severity TEXT NOT NULL DEFAULT '',
                    platforms TEXT NOT NULL DEFAULT '[]',
                    updated_at TIMESTAMP NOT NULL
                )
            ''')
            conn.execute('''
                CREATE TABLE IF NOT EXISTS detections (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    file_path TEXT NOT NULL,
                    fingerprint TEXT,
                    signature_id TEXT,
                    source TEXT NOT NULL,
                    action TEXT NOT NULL,
                    detected_at TIMESTAMP NOT NULL,
                    FOREIGN KEY (signature_id) REFERENCES signatures (id)
                )
            ''')
            conn.execute(
                'CREATE INDEX IF NOT EXISTS idx_detections_time ON detections(detected_at)'
            )

    # ------------------------------------------------------------------
    # Signatures
    # ------------------------------------------------------------------

    def upsert_signatures(self, signatures: Iterable[ThreatSignature]) -> int:
        """Insert or update signatures keyed by fingerprint. Returns the count."""
        now = datetime.now().isoformat()
        rows = [
            (
                sig.id,
                sig.fingerprint.lower(),
                sig.name,
                sig.family,
                sig.severity,
                json.dumps(sig.platforms),
                now,
            )
            for sig in signatures
        ]
        if not rows:
            return 0

        try:
            with self._connect() as conn:
                # The id of an existing fingerprint is kept so detections
                # referencing it stay valid.
                conn.executemany('''
                INSERT INTO signatures (id, fingerprint, name, family, severity, platforms, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(fingerprint) DO UPDATE SET
                    name = excluded.name,
                    family = excluded.family,
                    severity = excluded.severity,
                    platforms = excluded.platforms,
                    updated_at = excluded.updated_at
            ''', rows)
        except sqlite3.Error as e:
            raise SignatureCacheError(f"Failed to store signatures: {e}") from e

        logger.info(f"Upserted {len(rows)} signatures into {self.db_path}")
        return len(rows)

    def lookup(self, fingerprint: str) -> Optional[ThreatSignature]:
        """Return the signature for *fingerprint*, if known."""
        with self._connect() as conn:
            row = conn.execute(
                'SELECT * FROM signatures WHERE fingerprint = ?',
                (fingerprint.lower(),),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_signature(row)

    def count_signatures(self) -> int:
        with self._connect() as conn:
            return conn.execute('SELECT COUNT(*) FROM signatures').fetchone()[0]

    @staticmethod
    def _row_to_signature(row: sqlite3.Row) -> ThreatSignature:
        return ThreatSignature(
            id=row["id"],
            fingerprint=row["fingerprint"],
            name=row["name"],
            family=row["family"],
            severity=row["severity"],
            platforms=json.loads(row["platforms"] or "[]"),
        )

    def update_from_json(self, payload: str) -> int:
        """Load a threat database document into the cache.

        Accepts a JSON list of signature objects, or an object with a
        ``threats`` list. Entries may key the hash as ``sha256`` or
        ``fingerprint``; entries without a hash or name are skipped.
        """
        try:
            document = json.loads(payload)
        except json.JSONDecodeError as e:
            raise SignatureCacheError(f"Threat database is not valid JSON: {e}") from e

        if isinstance(document, dict):
            entries = document.get("threats", [])
        else:
            entries = document
        if not isinstance(entries, list):
            raise SignatureCacheError("Threat database has no 'threats' list")

        signatures = []
        for entry in entries:
            signature = self._entry_to_signature(entry)
            if signature is None:
                logger.warning(f"Skipping malformed threat database entry: {entry!r}")
                continue
            signatures.append(signature)

        return self.upsert_signatures(signatures)

    @staticmethod
    def _entry_to_signature(entry: Any) -> Optional[ThreatSignature]:
        if not isinstance(entry, dict):
            return None
        fingerprint = entry.get("sha256") or entry.get("fingerprint")
        name = entry.get("name")
        if not fingerprint or not name:
            return None

        platforms = entry.get("platforms") or []
        if isinstance(platforms, str):
            platforms = [platforms]

        return ThreatSignature(
            id=str(entry.get("id") or uuid.uuid4()),
            fingerprint=str(fingerprint).lower(),
            name=str(name),
            family=str(entry.get("family") or ""),
            severity=str(entry.get("severity") or ""),
            platforms=[str(p) for p in platforms],
        )

    # ------------------------------------------------------------------
    # Detections
    # ------------------------------------------------------------------

    def record_detection(
        self,
        path: str,
        fingerprint: Optional[str],
        signature: Optional[ThreatSignature],
        source: DetectionSource,
        action: str,
    ) -> None:
        """Append a detection to the audit log. Never raises."""
        record = DetectionRecord(
            path=path,
            fingerprint=fingerprint,
            signature_id=signature.id if signature else None,
            source=source,
            action=action,
        )
        try:
            with self._connect() as conn:
                conn.execute('''
                    INSERT INTO detections (file_path, fingerprint, signature_id, source, action, detected_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                ''', (
                    record.path,
                    record.fingerprint,
                    record.signature_id,
                    record.source.value,
                    record.action,
                    record.detected_at.isoformat(),
                ))
        except sqlite3.Error as e:
            logger.error(f"Failed to record detection for {path}: {e}")

    def recent_detections(self, limit: int = 50) -> List[DetectionRecord]:
        """Most recent detections, newest first."""
        with self._connect() as conn:
            rows = conn.execute(
                'SELECT * FROM detections ORDER BY id DESC LIMIT ?', (limit,)
            ).fetchall()
        return [
            DetectionRecord(
                path=row["file_path"],
                fingerprint=row["fingerprint"],
                signature_id=row["signature_id"],
                source=DetectionSource(row["source"]),
                action=row["action"],
                detected_at=datetime.fromisoformat(row["detected_at"]),
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Offline verdicts
    # ------------------------------------------------------------------

    def batch_lookup(self, files: Sequence[ThreatApiFile]) -> List[ThreatApiResult]:
        results = []
        for f in files:
            try:
                signature = self.lookup(f.sha256)
            except sqlite3.Error as e:
                raise ThreatIntelCacheError(f"Signature cache lookup failed: {e}") from e
            if signature is None:
                results.append(ThreatApiResult(sha256=f.sha256, verdict=CACHE_MISS_VERDICT))
                continue
            results.append(
                ThreatApiResult(
                    sha256=f.sha256,
                    verdict=CACHE_HIT_VERDICT,
                    signature=ThreatApiSignature(
                        id=signature.id,
                        name=signature.name,
                        family=signature.family,
                        severity=signature.severity,
                    ),
                )
            )
        return results

