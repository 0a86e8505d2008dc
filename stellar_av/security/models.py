"""Pydantic v2 models for the detection and containment core."""

from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

# Verdicts that never count as a threat (compared lowercased).
NON_THREAT_VERDICTS = frozenset({"clean", "unknown"})

UNKNOWN_THREAT_NAME = "Unknown threat"

# (display_name, file_path)
ThreatPair = Tuple[str, str]


class ScanStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class DetectionSource(str, Enum):
    SCAN = "scan"
    REALTIME = "realtime"


class EventKind(str, Enum):
    CREATE = "create"
    MODIFY = "modify"
    REMOVE = "remove"
    ANY = "any"
    OTHER = "other"

    @property
    def is_detection_relevant(self) -> bool:
        return self in (EventKind.CREATE, EventKind.MODIFY, EventKind.ANY)


class WatchEvent(BaseModel):
    """A raw filesystem change notification."""

    kind: EventKind
    path: str
    timestamp: datetime = Field(default_factory=datetime.now)


class FileRecord(BaseModel):
    """A collected and hashed candidate file. Lives for one pass only."""

    path: str
    size: Optional[int] = None
    extension: Optional[str] = None
    fingerprint: str


class ThreatSignature(BaseModel):
    """A known-bad fingerprint with its descriptive metadata."""

    id: str
    fingerprint: str
    name: str
    family: str = ""
    severity: str = ""
    platforms: List[str] = Field(default_factory=list)


class DetectionRecord(BaseModel):
    """Audit log entry for a positive match."""

    path: str
    fingerprint: Optional[str] = None
    signature_id: Optional[str] = None
    source: DetectionSource
    action: str
    detected_at: datetime = Field(default_factory=datetime.now)


class ScanProfile(BaseModel):
    """Bounds for a single on-demand scan pass."""

    name: str
    label: str
    roots: List[str] = Field(default_factory=list)
    max_depth: int
    max_files: int
    max_file_bytes: Optional[int] = None


class ScanReport(BaseModel):
    """Outcome of one scan pass."""

    profile: str
    status: ScanStatus = ScanStatus.PENDING
    threats: List[ThreatPair] = Field(default_factory=list)
    files_collected: int = 0
    files_hashed: int = 0
    skipped_too_large: int = 0
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def threat_count(self) -> int:
        return len(self.threats)

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None


class QuarantineItem(BaseModel):
    """A file currently held in the quarantine root."""

    name: str
    size: int = 0
    quarantined_at: Optional[datetime] = None
    original_path: Optional[str] = None


class RestoreItem(BaseModel):
    """Restore request for one quarantined file."""

    model_config = ConfigDict(populate_by_name=True)

    quarantined_name: str = Field(
        validation_alias=AliasChoices("quarantined_name", "fileName", "file_name")
    )
    original_path: str = Field(
        validation_alias=AliasChoices("original_path", "originalPath")
    )


# ---------------------------------------------------------------------------
# Threat lookup wire format
# ---------------------------------------------------------------------------


class ThreatApiClient(BaseModel):
    product: str
    platform: str
    version: str
    threat_db_version: Optional[int] = None


class ThreatApiFile(BaseModel):
    sha256: str
    size: Optional[int] = None
    extension: Optional[str] = None


class ThreatApiRequest(BaseModel):
    client: ThreatApiClient
    files: List[ThreatApiFile]


class ThreatApiSignature(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    family: Optional[str] = None
    category: Optional[str] = None
    severity: Optional[str] = None

    model_config = ConfigDict(extra="allow")


class ThreatApiResult(BaseModel):
    """Verdict for one fingerprint."""

    sha256: str
    verdict: str
    signature: Optional[ThreatApiSignature] = None
    recommended_action: Optional[str] = None

    model_config = ConfigDict(extra="allow")

    @property
    def is_threat(self) -> bool:
        return self.verdict.strip().lower() not in NON_THREAT_VERDICTS

    @property
    def display_name(self) -> str:
        if self.signature and self.signature.name:
            return self.signature.name
        return UNKNOWN_THREAT_NAME

    def to_signature(self) -> Optional["ThreatSignature"]:
        """Descriptive signature for audit records, when the remote sent an id."""
        if not self.signature or not self.signature.id:
            return None
        return ThreatSignature(
            id=self.signature.id,
            fingerprint=self.sha256.lower(),
            name=self.display_name,
            family=self.signature.family or "",
            severity=self.signature.severity or "",
        )


class ThreatApiResponse(BaseModel):
    schema_version: Optional[int] = None
    db_version: Optional[int] = None
    results: List[ThreatApiResult]

    model_config = ConfigDict(extra="allow")


# ---------------------------------------------------------------------------
# Outbound events
# ---------------------------------------------------------------------------

SCAN_PROGRESS = "scan_progress"
SCAN_FINISHED = "scan_finished"
REALTIME_FILE_EVENT = "realtime_file_event"
REALTIME_THREAT_DETECTED = "realtime_threat_detected"
NOTIFICATION = "notification"


class ScanProgressEvent(BaseModel):
    file: str
    current: int
    total: int


class ScanFinishedEvent(BaseModel):
    threats: List[ThreatPair] = Field(default_factory=list)
    failed: bool = False
    error: Optional[str] = None


class RealtimeFileEvent(BaseModel):
    file: str
    event: EventKind


class RealtimeThreatEvent(BaseModel):
    threats: List[ThreatPair] = Field(default_factory=list)


class NotificationEvent(BaseModel):
    title: str = "Stellar Antivirus"
    body: str
