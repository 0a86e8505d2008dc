"""Detection and containment core for Stellar Antivirus.

Fingerprints files, checks them against the remote threat-intelligence
service (or a local signature cache), watches the user's folders in real
time and moves suspect files in and out of quarantine.
"""

from .errors import (
    StellarError,
    ThreatIntelError,
    ThreatIntelTransportError,
    ThreatIntelServerError,
    ThreatIntelRejectedError,
    ThreatIntelParseError,
    ThreatIntelCacheError,
    SignatureCacheError,
    QuarantineError,
    InvalidQuarantineNameError,
)
from .models import (
    ScanStatus,
    DetectionSource,
    EventKind,
    WatchEvent,
    FileRecord,
    ThreatSignature,
    DetectionRecord,
    ScanProfile,
    ScanReport,
    QuarantineItem,
    RestoreItem,
)
from .hasher import fingerprint
from .collector import collect
from .verdict_source import VerdictSource
from .threat_intel import ThreatIntelClient
from .signature_cache import SignatureCache
from .quarantine import QuarantineStore
from .pipeline import ScanPipeline
from .realtime import RealtimeMonitor

__all__ = [
    "StellarError",
    "ThreatIntelError",
    "ThreatIntelTransportError",
    "ThreatIntelServerError",
    "ThreatIntelRejectedError",
    "ThreatIntelParseError",
    "ThreatIntelCacheError",
    "SignatureCacheError",
    "QuarantineError",
    "InvalidQuarantineNameError",
    "ScanStatus",
    "DetectionSource",
    "EventKind",
    "WatchEvent",
    "FileRecord",
    "ThreatSignature",
    "DetectionRecord",
    "ScanProfile",
    "ScanReport",
    "QuarantineItem",
    "RestoreItem",
    "fingerprint",
    "collect",
    "VerdictSource",
    "ThreatIntelClient",
    "SignatureCache",
    "QuarantineStore",
    "ScanPipeline",
    "RealtimeMonitor",
]
