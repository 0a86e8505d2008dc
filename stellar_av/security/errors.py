"""Exception hierarchy for the detection and containment core.

Threat-intelligence faults carry a ``retryable`` flag so the client's retry
loop (and anyone else) can classify them mechanically:

* transport failures and 5xx responses are retryable,
* 4xx responses and malformed bodies are not.

Quarantine faults are always surfaced to the caller; name validation faults
are raised before any filesystem mutation.
"""

from typing import Optional


class StellarError(Exception):
    """Base class for all engine errors."""


class ThreatIntelError(StellarError):
    """A threat lookup could not produce verdicts."""

    retryable: bool = False


class ThreatIntelTransportError(ThreatIntelError):
    """Connection failure, reset or timeout talking to the lookup service."""

    retryable = True


class ThreatIntelServerError(ThreatIntelError):
    """The lookup service answered with a 5xx status."""

    retryable = True

    def __init__(self, status_code: int, message: Optional[str] = None):
        self.status_code = status_code
        super().__init__(message or f"API returned HTTP {status_code}")


class ThreatIntelRejectedError(ThreatIntelError):
    """The lookup service rejected the request with a 4xx status."""

    def __init__(self, status_code: int, message: Optional[str] = None):
        self.status_code = status_code
        super().__init__(message or f"API returned HTTP {status_code}")


class ThreatIntelParseError(ThreatIntelError):
    """The response body was not a valid lookup response."""

    def __init__(self, message: str, body_preview: str = ""):
        self.body_preview = body_preview
        super().__init__(f"{message}. body_preview={body_preview}")


class ThreatIntelCacheError(ThreatIntelError):
    """The local signature cache could not be queried for verdicts."""


class SignatureCacheError(StellarError):
    """Threat database payload could not be loaded into the cache."""


class QuarantineError(StellarError):
    """A quarantine, restore or delete operation failed."""


class InvalidQuarantineNameError(QuarantineError, ValueError):
    """A quarantine entry name would escape the quarantine root."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Invalid quarantine file name: {name!r}")
