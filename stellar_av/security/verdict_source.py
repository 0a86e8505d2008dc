"""Abstract base for anything that can turn fingerprints into verdicts.

Both the remote threat-intelligence client and the local signature cache
implement this interface, so the scan pipeline and the realtime monitor do
not care which one they were handed.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from .models import ThreatApiFile, ThreatApiResult


class VerdictSource(ABC):
    """Abstract verdict lookup.

    Subclasses must implement:
      - source_name: short label used in logs
      - batch_lookup(files) -> list of ThreatApiResult
    """

    def __init__(self):
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @property
    @abstractmethod
    def source_name(self) -> str:
        """Label for this source (e.g. 'remote', 'cache')."""

    @abstractmethod
    def batch_lookup(self, files: Sequence[ThreatApiFile]) -> List[ThreatApiResult]:
        """Look up verdicts for *files*.

        Returns:
            One result per fingerprint the source has an answer for.

        Raises:
            ThreatIntelError: when no verdicts could be determined at all.
        """

    def single_lookup(self, fingerprint: str) -> Optional[ThreatApiResult]:
        """Look up one fingerprint; None when the source returned nothing."""
        results = self.batch_lookup([ThreatApiFile(sha256=fingerprint)])
        return results[0] if results else None
