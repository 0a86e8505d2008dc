"""Shared test doubles for the detection core."""

import hashlib
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel

from stellar_av.security.errors import ThreatIntelError
from stellar_av.security.models import (
    ThreatApiFile,
    ThreatApiResult,
    ThreatApiSignature,
)
from stellar_av.security.verdict_source import VerdictSource


def sha256_of(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def write_file(path: Path, data: bytes) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


class RecordingEmitter:
    """Collects outbound events in order."""

    def __init__(self):
        self.events: List[Tuple[str, BaseModel]] = []

    def __call__(self, name: str, payload: BaseModel) -> None:
        self.events.append((name, payload))

    def named(self, name: str) -> List[BaseModel]:
        return [payload for n, payload in self.events if n == name]


class StaticVerdictSource(VerdictSource):
    """Answers from a fixed fingerprint -> (verdict, name) table."""

    def __init__(
        self,
        verdicts: Optional[Dict[str, Tuple[str, Optional[str]]]] = None,
        error: Optional[ThreatIntelError] = None,
    ):
        super().__init__()
        self.verdicts = verdicts or {}
        self.error = error
        self.calls: List[List[str]] = []

    @property
    def source_name(self) -> str:
        return "static"

    def batch_lookup(self, files: Sequence[ThreatApiFile]) -> List[ThreatApiResult]:
        self.calls.append([f.sha256 for f in files])
        if self.error is not None:
            raise self.error

        results = []
        for f in files:
            verdict, name = self.verdicts.get(f.sha256, ("clean", None))
            signature = ThreatApiSignature(id=f"sig-{name}", name=name) if name else None
            results.append(ThreatApiResult(sha256=f.sha256, verdict=verdict, signature=signature))
        return results
