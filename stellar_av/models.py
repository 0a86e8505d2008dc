import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class EngineEvent(BaseModel):
    name: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=datetime.now)


def _home_dir(name: str) -> str:
    return str(Path.home() / name)


class AgentConfig(BaseModel):
    name: str = "stellar-av"
    log_level: str = "INFO"
    data_dir: str = Field(default_factory=lambda: _home_dir(".stellar_antivirus"))
    logs_dir: Optional[str] = None
    downloads_dir: str = Field(default_factory=lambda: _home_dir("Downloads"))
    documents_dir: str = Field(default_factory=lambda: _home_dir("Documents"))
    desktop_dir: str = Field(default_factory=lambda: _home_dir("Desktop"))

    model_config = ConfigDict(extra="allow")

    @field_validator('data_dir', 'logs_dir', 'downloads_dir', 'documents_dir', 'desktop_dir')
    @classmethod
    def expand_home(cls, v):
        return os.path.expanduser(v) if v else v

    @property
    def resolved_logs_dir(self) -> Path:
        return Path(self.logs_dir) if self.logs_dir else Path(self.data_dir) / "logs"


class ThreatIntelSettings(BaseModel):
    enabled: bool = True
    api_base_url: str = "https://stellarantivirusthreatapiprod.azurewebsites.net"
    connect_timeout: float = 10.0
    total_timeout: float = 45.0
    retries: int = 1
    retry_delay: float = 0.4
    chunk_size: int = 1000


class ScanSettings(BaseModel):
    quick_max_file_bytes: Optional[int] = None


class RealtimeSettings(BaseModel):
    settle_delay: float = 0.02
    suppress_window: float = 2.0
    auto_quarantine: bool = False


class QuarantineSettings(BaseModel):
    dir: Optional[str] = None

    @field_validator('dir')
    @classmethod
    def expand_home(cls, v):
        return os.path.expanduser(v) if v else v


class ApiSettings(BaseModel):
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 8765


class RuntimeConfig(BaseModel):
    """Flags the user can flip at runtime; persisted on every change."""

    realtime_enabled: bool = True
    shown_background_hint: bool = False
