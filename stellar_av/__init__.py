__version__ = "1.0.0"

from .agent import StellarAgent
from .monitoring import MonitoringService
from .config import ConfigManager, RuntimeConfigStore
from .models import (
    AgentConfig, EngineEvent, RuntimeConfig,
    ThreatIntelSettings, ScanSettings, RealtimeSettings,
    QuarantineSettings, ApiSettings,
)

__all__ = [
    "StellarAgent",
    "MonitoringService",
    "ConfigManager",
    "RuntimeConfigStore",
    "AgentConfig",
    "EngineEvent",
    "RuntimeConfig",
    "ThreatIntelSettings",
    "ScanSettings",
    "RealtimeSettings",
    "QuarantineSettings",
    "ApiSettings",
]
