import asyncio
import logging
import signal
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union
from concurrent.futures import ThreadPoolExecutor

from pydantic import BaseModel

from .config import ConfigManager, RuntimeConfigStore
from .models import (
    ApiSettings,
    QuarantineSettings,
    RealtimeSettings,
    ScanSettings,
    ThreatIntelSettings,
)
from .monitoring import MonitoringService
from .security.models import (
    NOTIFICATION,
    DetectionRecord,
    QuarantineItem,
    RestoreItem,
    ScanProfile,
    ScanReport,
)
from .security.pipeline import ScanPipeline
from .security.quarantine import QuarantineStore
from .security.realtime import RealtimeMonitor
from .security.signature_cache import SignatureCache
from .security.threat_intel import ThreatIntelClient
from .security.verdict_source import VerdictSource


class StellarAgent:
    """Wires the detection core together and handles inbound commands."""

    def __init__(self, config_path: str = "config.yaml"):
        self.config_manager = ConfigManager(config_path)
        self.config = self.config_manager.get_config()

        # Setup logging
        self._setup_logging()

        # Create directories
        self.config_manager.create_directories()
        self.logger = logging.getLogger(__name__)

        data_dir = Path(self.config.data_dir)
        self.threat_intel_settings = self.config_manager.get_settings('threat_intel', ThreatIntelSettings)
        self.scan_settings = self.config_manager.get_settings('scan', ScanSettings)
        self.realtime_settings = self.config_manager.get_settings('realtime', RealtimeSettings)
        quarantine_settings = self.config_manager.get_settings('quarantine', QuarantineSettings)
        api_settings = self.config_manager.get_settings('api', ApiSettings)

        # Outbound events + control API
        self.api_enabled = api_settings.enabled
        self.monitoring = MonitoringService(host=api_settings.host, port=api_settings.port)
        self.monitoring.subscribe(self._log_notification)
        self.monitoring.register_control_routes(self)

        # Persisted runtime flags
        self.runtime_store = RuntimeConfigStore(data_dir / "runtime_config.json")
        runtime = self.runtime_store.load()
        self.realtime_enabled = threading.Event()
        if runtime.realtime_enabled:
            self.realtime_enabled.set()

        # Detection core
        self.signature_cache = SignatureCache(data_dir / "signatures.db")
        self.quarantine_store = QuarantineStore(
            quarantine_settings.dir or data_dir / "Quarantine"
        )
        self.verdict_source = self._build_verdict_source()
        self.scan_pipeline = ScanPipeline(
            self.verdict_source,
            emit=self.monitoring.emit,
            signature_cache=self.signature_cache,
        )
        self.realtime_monitor = RealtimeMonitor(
            self.verdict_source,
            watch_roots=self.watch_roots,
            quarantine_root=str(self.quarantine_store.root),
            enabled=self.realtime_enabled,
            emit=self.monitoring.emit,
            signature_cache=self.signature_cache,
            quarantine_store=self.quarantine_store,
            auto_quarantine=self.realtime_settings.auto_quarantine,
            settle_delay=self.realtime_settings.settle_delay,
            suppress_window=self.realtime_settings.suppress_window,
        )

        # State management
        self.is_running = False
        self.executor = ThreadPoolExecutor(max_workers=2)

        self.logger.info(
            f"Agent ready (verdicts from {self.verdict_source.source_name}, "
            f"realtime_enabled={self.realtime_enabled.is_set()})"
        )

    def _setup_logging(self):
        """Setup logging configuration"""
        log_level = getattr(logging, self.config.log_level.upper(), logging.INFO)
        log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

        # Create logs directory
        log_dir = self.config.resolved_logs_dir
        log_dir.mkdir(parents=True, exist_ok=True)

        # Configure logging
        logging.basicConfig(
            level=log_level,
            format=log_format,
            handlers=[
                logging.FileHandler(log_dir / 'stellar.log'),
                logging.StreamHandler()
            ]
        )

    def _build_verdict_source(self) -> VerdictSource:
        settings = self.threat_intel_settings
        if not settings.enabled:
            self.logger.info("Remote threat lookups disabled; using the local signature cache")
            return self.signature_cache
        return ThreatIntelClient(
            api_base_url=settings.api_base_url,
            connect_timeout=settings.connect_timeout,
            total_timeout=settings.total_timeout,
            retries=settings.retries,
            retry_delay=settings.retry_delay,
            chunk_size=settings.chunk_size,
        )

    def _log_notification(self, name: str, payload: BaseModel):
        if name == NOTIFICATION:
            self.logger.info(f"[notification] {payload.body}")

    def _signal_handler(self, signum, frame):
        """Handle system signals"""
        self.logger.info(f"Received signal {signum}, shutting down...")
        self.is_running = False

    @property
    def watch_roots(self) -> List[str]:
        return [self.config.downloads_dir, self.config.documents_dir, self.config.desktop_dir]

    async def start(self):
        """Run realtime protection (and the control API, if enabled) until signalled"""
        self.is_running = True
        self.logger.info("Starting Stellar Antivirus agent")

        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

        try:
            self.realtime_monitor.start()
            if self.api_enabled:
                loop = asyncio.get_running_loop()
                self._api_future = loop.run_in_executor(None, self.monitoring.start_monitoring)

            # Main event loop
            while self.is_running:
                await asyncio.sleep(1)

        except Exception as e:
            self.logger.error(f"Error in main loop: {e}")
        finally:
            await self.stop()

    async def stop(self):
        """Stop the agent"""
        self.is_running = False
        self.logger.info("Stopping Stellar Antivirus agent")
        self.realtime_monitor.stop()
        self.monitoring.stop_monitoring()
        self.close()

    def close(self):
        self.executor.shutdown(wait=True)

    # Scans
    def quick_scan_profile(self, max_bytes: Optional[int] = None) -> ScanProfile:
        return ScanPipeline.create_quick_profile(
            [self.config.downloads_dir, self.config.desktop_dir],
            max_file_bytes=max_bytes or self.scan_settings.quick_max_file_bytes,
        )

    def full_scan_profile(self) -> ScanProfile:
        return ScanPipeline.create_full_profile(self.watch_roots)

    async def start_quick_scan(self, max_bytes: Optional[int] = None) -> ScanReport:
        """Run a quick scan on the worker pool"""
        return await self.run_scan(self.quick_scan_profile(max_bytes))

    async def start_full_scan(self) -> ScanReport:
        """Run a full scan on the worker pool"""
        return await self.run_scan(self.full_scan_profile())

    async def run_scan(self, profile: ScanProfile) -> ScanReport:
        self.logger.info(f"Submitting {profile.label.lower()}")
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, self.scan_pipeline.run_scan, profile)

    def get_recent_scans(self, limit: int = 10) -> List[ScanReport]:
        return self.scan_pipeline.get_recent_reports(limit)

    # Realtime protection
    def get_realtime_enabled(self) -> bool:
        return self.realtime_enabled.is_set()

    def set_realtime_enabled(self, enabled: bool):
        """Toggle realtime protection and persist the choice"""
        if enabled:
            self.realtime_enabled.set()
        else:
            self.realtime_enabled.clear()
        self.runtime_store.update(realtime_enabled=enabled)
        self.logger.info(f"Realtime protection set to: {enabled}")

    def consume_background_hint(self) -> bool:
        """True exactly once: the first time the app goes to the background"""
        runtime = self.runtime_store.load()
        if runtime.shown_background_hint:
            return False
        self.runtime_store.update(shown_background_hint=True)
        return True

    # Quarantine
    def list_quarantine(self) -> List[QuarantineItem]:
        return self.quarantine_store.list_items()

    def quarantine(self, paths: Iterable[str]) -> List[QuarantineItem]:
        return self.quarantine_store.quarantine(paths)

    def restore(self, items: Iterable[Union[RestoreItem, Dict[str, Any]]]) -> List[str]:
        restore_items = [
            item if isinstance(item, RestoreItem) else RestoreItem.model_validate(item)
            for item in items
        ]
        return self.quarantine_store.restore(restore_items)

    def delete_quarantined(self, names: List[str]) -> int:
        return self.quarantine_store.delete(names)

    def delete_by_original_path(self, paths: List[str]) -> int:
        return self.quarantine_store.delete_by_original_path(paths)

    # Threat database
    def update_threat_db(self, threats_json: str) -> int:
        """Load a threat database document into the local signature cache"""
        count = self.signature_cache.update_from_json(threats_json)
        self.logger.info(f"Threat DB updated: {count} signatures")
        return count

    def get_detections(self, limit: int = 50) -> List[DetectionRecord]:
        return self.signature_cache.recent_detections(limit)

    # Health Check
    def is_healthy(self) -> bool:
        """Check if the agent is healthy"""
        return self.is_running and self.realtime_monitor.is_running
