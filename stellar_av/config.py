import os
import logging
import yaml
from pathlib import Path
from typing import Dict, Any, Optional, Type, TypeVar
from pydantic import BaseModel, ValidationError

from .models import AgentConfig, RuntimeConfig

T = TypeVar("T", bound=BaseModel)

logger = logging.getLogger(__name__)

# Sections that may appear at the top level of config.yaml next to `agent`.
KNOWN_SECTIONS = ("agent", "threat_intel", "scan", "realtime", "quarantine", "api")


class ConfigManager:
    def __init__(self, config_path: str = "config.yaml"):
        self.config_path = Path(config_path)
        self.config: Optional[AgentConfig] = None
        self.load_config()

    def load_config(self) -> AgentConfig:
        """Load configuration from file, falling back to defaults"""
        config_data: Dict[str, Any] = {}
        if self.config_path.exists():
            with open(self.config_path, 'r') as f:
                config_data = yaml.safe_load(f) or {}
        else:
            logger.info(f"Configuration file not found, using defaults: {self.config_path}")

        # Merge with environment variables
        config_data = self._merge_env_vars(config_data)

        # Create agent config
        agent_config = config_data.get('agent') or {}
        self.config = AgentConfig(**agent_config)

        # Store additional sections
        for key, value in config_data.items():
            if key != 'agent':
                setattr(self.config, key, value)

        return self.config

    def _merge_env_vars(self, config_data: Dict[str, Any]) -> Dict[str, Any]:
        """Merge environment variables with configuration"""
        env_prefix = "STELLAR_"

        for key, value in os.environ.items():
            if not key.startswith(env_prefix):
                continue
            config_key = key[len(env_prefix):].lower()

            # Handle nested keys (e.g., STELLAR_THREAT_INTEL_RETRIES)
            for section in sorted(KNOWN_SECTIONS, key=len, reverse=True):
                if config_key.startswith(section + '_'):
                    nested_key = config_key[len(section) + 1:]
                    if not isinstance(config_data.get(section), dict):
                        config_data[section] = {}
                    config_data[section][nested_key] = value
                    break

        return config_data

    def get_config(self) -> AgentConfig:
        """Get current configuration"""
        if self.config is None:
            self.load_config()
        return self.config

    def get_section(self, section: str) -> Dict[str, Any]:
        """Get a specific configuration section"""
        if self.config is None:
            self.load_config()
        return getattr(self.config, section, None) or {}

    def get_settings(self, section: str, model: Type[T]) -> T:
        """Validate a configuration section against a settings model"""
        return model(**self.get_section(section))

    def create_directories(self):
        """Create necessary directories based on configuration"""
        if self.config is None:
            return

        dirs_to_create = [
            Path(self.config.data_dir),
            self.config.resolved_logs_dir,
        ]

        for dir_path in dirs_to_create:
            dir_path.mkdir(parents=True, exist_ok=True)


class RuntimeConfigStore:
    """Small JSON file holding the user-toggled runtime flags."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> RuntimeConfig:
        """Read the stored flags; defaults when missing or unreadable"""
        try:
            return RuntimeConfig.model_validate_json(self.path.read_bytes())
        except FileNotFoundError:
            return RuntimeConfig()
        except (OSError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable runtime config {self.path}: {e}")
            return RuntimeConfig()

    def save(self, config: RuntimeConfig):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(config.model_dump_json(indent=2))

    def update(self, **changes) -> RuntimeConfig:
        """Apply *changes* on top of the stored flags and persist them"""
        config = self.load().model_copy(update=changes)
        self.save(config)
        return config
