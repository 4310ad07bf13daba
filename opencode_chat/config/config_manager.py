import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from opencode_chat.config.models import AppConfig, Preferences
from opencode_chat.config.preferences import PreferencesStore
from opencode_chat.utils.errors import ConfigError
from opencode_chat.utils.logging import get_logger

logger = get_logger(__name__)

BASE_URL_ENV = "OPENCODE_BASE_URL"


class ConfigManager:
    """Manages configuration from YAML and environment variables"""

    def __init__(self, config_path: Optional[str] = None):
        # Load environment variables
        load_dotenv()

        # Determine config file location
        if config_path:
            self.config_path = Path(config_path)
        else:
            self.config_path = Path.home() / ".opencode-chat" / "config.yaml"
        self.config_dir = self.config_path.parent
        self.config_dir.mkdir(parents=True, exist_ok=True)

        # Create default config if doesn't exist
        if not self.config_path.exists():
            self._create_default_config()

        # Load configuration
        self._config_data = self._load_config_file()
        try:
            self.config = AppConfig(**self._config_data)
        except ValidationError as e:
            raise ConfigError(
                f"Invalid configuration in {self.config_path}: {e}",
                hint="Fix the file or delete it to regenerate defaults",
            ) from e

        self.base_url_override = os.getenv(BASE_URL_ENV) or None
        if self.base_url_override:
            logger.debug(f"Server URL overridden by {BASE_URL_ENV}")
        logger.debug(f"Config loaded from {self.config_path}")

    def _create_default_config(self):
        """Create default configuration file"""
        self._write(AppConfig().model_dump())
        logger.info(f"Created default config at {self.config_path}")

    def _load_config_file(self) -> Dict:
        """Load configuration from YAML file"""
        try:
            with open(self.config_path) as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Could not parse {self.config_path}: {e}") from e
        return data if isinstance(data, dict) else {}

    def get(self, key: str, default=None) -> Any:
        """Get configuration value using dot notation"""
        return self.config.get_dot_notation(key, default)

    @property
    def base_url(self) -> Optional[str]:
        """Effective server URL: environment override, else the saved one."""
        return self.base_url_override or self.config.server.base_url

    def load_preferences(self) -> Preferences:
        return Preferences(
            base_url=self.base_url,
            setup_complete=self.config.server.setup_complete,
            last_provider=self.config.selection.provider_id,
            last_model=self.config.selection.model_id,
        )

    def save_preferences(self, prefs: Preferences):
        # Never persist a URL that only came from the environment
        if not (self.base_url_override and prefs.base_url == self.base_url_override):
            self.config.server.base_url = prefs.base_url
        self.config.server.setup_complete = prefs.setup_complete
        self.config.selection.provider_id = prefs.last_provider
        self.config.selection.model_id = prefs.last_model
        self.save()

    def preferences_store(self) -> PreferencesStore:
        """A store bound to this config file."""
        return PreferencesStore(self.load_preferences, self.save_preferences)

    def _write(self, data: Dict):
        # Write to a temp file in the same directory, then move it into place
        fd, temp_path = tempfile.mkstemp(dir=self.config_dir, prefix=".config-", suffix=".yaml.tmp")
        try:
            with os.fdopen(fd, "w") as f:
                yaml.dump(data, f, default_flow_style=False, sort_keys=False)
            shutil.move(temp_path, self.config_path)
        except BaseException:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise

    def save(self):
        """Save current configuration to file"""
        self._write(self.config.model_dump())
        logger.info(f"Config saved to {self.config_path}")
