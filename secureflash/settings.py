"""Settings management for secureflash."""
import json
import os

from .logger import get_logger

log = get_logger(__name__)

SETTINGS_FILE_NAME = 'secureflash.json'

# Environment variables that override file settings
ENV_OVERRIDES = {
    'COMMANDER': 'commander_path',
    'BIN_DIR_NAME': 'bin_dir_name',
    'LOG_TAG': 'log_tag',
}


class Settings:
    """Handles loading and saving application settings."""

    def __init__(self, settings_file=None, environ=None):
        if settings_file is None:
            # Use secureflash.json in the working directory
            settings_file = os.path.join(os.getcwd(), SETTINGS_FILE_NAME)
        self.settings_file = settings_file
        self.data = self._load_settings()
        self._apply_env(os.environ if environ is None else environ)

    def _load_settings(self):
        """Load settings from file, filling in defaults for missing keys."""
        data = self._default_settings()
        if os.path.exists(self.settings_file):
            try:
                with open(self.settings_file, 'r') as f:
                    data.update(json.load(f))
                    log.debug(f"[Settings] Loaded settings from {self.settings_file}")
            except (OSError, ValueError) as e:
                log.warning(f"[Settings] Error loading settings: {e}")
        return data

    def _default_settings(self):
        """Return default settings."""
        return {
            'commander_path': os.path.expanduser(
                '~/Downloads/SimplicityStudio_v5/developer/adapter_packs/commander/commander'
            ),
            'programmer': 'simplicity_commander',
            'device': 'EFR32ZG23B020F512IM48',
            'bin_dir_name': 'binaries',
            'log_dir_name': 'flash_logs',
            'update_version': '0.0.14',  # Version OTA'd to the device to prove it takes an upgrade
            'token_group': 'znet',
            'qr_timeout_ms': 5000,
            'command_timeout': 120.0,  # Seconds before a commander call is abandoned
            'log_tag': 'secureboot',
            'variants': ['test', 'staging', 'prod'],
        }

    def _apply_env(self, environ):
        for env_name, key in ENV_OVERRIDES.items():
            value = environ.get(env_name)
            if value:
                self.data[key] = value

    def get(self, key, default=None):
        """Get a setting value."""
        return self.data.get(key, default)

