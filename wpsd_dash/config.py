"""
Configuration Management for WPSD Dashboard
"""
import copy
import json
import os
from pathlib import Path
from typing import Dict, Any
import logging

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = 'WPSD_DASH_CONFIG'
LOG_DIR_ENV = 'MMDVM_LOG_DIR'

DEFAULT_CONFIG = {
    "dashboard": {
        "host": "0.0.0.0",
        "port": 3456
    },
    "wpsd": {
        "host": "http://192.168.5.82",
        "username": "pi-star",
        "password": "raspberry"
    },
    "tgif": {
        "dmrId": "3221205"
    },
    "paths": {
        "logDir": "/var/log/pi-star",
        "mmdvmIni": "/etc/mmdvmhost"
    },
    "monitoring": {
        "max_events": 500,
        "poll_interval": 0.5
    }
}


class Config:
    """Dashboard configuration"""

    def __init__(self, config_path: str = None):
        self.config_path = Path(config_path or os.environ.get(CONFIG_PATH_ENV, "config/config.json"))
        self.config = self.load_config()

    def load_config(self) -> Dict[str, Any]:
        """Load configuration from JSON file"""
        default_config = copy.deepcopy(DEFAULT_CONFIG)

        if self.config_path.exists():
            try:
                with open(self.config_path, 'r') as f:
                    user_config = json.load(f)
                    # Merge with defaults
                    return self._merge_configs(default_config, user_config)
            except Exception as e:
                logger.warning(f"Failed to load config from {self.config_path}: {e}")
                logger.info("Using default configuration")
                return default_config
        else:
            logger.info(f"Config file not found at {self.config_path}, using defaults")
            return default_config

    def _merge_configs(self, default: Dict, user: Dict) -> Dict:
        """Deep merge user config with defaults"""
        result = default.copy()
        for key, value in user.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_configs(result[key], value)
            elif value is not None:
                result[key] = value
        return result

    def get(self, *keys, default=None):
        """Get nested config value"""
        value = self.config
        for key in keys:
            if isinstance(value, dict):
                value = value.get(key, default)
            else:
                return default
        return value if value is not None else default

    def get_log_dir(self) -> Path:
        """MMDVMHost log directory; MMDVM_LOG_DIR wins over paths.logDir"""
        env_dir = os.environ.get(LOG_DIR_ENV)
        if env_dir:
            return Path(env_dir)
        return Path(self.get('paths', 'logDir', default=DEFAULT_CONFIG['paths']['logDir']))

    def get_mmdvm_ini(self) -> Path:
        return Path(self.get('paths', 'mmdvmIni', default=DEFAULT_CONFIG['paths']['mmdvmIni']))

    def wpsd_base(self) -> str:
        """Hotspot admin base URL without a trailing slash"""
        return self.get('wpsd', 'host', default=DEFAULT_CONFIG['wpsd']['host']).rstrip('/')

    def save(self):
        """Write the current configuration back to the JSON file"""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_path, 'w') as f:
            json.dump(self.config, f, indent=2)
        logger.info(f"Saved configuration to {self.config_path}")

    def update_wpsd_host(self, host: str):
        """Point the dashboard at a different hotspot and persist it"""
        self.config.setdefault('wpsd', {})['host'] = host
        self.save()


# Global config instance
config = Config()
