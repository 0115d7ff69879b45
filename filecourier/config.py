"""
Configuration Management

Handles loading configuration from environment variables and config files.
"""

import os
from pathlib import Path
from dataclasses import dataclass
from typing import Optional
import json

from dotenv import load_dotenv


@dataclass
class Config:
    """
    filecourier configuration.

    Configuration priority (highest to lowest):
    1. Environment variables (FILECOURIER_*)
    2. Config file (config.json)
    3. Default values
    """
    # Network
    host: str = '0.0.0.0'
    connect_timeout: float = 10.0
    ws_path: str = '/'

    # Transfer
    chunk_size: int = 4096  # payload read / frame size
    temp_dir: Optional[Path] = None
    session_history: int = 100  # finished sessions a receiver remembers

    # Progress events
    events_host: str = '0.0.0.0'
    events_port: int = 3030
    events_capacity: int = 16

    # Logging
    log_level: str = 'INFO'

    @classmethod
    def from_env(cls) -> 'Config':
        """Load configuration from environment variables."""
        load_dotenv()

        config = cls()

        # Network
        config.host = os.getenv('FILECOURIER_HOST', config.host)
        config.connect_timeout = float(
            os.getenv('FILECOURIER_CONNECT_TIMEOUT', config.connect_timeout)
        )
        config.ws_path = os.getenv('FILECOURIER_WS_PATH', config.ws_path)

        # Transfer
        config.chunk_size = int(os.getenv('FILECOURIER_CHUNK_SIZE', config.chunk_size))
        temp_dir = os.getenv('FILECOURIER_TEMP_DIR')
        if temp_dir:
            config.temp_dir = Path(temp_dir)
        config.session_history = int(
            os.getenv('FILECOURIER_SESSION_HISTORY', config.session_history)
        )

        # Progress events
        config.events_host = os.getenv('FILECOURIER_EVENTS_HOST', config.events_host)
        config.events_port = int(os.getenv('FILECOURIER_EVENTS_PORT', config.events_port))
        config.events_capacity = int(
            os.getenv('FILECOURIER_EVENTS_CAPACITY', config.events_capacity)
        )

        # Logging
        config.log_level = os.getenv('FILECOURIER_LOG_LEVEL', config.log_level)

        return config

    @classmethod
    def from_file(cls, path: Path) -> 'Config':
        """Load configuration from a JSON file."""
        if not path.exists():
            return cls()

        with open(path) as f:
            data = json.load(f)

        config = cls()

        # Network
        config.host = data.get('host', config.host)
        config.connect_timeout = data.get('connect_timeout', config.connect_timeout)
        config.ws_path = data.get('ws_path', config.ws_path)

        # Transfer
        config.chunk_size = data.get('chunk_size', config.chunk_size)
        if data.get('temp_dir'):
            config.temp_dir = Path(data['temp_dir'])
        config.session_history = data.get('session_history', config.session_history)

        # Progress events
        config.events_host = data.get('events_host', config.events_host)
        config.events_port = data.get('events_port', config.events_port)
        config.events_capacity = data.get('events_capacity', config.events_capacity)

        # Logging
        config.log_level = data.get('log_level', config.log_level)

        return config

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            'host': self.host,
            'connect_timeout': self.connect_timeout,
            'ws_path': self.ws_path,
            'chunk_size': self.chunk_size,
            'temp_dir': str(self.temp_dir) if self.temp_dir else None,
            'session_history': self.session_history,
            'events_host': self.events_host,
            'events_port': self.events_port,
            'events_capacity': self.events_capacity,
            'log_level': self.log_level,
        }

    def save(self, path: Path):
        """Save configuration to a JSON file."""
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)


def load_config(config_path: Optional[Path] = None) -> Config:
    """
    Load configuration from file and environment.

    Environment variables override file settings.
    """
    # Start with defaults
    config = Config()

    # Load from file if provided
    if config_path and config_path.exists():
        config = Config.from_file(config_path)

    # Override with environment variables
    env_config = Config.from_env()

    # Merge (env takes precedence for non-default values)
    defaults = Config()
    for key in ['host', 'connect_timeout', 'ws_path', 'chunk_size', 'temp_dir',
                'session_history',
                'events_host', 'events_port', 'events_capacity', 'log_level']:
        env_val = getattr(env_config, key)
        if env_val != getattr(defaults, key):
            setattr(config, key, env_val)

    return config


# Example config file template
EXAMPLE_CONFIG = """
{
  "host": "0.0.0.0",
  "connect_timeout": 10.0,
  "ws_path": "/",
  "chunk_size": 4096,
  "temp_dir": null,
  "session_history": 100,
  "events_host": "0.0.0.0",
  "events_port": 3030,
  "events_capacity": 16,
  "log_level": "INFO"
}
"""


if __name__ == "__main__":
    # Print example config
    print("Example configuration file (config.json):")
    print(EXAMPLE_CONFIG)
