"""
Pumpflow environment configuration.

Loads from environment variables with sensible defaults.
"""

import os
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


DEFAULT_WS_URL = "wss://pumpportal.fun/api/data"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, str(default))
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer, got {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, str(default))
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be a number, got {raw!r}")


@dataclass
class PumpflowConfig:
    """
    Pumpflow configuration loaded from environment variables.

    Simple, flat configuration structure with sensible defaults.
    """

    # Upstream feed
    ws_url: str = DEFAULT_WS_URL
    reconnect_delay: float = 5.0  # seconds

    # Token store
    store_capacity: int = 200

    # HTTP server
    host: str = "0.0.0.0"
    port: int = 3000

    # Logging Configuration
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "PumpflowConfig":
        """
        Load configuration from environment variables.

        Returns:
            PumpflowConfig instance

        Raises:
            ValueError: If a numeric environment variable cannot be parsed
        """
        config = cls(
            ws_url=os.environ.get("PUMPPORTAL_WS_URL", DEFAULT_WS_URL),
            reconnect_delay=_env_float("RECONNECT_DELAY_SECONDS", 5.0),
            store_capacity=_env_int("TOKEN_STORE_CAPACITY", 200),
            host=os.environ.get("HOST", "0.0.0.0"),
            port=_env_int("PORT", 3000),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        )

        if config.store_capacity <= 0:
            raise ValueError(f"TOKEN_STORE_CAPACITY must be positive, got {config.store_capacity}")
        if config.reconnect_delay < 0:
            raise ValueError(f"RECONNECT_DELAY_SECONDS must not be negative, got {config.reconnect_delay}")

        logger.debug(f"Loaded configuration: {config}")
        return config
