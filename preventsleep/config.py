"""Service configuration, loaded from the environment (and a .env file)."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
load_dotenv(override=True)


def _default_data_dir() -> Path:
    return Path.home() / ".preventsleep"


@dataclass
class Settings:
    """Service settings"""

    # Storage
    data_dir: Path = field(default_factory=_default_data_dir)

    # Control channel: Unix socket when available, loopback TCP otherwise
    socket_path: Optional[Path] = None
    host: str = "127.0.0.1"
    port: int = 8790

    # Evaluator timing
    tick_seconds: float = 60.0
    retry_delay_seconds: float = 1.0

    # Power state driver: auto / windows / systemd / caffeinate / null
    driver: str = "auto"

    # Logging
    log_level: str = "INFO"
    log_file: Optional[Path] = None
    debug: bool = False

    @property
    def schedules_path(self) -> Path:
        """YAML file holding the persisted schedule list."""
        return self.data_dir / "schedules.yaml"

    @property
    def control_socket(self) -> Path:
        return self.socket_path or self.data_dir / "control.sock"

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings from environment variables"""
        data_dir = Path(os.getenv(
            "PREVENTSLEEP_DATA_DIR", str(_default_data_dir())
        )).expanduser()
        socket_path = os.getenv("PREVENTSLEEP_SOCKET")
        log_file = os.getenv("PREVENTSLEEP_LOG_FILE")
        debug = os.getenv("DEBUG", "").lower() in ("1", "true")

        return cls(
            data_dir=data_dir,
            socket_path=Path(socket_path).expanduser() if socket_path else None,
            host=os.getenv("PREVENTSLEEP_HOST", "127.0.0.1"),
            port=int(os.getenv("PREVENTSLEEP_PORT", "8790")),
            tick_seconds=float(os.getenv("PREVENTSLEEP_TICK_SECONDS", "60")),
            retry_delay_seconds=float(os.getenv("PREVENTSLEEP_RETRY_DELAY_SECONDS", "1")),
            driver=os.getenv("PREVENTSLEEP_DRIVER", "auto").lower(),
            log_level="DEBUG" if debug else os.getenv("PREVENTSLEEP_LOG_LEVEL", "INFO").upper(),
            log_file=Path(log_file).expanduser() if log_file else None,
            debug=debug,
        )


# Global settings instance
settings = Settings.from_env()
