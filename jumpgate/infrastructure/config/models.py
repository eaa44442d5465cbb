"""
Configuration models and data structures.

This module defines the configuration models used by the gate, providing
type safety and validation for configuration values.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional
from pathlib import Path

STORE_BACKENDS = ("file", "sql")


@dataclass
class ServerConfig:
    """Inbound listener configuration."""
    host: str = "0.0.0.0"
    port: int = 2222
    host_key_paths: List[str] = field(
        default_factory=lambda: ["ssh_host_ed25519_key"])
    login_timeout: float = 120.0
    keepalive_interval: float = 0.0
    server_version: str = "Jumpgate_1.0"


@dataclass
class UpstreamConfig:
    """Outbound (target) connection configuration."""
    client_version: str = "Jumpgate_1.0"
    keepalive_interval: float = 0.0


@dataclass
class CredentialStoreConfig:
    """Credential store backend configuration."""
    backend: str = "file"
    path: str = "credentials.yaml"
    url: Optional[str] = None


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    format: str = ("{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
                   "{extra[session]} | {name}:{function}:{line} - {message}")
    log_directory: str = "logs"
    max_file_size: str = "10 MB"
    backup_count: int = 5
    console_enabled: bool = True
    file_enabled: bool = True


@dataclass
class ApplicationConfig:
    """Main application configuration."""

    name: str = "Jumpgate"
    version: str = "0.1.0"
    debug: bool = False
    environment: str = "production"

    server: ServerConfig = field(default_factory=ServerConfig)
    upstream: UpstreamConfig = field(default_factory=UpstreamConfig)
    credentials: CredentialStoreConfig = field(default_factory=CredentialStoreConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    config_file_path: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        self._validate_paths()
        self._validate_ports()
        self._validate_store()
        self._validate_intervals()

    def _validate_paths(self) -> None:
        """Create the log directory when file logging is enabled."""
        if self.logging.file_enabled and self.logging.log_directory:
            path = Path(self.logging.log_directory)
            try:
                path.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise ValueError(f"Cannot create directory {path}: {e}")

    def _validate_ports(self) -> None:
        if not (1 <= self.server.port <= 65535):
            raise ValueError(
                f"Listen port must be between 1 and 65535, got {self.server.port}")

    def _validate_store(self) -> None:
        if self.credentials.backend not in STORE_BACKENDS:
            raise ValueError(
                f"Unknown credential store backend {self.credentials.backend!r}, "
                f"expected one of {', '.join(STORE_BACKENDS)}")
        if self.credentials.backend == "sql" and not self.credentials.url:
            raise ValueError("The sql credential store requires a url")

    def _validate_intervals(self) -> None:
        intervals = [
            ("Login timeout", self.server.login_timeout),
            ("Server keepalive interval", self.server.keepalive_interval),
            ("Upstream keepalive interval", self.upstream.keepalive_interval),
        ]

        for name, value in intervals:
            if value < 0:
                raise ValueError(f"{name} must not be negative, got {value}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        result = asdict(self)
        result.pop('config_file_path', None)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ApplicationConfig':
        """Create configuration from dictionary."""
        return cls(
            name=data.get('name', 'Jumpgate'),
            version=data.get('version', '0.1.0'),
            debug=data.get('debug', False),
            environment=data.get('environment', 'production'),
            server=ServerConfig(**data.get('server', {})),
            upstream=UpstreamConfig(**data.get('upstream', {})),
            credentials=CredentialStoreConfig(**data.get('credentials', {})),
            logging=LoggingConfig(**data.get('logging', {})),
        )
