"""
Configuration module for reconkit operators.

Loads configuration from environment variables.
"""

import json
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from reconkit.backoff import BackoffPolicy
from reconkit.errors import ConfigurationError
from reconkit.finalizer import DEFAULT_FINALIZER_DOMAIN


def _optional_int(name: str, default: Optional[str]) -> Optional[int]:
    value = os.getenv(name, default)
    if value is None or value == "":
        return None
    return int(value)


def _optional_float(name: str, default: Optional[str]) -> Optional[float]:
    value = os.getenv(name, default)
    if value is None or value == "":
        return None
    return float(value)


def _split_list(value: str) -> List[str]:
    return [p.strip() for p in value.split(",") if p.strip()] if value else []


@dataclass
class OperatorConfig:
    """Identity of the operator and the objects it watches."""

    name: str = "reconkit"
    finalizer_domain: str = DEFAULT_FINALIZER_DOMAIN
    namespace: str = ""  # empty = all namespaces
    label_selector: str = ""
    crd_manifest: str = ""

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        name = os.getenv("OPERATOR_NAME", "reconkit")
        if not name:
            raise ConfigurationError("OPERATOR_NAME must not be empty")
        return cls(
            name=name,
            finalizer_domain=os.getenv("FINALIZER_DOMAIN", DEFAULT_FINALIZER_DOMAIN),
            namespace=os.getenv("WATCH_NAMESPACE", ""),
            label_selector=os.getenv("LABEL_SELECTOR", ""),
            crd_manifest=os.getenv("CRD_MANIFEST", ""),
        )


@dataclass
class InformerConfig:
    """Informer timing configuration."""

    resync_period: float = 300.0  # seconds
    rate_wait: float = 1.0  # seconds between cached events

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            resync_period=float(os.getenv("RESYNC_PERIOD", "300")),
            rate_wait=float(os.getenv("RATE_WAIT", "1")),
        )


@dataclass
class ControllerConfig:
    """Controller reconciliation configuration."""

    max_concurrent_reconciles: int = 5
    pause_annotations: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        pause_annotations = {}
        if os.getenv("PAUSE_ANNOTATIONS"):
            try:
                pause_annotations = json.loads(os.getenv("PAUSE_ANNOTATIONS"))
            except json.JSONDecodeError as e:
                raise ConfigurationError(f"PAUSE_ANNOTATIONS is not valid JSON: {e}")
            if not isinstance(pause_annotations, dict):
                raise ConfigurationError("PAUSE_ANNOTATIONS must be a JSON object")

        return cls(
            max_concurrent_reconciles=int(os.getenv("MAX_CONCURRENT_RECONCILES", "5")),
            pause_annotations=pause_annotations,
        )


@dataclass
class RetryConfig:
    """Backoff configuration for resource operations."""

    max_attempts: Optional[int] = 3
    max_elapsed: Optional[float] = None  # seconds
    initial_interval: float = 1.0
    max_interval: float = 30.0

    _prefix = "RETRY"

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        defaults = cls()
        p = cls._prefix
        return cls(
            max_attempts=_optional_int(
                f"{p}_MAX_ATTEMPTS", _str_or_none(defaults.max_attempts)
            ),
            max_elapsed=_optional_float(
                f"{p}_MAX_ELAPSED", _str_or_none(defaults.max_elapsed)
            ),
            initial_interval=float(
                os.getenv(f"{p}_INITIAL_INTERVAL", str(defaults.initial_interval))
            ),
            max_interval=float(
                os.getenv(f"{p}_MAX_INTERVAL", str(defaults.max_interval))
            ),
        )

    def to_policy(self) -> BackoffPolicy:
        """Build the backoff policy described by this configuration."""
        return BackoffPolicy(
            max_attempts=self.max_attempts,
            max_elapsed=self.max_elapsed,
            initial_interval=self.initial_interval,
            max_interval=self.max_interval,
        )


@dataclass
class EstablishConfig(RetryConfig):
    """Backoff configuration for waiting on CRD establishment."""

    max_attempts: Optional[int] = None
    max_elapsed: Optional[float] = 60.0
    initial_interval: float = 0.5
    max_interval: float = 5.0

    _prefix = "CRD_ESTABLISH"


def _str_or_none(value) -> Optional[str]:
    return None if value is None else str(value)


@dataclass
class APIConfig:
    """Status server configuration."""

    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            host=os.getenv("API_HOST", "0.0.0.0"),
            port=int(os.getenv("API_PORT", "8000")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )


@dataclass
class ResourceConfig:
    """Resource chain configuration."""

    # Ordered list of enabled resource names (empty = all registered)
    enabled_resources: List[str] = field(default_factory=list)

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(enabled_resources=_split_list(os.getenv("ENABLED_RESOURCES", "")))


@dataclass
class Config:
    """Main configuration object."""

    operator: OperatorConfig
    informer: InformerConfig
    controller: ControllerConfig
    retry: RetryConfig
    establish: EstablishConfig
    api: APIConfig
    resources: ResourceConfig

    @classmethod
    def from_env(cls):
        """Load all configuration from environment variables."""
        return cls(
            operator=OperatorConfig.from_env(),
            informer=InformerConfig.from_env(),
            controller=ControllerConfig.from_env(),
            retry=RetryConfig.from_env(),
            establish=EstablishConfig.from_env(),
            api=APIConfig.from_env(),
            resources=ResourceConfig.from_env(),
        )

    @classmethod
    def default(cls):
        """Return default configuration."""
        return cls(
            operator=OperatorConfig(),
            informer=InformerConfig(),
            controller=ControllerConfig(),
            retry=RetryConfig(),
            establish=EstablishConfig(),
            api=APIConfig(),
            resources=ResourceConfig(),
        )


# Global config instance
config: Optional[Config] = None


def load_config() -> Config:
    """Load configuration (singleton pattern)."""
    global config
    if config is None:
        config = Config.from_env()
    return config


def get_config() -> Config:
    """Get the current configuration."""
    if config is None:
        return load_config()
    return config


def reset_config() -> None:
    """Reset configuration (mainly for testing)."""
    global config
    config = None
