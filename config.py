import os
import logging
import sys
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from urllib.parse import urlparse

import yaml

from metrics.time_range import InvalidTimeRangeError, TimeRange


# =============================================================================
# Optional YAML config file
# =============================================================================
# Environment variables always win; the file only fills in keys the
# environment does not set.
DEFAULT_CONFIG_FILE = os.path.join(os.path.expanduser("~"), ".k8s-optimization-agent.yaml")
AGENT_CONFIG_FILE: str = os.getenv("AGENT_CONFIG_FILE", DEFAULT_CONFIG_FILE)


def _load_config_file(path: str) -> Dict[str, Any]:
    """Load a flat mapping of setting name -> value; a missing file is an empty config"""
    if not path or not os.path.exists(path):
        return {}
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logging.warning(f"Could not read config file {path}: {e}; ignoring it")
        return {}
    if not isinstance(data, dict):
        logging.warning(f"Config file {path} does not contain a mapping; ignoring it")
        return {}
    return {str(k).upper(): v for k, v in data.items()}


_FILE_SETTINGS: Dict[str, Any] = _load_config_file(AGENT_CONFIG_FILE)


def _setting(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(name)
    if v is not None:
        return v
    if name in _FILE_SETTINGS and _FILE_SETTINGS[name] is not None:
        return str(_FILE_SETTINGS[name])
    return default


def _env_bool(name: str, default: bool) -> bool:
    v = _setting(name)
    if v is None:
        return default
    return v.lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    v = _setting(name)
    if v is None or v == "":
        return default
    try:
        return int(v)
    except ValueError:
        logging.warning(f"Invalid integer for {name}: {v!r}, using {default}")
        return default


# =============================================================================
# Logging Configuration
# =============================================================================
LOG_LEVEL: str = (_setting("LOG_LEVEL", "INFO") or "INFO").upper()
LOG_FORMAT: str = _setting(
    "LOG_FORMAT",
    "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)


def setup_logging():
    """Configure application-wide logging"""
    level = getattr(logging, LOG_LEVEL, logging.INFO)
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)]
    )
    # Reduce noise from third-party libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)


# =============================================================================
# Prometheus and Target Selection
# =============================================================================
PROMETHEUS_URL: str = _setting("PROMETHEUS_URL", "http://localhost:9090")

# Both empty: every non-system namespace. A workload requires a namespace.
TARGET_NAMESPACE: Optional[str] = _setting("TARGET_NAMESPACE") or None
TARGET_WORKLOAD: Optional[str] = _setting("TARGET_WORKLOAD") or None
WORKLOAD_KIND: str = _setting("WORKLOAD_KIND", "Deployment")
WORKLOAD_API_VERSION: str = _setting("WORKLOAD_API_VERSION", "apps/v1")

# =============================================================================
# Analysis Window
# =============================================================================
ANALYSIS_WINDOW_HOURS: int = _env_int("ANALYSIS_WINDOW_HOURS", 168)
ANALYSIS_STEP_MINUTES: int = _env_int("ANALYSIS_STEP_MINUTES", 60)
# ISO-8601; empty means "now"
ANALYSIS_END: Optional[str] = _setting("ANALYSIS_END") or None

# Deadline for the whole collection; 0 disables it
COLLECTION_TIMEOUT_SECONDS: int = _env_int("COLLECTION_TIMEOUT_SECONDS", 0)

# =============================================================================
# Output
# =============================================================================
OUTPUT_DIR: str = _setting("OUTPUT_DIR", "output")
OUTPUT_FORMAT: str = (_setting("OUTPUT_FORMAT", "json") or "json").lower()
OUTPUT_FORMATS = ("json", "yaml")
ANALYSIS_OUTPUT_PATH: Optional[str] = _setting("ANALYSIS_OUTPUT_PATH") or None
SHOW_PROGRESS: bool = _env_bool("SHOW_PROGRESS", True)


def get_analysis_output_path() -> str:
    """Explicit ANALYSIS_OUTPUT_PATH, else {OUTPUT_DIR}/analysis_output.{json|yaml}"""
    if ANALYSIS_OUTPUT_PATH:
        return ANALYSIS_OUTPUT_PATH
    return os.path.join(OUTPUT_DIR, f"analysis_output.{OUTPUT_FORMAT}")


def _parse_end(value: Optional[str]) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    # fromisoformat() does not accept a trailing Z before Python 3.11
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    end = datetime.fromisoformat(value)
    if end.tzinfo is None:
        end = end.replace(tzinfo=timezone.utc)
    return end


def get_time_range() -> TimeRange:
    """Analysis window ending at ANALYSIS_END (or now)"""
    end = _parse_end(ANALYSIS_END)
    return TimeRange(
        start=end - timedelta(hours=ANALYSIS_WINDOW_HOURS),
        end=end,
        step=timedelta(minutes=ANALYSIS_STEP_MINUTES),
    )


__all__ = [
    "AGENT_CONFIG_FILE",
    "LOG_LEVEL",
    "LOG_FORMAT",
    "setup_logging",
    "PROMETHEUS_URL",
    "TARGET_NAMESPACE",
    "TARGET_WORKLOAD",
    "WORKLOAD_KIND",
    "WORKLOAD_API_VERSION",
    "ANALYSIS_WINDOW_HOURS",
    "ANALYSIS_STEP_MINUTES",
    "ANALYSIS_END",
    "COLLECTION_TIMEOUT_SECONDS",
    "OUTPUT_DIR",
    "OUTPUT_FORMAT",
    "ANALYSIS_OUTPUT_PATH",
    "SHOW_PROGRESS",
    "get_analysis_output_path",
    "get_time_range",
    "validate_config",
]


# =============================================================================
# Configuration Validation
# =============================================================================
class ConfigValidationError(Exception):
    """Raised when configuration validation fails"""
    pass


def _validate_positive_int(name: str, value: int) -> None:
    if value <= 0:
        raise ConfigValidationError(f"{name} must be positive, got {value}")


def _validate_url(name: str, value: str) -> None:
    try:
        result = urlparse(value)
        if not all([result.scheme, result.netloc]):
            raise ValueError("Missing scheme or netloc")
        if result.scheme not in ('http', 'https'):
            raise ValueError(f"Invalid scheme: {result.scheme}")
    except Exception as e:
        raise ConfigValidationError(f"{name} is not a valid URL: {value} ({e})")


def _validate_output_format(value: str) -> None:
    if value not in OUTPUT_FORMATS:
        raise ConfigValidationError(
            f"OUTPUT_FORMAT must be one of {', '.join(OUTPUT_FORMATS)}, got '{value}'"
        )


def validate_config() -> None:
    """Validate all configuration values on startup

    Raises:
        ConfigValidationError: If any configuration value is invalid
    """
    errors = []

    try:
        _validate_url("PROMETHEUS_URL", PROMETHEUS_URL)
    except ConfigValidationError as e:
        errors.append(str(e))

    for name, value in (("ANALYSIS_WINDOW_HOURS", ANALYSIS_WINDOW_HOURS),
                        ("ANALYSIS_STEP_MINUTES", ANALYSIS_STEP_MINUTES)):
        try:
            _validate_positive_int(name, value)
        except ConfigValidationError as e:
            errors.append(str(e))

    if COLLECTION_TIMEOUT_SECONDS < 0:
        errors.append(f"COLLECTION_TIMEOUT_SECONDS must not be negative, got {COLLECTION_TIMEOUT_SECONDS}")

    try:
        _validate_output_format(OUTPUT_FORMAT)
    except ConfigValidationError as e:
        errors.append(str(e))

    if TARGET_WORKLOAD and not TARGET_NAMESPACE:
        errors.append("TARGET_WORKLOAD requires TARGET_NAMESPACE")

    # the window is only meaningful once its parts are valid
    if not errors:
        try:
            get_time_range().validate()
        except ValueError as e:
            # InvalidTimeRangeError, or an unparseable ANALYSIS_END
            label = "analysis window" if isinstance(e, InvalidTimeRangeError) else "ANALYSIS_END"
            errors.append(f"Invalid {label}: {e}")

    if errors:
        raise ConfigValidationError(
            "Configuration validation failed:\n  - " + "\n  - ".join(errors)
        )
