"""Provides functions for loading and accessing configuration settings.

Supports loading from .env files, environment variables, and a dedicated
configuration file (~/.shiplink/config.yaml). Also builds the validated
provider credentials (ProviderConfig) used by both transports.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from shiplink.domain.errors import ConfigurationError

logger = logging.getLogger(__name__)

# --- Configuration Constants ---
DEFAULT_CONFIG_DIR = Path.home() / ".shiplink"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"
ENV_FILE_NAME = ".env"

DEFAULT_TIMEOUT_MS = 30000
MIN_TIMEOUT_MS = 1000

# --- Global Configuration Store (Simple Approach) ---
_config: Dict[str, Any] = {}
_overrides: Dict[str, Any] = {}  # Set at runtime, e.g. from CLI flags
_test_config: Dict[str, Any] = {}  # For testing purposes
_loaded = False


def load_configuration(config_file: Path = DEFAULT_CONFIG_FILE, env_file: Optional[Path] = None) -> None:
    """Loads configuration from environment, .env file, and YAML file.

    Priority order (highest to lowest):
    1. Environment Variables
    2. .env file
    3. YAML configuration file
    4. Default values passed to get_config

    Args:
        config_file: Path to the YAML configuration file.
        env_file: Path to the .env file (searches upwards from cwd if None).
    """
    global _config, _loaded
    if _loaded:
        logger.debug("Configuration already loaded.")
        return

    _config = {}

    # 1. Load from YAML file (Lowest priority)
    if config_file.exists():
        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                yaml_config = yaml.safe_load(f)
            if isinstance(yaml_config, dict):
                _config.update(yaml_config)
                logger.info(f"Loaded configuration from YAML: {config_file}")
            elif yaml_config is not None:
                logger.warning(f"YAML config file {config_file} did not contain a dictionary.")
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load or parse YAML config {config_file}: {e}")
    else:
        logger.debug(f"YAML config file not found: {config_file}")

    # 2. Load from .env file (Medium priority)
    dotenv_path = env_file or find_dotenv_path()
    if dotenv_path:
        # override=False: real environment variables take precedence
        if load_dotenv(dotenv_path=dotenv_path, override=False):
            logger.info(f"Loaded environment variables from: {dotenv_path}")
        else:
            logger.debug(f".env file at {dotenv_path} was empty or unreadable.")
    else:
        logger.debug("Skipping .env file loading (not found at or above current directory).")

    # 3. Environment Variables (Highest priority) are read by get_config

    _loaded = True
    logger.debug("Configuration loading process completed.")


def reset_configuration() -> None:
    """Forgets loaded YAML values and overrides so load_configuration can run again."""
    global _config, _loaded
    _config = {}
    _overrides.clear()
    _loaded = False


def env_key_for(key: str) -> str:
    """Maps a dotted config key to its environment variable, e.g. cache.max_size -> CACHE_MAX_SIZE."""
    return key.upper().replace('.', '_')


def _coerce(value: str) -> Any:
    if value.lower() == 'true':
        return True
    if value.lower() == 'false':
        return False
    try:
        if '.' in value:
            return float(value)
        return int(value)
    except (ValueError, TypeError):
        return value


def _lookup_yaml(key: str) -> Any:
    """Finds a dotted key either flat ('cache.max_size') or nested (cache: {max_size})."""
    if key in _config:
        return _config[key]
    node: Any = _config
    for part in key.split('.'):
        if not isinstance(node, dict) or part not in node:
            return None
        node = node[part]
    return node


def get_config(key: str, default: Any = None, coerce: bool = True) -> Any:
    """
    Get a configuration value by key.

    Priority:
    1. Test configuration (if in testing mode)
    2. Runtime overrides (set_config)
    3. Environment variable (dots become underscores, upper case)
    4. YAML config
    5. Default value

    Args:
        key: The dotted configuration key, e.g. 'rate_limit.max_requests'
        default: Default value if the key is not found
        coerce: Convert environment strings that look like booleans or numbers.
            Disable for credentials, where '0123' must stay a string.

    Returns:
        The configuration value
    """
    if key in _test_config:
        return _test_config[key]

    if key in _overrides:
        return _overrides[key]

    env_key = env_key_for(key)
    if env_key in os.environ:
        value = os.environ[env_key]
        return _coerce(value) if coerce else value

    value = _lookup_yaml(key)
    if value is not None:
        return value

    logger.debug(f"Config key '{key}' not found in environment or loaded config. Returning default: {default}")
    return default


def find_dotenv_path() -> Optional[Path]:
    """Searches for the .env file upwards from the current directory."""
    try:
        cwd = Path.cwd()
        for path in [cwd] + list(cwd.parents):
            env_path = path / ENV_FILE_NAME
            if env_path.is_file():
                return env_path
    except OSError as e:
        logger.warning(f"Error searching for .env file: {e}")
    return None


def set_config(key: str, value: Any) -> None:
    """Overrides a configuration value for the running process.

    Overrides win over environment variables and survive load_configuration.

    Args:
        key: Configuration key (e.g., 'logging.level')
        value: Value to set
    """
    _overrides[key] = value
    logger.debug(f"Config set: {key}={value}")


def set_config_for_testing(config_dict: Dict[str, Any]) -> None:
    """
    Set configuration values for testing purposes.
    These values will override any existing configuration.

    Args:
        config_dict: Dictionary of configuration values to set
    """
    _test_config.update(config_dict)
    logger.debug(f"Set testing configuration: {config_dict}")


def clear_test_config() -> None:
    """Clear all testing configuration values."""
    _test_config.clear()
    logger.debug("Cleared testing configuration")


# --- Provider Credentials ---

def redact_sensitive(value: Optional[str]) -> str:
    """Keeps the first and last two characters of a secret."""
    if not value or len(value) <= 4:
        return "***"
    return value[:2] + "*" * (len(value) - 4) + value[-2:]


def _parse_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() == 'true'


@dataclass(frozen=True)
class ProviderConfig:
    """Validated Aramex account credentials and client settings."""
    username: str
    password: str
    account_number: str
    account_pin: str
    account_entity: str
    account_country_code: str
    sandbox: bool = False
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    debug: bool = False

    REQUIRED_FIELDS = (
        "username",
        "password",
        "account_number",
        "account_pin",
        "account_entity",
        "account_country_code",
    )

    def __post_init__(self) -> None:
        problems = self.problems()
        if problems:
            raise ConfigurationError(f"Aramex configuration validation failed: {'; '.join(problems)}")

    def problems(self) -> List[str]:
        problems = [f"{name} should not be empty" for name in self.REQUIRED_FIELDS if not self._filled(name)]
        if isinstance(self.timeout_ms, bool) or not isinstance(self.timeout_ms, int):
            problems.append("timeout_ms must be an integer")
        elif self.timeout_ms < MIN_TIMEOUT_MS:
            problems.append(f"timeout_ms must not be less than {MIN_TIMEOUT_MS}")
        return problems

    def _filled(self, name: str) -> bool:
        value = getattr(self, name)
        return isinstance(value, str) and bool(value.strip())

    @property
    def is_sandbox(self) -> bool:
        return self.sandbox

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000

    def validate_credentials(self) -> bool:
        return all(self._filled(name) for name in self.REQUIRED_FIELDS)

    def redacted(self) -> Dict[str, Any]:
        """Safe-to-log view of the configuration."""
        return {
            "username": redact_sensitive(self.username),
            "password": redact_sensitive(self.password),
            "account_number": redact_sensitive(self.account_number),
            "account_pin": redact_sensitive(self.account_pin),
            "account_entity": self.account_entity,
            "account_country_code": self.account_country_code,
            "sandbox": self.sandbox,
            "timeout_ms": self.timeout_ms,
            "debug": self.debug,
        }


def create_config_from_environment() -> ProviderConfig:
    """Builds ProviderConfig from ARAMEX_* variables (or the 'aramex' YAML section).

    Raises:
        ConfigurationError: If a credential is missing or the timeout is invalid.
    """
    def credential(name: str) -> str:
        value = get_config(f"aramex.{name}", coerce=False)
        return "" if value is None else str(value)

    raw_timeout = get_config("aramex.timeout", coerce=False)
    try:
        timeout_ms = DEFAULT_TIMEOUT_MS if raw_timeout in (None, "") else int(raw_timeout)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Aramex configuration validation failed: invalid timeout '{raw_timeout}'") from e

    config = ProviderConfig(
        username=credential("username"),
        password=credential("password"),
        account_number=credential("account_number"),
        account_pin=credential("account_pin"),
        account_entity=credential("account_entity"),
        account_country_code=credential("account_country_code"),
        sandbox=_parse_bool(get_config("aramex.sandbox", coerce=False)),
        timeout_ms=timeout_ms,
        debug=_parse_bool(get_config("aramex.debug", coerce=False)),
    )
    log_provider_config(config)
    return config


def log_provider_config(config: ProviderConfig) -> None:
    environment = "SANDBOX" if config.is_sandbox else "PRODUCTION"
    logger.info(f"Aramex configuration loaded for {environment} environment")
    if config.debug:
        logger.debug(f"Configuration details: {config.redacted()}")
    if not config.is_sandbox:
        logger.warning("Running in PRODUCTION mode - all API calls will be live")
