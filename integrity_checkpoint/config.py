"""Configuration defaults for integrity-checkpoint.

Values resolve through a fallback chain: environment variable, then the
host's options object (when initialized), then the [checkpoint] section of the
config file, then the built-in default.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Callable, Dict, Optional

try:
    import koji
except ImportError:
    koji = None  # type: ignore[assignment]

from .secret import Secret

logger = logging.getLogger(__name__)

CONFIG_SECTION = "checkpoint"

DEFAULT_LABEL_TEMPLATE = "${env['JOB_NAME']}-${env['BUILD_NUMBER']}-${date('yyyy_MM_dd')}"
DEFAULT_WEB_BIND = "127.0.0.1:8080"

# Module-level config cache
_config: Optional[Dict[str, Any]] = None
_options: Optional[Any] = None  # Host options object (set by initialize)


def initialize(options: Any) -> None:
    """Initialize config module with the host's parsed options object.

    Attributes named ``checkpoint_<key>`` on the object take precedence over
    the config file.

    Args:
        options: Parsed options object from the host build system
    """
    global _options
    _options = options
    logger.debug("Config module initialized with host options object")


def _parse_config_file(config_file: Optional[str] = None) -> Dict[str, Any]:
    """Parse the [checkpoint] section of a config file using the koji library.

    Args:
        config_file: Path to config file. If None, nothing is parsed.

    Returns:
        Dict of raw (string) values from the section, empty if unavailable
    """
    if not config_file:
        return {}
    if koji is None:
        logger.debug("koji library unavailable, ignoring config file %s", config_file)
        return {}

    try:
        parsed = koji.read_config_files([config_file])
    except Exception as exc:
        logger.warning("Failed to read config file %s: %s", config_file, exc)
        return {}

    if CONFIG_SECTION not in parsed:
        logger.debug("No [%s] section in %s", CONFIG_SECTION, config_file)
        return {}
    return dict(parsed[CONFIG_SECTION])


def _get_config() -> Dict[str, Any]:
    """Get parsed config dict, initializing if needed."""
    global _config
    if _config is None:
        config_file = os.environ.get("INTEGRITY_CHECKPOINT_CONFIG")
        _config = _parse_config_file(config_file)
    return _config


def _get_config_value(
    key: str,
    default: Any,
    env_var: Optional[str] = None,
    converter: Optional[Callable[[Any], Any]] = None,
) -> Any:
    """Get config value with fallback chain: env var, options, config file, default.

    Args:
        key: Config key name (in [checkpoint] section)
        default: Default value if not found
        env_var: Optional environment variable name
        converter: Optional function to convert string value (e.g., int, bool)

    Returns:
        Config value (converted if converter provided)
    """
    if env_var:
        env_value = os.environ.get(env_var)
        if env_value is not None:
            if converter:
                try:
                    return converter(env_value)
                except (ValueError, TypeError):
                    logger.warning(
                        "Invalid value for %s: %s, using default", env_var, env_value
                    )
                    return default
            return env_value

    if _options is not None:
        option_key = f"checkpoint_{key}"
        if hasattr(_options, option_key):
            value = getattr(_options, option_key)
            if converter and isinstance(value, str):
                try:
                    return converter(value)
                except (ValueError, TypeError):
                    logger.warning("Invalid value for %s: %s, using default", key, value)
                    return default
            return value

    config = _get_config()
    value = config.get(key)
    if value is not None:
        if converter:
            try:
                return converter(value)
            except (ValueError, TypeError):
                logger.warning(
                    "Invalid value for config key %s: %s, using default", key, value
                )
                return default
        return value

    return default


def _parse_bool(value: Any) -> bool:
    """Parse boolean value from config (string or bool).

    Accepts: True, "true", "1", "yes", "on" -> True; anything else -> False
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "on")
    return bool(value)


def _parse_port(value: Any) -> int:
    port = int(value)
    if port < 0 or port > 65535:
        raise ValueError(f"port out of range: {port}")
    return port


def checkpoint_label_template() -> str:
    """Default label template used when a step does not supply one."""
    value = _get_config_value(
        "label_template",
        DEFAULT_LABEL_TEMPLATE,
        env_var="INTEGRITY_CHECKPOINT_LABEL_TEMPLATE",
    )
    return value or DEFAULT_LABEL_TEMPLATE


def checkpoint_integration_point_host() -> str:
    """Integration point host; empty means connect to the server directly."""
    return _get_config_value(
        "ip_host",
        "",
        env_var="INTEGRITY_CHECKPOINT_IP_HOST",
    )


def checkpoint_integration_point_port() -> int:
    return _get_config_value(
        "ip_port",
        0,
        env_var="INTEGRITY_CHECKPOINT_IP_PORT",
        converter=_parse_port,
    )


def checkpoint_host() -> str:
    """Integrity server host (default: localhost)."""
    return _get_config_value(
        "host",
        "localhost",
        env_var="INTEGRITY_CHECKPOINT_HOST",
    )


def checkpoint_port() -> int:
    """Integrity server port (default: 7001)."""
    return _get_config_value(
        "port",
        7001,
        env_var="INTEGRITY_CHECKPOINT_PORT",
        converter=_parse_port,
    )


def checkpoint_user_name() -> str:
    return _get_config_value(
        "user",
        "",
        env_var="INTEGRITY_CHECKPOINT_USER",
    )


def checkpoint_password() -> Secret:
    """Password as an opaque secret.

    The plaintext variable wins over the base64 encoded one, which is the
    form persisted by older configurations.
    """
    plain = _get_config_value(
        "password",
        None,
        env_var="INTEGRITY_CHECKPOINT_PASSWORD",
    )
    if plain is not None:
        return plain if isinstance(plain, Secret) else Secret(str(plain))

    encoded = _get_config_value(
        "password_encoded",
        "",
        env_var="INTEGRITY_CHECKPOINT_PASSWORD_ENCODED",
    )
    try:
        return Secret.from_encoded(encoded)
    except ValueError:
        logger.warning("Invalid encoded password in configuration, using empty password")
        return Secret("")


def checkpoint_secure() -> bool:
    """Encrypt the session channel (default: False)."""
    return _get_config_value(
        "secure",
        False,
        env_var="INTEGRITY_CHECKPOINT_SECURE",
        converter=_parse_bool,
    )


def checkpoint_configuration_name() -> str:
    """Name of the project configuration to checkpoint."""
    return _get_config_value(
        "configuration_name",
        "",
        env_var="INTEGRITY_CHECKPOINT_CONFIGURATION_NAME",
    )


def checkpoint_web_bind() -> str:
    """Bind address of the configuration web app (default: "127.0.0.1:8080")."""
    value = _get_config_value(
        "web_bind",
        DEFAULT_WEB_BIND,
        env_var="INTEGRITY_CHECKPOINT_WEB_BIND",
    )
    host, sep, port = value.rpartition(":")
    if not sep or not host or not port.isdigit() or int(port) > 65535:
        logger.warning("Invalid web_bind format, using default: %s", DEFAULT_WEB_BIND)
        return DEFAULT_WEB_BIND
    return value


def reset_config() -> None:
    """Reset config cache (useful for testing)."""
    global _config, _options
    _config = None
    _options = None
