#!/usr/bin/env python3
"""
Configuration loading for MeshSentry

Defaults are merged with an optional YAML or JSON file and then with
environment overrides. The merged result is validated against a JSON schema
before any component sees it.
"""

import os
import json
import copy
import logging
import yaml
import jsonschema
from pathlib import Path
from typing import Dict, List, Optional, Any, Union, Tuple

from .errors import ConfigurationError
from .models import ClusterMember

logger = logging.getLogger("ConfigManager")

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

DEFAULT_CONFIG = {
    "api_url": "http://localhost:8080",
    "deployment": "frontend",
    "namespace": "iot-platform",
    "poll_interval": 10.0,     # seconds between refresh cycles
    "request_timeout": 8.0,    # per-attempt timeout
    "retry_delay": 2.0,        # delay between attempts of one cycle
    "max_attempts": 3,
    "exclude_cross_cluster": True,  # active/standby variant
    "members": [
        {"key": "member1", "context": "karmada-member1-ctx",
         "display_name": "Member1 Cluster", "role": "active"},
        {"key": "member2", "context": "karmada-member2-ctx",
         "display_name": "Member2 Cluster", "role": "standby"},
    ],
    "redis_enabled": False,
    "redis_host": "localhost",
    "redis_port": 6379,
    "redis_password": None,
    "redis_db": 0,
    "redis_namespace": "meshsentry",
    "log_level": "INFO",
    "log_file": None,
}

# Environment variable -> configuration key
ENV_OVERRIDES = {
    "MESHSENTRY_API_URL": "api_url",
    "MESHSENTRY_DEPLOYMENT": "deployment",
    "MESHSENTRY_NAMESPACE": "namespace",
}

CONFIG_SCHEMA = {
    "type": "object",
    "properties": {
        "api_url": {"type": "string", "minLength": 1},
        "deployment": {"type": "string", "minLength": 1},
        "namespace": {"type": "string"},
        "poll_interval": {"type": "number", "exclusiveMinimum": 0},
        "request_timeout": {"type": "number", "exclusiveMinimum": 0},
        "retry_delay": {"type": "number", "minimum": 0},
        "max_attempts": {"type": "integer", "minimum": 1},
        "exclude_cross_cluster": {"type": "boolean"},
        "members": {
            "type": "array",
            "minItems": 2,
            "maxItems": 2,
            "items": {
                "type": "object",
                "properties": {
                    "key": {"type": "string", "minLength": 1},
                    "context": {"type": "string", "minLength": 1},
                    "display_name": {"type": "string"},
                    "role": {"enum": ["active", "standby"]},
                },
                "required": ["key", "context"],
            },
        },
        "redis_enabled": {"type": "boolean"},
        "redis_host": {"type": "string"},
        "redis_port": {"type": "integer", "minimum": 1, "maximum": 65535},
        "redis_password": {"type": ["string", "null"]},
        "redis_db": {"type": "integer", "minimum": 0},
        "redis_namespace": {"type": "string", "minLength": 1},
        "log_level": {"enum": ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]},
        "log_file": {"type": ["string", "null"]},
    },
    "required": ["api_url", "deployment", "members"],
}


def validate_configuration(config: Dict[str, Any],
                           schema: Dict[str, Any] = CONFIG_SCHEMA) -> Tuple[bool, List[str]]:
    """
    Validate configuration against a JSON schema

    Args:
        config: Configuration to validate
        schema: JSON Schema for validation

    Returns:
        Tuple of (is_valid, error_messages)
    """
    validator = jsonschema.Draft7Validator(schema)
    errors = list(validator.iter_errors(config))

    if not errors:
        return True, []

    error_messages = []
    for error in errors:
        path = ".".join(str(p) for p in error.path) if error.path else "root"
        error_messages.append(f"At {path}: {error.message}")

    return False, error_messages


def _read_config_file(path: Path) -> Dict[str, Any]:
    with open(path, 'r') as f:
        if path.suffix.lower() in ('.yaml', '.yml'):
            data = yaml.safe_load(f)
        else:
            data = json.load(f)
    return data or {}


def load_configuration(config_path: Optional[Union[str, Path]] = None,
                       environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """
    Load viewer configuration

    Args:
        config_path: Path to a YAML or JSON configuration file
        environ: Environment mapping used for overrides (defaults to os.environ)

    Returns:
        Validated configuration dictionary

    Raises:
        ConfigurationError: If the merged configuration fails validation
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    if config_path:
        path = Path(config_path)
        if not path.exists():
            logger.warning(f"Configuration file not found: {path}, using defaults")
        else:
            try:
                file_config = _read_config_file(path)
            except (OSError, ValueError, yaml.YAMLError) as e:
                raise ConfigurationError(f"Error loading configuration from {path}: {e}") from e

            if not isinstance(file_config, dict):
                raise ConfigurationError(f"Configuration in {path} must be a mapping")

            config.update(file_config)
            logger.info(f"Loaded configuration from {path}")

    environ = os.environ if environ is None else environ
    for env_name, key in ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if value:
            config[key] = value
            logger.debug(f"Configuration key {key} overridden by {env_name}")

    # The graph endpoint treats an empty namespace as "default"
    if not config.get("namespace"):
        config["namespace"] = "default"

    is_valid, errors = validate_configuration(config)
    if not is_valid:
        raise ConfigurationError(f"Invalid configuration: {'; '.join(errors)}")

    return config


def members_from_config(config: Dict[str, Any]) -> Tuple[ClusterMember, ClusterMember]:
    """Build the two member descriptors from a validated configuration"""
    members = []
    for index, entry in enumerate(config["members"]):
        members.append(ClusterMember(
            key=entry["key"],
            context=entry["context"],
            display_name=entry.get("display_name") or entry["key"],
            role=entry.get("role") or ("active" if index == 0 else "standby"),
        ))
    return members[0], members[1]


def create_default_config(output_path: Union[str, Path]):
    """
    Create a default configuration file

    Args:
        output_path: Path to write the configuration file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, 'w') as f:
        if output_path.suffix.lower() in ('.yaml', '.yml'):
            yaml.safe_dump(DEFAULT_CONFIG, f, sort_keys=False)
        else:
            json.dump(DEFAULT_CONFIG, f, indent=2)

    logger.info(f"Created default configuration at {output_path}")


def configure_logging(level: str = "INFO", log_file: Optional[str] = None):
    """Configure root logging with the MeshSentry format"""
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
