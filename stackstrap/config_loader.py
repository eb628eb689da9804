# stackstrap/config_loader.py
# -*- coding: utf-8 -*-
"""
Configuration loader for the application.

Handles loading settings from Pydantic model defaults, environment variables,
a YAML file and command-line options, applying this order of precedence:
1. Pydantic Model Defaults
2. Environment Variables (STACKSTRAP_*, loaded by BaseSettings)
3. YAML Configuration File
4. Command-Line Options

Also loads and validates stack definition files.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import ValidationError

from stackstrap.config_models import AppSettings, StackDefinition
from stackstrap.models import StackDefinitionError

module_logger = logging.getLogger(__name__)


def _deep_update(
    source: Dict[str, Any], overrides: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Recursively updates `source` with the non-None values of `overrides`.
    Nested dictionaries are merged rather than replaced.
    """
    for key, value in overrides.items():
        if (
            isinstance(value, dict)
            and key in source
            and isinstance(source[key], dict)
        ):
            source[key] = _deep_update(source[key], value)
        elif value is not None:
            source[key] = value
    return source


def _read_yaml_mapping(
    path: Path, logger_to_use: logging.Logger
) -> Optional[Dict[str, Any]]:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        logger_to_use.warning(
            f"Config file '{path}' does not contain a valid YAML dictionary. Ignoring."
        )
        return None
    return data


def load_app_settings(
    cli_overrides: Optional[Dict[str, Any]] = None,
    config_file_path: Optional[Union[str, Path]] = None,
    current_logger: Optional[logging.Logger] = None,
) -> AppSettings:
    """
    Loads application settings.

    Args:
        cli_overrides: Values given on the command line; None values are
            ignored so unset options do not mask other sources.
        config_file_path: Optional YAML settings file. A missing file is
            reported and skipped; an unparsable one too.
        current_logger: Optional logger to use instead of the module logger.

    Returns:
        An instance of AppSettings with the fully resolved configuration.

    Raises:
        SystemExit: The merged configuration does not validate.
    """
    logger_to_use = current_logger if current_logger else module_logger

    # Model defaults < environment variables
    current_values_dict = AppSettings().model_dump(exclude_defaults=False)

    if config_file_path:
        yaml_config_path = Path(config_file_path)
        if yaml_config_path.is_file():
            try:
                yaml_data = _read_yaml_mapping(yaml_config_path, logger_to_use)
                if yaml_data:
                    current_values_dict = _deep_update(
                        current_values_dict, yaml_data
                    )
                    logger_to_use.info(
                        f"Loaded configuration from {yaml_config_path}"
                    )
            except yaml.YAMLError as e:
                logger_to_use.warning(
                    f"Could not parse YAML config file '{yaml_config_path}': {e}. Using defaults and environment variables."
                )
            except IOError as e:
                logger_to_use.warning(
                    f"Could not read config file '{yaml_config_path}': {e}. Using defaults and environment variables."
                )
        else:
            logger_to_use.info(
                f"Configuration file '{yaml_config_path}' not found. Using defaults, environment variables, and CLI options."
            )

    if cli_overrides:
        current_values_dict = _deep_update(current_values_dict, cli_overrides)

    try:
        final_settings = AppSettings(**current_values_dict)
    except ValidationError as e:
        logger_to_use.error(f"Configuration validation failed: {e}")
        raise SystemExit(f"Configuration error: {e}") from e

    logger_to_use.debug("Successfully loaded and validated application settings")
    return final_settings


def load_stack_definition(
    stack_file_path: Union[str, Path],
    current_logger: Optional[logging.Logger] = None,
) -> StackDefinition:
    """
    Loads a stack definition file. Relative template and file paths inside
    the definition resolve against the file's directory.

    Raises:
        StackDefinitionError: The file is missing, is not a YAML mapping or
            does not validate (unknown keys, duplicate step ids, ...).
    """
    logger_to_use = current_logger if current_logger else module_logger
    path = Path(stack_file_path)

    if not path.is_file():
        raise StackDefinitionError(f"stack definition '{path}' not found")

    try:
        data = _read_yaml_mapping(path, logger_to_use)
    except yaml.YAMLError as e:
        raise StackDefinitionError(f"cannot parse '{path}': {e}") from e
    except IOError as e:
        raise StackDefinitionError(f"cannot read '{path}': {e}") from e
    if data is None:
        raise StackDefinitionError(f"'{path}' is not a YAML mapping")

    data["base_dir"] = path.resolve().parent
    try:
        definition = StackDefinition(**data)
    except ValidationError as e:
        raise StackDefinitionError(f"invalid stack definition '{path}': {e}") from e

    logger_to_use.info(
        f"Loaded stack '{definition.name}' from {path}: "
        f"{len(definition.requirements)} requirement(s), {len(definition.steps)} step(s), "
        f"{len(definition.probes)} probe(s)"
    )
    return definition
