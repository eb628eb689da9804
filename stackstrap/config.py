# stackstrap/config.py
"""
Centralized constants and default values for the stack bootstrapper.

This module defines the static values that are not expected to change
between runs: the engine version, default file locations, default polling
parameters for service probes and the exit codes used by the CLI.
"""

# Represents the version of the bootstrap engine.
SCRIPT_VERSION: str = "0.4.0"

# --- Default file locations ---
DEFAULT_CONFIG_FILE: str = "config.yaml"
DEFAULT_STACK_FILE: str = "stack.yaml"

# --- Service probe defaults ---
PROBE_MAX_ATTEMPTS_DEFAULT: int = 5
PROBE_RETRY_INTERVAL_DEFAULT: float = 2.0
PROBE_TIMEOUT_DEFAULT: float = 5.0
PROBE_EXPECTED_STATUS_DEFAULT: int = 200

# --- Exit codes ---
EXIT_SUCCESS: int = 0
EXIT_FAILURE: int = 1
EXIT_CANCELLED: int = 130

LOG_PREFIX_DEFAULT: str = "[STACKSTRAP]"
