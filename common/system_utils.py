# common/system_utils.py
# -*- coding: utf-8 -*-
"""
System-level utility functions for the stack bootstrapper.

This module reads host resources (CPU cores, memory, free disk space,
installed tool versions) and looks up running processes and containers.
"""

import logging
import os
import re
import shutil
import subprocess
from os import cpu_count
from pathlib import Path
from typing import Optional

from common.command_utils import (
    command_exists,
    get_symbols,
    log_bootstrap,
    run_command,
)
from stackstrap.config_models import AppSettings
from stackstrap.models import ResourceKind, ResourceRequirement

module_logger = logging.getLogger(__name__)

MEMINFO_PATH = Path("/proc/meminfo")
VERSION_PATTERN = re.compile(r"(\d+)(?:\.(\d+))?")


def get_cpu_cores() -> Optional[float]:
    cores = cpu_count()
    return float(cores) if cores else None


def get_total_memory_mb(meminfo_path: Path = MEMINFO_PATH) -> Optional[float]:
    """
    Total physical memory in MB, from /proc/meminfo where available and
    sysconf otherwise.
    """
    try:
        with open(meminfo_path, "r", encoding="utf-8") as f:
            for line in f:
                if line.startswith("MemTotal:"):
                    return int(line.split()[1]) / 1024.0
    except OSError:
        pass
    try:
        pages = os.sysconf("SC_PHYS_PAGES")
        page_size = os.sysconf("SC_PAGE_SIZE")
    except (ValueError, OSError, AttributeError):
        return None
    return pages * page_size / (1024.0 * 1024.0)


def get_free_disk_mb(path: str = "/") -> Optional[float]:
    try:
        usage = shutil.disk_usage(path)
    except OSError:
        return None
    return usage.free / (1024.0 * 1024.0)


def parse_version_number(text: str) -> Optional[float]:
    """
    Extracts the first "major[.minor]" number from version output, e.g.
    "v18.19.0" -> 18.19 and "mongod version v7.0.2" -> 7.0.
    """
    match = VERSION_PATTERN.search(text or "")
    if not match:
        return None
    major, minor = match.group(1), match.group(2) or "0"
    return float(f"{major}.{minor}")


def get_command_version(
    command_name: str,
    app_settings: Optional[AppSettings] = None,
    current_logger: Optional[logging.Logger] = None,
) -> Optional[float]:
    """
    Version of an installed command as a number.

    Returns None when the command is not on PATH, and 1.0 when it is present
    but does not print a recognisable version.
    """
    if not command_exists(command_name):
        return None
    try:
        result = run_command(
            [command_name, "--version"],
            app_settings,
            check=False,
            capture_output=True,
            current_logger=current_logger,
            timeout=10,
        )
    except (OSError, subprocess.TimeoutExpired):
        return 1.0
    version = parse_version_number(f"{result.stdout or ''} {result.stderr or ''}")
    return version if version is not None else 1.0


def read_host_resource(
    requirement: ResourceRequirement,
    app_settings: Optional[AppSettings] = None,
    current_logger: Optional[logging.Logger] = None,
) -> Optional[float]:
    """Reads the current host value for a requirement's resource."""
    if requirement.resource == ResourceKind.CPU_CORES:
        return get_cpu_cores()
    if requirement.resource == ResourceKind.MEMORY_MB:
        return get_total_memory_mb()
    if requirement.resource == ResourceKind.DISK_MB:
        return get_free_disk_mb(requirement.name or "/")
    return get_command_version(
        str(requirement.name), app_settings, current_logger
    )


def process_is_running(
    process_name: str,
    app_settings: Optional[AppSettings] = None,
    current_logger: Optional[logging.Logger] = None,
) -> bool:
    """True when the process lookup command finds a matching process."""
    lookup_command = (
        app_settings.process_lookup_command if app_settings else "pgrep"
    )
    try:
        result = run_command(
            [lookup_command, "-f", process_name],
            app_settings,
            check=False,
            capture_output=True,
            current_logger=current_logger,
            timeout=10,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired) as e:
        symbols = get_symbols(app_settings)
        log_bootstrap(
            f"{symbols.get('warning', '!')} Process lookup for '{process_name}' failed: {e}",
            "warning",
            current_logger or module_logger,
            app_settings,
        )
        return False
    return result.returncode == 0 and bool((result.stdout or "").strip())


def container_is_running(
    container_name: str,
    app_settings: Optional[AppSettings] = None,
    current_logger: Optional[logging.Logger] = None,
) -> bool:
    """True when the container runtime lists a running container by name."""
    runtime = (
        app_settings.container_runtime_command if app_settings else "docker"
    )
    try:
        result = run_command(
            [runtime, "ps", "-q", "-f", f"name={container_name}"],
            app_settings,
            check=False,
            capture_output=True,
            current_logger=current_logger,
            timeout=15,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired) as e:
        symbols = get_symbols(app_settings)
        log_bootstrap(
            f"{symbols.get('warning', '!')} Container lookup for '{container_name}' failed: {e}",
            "warning",
            current_logger or module_logger,
            app_settings,
        )
        return False
    return result.returncode == 0 and bool((result.stdout or "").strip())
