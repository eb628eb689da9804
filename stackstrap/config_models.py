# stackstrap/config_models.py
# -*- coding: utf-8 -*-
"""
Pydantic models for application configuration and stack definitions.

`AppSettings` holds how the engine itself behaves (logging, container
runtime, metrics output). `StackDefinition` is the declarative description of
one target stack: the requirements to check, the steps to run, the services
to probe and the endpoints to advertise once everything is up.
"""

from pathlib import Path
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from stackstrap.config import LOG_PREFIX_DEFAULT
from stackstrap.models import Endpoint, ResourceRequirement, ServiceProbe

# --- Default Static Values (can be overridden by config file/env/cli) ---
LOG_LEVEL_DEFAULT: str = "INFO"
CONTAINER_RUNTIME_COMMAND_DEFAULT: str = "docker"
PROCESS_LOOKUP_COMMAND_DEFAULT: str = "pgrep"
SERVICE_MANAGER_COMMAND_DEFAULT: str = "systemctl"

SYMBOLS_DEFAULT: Dict[str, str] = {
    "success": "✅",
    "error": "❌",
    "warning": "⚠️",
    "info": "ℹ️",
    "step": "➡️",
    "gear": "⚙️",
    "package": "📦",
    "rocket": "🚀",
    "sparkles": "✨",
    "critical": "🔥",
    "debug": "🐛",
    "skip": "⏭️",
    "hourglass": "⏳",
}


class AppSettings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(env_prefix="STACKSTRAP_", extra="ignore")

    log_prefix: str = Field(
        default=LOG_PREFIX_DEFAULT,
        description="Prefix for console log messages.",
    )
    log_level: str = Field(
        default=LOG_LEVEL_DEFAULT, description="Root logging level."
    )
    log_file: Optional[str] = Field(
        default=None, description="Optional path of a JSON log file."
    )
    json_logs: bool = Field(
        default=False, description="Emit JSON-structured console logs."
    )
    container_runtime_command: str = Field(
        default=CONTAINER_RUNTIME_COMMAND_DEFAULT,
        description="Command for the container runtime CLI (e.g., docker, podman).",
    )
    process_lookup_command: str = Field(
        default=PROCESS_LOOKUP_COMMAND_DEFAULT,
        description="Command used to look up running processes by name.",
    )
    service_manager_command: str = Field(
        default=SERVICE_MANAGER_COMMAND_DEFAULT,
        description="Service manager CLI used by service_active checks and start_service actions.",
    )
    metrics_textfile: Optional[str] = Field(
        default=None,
        description="Write Prometheus metrics for the run to this file.",
    )

    symbols: Dict[str, str] = Field(
        default_factory=lambda: dict(SYMBOLS_DEFAULT)
    )


# --- Stack definition ---


class CheckDecl(BaseModel):
    """Declarative idempotency check of a step."""

    model_config = {"extra": "forbid"}

    kind: Literal[
        "none",
        "command_exists",
        "file_exists",
        "file_matches",
        "command_succeeds",
        "service_active",
    ] = "none"
    command: Optional[Union[str, List[str]]] = None
    path: Optional[str] = None
    template: Optional[str] = None
    content: Optional[str] = None
    service: Optional[str] = None
    elevated: bool = Field(
        default=False,
        description="Read files the invoking user cannot read through sudo (file_matches).",
    )

    @model_validator(mode="after")
    def _fields_for_kind(self) -> "CheckDecl":
        needed = {
            "command_exists": ("command",),
            "file_exists": ("path",),
            "file_matches": ("path",),
            "command_succeeds": ("command",),
            "service_active": ("service",),
        }.get(self.kind, ())
        missing = [name for name in needed if not getattr(self, name)]
        if missing:
            raise ValueError(
                f"check kind '{self.kind}' needs: {', '.join(missing)}"
            )
        if self.kind == "file_matches" and not (self.template or self.content):
            raise ValueError(
                "check kind 'file_matches' needs a 'template' or 'content'"
            )
        return self


class ActionDecl(BaseModel):
    """Declarative side-effecting action of a step."""

    model_config = {"extra": "forbid"}

    kind: Literal["command", "write_file", "start_service"]
    command: Optional[Union[str, List[str]]] = None
    elevated: bool = False
    cwd: Optional[str] = None
    env: Dict[str, str] = Field(default_factory=dict)
    path: Optional[str] = None
    template: Optional[str] = None
    content: Optional[str] = None
    mode: Optional[str] = Field(
        default=None, description="Octal file mode, e.g. '0644'."
    )
    service: Optional[str] = None

    @model_validator(mode="after")
    def _fields_for_kind(self) -> "ActionDecl":
        if self.kind == "command" and not self.command:
            raise ValueError("action kind 'command' needs a 'command'")
        if self.kind == "write_file":
            if not self.path:
                raise ValueError("action kind 'write_file' needs a 'path'")
            if not (self.template or self.content is not None):
                raise ValueError(
                    "action kind 'write_file' needs a 'template' or 'content'"
                )
            if self.mode is not None:
                int(self.mode, 8)
        if self.kind == "start_service" and not self.service:
            raise ValueError("action kind 'start_service' needs a 'service'")
        return self


class StepDecl(BaseModel):
    model_config = {"extra": "forbid"}

    id: str = Field(min_length=1)
    description: str = ""
    required: bool = True
    check: CheckDecl = Field(default_factory=CheckDecl)
    action: ActionDecl


class StackDefinition(BaseModel):
    """Everything one bootstrap run needs to know about the target stack."""

    model_config = {"extra": "forbid"}

    name: str = "stack"
    variables: Dict[str, str] = Field(default_factory=dict)
    secrets: Dict[str, str] = Field(
        default_factory=dict,
        description="Template variable -> environment variable providing its value.",
    )
    requirements: List[ResourceRequirement] = Field(default_factory=list)
    steps: List[StepDecl] = Field(default_factory=list)
    probes: List[ServiceProbe] = Field(default_factory=list)
    endpoints: List[Endpoint] = Field(default_factory=list)
    base_dir: Path = Field(default_factory=Path.cwd, exclude=True)

    @model_validator(mode="after")
    def _unique_ids(self) -> "StackDefinition":
        seen = set()
        for step in self.steps:
            if step.id in seen:
                raise ValueError(f"duplicate step id '{step.id}'")
            seen.add(step.id)
        services = [probe.service for probe in self.probes]
        if len(services) != len(set(services)):
            raise ValueError("probe service names must be unique")
        return self
