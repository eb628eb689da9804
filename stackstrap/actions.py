# stackstrap/actions.py
# -*- coding: utf-8 -*-
"""
Builds executable steps and probe collaborators from a stack definition.

Check declarations become side-effect-free predicates, action declarations
become callables that run commands, write rendered config files or start
services. Config file content comes from template files next to the stack
definition (or inline content) with `$name` placeholders filled from the
definition's variables and from secrets read out of the environment.
"""

import functools
import logging
import os
import tempfile
from pathlib import Path
from string import Template
from typing import Any, Callable, Dict, List, Optional, Set

import requests

from common.command_utils import (
    command_exists,
    command_succeeds,
    get_symbols,
    log_bootstrap,
    run_command,
    run_elevated_command,
)
from common.network_utils import http_status
from common.system_utils import container_is_running, process_is_running
from stackstrap.config_models import (
    ActionDecl,
    AppSettings,
    CheckDecl,
    StackDefinition,
    StepDecl,
)
from stackstrap.models import (
    ProcessLookup,
    ServiceProbe,
    StackDefinitionError,
    StepSpec,
)

module_logger = logging.getLogger(__name__)

SecretLookup = Callable[[str], Optional[str]]


def _placeholders(text: str) -> Set[str]:
    """Names used as `$name` or `${name}` in a template; `$$` escapes are ignored."""
    return {
        match.group("named") or match.group("braced")
        for match in Template.pattern.finditer(text)
        if match.group("named") or match.group("braced")
    }


class StepFactory:
    """Turns StepDecl entries of one stack definition into StepSpecs."""

    def __init__(
        self,
        definition: StackDefinition,
        app_settings: AppSettings,
        current_logger: Optional[logging.Logger] = None,
        secret_lookup: SecretLookup = os.environ.get,
    ):
        self.definition = definition
        self.app_settings = app_settings
        self.logger = current_logger or module_logger
        self.secret_lookup = secret_lookup

    def build_steps(self) -> List[StepSpec]:
        """
        Builds every step of the definition.

        Raises:
            StackDefinitionError: A template cannot be read or references a
                secret whose environment variable is unset. Nothing has run yet.
        """
        for decl in self.definition.steps:
            self.validate_templates(decl)
        return [self.build_step(decl) for decl in self.definition.steps]

    def validate_templates(self, decl: StepDecl) -> None:
        if decl.check.kind == "file_matches":
            self.render_content(decl.check.template, decl.check.content)
        if decl.action.kind == "write_file":
            self.render_content(decl.action.template, decl.action.content)

    def build_step(self, decl: StepDecl) -> StepSpec:
        return StepSpec(
            id=decl.id,
            description=decl.description or decl.id,
            check=self.build_check(decl.check),
            action=self.build_action(decl.action),
            required=decl.required,
        )

    # --- paths and templates ---

    def resolve_path(self, path: str) -> Path:
        candidate = Path(path).expanduser()
        if not candidate.is_absolute():
            candidate = self.definition.base_dir / candidate
        return candidate

    def _template_values(self, text: str) -> Dict[str, str]:
        values = dict(self.definition.variables)
        referenced = _placeholders(text)
        for name, env_var in self.definition.secrets.items():
            secret = self.secret_lookup(env_var)
            if secret is not None:
                values[name] = secret
            elif name in referenced:
                raise StackDefinitionError(
                    f"secret '{name}' is referenced but environment variable {env_var} is not set"
                )
        return values

    def render_content(
        self, template: Optional[str], content: Optional[str]
    ) -> str:
        """
        Returns the rendered file content. Placeholders that match no
        variable or secret are left untouched (nginx-style `$host` survives).
        """
        if template:
            template_path = self.resolve_path(template)
            try:
                text = template_path.read_text(encoding="utf-8")
            except OSError as e:
                raise StackDefinitionError(
                    f"cannot read template '{template_path}': {e}"
                ) from e
        else:
            text = content or ""
        return Template(text).safe_substitute(self._template_values(text))

    # --- checks ---

    def build_check(self, decl: CheckDecl) -> Callable[[], bool]:
        if decl.kind == "none":
            return lambda: False
        if decl.kind == "command_exists":
            executable = (
                decl.command[0]
                if isinstance(decl.command, list)
                else str(decl.command)
            )
            return functools.partial(command_exists, executable)
        if decl.kind == "file_exists":
            path = self.resolve_path(str(decl.path))
            return path.exists
        if decl.kind == "file_matches":
            return functools.partial(self._file_matches, decl)
        if decl.kind == "command_succeeds":
            return functools.partial(
                command_succeeds,
                decl.command,
                self.app_settings,
                self.logger,
                60,
            )
        if decl.kind == "service_active":
            return functools.partial(
                command_succeeds,
                [
                    self.app_settings.service_manager_command,
                    "is-active",
                    "--quiet",
                    str(decl.service),
                ],
                self.app_settings,
                self.logger,
                30,
            )
        raise StackDefinitionError(f"unknown check kind '{decl.kind}'")

    def _file_matches(self, decl: CheckDecl) -> bool:
        current = self._read_current(
            self.resolve_path(str(decl.path)), decl.elevated
        )
        if current is None:
            return False
        return current == self.render_content(decl.template, decl.content)

    def _read_current(self, path: Path, elevated: bool) -> Optional[str]:
        """
        Current content of `path`, or None when it does not exist. Files the
        invoking user may not read are read through sudo when `elevated`.
        """
        try:
            return path.read_text(encoding="utf-8")
        except PermissionError:
            if not elevated:
                return None
        except OSError:
            return None
        result = run_elevated_command(
            ["cat", str(path)],
            self.app_settings,
            check=False,
            capture_output=True,
            current_logger=self.logger,
            log_output=False,
        )
        return result.stdout if result.returncode == 0 else None

    # --- actions ---

    def build_action(self, decl: ActionDecl) -> Callable[[], Any]:
        if decl.kind == "command":
            return functools.partial(self._run_command_action, decl)
        if decl.kind == "write_file":
            return functools.partial(self._write_file_action, decl)
        if decl.kind == "start_service":
            return functools.partial(self._start_service_action, decl)
        raise StackDefinitionError(f"unknown action kind '{decl.kind}'")

    def _run_command_action(self, decl: ActionDecl):
        cwd = str(self.resolve_path(decl.cwd)) if decl.cwd else None
        env = dict(decl.env) or None
        if isinstance(decl.command, str):
            if decl.elevated:
                return run_elevated_command(
                    ["sh", "-c", decl.command],
                    self.app_settings,
                    capture_output=True,
                    current_logger=self.logger,
                    cwd=cwd,
                    env=env,
                )
            return run_command(
                decl.command,
                self.app_settings,
                shell=True,
                capture_output=True,
                current_logger=self.logger,
                cwd=cwd,
                env=env,
            )
        if decl.elevated:
            return run_elevated_command(
                list(decl.command or []),
                self.app_settings,
                capture_output=True,
                current_logger=self.logger,
                cwd=cwd,
                env=env,
            )
        return run_command(
            list(decl.command or []),
            self.app_settings,
            capture_output=True,
            current_logger=self.logger,
            cwd=cwd,
            env=env,
        )

    def _write_file_action(self, decl: ActionDecl) -> None:
        symbols = get_symbols(self.app_settings)
        target = self.resolve_path(str(decl.path))
        rendered = self.render_content(decl.template, decl.content)
        mode = int(decl.mode, 8) if decl.mode else 0o644

        if not decl.elevated:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(
                dir=str(target.parent), prefix=f".{target.name}."
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(rendered)
                os.chmod(temp_path, mode)
                os.replace(temp_path, target)
            except BaseException:
                if os.path.exists(temp_path):
                    os.unlink(temp_path)
                raise
        else:
            with tempfile.NamedTemporaryFile(
                mode="w",
                delete=False,
                prefix="stackstrap_",
                suffix=".tmp",
                encoding="utf-8",
            ) as temp_f:
                temp_f.write(rendered)
                temp_path = temp_f.name
            try:
                run_elevated_command(
                    ["install", "-D", "-m", f"{mode:o}", temp_path, str(target)],
                    self.app_settings,
                    capture_output=True,
                    current_logger=self.logger,
                )
            finally:
                os.unlink(temp_path)

        log_bootstrap(
            f"{symbols.get('success', '✅')} Wrote {target} ({len(rendered)} bytes, mode {mode:o}).",
            "info",
            self.logger,
            self.app_settings,
        )

    def _start_service_action(self, decl: ActionDecl):
        return run_elevated_command(
            [
                self.app_settings.service_manager_command,
                "enable",
                "--now",
                str(decl.service),
            ],
            self.app_settings,
            capture_output=True,
            current_logger=self.logger,
        )


def make_process_lookup(
    app_settings: AppSettings,
    current_logger: Optional[logging.Logger] = None,
) -> Callable[[ServiceProbe], bool]:
    """Process lookup that dispatches on the probe's lookup type."""

    def lookup(probe: ServiceProbe) -> bool:
        if probe.lookup == ProcessLookup.CONTAINER:
            return container_is_running(
                str(probe.process_name), app_settings, current_logger
            )
        return process_is_running(
            str(probe.process_name), app_settings, current_logger
        )

    return lookup


def make_http_probe(
    session: Optional[requests.Session] = None,
    current_logger: Optional[logging.Logger] = None,
) -> Callable[[str, float], int]:
    return functools.partial(
        http_status, session=session, current_logger=current_logger
    )
