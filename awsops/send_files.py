"""send_files.py - ``ssm_send_files`` resource.

Writes files onto managed instances through a single Run Command. File
contents travel base64-encoded inside the rendered shell commands, so the
SSM document only needs ``workingDirectory`` and ``commands`` parameters.
Optional ``script_before_files`` / ``script_after_files`` run in the working
directory around the file writes.
"""
from __future__ import annotations

import base64
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .diagnostics import Diagnostics
from .errors import ValidationError
from .resource import Resource, State, carry_computed, triggers_changed
from .send_command import COMPUTED_ATTRIBUTES, run_dispatch_into_state

__all__ = ["Bash", "FileSpec", "PowerShell", "SendFilesResource", "build_commands", "runner_for"]

_PERMISSIONS_RE = re.compile(r"^[0-7]{3}$")


def _b64(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


@dataclass(frozen=True)
class FileSpec:
    name: str
    content: str
    working_directory: str
    permissions: Optional[str] = None
    owner: Optional[str] = None
    group: Optional[str] = None

    @classmethod
    def from_block(cls, raw: Dict[str, Any], working_directory: str, index: int) -> "FileSpec":
        name = str(raw.get("name") or "").strip()
        if not name:
            raise ValidationError(f"file[{index}].name must not be empty")
        permissions = raw.get("permissions")
        if permissions is not None and not _PERMISSIONS_RE.match(str(permissions)):
            raise ValidationError(
                f"file[{index}].permissions must be a 3-digit octal value (e.g. 644), got '{permissions}'"
            )
        for attr in ("owner", "group"):
            value = raw.get(attr)
            if value is not None and not str(value).strip():
                raise ValidationError(f"file[{index}].{attr} must not be blank when set")
        return cls(
            name=name,
            content=str(raw.get("content") or ""),
            working_directory=working_directory,
            permissions=None if permissions is None else str(permissions),
            owner=raw.get("owner"),
            group=raw.get("group"),
        )


# ---------------------------------------------------------------------------
# Platform renderers
# ---------------------------------------------------------------------------


class Bash:
    document_name = "AWS-RunShellScript"

    def command_script(self, working_directory: str, script: str) -> str:
        return f'cd "{working_directory}"\necho {_b64(script)} | base64 -d | bash'

    def command_file(self, entry: FileSpec) -> str:
        lines = [
            f'cd "{entry.working_directory}"',
            f'rm -f "{entry.name}"',
            f'echo "{_b64(entry.content)}" | base64 -d > "{entry.name}"',
        ]
        if entry.permissions is not None:
            lines.append(f'chmod {entry.permissions} "{entry.name}"')
        chown = (entry.owner or "").strip()
        group = (entry.group or "").strip()
        if group:
            chown = f"{chown}:{group}" if chown else group
        if chown:
            lines.append(f'chown {chown} "{entry.name}"')
        return "\n".join(lines)


class PowerShell:
    document_name = "AWS-RunPowerShellScript"

    def command_script(self, working_directory: str, script: str) -> str:
        return (
            f'Set-Location -Path "{working_directory}"\n'
            f'$c = [System.Text.Encoding]::UTF8.GetString([System.Convert]::FromBase64String("{_b64(script)}"))\n'
            'Invoke-Expression "$c"'
        )

    def command_file(self, entry: FileSpec) -> str:
        wd = entry.working_directory
        return (
            f'if (Test-Path -Path "{wd}") {{\n'
            f'  Set-Location -Path "{wd}"\n'
            "} else {\n"
            f'  Throw "PathNotFound {wd}"\n'
            "  Exit 1\n"
            "}\n"
            f'Remove-Item "{entry.name}" -Force -ErrorAction SilentlyContinue\n'
            f'[System.Text.Encoding]::UTF8.GetString([System.Convert]::FromBase64String("{_b64(entry.content)}")) '
            f'> "{entry.name}"'
        )


def runner_for(platform: str):
    if platform == "linux":
        return Bash()
    if platform == "windows":
        return PowerShell()
    raise ValidationError(
        f"Platform must be either 'linux' or 'windows', got '{platform}'. Please specify a valid platform.",
        summary="Invalid platform configuration",
    )


def build_commands(
    runner,
    working_directory: str,
    files: List[FileSpec],
    script_before: Optional[str] = None,
    script_after: Optional[str] = None,
) -> List[str]:
    commands: List[str] = []
    if script_before and script_before.strip():
        commands.append(runner.command_script(working_directory, script_before))
    commands.extend(runner.command_file(f) for f in files)
    if script_after and script_after.strip():
        commands.append(runner.command_script(working_directory, script_after))
    return commands


# ---------------------------------------------------------------------------
# Resource
# ---------------------------------------------------------------------------


class SendFilesResource(Resource):
    type_name = "ssm_send_files"

    def _send(self, plan: State, diags: Diagnostics) -> State:
        state = dict(plan)
        platform = str(state.get("platform") or "")
        runner = runner_for(platform)
        blocks = list(state.get("file") or [])
        if not blocks:
            raise ValidationError(
                "At least one file block must be specified. "
                "Please provide at least one file to send to the target instances.",
                summary="Invalid file configuration",
            )
        working_directory = str(state.get("working_directory") or "")
        if not working_directory.strip():
            raise ValidationError("working_directory must not be empty")
        files = [FileSpec.from_block(dict(b), working_directory, i) for i, b in enumerate(blocks)]

        commands = build_commands(
            runner,
            working_directory,
            files,
            script_before=state.get("script_before_files"),
            script_after=state.get("script_after_files"),
        )
        return run_dispatch_into_state(
            self,
            state,
            document_name=runner.document_name,
            parameters=None,
            comment=None,
            diags=diags,
            raw_parameters={"workingDirectory": [working_directory], "commands": commands},
        )

    def _create(self, plan: State, diags: Diagnostics) -> State:
        return self._send(plan, diags)

    def _update(self, plan: State, state: State, diags: Diagnostics) -> State:
        if triggers_changed(plan, state):
            return self._send(plan, diags)
        new_state = carry_computed(plan, state, COMPUTED_ATTRIBUTES)
        for name in COMPUTED_ATTRIBUTES:
            if new_state.get(name) is None:
                new_state[name] = ""
        return new_state
