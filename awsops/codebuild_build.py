"""codebuild_build.py - ``codebuild_start_build`` resource.

Starts a CodeBuild build with optional environment variable overrides.
``PARAMETER_STORE`` and ``SECRETS_MANAGER`` variables are checked for
existence before the build is started. The build itself is not awaited.
"""
from __future__ import annotations

import time
from typing import Any, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from .diagnostics import Diagnostics
from .errors import AwsOpsError, ValidationError
from .resource import Resource, State, carry_computed, triggers_changed
from .serialization import _emit_structured_observability, _error_code

__all__ = ["CodeBuildStartBuildResource", "build_environment_variables", "map_build"]

VALID_ENV_TYPES = ("PLAINTEXT", "PARAMETER_STORE", "SECRETS_MANAGER")

COMPUTED_ATTRIBUTES = (
    "id",
    "build_id",
    "build_arn",
    "build_number",
    "build_project_name",
    "build_image",
    "build_environment_variables",
)


def build_environment_variables(raw: Optional[List[Dict[str, Any]]]) -> List[Dict[str, str]]:
    out: List[Dict[str, str]] = []
    for item in raw or []:
        name = str(item.get("name") or "")
        env_type = item.get("type") or "PLAINTEXT"
        if env_type not in VALID_ENV_TYPES:
            raise ValidationError(
                f"Environment variable '{name}' has invalid type '{env_type}'. "
                "Valid values are PLAINTEXT, PARAMETER_STORE, or SECRETS_MANAGER.",
                summary="Invalid environment variable type",
            )
        out.append({"name": name, "value": str(item.get("value") or ""), "type": env_type})
    return out


def map_build(build: Dict[str, Any]) -> Dict[str, Any]:
    environment = build.get("environment") or {}
    env_vars = [
        {"name": v.get("name") or "", "value": v.get("value") or "", "type": v.get("type") or ""}
        for v in environment.get("environmentVariables") or []
    ]
    return {
        "id": build.get("id") or "",
        "build_id": build.get("id") or "",
        "build_arn": build.get("arn") or "",
        "build_number": build.get("buildNumber"),
        "build_project_name": build.get("projectName") or "",
        "build_image": environment.get("image"),
        "build_environment_variables": env_vars or None,
    }


class CodeBuildStartBuildResource(Resource):
    type_name = "codebuild_start_build"

    def _check_references(self, env_vars: List[Dict[str, str]], diags: Diagnostics) -> bool:
        """Every referenced parameter and secret must exist; report all that don't."""
        ok = True
        for var in env_vars:
            value = var["value"]
            try:
                if var["type"] == "PARAMETER_STORE":
                    self.clients.ssm.get_parameter(Name=value, WithDecryption=False)
                elif var["type"] == "SECRETS_MANAGER":
                    self.clients.secretsmanager.describe_secret(SecretId=value)
            except (BotoCoreError, ClientError) as exc:
                ok = False
                if var["type"] == "PARAMETER_STORE":
                    diags.add_error(
                        "Parameter Store validation failed",
                        f"Parameter Store parameter '{value}' does not exist or is not accessible: {exc}",
                    )
                else:
                    diags.add_error(
                        "Secrets Manager validation failed",
                        f"Secrets Manager secret '{value}' does not exist or is not accessible: {exc}",
                    )
        return ok

    def _start(self, plan: State, diags: Diagnostics, fallback: Optional[State]) -> Optional[State]:
        state = dict(plan)
        project = str(state.get("project_name") or "").strip()
        if not project:
            raise ValidationError("project_name must not be empty")
        env_vars = build_environment_variables(state.get("environment_variables"))
        if not self._check_references(env_vars, diags):
            return fallback

        kwargs: Dict[str, Any] = {"projectName": project}
        if env_vars:
            kwargs["environmentVariablesOverride"] = env_vars
        started = time.perf_counter()
        try:
            resp = self.clients.codebuild.start_build(**kwargs)
        except (BotoCoreError, ClientError) as exc:
            _emit_structured_observability(
                component="codebuild_build",
                event="start_build",
                tool_name="codebuild.start_build",
                latency_ms=int((time.perf_counter() - started) * 1000),
                error_code=_error_code(exc, "codebuild_start_build_failed"),
                extra={"project_name": project},
            )
            raise AwsOpsError(
                f"Error calling AWS CodeBuild StartBuild API for project '{project}': {exc}",
                summary="Unable to start CodeBuild build",
            ) from exc

        state.update(map_build(resp.get("build") or {}))
        _emit_structured_observability(
            component="codebuild_build",
            event="start_build",
            tool_name="codebuild.start_build",
            latency_ms=int((time.perf_counter() - started) * 1000),
            extra={"project_name": project, "build_id": state["build_id"]},
        )
        return state

    def _create(self, plan: State, diags: Diagnostics) -> Optional[State]:
        return self._start(plan, diags, None)

    def _update(self, plan: State, state: State, diags: Diagnostics) -> Optional[State]:
        if triggers_changed(plan, state):
            return self._start(plan, diags, state)
        return carry_computed(plan, state, COMPUTED_ATTRIBUTES)
