"""activation.py - ``ssm_activation`` resource.

Manages an SSM hybrid activation and keeps its id and code in a Secrets
Manager secret as ``{"activation_id": ..., "activation_code": ...}``.

With ``managed = true`` the secret is created (or overwritten) by this
resource and deleted with it. With ``managed = false`` the secret must
already exist and is only written to.

``read`` renews an activation that AWS reports as expired: a new activation
is created with the same settings and the secret is rewritten. An activation
that no longer exists drops the resource from state.
"""
from __future__ import annotations

import datetime as dt
import json
from typing import Any, Callable, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from .aws_clients import ProviderClients
from .backoff import OperationContext
from .config import (
    ACTIVATION_DEFAULT_DAYS,
    ACTIVATION_MAX_MINUTES,
    ACTIVATION_SECRET_DESCRIPTION,
    logger,
)
from .diagnostics import Diagnostics
from .errors import AwsOpsError, ValidationError
from .resource import Resource, State

__all__ = [
    "ActivationResource",
    "RECREATE_ATTRIBUTES",
    "compute_expiration",
    "convert_tags",
    "validate_expiration",
]

RECREATE_ATTRIBUTES = (
    "iam_role",
    "description",
    "registration_limit",
    "expiration_date",
    "tags",
    "secret_name",
    "managed",
)

_AWS_ERRORS = (BotoCoreError, ClientError)


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


# ---------------------------------------------------------------------------
# Expiration / tags
# ---------------------------------------------------------------------------


def _expiration_parts(expiration: Optional[Dict[str, Any]]):
    expiration = expiration or {}
    days = expiration.get("days")
    hours = expiration.get("hours")
    minutes = expiration.get("minutes")
    return (
        ACTIVATION_DEFAULT_DAYS if days is None else int(days),
        0 if hours is None else int(hours),
        0 if minutes is None else int(minutes),
    )


def validate_expiration(expiration: Optional[Dict[str, Any]]) -> None:
    if expiration is None:
        return
    days, hours, minutes = _expiration_parts(expiration)
    problems: List[str] = []
    for label, value in (("Days", days), ("Hours", hours), ("Minutes", minutes)):
        if value < 0:
            problems.append(f"{label} must be a positive number.")
    if days * 24 * 60 + hours * 60 + minutes > ACTIVATION_MAX_MINUTES:
        problems.append(
            f"Total duration cannot exceed 30 days (got {days} days, {hours} hours, {minutes} minutes)."
        )
    if problems:
        raise ValidationError(" ".join(problems), summary="Invalid expiration_date configuration")


def compute_expiration(expiration: Optional[Dict[str, Any]], base: Optional[dt.datetime] = None) -> dt.datetime:
    """Absolute expiry; 30 days from ``base`` when no block is configured."""
    base = base or _utcnow()
    if expiration is None:
        return base + dt.timedelta(days=ACTIVATION_DEFAULT_DAYS)
    days, hours, minutes = _expiration_parts(expiration)
    return base + dt.timedelta(days=days, hours=hours, minutes=minutes)


def convert_tags(tags: Optional[Dict[str, Any]]) -> List[Dict[str, str]]:
    return [{"Key": str(k), "Value": str(v)} for k, v in sorted((tags or {}).items())]


# ---------------------------------------------------------------------------
# Resource
# ---------------------------------------------------------------------------


def _normalise(raw: State) -> State:
    state = dict(raw)
    state["secret_name"] = str(state.get("secret_name") or "")
    state["secret_arn"] = str(state.get("secret_arn") or "")
    state["secret_version"] = str(state.get("secret_version") or "")
    state["managed"] = bool(state.get("managed") or False)
    state["tags"] = dict(state.get("tags") or {}) or None
    return state


class ActivationResource(Resource):
    type_name = "ssm_activation"

    def __init__(
        self,
        clients: Optional[ProviderClients] = None,
        *,
        context_factory: Optional[Callable[[], OperationContext]] = None,
        now: Optional[Callable[[], dt.datetime]] = None,
    ) -> None:
        super().__init__(clients, context_factory=context_factory)
        self._now = now or _utcnow

    # -- AWS calls -------------------------------------------------------

    def _create_activation(self, state: State, summary: str) -> None:
        kwargs: Dict[str, Any] = {
            "IamRole": state.get("iam_role") or "",
            "ExpirationDate": compute_expiration(state.get("expiration_date"), self._now()),
        }
        if state.get("description") is not None:
            kwargs["Description"] = state["description"]
        if state.get("registration_limit") is not None:
            kwargs["RegistrationLimit"] = int(state["registration_limit"])
        tags = convert_tags(state.get("tags"))
        if tags:
            kwargs["Tags"] = tags
        try:
            resp = self.clients.ssm.create_activation(**kwargs)
        except _AWS_ERRORS as exc:
            raise AwsOpsError(f"Error calling AWS SSM CreateActivation API: {exc}", summary=summary) from exc

        state["id"] = resp["ActivationId"]
        state["activation_id"] = resp["ActivationId"]
        state["activation_code"] = resp["ActivationCode"]
        state["expired"] = False
        logger.info("[INFO] created SSM activation %s", state["activation_id"])

    def _delete_activation(self, activation_id: str) -> None:
        try:
            self.clients.ssm.delete_activation(ActivationId=activation_id)
        except _AWS_ERRORS as exc:
            raise AwsOpsError(
                f"Error calling AWS SSM DeleteActivation API for activation '{activation_id}': {exc}",
                summary="Unable to delete SSM activation",
            ) from exc

    def _delete_secret(self, secret_name: str) -> None:
        try:
            self.clients.secretsmanager.delete_secret(SecretId=secret_name, ForceDeleteWithoutRecovery=True)
        except _AWS_ERRORS as exc:
            raise AwsOpsError(
                f"Error calling AWS Secrets Manager DeleteSecret API for secret '{secret_name}': {exc}",
                summary="Unable to delete secret from Secrets Manager",
            ) from exc

    def _require_secret(self, secret_name: str) -> None:
        try:
            self.clients.secretsmanager.describe_secret(SecretId=secret_name)
        except _AWS_ERRORS as exc:
            raise ValidationError(
                f"The secret '{secret_name}' does not exist in AWS Secrets Manager. When 'managed = false', "
                "the secret must already exist. Either create the secret first or set 'managed = true'.",
                summary="Secret not found in Secrets Manager",
            ) from exc

    def _write_secret(self, state: State, is_create: bool) -> None:
        """Store the activation id and code; create the secret when managed and missing."""
        sm = self.clients.secretsmanager
        name = state["secret_name"]
        payload = json.dumps({"activation_id": state["activation_id"], "activation_code": state["activation_code"]})

        if is_create and state["managed"]:
            try:
                sm.describe_secret(SecretId=name)
                exists = True
            except _AWS_ERRORS:
                exists = False
            if not exists:
                try:
                    resp = sm.create_secret(Name=name, SecretString=payload, Description=ACTIVATION_SECRET_DESCRIPTION)
                except _AWS_ERRORS as exc:
                    raise AwsOpsError(
                        f"Error calling AWS Secrets Manager CreateSecret API for secret '{name}': {exc}",
                        summary="Unable to create secret in Secrets Manager",
                    ) from exc
                state["secret_arn"] = resp.get("ARN") or ""
                state["secret_version"] = resp.get("VersionId") or state["secret_version"]
                return

        try:
            put = sm.put_secret_value(SecretId=name, SecretString=payload)
        except _AWS_ERRORS as exc:
            raise AwsOpsError(
                f"Error calling AWS Secrets Manager PutSecretValue API for secret '{name}': {exc}",
                summary="Unable to update secret in Secrets Manager",
            ) from exc
        try:
            described = sm.describe_secret(SecretId=name)
        except _AWS_ERRORS as exc:
            raise AwsOpsError(
                f"Error calling AWS Secrets Manager DescribeSecret API for secret '{name}': {exc}",
                summary="Unable to retrieve secret metadata",
            ) from exc
        state["secret_arn"] = described.get("ARN") or ""
        state["secret_version"] = put.get("VersionId") or state["secret_version"]

    # -- lifecycle -------------------------------------------------------

    def _preflight(self, state: State) -> None:
        """Checks that must pass before anything is created or torn down."""
        validate_expiration(state.get("expiration_date"))
        if not state["managed"]:
            self._require_secret(state["secret_name"])

    def _provision(self, state: State, summary: str) -> State:
        self._create_activation(state, summary)
        self._write_secret(state, is_create=True)
        return state

    def _create(self, plan: State, diags: Diagnostics) -> State:
        state = _normalise(plan)
        self._preflight(state)
        return self._provision(state, "Unable to create SSM activation")

    def _read(self, state: State, diags: Diagnostics) -> Optional[State]:
        state = _normalise(state)
        activation_id = state.get("activation_id") or ""
        try:
            resp = self.clients.ssm.describe_activations(
                Filters=[{"FilterKey": "ActivationIds", "FilterValues": [activation_id]}]
            )
        except _AWS_ERRORS as exc:
            raise AwsOpsError(
                f"Error calling AWS SSM DescribeActivations API for activation '{activation_id}': {exc}",
                summary="Unable to retrieve SSM activation",
            ) from exc

        activations = resp.get("ActivationList") or []
        if not activations:
            logger.warning("[WARNING] SSM activation %s no longer exists; removing from state", activation_id)
            return None

        state["expired"] = bool(activations[0].get("Expired"))
        if state["expired"]:
            logger.info("[INFO] SSM activation %s expired; renewing", activation_id)
            self._create_activation(state, "Unable to renew expired SSM activation")
            self._write_secret(state, is_create=False)
            diags.add_info("SSM activation renewed", f"Expired activation {activation_id} replaced by {state['activation_id']}")
        return state

    def _update(self, plan: State, state: State, diags: Diagnostics) -> State:
        new_state = _normalise(plan)
        current = _normalise(state)
        if any(new_state.get(k) != current.get(k) for k in RECREATE_ATTRIBUTES):
            self._preflight(new_state)
            self._delete_activation(current.get("activation_id") or "")
            if current["secret_name"] and current["managed"]:
                self._delete_secret(current["secret_name"])
            return self._provision(new_state, "Unable to create new SSM activation")

        for name in ("id", "activation_id", "activation_code", "expired"):
            new_state[name] = current.get(name)
        new_state["secret_arn"] = new_state["secret_arn"] or current["secret_arn"]
        new_state["secret_version"] = new_state["secret_version"] or current["secret_version"]
        self._write_secret(new_state, is_create=False)
        return new_state

    def _delete(self, state: State, diags: Diagnostics) -> None:
        state = _normalise(state)
        self._delete_activation(state.get("activation_id") or "")
        if state["managed"]:
            self._delete_secret(state["secret_name"])
        return None
