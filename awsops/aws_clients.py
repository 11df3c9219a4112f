"""aws_clients.py - Lazy, per-region cached AWS service clients.

Factory functions create boto3 clients on first call and cache them per
region for subsequent calls. Resources accept an explicitly injected client
and only fall back to these caches when none was given.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import boto3
from botocore.config import Config

from .config import AWS_REGION, CLIENT_MAX_ATTEMPTS

__all__ = [
    "ProviderClients",
    "_build_client",
    "_get_codebuild",
    "_get_logs",
    "_get_secretsmanager",
    "_get_sfn",
    "_get_ssm",
    "_reset_clients",
]

# ---------------------------------------------------------------------------
# Client singletons
# ---------------------------------------------------------------------------

# One client per region and service.
_ssm: Dict[str, Any] = {}
_sfn: Dict[str, Any] = {}
_codebuild: Dict[str, Any] = {}
_secretsmanager: Dict[str, Any] = {}
_logs: Dict[str, Any] = {}


def _build_client(
    service: str,
    *,
    session: Optional[Any] = None,
    region: Optional[str] = None,
    max_attempts: int = CLIENT_MAX_ATTEMPTS,
):
    """Create a boto3 client with standard-mode retries."""
    factory = session.client if session is not None else boto3.client
    return factory(
        service,
        region_name=region or AWS_REGION or None,
        config=Config(retries={"max_attempts": max_attempts, "mode": "standard"}),
    )


def _cached(cache: Dict[str, Any], service: str, region: Optional[str], max_attempts: int = CLIENT_MAX_ATTEMPTS):
    key = region or AWS_REGION or ""
    if key not in cache:
        cache[key] = _build_client(service, region=key or None, max_attempts=max_attempts)
    return cache[key]


def _get_ssm(region: Optional[str] = None):
    """Get (or create) the SSM client for ``region``."""
    return _cached(_ssm, "ssm", region)


def _get_sfn(region: Optional[str] = None):
    """Get (or create) the Step Functions client for ``region``."""
    return _cached(_sfn, "stepfunctions", region)


def _get_codebuild(region: Optional[str] = None):
    """Get (or create) the CodeBuild client for ``region``."""
    return _cached(_codebuild, "codebuild", region)


def _get_secretsmanager(region: Optional[str] = None):
    """Get (or create) the Secrets Manager client for ``region``."""
    return _cached(_secretsmanager, "secretsmanager", region, max_attempts=3)


def _get_logs(region: Optional[str] = None):
    """Get (or create) the CloudWatch Logs client for ``region``."""
    return _cached(_logs, "logs", region, max_attempts=3)


class ProviderClients:
    """Client bundle handed to resources.

    Without a session the process-wide per-region clients are used; with
    one (a named profile) each client is built from that session on first
    access.
    Explicit clients passed as keyword arguments win, which is how tests
    inject fakes.
    """

    _SERVICES = {
        "ssm": ("ssm", _get_ssm, CLIENT_MAX_ATTEMPTS),
        "sfn": ("stepfunctions", _get_sfn, CLIENT_MAX_ATTEMPTS),
        "codebuild": ("codebuild", _get_codebuild, CLIENT_MAX_ATTEMPTS),
        "secretsmanager": ("secretsmanager", _get_secretsmanager, 3),
    }

    def __init__(self, *, session: Optional[Any] = None, region: Optional[str] = None, **clients: Any) -> None:
        unknown = set(clients) - set(self._SERVICES)
        if unknown:
            raise TypeError(f"unknown client(s): {', '.join(sorted(unknown))}")
        self.session = session
        self.region = region
        self._clients = dict(clients)

    def _client(self, name: str):
        if name not in self._clients:
            service, getter, attempts = self._SERVICES[name]
            if self.session is None:
                self._clients[name] = getter(self.region)
            else:
                self._clients[name] = _build_client(
                    service, session=self.session, region=self.region, max_attempts=attempts
                )
        return self._clients[name]

    @property
    def ssm(self):
        return self._client("ssm")

    @property
    def sfn(self):
        return self._client("sfn")

    @property
    def codebuild(self):
        return self._client("codebuild")

    @property
    def secretsmanager(self):
        return self._client("secretsmanager")


def _reset_clients() -> None:
    for cache in (_ssm, _sfn, _codebuild, _secretsmanager, _logs):
        cache.clear()
