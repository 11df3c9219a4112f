"""provider.py - Provider configuration and resource registry.

``Provider.configure`` validates the ``region`` / ``profile`` block, builds
the shared client bundle and makes every resource type available through
``Provider.resource(type_name)``.
"""
from __future__ import annotations

from typing import Any, Callable, Dict, Mapping, Optional, Type

import boto3
from botocore.exceptions import BotoCoreError, ProfileNotFound

from .activation import ActivationResource
from .aws_clients import ProviderClients
from .backoff import OperationContext
from .codebuild_build import CodeBuildStartBuildResource
from .config import AWS_REGION, PROVIDER_NAME, VALID_REGIONS, logger
from .diagnostics import Diagnostics
from .resource import Resource
from .send_command import SendCommandResource
from .send_files import SendFilesResource
from .sfn_execution import SfnStartSyncExecutionResource

__all__ = ["Provider", "RESOURCE_TYPES", "is_valid_region"]

RESOURCE_TYPES: Dict[str, Type[Resource]] = {
    cls.type_name: cls
    for cls in (
        SendCommandResource,
        SendFilesResource,
        SfnStartSyncExecutionResource,
        CodeBuildStartBuildResource,
        ActivationResource,
    )
}


def is_valid_region(region: str) -> bool:
    return region.lower() in VALID_REGIONS


class Provider:
    name = PROVIDER_NAME

    def __init__(self, *, context_factory: Optional[Callable[[], OperationContext]] = None) -> None:
        self.clients: Optional[ProviderClients] = None
        self._context_factory = context_factory

    def configure(self, config: Optional[Mapping[str, Any]] = None, *, session_factory=boto3.Session) -> Diagnostics:
        config = dict(config or {})
        diags = Diagnostics()
        region = str(config.get("region") or "").strip() or AWS_REGION or None
        profile = str(config.get("profile") or "").strip()

        if config.get("region") and not is_valid_region(str(config["region"]).strip()):
            diags.add_error(f"invalid AWS Region: {config['region']}")
            return diags

        session = None
        if profile:
            try:
                session = session_factory(profile_name=profile, region_name=region)
            except ProfileNotFound:
                diags.add_error(f"failed to get shared config profile: {profile}")
                return diags
            except BotoCoreError as exc:
                diags.add_error("AWS Configuration Error", f"Unable to load AWS config: {exc}")
                return diags

        self.clients = ProviderClients(session=session, region=region)
        logger.info("[INFO] provider configured (region=%s, profile=%s)", region or "default", profile or "default")
        return diags

    def resource(self, type_name: str) -> Resource:
        if self.clients is None:
            raise RuntimeError("provider is not configured")
        name = type_name
        prefix = f"{PROVIDER_NAME}_"
        if name.startswith(prefix):
            name = name[len(prefix):]
        try:
            cls = RESOURCE_TYPES[name]
        except KeyError:
            raise KeyError(f"unknown resource type: {type_name}") from None
        return cls(self.clients, context_factory=self._context_factory)
