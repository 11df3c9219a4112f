"""config.py - Central configuration: environment variables, polling budgets, logging."""
from __future__ import annotations

import logging
import os

__all__ = [
    "ACTIVATION_DEFAULT_DAYS",
    "ACTIVATION_MAX_MINUTES",
    "ACTIVATION_SECRET_DESCRIPTION",
    "AWS_REGION",
    "CLIENT_MAX_ATTEMPTS",
    "COMMAND_INITIAL_BACKOFF_SECONDS",
    "COMMAND_MAX_ATTEMPTS",
    "COMMAND_MAX_BACKOFF_SECONDS",
    "COMMAND_TIMEOUT_SECONDS",
    "LOG_LEVEL",
    "OBSERVABILITY_LOG_GROUP",
    "PROVIDER_NAME",
    "VALID_REGIONS",
    "logger",
]

PROVIDER_NAME = "awsops"

# ---------------------------------------------------------------------------
# AWS
# ---------------------------------------------------------------------------

AWS_REGION = os.environ.get("AWSOPS_REGION", os.environ.get("AWS_REGION", ""))
CLIENT_MAX_ATTEMPTS = int(os.environ.get("AWSOPS_CLIENT_MAX_ATTEMPTS", "5"))

VALID_REGIONS = (
    "us-east-1",
    "us-east-2",
    "us-west-1",
    "us-west-2",
    "eu-west-1",
    "eu-west-2",
    "eu-west-3",
    "eu-central-1",
    "eu-central-2",
    "eu-north-1",
    "eu-south-1",
    "eu-south-2",
)

# ---------------------------------------------------------------------------
# Command polling budget
# ---------------------------------------------------------------------------

COMMAND_MAX_ATTEMPTS = int(os.environ.get("AWSOPS_COMMAND_MAX_ATTEMPTS", "10"))
COMMAND_TIMEOUT_SECONDS = float(os.environ.get("AWSOPS_COMMAND_TIMEOUT_SECONDS", "300"))
COMMAND_INITIAL_BACKOFF_SECONDS = float(os.environ.get("AWSOPS_COMMAND_INITIAL_BACKOFF_SECONDS", "1"))
COMMAND_MAX_BACKOFF_SECONDS = float(os.environ.get("AWSOPS_COMMAND_MAX_BACKOFF_SECONDS", "30"))

# ---------------------------------------------------------------------------
# Activation
# ---------------------------------------------------------------------------

ACTIVATION_DEFAULT_DAYS = 30
ACTIVATION_MAX_MINUTES = 30 * 24 * 60
ACTIVATION_SECRET_DESCRIPTION = "SSM Activation data managed by awsops"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

LOG_LEVEL = os.environ.get("AWSOPS_LOG_LEVEL", "INFO").upper()
OBSERVABILITY_LOG_GROUP = os.environ.get("AWSOPS_OBSERVABILITY_LOG_GROUP", "")

logger = logging.getLogger(PROVIDER_NAME)
logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
