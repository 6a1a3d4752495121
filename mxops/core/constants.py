# Copyright 2022 TOSIT.IO
# SPDX-License-Identifier: Apache-2.0

"""This module defines project-level constants."""

# Retry policy
MAX_ATTEMPTS = 3
RETRY_BACKOFF_SECONDS = 60
# Heartbeat
STALE_HEARTBEAT_SECONDS = 45
# Orchestrator
DEFAULT_BATCH_SIZE = 10
DEFAULT_RUN_BUDGET_SECONDS = 90
DEFAULT_POLL_BUDGET_SECONDS = 60
# Polling intervals (seconds)
ENVIRONMENT_POLL_INTERVAL = 3
REMOTE_JOB_POLL_INTERVAL = 30
# Hard poll ceilings, cumulative across invocations
ENVIRONMENT_POLL_MAX_ATTEMPTS = 100
REMOTE_JOB_POLL_MAX_ATTEMPTS = 60
# Workflow deadlines (minutes), used when retry_until is not set
DEFAULT_RETRY_WINDOW_MINUTES = {
    "start": 30,
    "stop": 30,
    "restart": 30,
    "transport": 60,
    "deploy": 90,
}
# Retention
ACTION_RETENTION_DAYS = 7
LOG_RETENTION_DAYS = 30
ORPHAN_ACTION_HOURS = 1
# Deploy defaults
DEFAULT_BRANCH = "main"
DEFAULT_REVISION = "HEAD"
DEFAULT_PACKAGE_DESCRIPTION = "MX Ops deployment"
# Platform
DEFAULT_PLATFORM_URL = "https://deploy.mendix.com/api"
DEFAULT_HTTP_TIMEOUT = 30
CANONICAL_ENVIRONMENT_NAMES = ("Production", "Acceptance", "Test")
# Max lengths
ID_MAX_LENGTH = 64
ENVIRONMENT_NAME_MAX_LENGTH = 100
STEP_NAME_MAX_LENGTH = 40
