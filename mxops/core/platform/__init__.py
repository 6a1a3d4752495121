# Copyright 2022 TOSIT.IO
# SPDX-License-Identifier: Apache-2.0

from mxops.core.platform.client import PlatformClient, normalize_environment_name
from mxops.core.platform.target import ActionTarget, resolve_target
