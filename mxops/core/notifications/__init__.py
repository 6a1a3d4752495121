# Copyright 2022 TOSIT.IO
# SPDX-License-Identifier: Apache-2.0

from mxops.core.notifications.mandrill import MandrillSender
from mxops.core.notifications.notifier import Notifier
