# Copyright 2022 TOSIT.IO
# SPDX-License-Identifier: Apache-2.0

from mxops.core.models.base_model import BaseModel
from mxops.core.models.cloud_action_log_model import CloudActionLogModel
from mxops.core.models.cloud_action_model import CloudActionModel
from mxops.core.models.enums import (
    ActionStatusEnum,
    ActionTypeEnum,
    LogLevelEnum,
    TemplateTypeEnum,
)
from mxops.core.models.environment_lock_model import EnvironmentLockModel
from mxops.core.models.mendix_model import (
    MendixAppModel,
    MendixCredentialModel,
    MendixEnvironmentModel,
)
from mxops.core.models.notification_model import (
    EmailTemplateModel,
    NotificationEmailAddressModel,
)


def init_database(engine):
    BaseModel.metadata.create_all(engine)
