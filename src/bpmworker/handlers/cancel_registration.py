"""Handler for the `cancelAccountRegistration` topic."""

import logging
from typing import Any, Optional

from bpmworker.config import settings
from bpmworker.errors import BusinessError
from bpmworker.models import ActivationStatus, ErrorCodes, ExternalTask
from bpmworker.saga.interfaces import AccountRepository
from bpmworker.worker import TaskHandler, TaskLease, VariableAccessor

logger = logging.getLogger(__name__)


class CancelAccountRegistrationHandler(TaskHandler):
    topic = "cancelAccountRegistration"
    error_code = ErrorCodes.ACCOUNT_REGISTRATION.value

    def __init__(self, accounts: AccountRepository):
        self.accounts = accounts
        self.lock_duration_ms = settings.cancel_account_registration_lock_duration_ms

    async def execute(
        self, task: ExternalTask, lease: TaskLease, variables: VariableAccessor
    ) -> Optional[dict[str, Any]]:
        user_key = variables.get_uuid("userKey")

        account = await self.accounts.find_one_by_key(user_key)
        if account is None:
            raise BusinessError(f"Account not found [userKey={user_key}]")
        if account.activation_status != ActivationStatus.PENDING:
            raise BusinessError(
                f"Invalid account status. Expected status [{ActivationStatus.PENDING.value}]. "
                f"Found [{account.activation_status.value}]. [userKey={user_key}]"
            )

        await self.accounts.cancel_registration(user_key)
        logger.info(f"Cancelled account registration. [userKey={user_key}]")
        return None
