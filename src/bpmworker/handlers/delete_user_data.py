"""Handler for the `deleteAllUserData` topic."""

import logging
from typing import Any, Optional

from bpmworker.config import settings
from bpmworker.models import AccountType, DeletionContext, ExternalTask
from bpmworker.saga import AccountDeletionSaga
from bpmworker.worker import TaskHandler, TaskLease, VariableAccessor

logger = logging.getLogger(__name__)


class DeleteAllUserDataHandler(TaskHandler):
    """Runs the account deletion saga for one account."""

    topic = "deleteAllUserData"

    def __init__(self, saga: AccountDeletionSaga):
        self.saga = saga
        self.lock_duration_ms = settings.delete_all_user_data_lock_duration_ms

    def build_context(self, lease: TaskLease, variables: VariableAccessor) -> DeletionContext:
        return DeletionContext(
            user_id=variables.get_int("userId"),
            user_key=variables.get_uuid("userKey"),
            user_parent_key=variables.get_uuid("userParentKey"),
            user_name=variables.get_string("userName"),
            user_type=variables.get_enum("userType", AccountType, AccountType.primary()),
            user_geodata_shard=variables.get_string("userGeodataShard", None),
            account_deleted=variables.get_bool("accountDeleted"),
            contracts_deleted=variables.get_bool("contractsDeleted"),
            file_system_deleted=variables.get_bool("fileSystemDeleted"),
            keep_alive=lease,
        )

    async def execute(
        self, task: ExternalTask, lease: TaskLease, variables: VariableAccessor
    ) -> Optional[dict[str, Any]]:
        ctx = self.build_context(lease, variables)
        await self.saga.run(ctx)
        return None
