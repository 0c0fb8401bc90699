"""Account deletion context."""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional
from uuid import UUID

from bpmworker.models.enums import AccountType

if TYPE_CHECKING:
    from bpmworker.worker.lease import LeaseKeepAlive


@dataclass
class DeletionContext:
    """
    State of one account deletion saga run.

    Owned by a single execution. `collected_asset_ids` only grows; the
    catalogue step and the draft scan both add to it.
    """

    user_id: int
    user_key: UUID
    user_parent_key: UUID
    user_name: str
    user_type: AccountType
    keep_alive: "LeaseKeepAlive"
    user_geodata_shard: Optional[str] = None
    account_deleted: bool = False
    contracts_deleted: bool = False
    file_system_deleted: bool = False
    collected_asset_ids: set[str] = field(default_factory=set)

    def is_file_system_deleted(self) -> bool:
        return self.account_deleted or self.file_system_deleted

    def collect(self, asset_id: str) -> bool:
        """Record an asset id. Return True if it was not collected before."""
        if asset_id in self.collected_asset_ids:
            return False
        self.collected_asset_ids.add(asset_id)
        return True
