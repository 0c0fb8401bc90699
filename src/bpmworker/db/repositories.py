"""Database repositories for accounts and asset drafts.

Each operation runs in its own short session, since callers such as the
deletion saga hold a lease for minutes between calls.
"""

from contextlib import AbstractAsyncContextManager
from typing import Callable, Optional
from uuid import UUID

from sqlalchemy import exists, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from bpmworker.db.base import get_session
from bpmworker.db.tables import AccountTable, ProviderAssetDraftTable
from bpmworker.models import (
    Account,
    AccountActiveTask,
    AccountType,
    ActivationStatus,
    DraftRecord,
    Page,
)

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


class AccountRepository:
    """Repository for account operations."""

    def __init__(self, session_factory: SessionFactory = get_session):
        self.session_factory = session_factory

    async def find_one_by_key(self, key: UUID) -> Optional[Account]:
        """Get an account by key."""
        async with self.session_factory() as session:
            result = await session.execute(select(AccountTable).where(AccountTable.key == key))
            row = result.scalar_one_or_none()
            return self._row_to_model(row) if row else None

    async def find_all_orphan_vendors(self) -> list[Account]:
        """Vendor accounts whose parent account no longer exists."""
        parent = aliased(AccountTable)
        query = (
            select(AccountTable)
            .where(
                AccountTable.type == AccountType.VENDOR,
                AccountTable.parent_key.is_not(None),
                ~exists().where(parent.key == AccountTable.parent_key),
            )
            .order_by(AccountTable.id)
        )
        async with self.session_factory() as session:
            result = await session.execute(query)
            return [self._row_to_model(r) for r in result.scalars().all()]

    async def set_active_task(self, account_id: int, task: AccountActiveTask) -> None:
        async with self.session_factory() as session:
            await session.execute(
                update(AccountTable).where(AccountTable.id == account_id).values(active_task=task)
            )

    async def cancel_registration(self, key: UUID) -> None:
        """Mark a pending registration as cancelled."""
        async with self.session_factory() as session:
            await session.execute(
                update(AccountTable)
                .where(
                    AccountTable.key == key,
                    AccountTable.activation_status == ActivationStatus.PENDING,
                )
                .values(activation_status=ActivationStatus.CANCELLED)
            )

    @staticmethod
    def _row_to_model(row: AccountTable) -> Account:
        return Account(
            id=row.id,
            key=row.key,
            email=row.email,
            type=row.type,
            parent_key=row.parent_key,
            active_task=row.active_task,
            activation_status=row.activation_status,
            geodata_shard=row.geodata_shard,
        )


class DraftRepository:
    """Repository for provider asset drafts."""

    def __init__(self, session_factory: SessionFactory = get_session):
        self.session_factory = session_factory

    async def find_all_by_publisher(
        self, publisher_key: UUID, page: int, size: int
    ) -> Page[DraftRecord]:
        """One page of a publisher's drafts, ordered by id."""
        query = (
            select(ProviderAssetDraftTable)
            .where(ProviderAssetDraftTable.publisher_key == publisher_key)
            .order_by(ProviderAssetDraftTable.id)
            .offset(page * size)
            .limit(size)
        )
        async with self.session_factory() as session:
            rows = (await session.execute(query)).scalars().all()

        return Page(
            items=[
                DraftRecord(
                    key=r.key,
                    publisher_key=r.publisher_key,
                    status=r.status,
                    asset_published=r.asset_published,
                )
                for r in rows
            ],
            page_index=page,
            page_size=size,
        )
