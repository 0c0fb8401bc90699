"""SQLAlchemy table definitions."""

from typing import Optional
from uuid import UUID

from sqlalchemy import Enum, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from bpmworker.db.base import Base
from bpmworker.models.enums import AccountActiveTask, AccountType, ActivationStatus


class AccountTable(Base):
    """Platform accounts. Vendor accounts keep their parent's key."""

    __tablename__ = "account"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[UUID] = mapped_column(Uuid, nullable=False, unique=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[AccountType] = mapped_column(
        Enum(AccountType, native_enum=False), nullable=False, default=AccountType.OPERTUSMUNDI
    )

    # Parent of a vendor account; not a foreign key so that vendors outlive it
    parent_key: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)

    active_task: Mapped[AccountActiveTask] = mapped_column(
        Enum(AccountActiveTask, native_enum=False),
        nullable=False,
        default=AccountActiveTask.NONE,
    )
    activation_status: Mapped[ActivationStatus] = mapped_column(
        Enum(ActivationStatus, native_enum=False),
        nullable=False,
        default=ActivationStatus.PENDING,
    )
    geodata_shard: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    __table_args__ = (Index("idx_account_type_parent", "type", "parent_key"),)


class ProviderAssetDraftTable(Base):
    """Provider asset drafts. `asset_published` holds the catalogue id once published."""

    __tablename__ = "provider_asset_draft"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[UUID] = mapped_column(Uuid, nullable=False, unique=True)
    publisher_key: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(64), nullable=False)
    asset_published: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
